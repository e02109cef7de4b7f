from dataclasses import dataclass, asdict
from typing import List, Optional
from xml.etree import ElementTree
import logging

from ..config import settings
from .http_client import HttpProvider
from .results import ProviderError, guarded

logger = logging.getLogger(__name__)


@dataclass
class NewsArticle:
    title: str
    link: str
    published_at: str
    source: str

    def to_dict(self) -> dict:
        return asdict(self)


def parse_rss_items(xml_text: str) -> List[NewsArticle]:
    """Items of an RSS 2.0 feed; items without a title or link are skipped."""
    try:
        root = ElementTree.fromstring(xml_text)
    except ElementTree.ParseError as e:
        raise ProviderError(f"Invalid RSS: {e}") from e

    articles = []
    for item in root.iter('item'):
        title = (item.findtext('title') or '').strip()
        link = (item.findtext('link') or '').strip()
        if not title or not link:
            continue
        articles.append(NewsArticle(
            title=title,
            link=link,
            published_at=(item.findtext('pubDate') or '').strip(),
            source=(item.findtext('source') or '').strip(),
        ))
    return articles


class NewsService(HttpProvider):
    """Market news from the Google News RSS search feed."""

    name = "Google News"
    RSS_URL = "https://news.google.com/rss/search"
    LOCALE = {'hl': 'tr', 'gl': 'TR', 'ceid': 'TR:tr'}

    async def fetch_articles(self, query: str) -> List[NewsArticle]:
        response = await self._get(self.RSS_URL, params={'q': query, **self.LOCALE})
        return parse_rss_items(response.text)

    async def search(self, query: str, limit: Optional[int] = None) -> List[NewsArticle]:
        """First ``limit`` articles for ``query``; empty on any failure."""
        if not query:
            return []
        limit = limit or settings.news_max_articles
        result = await guarded(f"News '{query}'", self.fetch_articles(query))
        return result.unwrap_or([])[:limit]
