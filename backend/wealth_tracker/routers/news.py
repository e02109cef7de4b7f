from fastapi import APIRouter, Depends, Query
from typing import List

from ..dependencies import get_listing_rules, get_news_service, get_yahoo_client
from ..schemas.price import StockSearchResult
from ..services.market_data import ListingRules, YahooFinanceClient, search_stocks
from ..services.news_service import NewsService

router = APIRouter(tags=["news"])


@router.get("/news")
async def get_news(
    query: str = Query(..., min_length=1, max_length=100),
    news_service: NewsService = Depends(get_news_service)
):
    """Latest headlines for a search term"""
    articles = await news_service.search(query)
    return {"articles": [a.to_dict() for a in articles]}


@router.get("/search-stocks", response_model=List[StockSearchResult])
async def search_stock_symbols(
    query: str = Query(..., min_length=1, max_length=50),
    market: str = Query(default="all", description="all, or a market name such as BIST or NASDAQ"),
    yahoo: YahooFinanceClient = Depends(get_yahoo_client),
    listing: ListingRules = Depends(get_listing_rules)
):
    """Equity symbols matching ``query``, optionally limited to one market"""
    return await search_stocks(yahoo, listing, query, market)
