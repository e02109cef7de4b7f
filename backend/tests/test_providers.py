"""Tests for the REST providers against httpx.MockTransport."""

import httpx
import pytest

from wealth_tracker.services.currency_service import CurrencyService
from wealth_tracker.services.market_data import CoinGeckoClient, ListingRules, MetalPriceClient, search_stocks
from wealth_tracker.services.news_service import NewsService, parse_rss_items
from wealth_tracker.services.results import ProviderError


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_coingecko_simple_price():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(request.url.params)
        return httpx.Response(200, json={
            "bitcoin": {"try": 2_000_000, "try_24h_change": 0.0},
            "ethereum": {},
        })

    async with _client(handler) as http:
        quotes = await CoinGeckoClient(http=http).simple_price(["bitcoin", "ethereum"], "TRY")

    assert seen["ids"] == "bitcoin,ethereum"
    assert seen["vs_currencies"] == "try"
    assert list(quotes) == ["bitcoin"]
    assert quotes["bitcoin"].price == 2_000_000.0
    assert quotes["bitcoin"].change_pct == pytest.approx(0.0)


@pytest.mark.asyncio
async def test_coingecko_non_200_is_provider_error():
    async with _client(lambda request: httpx.Response(429)) as http:
        with pytest.raises(ProviderError):
            await CoinGeckoClient(http=http).simple_price(["bitcoin"], "TRY")


@pytest.mark.asyncio
async def test_coingecko_market_chart_dates():
    def handler(request):
        return httpx.Response(200, json={"prices": [[1704067200000, 10.0], [1704153600000, 11.0]]})

    async with _client(handler) as http:
        series = await CoinGeckoClient(http=http).market_chart("bitcoin", "TRY", 365)

    assert series == [("2024-01-01", 10.0), ("2024-01-02", 11.0)]


@pytest.mark.asyncio
async def test_coingecko_market_chart_without_prices():
    async with _client(lambda request: httpx.Response(200, json={"prices": []})) as http:
        with pytest.raises(ProviderError):
            await CoinGeckoClient(http=http).market_chart("bitcoin", "TRY", 365)


@pytest.mark.asyncio
async def test_currency_rates_are_inverted_to_base():
    def handler(request):
        assert request.url.path.endswith("/TRY")
        return httpx.Response(200, json={"rates": {"TRY": 1, "USD": 0.03125, "EUR": 0.0625}})

    async with _client(handler) as http:
        rates = await CurrencyService(http=http).get_rates_to_base(["USD", "EUR", "GBP", "TRY"], "TRY")

    assert rates == {"USD": 32.0, "EUR": 16.0, "TRY": 1.0}


@pytest.mark.asyncio
async def test_currency_exchange_rate():
    async with _client(lambda request: httpx.Response(200, json={"rates": {"TRY": 32.5}})) as http:
        service = CurrencyService(http=http)
        assert await service.get_exchange_rate("USD", "TRY") == 32.5
        assert await service.get_exchange_rate("USD", "USD") == 1.0
        with pytest.raises(ProviderError):
            await service.get_exchange_rate("USD", "XYZ")


@pytest.mark.asyncio
async def test_currency_invalid_json():
    async with _client(lambda request: httpx.Response(200, text="<html>")) as http:
        with pytest.raises(ProviderError):
            await CurrencyService(http=http).get_latest_rates("TRY")


@pytest.mark.asyncio
async def test_transport_error_is_provider_error():
    def handler(request):
        raise httpx.ConnectError("connection refused")

    async with _client(handler) as http:
        with pytest.raises(ProviderError):
            await CurrencyService(http=http).get_latest_rates("TRY")


@pytest.mark.asyncio
async def test_metal_gold_ounce_price():
    def handler(request):
        assert request.url.params["base"] == "XAU"
        return httpx.Response(200, json={"rates": {"TRY": 75000.0}})

    async with _client(handler) as http:
        assert await MetalPriceClient(http=http).gold_ounce_price("TRY") == 75000.0


RSS = """<?xml version="1.0"?>
<rss version="2.0"><channel>
  <item><title>Gold hits record</title><link>https://example.com/a</link>
        <pubDate>Mon, 01 Jan 2024 10:00:00 GMT</pubDate><source>Example</source></item>
  <item><title>No link here</title></item>
  <item><title>Bitcoin rallies</title><link>https://example.com/b</link></item>
</channel></rss>"""


def test_parse_rss_skips_incomplete_items():
    articles = parse_rss_items(RSS)

    assert [a.title for a in articles] == ["Gold hits record", "Bitcoin rallies"]
    assert articles[0].source == "Example"
    assert articles[1].published_at == ""


def test_parse_rss_rejects_garbage():
    with pytest.raises(ProviderError):
        parse_rss_items("not xml")


@pytest.mark.asyncio
async def test_news_search_limits_results():
    async with _client(lambda request: httpx.Response(200, text=RSS)) as http:
        articles = await NewsService(http=http).search("altin", limit=1)

    assert len(articles) == 1


@pytest.mark.asyncio
async def test_news_search_is_empty_on_failure():
    async with _client(lambda request: httpx.Response(503)) as http:
        service = NewsService(http=http)
        assert await service.search("altin") == []
        assert await service.search("") == []


def test_listing_rules_map_to_yahoo_symbols():
    listing = ListingRules()

    assert listing.yahoo_symbol("BIST:THYAO") == "THYAO.IS"
    assert listing.yahoo_symbol("NASDAQ:AAPL") == "AAPL"
    assert listing.yahoo_symbol("MSFT") == "MSFT"
    assert listing.is_foreign("MSFT")
    assert not listing.is_foreign("BIST:THYAO")


class FakeYahoo:
    def __init__(self, quotes=None, error=None):
        self.quotes = quotes or []
        self.error = error

    async def search(self, query):
        if self.error:
            raise self.error
        return self.quotes


@pytest.mark.asyncio
async def test_search_stocks_tags_and_filters_markets():
    yahoo = FakeYahoo([
        {"symbol": "THYAO.IS", "shortname": "TURK HAVA YOLLARI", "exchange": "IST"},
        {"symbol": "AAPL", "longname": "Apple Inc.", "exchange": "NMS"},
    ])

    everything = await search_stocks(yahoo, ListingRules(), "a")
    local = await search_stocks(yahoo, ListingRules(), "a", market="BIST")

    assert [r["symbol"] for r in everything] == ["THYAO", "AAPL"]
    assert everything[1]["name"] == "Apple Inc."
    assert everything[1]["market"] == "NASDAQ"
    assert local == [{
        "symbol": "THYAO",
        "name": "TURK HAVA YOLLARI",
        "market": "BIST",
        "exchange": "IST",
        "yahoo_symbol": "THYAO.IS",
    }]


@pytest.mark.asyncio
async def test_search_stocks_is_empty_on_failure():
    assert await search_stocks(FakeYahoo(error=RuntimeError("rate limited")), ListingRules(), "a") == []
