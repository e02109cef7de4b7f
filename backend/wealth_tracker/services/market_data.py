"""
Market data clients.

Yahoo Finance is reached through yfinance (blocking, so calls run in the
default executor); CoinGecko and MetalPriceAPI are plain REST over httpx.
Every client raises ``ProviderError`` on missing data so that callers decide
how to degrade.
"""
import asyncio
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Tuple
import logging

import pandas as pd
import yfinance as yf

from .http_client import HttpProvider
from .results import ProviderError

logger = logging.getLogger(__name__)

# (YYYY-MM-DD, close)
DailySeries = List[Tuple[str, float]]

TROY_OUNCE_GRAMS = 31.1035

# Metal id -> Yahoo futures symbol (USD per troy ounce)
METAL_SYMBOLS = {
    'silver': 'SI=F',
    'platinum': 'PL=F',
    'palladium': 'PA=F',
}

# Gold-backed token, roughly one troy ounce of gold
GOLD_REFERENCE_COIN = 'tether-gold'


def ounce_to_gram(price_per_ounce: float) -> float:
    return price_per_ounce / TROY_OUNCE_GRAMS


@dataclass
class Quote:
    price: float
    previous_close: Optional[float] = None

    @property
    def change_pct(self) -> Optional[float]:
        if not self.previous_close:
            return None
        return (self.price - self.previous_close) / self.previous_close * 100


class YahooFinanceClient:
    """Quotes, daily history and symbol search via yfinance."""

    def get_quote(self, symbol: str) -> Quote:
        """
        Latest quote for a Yahoo symbol.

        Tries fast_info first (lighter request), then falls back to info.
        """
        ticker = yf.Ticker(symbol)

        try:
            price = ticker.fast_info['lastPrice']
            previous = ticker.fast_info['previousClose']
            if price and price > 0:
                return Quote(price=float(price), previous_close=float(previous) if previous else None)
        except Exception as e:
            logger.debug(f"fast_info unavailable for {symbol}: {e}")

        info = ticker.info or {}
        price = None
        for field in ['regularMarketPrice', 'currentPrice', 'previousClose']:
            if info.get(field):
                price = float(info[field])
                break

        if price is None:
            raise ProviderError(f"No price found for {symbol}")

        previous = info.get('regularMarketPreviousClose') or info.get('previousClose')
        return Quote(price=price, previous_close=float(previous) if previous else None)

    def get_daily_closes(self, symbol: str, start: date) -> DailySeries:
        """
        Daily closing prices from ``start`` until today.
        Returns list of (date string, close), dropping empty or non-positive closes.
        """
        hist = yf.Ticker(symbol).history(start=start, interval='1d', auto_adjust=True)

        if hist is None or hist.empty or 'Close' not in hist.columns:
            raise ProviderError(f"No historical data for {symbol}")

        series = []
        for idx, close in hist['Close'].items():
            if pd.notna(close) and close > 0:
                series.append((idx.date().isoformat(), float(close)))

        logger.info(f"Fetched {len(series)} historical prices for {symbol}")
        return series

    def search_equities(self, query: str) -> List[Dict]:
        quotes = yf.Search(query, max_results=20, news_count=0).quotes
        return [q for q in quotes if q.get('quoteType') == 'EQUITY']

    async def quote(self, symbol: str) -> Quote:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.get_quote, symbol)

    async def daily_closes(self, symbol: str, start: date) -> DailySeries:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.get_daily_closes, symbol, start)

    async def search(self, query: str) -> List[Dict]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.search_equities, query)


class CoinGeckoClient(HttpProvider):
    """CoinGecko public API (no key)."""

    name = "CoinGecko"
    BASE_URL = "https://api.coingecko.com/api/v3"

    async def simple_price(self, ids: List[str], vs_currency: str) -> Dict[str, Quote]:
        """
        Current price per coin id. Ids missing from the response are left out.
        """
        currency = vs_currency.lower()
        data = await self._get_json(
            f"{self.BASE_URL}/simple/price",
            params={
                'ids': ','.join(ids),
                'vs_currencies': currency,
                'include_24hr_change': 'true',
            },
        )

        result = {}
        for coin_id in ids:
            entry = data.get(coin_id) if isinstance(data, dict) else None
            if not entry or entry.get(currency) is None:
                continue
            price = float(entry[currency])
            change = entry.get(f"{currency}_24h_change")
            # Rebuild a previous close from the 24h change so Quote stays uniform
            previous = price / (1 + change / 100) if change is not None and change > -100 else None
            result[coin_id] = Quote(price=price, previous_close=previous)
        return result

    async def market_chart(self, coin_id: str, vs_currency: str, days: int) -> DailySeries:
        data = await self._get_json(
            f"{self.BASE_URL}/coins/{coin_id}/market_chart",
            params={'vs_currency': vs_currency.lower(), 'days': days, 'interval': 'daily'},
        )
        prices = data.get('prices') if isinstance(data, dict) else None
        if not prices:
            raise ProviderError(f"No market chart for {coin_id}")

        series = []
        for ts_ms, price in prices:
            if price is None:
                continue
            day = datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc).date().isoformat()
            series.append((day, float(price)))
        return series


class MetalPriceClient(HttpProvider):
    """MetalPriceAPI, used as the secondary gold source."""

    name = "MetalPriceAPI"
    API_URL = "https://api.metalpriceapi.com/v1/latest"

    def __init__(self, api_key: str = "demo", **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key

    async def gold_ounce_price(self, currency: str) -> float:
        data = await self._get_json(
            self.API_URL,
            params={'api_key': self.api_key, 'base': 'XAU', 'currencies': currency},
        )
        rate = (data.get('rates') or {}).get(currency) if isinstance(data, dict) else None
        if not rate:
            raise ProviderError(f"No XAU rate for {currency}")
        return float(rate)


@dataclass
class ListingRules:
    """
    How equity provider ids map to Yahoo symbols.

    ``BIST:THYAO`` is a local listing quoted in the base currency
    (``THYAO.IS``); ``NASDAQ:AAPL`` or a bare ``AAPL`` is a foreign listing
    quoted in USD.
    """
    local_prefix: str = 'BIST:'
    local_suffix: str = '.IS'
    foreign_prefix: str = 'NASDAQ:'

    @classmethod
    def from_settings(cls, settings) -> "ListingRules":
        return cls(
            local_prefix=settings.local_exchange_prefix,
            local_suffix=settings.local_exchange_suffix,
            foreign_prefix=settings.foreign_exchange_prefix,
        )

    def is_local(self, provider_id: str) -> bool:
        return provider_id.startswith(self.local_prefix)

    def is_foreign(self, provider_id: str) -> bool:
        return not self.is_local(provider_id)

    def yahoo_symbol(self, provider_id: str) -> str:
        if self.is_local(provider_id):
            return provider_id[len(self.local_prefix):] + self.local_suffix
        if provider_id.startswith(self.foreign_prefix):
            return provider_id[len(self.foreign_prefix):]
        return provider_id


def usd_pair_symbol(base_currency: str) -> str:
    """Yahoo FX pair quoting one USD in ``base_currency`` (e.g. USDTRY=X)."""
    return f"USD{base_currency}=X"


async def search_stocks(yahoo: YahooFinanceClient, listing: ListingRules,
                        query: str, market: str = 'all') -> List[Dict]:
    """
    Equity search results tagged with their market.

    ``market`` is the local market name (``BIST``), the foreign one
    (``NASDAQ``) or ``all``.
    """
    if not query:
        return []

    local_market = listing.local_prefix.rstrip(':')
    foreign_market = listing.foreign_prefix.rstrip(':')

    try:
        quotes = await yahoo.search(query)
    except Exception as e:
        logger.error(f"Stock search failed for '{query}': {e}")
        return []

    results = []
    for q in quotes:
        yahoo_symbol = q.get('symbol') or ''
        if not yahoo_symbol:
            continue
        is_local = yahoo_symbol.endswith(listing.local_suffix)
        symbol = yahoo_symbol[:-len(listing.local_suffix)] if is_local else yahoo_symbol
        detected = local_market if is_local else foreign_market
        if market != 'all' and market != detected:
            continue
        results.append({
            'symbol': symbol,
            'name': q.get('shortname') or q.get('longname') or symbol,
            'market': detected,
            'exchange': q.get('exchange') or '',
            'yahoo_symbol': yahoo_symbol,
        })
    return results
