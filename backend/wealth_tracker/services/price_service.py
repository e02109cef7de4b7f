import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Sequence
import logging

from ..config import settings
from ..schemas.price import PriceRequest
from .currency_service import CurrencyService
from .market_data import (
    CoinGeckoClient,
    GOLD_REFERENCE_COIN,
    ListingRules,
    METAL_SYMBOLS,
    MetalPriceClient,
    YahooFinanceClient,
    ounce_to_gram,
)
from .price_cache import PriceCache
from .results import FetchResult, guarded

logger = logging.getLogger(__name__)

GOLD_KEY = 'gold_gram'
METAL_KEY_PREFIX = 'metal_'

UsdRate = Callable[[], Awaitable[Optional[float]]]


@dataclass
class BasePrice:
    """Unit price in the base currency, with its 24h change in percent when the provider reports one."""
    price: float
    change_pct: Optional[float] = None


@dataclass
class PriceBatch:
    """Prices (base currency) and failures produced by one category branch."""
    prices: Dict[str, float] = field(default_factory=dict)
    changes: Dict[str, float] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    def add(self, key: str, quote: BasePrice) -> None:
        self.prices[key] = quote.price
        if quote.change_pct is not None:
            self.changes[key] = quote.change_pct


@dataclass
class PriceReport:
    prices: Dict[str, float]
    errors: Dict[str, str]
    changes: Dict[str, float] = field(default_factory=dict)


class SharedRate:
    """Awaitable that starts its lookup on first use; later callers share the result."""

    def __init__(self, lookup: UsdRate):
        self._lookup = lookup
        self._task: Optional[asyncio.Future] = None

    async def __call__(self) -> Optional[float]:
        if self._task is None:
            self._task = asyncio.ensure_future(self._lookup())
        return await self._task


class PriceService:
    """
    Fetches current unit prices from every provider and normalizes them to
    the base currency.

    The five categories (crypto, forex, stocks, metals, gold) run
    concurrently. A failing provider only empties its own branch: callers
    receive whatever else was priced, and a missing key means "keep the
    previous price".
    """

    def __init__(
        self,
        yahoo: Optional[YahooFinanceClient] = None,
        coingecko: Optional[CoinGeckoClient] = None,
        currency: Optional[CurrencyService] = None,
        metals: Optional[MetalPriceClient] = None,
        cache: Optional[PriceCache] = None,
        base_currency: Optional[str] = None,
        usd_fallback_rate: Optional[float] = None,
        listing: Optional[ListingRules] = None,
    ):
        self.yahoo = yahoo or YahooFinanceClient()
        self.coingecko = coingecko or CoinGeckoClient()
        self.currency = currency or CurrencyService()
        self.metals = metals or MetalPriceClient(api_key=settings.metal_price_api_key)
        self.cache = cache or PriceCache(ttl_seconds=settings.price_cache_ttl_seconds)
        self.base_currency = base_currency or settings.base_currency
        self.usd_fallback_rate = usd_fallback_rate if usd_fallback_rate is not None else settings.usd_fallback_rate
        self.listing = listing or ListingRules.from_settings(settings)

    async def fetch_all(self, request: PriceRequest) -> Dict[str, float]:
        """Flat mapping provider id -> unit price in the base currency."""
        return (await self.fetch_report(request)).prices

    async def fetch_report(self, request: PriceRequest) -> PriceReport:
        """Same as fetch_all, but also reports 24h changes and which ids or categories failed."""
        # Stocks and metals both convert from USD; one lookup serves the whole cycle
        usd_rate = SharedRate(self.usd_rate)

        batches: Sequence[PriceBatch] = await asyncio.gather(
            self.fetch_crypto(request.crypto_ids),
            self.fetch_forex(request.forex_currencies),
            self.fetch_stocks(request.stock_symbols, usd_rate),
            self.fetch_metals(request.metal_ids, usd_rate),
            self.fetch_gold(request.has_gold),
        )

        report = PriceReport(prices={}, errors={}, changes={})
        for batch in batches:
            report.prices.update(batch.prices)
            report.changes.update(batch.changes)
            report.errors.update(batch.errors)

        if report.errors:
            logger.warning(f"Price refresh finished with {len(report.errors)} failures: {sorted(report.errors)}")
        logger.info(f"Priced {len(report.prices)} identifiers")
        return report

    # ------------------------------------------------------------------
    # Category branches
    # ------------------------------------------------------------------

    async def fetch_crypto(self, ids: List[str]) -> PriceBatch:
        batch = PriceBatch()
        if not ids:
            return batch

        hits, misses = self.cache.split('crypto', _unique(ids))
        for coin_id, cached in hits.items():
            batch.add(coin_id, cached)
        if not misses:
            return batch

        result = await guarded(
            "Crypto prices",
            self.coingecko.simple_price(misses, self.base_currency),
        )
        if not result.ok:
            batch.errors['crypto'] = result.error
            return batch

        for coin_id, quote in result.value.items():
            priced = BasePrice(quote.price, quote.change_pct)
            batch.add(coin_id, priced)
            self.cache.set(f"crypto:{coin_id}", priced)
        return batch

    async def fetch_forex(self, currencies: List[str]) -> PriceBatch:
        batch = PriceBatch()
        if not currencies:
            return batch

        hits, misses = self.cache.split('forex', _unique(currencies))
        for currency, cached in hits.items():
            batch.add(currency, cached)
        if not misses:
            return batch

        result = await guarded(
            "Forex rates",
            self.currency.get_rates_to_base(misses, self.base_currency),
        )
        if not result.ok:
            batch.errors['forex'] = result.error
            return batch

        # The rates API has no previous close, so forex carries no 24h change
        for currency, rate in result.value.items():
            priced = BasePrice(rate)
            batch.add(currency, priced)
            self.cache.set(f"forex:{currency}", priced)
        return batch

    async def fetch_stocks(self, symbols: List[str], usd_rate: Optional[UsdRate] = None) -> PriceBatch:
        """
        Local listings are already in the base currency; foreign listings are
        quoted in USD and converted with a freshly fetched USD rate.
        """
        batch = PriceBatch()
        if not symbols:
            return batch

        hits, misses = self.cache.split('stock', _unique(symbols))
        for symbol, cached in hits.items():
            batch.add(symbol, cached)
        if not misses:
            return batch

        usd_rate = usd_rate or self.usd_rate
        needs_usd = any(self.listing.is_foreign(s) for s in misses)
        rate, *quotes = await asyncio.gather(
            usd_rate() if needs_usd else _nothing(),
            *(guarded(f"Quote {s}", self.yahoo.quote(self.listing.yahoo_symbol(s))) for s in misses),
        )

        for symbol, result in zip(misses, quotes):
            if not result.ok:
                batch.errors[symbol] = result.error
                continue

            price = result.value.price
            if self.listing.is_foreign(symbol):
                if rate is None:
                    batch.errors[symbol] = "no USD rate"
                    continue
                price *= rate

            priced = BasePrice(price, result.value.change_pct)
            batch.add(symbol, priced)
            self.cache.set(f"stock:{symbol}", priced)
        return batch

    async def fetch_metals(self, metal_ids: List[str], usd_rate: Optional[UsdRate] = None) -> PriceBatch:
        """Futures quotes in USD per troy ounce, converted to base currency per gram."""
        batch = PriceBatch()
        if not metal_ids:
            return batch

        hits, misses = self.cache.split('metal', _unique(metal_ids))
        for metal_id, cached in hits.items():
            batch.add(f"{METAL_KEY_PREFIX}{metal_id}", cached)

        supported = [m for m in misses if m in METAL_SYMBOLS]
        for metal_id in misses:
            if metal_id not in METAL_SYMBOLS:
                batch.errors[f"{METAL_KEY_PREFIX}{metal_id}"] = "unsupported metal"
        if not supported:
            return batch

        usd_rate = usd_rate or self.usd_rate
        rate, *quotes = await asyncio.gather(
            usd_rate(),
            *(guarded(f"Metal {m}", self.yahoo.quote(METAL_SYMBOLS[m])) for m in supported),
        )

        for metal_id, result in zip(supported, quotes):
            key = f"{METAL_KEY_PREFIX}{metal_id}"
            if not result.ok:
                batch.errors[key] = result.error
                continue
            if rate is None:
                batch.errors[key] = "no USD rate"
                continue

            priced = BasePrice(ounce_to_gram(result.value.price * rate), result.value.change_pct)
            batch.add(key, priced)
            self.cache.set(f"metal:{metal_id}", priced)
        return batch

    async def fetch_gold(self, has_gold: bool) -> PriceBatch:
        """Gram gold from the gold-backed token, falling back to the XAU rate."""
        batch = PriceBatch()
        if not has_gold:
            return batch

        cached = self.cache.get('gold:gram')
        if cached is not None:
            batch.add(GOLD_KEY, cached)
            return batch

        primary = await guarded(
            "Gold reference",
            self.coingecko.simple_price([GOLD_REFERENCE_COIN], self.base_currency),
        )
        if primary.ok and GOLD_REFERENCE_COIN in primary.value:
            quote = primary.value[GOLD_REFERENCE_COIN]
            priced = BasePrice(ounce_to_gram(quote.price), quote.change_pct)
        else:
            logger.info("Gold reference unavailable, trying metals rate provider")
            fallback = await guarded(
                "Gold fallback",
                self.metals.gold_ounce_price(self.base_currency),
            )
            if not fallback.ok:
                batch.errors[GOLD_KEY] = fallback.error or primary.error or "no data"
                return batch
            priced = BasePrice(ounce_to_gram(fallback.value))

        batch.add(GOLD_KEY, priced)
        self.cache.set('gold:gram', priced)
        return batch

    # ------------------------------------------------------------------

    async def usd_rate(self) -> Optional[float]:
        """USD -> base currency, cached like any price; configured fallback on failure."""
        if self.base_currency == 'USD':
            return 1.0

        cached = self.cache.get('fx:USD')
        if cached is not None:
            return cached.price

        result: FetchResult[float] = await guarded(
            "USD rate",
            self.currency.get_exchange_rate('USD', self.base_currency),
        )
        if result.ok:
            self.cache.set('fx:USD', BasePrice(result.value))
            return result.value

        if self.usd_fallback_rate is not None:
            logger.warning(f"Using fallback rate for USD:{self.base_currency}: {self.usd_fallback_rate}")
            return self.usd_fallback_rate

        logger.error(f"No exchange rate available for USD:{self.base_currency}")
        return None


def _unique(ids: List[str]) -> List[str]:
    return list(dict.fromkeys(i for i in ids if i))


async def _nothing() -> None:
    return None
