"""
Historical portfolio value aggregation.

Builds one chronological series of portfolio value from per-holding daily
closes that come from different providers, currencies and sampling.
"""
import asyncio
from datetime import date, timedelta
from typing import Callable, Dict, List, Mapping, Optional, Sequence
import logging

from ..config import settings
from ..schemas.price import HistoricalAsset, SeriesPoint
from .market_data import (
    CoinGeckoClient,
    DailySeries,
    GOLD_REFERENCE_COIN,
    ListingRules,
    METAL_SYMBOLS,
    YahooFinanceClient,
    ounce_to_gram,
    usd_pair_symbol,
)
from .price_service import GOLD_KEY, METAL_KEY_PREFIX
from .results import guarded

logger = logging.getLogger(__name__)

# Period token -> number of calendar days requested from providers
PERIOD_DAYS = {
    '3m': 90,
    '1y': 365,
    '3y': 1095,
}
DEFAULT_PERIOD = '1y'


def period_days(period: str) -> int:
    return PERIOD_DAYS.get(period, PERIOD_DAYS[DEFAULT_PERIOD])


def convert_series(series: DailySeries, fx_by_date: Mapping[str, float]) -> DailySeries:
    """
    Multiply each close by the FX rate of the same date string.

    A date with no FX entry keeps its native (unconverted) price; gaps are
    not interpolated.
    """
    converted = []
    for day, price in series:
        rate = fx_by_date.get(day)
        converted.append((day, price * rate if rate else price))
    return converted


def fold_series(contributions: Sequence[tuple]) -> List[SeriesPoint]:
    """
    Sum quantity * price per date across holdings.

    Args:
        contributions: (quantity, series) pairs

    Returns:
        Points sorted ascending by date. A date only counts the holdings that
        have data for it.
    """
    totals: Dict[str, float] = {}
    for quantity, series in contributions:
        for day, price in series:
            totals[day] = totals.get(day, 0.0) + quantity * price
    return [SeriesPoint(date=day, value=value) for day, value in sorted(totals.items())]


class HistoricalAggregator:
    """Portfolio value history over a period, summed across holdings."""

    def __init__(
        self,
        yahoo: Optional[YahooFinanceClient] = None,
        coingecko: Optional[CoinGeckoClient] = None,
        base_currency: Optional[str] = None,
        listing: Optional[ListingRules] = None,
        today: Callable[[], date] = date.today,
    ):
        self.yahoo = yahoo or YahooFinanceClient()
        self.coingecko = coingecko or CoinGeckoClient()
        self.base_currency = base_currency or settings.base_currency
        self.listing = listing or ListingRules.from_settings(settings)
        self._today = today

    def needs_usd(self, asset: HistoricalAsset) -> bool:
        if not asset.provider_id:
            return False
        if asset.category == 'stock':
            return self.listing.is_foreign(asset.provider_id)
        return asset.category == 'precious_metals'

    async def aggregate(self, assets: List[HistoricalAsset], period: str) -> List[SeriesPoint]:
        if not assets:
            return []

        days = period_days(period)
        start = self._today() - timedelta(days=days)

        # The FX series is fetched once and shared by every USD-quoted holding
        fx_by_date: Dict[str, float] = {}
        if self.base_currency != 'USD' and any(self.needs_usd(a) for a in assets):
            fx = await guarded(
                "USD FX series",
                self.yahoo.daily_closes(usd_pair_symbol(self.base_currency), start),
            )
            fx_by_date = dict(fx.unwrap_or([]))
            if not fx_by_date:
                logger.warning("No USD FX history, USD-quoted holdings stay unconverted")

        results = await asyncio.gather(*(
            guarded(f"History {a.category}:{a.provider_id}", self.fetch_series(a, days, start, fx_by_date))
            for a in assets
        ))

        contributions = [
            (asset.quantity, result.unwrap_or([]))
            for asset, result in zip(assets, results)
        ]
        points = fold_series(contributions)
        logger.info(f"Aggregated {len(assets)} holdings into {len(points)} points for period {period}")
        return points

    async def fetch_series(
        self,
        asset: HistoricalAsset,
        days: int,
        start: date,
        fx_by_date: Mapping[str, float],
    ) -> DailySeries:
        """Native daily series of one holding, in base currency where possible."""
        provider_id = asset.provider_id
        if not provider_id:
            return []

        if asset.category == 'crypto':
            return await self.coingecko.market_chart(provider_id, self.base_currency, days)

        if asset.category == 'stock':
            series = await self.yahoo.daily_closes(self.listing.yahoo_symbol(provider_id), start)
            if self.listing.is_foreign(provider_id):
                series = convert_series(series, fx_by_date)
            return series

        if asset.category == 'gold' and provider_id == GOLD_KEY:
            series = await self.coingecko.market_chart(GOLD_REFERENCE_COIN, self.base_currency, days)
            return [(day, ounce_to_gram(price)) for day, price in series]

        if asset.category == 'precious_metals':
            symbol = METAL_SYMBOLS.get(provider_id.replace(METAL_KEY_PREFIX, '', 1))
            if symbol is None:
                return []
            series = convert_series(await self.yahoo.daily_closes(symbol, start), fx_by_date)
            return [(day, ounce_to_gram(price)) for day, price in series]

        return []
