"""
In-memory snapshot store.

Three bounded time series fed by every price refresh:

- daily totals, one entry per calendar day (last 365 days)
- hourly OHLC of the total, one entry per calendar hour (last 720 hours)
- per-holding price points, one entry per holding per hour (last 720)

A write that lands in an existing bucket overwrites it. Retention is
enforced by ``deque(maxlen=...)``, so the oldest entry is evicted first.
The snapshot tables behind it are written by SnapshotService.
"""
from collections import deque
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Deque, Dict, Iterable, List, Optional, Protocol, Tuple
import logging

from sqlalchemy.orm import Session

from .valuation import effective_price, portfolio_totals, Valuable

logger = logging.getLogger(__name__)

DAILY_LIMIT = 365
HOURLY_LIMIT = 720
ASSET_LIMIT = 720

# Period token -> (series, look-back); None look-back means "since the first entry"
PERIODS = {
    '4h': ('hourly', timedelta(hours=4)),
    '1w': ('hourly', timedelta(days=7)),
    '1m': ('daily', timedelta(days=30)),
    '1y': ('daily', timedelta(days=365)),
    'all': ('daily', None),
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def hour_bucket(ts: datetime) -> datetime:
    return ts.replace(minute=0, second=0, microsecond=0)


class SnapshotHolding(Valuable, Protocol):
    id: str


@dataclass
class DailySnapshot:
    date: str  # YYYY-MM-DD
    total: float
    breakdown: Dict[str, float] = field(default_factory=dict)


@dataclass
class HourlySnapshot:
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float

    @property
    def total(self) -> float:
        return self.close

    def merge(self, total: float) -> None:
        self.close = total
        self.high = max(self.high, total)
        self.low = min(self.low, total)


@dataclass
class AssetPricePoint:
    timestamp: datetime
    price: float
    value: float  # quantity * price


@dataclass
class PeriodChange:
    period: str
    start_value: Optional[float]
    current_value: float
    change: float
    change_pct: float


class SnapshotStore:
    """Daily, hourly and per-holding history for one user."""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self.daily: Deque[DailySnapshot] = deque(maxlen=DAILY_LIMIT)
        self.hourly: Deque[HourlySnapshot] = deque(maxlen=HOURLY_LIMIT)
        self.assets: Dict[str, Deque[AssetPricePoint]] = {}

    def record_snapshot(self, holdings: Iterable[SnapshotHolding]) -> DailySnapshot:
        """
        Record current effective prices into all three series.

        Returns:
            The daily entry for today (new or overwritten)
        """
        holdings = list(holdings)
        now = self._clock()
        total, breakdown = portfolio_totals(holdings)

        today = DailySnapshot(date=now.date().isoformat(), total=total, breakdown=breakdown)
        self._upsert_daily(today)
        self._upsert_hourly(now, total)
        for holding in holdings:
            price = effective_price(holding)
            self._upsert_asset(holding.id, AssetPricePoint(
                timestamp=now,
                price=price,
                value=holding.quantity * price,
            ))

        logger.debug(f"Recorded snapshot {today.date}: total={total:.2f}, holdings={len(holdings)}")
        return today

    def _upsert_daily(self, snapshot: DailySnapshot) -> None:
        for i in range(len(self.daily) - 1, -1, -1):
            if self.daily[i].date == snapshot.date:
                self.daily[i] = snapshot
                return
        self.daily.append(snapshot)

    def _upsert_hourly(self, now: datetime, total: float) -> None:
        bucket = hour_bucket(now)
        for entry in reversed(self.hourly):
            if hour_bucket(entry.timestamp) == bucket:
                entry.merge(total)
                return
        self.hourly.append(HourlySnapshot(timestamp=now, open=total, high=total, low=total, close=total))

    def _upsert_asset(self, holding_id: str, point: AssetPricePoint) -> None:
        series = self.assets.setdefault(holding_id, deque(maxlen=ASSET_LIMIT))
        bucket = hour_bucket(point.timestamp)
        for i in range(len(series) - 1, -1, -1):
            if hour_bucket(series[i].timestamp) == bucket:
                series[i] = point
                return
        series.append(point)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def price_at_or_before(self, holding_id: str, target: datetime) -> Optional[float]:
        """Last known price of a holding at or before ``target``, or None."""
        best: Optional[AssetPricePoint] = None
        for point in self.assets.get(holding_id, ()):
            if point.timestamp <= target and (best is None or point.timestamp >= best.timestamp):
                best = point
        return best.price if best else None

    def total_at_or_before(self, target: datetime, granularity: str = 'daily') -> Optional[float]:
        best_value = None
        if granularity == 'hourly':
            best_ts = None
            for entry in self.hourly:
                if entry.timestamp <= target and (best_ts is None or entry.timestamp >= best_ts):
                    best_ts, best_value = entry.timestamp, entry.close
            return best_value

        target_day = target.date().isoformat()
        best_day = None
        for entry in self.daily:
            if entry.date <= target_day and (best_day is None or entry.date >= best_day):
                best_day, best_value = entry.date, entry.total
        return best_value

    def change_since(self, period: str, current_total: float) -> PeriodChange:
        """
        Change of the portfolio total over ``period``.

        The start value is the last total known at the cutoff; when history
        does not reach back that far, the oldest recorded total is used.
        """
        if period not in PERIODS:
            raise ValueError(f"Unknown period: {period}")

        granularity, lookback = PERIODS[period]
        series = self.hourly if granularity == 'hourly' else self.daily

        start_value = None
        if lookback is not None:
            start_value = self.total_at_or_before(self._clock() - lookback, granularity)
        if start_value is None and series:
            start_value = series[0].total

        change = current_total - start_value if start_value is not None else 0.0
        change_pct = (change / start_value) * 100 if start_value else 0.0
        return PeriodChange(
            period=period,
            start_value=start_value,
            current_value=current_total,
            change=change,
            change_pct=change_pct,
        )

    def daily_since(self, cutoff: Optional[date] = None) -> List[DailySnapshot]:
        if cutoff is None:
            return list(self.daily)
        key = cutoff.isoformat()
        return [d for d in self.daily if d.date >= key]

    def hourly_since(self, cutoff: Optional[datetime] = None) -> List[HourlySnapshot]:
        if cutoff is None:
            return list(self.hourly)
        return [h for h in self.hourly if h.timestamp >= cutoff]

    def asset_history(self, holding_id: str, since: Optional[datetime] = None) -> List[AssetPricePoint]:
        series = self.assets.get(holding_id, ())
        return [p for p in series if since is None or p.timestamp >= since]

    def reset(self) -> None:
        """Drop every series at once."""
        self.daily = deque(maxlen=DAILY_LIMIT)
        self.hourly = deque(maxlen=HOURLY_LIMIT)
        self.assets = {}
        logger.info("Snapshot store reset")

    def restore(
        self,
        daily: Iterable[DailySnapshot] = (),
        hourly: Iterable[HourlySnapshot] = (),
        assets: Iterable[Tuple[str, AssetPricePoint]] = (),
    ) -> None:
        """Append persisted entries, oldest first. Limits still apply."""
        self.daily.extend(daily)
        self.hourly.extend(hourly)
        for holding_id, point in assets:
            self.assets.setdefault(holding_id, deque(maxlen=ASSET_LIMIT)).append(point)


class SnapshotStoreRegistry:
    """
    One SnapshotStore per user, kept in process memory.

    A store is loaded from the snapshot tables the first time its user is
    seen with a database session; refresh cycles write back through
    SnapshotService.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self._stores: Dict[str, SnapshotStore] = {}

    def get(self, user_id: str, db: Optional[Session] = None) -> SnapshotStore:
        store = self._stores.get(user_id)
        if store is not None:
            return store

        store = SnapshotStore(clock=self._clock)
        if db is not None:
            from .snapshot_service import SnapshotService
            SnapshotService.load_store(db, user_id, store)
        self._stores[user_id] = store
        return store

    def reset(self, user_id: str) -> None:
        self.get(user_id).reset()

    def today(self) -> date:
        """Calendar date daily entries are currently written under."""
        return self._clock().date()
