"""
Wealth Snapshot Service

Persists the snapshot series: one portfolio total per user per calendar day,
the hourly OHLC of that total, and one price point per holding per hour.
"""
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional, List, Tuple
import logging

from ..models.snapshot import AssetPriceSnapshot, HourlyWealthSnapshot, WealthSnapshot
from .snapshot_store import (
    AssetPricePoint,
    DAILY_LIMIT,
    DailySnapshot,
    HOURLY_LIMIT,
    HourlySnapshot,
    SnapshotStore,
    hour_bucket,
    utc_now,
)

logger = logging.getLogger(__name__)


def as_utc(ts: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def utc_today() -> date:
    return utc_now().date()


class SnapshotService:
    """Service for managing wealth snapshots"""

    @staticmethod
    def save_snapshot(db: Session, user_id: str, daily: DailySnapshot) -> WealthSnapshot:
        """
        Upsert the snapshot for ``daily.date``: a later write on the same day
        overwrites the earlier one.
        """
        snapshot_date = date.fromisoformat(daily.date)

        existing = SnapshotService.get_snapshot(db, user_id, snapshot_date)
        if existing:
            snapshot = existing
        else:
            snapshot = WealthSnapshot(user_id=user_id, snapshot_date=snapshot_date)
            db.add(snapshot)

        snapshot.total = daily.total
        snapshot.breakdown = dict(daily.breakdown)

        try:
            db.commit()
        except IntegrityError:
            # Another request inserted the same day first; overwrite it instead
            db.rollback()
            snapshot = SnapshotService.get_snapshot(db, user_id, snapshot_date)
            if snapshot is None:
                raise
            snapshot.total = daily.total
            snapshot.breakdown = dict(daily.breakdown)
            db.commit()

        db.refresh(snapshot)
        logger.info(f"Saved snapshot for {user_id} on {snapshot_date}: total={daily.total:.2f}")
        return snapshot

    @staticmethod
    def save_series(db: Session, user_id: str, store: SnapshotStore, holding_ids: Iterable[str]) -> None:
        """
        Write the current hourly entry and the current price point of each
        holding, then delete rows that fell out of the store's retention.

        Call after ``save_snapshot`` for the same cycle.
        """
        if store.hourly:
            SnapshotService._upsert_hourly(db, user_id, store.hourly[-1])
            oldest = hour_bucket(store.hourly[0].timestamp)
            db.query(HourlyWealthSnapshot).filter(
                HourlyWealthSnapshot.user_id == user_id,
                HourlyWealthSnapshot.bucket < oldest
            ).delete(synchronize_session=False)

        for holding_id in holding_ids:
            series = store.assets.get(holding_id)
            if not series:
                continue
            SnapshotService._upsert_asset_point(db, user_id, holding_id, series[-1])
            oldest = hour_bucket(series[0].timestamp)
            db.query(AssetPriceSnapshot).filter(
                AssetPriceSnapshot.user_id == user_id,
                AssetPriceSnapshot.holding_id == holding_id,
                AssetPriceSnapshot.bucket < oldest
            ).delete(synchronize_session=False)

        if store.daily:
            oldest_day = date.fromisoformat(store.daily[0].date)
            db.query(WealthSnapshot).filter(
                WealthSnapshot.user_id == user_id,
                WealthSnapshot.snapshot_date < oldest_day
            ).delete(synchronize_session=False)

        db.commit()

    @staticmethod
    def _upsert_hourly(db: Session, user_id: str, entry: HourlySnapshot) -> None:
        bucket = hour_bucket(entry.timestamp)
        row = db.query(HourlyWealthSnapshot).filter(
            HourlyWealthSnapshot.user_id == user_id,
            HourlyWealthSnapshot.bucket == bucket
        ).first()
        if row is None:
            row = HourlyWealthSnapshot(user_id=user_id, bucket=bucket, recorded_at=entry.timestamp)
            db.add(row)
        row.open = entry.open
        row.high = entry.high
        row.low = entry.low
        row.close = entry.close

    @staticmethod
    def _upsert_asset_point(db: Session, user_id: str, holding_id: str, point: AssetPricePoint) -> None:
        bucket = hour_bucket(point.timestamp)
        row = db.query(AssetPriceSnapshot).filter(
            AssetPriceSnapshot.user_id == user_id,
            AssetPriceSnapshot.holding_id == holding_id,
            AssetPriceSnapshot.bucket == bucket
        ).first()
        if row is None:
            row = AssetPriceSnapshot(user_id=user_id, holding_id=holding_id, bucket=bucket)
            db.add(row)
        row.recorded_at = point.timestamp
        row.price = point.price
        row.value = point.value

    @staticmethod
    def load_store(db: Session, user_id: str, store: SnapshotStore) -> None:
        """Fill an empty store with the most recent persisted entries of a user."""
        daily_rows = db.query(WealthSnapshot).filter(
            WealthSnapshot.user_id == user_id
        ).order_by(WealthSnapshot.snapshot_date.desc()).limit(DAILY_LIMIT).all()

        hourly_rows = db.query(HourlyWealthSnapshot).filter(
            HourlyWealthSnapshot.user_id == user_id
        ).order_by(HourlyWealthSnapshot.bucket.desc()).limit(HOURLY_LIMIT).all()

        asset_rows = db.query(AssetPriceSnapshot).filter(
            AssetPriceSnapshot.user_id == user_id
        ).order_by(AssetPriceSnapshot.bucket).all()

        store.restore(
            daily=[
                DailySnapshot(date=r.snapshot_date.isoformat(), total=r.total, breakdown=dict(r.breakdown or {}))
                for r in reversed(daily_rows)
            ],
            hourly=[
                HourlySnapshot(timestamp=as_utc(r.recorded_at), open=r.open, high=r.high, low=r.low, close=r.close)
                for r in reversed(hourly_rows)
            ],
            assets=[
                (r.holding_id, AssetPricePoint(timestamp=as_utc(r.recorded_at), price=r.price, value=r.value))
                for r in asset_rows
            ],
        )
        logger.debug(
            f"Loaded snapshots for {user_id}: {len(daily_rows)} daily, {len(hourly_rows)} hourly, "
            f"{len(asset_rows)} asset points"
        )

    @staticmethod
    def get_snapshot(db: Session, user_id: str, snapshot_date: date) -> Optional[WealthSnapshot]:
        """Get snapshot for a specific date"""
        return db.query(WealthSnapshot).filter(
            WealthSnapshot.user_id == user_id,
            WealthSnapshot.snapshot_date == snapshot_date
        ).first()

    @staticmethod
    def get_history(
        db: Session,
        user_id: str,
        days: Optional[int] = None,
        today: Optional[date] = None
    ) -> List[WealthSnapshot]:
        """
        All snapshots for a user in date order, optionally only the last N days.

        ``today`` defaults to the UTC date, the same clock snapshots are dated with.
        """
        query = db.query(WealthSnapshot).filter(WealthSnapshot.user_id == user_id)
        if days is not None:
            today = today or utc_today()
            query = query.filter(WealthSnapshot.snapshot_date >= today - timedelta(days=days))
        return query.order_by(WealthSnapshot.snapshot_date).all()

    @staticmethod
    def get_previous_snapshot(
        db: Session,
        user_id: str,
        reference_date: Optional[date] = None
    ) -> Optional[WealthSnapshot]:
        """
        Get the most recent snapshot before the reference date (UTC today by default).

        Used for calculating "today's change".
        """
        if reference_date is None:
            reference_date = utc_today()

        return db.query(WealthSnapshot).filter(
            WealthSnapshot.user_id == user_id,
            WealthSnapshot.snapshot_date < reference_date
        ).order_by(WealthSnapshot.snapshot_date.desc()).first()

    @staticmethod
    def calculate_change_from_previous(
        db: Session,
        user_id: str,
        current_value: float,
        reference_date: Optional[date] = None
    ) -> Tuple[float, float]:
        """
        Calculate change in portfolio value from the previous snapshot.

        Returns:
            Tuple of (value_change, percent_change)
        """
        previous = SnapshotService.get_previous_snapshot(db, user_id, reference_date)

        if previous is None:
            return 0.0, 0.0

        value_change = current_value - previous.total
        percent_change = (value_change / previous.total) * 100 if previous.total > 0 else 0.0
        return value_change, percent_change

    @staticmethod
    def clear_all(db: Session, user_id: str) -> int:
        """Delete every snapshot row of a user. Returns the number of daily snapshots deleted."""
        count = db.query(WealthSnapshot).filter(WealthSnapshot.user_id == user_id).delete()
        hourly = db.query(HourlyWealthSnapshot).filter(HourlyWealthSnapshot.user_id == user_id).delete()
        points = db.query(AssetPriceSnapshot).filter(AssetPriceSnapshot.user_id == user_id).delete()
        db.commit()
        logger.info(f"Deleted {count} daily, {hourly} hourly and {points} asset snapshots for {user_id}")
        return count
