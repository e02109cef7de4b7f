"""
Wealth Snapshots Router

Daily totals from the database, plus the hourly and per-holding series kept
by the snapshot store.
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from datetime import datetime, timedelta, timezone
from typing import List, Optional
import logging

from ..database import get_db
from ..dependencies import get_snapshot_stores, get_user_id
from ..schemas.snapshot import (
    AssetPricePointResponse,
    DailyHistoryResponse,
    HourlySnapshotResponse,
    PeriodChangeResponse,
    PriceAtResponse,
    ResetResponse,
    WealthSnapshotResponse,
)
from ..services.holding_service import HoldingService
from ..services.snapshot_service import SnapshotService
from ..services.snapshot_store import PERIODS, SnapshotStoreRegistry, utc_now
from ..services.valuation import portfolio_totals

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/snapshots", tags=["snapshots"])


def as_utc(ts: datetime) -> datetime:
    # Naive query timestamps are taken as UTC
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


@router.get("/daily", response_model=DailyHistoryResponse)
def get_daily_history(
    days: Optional[int] = Query(default=None, ge=1, le=3650, description="Only the last N days"),
    db: Session = Depends(get_db),
    user_id: str = Depends(get_user_id),
    stores: SnapshotStoreRegistry = Depends(get_snapshot_stores)
):
    """
    Get daily portfolio totals.

    Returns:
    - One snapshot per calendar day, oldest first
    - Current value and the change from the previous day's snapshot
    """
    today = stores.today()
    snapshots = SnapshotService.get_history(db, user_id, days, today=today)
    current_value, _ = portfolio_totals(HoldingService.list_holdings(db, user_id))
    day_change, day_change_pct = SnapshotService.calculate_change_from_previous(
        db, user_id, current_value, reference_date=today
    )

    return DailyHistoryResponse(
        snapshots=[WealthSnapshotResponse.model_validate(s) for s in snapshots],
        current_value=current_value,
        day_change=day_change,
        day_change_pct=day_change_pct,
    )


@router.get("/hourly", response_model=List[HourlySnapshotResponse])
def get_hourly_history(
    hours: Optional[int] = Query(default=None, ge=1, le=720, description="Only the last N hours"),
    db: Session = Depends(get_db),
    user_id: str = Depends(get_user_id),
    stores: SnapshotStoreRegistry = Depends(get_snapshot_stores)
):
    """Hourly OHLC of the portfolio total"""
    cutoff = utc_now() - timedelta(hours=hours) if hours else None
    # total is a property, so build the responses from attributes
    return [HourlySnapshotResponse.model_validate(h) for h in stores.get(user_id, db).hourly_since(cutoff)]


@router.get("/assets/{holding_id}", response_model=List[AssetPricePointResponse])
def get_asset_history(
    holding_id: str,
    hours: Optional[int] = Query(default=None, ge=1, le=720),
    db: Session = Depends(get_db),
    user_id: str = Depends(get_user_id),
    stores: SnapshotStoreRegistry = Depends(get_snapshot_stores)
):
    """Recorded prices of one holding, at most one per hour"""
    since = utc_now() - timedelta(hours=hours) if hours else None
    return stores.get(user_id, db).asset_history(holding_id, since)


@router.get("/assets/{holding_id}/price-at", response_model=PriceAtResponse)
def get_asset_price_at(
    holding_id: str,
    at: datetime = Query(..., description="ISO timestamp; naive values are UTC"),
    db: Session = Depends(get_db),
    user_id: str = Depends(get_user_id),
    stores: SnapshotStoreRegistry = Depends(get_snapshot_stores)
):
    """Last recorded price of a holding at or before ``at`` (null if none)"""
    target = as_utc(at)
    price = stores.get(user_id, db).price_at_or_before(holding_id, target)
    return PriceAtResponse(holding_id=holding_id, at=target, price=price)


@router.get("/change", response_model=PeriodChangeResponse)
def get_period_change(
    period: str = Query(default="1w", description="One of 4h, 1w, 1m, 1y, all"),
    db: Session = Depends(get_db),
    user_id: str = Depends(get_user_id),
    stores: SnapshotStoreRegistry = Depends(get_snapshot_stores)
):
    """Change of the current portfolio total over a period"""
    if period not in PERIODS:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown period '{period}', expected one of {', '.join(PERIODS)}"
        )

    current_value, _ = portfolio_totals(HoldingService.list_holdings(db, user_id))
    return stores.get(user_id, db).change_since(period, current_value)


@router.delete("/reset", response_model=ResetResponse)
def reset_snapshots(
    include_holdings: bool = Query(default=False, description="Also delete every holding"),
    db: Session = Depends(get_db),
    user_id: str = Depends(get_user_id),
    stores: SnapshotStoreRegistry = Depends(get_snapshot_stores)
):
    """
    Delete all snapshot history of the user.

    WARNING: This is a destructive operation and cannot be undone. With
    ``include_holdings`` the whole portfolio is wiped as well.
    """
    try:
        holdings_deleted = HoldingService.delete_all(db, user_id) if include_holdings else 0
        snapshots_deleted = SnapshotService.clear_all(db, user_id)
        stores.reset(user_id)
    except Exception as e:
        db.rollback()
        logger.error(f"Error resetting snapshots for {user_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return ResetResponse(
        status="success",
        snapshots_deleted=snapshots_deleted,
        holdings_deleted=holdings_deleted,
    )
