from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List
from datetime import datetime
from ..config import settings
from ..database import get_db
from ..dependencies import get_price_service, get_snapshot_stores, get_user_id
from ..schemas.price import CacheEntryResponse, PriceMapResponse, PriceRequest, RefreshResponse
from ..services.holding_service import HoldingService
from ..services.price_cache import system_clock_ms
from ..services.price_service import PriceService
from ..services.snapshot_store import SnapshotStoreRegistry
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/prices", tags=["prices"])


@router.post("/refresh", response_model=RefreshResponse)
async def refresh_prices(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_user_id),
    price_service: PriceService = Depends(get_price_service),
    stores: SnapshotStoreRegistry = Depends(get_snapshot_stores)
):
    """
    Run one refresh cycle for the user's holdings.

    Fetches live prices, applies them to holdings, then records the daily,
    hourly and per-holding snapshots. Providers that fail are reported in
    ``errors``; their holdings keep the previous price.
    """
    try:
        result = await HoldingService.refresh_prices(db, user_id, price_service, stores)
    except Exception as e:
        db.rollback()
        logger.error(f"Refresh failed for {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Price refresh failed, please retry")

    return RefreshResponse(
        prices=result.prices,
        currency=settings.base_currency,
        changes=result.changes,
        updated_holdings=result.updated_holdings,
        total=result.total,
        breakdown=result.breakdown,
        errors=result.errors,
        last_updated=datetime.now(),
    )


@router.post("/quote", response_model=PriceMapResponse)
async def get_quotes(
    request: PriceRequest,
    price_service: PriceService = Depends(get_price_service)
):
    """Price arbitrary provider ids without touching any holding"""
    report = await price_service.fetch_report(request)
    return PriceMapResponse(
        prices=report.prices,
        currency=settings.base_currency,
        changes=report.changes,
        errors=report.errors,
        last_updated=datetime.now(),
    )


@router.get("/cache", response_model=List[CacheEntryResponse])
def get_cache(price_service: PriceService = Depends(get_price_service)):
    """Inspect the in-process price cache"""
    cache = price_service.cache
    now_ms = system_clock_ms()
    return [
        CacheEntryResponse(
            key=key,
            value=entry.data.price,
            change_pct=entry.data.change_pct,
            age_seconds=max(0.0, (now_ms - entry.fetched_at_epoch_ms) / 1000),
            fresh=cache.is_fresh(key),
        )
        for key, entry in sorted(cache.entries().items())
    ]


@router.delete("/cache")
def clear_cache(price_service: PriceService = Depends(get_price_service)):
    """Force the next refresh to hit every provider"""
    price_service.cache.clear()
    return {"message": "Price cache cleared"}
