from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from .config import settings
from .database import init_db, SessionLocal
from .dependencies import get_price_service, get_snapshot_stores
from .routers import holdings, prices, history, snapshots, news
from .services.holding_service import HoldingService
from .models.holding import Holding
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
import asyncio
import logging

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


@dataclass
class AppState:
    """Progress of the startup refresh, reported by /api/v1/status."""
    is_loading: bool = True
    loading_message: str = "Starting up..."
    loading_started_at: Optional[datetime] = None
    loading_completed_at: Optional[datetime] = None
    users_count: int = 0
    holdings_count: int = 0
    prices_loaded: int = 0
    error: Optional[str] = None
    refresh_task: Optional[asyncio.Task] = None

    def begin(self, message: str) -> None:
        self.is_loading = True
        self.loading_started_at = datetime.now()
        self.loading_message = message

    def finish(self, message: str = "Ready", error: Optional[str] = None) -> None:
        self.is_loading = False
        self.loading_completed_at = datetime.now()
        self.loading_message = message
        if error:
            self.error = error

    def to_dict(self) -> dict:
        return {
            "is_loading": self.is_loading,
            "loading_message": self.loading_message,
            "users_count": self.users_count,
            "holdings_count": self.holdings_count,
            "prices_loaded": self.prices_loaded,
            "loading_started_at": self.loading_started_at.isoformat() if self.loading_started_at else None,
            "loading_completed_at": self.loading_completed_at.isoformat() if self.loading_completed_at else None,
            "error": self.error,
            "ready": not self.is_loading and self.error is None,
        }


app_state = AppState()

app = FastAPI(
    title="Wealth Tracker API",
    description="Live prices, valuation and history for crypto, gold, metals, forex and stock holdings",
    version="1.0.0",
    debug=settings.debug
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for module in (holdings, prices, history, snapshots, news):
    app.include_router(module.router, prefix="/api/v1")


async def refresh_all_portfolios():
    """Background task: one refresh cycle per user that owns holdings."""
    db = SessionLocal()
    try:
        user_ids = [row[0] for row in db.query(Holding.user_id).distinct()]
        app_state.users_count = len(user_ids)
        app_state.holdings_count = db.query(Holding).count()

        if not user_ids:
            logger.info("No holdings yet, nothing to refresh at startup")
            app_state.finish()
            return

        app_state.loading_message = f"Fetching prices for {len(user_ids)} portfolios..."
        price_service = get_price_service()
        stores = get_snapshot_stores()

        failures = []
        for user_id in user_ids:
            try:
                result = await HoldingService.refresh_prices(db, user_id, price_service, stores)
            except Exception as e:
                db.rollback()
                logger.warning(f"Startup refresh failed for {user_id}: {e}")
                failures.append(str(e))
                continue
            app_state.prices_loaded += result.updated_holdings

        logger.info(f"Startup refresh priced {app_state.prices_loaded}/{app_state.holdings_count} holdings")
        app_state.finish(error=failures[0] if failures else None)

    except Exception as e:
        logger.error(f"Startup refresh aborted: {e}")
        app_state.finish("Error during initialization", error=str(e))
    finally:
        db.close()


@app.on_event("startup")
async def startup_event():
    logger.info("Initializing database...")
    init_db()

    if settings.refresh_on_startup:
        app_state.begin("Initializing...")
        # Requests are served while the first prices load
        app_state.refresh_task = asyncio.create_task(refresh_all_portfolios())
    else:
        app_state.finish()


@app.get("/")
async def root():
    return {
        "message": "Wealth Tracker API",
        "version": "1.0.0",
        "docs": "/docs"
    }


@app.get("/api/v1/health")
async def health_check():
    """Health check, plus the settings clients need for polling"""
    return {
        "status": "healthy",
        "database": "connected",
        "base_currency": settings.base_currency,
        "refresh_interval_seconds": settings.refresh_interval_seconds,
    }


@app.get("/api/v1/status")
async def app_status():
    """Startup refresh progress"""
    return app_state.to_dict()
