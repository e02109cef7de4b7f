"""Shared test fixtures for the wealth tracker API."""

import os

# Settings are read at import time; keep tests off disk and off the network
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("REFRESH_ON_STARTUP", "false")
os.environ.setdefault("BASE_CURRENCY", "TRY")

from datetime import datetime, timedelta, timezone
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from wealth_tracker import models  # noqa: F401
from wealth_tracker.database import Base, get_db
from wealth_tracker.dependencies import get_price_service, get_snapshot_stores
from wealth_tracker.main import app
from wealth_tracker.services.market_data import CoinGeckoClient, MetalPriceClient, YahooFinanceClient
from wealth_tracker.services.currency_service import CurrencyService
from wealth_tracker.services.price_cache import PriceCache
from wealth_tracker.services.price_service import PriceService
from wealth_tracker.services.snapshot_store import SnapshotStoreRegistry


class FakeClock:
    """Settable clock returning either epoch milliseconds or datetimes."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 3, 1, 10, 15, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def ms(self) -> float:
        return self.now.timestamp() * 1000

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeHolding:
    """Plain object with the attributes valuation and snapshots read."""

    def __init__(self, id="h1", category="crypto", quantity=1.0, purchase_unit_price=100.0,
                 live_unit_price=None, manual_unit_price=None, provider_id=None, name="Test"):
        self.id = id
        self.name = name
        self.category = category
        self.provider_id = provider_id
        self.quantity = quantity
        self.purchase_unit_price = purchase_unit_price
        self.live_unit_price = live_unit_price
        self.manual_unit_price = manual_unit_price


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def providers():
    """Provider clients with every network method mocked out."""
    yahoo = MagicMock(spec=YahooFinanceClient)
    yahoo.quote = AsyncMock()
    yahoo.daily_closes = AsyncMock()
    yahoo.search = AsyncMock(return_value=[])

    coingecko = MagicMock(spec=CoinGeckoClient)
    coingecko.simple_price = AsyncMock(return_value={})
    coingecko.market_chart = AsyncMock()

    currency = MagicMock(spec=CurrencyService)
    currency.get_rates_to_base = AsyncMock(return_value={})
    currency.get_exchange_rate = AsyncMock()

    metals = MagicMock(spec=MetalPriceClient)
    metals.gold_ounce_price = AsyncMock()

    return {"yahoo": yahoo, "coingecko": coingecko, "currency": currency, "metals": metals}


@pytest.fixture
def price_service(providers, clock) -> PriceService:
    return PriceService(
        yahoo=providers["yahoo"],
        coingecko=providers["coingecko"],
        currency=providers["currency"],
        metals=providers["metals"],
        cache=PriceCache(ttl_seconds=25, clock=clock.ms),
        base_currency="TRY",
        listing=None,
    )


@pytest.fixture
def db_session():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def stores(clock) -> SnapshotStoreRegistry:
    return SnapshotStoreRegistry(clock=clock)


@pytest.fixture
def client(db_session, price_service, stores):
    """TestClient with the database, price service and snapshot stores overridden."""

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_price_service] = lambda: price_service
    app.dependency_overrides[get_snapshot_stores] = lambda: stores
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
