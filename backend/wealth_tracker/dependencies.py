"""
Request dependencies.

Long-lived services are created once per process; tests replace them with
``app.dependency_overrides``.
"""
from functools import lru_cache

from fastapi import Header

from .config import settings
from .services.history_service import HistoricalAggregator
from .services.market_data import ListingRules, YahooFinanceClient
from .services.news_service import NewsService
from .services.price_service import PriceService
from .services.snapshot_store import SnapshotStoreRegistry


def get_user_id(x_user_id: str = Header(default="local", max_length=64)) -> str:
    """Owner of the request. Authentication happens upstream."""
    return x_user_id


@lru_cache
def get_price_service() -> PriceService:
    return PriceService()


@lru_cache
def get_history_aggregator() -> HistoricalAggregator:
    return HistoricalAggregator()


@lru_cache
def get_snapshot_stores() -> SnapshotStoreRegistry:
    return SnapshotStoreRegistry()


@lru_cache
def get_news_service() -> NewsService:
    return NewsService()


@lru_cache
def get_yahoo_client() -> YahooFinanceClient:
    return YahooFinanceClient()


def get_listing_rules() -> ListingRules:
    return ListingRules.from_settings(settings)
