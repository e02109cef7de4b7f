from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from datetime import datetime


class PriceRequest(BaseModel):
    """Provider ids to price, partitioned by category."""
    crypto_ids: List[str] = Field(default_factory=list)
    forex_currencies: List[str] = Field(default_factory=list)
    stock_symbols: List[str] = Field(default_factory=list)
    metal_ids: List[str] = Field(default_factory=list)
    has_gold: bool = False

    def is_empty(self) -> bool:
        return not (self.crypto_ids or self.forex_currencies or self.stock_symbols
                    or self.metal_ids or self.has_gold)


class PriceMapResponse(BaseModel):
    prices: Dict[str, float]
    currency: str
    changes: Dict[str, float] = Field(default_factory=dict, description="24h change in percent, where reported")
    errors: Dict[str, str] = Field(default_factory=dict)
    last_updated: datetime


class RefreshResponse(BaseModel):
    prices: Dict[str, float]
    currency: str
    changes: Dict[str, float] = Field(default_factory=dict)
    updated_holdings: int
    total: float
    breakdown: Dict[str, float]
    errors: Dict[str, str] = Field(default_factory=dict)
    last_updated: datetime


class CacheEntryResponse(BaseModel):
    key: str
    value: float
    change_pct: Optional[float] = None
    age_seconds: float
    fresh: bool


class HistoricalAsset(BaseModel):
    provider_id: Optional[str] = None
    category: str
    quantity: float = Field(..., gt=0)


class HistoricalRequest(BaseModel):
    assets: List[HistoricalAsset] = Field(default_factory=list)
    period: str = "1y"


class SeriesPoint(BaseModel):
    date: str
    value: float


class HistoricalResponse(BaseModel):
    points: List[SeriesPoint]
    currency: str


class StockSearchResult(BaseModel):
    symbol: str
    name: str
    market: str
    exchange: str = ""
    yahoo_symbol: str
