from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Optional
from datetime import date, datetime


class WealthSnapshotResponse(BaseModel):
    snapshot_date: date
    total: float
    breakdown: Dict[str, float] = Field(default_factory=dict)

    model_config = ConfigDict(from_attributes=True)


class DailyHistoryResponse(BaseModel):
    """Daily totals plus the change since the last snapshot before today"""
    snapshots: List[WealthSnapshotResponse]
    current_value: float
    day_change: float
    day_change_pct: float


class HourlySnapshotResponse(BaseModel):
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    total: float

    model_config = ConfigDict(from_attributes=True)


class AssetPricePointResponse(BaseModel):
    timestamp: datetime
    price: float
    value: float

    model_config = ConfigDict(from_attributes=True)


class PriceAtResponse(BaseModel):
    holding_id: str
    at: datetime
    price: Optional[float] = None


class PeriodChangeResponse(BaseModel):
    period: str
    start_value: Optional[float] = None
    current_value: float
    change: float
    change_pct: float

    model_config = ConfigDict(from_attributes=True)


class ResetResponse(BaseModel):
    status: str
    snapshots_deleted: int
    holdings_deleted: int = 0
