from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional, Literal
from datetime import datetime


Category = Literal[
    "crypto", "gold", "precious_metals", "forex",
    "stock", "real_estate", "savings", "other",
]


class HoldingBase(BaseModel):
    name: str = Field(..., max_length=200)
    category: Category
    provider_id: Optional[str] = Field(None, max_length=50, description="bitcoin, USD, BIST:THYAO, metal_silver, gold_gram")
    quantity: float = Field(..., gt=0)
    purchase_unit_price: float = Field(..., ge=0)
    purchase_currency: Optional[str] = Field(None, max_length=3, description="Defaults to the base currency")
    manual_unit_price: Optional[float] = Field(None, ge=0)


class HoldingCreate(HoldingBase):
    pass


class HoldingUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=200)
    provider_id: Optional[str] = Field(None, max_length=50)
    quantity: Optional[float] = Field(None, gt=0)
    purchase_unit_price: Optional[float] = Field(None, ge=0)
    purchase_currency: Optional[str] = Field(None, max_length=3)
    manual_unit_price: Optional[float] = Field(None, ge=0)

    @field_validator("name", "quantity", "purchase_unit_price", "purchase_currency")
    @classmethod
    def reject_null(cls, value):
        # These columns are NOT NULL: omit the field to leave it unchanged
        if value is None:
            raise ValueError("cannot be null")
        return value


class HoldingResponse(HoldingBase):
    id: str
    purchase_currency: str
    live_unit_price: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class HoldingWithValue(HoldingResponse):
    effective_price: float
    current_value: float
    profit_loss: float
    profit_loss_pct: float


class SellRequest(BaseModel):
    quantity: float = Field(..., gt=0)
    unit_price: float = Field(..., ge=0)


class TransactionResponse(BaseModel):
    id: str
    holding_id: str
    holding_name: str
    category: str
    transaction_type: str
    quantity: float
    unit_price: float
    total_value: float
    executed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SellResponse(BaseModel):
    holding: Optional[HoldingResponse] = None
    transaction: TransactionResponse
    closed: bool
