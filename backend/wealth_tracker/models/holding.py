import uuid

from sqlalchemy import Column, String, Float, DateTime
from sqlalchemy.sql import func
from ..database import Base


# Asset categories tracked by the app
CATEGORIES = {
    "crypto": "Crypto",
    "gold": "Gold",
    "precious_metals": "Precious Metals",
    "forex": "Forex",
    "stock": "Stock",
    "real_estate": "Real Estate",
    "savings": "Savings",
    "other": "Other",
}

# Selling down to this many units or fewer closes the position
DUST_THRESHOLD = 0.0001


def new_id() -> str:
    return str(uuid.uuid4())


class Holding(Base):
    __tablename__ = "holdings"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    category = Column(String(20), nullable=False, index=True)
    provider_id = Column(String(50), nullable=True)  # bitcoin, USD, BIST:THYAO, metal_silver, gold_gram
    quantity = Column(Float, nullable=False)
    purchase_unit_price = Column(Float, nullable=False)
    purchase_currency = Column(String(3), nullable=False)
    live_unit_price = Column(Float, nullable=True)
    manual_unit_price = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
