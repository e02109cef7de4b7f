from sqlalchemy import Column, String, Float, DateTime
from sqlalchemy.sql import func
from ..database import Base
from .holding import new_id


class Transaction(Base):
    """Sell log. Rows outlive the holding they refer to."""
    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), nullable=False, index=True)
    holding_id = Column(String(36), nullable=False, index=True)
    holding_name = Column(String(200), nullable=False)
    category = Column(String(20), nullable=False)
    transaction_type = Column(String(10), nullable=False, default="sell")
    quantity = Column(Float, nullable=False)
    unit_price = Column(Float, nullable=False)
    total_value = Column(Float, nullable=False)
    executed_at = Column(DateTime(timezone=True), server_default=func.now())
