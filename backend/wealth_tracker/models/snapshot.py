from sqlalchemy import Column, Integer, String, Float, Date, DateTime, JSON, UniqueConstraint
from sqlalchemy.sql import func
from ..database import Base


class WealthSnapshot(Base):
    """One calendar day's portfolio total for a user."""
    __tablename__ = "wealth_snapshots"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    snapshot_date = Column(Date, nullable=False)
    total = Column(Float, nullable=False)
    breakdown = Column(JSON, nullable=False, default=dict)  # category -> subtotal
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('user_id', 'snapshot_date', name='uix_user_snapshot_date'),
    )


class HourlyWealthSnapshot(Base):
    """OHLC of the portfolio total within one UTC hour."""
    __tablename__ = "hourly_wealth_snapshots"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    bucket = Column(DateTime(timezone=True), nullable=False)  # start of the hour
    recorded_at = Column(DateTime(timezone=True), nullable=False)  # first write in the hour
    open = Column(Float, nullable=False)
    high = Column(Float, nullable=False)
    low = Column(Float, nullable=False)
    close = Column(Float, nullable=False)

    __table_args__ = (
        UniqueConstraint('user_id', 'bucket', name='uix_user_hour'),
    )


class AssetPriceSnapshot(Base):
    """Last effective price of a holding within one UTC hour."""
    __tablename__ = "asset_price_points"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    holding_id = Column(String(36), nullable=False, index=True)
    bucket = Column(DateTime(timezone=True), nullable=False)
    recorded_at = Column(DateTime(timezone=True), nullable=False)
    price = Column(Float, nullable=False)
    value = Column(Float, nullable=False)

    __table_args__ = (
        UniqueConstraint('user_id', 'holding_id', 'bucket', name='uix_user_holding_hour'),
    )
