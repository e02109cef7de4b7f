from .holding import Holding
from .transaction import Transaction
from .snapshot import WealthSnapshot, HourlyWealthSnapshot, AssetPriceSnapshot

__all__ = ["Holding", "Transaction", "WealthSnapshot", "HourlyWealthSnapshot", "AssetPriceSnapshot"]
