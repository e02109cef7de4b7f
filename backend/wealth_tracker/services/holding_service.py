"""
Holding Service

Holding CRUD, sells, and the price refresh cycle that ties the fetcher,
the snapshot store and the daily snapshot table together.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple
import logging

from sqlalchemy.orm import Session

from ..config import settings
from ..models.holding import DUST_THRESHOLD, Holding
from ..models.transaction import Transaction
from ..schemas.holding import HoldingCreate, HoldingUpdate
from ..schemas.price import PriceRequest
from .price_service import GOLD_KEY, METAL_KEY_PREFIX, PriceService
from .snapshot_service import SnapshotService
from .snapshot_store import SnapshotStoreRegistry
from .valuation import effective_price, portfolio_totals, profit_loss

logger = logging.getLogger(__name__)


@dataclass
class RefreshResult:
    prices: Dict[str, float]
    changes: Dict[str, float]
    errors: Dict[str, str]
    updated_holdings: int
    total: float
    breakdown: Dict[str, float]


def build_price_request(holdings: Iterable[Holding]) -> PriceRequest:
    """Partition provider ids of priced holdings by provider category."""
    crypto, forex, stocks, metals = [], [], [], []
    has_gold = False

    for h in holdings:
        if not h.provider_id:
            continue
        if h.category == 'crypto':
            crypto.append(h.provider_id)
        elif h.category == 'forex':
            forex.append(h.provider_id)
        elif h.category == 'stock':
            stocks.append(h.provider_id)
        elif h.category == 'precious_metals':
            metals.append(h.provider_id.replace(METAL_KEY_PREFIX, '', 1))
        elif h.category == 'gold' and h.provider_id == GOLD_KEY:
            has_gold = True

    return PriceRequest(
        crypto_ids=list(dict.fromkeys(crypto)),
        forex_currencies=list(dict.fromkeys(forex)),
        stock_symbols=list(dict.fromkeys(stocks)),
        metal_ids=list(dict.fromkeys(metals)),
        has_gold=has_gold,
    )


def apply_prices(holdings: Iterable[Holding], price_map: Dict[str, float]) -> int:
    """
    Set live prices from a fetch. Holdings whose id is missing from the map
    keep their previous live price.

    Returns:
        Number of holdings updated
    """
    updated = 0
    for h in holdings:
        if h.provider_id and h.provider_id in price_map:
            h.live_unit_price = price_map[h.provider_id]
            updated += 1
    return updated


def describe(holding: Holding) -> dict:
    """Holding fields plus its current valuation."""
    price = effective_price(holding)
    pl_value, pl_pct = profit_loss(holding.quantity, holding.purchase_unit_price, price)
    return {
        "id": holding.id,
        "name": holding.name,
        "category": holding.category,
        "provider_id": holding.provider_id,
        "quantity": holding.quantity,
        "purchase_unit_price": holding.purchase_unit_price,
        "purchase_currency": holding.purchase_currency,
        "live_unit_price": holding.live_unit_price,
        "manual_unit_price": holding.manual_unit_price,
        "created_at": holding.created_at,
        "updated_at": holding.updated_at,
        "effective_price": price,
        "current_value": holding.quantity * price,
        "profit_loss": pl_value,
        "profit_loss_pct": pl_pct,
    }


class HoldingService:
    """Service for holdings of one user"""

    @staticmethod
    def list_holdings(db: Session, user_id: str) -> List[Holding]:
        return db.query(Holding).filter(
            Holding.user_id == user_id
        ).order_by(Holding.created_at, Holding.name).all()

    @staticmethod
    def get_holding(db: Session, user_id: str, holding_id: str) -> Optional[Holding]:
        return db.query(Holding).filter(
            Holding.id == holding_id,
            Holding.user_id == user_id
        ).first()

    @staticmethod
    def create_holding(db: Session, user_id: str, data: HoldingCreate) -> Holding:
        values = data.model_dump()
        values["purchase_currency"] = values.get("purchase_currency") or settings.base_currency
        holding = Holding(user_id=user_id, **values)
        db.add(holding)
        db.commit()
        db.refresh(holding)
        logger.info(f"Created holding {holding.id} ({holding.category}:{holding.provider_id}) for {user_id}")
        return holding

    @staticmethod
    def update_holding(db: Session, holding: Holding, data: HoldingUpdate) -> Holding:
        # Update only provided fields
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(holding, field, value)
        holding.updated_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(holding)
        return holding

    @staticmethod
    def delete_holding(db: Session, holding: Holding) -> None:
        db.delete(holding)
        db.commit()
        logger.info(f"Deleted holding {holding.id}")

    @staticmethod
    def delete_all(db: Session, user_id: str) -> int:
        count = db.query(Holding).filter(Holding.user_id == user_id).delete()
        db.commit()
        logger.info(f"Deleted {count} holdings for {user_id}")
        return count

    @staticmethod
    def sell_holding(
        db: Session,
        holding: Holding,
        quantity: float,
        unit_price: float
    ) -> Tuple[Optional[Holding], Transaction]:
        """
        Sell part or all of a holding and log the sale.

        The sold amount is clamped to the held quantity. When the remainder
        is at or below the dust threshold the holding is deleted.

        Returns:
            Tuple of (remaining holding or None if closed, transaction)
        """
        sold = min(quantity, holding.quantity)
        if sold <= 0:
            raise ValueError("Sell quantity must be positive")

        transaction = Transaction(
            user_id=holding.user_id,
            holding_id=holding.id,
            holding_name=holding.name,
            category=holding.category,
            transaction_type="sell",
            quantity=sold,
            unit_price=unit_price,
            total_value=sold * unit_price,
        )
        db.add(transaction)

        remaining = holding.quantity - sold
        if remaining <= DUST_THRESHOLD:
            db.delete(holding)
            result = None
            logger.info(f"Sold {sold} of {holding.id}, position closed")
        else:
            holding.quantity = remaining
            holding.updated_at = datetime.now(timezone.utc)
            result = holding
            logger.info(f"Sold {sold} of {holding.id}, {remaining} remaining")

        db.commit()
        db.refresh(transaction)
        if result is not None:
            db.refresh(result)
        return result, transaction

    @staticmethod
    async def refresh_prices(
        db: Session,
        user_id: str,
        price_service: PriceService,
        stores: SnapshotStoreRegistry,
    ) -> RefreshResult:
        """
        One refresh cycle: fetch every price, then apply them to the holdings
        in one pass, persist, and record snapshots.
        """
        holdings = HoldingService.list_holdings(db, user_id)
        if not holdings:
            return RefreshResult(prices={}, changes={}, errors={}, updated_holdings=0, total=0.0, breakdown={})

        report = await price_service.fetch_report(build_price_request(holdings))

        # Applied only after every outstanding fetch has settled
        updated = apply_prices(holdings, report.prices)
        db.commit()

        store = stores.get(user_id, db)
        daily = store.record_snapshot(holdings)
        SnapshotService.save_snapshot(db, user_id, daily)
        SnapshotService.save_series(db, user_id, store, [h.id for h in holdings])

        total, breakdown = portfolio_totals(holdings)
        return RefreshResult(
            prices=report.prices,
            changes=report.changes,
            errors=report.errors,
            updated_holdings=updated,
            total=total,
            breakdown=breakdown,
        )
