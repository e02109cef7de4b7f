"""
Valuation helpers.

Effective price is an ordered lookup over optional price sources. The last
source (purchase price) is always present, so resolution can never end
unpriced.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Protocol, Tuple, Union


@dataclass(frozen=True)
class Priced:
    price: float
    source: str


@dataclass(frozen=True)
class Unpriced:
    source: str


PriceLookup = Union[Priced, Unpriced]


class Valuable(Protocol):
    category: str
    quantity: float
    purchase_unit_price: float
    live_unit_price: Optional[float]
    manual_unit_price: Optional[float]


def lookup(source: str, value: Optional[float]) -> PriceLookup:
    if value is None:
        return Unpriced(source)
    return Priced(float(value), source)


def first_priced(*candidates: PriceLookup) -> PriceLookup:
    """Return the first ``Priced`` candidate, or the last ``Unpriced`` one."""
    result: PriceLookup = Unpriced("none")
    for candidate in candidates:
        if isinstance(candidate, Priced):
            return candidate
        result = candidate
    return result


def resolve_price(live: Optional[float], manual: Optional[float], purchase: float) -> Priced:
    resolved = first_priced(lookup("live", live), lookup("manual", manual))
    if isinstance(resolved, Priced):
        return resolved
    return Priced(float(purchase), "purchase")


def effective_price(holding: Valuable) -> float:
    return resolve_price(
        holding.live_unit_price,
        holding.manual_unit_price,
        holding.purchase_unit_price,
    ).price


def holding_value(holding: Valuable) -> float:
    return holding.quantity * effective_price(holding)


def portfolio_totals(holdings: Iterable[Valuable]) -> Tuple[float, Dict[str, float]]:
    """Total value and per-category breakdown at current effective prices."""
    total = 0.0
    breakdown: Dict[str, float] = {}
    for holding in holdings:
        value = holding_value(holding)
        total += value
        breakdown[holding.category] = breakdown.get(holding.category, 0.0) + value
    return total, breakdown


def profit_loss(quantity: float, purchase_price: float, current_price: float) -> Tuple[float, float]:
    """
    Absolute and percentage gain of a position.

    Returns:
        Tuple of (value, percentage); percentage is 0 when the cost is 0
    """
    total_cost = quantity * purchase_price
    current_value = quantity * current_price
    value = current_value - total_cost
    percentage = (value / total_cost) * 100 if total_cost > 0 else 0.0
    return value, percentage
