"""Tests for effective price resolution and portfolio totals."""

import pytest

from conftest import FakeHolding
from wealth_tracker.services.valuation import (
    Priced,
    Unpriced,
    effective_price,
    first_priced,
    holding_value,
    portfolio_totals,
    profit_loss,
    resolve_price,
)


def test_live_price_wins():
    h = FakeHolding(live_unit_price=120.0, manual_unit_price=110.0, purchase_unit_price=100.0)
    assert effective_price(h) == 120.0


def test_manual_price_when_no_live_price():
    h = FakeHolding(manual_unit_price=110.0, purchase_unit_price=100.0)
    assert effective_price(h) == 110.0


def test_purchase_price_is_last_resort():
    h = FakeHolding(purchase_unit_price=100.0)
    assert effective_price(h) == 100.0
    assert resolve_price(None, None, 100.0) == Priced(100.0, "purchase")


def test_resolution_reports_its_source():
    assert resolve_price(5.0, 4.0, 3.0).source == "live"
    assert resolve_price(None, 4.0, 3.0).source == "manual"


def test_first_priced_without_candidates_is_unpriced():
    assert isinstance(first_priced(Unpriced("live"), Unpriced("manual")), Unpriced)


def test_holding_value():
    h = FakeHolding(quantity=2.5, live_unit_price=40.0)
    assert holding_value(h) == 100.0


def test_portfolio_totals_by_category():
    holdings = [
        FakeHolding(id="a", category="crypto", quantity=1, live_unit_price=100.0),
        FakeHolding(id="b", category="crypto", quantity=2, purchase_unit_price=10.0),
        FakeHolding(id="c", category="gold", quantity=3, manual_unit_price=50.0),
    ]

    total, breakdown = portfolio_totals(holdings)

    assert total == 270.0
    assert breakdown == {"crypto": 120.0, "gold": 150.0}


def test_portfolio_totals_empty():
    assert portfolio_totals([]) == (0.0, {})


def test_profit_loss():
    value, pct = profit_loss(2, 100.0, 150.0)
    assert value == 100.0
    assert pct == pytest.approx(50.0)


def test_profit_loss_with_zero_cost():
    value, pct = profit_loss(3, 0.0, 10.0)
    assert value == 30.0
    assert pct == 0.0
