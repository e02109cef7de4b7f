"""Tests for holding CRUD, sells and the refresh cycle."""

from datetime import date

import pytest

from conftest import FakeHolding
from wealth_tracker.models import Holding, Transaction, WealthSnapshot
from wealth_tracker.schemas.holding import HoldingCreate, HoldingUpdate
from wealth_tracker.services.holding_service import (
    HoldingService,
    apply_prices,
    build_price_request,
    describe,
)
from wealth_tracker.services.market_data import Quote
from wealth_tracker.services.results import ProviderError
from wealth_tracker.services.snapshot_service import SnapshotService
from wealth_tracker.services.snapshot_store import DailySnapshot


def _create(db, user_id="local", **overrides) -> Holding:
    data = {
        "name": "Bitcoin",
        "category": "crypto",
        "provider_id": "bitcoin",
        "quantity": 1.0,
        "purchase_unit_price": 100.0,
    }
    data.update(overrides)
    return HoldingService.create_holding(db, user_id, HoldingCreate(**data))


def test_build_price_request_partitions_and_dedups():
    holdings = [
        FakeHolding(category="crypto", provider_id="bitcoin"),
        FakeHolding(category="crypto", provider_id="bitcoin"),
        FakeHolding(category="forex", provider_id="USD"),
        FakeHolding(category="stock", provider_id="BIST:THYAO"),
        FakeHolding(category="precious_metals", provider_id="metal_silver"),
        FakeHolding(category="gold", provider_id="gold_gram"),
        FakeHolding(category="real_estate", provider_id=None),
    ]

    request = build_price_request(holdings)

    assert request.crypto_ids == ["bitcoin"]
    assert request.forex_currencies == ["USD"]
    assert request.stock_symbols == ["BIST:THYAO"]
    assert request.metal_ids == ["silver"]
    assert request.has_gold is True


def test_gold_without_gram_id_is_not_priced():
    request = build_price_request([FakeHolding(category="gold", provider_id="gold_coin")])

    assert request.has_gold is False
    assert request.is_empty()


def test_apply_prices_keeps_previous_when_missing():
    priced = FakeHolding(provider_id="bitcoin", live_unit_price=1.0)
    missing = FakeHolding(provider_id="ethereum", live_unit_price=2.0)
    manual = FakeHolding(provider_id=None, manual_unit_price=3.0)

    updated = apply_prices([priced, missing, manual], {"bitcoin": 10.0})

    assert updated == 1
    assert priced.live_unit_price == 10.0
    assert missing.live_unit_price == 2.0
    assert manual.live_unit_price is None


def test_create_defaults_purchase_currency(db_session):
    holding = _create(db_session)

    assert holding.id
    assert holding.purchase_currency == "TRY"
    assert HoldingService.list_holdings(db_session, "local") == [holding]
    assert HoldingService.list_holdings(db_session, "someone-else") == []


def test_update_only_changes_provided_fields(db_session):
    holding = _create(db_session)

    HoldingService.update_holding(db_session, holding, HoldingUpdate(manual_unit_price=150.0))

    assert holding.manual_unit_price == 150.0
    assert holding.quantity == 1.0
    assert describe(holding)["effective_price"] == 150.0


def test_partial_sell_logs_transaction(db_session):
    holding = _create(db_session, quantity=2.0)

    remaining, transaction = HoldingService.sell_holding(db_session, holding, 0.5, 120.0)

    assert remaining is not None
    assert remaining.quantity == 1.5
    assert transaction.quantity == 0.5
    assert transaction.total_value == 60.0
    assert transaction.holding_name == "Bitcoin"


def test_oversell_closes_position(db_session):
    holding = _create(db_session, quantity=1.0)

    remaining, transaction = HoldingService.sell_holding(db_session, holding, 5.0, 100.0)

    assert remaining is None
    assert transaction.quantity == 1.0
    assert db_session.query(Holding).count() == 0
    assert db_session.query(Transaction).count() == 1


def test_dust_remainder_closes_position(db_session):
    holding = _create(db_session, quantity=1.0)

    remaining, _ = HoldingService.sell_holding(db_session, holding, 0.99995, 100.0)

    assert remaining is None


def test_describe_reports_profit_loss(db_session):
    holding = _create(db_session, quantity=2.0, purchase_unit_price=100.0)
    holding.live_unit_price = 125.0

    info = describe(holding)

    assert info["current_value"] == 250.0
    assert info["profit_loss"] == 50.0
    assert info["profit_loss_pct"] == pytest.approx(25.0)


@pytest.mark.asyncio
async def test_refresh_applies_prices_and_records_snapshots(db_session, price_service, providers, stores):
    _create(db_session, name="Bitcoin", provider_id="bitcoin", quantity=2.0)
    _create(db_session, name="Flat", category="real_estate", provider_id=None,
            quantity=1.0, purchase_unit_price=1000.0)
    providers["coingecko"].simple_price.return_value = {"bitcoin": Quote(price=500.0)}

    result = await HoldingService.refresh_prices(db_session, "local", price_service, stores)

    assert result.updated_holdings == 1
    assert result.total == 2000.0
    assert result.breakdown == {"crypto": 1000.0, "real_estate": 1000.0}

    store = stores.get("local")
    assert store.daily[-1].total == 2000.0
    assert len(store.hourly) == 1

    snapshot = db_session.query(WealthSnapshot).one()
    assert snapshot.snapshot_date == date(2024, 3, 1)
    assert snapshot.total == 2000.0


@pytest.mark.asyncio
async def test_refresh_keeps_last_price_when_provider_fails(db_session, price_service, providers, stores):
    holding = _create(db_session, quantity=1.0)
    holding.live_unit_price = 400.0
    db_session.commit()
    providers["coingecko"].simple_price.side_effect = ProviderError("CoinGecko error: 429")

    result = await HoldingService.refresh_prices(db_session, "local", price_service, stores)

    assert result.updated_holdings == 0
    assert "crypto" in result.errors
    assert holding.live_unit_price == 400.0
    assert result.total == 400.0


@pytest.mark.asyncio
async def test_refresh_without_holdings_does_nothing(db_session, price_service, providers, stores):
    result = await HoldingService.refresh_prices(db_session, "local", price_service, stores)

    assert result.total == 0.0
    providers["coingecko"].simple_price.assert_not_called()
    assert db_session.query(WealthSnapshot).count() == 0


def test_snapshot_upsert_same_day(db_session):
    SnapshotService.save_snapshot(db_session, "local", DailySnapshot(date="2024-03-01", total=100.0))
    SnapshotService.save_snapshot(db_session, "local", DailySnapshot(
        date="2024-03-01", total=150.0, breakdown={"crypto": 150.0}))
    SnapshotService.save_snapshot(db_session, "other", DailySnapshot(date="2024-03-01", total=1.0))

    history = SnapshotService.get_history(db_session, "local")

    assert len(history) == 1
    assert history[0].total == 150.0
    assert history[0].breakdown == {"crypto": 150.0}


def test_change_from_previous_snapshot(db_session):
    SnapshotService.save_snapshot(db_session, "local", DailySnapshot(date="2024-03-01", total=200.0))
    SnapshotService.save_snapshot(db_session, "local", DailySnapshot(date="2024-03-02", total=250.0))

    change, pct = SnapshotService.calculate_change_from_previous(
        db_session, "local", 300.0, reference_date=date(2024, 3, 3))

    assert change == 50.0
    assert pct == pytest.approx(20.0)


def test_change_from_previous_without_history(db_session):
    assert SnapshotService.calculate_change_from_previous(db_session, "local", 300.0) == (0.0, 0.0)


def test_clear_all_only_touches_one_user(db_session):
    SnapshotService.save_snapshot(db_session, "local", DailySnapshot(date="2024-03-01", total=1.0))
    SnapshotService.save_snapshot(db_session, "other", DailySnapshot(date="2024-03-01", total=2.0))

    assert SnapshotService.clear_all(db_session, "local") == 1
    assert db_session.query(WealthSnapshot).count() == 1


def test_history_window_counts_from_given_day(db_session):
    for day, total in (("2024-02-28", 1.0), ("2024-03-01", 2.0), ("2024-03-02", 3.0)):
        SnapshotService.save_snapshot(db_session, "local", DailySnapshot(date=day, total=total))

    history = SnapshotService.get_history(db_session, "local", days=1, today=date(2024, 3, 2))

    assert [s.total for s in history] == [2.0, 3.0]
