"""Tests for the position reconciler against a real SQLite database."""

from datetime import datetime, timedelta, timezone

import pytest

from models import utc_now
from repositories import HoldingRepository, TransactionRepository
from services.errors import (
    Forbidden,
    InsufficientBalance,
    InvalidInput,
    InvalidState,
    NotFound,
    Unauthenticated,
)
from services.ledger import replay

OWNER = 1
OTHER_OWNER = 2


def holding_quantity(owner_id, asset_id="bitcoin"):
    holding = HoldingRepository.get_by_owner_and_asset(owner_id, asset_id)
    return None if holding is None else holding.quantity


def invested(owner_id, asset_id="bitcoin"):
    holding = HoldingRepository.get_by_owner_and_asset(owner_id, asset_id)
    txs = TransactionRepository.get_by_holding(holding.id)
    return replay((t.transaction_type, t.quantity, t.price) for t in txs).invested


# ==================== Concrete scenarios ====================
def test_buy_then_sell_updates_quantity_and_invested(reconciler):
    reconciler.record_transaction(OWNER, "bitcoin", "buy", 2, 100)
    assert holding_quantity(OWNER) == 2
    assert invested(OWNER) == 200

    reconciler.record_transaction(OWNER, "bitcoin", "sell", 1, 150)
    assert holding_quantity(OWNER) == 1
    assert invested(OWNER) == 50


def test_oversell_is_rejected_without_effect(reconciler):
    reconciler.record_transaction(OWNER, "bitcoin", "buy", 2, 100)
    reconciler.record_transaction(OWNER, "bitcoin", "sell", 1, 150)

    with pytest.raises(InsufficientBalance):
        reconciler.record_transaction(OWNER, "bitcoin", "sell", 5, 100)

    assert holding_quantity(OWNER) == 1
    holding = HoldingRepository.get_by_owner_and_asset(OWNER, "bitcoin")
    assert len(TransactionRepository.get_by_holding(holding.id)) == 2


def test_edit_that_would_go_negative_is_rejected(reconciler):
    tx = reconciler.record_transaction(OWNER, "bitcoin", "buy", 2, 100)

    with pytest.raises(InsufficientBalance):
        reconciler.edit_transaction(OWNER, tx.id, "sell", 1, 100, datetime(2024, 1, 2))

    assert holding_quantity(OWNER) == 2
    unchanged = TransactionRepository.get_by_id(tx.id)
    assert unchanged.transaction_type == "buy"
    assert unchanged.quantity == 2
    assert unchanged.transaction_date == tx.transaction_date


def test_deleting_only_transaction_removes_holding(reconciler):
    tx = reconciler.record_transaction(OWNER, "bitcoin", "buy", 2, 100)

    removed = reconciler.delete_transaction(OWNER, tx.id)

    assert removed is True
    assert holding_quantity(OWNER) is None
    assert TransactionRepository.get_by_id(tx.id) is None


# ==================== Record ====================
def test_first_sell_on_empty_holding_creates_nothing(reconciler):
    with pytest.raises(InsufficientBalance):
        reconciler.record_transaction(OWNER, "ethereum", "sell", 1, 100)
    assert HoldingRepository.get_by_owner_and_asset(OWNER, "ethereum") is None


def test_record_normalizes_inputs(reconciler):
    tx = reconciler.record_transaction(
        OWNER, " Bitcoin ", "BUY", "0.5", "64000", "2024-03-01T12:00:00Z",
        asset_name="Bitcoin", asset_symbol="btc"
    )
    assert tx.transaction_type == "buy"
    assert tx.quantity == 0.5
    assert tx.transaction_date == datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
    assert tx.created_at is not None

    holding = HoldingRepository.get_by_owner_and_asset(OWNER, "bitcoin")
    assert holding.asset_symbol == "BTC"
    assert holding.asset_name == "Bitcoin"


def test_record_defaults_date_to_now(reconciler):
    before = utc_now().replace(microsecond=0)
    tx = reconciler.record_transaction(OWNER, "bitcoin", "buy", 1, 100)
    assert tx.transaction_date >= before


def test_sell_to_zero_keeps_holding(reconciler):
    reconciler.record_transaction(OWNER, "bitcoin", "buy", 1, 100)
    reconciler.record_transaction(OWNER, "bitcoin", "sell", 1, 120)
    assert holding_quantity(OWNER) == 0


def test_fractional_sells_snap_to_zero(reconciler):
    reconciler.record_transaction(OWNER, "bitcoin", "buy", 0.3, 100)
    reconciler.record_transaction(OWNER, "bitcoin", "sell", 0.1, 100)
    reconciler.record_transaction(OWNER, "bitcoin", "sell", 0.1, 100)
    reconciler.record_transaction(OWNER, "bitcoin", "sell", 0.1, 100)
    assert holding_quantity(OWNER) == 0


def test_sub_epsilon_sell_on_empty_holding_is_rejected(reconciler):
    with pytest.raises(InsufficientBalance):
        reconciler.record_transaction(OWNER, "bitcoin", "sell", 5e-10, 100)
    assert HoldingRepository.get_by_owner_and_asset(OWNER, "bitcoin") is None


def test_sub_epsilon_sell_after_selling_out_is_rejected(reconciler):
    reconciler.record_transaction(OWNER, "bitcoin", "buy", 1, 100)
    reconciler.record_transaction(OWNER, "bitcoin", "sell", 1, 100)

    with pytest.raises(InsufficientBalance):
        reconciler.record_transaction(OWNER, "bitcoin", "sell", 5e-10, 100)

    holding = HoldingRepository.get_by_owner_and_asset(OWNER, "bitcoin")
    assert holding.quantity == 0
    assert len(TransactionRepository.get_by_holding(holding.id)) == 2


def test_tiny_buy_is_kept(reconciler):
    reconciler.record_transaction(OWNER, "bitcoin", "buy", 5e-10, 100)
    assert holding_quantity(OWNER) == 5e-10


def test_overflowing_quantity_is_rejected(reconciler):
    reconciler.record_transaction(OWNER, "bitcoin", "buy", 1e308, 1)

    with pytest.raises(InvalidInput):
        reconciler.record_transaction(OWNER, "bitcoin", "buy", 1e308, 1)

    holding = HoldingRepository.get_by_owner_and_asset(OWNER, "bitcoin")
    assert holding.quantity == 1e308
    assert len(TransactionRepository.get_by_holding(holding.id)) == 1


def test_overflowing_edit_is_rejected(reconciler):
    reconciler.record_transaction(OWNER, "bitcoin", "buy", 1e308, 1)
    small = reconciler.record_transaction(OWNER, "bitcoin", "buy", 1, 1)

    with pytest.raises(InvalidInput):
        reconciler.edit_transaction(OWNER, small.id, "buy", 1e308, 1, "2024-01-01")

    assert TransactionRepository.get_by_id(small.id).quantity == 1
    assert holding_quantity(OWNER) == 1e308


def test_timestamps_are_stored_as_utc(reconciler):
    tx = reconciler.record_transaction(OWNER, "bitcoin", "buy", 1, 100, datetime(2024, 2, 1, 8, 30))

    stored = TransactionRepository.get_by_id(tx.id)
    assert stored.transaction_date == datetime(2024, 2, 1, 8, 30, tzinfo=timezone.utc)
    assert stored.created_at.utcoffset() == timedelta(0)
    holding = HoldingRepository.get_by_owner_and_asset(OWNER, "bitcoin")
    assert holding.updated_at.utcoffset() == timedelta(0)


def test_holding_version_increments_on_each_write(reconciler):
    reconciler.record_transaction(OWNER, "bitcoin", "buy", 1, 100)
    reconciler.record_transaction(OWNER, "bitcoin", "buy", 1, 100)
    holding = HoldingRepository.get_by_owner_and_asset(OWNER, "bitcoin")
    assert holding.version == 2


@pytest.mark.parametrize("kwargs", [
    {"transaction_type": "hold"},
    {"quantity": 0},
    {"quantity": -1},
    {"quantity": float("nan")},
    {"quantity": True},
    {"price": 0},
    {"price": "abc"},
    {"price": float("inf")},
    {"asset_id": ""},
    {"transaction_date": "not-a-date"},
])
def test_record_rejects_invalid_input(reconciler, kwargs):
    args = {"asset_id": "bitcoin", "transaction_type": "buy", "quantity": 1, "price": 100}
    args.update(kwargs)
    with pytest.raises(InvalidInput):
        reconciler.record_transaction(OWNER, **args)
    assert HoldingRepository.get_by_owner(OWNER) == []


def test_missing_owner_is_unauthenticated(reconciler):
    with pytest.raises(Unauthenticated):
        reconciler.record_transaction(None, "bitcoin", "buy", 1, 100)


# ==================== Edit ====================
def test_edit_replaces_effect(reconciler):
    tx = reconciler.record_transaction(OWNER, "bitcoin", "buy", 2, 100)
    reconciler.record_transaction(OWNER, "bitcoin", "buy", 1, 100)

    edited = reconciler.edit_transaction(OWNER, tx.id, "buy", 5, 90, "2024-01-05")

    assert holding_quantity(OWNER) == 6
    assert edited.quantity == 5
    assert edited.price == 90
    assert edited.transaction_date == datetime(2024, 1, 5, tzinfo=timezone.utc)


def test_edit_to_zero_keeps_holding(reconciler):
    reconciler.record_transaction(OWNER, "bitcoin", "buy", 2, 100)
    sell = reconciler.record_transaction(OWNER, "bitcoin", "sell", 1, 100)

    reconciler.edit_transaction(OWNER, sell.id, "sell", 2, 100, datetime(2024, 1, 1))

    assert holding_quantity(OWNER) == 0


def test_edit_requires_date(reconciler):
    tx = reconciler.record_transaction(OWNER, "bitcoin", "buy", 2, 100)
    with pytest.raises(InvalidInput):
        reconciler.edit_transaction(OWNER, tx.id, "buy", 1, 100, None)


def test_edit_unknown_transaction(reconciler):
    with pytest.raises(NotFound):
        reconciler.edit_transaction(OWNER, 9999, "buy", 1, 100, datetime(2024, 1, 1))


def test_edit_someone_elses_transaction(reconciler):
    tx = reconciler.record_transaction(OTHER_OWNER, "bitcoin", "buy", 2, 100)
    with pytest.raises(Forbidden):
        reconciler.edit_transaction(OWNER, tx.id, "buy", 1, 100, datetime(2024, 1, 1))
    assert holding_quantity(OTHER_OWNER) == 2


def test_invalid_input_is_reported_before_lookup(reconciler):
    with pytest.raises(InvalidInput):
        reconciler.edit_transaction(OWNER, 9999, "buy", -1, 100, datetime(2024, 1, 1))


# ==================== Delete ====================
def test_delete_leaves_remaining_quantity(reconciler):
    first = reconciler.record_transaction(OWNER, "bitcoin", "buy", 2, 100)
    reconciler.record_transaction(OWNER, "bitcoin", "buy", 3, 100)

    removed = reconciler.delete_transaction(OWNER, first.id)

    assert removed is False
    assert holding_quantity(OWNER) == 3


def test_delete_to_zero_removes_offsetting_transactions(reconciler):
    reconciler.record_transaction(OWNER, "bitcoin", "buy", 1, 100)
    second = reconciler.record_transaction(OWNER, "bitcoin", "buy", 1, 100)
    reconciler.record_transaction(OWNER, "bitcoin", "sell", 1, 100)
    holding_id = HoldingRepository.get_by_owner_and_asset(OWNER, "bitcoin").id

    assert reconciler.delete_transaction(OWNER, second.id) is True

    assert holding_quantity(OWNER) is None
    assert TransactionRepository.get_by_holding(holding_id) == []


def test_delete_that_would_go_negative_is_rejected(reconciler, caplog):
    buy = reconciler.record_transaction(OWNER, "bitcoin", "buy", 2, 100)
    reconciler.record_transaction(OWNER, "bitcoin", "sell", 2, 100)

    with pytest.raises(InvalidState):
        reconciler.delete_transaction(OWNER, buy.id)

    assert holding_quantity(OWNER) == 0
    assert TransactionRepository.get_by_id(buy.id) is not None

    rejected = [r for r in caplog.records if r.name == "services.reconciler" and "Rejected delete" in r.getMessage()]
    assert [r.levelname for r in rejected] == ["WARNING"]
    assert not any(r.levelname == "ERROR" for r in caplog.records if r.name == "services.reconciler")


def test_double_delete_is_not_found(reconciler):
    reconciler.record_transaction(OWNER, "bitcoin", "buy", 5, 100)
    tx = reconciler.record_transaction(OWNER, "bitcoin", "buy", 1, 100)

    reconciler.delete_transaction(OWNER, tx.id)
    with pytest.raises(NotFound):
        reconciler.delete_transaction(OWNER, tx.id)

    assert holding_quantity(OWNER) == 5


def test_delete_someone_elses_transaction(reconciler):
    tx = reconciler.record_transaction(OTHER_OWNER, "bitcoin", "buy", 2, 100)
    with pytest.raises(Forbidden):
        reconciler.delete_transaction(OWNER, tx.id)
    assert TransactionRepository.get_by_id(tx.id) is not None


@pytest.mark.parametrize("transaction_id", [None, 0, -3, "abc", True])
def test_delete_rejects_bad_ids(reconciler, transaction_id):
    with pytest.raises(InvalidInput):
        reconciler.delete_transaction(OWNER, transaction_id)


def test_holdings_are_independent_per_owner_and_coin(reconciler):
    reconciler.record_transaction(OWNER, "bitcoin", "buy", 1, 100)
    reconciler.record_transaction(OWNER, "ethereum", "buy", 4, 10)
    reconciler.record_transaction(OTHER_OWNER, "bitcoin", "buy", 7, 100)

    assert holding_quantity(OWNER, "bitcoin") == 1
    assert holding_quantity(OWNER, "ethereum") == 4
    assert holding_quantity(OTHER_OWNER, "bitcoin") == 7
