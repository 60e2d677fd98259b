"""Tests for boundary schemas."""

import pytest
from pydantic import ValidationError

from services.schemas import (
    CreateTransactionRequest,
    EditTransactionRequest,
    parse_coin_detail,
    parse_coin_markets,
    parse_global_data,
    parse_simple_prices,
    parse_trending,
)


def test_simple_prices_drop_malformed_entries():
    payload = {
        "bitcoin": {"usd": 64000},
        "ethereum": {"eur": 3000},
        "dogecoin": {"usd": -1},
        "tether": {"usd": "NaN"},
        "solana": "oops",
    }
    assert parse_simple_prices(payload) == {"bitcoin": 64000.0}


@pytest.mark.parametrize("payload", [None, [], "error", 42])
def test_simple_prices_reject_wrong_shape(payload):
    assert parse_simple_prices(payload) == {}


def test_coin_markets_sanitize_numbers():
    coins = parse_coin_markets([
        {"id": "bitcoin", "symbol": "btc", "name": "Bitcoin", "current_price": float("inf"), "market_cap": None},
        {"id": "", "symbol": "x", "name": "X"},
    ])
    assert len(coins) == 1
    assert coins[0].current_price is None
    assert coins[0].market_cap is None
    assert coins[0].symbol == "BTC"


def test_coin_markets_reject_wrong_shape():
    assert parse_coin_markets({"error": "rate limited"}) == []


def test_global_data_requires_data_object():
    assert parse_global_data({"status": {"error_code": 429}}) is None
    assert parse_global_data(None) is None
    stats = parse_global_data({"data": {"market_cap_percentage": {"btc": 50.0}}})
    assert stats.btc_dominance == 50.0
    assert stats.total_market_cap_usd is None



def test_trending_reads_item_objects():
    coins = parse_trending({"coins": [
        {"item": {"id": "pepe", "name": "Pepe", "symbol": "pepe", "thumb": "t.png", "data": {"price": "0.5"}}},
        {"item": {"id": "bonk", "name": "Bonk", "symbol": "bonk", "data": {"price": float("nan")}}},
        {"item": "broken"},
    ]})
    assert [c.id for c in coins] == ["pepe", "bonk"]
    assert coins[0].image == "t.png"
    assert coins[0].price_usd == 0.5
    assert coins[1].price_usd is None


@pytest.mark.parametrize("payload", [None, [], {"coins": "none"}])
def test_trending_rejects_wrong_shape(payload):
    assert parse_trending(payload) == []


def test_coin_detail_flattens_usd_values():
    coin = parse_coin_detail({
        "id": "ethereum", "symbol": "eth", "name": "Ethereum",
        "image": {"large": "eth.png"},
        "description": {"en": ""},
        "market_data": {"current_price": {"usd": 3000.5}, "max_supply": None, "ath": {"eur": 4000}},
    })
    assert coin.symbol == "ETH"
    assert coin.image == "eth.png"
    assert coin.current_price == 3000.5
    assert coin.description is None
    assert coin.max_supply is None
    assert coin.ath is None


@pytest.mark.parametrize("payload", [None, {"error": "coin not found"}, ["bitcoin"]])
def test_coin_detail_rejects_wrong_shape(payload):
    assert parse_coin_detail(payload) is None


def test_create_request_accepts_wire_names():
    request = CreateTransactionRequest.model_validate({
        "assetId": "bitcoin",
        "assetSymbol": "btc",
        "kind": "buy",
        "quantity": "1.5",
        "unitPrice": 100,
        "date": "2024-01-01",
        "unexpected": True,
    })
    assert request.asset_id == "bitcoin"
    assert request.quantity == 1.5
    assert request.asset_name is None
    assert request.effective_date == "2024-01-01"


def test_create_request_requires_asset_id():
    with pytest.raises(ValidationError):
        CreateTransactionRequest.model_validate({"kind": "buy", "quantity": 1, "unitPrice": 1})


def test_edit_request_requires_date():
    with pytest.raises(ValidationError):
        EditTransactionRequest.model_validate({"transactionId": 1, "kind": "buy", "quantity": 1, "unitPrice": 1})
