"""
Request handlers for transaction endpoints.
Each handler takes the caller's owner id and a JSON-style payload and returns
a (body, status) pair, so any web layer (or the Streamlit app) can use them.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ValidationError

from models import Transaction
from services.common import require_owner
from services.errors import InvalidInput, PortfolioError
from services.portfolio import PortfolioService, TransactionView
from services.reconciler import PositionReconciler
from services.schemas import (
    CreateTransactionRequest,
    DeleteTransactionRequest,
    EditTransactionRequest,
)

logger = logging.getLogger(__name__)

Response = Tuple[Dict[str, Any], int]


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def serialize_transaction(transaction: Transaction) -> Dict[str, Any]:
    """Wire form of a stored transaction."""
    return {
        "id": transaction.id,
        "holdingId": transaction.holding_id,
        "kind": transaction.transaction_type,
        "quantity": transaction.quantity,
        "unitPrice": transaction.price,
        "date": _isoformat(transaction.transaction_date),
        "createdAt": _isoformat(transaction.created_at),
    }


def serialize_transaction_view(view: TransactionView) -> Dict[str, Any]:
    """Wire form of a listed transaction, including its coin's metadata."""
    return {
        "id": view.id,
        "kind": view.transaction_type,
        "quantity": view.quantity,
        "unitPrice": view.price,
        "total": view.total_value,
        "date": _isoformat(view.transaction_date),
        "createdAt": _isoformat(view.created_at),
        "assetId": view.asset_id,
        "assetName": view.asset_name,
        "assetSymbol": view.asset_symbol,
    }


def _parse(model: type, payload: Any) -> BaseModel:
    if not isinstance(payload, dict):
        raise InvalidInput("Request body must be an object")
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or "body"
        raise InvalidInput(f"Invalid {field}: {first.get('msg', 'invalid value')}")


def _error_response(error: PortfolioError) -> Response:
    return error.to_dict(), error.status_code


class TransactionHandlers:
    """
    Wire-level entry points for creating, editing, deleting and listing transactions.

    Args:
        reconciler: Reconciler to run mutations through (defaults to a new one)
    """

    def __init__(self, reconciler: Optional[PositionReconciler] = None):
        self.reconciler = reconciler or PositionReconciler()

    def create(self, owner_id: Optional[int], payload: Any) -> Response:
        try:
            require_owner(owner_id)
            request = _parse(CreateTransactionRequest, payload)
            transaction = self.reconciler.record_transaction(
                owner_id,
                asset_id=request.asset_id,
                transaction_type=request.kind,
                quantity=request.quantity,
                price=request.unit_price,
                transaction_date=request.effective_date,
                asset_name=request.asset_name,
                asset_symbol=request.asset_symbol
            )
        except PortfolioError as e:
            return _error_response(e)
        return {"success": True, "transaction": serialize_transaction(transaction)}, 201

    def edit(self, owner_id: Optional[int], payload: Any) -> Response:
        try:
            require_owner(owner_id)
            request = _parse(EditTransactionRequest, payload)
            self.reconciler.edit_transaction(
                owner_id,
                transaction_id=request.transaction_id,
                transaction_type=request.kind,
                quantity=request.quantity,
                price=request.unit_price,
                transaction_date=request.effective_date
            )
        except PortfolioError as e:
            return _error_response(e)
        return {"success": True}, 200

    def delete(self, owner_id: Optional[int], payload: Any) -> Response:
        try:
            require_owner(owner_id)
            request = _parse(DeleteTransactionRequest, payload)
            self.reconciler.delete_transaction(owner_id, request.transaction_id)
        except PortfolioError as e:
            return _error_response(e)
        return {"success": True}, 200

    def list(self, owner_id: Optional[int]) -> Response:
        try:
            transactions = PortfolioService.list_transactions(owner_id)
        except PortfolioError as e:
            return _error_response(e)
        return {"transactions": [serialize_transaction_view(t) for t in transactions]}, 200
