"""
Position reconciler: keeps each holding's quantity in sync with its ledger.

Every mutation runs as one unit of work: read the holding, compute the new
quantity, reject negatives, then write the transaction row and the holding
together and commit. Holding writes are compare-and-swap on the version
column; a lost race rolls the unit back and tenacity runs it again.
"""

import logging
import math
from typing import Any, Callable, Optional, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlmodel import Session
from tenacity import Retrying, RetryCallState, stop_after_attempt, wait_exponential, retry_if_exception_type

from config import get_settings
from db_engine import get_engine
from models import Transaction
from repositories import HoldingRepository, TransactionRepository
from services.common import (
    require_owner,
    parse_kind,
    parse_positive_number,
    parse_effective_date,
    parse_transaction_id,
    normalize_asset_id,
    normalize_name,
    normalize_symbol,
)
from services.errors import (
    ConcurrentUpdateError,
    Forbidden,
    InsufficientBalance,
    InvalidInput,
    InvalidState,
    NotFound,
    PortfolioError,
    StorageFailure,
)
from services.ledger import quantity_after_record, quantity_after_edit, quantity_after_delete

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _log_retry(retry_state: RetryCallState) -> None:
    """Log each lost race before tenacity sleeps."""
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(f"Holding changed concurrently (attempt {retry_state.attempt_number}): {exc}")


class PositionReconciler:
    """
    Records, edits and deletes transactions while keeping holdings consistent.

    Args:
        engine: SQLAlchemy engine (defaults to the application engine)
        max_attempts: How many times a unit of work may run when it loses a race
    """

    def __init__(self, engine=None, max_attempts: Optional[int] = None):
        self._engine = engine
        self._max_attempts = max_attempts or get_settings().reconcile_max_attempts

    # ==================== Unit of work ====================
    def _run(self, operation: str, unit_of_work: Callable[[Session], T]) -> T:
        retrying = Retrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=0.05, min=0.05, max=0.5),
            retry=retry_if_exception_type(ConcurrentUpdateError),
            before_sleep=_log_retry,
            reraise=True
        )
        try:
            for attempt in retrying:
                with attempt:
                    result = self._run_once(operation, unit_of_work)
        except ConcurrentUpdateError as e:
            logger.error(f"{operation} gave up after {self._max_attempts} attempts: {e}")
            raise StorageFailure() from e
        return result

    def _run_once(self, operation: str, unit_of_work: Callable[[Session], T]) -> T:
        # Leaving the session block without commit rolls everything back
        with Session(self._engine or get_engine()) as session:
            try:
                return unit_of_work(session)
            except PortfolioError:
                raise
            except (IntegrityError, OperationalError) as e:
                # Duplicate holding from a concurrent create, or a busy database
                raise ConcurrentUpdateError(f"{operation}: {e.__class__.__name__}") from e
            except SQLAlchemyError as e:
                logger.error(f"{operation} failed in storage: {e}")
                raise StorageFailure() from e

    @staticmethod
    def _load_owned(session: Session, owner_id: int, transaction_id: int):
        """Fetch a transaction and its locked holding, enforcing ownership."""
        transaction = TransactionRepository.get_by_id(transaction_id, session=session)
        if transaction is None:
            raise NotFound()

        holding = HoldingRepository.get_by_id(transaction.holding_id, for_update=True, session=session)
        if holding is None:
            logger.error(f"Transaction {transaction_id} references missing holding {transaction.holding_id}")
            raise InvalidState()
        if holding.owner_id != owner_id:
            logger.warning(f"Owner {owner_id} tried to modify transaction {transaction_id} of owner {holding.owner_id}")
            raise Forbidden()
        return transaction, holding

    # ==================== Operations ====================
    def record_transaction(
        self,
        owner_id: Optional[int],
        asset_id: str,
        transaction_type: str,
        quantity: Any,
        price: Any,
        transaction_date: Any = None,
        asset_name: Optional[str] = None,
        asset_symbol: Optional[str] = None
    ) -> Transaction:
        """
        Record a buy or sell, creating the holding on first use.

        Args:
            owner_id: Authenticated owner
            asset_id: CoinGecko coin id
            transaction_type: 'buy' or 'sell'
            quantity: Positive number of coins
            price: Positive USD price per coin
            transaction_date: Effective date (defaults to now)
            asset_name: Display name for a new holding
            asset_symbol: Ticker symbol for a new holding

        Returns:
            The created Transaction

        Raises:
            Unauthenticated, InvalidInput, InsufficientBalance, StorageFailure
        """
        owner_id = require_owner(owner_id)
        asset_id = normalize_asset_id(asset_id)
        kind = parse_kind(transaction_type)
        quantity = parse_positive_number(quantity, "amount")
        price = parse_positive_number(price, "price")
        effective_date = parse_effective_date(transaction_date)
        name = normalize_name(asset_name, asset_id)
        symbol = normalize_symbol(asset_symbol, asset_id)

        def _record(session: Session) -> Transaction:
            holding = HoldingRepository.get_by_owner_and_asset(
                owner_id, asset_id, for_update=True, session=session
            )
            current = holding.quantity if holding else 0.0
            new_quantity = quantity_after_record(current, kind, quantity)
            if not math.isfinite(new_quantity):
                logger.warning(f"Rejected {kind} of {quantity} {symbol} for owner {owner_id}: holding would overflow")
                raise InvalidInput("Amount is too large")
            if new_quantity < 0:
                logger.warning(
                    f"Rejected {kind} of {quantity} {symbol} for owner {owner_id}: holding only {current}"
                )
                raise InsufficientBalance(f"Insufficient balance: you hold {current:g} {symbol}")

            if holding is None:
                holding = HoldingRepository.add(owner_id, asset_id, name, symbol, session=session)

            transaction = TransactionRepository.add(
                holding_id=holding.id,
                transaction_type=kind,
                quantity=quantity,
                price=price,
                transaction_date=effective_date,
                session=session
            )
            if not HoldingRepository.compare_and_set_quantity(
                holding.id, holding.version, new_quantity, session=session
            ):
                raise ConcurrentUpdateError(f"holding {holding.id} changed during record")

            session.commit()
            session.refresh(transaction)
            logger.info(
                f"Recorded {kind} {quantity} {symbol} @ ${price} for owner {owner_id}; holding now {new_quantity}"
            )
            return transaction

        return self._run("record_transaction", _record)

    def edit_transaction(
        self,
        owner_id: Optional[int],
        transaction_id: Any,
        transaction_type: str,
        quantity: Any,
        price: Any,
        transaction_date: Any
    ) -> Transaction:
        """
        Replace a transaction's kind, amount, price and date.
        The old effect is reverted and the new one applied; a holding edited
        down to zero is kept.

        Raises:
            Unauthenticated, InvalidInput, NotFound, Forbidden,
            InsufficientBalance, StorageFailure
        """
        owner_id = require_owner(owner_id)
        transaction_id = parse_transaction_id(transaction_id)
        kind = parse_kind(transaction_type)
        quantity = parse_positive_number(quantity, "amount")
        price = parse_positive_number(price, "price")
        effective_date = parse_effective_date(transaction_date, default_now=False)

        def _edit(session: Session) -> Transaction:
            transaction, holding = self._load_owned(session, owner_id, transaction_id)
            new_quantity = quantity_after_edit(
                holding.quantity, transaction.transaction_type, transaction.quantity, kind, quantity
            )
            if not math.isfinite(new_quantity):
                logger.warning(f"Rejected edit of transaction {transaction_id}: holding {holding.id} would overflow")
                raise InvalidInput("Amount is too large")
            if new_quantity < 0:
                logger.warning(
                    f"Rejected edit of transaction {transaction_id}: holding {holding.id} would be {new_quantity}"
                )
                raise InsufficientBalance()

            expected_version = holding.version
            TransactionRepository.update(
                transaction_id,
                transaction_type=kind,
                quantity=quantity,
                price=price,
                transaction_date=effective_date,
                session=session
            )
            if not HoldingRepository.compare_and_set_quantity(
                holding.id, expected_version, new_quantity, session=session
            ):
                raise ConcurrentUpdateError(f"holding {holding.id} changed during edit")

            session.commit()
            session.refresh(transaction)
            logger.info(f"Edited transaction {transaction_id}; holding {holding.id} now {new_quantity}")
            return transaction

        return self._run("edit_transaction", _edit)

    def delete_transaction(self, owner_id: Optional[int], transaction_id: Any) -> bool:
        """
        Delete a transaction and revert its effect.
        When the holding drops to exactly zero it is removed together with any
        remaining (net-zero) transactions.

        Returns:
            True when the holding itself was removed

        Raises:
            Unauthenticated, InvalidInput, NotFound, Forbidden, InvalidState, StorageFailure
        """
        owner_id = require_owner(owner_id)
        transaction_id = parse_transaction_id(transaction_id)

        def _delete(session: Session) -> bool:
            transaction, holding = self._load_owned(session, owner_id, transaction_id)
            new_quantity = quantity_after_delete(
                holding.quantity, transaction.transaction_type, transaction.quantity
            )
            if new_quantity < 0:
                logger.warning(
                    f"Rejected delete of transaction {transaction_id}: holding {holding.id} "
                    f"would be left at {new_quantity}"
                )
                raise InvalidState("Cannot delete: would result in negative balance")

            holding_id = holding.id
            expected_version = holding.version
            if new_quantity == 0:
                removed = TransactionRepository.delete_by_holding(holding_id, session=session)
                if removed > 1:
                    logger.warning(
                        f"Holding {holding_id} closed; removed {removed - 1} offsetting transaction(s) with it"
                    )
                if not HoldingRepository.delete_if_version(holding_id, expected_version, session=session):
                    raise ConcurrentUpdateError(f"holding {holding_id} changed during delete")
            else:
                TransactionRepository.delete(transaction_id, session=session)
                if not HoldingRepository.compare_and_set_quantity(
                    holding_id, expected_version, new_quantity, session=session
                ):
                    raise ConcurrentUpdateError(f"holding {holding_id} changed during delete")

            session.commit()
            logger.info(f"Deleted transaction {transaction_id}; holding {holding_id} now {new_quantity}")
            return new_quantity == 0

        return self._run("delete_transaction", _delete)

