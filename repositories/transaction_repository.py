"""
Transaction Repository - data access layer for Transaction model.
Optimized with optional session parameter for transaction reuse.
When a session is passed in, changes are flushed and the caller owns the commit.
"""

from typing import Optional, List, Tuple
from datetime import datetime
from sqlalchemy import delete
from sqlmodel import Session, select

from db_engine import get_engine
from models import Holding, Transaction


class TransactionRepository:
    """Repository for Transaction CRUD operations."""

    @staticmethod
    def add(
        holding_id: int,
        transaction_type: str,
        quantity: float,
        price: float,
        transaction_date: datetime,
        session: Optional[Session] = None
    ) -> Transaction:
        """
        Add a new transaction to the database.

        Args:
            holding_id: Holding the transaction belongs to
            transaction_type: 'buy' or 'sell'
            quantity: Number of coins
            price: USD price per coin
            transaction_date: Effective date of the transaction
            session: Optional existing session for transaction reuse

        Returns:
            Created Transaction object
        """
        def _create_transaction(sess: Session) -> Transaction:
            transaction = Transaction(
                holding_id=holding_id,
                transaction_type=transaction_type,
                quantity=quantity,
                price=price,
                transaction_date=transaction_date
            )
            sess.add(transaction)
            sess.flush()
            return transaction

        if session is not None:
            return _create_transaction(session)
        else:
            with Session(get_engine()) as session:
                transaction = _create_transaction(session)
                session.commit()
                session.refresh(transaction)
                return transaction

    @staticmethod
    def get_by_id(transaction_id: int, session: Optional[Session] = None) -> Optional[Transaction]:
        """
        Retrieve a transaction by its ID.

        Args:
            transaction_id: Transaction ID to look up
            session: Optional existing session for transaction reuse

        Returns:
            Transaction object or None if not found
        """
        def _get_by_id(sess: Session) -> Optional[Transaction]:
            return sess.get(Transaction, transaction_id)

        if session is not None:
            return _get_by_id(session)
        else:
            with Session(get_engine()) as session:
                return _get_by_id(session)

    @staticmethod
    def get_by_holding(holding_id: int, session: Optional[Session] = None) -> List[Transaction]:
        """
        Retrieve all transactions for a specific holding.

        Args:
            holding_id: Holding ID to look up
            session: Optional existing session for transaction reuse

        Returns:
            List of Transaction objects
        """
        def _get_by_holding(sess: Session) -> List[Transaction]:
            statement = select(Transaction).where(Transaction.holding_id == holding_id)
            results = sess.exec(statement)
            return list(results.all())

        if session is not None:
            return _get_by_holding(session)
        else:
            with Session(get_engine()) as session:
                return _get_by_holding(session)

    @staticmethod
    def get_by_owner(owner_id: int, session: Optional[Session] = None) -> List[Tuple[Transaction, Holding]]:
        """
        Retrieve all of an owner's transactions joined with their holding,
        newest effective date first.

        Args:
            owner_id: Owner whose ledger to read
            session: Optional existing session for transaction reuse

        Returns:
            List of (Transaction, Holding) pairs
        """
        def _get_by_owner(sess: Session) -> List[Tuple[Transaction, Holding]]:
            statement = (
                select(Transaction, Holding)
                .join(Holding, Transaction.holding_id == Holding.id)
                .where(Holding.owner_id == owner_id)
                .order_by(Transaction.transaction_date.desc(), Transaction.id.desc())
            )
            results = sess.exec(statement)
            return list(results.all())

        if session is not None:
            return _get_by_owner(session)
        else:
            with Session(get_engine()) as session:
                return _get_by_owner(session)

    @staticmethod
    def update(
        transaction_id: int,
        transaction_type: Optional[str] = None,
        quantity: Optional[float] = None,
        price: Optional[float] = None,
        transaction_date: Optional[datetime] = None,
        session: Optional[Session] = None
    ) -> Optional[Transaction]:
        """
        Update an existing transaction.
        Only updates fields that are provided (not None).

        Args:
            transaction_id: Transaction ID to update
            transaction_type: New transaction type (optional)
            quantity: New quantity (optional)
            price: New price (optional)
            transaction_date: New effective date (optional)
            session: Optional existing session for transaction reuse

        Returns:
            Updated Transaction object or None if not found
        """
        def _update(sess: Session) -> Optional[Transaction]:
            transaction = sess.get(Transaction, transaction_id)
            if transaction:
                if transaction_type is not None:
                    transaction.transaction_type = transaction_type
                if quantity is not None:
                    transaction.quantity = quantity
                if price is not None:
                    transaction.price = price
                if transaction_date is not None:
                    transaction.transaction_date = transaction_date
                sess.add(transaction)
                sess.flush()
                return transaction
            return None

        if session is not None:
            return _update(session)
        else:
            with Session(get_engine()) as session:
                transaction = _update(session)
                if transaction:
                    session.commit()
                    session.refresh(transaction)
                return transaction

    @staticmethod
    def delete(transaction_id: int, session: Optional[Session] = None) -> bool:
        """
        Delete a transaction by its ID.

        Args:
            transaction_id: Transaction ID to delete
            session: Optional existing session for transaction reuse

        Returns:
            True if a row was deleted, False otherwise
        """
        def _delete(sess: Session) -> bool:
            transaction = sess.get(Transaction, transaction_id)
            if transaction:
                sess.delete(transaction)
                sess.flush()
                return True
            return False

        if session is not None:
            return _delete(session)
        else:
            with Session(get_engine()) as session:
                try:
                    deleted = _delete(session)
                    session.commit()
                    return deleted
                except Exception:
                    session.rollback()
                    raise

    @staticmethod
    def delete_by_holding(holding_id: int, session: Optional[Session] = None) -> int:
        """
        Delete all transactions for a specific holding.
        Used when the holding itself is removed.

        Args:
            holding_id: Holding ID whose transactions to delete
            session: Optional existing session for transaction reuse

        Returns:
            Number of transactions deleted
        """
        def _delete_by_holding(sess: Session) -> int:
            statement = delete(Transaction).where(Transaction.holding_id == holding_id)
            result = sess.exec(statement)
            return result.rowcount

        if session is not None:
            return _delete_by_holding(session)
        else:
            with Session(get_engine()) as session:
                count = _delete_by_holding(session)
                session.commit()
                return count
