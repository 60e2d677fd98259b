"""
Holding Repository - data access layer for Holding model.
Optimized with optional session parameter for transaction reuse.
Quantity writes are compare-and-swap on the holding's version column.
"""

from typing import Optional, List
from sqlalchemy import delete, update
from sqlmodel import Session, select

from db_engine import get_engine
from models import Holding, utc_now


class HoldingRepository:
    """Repository for Holding CRUD operations."""

    @staticmethod
    def get_by_id(
        holding_id: int,
        for_update: bool = False,
        session: Optional[Session] = None
    ) -> Optional[Holding]:
        """
        Retrieve a holding by its ID.

        Args:
            holding_id: Holding ID to look up
            for_update: Lock the row where the database supports it
            session: Optional existing session for transaction reuse

        Returns:
            Holding object or None if not found
        """
        def _get_by_id(sess: Session) -> Optional[Holding]:
            return sess.get(Holding, holding_id, with_for_update=for_update)

        if session is not None:
            return _get_by_id(session)
        else:
            with Session(get_engine()) as session:
                return _get_by_id(session)

    @staticmethod
    def get_by_owner_and_asset(
        owner_id: int,
        asset_id: str,
        for_update: bool = False,
        session: Optional[Session] = None
    ) -> Optional[Holding]:
        """
        Retrieve the holding for an (owner, coin) pair.

        Args:
            owner_id: Owner ID
            asset_id: CoinGecko coin id
            for_update: Lock the row (SELECT ... FOR UPDATE) where the database supports it
            session: Optional existing session for transaction reuse

        Returns:
            Holding object or None if the owner never traded this coin
        """
        def _get(sess: Session) -> Optional[Holding]:
            statement = select(Holding).where(
                Holding.owner_id == owner_id,
                Holding.asset_id == asset_id
            )
            if for_update:
                statement = statement.with_for_update()
            return sess.exec(statement).first()

        if session is not None:
            return _get(session)
        else:
            with Session(get_engine()) as session:
                return _get(session)

    @staticmethod
    def get_by_owner(owner_id: int, session: Optional[Session] = None) -> List[Holding]:
        """
        Retrieve all holdings for an owner.

        Args:
            owner_id: Owner ID
            session: Optional existing session for transaction reuse

        Returns:
            List of Holding objects
        """
        def _get_by_owner(sess: Session) -> List[Holding]:
            statement = select(Holding).where(Holding.owner_id == owner_id).order_by(Holding.asset_id)
            results = sess.exec(statement)
            return list(results.all())

        if session is not None:
            return _get_by_owner(session)
        else:
            with Session(get_engine()) as session:
                return _get_by_owner(session)

    @staticmethod
    def add(
        owner_id: int,
        asset_id: str,
        asset_name: str,
        asset_symbol: str,
        session: Optional[Session] = None
    ) -> Holding:
        """
        Create an empty holding (quantity 0, version 0).
        Raises IntegrityError if the (owner, coin) pair already exists.

        Args:
            owner_id: Owner ID
            asset_id: CoinGecko coin id
            asset_name: Display name
            asset_symbol: Ticker symbol
            session: Optional existing session for transaction reuse

        Returns:
            Created Holding object
        """
        def _create_holding(sess: Session) -> Holding:
            holding = Holding(
                owner_id=owner_id,
                asset_id=asset_id,
                asset_name=asset_name,
                asset_symbol=asset_symbol,
                quantity=0.0,
                version=0
            )
            sess.add(holding)
            sess.flush()
            return holding

        if session is not None:
            return _create_holding(session)
        else:
            with Session(get_engine()) as session:
                holding = _create_holding(session)
                session.commit()
                session.refresh(holding)
                return holding

    @staticmethod
    def compare_and_set_quantity(
        holding_id: int,
        expected_version: int,
        quantity: float,
        session: Optional[Session] = None
    ) -> bool:
        """
        Set a holding's quantity only if its version is still expected_version.
        Bumps the version on success.

        Args:
            holding_id: Holding ID to update
            expected_version: Version read at the start of the unit of work
            quantity: New net quantity
            session: Optional existing session for transaction reuse

        Returns:
            True if the row was updated, False if another writer got there first
        """
        def _compare_and_set(sess: Session) -> bool:
            statement = (
                update(Holding)
                .where(Holding.id == holding_id, Holding.version == expected_version)
                .values(quantity=quantity, version=expected_version + 1, updated_at=utc_now())
            )
            result = sess.exec(statement)
            return result.rowcount == 1

        if session is not None:
            return _compare_and_set(session)
        else:
            with Session(get_engine()) as session:
                updated = _compare_and_set(session)
                session.commit()
                return updated

    @staticmethod
    def delete_if_version(
        holding_id: int,
        expected_version: int,
        session: Optional[Session] = None
    ) -> bool:
        """
        Delete a holding only if its version is still expected_version.

        Args:
            holding_id: Holding ID to delete
            expected_version: Version read at the start of the unit of work
            session: Optional existing session for transaction reuse

        Returns:
            True if the row was deleted, False if it changed or is already gone
        """
        def _delete(sess: Session) -> bool:
            statement = delete(Holding).where(
                Holding.id == holding_id,
                Holding.version == expected_version
            )
            result = sess.exec(statement)
            return result.rowcount == 1

        if session is not None:
            return _delete(session)
        else:
            with Session(get_engine()) as session:
                deleted = _delete(session)
                session.commit()
                return deleted
