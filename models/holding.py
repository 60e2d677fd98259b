"""
Holding model - one owner's net position in one coin.
"""

from typing import Optional
from datetime import datetime, timezone
from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class Holding(SQLModel, table=True):
    """
    Represents a position in the portfolio.
    The quantity is denormalized from the transaction ledger and never negative.
    """
    __table_args__ = (
        UniqueConstraint("owner_id", "asset_id", name="uq_holding_owner_asset"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    owner_id: int = Field(index=True)
    asset_id: str = Field(index=True)  # CoinGecko coin id, e.g. "bitcoin"
    asset_name: str  # e.g. "Bitcoin"
    asset_symbol: str  # e.g. "BTC"
    quantity: float = Field(default=0.0)
    version: int = Field(default=0)  # Bumped on every write, used for compare-and-swap
    updated_at: datetime = Field(default_factory=utc_now)
