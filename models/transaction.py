"""
Transaction model - represents a buy/sell transaction for a holding.
"""

from typing import Optional
from datetime import datetime
from sqlmodel import SQLModel, Field

from models.holding import utc_now


class Transaction(SQLModel, table=True):
    """Represents a buy/sell transaction for a holding."""
    id: Optional[int] = Field(default=None, primary_key=True)
    holding_id: int = Field(foreign_key="holding.id", index=True)
    transaction_type: str  # "buy" or "sell"
    quantity: float
    price: float  # USD price per unit at transaction time
    transaction_date: datetime = Field(index=True)  # Effective date, user supplied
    created_at: datetime = Field(default_factory=utc_now)
