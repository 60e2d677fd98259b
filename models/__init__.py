"""
Database models for Coinfolio.
All SQLModel table definitions are centralized here.
"""

from models.holding import Holding, utc_now
from models.transaction import Transaction

__all__ = [
    'Holding',
    'Transaction',
    'utc_now',
]
