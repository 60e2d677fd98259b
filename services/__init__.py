"""
Services package for Coinfolio.
Provides core business logic separated from presentation and data layers.
"""

from services.errors import (
    PortfolioError,
    Unauthenticated,
    Forbidden,
    NotFound,
    InvalidInput,
    InsufficientBalance,
    InvalidState,
    StorageFailure,
)
from services.ledger import QUANTITY_EPSILON, LedgerTotals, replay
from services.reconciler import PositionReconciler
from services.portfolio import (
    PortfolioService,
    PortfolioOverview,
    HoldingSummary,
    TransactionView,
    AllocationSlice,
)
from services.price_cache import PriceCache
from services.market_data import MarketDataService, PriceProvider
from services.handlers import TransactionHandlers

__all__ = [
    # Errors
    'PortfolioError',
    'Unauthenticated',
    'Forbidden',
    'NotFound',
    'InvalidInput',
    'InsufficientBalance',
    'InvalidState',
    'StorageFailure',
    # Ledger
    'QUANTITY_EPSILON',
    'LedgerTotals',
    'replay',
    # Services
    'PositionReconciler',
    'PortfolioService',
    'PortfolioOverview',
    'HoldingSummary',
    'TransactionView',
    'AllocationSlice',
    'PriceCache',
    'MarketDataService',
    'PriceProvider',
    'TransactionHandlers',
]
