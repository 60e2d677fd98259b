"""
Portfolio service for calculating holdings, PnL and allocation.
Read-only: replays each owner's ledger against injected current prices.
"""

import logging
import math
from collections import OrderedDict
from datetime import datetime
from typing import Callable, Dict, List, Optional
from dataclasses import dataclass, field

import pandas as pd
from sqlmodel import Session

from repositories import HoldingRepository, TransactionRepository
from services.common import require_owner
from services.ledger import LedgerTotals, normalize_quantity

logger = logging.getLogger(__name__)

# Looks up the current USD price of a coin id; None means unavailable
PriceLookup = Callable[[str], Optional[float]]


@dataclass
class HoldingSummary:
    """Net position in one coin, valued at the current price."""
    asset_id: str
    asset_name: str
    asset_symbol: str
    quantity: float
    invested: float  # Net invested capital, in USD
    current_price: Optional[float]
    current_value: float
    pnl: float
    pnl_pct: float
    price_available: bool


@dataclass
class PortfolioOverview:
    """Portfolio totals plus the per-coin breakdown."""
    owner_id: int
    holdings: List[HoldingSummary] = field(default_factory=list)
    total_value: float = 0.0
    total_invested: float = 0.0
    total_pnl: float = 0.0
    total_pnl_pct: float = 0.0
    missing_prices: List[str] = field(default_factory=list)


@dataclass
class TransactionView:
    """A ledger entry joined with its coin's display metadata."""
    id: int
    transaction_type: str
    quantity: float
    price: float
    transaction_date: datetime
    created_at: datetime
    asset_id: str
    asset_name: str
    asset_symbol: str

    @property
    def total_value(self) -> float:
        return self.quantity * self.price


@dataclass
class AllocationSlice:
    """One coin's share of the portfolio's current value."""
    asset_id: str
    asset_symbol: str
    current_value: float
    percent: float


def _usable_price(price: Optional[float]) -> Optional[float]:
    """Accept only finite, non-negative prices."""
    if price is None or isinstance(price, bool):
        return None
    try:
        price = float(price)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(price) or price < 0:
        return None
    return price


def _pnl_pct(pnl: float, invested: float) -> float:
    return (pnl / invested * 100) if invested > 0 else 0.0


class PortfolioService:
    """
    Service for portfolio calculations.
    All values are in USD; prices come from the caller's price lookup.
    """

    @staticmethod
    def list_transactions(owner_id: Optional[int], session: Optional[Session] = None) -> List[TransactionView]:
        """
        All of an owner's transactions, newest effective date first.

        Args:
            owner_id: Authenticated owner
            session: Optional existing session for transaction reuse

        Returns:
            List of TransactionView rows
        """
        owner_id = require_owner(owner_id)
        rows = TransactionRepository.get_by_owner(owner_id, session=session)
        return [
            TransactionView(
                id=tx.id,
                transaction_type=tx.transaction_type,
                quantity=tx.quantity,
                price=tx.price,
                transaction_date=tx.transaction_date,
                created_at=tx.created_at,
                asset_id=holding.asset_id,
                asset_name=holding.asset_name,
                asset_symbol=holding.asset_symbol,
            )
            for tx, holding in rows
        ]

    @staticmethod
    def active_asset_ids(owner_id: Optional[int], session: Optional[Session] = None) -> List[str]:
        """Coin ids the owner currently holds a positive quantity of."""
        owner_id = require_owner(owner_id)
        holdings = HoldingRepository.get_by_owner(owner_id, session=session)
        return [h.asset_id for h in holdings if h.quantity > 0]

    @staticmethod
    def compute_overview(
        owner_id: Optional[int],
        price_of: PriceLookup,
        session: Optional[Session] = None
    ) -> PortfolioOverview:
        """
        Replay the owner's ledger grouped by coin and value it at current prices.

        Coins without a usable price are valued at their invested capital
        (floored at zero), flagged price_available=False and listed in
        missing_prices. Fully sold coins stay in the breakdown with zero value
        so realized gains and losses count toward the totals.

        Args:
            owner_id: Authenticated owner
            price_of: Current USD price lookup by coin id
            session: Optional existing session for transaction reuse

        Returns:
            PortfolioOverview with holdings sorted by current value, largest first
        """
        owner_id = require_owner(owner_id)
        transactions = PortfolioService.list_transactions(owner_id, session=session)

        ledgers: Dict[str, LedgerTotals] = OrderedDict()
        metadata: Dict[str, TransactionView] = {}
        for tx in transactions:
            ledgers.setdefault(tx.asset_id, LedgerTotals()).apply(tx.transaction_type, tx.quantity, tx.price)
            metadata.setdefault(tx.asset_id, tx)

        overview = PortfolioOverview(owner_id=owner_id)
        for asset_id, totals in ledgers.items():
            quantity = normalize_quantity(totals.quantity, totals.scale)
            invested = totals.invested
            price = _usable_price(price_of(asset_id)) if quantity > 0 else None
            price_available = quantity <= 0 or price is not None

            if quantity <= 0:
                current_value = 0.0
            elif price is not None:
                current_value = quantity * price
            else:
                current_value = max(invested, 0.0)
                overview.missing_prices.append(asset_id)

            pnl = current_value - invested
            info = metadata[asset_id]
            overview.holdings.append(HoldingSummary(
                asset_id=asset_id,
                asset_name=info.asset_name,
                asset_symbol=info.asset_symbol,
                quantity=quantity,
                invested=invested,
                current_price=price,
                current_value=current_value,
                pnl=pnl,
                pnl_pct=_pnl_pct(pnl, invested),
                price_available=price_available,
            ))
            overview.total_value += current_value
            overview.total_invested += invested

        if overview.missing_prices:
            logger.warning(f"No current price for {', '.join(overview.missing_prices)}; valued at cost")

        overview.holdings.sort(key=lambda h: h.current_value, reverse=True)
        overview.total_pnl = overview.total_value - overview.total_invested
        overview.total_pnl_pct = _pnl_pct(overview.total_pnl, overview.total_invested)
        return overview

    @staticmethod
    def list_holdings(
        owner_id: Optional[int],
        price_of: PriceLookup,
        session: Optional[Session] = None
    ) -> List[HoldingSummary]:
        """Overview rows with a positive quantity, largest current value first."""
        overview = PortfolioService.compute_overview(owner_id, price_of, session=session)
        return [h for h in overview.holdings if h.quantity > 0]

    @staticmethod
    def allocation(
        owner_id: Optional[int],
        price_of: PriceLookup,
        session: Optional[Session] = None
    ) -> List[AllocationSlice]:
        """Each active coin's percentage of total current value."""
        holdings = [h for h in PortfolioService.list_holdings(owner_id, price_of, session=session) if h.current_value > 0]
        total = sum(h.current_value for h in holdings)
        if total <= 0:
            return []
        return [
            AllocationSlice(
                asset_id=h.asset_id,
                asset_symbol=h.asset_symbol,
                current_value=h.current_value,
                percent=h.current_value / total * 100,
            )
            for h in holdings
        ]

    @staticmethod
    def holdings_frame(holdings: List[HoldingSummary]) -> pd.DataFrame:
        """Tabulate holdings for display, values rounded to cents."""
        columns = ['Coin', 'Symbol', 'Amount', 'Price', 'Value', 'Invested', 'P/L', 'P/L %']
        if not holdings:
            return pd.DataFrame(columns=columns)
        return pd.DataFrame([
            {
                'Coin': h.asset_name,
                'Symbol': h.asset_symbol,
                'Amount': round(h.quantity, 8),
                'Price': round(h.current_price, 2) if h.current_price is not None else None,
                'Value': round(h.current_value, 2),
                'Invested': round(h.invested, 2),
                'P/L': round(h.pnl, 2),
                'P/L %': round(h.pnl_pct, 2),
            }
            for h in holdings
        ], columns=columns)

    @staticmethod
    def transactions_frame(transactions: List[TransactionView]) -> pd.DataFrame:
        """Tabulate ledger entries for display."""
        columns = ['ID', 'Date', 'Type', 'Coin', 'Amount', 'Price', 'Total']
        if not transactions:
            return pd.DataFrame(columns=columns)
        return pd.DataFrame([
            {
                'ID': tx.id,
                'Date': tx.transaction_date,
                'Type': tx.transaction_type.upper(),
                'Coin': f"{tx.asset_name} ({tx.asset_symbol})",
                'Amount': tx.quantity,
                'Price': round(tx.price, 2),
                'Total': round(tx.total_value, 2),
            }
            for tx in transactions
        ], columns=columns)
