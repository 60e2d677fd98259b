"""
Ledger arithmetic for holdings.
Pure functions: signed deltas, record/edit/delete effects and ledger replay.
No I/O happens here, so every rule can be checked in isolation.
"""

from dataclasses import dataclass
from typing import Iterable, Tuple

from services.common import BUY

# Relative tolerance: a result within QUANTITY_EPSILON × (magnitude of the
# operands that produced it) of zero is float residue and becomes exactly zero
QUANTITY_EPSILON = 1e-9


def signed_delta(kind: str, quantity: float) -> float:
    """+quantity for a buy, -quantity for a sell."""
    return quantity if kind == BUY else -quantity


def normalize_quantity(quantity: float, scale: float) -> float:
    """
    Snap float residue around zero to 0.0.

    Args:
        quantity: Computed holding quantity
        scale: Largest magnitude among the operands that produced it

    Examples:
        >>> normalize_quantity(0.3 - 0.1 * 3, 0.3)
        0.0
        >>> normalize_quantity(-5e-10, 5e-10)
        -5e-10
    """
    if abs(quantity) <= QUANTITY_EPSILON * abs(scale):
        return 0.0
    return quantity


def quantity_after_record(current: float, kind: str, quantity: float) -> float:
    """Holding quantity after recording a new transaction."""
    scale = max(abs(current), abs(quantity))
    return normalize_quantity(current + signed_delta(kind, quantity), scale)


def quantity_after_edit(
    current: float,
    old_kind: str,
    old_quantity: float,
    new_kind: str,
    new_quantity: float
) -> float:
    """Revert the old transaction's effect, then apply the new one."""
    scale = max(abs(current), abs(old_quantity), abs(new_quantity))
    reverted = current - signed_delta(old_kind, old_quantity)
    return normalize_quantity(reverted + signed_delta(new_kind, new_quantity), scale)


def quantity_after_delete(current: float, kind: str, quantity: float) -> float:
    """Holding quantity after reverting a deleted transaction."""
    scale = max(abs(current), abs(quantity))
    return normalize_quantity(current - signed_delta(kind, quantity), scale)


@dataclass
class LedgerTotals:
    """Net position derived from replaying a ledger."""
    quantity: float = 0.0
    invested: float = 0.0  # Σ buy qty×price − Σ sell qty×price
    scale: float = 0.0  # Largest |qty| seen, the magnitude for residue snapping

    def apply(self, kind: str, quantity: float, price: float) -> None:
        self.quantity += signed_delta(kind, quantity)
        self.invested += signed_delta(kind, quantity) * price
        self.scale = max(self.scale, abs(quantity))


def replay(entries: Iterable[Tuple[str, float, float]]) -> LedgerTotals:
    """
    Replay (kind, quantity, price) entries into net quantity and invested capital.

    Example:
        >>> totals = replay([("buy", 2, 100.0), ("sell", 1, 150.0)])
        >>> (totals.quantity, totals.invested)
        (1.0, 50.0)
    """
    totals = LedgerTotals()
    for kind, quantity, price in entries:
        totals.apply(kind, quantity, price)
    totals.quantity = normalize_quantity(totals.quantity, totals.scale)
    return totals
