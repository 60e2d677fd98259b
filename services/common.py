"""
Common utilities and shared functions.
Input normalization for transaction fields: kind, amounts, dates and coin metadata.
"""

import logging
import math
from datetime import date, datetime, time, timezone
from typing import Any, Optional

from models import utc_now
from services.errors import InvalidInput, Unauthenticated

logger = logging.getLogger(__name__)

BUY = "buy"
SELL = "sell"
TRANSACTION_TYPES = (BUY, SELL)


def require_owner(owner_id: Optional[int]) -> int:
    """Return the caller's owner id, or raise Unauthenticated when there is none."""
    if owner_id is None or isinstance(owner_id, bool):
        raise Unauthenticated()
    return owner_id


def parse_kind(value: Any) -> str:
    """
    Normalize a transaction kind.

    Examples:
        >>> parse_kind("BUY")
        'buy'
        >>> parse_kind(" sell ")
        'sell'
    """
    if isinstance(value, str):
        kind = value.strip().lower()
        if kind in TRANSACTION_TYPES:
            return kind
    raise InvalidInput("Invalid transaction type")


def parse_positive_number(value: Any, field: str) -> float:
    """
    Parse a finite, strictly positive number.
    Accepts ints, floats and numeric strings; rejects booleans, NaN and infinities.
    """
    if value is None or isinstance(value, bool):
        raise InvalidInput(f"Missing or invalid {field}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"Invalid {field}")
    if not math.isfinite(number) or number <= 0:
        raise InvalidInput(f"{field.capitalize()} must be a positive number")
    return number


def parse_effective_date(value: Any, default_now: bool = True) -> datetime:
    """
    Parse a user-supplied effective date into a timezone-aware UTC datetime.

    Accepts datetime, date (midnight), or ISO 8601 strings (a trailing 'Z' is
    allowed). Values without an offset are taken as UTC; aware values are
    converted to UTC. Missing values default to now when default_now is set.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if default_now:
            return utc_now()
        raise InvalidInput("Missing date")

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise InvalidInput("Invalid date")
    else:
        raise InvalidInput("Invalid date")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def normalize_asset_id(value: Any) -> str:
    """CoinGecko ids are lowercase slugs, e.g. 'bitcoin', 'usd-coin'."""
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput("Missing coin id")
    return value.strip().lower()


def normalize_symbol(symbol: Optional[str], asset_id: str) -> str:
    """
    Uppercase a ticker symbol, falling back to the coin id.

    Examples:
        >>> normalize_symbol("btc", "bitcoin")
        'BTC'
        >>> normalize_symbol(None, "bitcoin")
        'BITCOIN'
    """
    if symbol and symbol.strip():
        return symbol.strip().upper()
    return asset_id.upper()


def normalize_name(name: Optional[str], asset_id: str) -> str:
    """Display name, falling back to a title-cased coin id."""
    if name and name.strip():
        return name.strip()
    return asset_id.replace("-", " ").title()


def parse_transaction_id(value: Any) -> int:
    """Transaction ids are positive integers; numeric strings are accepted."""
    if value is None or isinstance(value, bool):
        raise InvalidInput("Missing transaction ID")
    try:
        transaction_id = int(str(value).strip())
    except ValueError:
        raise InvalidInput("Invalid transaction ID")
    if transaction_id <= 0:
        raise InvalidInput("Invalid transaction ID")
    return transaction_id
