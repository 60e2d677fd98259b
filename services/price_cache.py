"""
Time-to-live cache for market prices.
Owned by whoever renders the read path (e.g. a Streamlit session), never
module-global, so each caller controls its own expiry and refreshes.
"""

import logging
import threading
import time
from typing import Callable, Dict, Iterable, Optional, Tuple

logger = logging.getLogger(__name__)


class PriceCache:
    """
    Keyed cache whose entries expire after ttl_seconds.
    Expired entries are kept so they can still be served as a fallback.

    Args:
        ttl_seconds: Lifetime of an entry
        clock: Monotonic time source (injectable for tests)
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds must be non-negative")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, float]] = {}  # key -> (stored_at, value)
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[float]:
        """Fresh value for key, or None if missing or expired."""
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            return None
        return value

    def get_stale(self, key: str) -> Optional[float]:
        """Last known value for key regardless of age."""
        with self._lock:
            entry = self._entries.get(key)
        return entry[1] if entry else None

    def set(self, key: str, value: float) -> None:
        with self._lock:
            self._entries[key] = (self._clock(), value)

    def set_many(self, values: Dict[str, float]) -> None:
        now = self._clock()
        with self._lock:
            for key, value in values.items():
                self._entries[key] = (now, value)

    def invalidate(self, key: Optional[str] = None) -> None:
        """Drop one key, or everything when key is None."""
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def missing(self, keys: Iterable[str]) -> list:
        """Keys with no fresh value."""
        return [k for k in keys if self.get(k) is None]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
