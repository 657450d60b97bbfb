"""
Per-wallet sliding window rate limiting.

State lives in memory only and resets when the process restarts.
"""

import threading
from collections import deque
from datetime import datetime, timedelta
from typing import Callable, Deque, Dict

from scotopia.storage.models import utc_now

Clock = Callable[[], datetime]


class SlidingWindowRateLimiter:
    """Counts acceptances per wallet inside a sliding time window.

    Each wallet maps to a time-ordered deque of acceptance times. Entries
    older than the window are pruned on every call, and wallets with no
    remaining entries are dropped from the ledger.
    """

    def __init__(
        self,
        window: timedelta,
        max_events: int,
        clock: Clock = utc_now
    ):
        if window.total_seconds() <= 0:
            raise ValueError("window must be > 0")
        if max_events <= 0:
            raise ValueError("max_events must be > 0")

        self.window = window
        self.max_events = max_events
        self._clock = clock
        self._ledger: Dict[str, Deque[datetime]] = {}
        self._lock = threading.Lock()

    def try_acquire(self, wallet: str) -> bool:
        """Record an acceptance for wallet if it is under the ceiling.

        Returns:
            True if the acceptance was recorded, False if the wallet has
            already reached max_events inside the window
        """
        with self._lock:
            now = self._clock()
            self._prune(now)

            timestamps = self._ledger.get(wallet)
            if timestamps is not None and len(timestamps) >= self.max_events:
                return False

            self._ledger.setdefault(wallet, deque()).append(now)
            return True

    def count(self, wallet: str) -> int:
        """Acceptances currently inside the window for wallet."""
        with self._lock:
            self._prune(self._clock())
            return len(self._ledger.get(wallet, ()))

    def reset(self) -> None:
        with self._lock:
            self._ledger.clear()

    def _prune(self, now: datetime) -> None:
        cutoff = now - self.window
        for wallet in list(self._ledger):
            timestamps = self._ledger[wallet]
            while timestamps and timestamps[0] <= cutoff:
                timestamps.popleft()
            if not timestamps:
                del self._ledger[wallet]
