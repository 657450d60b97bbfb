"""
Tests for the sliding window rate limiter.
"""
import threading
from datetime import timedelta

import pytest

from scotopia.core.rate_limiter import SlidingWindowRateLimiter


class TestSlidingWindowRateLimiter:
    """Test per-wallet acceptance counting."""

    def test_allows_up_to_max_events(self, clock):
        limiter = SlidingWindowRateLimiter(timedelta(seconds=60), 3, clock=clock)

        assert [limiter.try_acquire("w") for _ in range(3)] == [True, True, True]
        assert limiter.try_acquire("w") is False
        assert limiter.count("w") == 3

    def test_wallets_are_independent(self, clock):
        limiter = SlidingWindowRateLimiter(timedelta(seconds=60), 1, clock=clock)

        assert limiter.try_acquire("a") is True
        assert limiter.try_acquire("b") is True
        assert limiter.try_acquire("a") is False

    def test_window_slides(self, clock):
        """Old acceptances expire once the window has passed."""
        limiter = SlidingWindowRateLimiter(timedelta(seconds=60), 2, clock=clock)
        limiter.try_acquire("w")
        clock.advance(30)
        limiter.try_acquire("w")
        assert limiter.try_acquire("w") is False

        clock.advance(30)  # first acceptance is now exactly 60s old
        assert limiter.try_acquire("w") is True
        assert limiter.try_acquire("w") is False

    def test_rejections_are_not_recorded(self, clock):
        limiter = SlidingWindowRateLimiter(timedelta(seconds=60), 1, clock=clock)
        limiter.try_acquire("w")
        for _ in range(5):
            limiter.try_acquire("w")
        assert limiter.count("w") == 1

    def test_idle_wallets_are_pruned(self, clock):
        limiter = SlidingWindowRateLimiter(timedelta(seconds=10), 5, clock=clock)
        limiter.try_acquire("w")
        clock.advance(11)
        limiter.try_acquire("other")
        assert "w" not in limiter._ledger

    def test_reset(self, clock):
        limiter = SlidingWindowRateLimiter(timedelta(seconds=60), 1, clock=clock)
        limiter.try_acquire("w")
        limiter.reset()
        assert limiter.try_acquire("w") is True

    def test_invalid_settings(self):
        with pytest.raises(ValueError, match="window must be > 0"):
            SlidingWindowRateLimiter(timedelta(0), 1)
        with pytest.raises(ValueError, match="max_events must be > 0"):
            SlidingWindowRateLimiter(timedelta(seconds=1), 0)

    def test_concurrent_acquires_respect_limit(self, clock):
        """Acceptances from many threads never exceed max_events."""
        limiter = SlidingWindowRateLimiter(timedelta(seconds=60), 5, clock=clock)
        barrier = threading.Barrier(20)
        results = []

        def acquire():
            barrier.wait()
            results.append(limiter.try_acquire("w"))

        threads = [threading.Thread(target=acquire) for _ in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count(True) == 5
        assert limiter.count("w") == 5
