"""
Deposit verification.

Structural checks plus per-wallet rate limiting, applied in a fixed
order that stops at the first failure:

1. Amount must be positive
2. Timestamp must fall inside the freshness window
3. Timestamp must not be ahead of the clock beyond the skew allowance
4. Wallet address must be present and long enough
5. Wallet must be under its rate limit
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from .rate_limiter import Clock, SlidingWindowRateLimiter
from scotopia.storage.models import Deposit, utc_now

logger = logging.getLogger(__name__)

REASON_AMOUNT = "Deposit amount must be positive"
REASON_TOO_OLD = "Deposit timestamp too old"
REASON_IN_FUTURE = "Deposit timestamp in future"
REASON_WALLET = "Invalid wallet address"
REASON_RATE_LIMIT = "Rate limit exceeded"


@dataclass(frozen=True)
class VerifierConfig:
    """Limits applied by the deposit verifier."""
    max_age_hours: float = 24
    max_future_skew_seconds: float = 60
    min_wallet_length: int = 20
    rate_limit_window_seconds: float = 60
    rate_limit_max_events: int = 10

    def __post_init__(self):
        """Validate limits are positive."""
        if self.max_age_hours <= 0:
            raise ValueError("max_age_hours must be > 0")
        if self.max_future_skew_seconds < 0:
            raise ValueError("max_future_skew_seconds cannot be negative")
        if self.min_wallet_length <= 0:
            raise ValueError("min_wallet_length must be > 0")
        if self.rate_limit_window_seconds <= 0:
            raise ValueError("rate_limit_window_seconds must be > 0")
        if self.rate_limit_max_events <= 0:
            raise ValueError("rate_limit_max_events must be > 0")


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of verifying one deposit."""
    valid: bool
    reason: Optional[str] = None


class DepositVerifier:
    """Validates incoming deposits before they may be attested."""

    def __init__(
        self,
        config: VerifierConfig = VerifierConfig(),
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
        clock: Clock = utc_now
    ):
        """Initialize the verifier.

        Args:
            config: Verification limits
            rate_limiter: Shared per-wallet limiter; one is built from
                config when omitted
            clock: Source of the current time
        """
        self.config = config
        self._clock = clock
        self.rate_limiter = rate_limiter or SlidingWindowRateLimiter(
            window=timedelta(seconds=config.rate_limit_window_seconds),
            max_events=config.rate_limit_max_events,
            clock=clock
        )

    def verify(self, deposit: Deposit) -> VerificationResult:
        """Run all checks against a deposit.

        Only a deposit that passes every check consumes a rate limit slot.

        Args:
            deposit: Deposit to check

        Returns:
            VerificationResult with the reason of the first failed check
        """
        if not deposit.amount > 0:
            return self._reject(deposit, REASON_AMOUNT, f"amount={deposit.amount}")

        now = self._clock()
        observed_at = _as_utc(deposit.observed_at)

        if observed_at < now - timedelta(hours=self.config.max_age_hours):
            return self._reject(deposit, REASON_TOO_OLD, f"timestamp={observed_at.isoformat()}")

        if observed_at > now + timedelta(seconds=self.config.max_future_skew_seconds):
            return self._reject(deposit, REASON_IN_FUTURE, f"timestamp={observed_at.isoformat()}")

        if not deposit.wallet or len(deposit.wallet) < self.config.min_wallet_length:
            return self._reject(deposit, REASON_WALLET, f"wallet={deposit.wallet!r}")

        if not self.rate_limiter.try_acquire(deposit.wallet):
            return self._reject(deposit, REASON_RATE_LIMIT, f"wallet={deposit.wallet}")

        return VerificationResult(valid=True)

    def _reject(self, deposit: Deposit, reason: str, detail: str) -> VerificationResult:
        logger.warning("%s: %s deposit_id=%s", reason, detail, deposit.id)
        return VerificationResult(valid=False, reason=reason)


def _as_utc(value: datetime) -> datetime:
    # Naive timestamps from sources are taken to be UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
