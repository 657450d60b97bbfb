"""
Data models for storage layer.

Defines deposit and attestation records.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Deposit:
    """Inbound value transfer observed on a deposit source.

    The processed flag flips from False to True exactly once, when an
    attestation has been minted for the deposit. Use mark_processed()
    to obtain the processed copy.
    """
    id: str
    tx_ref: str
    wallet: str
    amount: float
    token: str
    observed_at: datetime
    processed: bool = False
    created_at: datetime = field(default_factory=utc_now)

    def mark_processed(self) -> "Deposit":
        """Return a copy of this deposit with the processed flag set."""
        return replace(self, processed=True)

    def to_payload(self) -> Dict[str, Any]:
        """Serialize to the payload broadcast to subscribers."""
        return {
            "id": self.id,
            "txid": self.tx_ref,
            "wallet": self.wallet,
            "amount": self.amount,
            "token": self.token,
            "timestamp": self.observed_at.isoformat(),
            "processed": self.processed,
        }


@dataclass(frozen=True)
class Attestation:
    """Record of a minted soulbound attestation.

    Holds the tier label only; the exact deposit amount is never stored
    here.
    """
    id: str
    deposit_id: str
    wallet: str
    tier: str
    token_id: Optional[str]
    minted_at: datetime
    metadata: str


@dataclass(frozen=True)
class DepositEvent:
    """Raw deposit event as emitted by a deposit source."""
    id: str
    tx_ref: str
    wallet: str
    amount: float
    token: str
    observed_at: datetime

    def to_deposit(self) -> Deposit:
        """New unprocessed deposit for this event, stamped with the current time."""
        return Deposit(
            id=self.id,
            tx_ref=self.tx_ref,
            wallet=self.wallet,
            amount=self.amount,
            token=self.token,
            observed_at=self.observed_at,
        )
