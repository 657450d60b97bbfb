"""
Shared fixtures for Scotopia tests.
"""

import os
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

from scotopia.storage.models import Deposit, DepositEvent
from scotopia.storage.repository import initialize_schema

WALLET = "0x742d35Cc6634C0532925a3b844Bc9e7595f0bEb"
START = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


def make_deposit(clock=None, **overrides) -> Deposit:
    """Create a valid deposit, observed at the clock's current time."""
    now = clock() if clock else datetime.now(timezone.utc)
    values = dict(
        id="test-1",
        tx_ref="0x123",
        wallet=WALLET,
        amount=10.5,
        token="USDC",
        observed_at=now,
    )
    values.update(overrides)
    return Deposit(**values)


def make_event(clock=None, **overrides) -> DepositEvent:
    """Create a valid deposit event, observed at the clock's current time."""
    deposit = make_deposit(clock, **overrides)
    return DepositEvent(
        id=deposit.id,
        tx_ref=deposit.tx_ref,
        wallet=deposit.wallet,
        amount=deposit.amount,
        token=deposit.token,
        observed_at=deposit.observed_at,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db_path():
    """Path to a freshly initialized database in a temporary directory."""
    with tempfile.TemporaryDirectory() as temp_dir:
        path = os.path.join(temp_dir, "test.db")
        initialize_schema(path)
        yield path
