"""
Duplicate deposit detection.
"""

from typing import Iterable

from scotopia.storage.models import Deposit


def is_duplicate(candidate: Deposit, prior_deposits: Iterable[Deposit]) -> bool:
    """Check whether candidate repeats an already known deposit.

    A prior deposit matches when it shares either the transaction
    reference or the identifier. The caller chooses the comparison set,
    typically the stored deposits with the same transaction reference.
    """
    return any(
        prior.tx_ref == candidate.tx_ref or prior.id == candidate.id
        for prior in prior_deposits
    )
