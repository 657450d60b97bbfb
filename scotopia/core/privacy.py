"""
Privacy tier classification.

Maps an exact deposit amount to a named tier so only the tier's
threshold is ever revealed.
"""

from dataclasses import dataclass
from typing import Iterable

NO_TIER = "No Tier"


@dataclass(frozen=True)
class PrivacyTier:
    """Named bucket whose threshold is the inclusive minimum amount."""
    name: str
    threshold: float


@dataclass(frozen=True)
class TierAssignment:
    """Result of classifying an amount.

    amount is the bucketed value published in place of original_amount.
    """
    tier: str
    amount: float
    original_amount: float


def classify(amount: float, tiers: Iterable[PrivacyTier]) -> TierAssignment:
    """Assign the highest tier whose threshold does not exceed amount.

    Tiers may be given in any order. Amounts below every threshold
    (negative ones included) fall into NO_TIER with a bucketed amount
    of 0.

    Args:
        amount: Exact deposit amount
        tiers: Tier table

    Returns:
        TierAssignment for the amount
    """
    for tier in sorted(tiers, key=lambda t: t.threshold, reverse=True):
        if amount >= tier.threshold:
            return TierAssignment(
                tier=tier.name,
                amount=tier.threshold,
                original_amount=amount
            )

    return TierAssignment(tier=NO_TIER, amount=0, original_amount=amount)


def anonymize_amount(amount: float, tiers: Iterable[PrivacyTier]) -> float:
    """Bucketed amount that may be shown in place of the exact one."""
    return classify(amount, tiers).amount
