"""
Deposit event pipeline.

Wires verification, duplicate detection, tier classification and
minting together for every incoming deposit event.

Processing order per event:
1. Persist the raw deposit and announce it
2. Verify - stop on the first failed check
3. Duplicate check - stop if the event repeats a known deposit
4. Classify and mint, when auto-mint is enabled
"""

import hmac
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from .duplicates import is_duplicate
from .minter import ERROR_ALREADY_PROCESSED, AttestationMinter, MintResult
from .notifications import (
    ATTESTATION_MINTED,
    DEPOSIT_RECEIVED,
    VERIFICATION_RESULT,
    NotificationBroker,
)
from .privacy import PrivacyTier, classify
from .verifier import DepositVerifier
from scotopia.storage.models import Deposit, DepositEvent
from scotopia.storage.repository import DepositRepository

logger = logging.getLogger(__name__)

REASON_DUPLICATE = "Duplicate deposit"
ERROR_NOT_FOUND = "Deposit not found"


class Unauthorized(PermissionError):
    """Raised when an administrative call presents a wrong credential."""


class PipelineStage(Enum):
    """Furthest stage a deposit event reached."""
    REJECTED = "rejected"
    DUPLICATE = "duplicate"
    VERIFIED = "verified"
    MINTED = "minted"
    MINT_FAILED = "mint_failed"


@dataclass(frozen=True)
class PipelineOutcome:
    """What happened to one deposit event."""
    deposit_id: str
    stage: PipelineStage
    reason: Optional[str] = None
    tier: Optional[str] = None
    mint_result: Optional[MintResult] = None


@dataclass
class PipelineStatus:
    """Snapshot of stored pipeline state."""
    mode: str
    deposits: int
    attestations: int
    recent_events: List[Deposit] = field(default_factory=list)


class DepositPipeline:
    """Processes deposit events one at a time.

    Events are handled under a lock, so a source that delivers from
    several threads cannot interleave the duplicate check and the
    insert of two events.
    """

    def __init__(
        self,
        repository: DepositRepository,
        verifier: DepositVerifier,
        minter: AttestationMinter,
        broker: NotificationBroker,
        tiers: Sequence[PrivacyTier],
        auto_mint: bool = False,
        admin_api_key: Optional[str] = None,
        mode: str = "mock"
    ):
        self.repository = repository
        self.verifier = verifier
        self.minter = minter
        self.broker = broker
        self.tiers = list(tiers)
        self.auto_mint = auto_mint
        self.mode = mode
        self._admin_api_key = admin_api_key
        self._lock = threading.Lock()

    def handle(self, event: DepositEvent) -> PipelineOutcome:
        """Run one deposit event through the pipeline.

        Validation and duplicate failures are reported in the outcome and
        broadcast; they never raise.

        Raises:
            sqlite3.Error: If the deposit or its attestation cannot be stored
        """
        with self._lock:
            return self._process(event)

    def on_event(self, event: DepositEvent) -> None:
        """Source callback; errors are logged so the listener keeps running."""
        try:
            self.handle(event)
        except Exception:
            logger.exception("Error processing deposit %s", event.id)

    def _process(self, event: DepositEvent) -> PipelineOutcome:
        logger.info("Processing deposit event %s", event.id)

        prior = self.repository.find_deposits_by_tx_ref(event.tx_ref)
        known = self.repository.get_deposit(event.id)
        if known is not None and all(d.id != known.id for d in prior):
            prior.append(known)

        deposit = event.to_deposit()
        if not self.repository.insert_deposit(deposit):
            logger.info("Deposit %s already stored, not re-inserted", deposit.id)

        self.broker.publish(DEPOSIT_RECEIVED, deposit.to_payload())

        verification = self.verifier.verify(deposit)
        if not verification.valid:
            logger.warning(
                "Deposit verification failed: deposit_id=%s reason=%s",
                deposit.id, verification.reason
            )
            self._publish_verification(deposit.id, False, verification.reason)
            return PipelineOutcome(deposit.id, PipelineStage.REJECTED, verification.reason)

        if is_duplicate(deposit, prior):
            logger.warning("Duplicate deposit detected: deposit_id=%s", deposit.id)
            self._publish_verification(deposit.id, False, REASON_DUPLICATE)
            return PipelineOutcome(deposit.id, PipelineStage.DUPLICATE, REASON_DUPLICATE)

        self._publish_verification(deposit.id, True)

        if not self.auto_mint:
            return PipelineOutcome(deposit.id, PipelineStage.VERIFIED)

        # TODO: decide with product whether NO_TIER deposits should be minted at all
        assignment = classify(deposit.amount, self.tiers)
        result = self.minter.mint(deposit, assignment.tier)
        if not result.success:
            logger.error("Auto-mint failed for deposit %s: %s", deposit.id, result.error)
            return PipelineOutcome(
                deposit.id, PipelineStage.MINT_FAILED, result.error,
                tier=assignment.tier, mint_result=result
            )

        self._publish_minted(deposit.id, deposit.wallet, assignment.tier, result.token_id)
        return PipelineOutcome(
            deposit.id, PipelineStage.MINTED,
            tier=assignment.tier, mint_result=result
        )

    def force_mint(self, api_key: str, address: str, deposit_id: str) -> MintResult:
        """Mint the attestation of a stored deposit on administrator request.

        The token goes to the deposit's own wallet; address is echoed in
        the broadcast.

        Raises:
            Unauthorized: If api_key does not match the admin key
        """
        if not self._admin_api_key or not hmac.compare_digest(
            (api_key or "").encode(), self._admin_api_key.encode()
        ):
            raise Unauthorized("Unauthorized")

        with self._lock:
            deposit = self.repository.get_deposit(deposit_id)
            if deposit is None:
                return MintResult(success=False, error=ERROR_NOT_FOUND)
            if deposit.processed:
                return MintResult(success=False, error=ERROR_ALREADY_PROCESSED)

            tier = classify(deposit.amount, self.tiers).tier
            result = self.minter.mint(deposit, tier)

        if result.success:
            self._publish_minted(deposit_id, address, tier, result.token_id)
        return result

    def status(self, recent: int = 5) -> PipelineStatus:
        return PipelineStatus(
            mode=self.mode,
            deposits=self.repository.count_deposits(),
            attestations=self.repository.count_attestations(),
            recent_events=self.repository.recent_deposits(recent)
        )

    def _publish_verification(self, deposit_id: str, valid: bool, reason: Optional[str] = None) -> None:
        payload: Dict[str, Any] = {"depositId": deposit_id, "valid": valid}
        if reason is not None:
            payload["reason"] = reason
        self.broker.publish(VERIFICATION_RESULT, payload)

    def _publish_minted(self, deposit_id: str, address: str, tier: str, token_id: Optional[str]) -> None:
        self.broker.publish(ATTESTATION_MINTED, {
            "depositId": deposit_id,
            "address": address,
            "tier": tier,
            "tokenId": token_id,
        })
