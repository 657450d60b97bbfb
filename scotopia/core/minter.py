"""
Attestation minting orchestration.

Guards against double minting, delegates the on-chain mint to a
minting capability and records the resulting attestation.

Ordering:
1. Processed-flag check - a processed deposit is never minted again
2. External mint - failures leave no local trace and are safe to retry
3. Attestation insert and processed flip, in one storage transaction

A crash between steps 2 and 3 leaves a minted token without a local
record. Reconciliation against chain state is not performed here.
"""

import json
import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional, Protocol

from scotopia.storage.models import Attestation, Deposit, utc_now
from scotopia.storage.repository import DepositRepository
from .rate_limiter import Clock

logger = logging.getLogger(__name__)

ERROR_ALREADY_PROCESSED = "Deposit already processed"


class MintingCapability(Protocol):
    """External mint of a soulbound attestation token."""

    def mint(self, wallet: str, tier: str, metadata_uri: Optional[str] = None) -> str:
        """Mint a token for wallet and return its external token id."""
        ...


@dataclass(frozen=True)
class MintResult:
    """Outcome of a mint attempt."""
    success: bool
    attestation_id: Optional[str] = None
    token_id: Optional[str] = None
    error: Optional[str] = None


class AttestationMinter:
    """Mints at most one attestation per deposit."""

    def __init__(
        self,
        repository: DepositRepository,
        capability: MintingCapability,
        clock: Clock = utc_now
    ):
        self.repository = repository
        self.capability = capability
        self._clock = clock

    def mint(
        self,
        deposit: Deposit,
        tier: str,
        metadata_uri: Optional[str] = None
    ) -> MintResult:
        """Mint an attestation for a deposit.

        Args:
            deposit: Deposit being attested
            tier: Privacy tier label to attest
            metadata_uri: Optional token metadata location

        Returns:
            MintResult; a failure carries the error message and leaves
            the deposit unprocessed

        Raises:
            sqlite3.Error, LookupError: If the attestation cannot be
                recorded after the external mint succeeded
        """
        if deposit.processed:
            return MintResult(success=False, error=ERROR_ALREADY_PROCESSED)

        try:
            token_id = self.capability.mint(deposit.wallet, tier, metadata_uri)
        except Exception as e:
            logger.error("Failed to mint attestation for deposit %s: %s", deposit.id, e)
            return MintResult(success=False, error=str(e) or type(e).__name__)

        minted_at = self._clock()
        attestation = Attestation(
            id=str(uuid.uuid4()),
            deposit_id=deposit.id,
            wallet=deposit.wallet,
            tier=tier,
            token_id=str(token_id),
            minted_at=minted_at,
            metadata=json.dumps({
                "depositId": deposit.id,
                "tier": tier,
                "timestamp": int(minted_at.timestamp() * 1000),
                "metadataUri": metadata_uri,
            })
        )

        try:
            self.repository.record_attestation(attestation)
        except Exception:
            # The token exists on chain; surface it so it can be reconciled
            logger.exception(
                "Token %s minted for deposit %s but the attestation was not recorded",
                token_id, deposit.id
            )
            raise

        logger.info(
            "Attestation minted: attestation_id=%s wallet=%s tier=%s token_id=%s",
            attestation.id, deposit.wallet, tier, token_id
        )
        return MintResult(
            success=True,
            attestation_id=attestation.id,
            token_id=attestation.token_id
        )

    def attestations_for(self, wallet: str) -> List[Attestation]:
        return self.repository.find_attestations_by_wallet(wallet)

    def get_attestation(self, attestation_id: str) -> Optional[Attestation]:
        return self.repository.get_attestation(attestation_id)
