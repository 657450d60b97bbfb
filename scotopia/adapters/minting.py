"""
Minting capabilities.

Chain specific implementations of the attestation mint. Each one takes a
recipient wallet, a tier label and an optional metadata URI and returns
the external token id, raising on any failure.
"""

import logging
import os
import time
from typing import Optional

from eth_account import Account
from web3 import Web3

from scotopia.config.loader import AppConfig, EthereumConfig, Mode
from scotopia.core.minter import MintingCapability

logger = logging.getLogger(__name__)

DEFAULT_METADATA_BASE = "https://scotopia.io/attestations"
GAS_BUFFER = 10000

ATTESTATION_ABI = [
    {"inputs": [{"internalType": "address", "name": "to", "type": "address"},
                {"internalType": "string", "name": "metadataUri", "type": "string"}],
     "name": "mintAttestation",
     "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
     "stateMutability": "nonpayable", "type": "function"},
    {"inputs": [{"internalType": "address", "name": "to", "type": "address"},
                {"internalType": "uint256", "name": "tierId", "type": "uint256"}],
     "name": "mintTier",
     "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
     "stateMutability": "nonpayable", "type": "function"},
]


class MockMintingCapability:
    """Pretends to mint and returns a timestamp based token id."""

    def __init__(self, prefix: str = "mock"):
        self.prefix = prefix

    def mint(self, wallet: str, tier: str, metadata_uri: Optional[str] = None) -> str:
        logger.info("Mock mint: prefix=%s wallet=%s tier=%s", self.prefix, wallet, tier)
        return f"{self.prefix}-{int(time.time() * 1000)}"


class EthereumMintingCapability:
    """Mints through the soulbound attestation contract with web3.py.

    Transactions are signed locally with the operator key and the call
    blocks until the receipt arrives or receipt_timeout expires.
    """

    def __init__(self, config: EthereumConfig, private_key: Optional[str] = None, web3: Optional[Web3] = None):
        """
        Args:
            config: Ethereum endpoint settings
            private_key: Operator key, ETH_PRIVATE_KEY when omitted
            web3: Pre-built client, mainly for tests

        Raises:
            ValueError: If the endpoint, contract or key is missing
        """
        if not config.rpc_url or not config.contract_address:
            raise ValueError("Ethereum configuration incomplete")

        private_key = private_key or os.environ.get("ETH_PRIVATE_KEY")
        if not private_key:
            raise ValueError("ETH_PRIVATE_KEY must be set for Ethereum minting")

        self.config = config
        self.w3 = web3 or Web3(Web3.HTTPProvider(config.rpc_url))
        self.account = Account.from_key(private_key)
        self.contract = self.w3.eth.contract(
            address=Web3.to_checksum_address(config.contract_address),
            abi=ATTESTATION_ABI
        )

        logger.info(
            "Ethereum minter initialized: address=%s contract=%s",
            self.account.address, config.contract_address
        )

    def mint(self, wallet: str, tier: str, metadata_uri: Optional[str] = None) -> str:
        uri = metadata_uri or f"{DEFAULT_METADATA_BASE}/{wallet}/{tier}"
        call = self.contract.functions.mintAttestation(Web3.to_checksum_address(wallet), uri)

        gas_estimate = call.estimate_gas({"from": self.account.address})
        logger.info("Gas estimate: %s", gas_estimate)

        tx = call.build_transaction({
            "from": self.account.address,
            "nonce": self.w3.eth.get_transaction_count(self.account.address),
            "gas": gas_estimate + GAS_BUFFER,
            "chainId": self.config.chain_id,
        })
        signed = self.account.sign_transaction(tx)
        tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        logger.info("Transaction sent: tx_hash=%s", Web3.to_hex(tx_hash))

        receipt = self.w3.eth.wait_for_transaction_receipt(
            tx_hash, timeout=self.config.receipt_timeout
        )
        if receipt["status"] != 1:
            raise RuntimeError(f"Mint transaction reverted: {Web3.to_hex(tx_hash)}")

        return _token_id_from_receipt(receipt)


def _token_id_from_receipt(receipt) -> str:
    """Read the token id from the Transfer log of a mint receipt.

    ERC-721 Transfer indexes the token id as the fourth topic. Receipts
    without such a log fall back to the transaction hash.
    """
    for log in receipt["logs"]:
        topics = log["topics"]
        if len(topics) == 4:
            return str(int.from_bytes(bytes(topics[3]), "big"))

    logger.warning("No Transfer log in mint receipt, using transaction hash as token id")
    return Web3.to_hex(receipt["transactionHash"])


def build_minting_capability(config: AppConfig) -> MintingCapability:
    """Select the minting capability for the configured mode.

    Raises:
        ValueError: If the selected chain is not fully configured
    """
    if config.mode == Mode.ETHEREUM:
        return EthereumMintingCapability(config.ethereum)
    if config.mode == Mode.SOLANA:
        # Solana minting is not wired to a program yet
        return MockMintingCapability(prefix="sol-mock")
    return MockMintingCapability()
