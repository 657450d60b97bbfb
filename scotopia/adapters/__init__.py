"""
Chain adapters for Scotopia.

Deposit sources and minting capabilities for the supported chains.
"""

from .minting import EthereumMintingCapability, MockMintingCapability, build_minting_capability
from .sources import (
    DepositSource,
    EthereumDepositSource,
    MockDepositSource,
    SolanaDepositSource,
    build_source,
)

__all__ = [
    "DepositSource",
    "EthereumDepositSource",
    "EthereumMintingCapability",
    "MockDepositSource",
    "MockMintingCapability",
    "SolanaDepositSource",
    "build_minting_capability",
    "build_source",
]
