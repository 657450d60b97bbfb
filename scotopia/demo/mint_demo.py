# scotopia/demo/mint_demo.py

from datetime import datetime, timezone
from typing import List

from rich.console import Console

from scotopia.config.loader import AppConfig
from scotopia.core.minter import AttestationMinter, MintingCapability, MintResult
from scotopia.core.privacy import classify
from scotopia.storage.models import Deposit
from scotopia.storage.repository import DepositRepository, initialize_schema


def demo_deposits() -> List[Deposit]:
    now = datetime.now(timezone.utc)
    stamp = int(now.timestamp())
    return [
        Deposit(
            id=f"demo-1-{stamp}",
            tx_ref="0x" + "1" * 64,
            wallet="0x3FfC1234567890abcdef1234567890ABCDEFABCD",
            amount=12.5,
            token="USDC",
            observed_at=now,
        ),
        Deposit(
            id=f"demo-2-{stamp}",
            tx_ref="0x" + "2" * 64,
            wallet="0x4A8b567890ABCDEFabcdef1234567890abcdef12",
            amount=150.0,
            token="USDC",
            observed_at=now,
        ),
    ]


def run_demo(config: AppConfig, capability: MintingCapability, console: Console) -> List[MintResult]:
    """Store and mint the demo deposits, printing each result."""
    initialize_schema(config.database_path)
    repository = DepositRepository(config.database_path)
    minter = AttestationMinter(repository, capability)

    console.print("[bold]Scotopia Mint Demo[/bold]")
    console.print(f"Mode: {config.mode.value}\n")

    results = []
    for deposit in demo_deposits():
        repository.insert_deposit(deposit)
        tier = classify(deposit.amount, config.tiers)
        console.print(f"Minting attestation for {deposit.wallet} ({tier.tier})...")

        result = minter.mint(deposit, tier.tier)
        if result.success:
            console.print("[green]✓[/] Minted successfully")
            console.print(f"   Attestation ID: {result.attestation_id}")
            console.print(f"   Token ID: {result.token_id}")
        else:
            console.print(f"[red]✗[/] Failed: {result.error}")
        console.print()
        results.append(result)

    console.print("Demo complete!")
    return results
