"""
CLI interface for Scotopia.

Runs the deposit listener and exposes the administrative and read-only
operations from the command line.
"""

import logging
import sys
import time
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from scotopia.adapters.minting import build_minting_capability
from scotopia.adapters.sources import build_source
from scotopia.config.loader import AppConfig, load_config
from scotopia.core.minter import AttestationMinter, MintingCapability
from scotopia.core.notifications import Notification, NotificationBroker
from scotopia.core.pipeline import DepositPipeline, Unauthorized
from scotopia.core.privacy import classify
from scotopia.core.verifier import DepositVerifier
from scotopia.demo.mint_demo import run_demo
from scotopia.storage.repository import DepositRepository, initialize_schema

app = typer.Typer()
console = Console()
logger = logging.getLogger(__name__)

EXIT_CODE_OK = 0
EXIT_CODE_FAIL = 1


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True)],
        force=True,
    )


def build_pipeline(config: AppConfig, capability: MintingCapability) -> DepositPipeline:
    """Wire the pipeline components for a configuration."""
    repository = DepositRepository(config.database_path)
    return DepositPipeline(
        repository=repository,
        verifier=DepositVerifier(config.verifier),
        minter=AttestationMinter(repository, capability),
        broker=NotificationBroker(),
        tiers=config.tiers,
        auto_mint=config.auto_mint,
        admin_api_key=config.security.admin_api_key,
        mode=config.mode.value,
    )


def _pipeline_or_exit(config: AppConfig) -> DepositPipeline:
    try:
        capability = build_minting_capability(config)
    except ValueError as e:
        console.print(f"[red]Configuration error:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)
    initialize_schema(config.database_path)
    return build_pipeline(config, capability)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to YAML configuration file"
    ),
    log_level: str = typer.Option(
        "INFO",
        "--log-level",
        help="Logging level"
    )
):
    """Scotopia deposit attestation service."""
    _configure_logging(log_level)
    try:
        ctx.obj = load_config(config_path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Configuration error:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)

    if ctx.invoked_subcommand is None:
        console.print("Scotopia - Use --help to see available commands")


@app.command()
def init(ctx: typer.Context):
    """Initialize the Scotopia database."""
    config: AppConfig = ctx.obj
    try:
        initialize_schema(config.database_path)
        console.print("[green]✓[/] Database initialized successfully")
        sys.exit(EXIT_CODE_OK)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def status(ctx: typer.Context):
    """Show deposit and attestation counts and the latest deposits."""
    config: AppConfig = ctx.obj
    initialize_schema(config.database_path)
    repository = DepositRepository(config.database_path)

    console.print(f"\n[bold]Mode:[/bold] {config.mode.value}")
    console.print(f"[bold]Deposits:[/bold] {repository.count_deposits()}")
    console.print(f"[bold]Attestations:[/bold] {repository.count_attestations()}")

    recent = repository.recent_deposits(5)
    if recent:
        table = Table(title="Recent deposits")
        table.add_column("ID")
        table.add_column("Wallet")
        table.add_column("Tier")
        table.add_column("Processed")
        for deposit in recent:
            table.add_row(
                deposit.id,
                deposit.wallet,
                classify(deposit.amount, config.tiers).tier,
                "yes" if deposit.processed else "no",
            )
        console.print(table)


@app.command()
def run(
    ctx: typer.Context,
    duration: Optional[float] = typer.Option(
        None,
        "--duration",
        help="Stop after this many seconds instead of running until interrupted"
    )
):
    """Listen for deposits and process them until interrupted."""
    config: AppConfig = ctx.obj
    pipeline = _pipeline_or_exit(config)

    def show(notification: Notification) -> None:
        console.print(f"[cyan]{notification.topic}[/] {notification.payload}")

    pipeline.broker.subscribe(show)

    source = build_source(config)
    source.subscribe(pipeline.on_event)
    try:
        source.start()
    except ValueError as e:
        console.print(f"[red]Configuration error:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)

    logger.info("Scotopia listener started: mode=%s auto_mint=%s", config.mode.value, config.auto_mint)
    started = time.monotonic()
    try:
        while duration is None or time.monotonic() - started < duration:
            time.sleep(0.5)
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully...")
    finally:
        source.stop()


@app.command()
def mint(
    ctx: typer.Context,
    address: str = typer.Option(..., "--address", "-a", help="Recipient wallet address"),
    deposit_id: str = typer.Option(..., "--deposit-id", "-d", help="Stored deposit to attest"),
    api_key: str = typer.Option(
        ...,
        "--api-key",
        envvar="ADMIN_API_KEY",
        help="Administrator API key"
    )
):
    """Force-mint the attestation of a stored deposit."""
    config: AppConfig = ctx.obj
    pipeline = _pipeline_or_exit(config)

    try:
        result = pipeline.force_mint(api_key, address, deposit_id)
    except Unauthorized:
        console.print("[red]Unauthorized[/]")
        sys.exit(EXIT_CODE_FAIL)

    if not result.success:
        console.print(f"[red]Mint failed:[/] {result.error}")
        sys.exit(EXIT_CODE_FAIL)

    console.print("[green]✓[/] Attestation minted")
    console.print(f"Attestation ID: {result.attestation_id}")
    console.print(f"Token ID: {result.token_id}")


@app.command()
def attestations(ctx: typer.Context, wallet: str = typer.Argument(..., help="Wallet address")):
    """List attestations issued to a wallet."""
    config: AppConfig = ctx.obj
    initialize_schema(config.database_path)
    records = DepositRepository(config.database_path).find_attestations_by_wallet(wallet)

    if not records:
        console.print(f"[dim]No attestations for {wallet}[/]")
        return

    table = Table(title=f"Attestations for {wallet}")
    table.add_column("ID")
    table.add_column("Deposit")
    table.add_column("Tier")
    table.add_column("Token ID")
    table.add_column("Minted at")
    for record in records:
        table.add_row(record.id, record.deposit_id, record.tier, record.token_id or "-", record.minted_at.isoformat())
    console.print(table)


@app.command()
def deposits(ctx: typer.Context, wallet: str = typer.Argument(..., help="Wallet address")):
    """List deposits made by a wallet, showing tiers instead of amounts."""
    config: AppConfig = ctx.obj
    initialize_schema(config.database_path)
    records = DepositRepository(config.database_path).find_deposits_by_wallet(wallet)

    if not records:
        console.print(f"[dim]No deposits for {wallet}[/]")
        return

    table = Table(title=f"Deposits for {wallet}")
    table.add_column("ID")
    table.add_column("Tier")
    table.add_column("Token")
    table.add_column("Observed at")
    table.add_column("Processed")
    for record in records:
        table.add_row(
            record.id,
            classify(record.amount, config.tiers).tier,
            record.token,
            record.observed_at.isoformat(),
            "yes" if record.processed else "no",
        )
    console.print(table)


@app.command(name="classify")
def classify_amount(ctx: typer.Context, amount: float = typer.Argument(..., help="Deposit amount")):
    """Show the privacy tier an amount falls into."""
    config: AppConfig = ctx.obj
    assignment = classify(amount, config.tiers)
    console.print(f"Tier: [bold]{assignment.tier}[/bold]")
    console.print(f"Published amount: {assignment.amount:g}")


@app.command()
def demo(ctx: typer.Context):
    """Mint attestations for two demo deposits."""
    config: AppConfig = ctx.obj
    try:
        capability = build_minting_capability(config)
    except ValueError as e:
        console.print(f"[red]Configuration error:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)

    results = run_demo(config, capability, console)
    if not all(result.success for result in results):
        sys.exit(EXIT_CODE_FAIL)


if __name__ == "__main__":
    app()
