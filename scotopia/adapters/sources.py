"""
Deposit sources.

A deposit source watches a chain (or fakes one) and hands every deposit
it sees to its subscribers as a DepositEvent. All variants share the
start/stop lifecycle and run their polling loop on a daemon thread.
"""

import logging
import random
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import httpx
from web3 import Web3

from scotopia.config.loader import AppConfig, EthereumConfig, MockConfig, Mode, SolanaConfig
from scotopia.storage.models import DepositEvent, utc_now

logger = logging.getLogger(__name__)

DepositHandler = Callable[[DepositEvent], None]

DEPOSIT_EVENT_ABI = [
    {"anonymous": False,
     "inputs": [{"indexed": True, "internalType": "address", "name": "user", "type": "address"},
                {"indexed": False, "internalType": "uint256", "name": "amount", "type": "uint256"},
                {"indexed": False, "internalType": "string", "name": "token", "type": "string"},
                {"indexed": False, "internalType": "uint256", "name": "timestamp", "type": "uint256"}],
     "name": "Deposit", "type": "event"},
]


class DepositSource(ABC):
    """Base class for deposit sources."""

    def __init__(self):
        self._handlers: List[DepositHandler] = []
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def subscribe(self, handler: DepositHandler) -> None:
        self._handlers.append(handler)

    def emit(self, event: DepositEvent) -> None:
        """Deliver an event to every subscriber.

        A failing handler is logged and does not stop delivery to the
        others or the polling loop.
        """
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception:
                logger.exception("Deposit handler failed for event %s", event.id)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Validate configuration and start the polling thread.

        Raises:
            ValueError: If the source is not fully configured
        """
        if self.running:
            return
        self._prepare()
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name=type(self).__name__, daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("%s stopped", type(self).__name__)

    def _prepare(self) -> None:
        """Hook run in the caller's thread before the loop starts."""

    @abstractmethod
    def _run(self) -> None:
        """Polling loop; must return once the stop event is set."""


SAMPLE_DEPOSITS = [
    {
        "id": "mock-1",
        "tx_ref": "0xabcdef1234567890abcdef1234567890abcdef1234567890abcdef1234567890",
        "wallet": "0x3FfC1234567890abcdef1234567890ABCDEFABCD",
        "amount": 12.5,
        "age_seconds": 10,
    },
    {
        "id": "mock-2",
        "tx_ref": "0xdef01234567890abcdef1234567890abcdef1234567890abcdef1234567890ab",
        "wallet": "0x4A8b567890ABCDEFabcdef1234567890abcdef12",
        "amount": 150.0,
        "age_seconds": 5,
    },
    {
        "id": "mock-3",
        "tx_ref": "0xfedcba0987654321fedcba0987654321fedcba0987654321fedcba0987654321",
        "wallet": "0x5C9c1234567890ABCDEFabcdef1234567890abcd",
        "amount": 5.75,
        "age_seconds": 0,
    },
    {
        "id": "mock-4",
        "tx_ref": "0x1234567890abcdef1234567890abcdef1234567890abcdef1234567890abcdef",
        "wallet": "0x6D0dABCDEFabcdef1234567890abcdef12345678",
        "amount": 250.5,
        "age_seconds": 0,
    },
    # Reuses mock-1's transaction reference to exercise duplicate detection
    {
        "id": "mock-5",
        "tx_ref": "0xabcdef1234567890abcdef1234567890abcdef1234567890abcdef1234567890",
        "wallet": "0x7E1eabcdef1234567890ABCDEFabcdef12345678",
        "amount": 1.25,
        "age_seconds": 0,
    },
]


class MockDepositSource(DepositSource):
    """Cycles through SAMPLE_DEPOSITS with a random delay between events."""

    def __init__(self, config: MockConfig, clock=utc_now, rng: Optional[random.Random] = None):
        super().__init__()
        self.config = config
        self._clock = clock
        self._rng = rng or random.Random()
        self._index = 0

    def next_event(self) -> DepositEvent:
        """Build the next sample event, stamped relative to now."""
        sample = SAMPLE_DEPOSITS[self._index % len(SAMPLE_DEPOSITS)]
        self._index += 1
        return DepositEvent(
            id=sample["id"],
            tx_ref=sample["tx_ref"],
            wallet=sample["wallet"],
            amount=sample["amount"],
            token="USDC",
            observed_at=self._clock() - timedelta(seconds=sample["age_seconds"]),
        )

    def _run(self) -> None:
        logger.info("Starting mock deposit event generator")
        while not self._stop_event.is_set():
            event = self.next_event()
            logger.info("Mock deposit event emitted: deposit_id=%s wallet=%s", event.id, event.wallet)
            self.emit(event)

            interval = self._rng.uniform(self.config.event_interval_min, self.config.event_interval_max)
            self._stop_event.wait(interval)


class EthereumDepositSource(DepositSource):
    """Polls the contract's Deposit event logs with web3.py."""

    def __init__(self, config: EthereumConfig, web3: Optional[Web3] = None):
        super().__init__()
        self.config = config
        self._w3 = web3
        self._contract = None
        self._next_block: Optional[int] = None

    def _prepare(self) -> None:
        if not self.config.rpc_url or not self.config.contract_address:
            raise ValueError("Ethereum RPC URL and contract address must be configured")

        if self._w3 is None:
            self._w3 = Web3(Web3.HTTPProvider(self.config.rpc_url))
        self._contract = self._w3.eth.contract(
            address=Web3.to_checksum_address(self.config.contract_address),
            abi=DEPOSIT_EVENT_ABI
        )
        self._next_block = self._w3.eth.block_number + 1
        logger.info("Ethereum listener started: contract=%s", self.config.contract_address)

    def poll(self) -> int:
        """Fetch Deposit logs from new blocks and emit them.

        Returns:
            Number of events emitted
        """
        latest = self._w3.eth.block_number
        if latest < self._next_block:
            return 0

        logs = self._contract.events.Deposit.get_logs(
            from_block=self._next_block, to_block=latest
        )
        for log in logs:
            self.emit(self._to_event(log))
        self._next_block = latest + 1
        return len(logs)

    @staticmethod
    def _to_event(log) -> DepositEvent:
        args = log["args"]
        tx_hash = Web3.to_hex(log["transactionHash"])
        return DepositEvent(
            id=f"eth-{tx_hash}-{log['logIndex']}",
            tx_ref=tx_hash,
            wallet=args["user"],
            amount=float(Web3.from_wei(args["amount"], "ether")),
            token=args["token"],
            observed_at=datetime.fromtimestamp(args["timestamp"], timezone.utc),
        )

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.poll()
            except Exception:
                logger.exception("Error polling Ethereum deposit logs")
            self._stop_event.wait(self.config.poll_interval)


class SolanaDepositSource(DepositSource):
    """Polls a Solana program's confirmed signatures over JSON-RPC.

    The first poll only records the newest signature, so history that
    predates start() is never replayed. Each later signature is fetched
    and its largest token balance increase becomes the deposit.
    """

    def __init__(self, config: SolanaConfig, client: Optional[httpx.Client] = None):
        super().__init__()
        self.config = config
        self._client = client
        self._last_signature: Optional[str] = None
        self._primed = False

    def _prepare(self) -> None:
        if not self.config.rpc_url or not self.config.program_id:
            raise ValueError("Solana RPC URL and program id must be configured")
        if self._client is None:
            self._client = httpx.Client(timeout=httpx.Timeout(10.0))
        logger.info("Solana listener started: program_id=%s", self.config.program_id)

    def _rpc(self, method: str, params: List[Any]) -> Any:
        response = self._client.post(
            self.config.rpc_url,
            json={"jsonrpc": "2.0", "id": 1, "method": method, "params": params},
        )
        response.raise_for_status()
        body = response.json()
        if body.get("error"):
            raise RuntimeError(f"Solana RPC error in {method}: {body['error'].get('message')}")
        return body.get("result")

    def poll(self) -> int:
        """Fetch new program signatures and emit their deposits.

        Returns:
            Number of events emitted
        """
        options: Dict[str, Any] = {"limit": 100, "commitment": "confirmed"}
        if self._last_signature:
            options["until"] = self._last_signature
        signatures = self._rpc("getSignaturesForAddress", [self.config.program_id, options]) or []

        if not signatures:
            self._primed = True
            return 0

        # Newest first from the RPC; remember the head before emitting
        newest = signatures[0]["signature"]
        if not self._primed:
            self._last_signature = newest
            self._primed = True
            return 0

        emitted = 0
        for entry in reversed(signatures):
            if entry.get("err") is not None:
                continue
            event = self._fetch_event(entry["signature"], entry.get("blockTime"))
            if event is not None:
                self.emit(event)
                emitted += 1

        self._last_signature = newest
        return emitted

    def _fetch_event(self, signature: str, block_time: Optional[int]) -> Optional[DepositEvent]:
        tx = self._rpc("getTransaction", [
            signature,
            {"encoding": "jsonParsed", "commitment": "confirmed", "maxSupportedTransactionVersion": 0},
        ])
        if not tx:
            return None

        meta = tx.get("meta") or {}
        pre = {b["accountIndex"]: _ui_amount(b) for b in meta.get("preTokenBalances") or []}
        best = None
        for balance in meta.get("postTokenBalances") or []:
            delta = _ui_amount(balance) - pre.get(balance["accountIndex"], 0.0)
            if delta > 0 and (best is None or delta > best[0]):
                best = (delta, balance)

        if best is None:
            logger.debug("Solana transaction %s has no token deposit", signature)
            return None

        amount, balance = best
        account_keys = tx["transaction"]["message"]["accountKeys"]
        sender = account_keys[0]["pubkey"] if isinstance(account_keys[0], dict) else account_keys[0]
        timestamp = tx.get("blockTime") or block_time
        observed_at = datetime.fromtimestamp(timestamp, timezone.utc) if timestamp else utc_now()

        return DepositEvent(
            id=f"sol-{signature}",
            tx_ref=signature,
            wallet=sender,
            amount=amount,
            token=balance.get("mint", "SPL"),
            observed_at=observed_at,
        )

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.poll()
            except Exception:
                logger.exception("Error polling Solana")
            self._stop_event.wait(self.config.poll_interval)

    def stop(self, timeout: float = 5.0) -> None:
        super().stop(timeout)
        if self._client is not None:
            self._client.close()
            self._client = None


def _ui_amount(balance: Dict[str, Any]) -> float:
    token_amount = balance.get("uiTokenAmount") or {}
    value = token_amount.get("uiAmountString") or token_amount.get("uiAmount") or 0
    return float(value)


def build_source(config: AppConfig) -> DepositSource:
    """Select the deposit source for the configured mode."""
    if config.mode == Mode.ETHEREUM:
        return EthereumDepositSource(config.ethereum)
    if config.mode == Mode.SOLANA:
        return SolanaDepositSource(config.solana)
    return MockDepositSource(config.mock)
