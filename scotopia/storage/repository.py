"""
Repository pattern for data access.

Handles database operations for deposits and attestations.
"""

import sqlite3
from datetime import datetime
from typing import List, Optional

from .db import DEFAULT_DB_PATH, get_connection
from .models import Attestation, Deposit

_DEPOSIT_COLUMNS = "id, txid, wallet, amount, token, timestamp, processed, created_at"
_ATTESTATION_COLUMNS = "id, deposit_id, wallet, tier, token_id, minted_at, metadata"


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the deposits and attestations tables if they don't exist.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS deposits (
                id TEXT PRIMARY KEY,
                txid TEXT NOT NULL,
                wallet TEXT NOT NULL,
                amount REAL NOT NULL,
                token TEXT NOT NULL,
                timestamp TEXT NOT NULL,
                processed INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS attestations (
                id TEXT PRIMARY KEY,
                deposit_id TEXT NOT NULL,
                wallet TEXT NOT NULL,
                tier TEXT NOT NULL,
                token_id TEXT,
                minted_at TEXT NOT NULL,
                metadata TEXT,
                FOREIGN KEY (deposit_id) REFERENCES deposits(id)
            );

            CREATE INDEX IF NOT EXISTS idx_deposits_wallet ON deposits(wallet);
            CREATE INDEX IF NOT EXISTS idx_deposits_txid ON deposits(txid);
            CREATE INDEX IF NOT EXISTS idx_deposits_processed ON deposits(processed);
            CREATE INDEX IF NOT EXISTS idx_attestations_wallet ON attestations(wallet);
        """)
        conn.commit()
    finally:
        conn.close()


def _row_to_deposit(row) -> Deposit:
    return Deposit(
        id=row[0],
        tx_ref=row[1],
        wallet=row[2],
        amount=row[3],
        token=row[4],
        observed_at=datetime.fromisoformat(row[5]),
        processed=bool(row[6]),
        created_at=datetime.fromisoformat(row[7]),
    )


def _row_to_attestation(row) -> Attestation:
    return Attestation(
        id=row[0],
        deposit_id=row[1],
        wallet=row[2],
        tier=row[3],
        token_id=row[4],
        minted_at=datetime.fromisoformat(row[5]),
        metadata=row[6],
    )


class DepositRepository:
    """Repository for deposits and the attestations minted for them.

    Every call opens its own connection, so a repository instance can be
    shared between the pipeline thread and the CLI.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

    def insert_deposit(self, deposit: Deposit) -> bool:
        """Persist a deposit unless a row with the same id already exists.

        Args:
            deposit: Deposit to store

        Returns:
            True if a new row was written, False if the id was already known
        """
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(f"""
                INSERT INTO deposits ({_DEPOSIT_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO NOTHING
            """, (
                deposit.id,
                deposit.tx_ref,
                deposit.wallet,
                deposit.amount,
                deposit.token,
                deposit.observed_at.isoformat(),
                1 if deposit.processed else 0,
                deposit.created_at.isoformat(),
            ))
            conn.commit()
            return cursor.rowcount == 1
        finally:
            conn.close()

    def mark_processed(self, deposit_id: str) -> None:
        """Set the processed flag of a deposit.

        Minting goes through record_attestation, which flips the flag in
        the same transaction as the attestation insert. This standalone
        form is kept for administrative repair of the stored state.

        Raises:
            LookupError: If no deposit has the given id
        """
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "UPDATE deposits SET processed = 1 WHERE id = ?", (deposit_id,)
            )
            if cursor.rowcount != 1:
                raise LookupError(f"Deposit not found: {deposit_id}")
            conn.commit()
        finally:
            conn.close()

    def insert_attestation(self, attestation: Attestation) -> None:
        """Persist a single attestation record.

        Leaves the deposit's processed flag alone. Minting uses
        record_attestation instead; this form is kept for importing
        attestations that were minted outside the pipeline.
        """
        conn = get_connection(self.db_path)
        try:
            self._write_attestation(conn, attestation)
            conn.commit()
        finally:
            conn.close()

    def record_attestation(self, attestation: Attestation) -> None:
        """Persist an attestation and flip its deposit's processed flag.

        Both writes share one transaction: either the attestation exists
        and the deposit is processed, or neither change is visible.

        Raises:
            LookupError: If the referenced deposit does not exist
            sqlite3.Error: On any storage failure
        """
        conn = get_connection(self.db_path)
        try:
            conn.execute("BEGIN")
            self._write_attestation(conn, attestation)
            cursor = conn.execute(
                "UPDATE deposits SET processed = 1 WHERE id = ?",
                (attestation.deposit_id,),
            )
            if cursor.rowcount != 1:
                raise LookupError(f"Deposit not found: {attestation.deposit_id}")
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @staticmethod
    def _write_attestation(conn: sqlite3.Connection, attestation: Attestation) -> None:
        conn.execute(f"""
            INSERT INTO attestations ({_ATTESTATION_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            attestation.id,
            attestation.deposit_id,
            attestation.wallet,
            attestation.tier,
            attestation.token_id,
            attestation.minted_at.isoformat(),
            attestation.metadata,
        ))

    def get_deposit(self, deposit_id: str) -> Optional[Deposit]:
        """Fetch a deposit by id, or None if unknown."""
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                f"SELECT {_DEPOSIT_COLUMNS} FROM deposits WHERE id = ?", (deposit_id,)
            ).fetchone()
            return _row_to_deposit(row) if row else None
        finally:
            conn.close()

    def find_deposits_by_tx_ref(self, tx_ref: str) -> List[Deposit]:
        """All deposits sharing a transaction reference."""
        return self._query_deposits("WHERE txid = ?", (tx_ref,))

    def find_deposits_by_wallet(self, wallet: str) -> List[Deposit]:
        """All deposits from a wallet, newest first."""
        return self._query_deposits(
            "WHERE wallet = ? ORDER BY created_at DESC", (wallet,)
        )

    def recent_deposits(self, limit: int = 5) -> List[Deposit]:
        """Most recently stored deposits."""
        return self._query_deposits("ORDER BY created_at DESC LIMIT ?", (limit,))

    def _query_deposits(self, clause: str, params: tuple) -> List[Deposit]:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                f"SELECT {_DEPOSIT_COLUMNS} FROM deposits {clause}", params
            )
            return [_row_to_deposit(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def find_attestations_by_wallet(self, wallet: str) -> List[Attestation]:
        """All attestations issued to a wallet, newest first."""
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(f"""
                SELECT {_ATTESTATION_COLUMNS} FROM attestations
                WHERE wallet = ? ORDER BY minted_at DESC
            """, (wallet,))
            return [_row_to_attestation(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def get_attestation(self, attestation_id: str) -> Optional[Attestation]:
        """Fetch an attestation by id, or None if unknown."""
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                f"SELECT {_ATTESTATION_COLUMNS} FROM attestations WHERE id = ?",
                (attestation_id,),
            ).fetchone()
            return _row_to_attestation(row) if row else None
        finally:
            conn.close()

    def count_deposits(self) -> int:
        return self._count("deposits")

    def count_attestations(self) -> int:
        return self._count("attestations")

    def _count(self, table: str) -> int:
        conn = get_connection(self.db_path)
        try:
            return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
        finally:
            conn.close()
