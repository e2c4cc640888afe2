# src/nexus_ledger/ledger/store.py

import abc
import json
import logging
import sqlite3
import uuid
from dataclasses import dataclass, replace
from pathlib import Path
from typing import IO, Any, Dict, List, Optional, Tuple

from .exceptions import LedgerError, LedgerSchemaError
from .models import (
    LedgerView,
    Transaction,
    format_timestamp,
    resolve_view,
    transaction_from_record,
)
from nexus_ledger.logging_config import structured_log_extra

logger = logging.getLogger(__name__)

CURRENT_SCHEMA_VERSION = 1
ACTIVE_VIEW_KEY = "active_view"


@dataclass
class SchemaStatus:
    version: int
    initialized: bool


def ensure_ledger_schema(
    conn: sqlite3.Connection, target_version: int = CURRENT_SCHEMA_VERSION
) -> SchemaStatus:
    """Ensure the ledger DB carries a schema version this code understands.

    Missing metadata initializes the DB to ``target_version``. A stored
    version other than ``target_version`` raises :class:`LedgerSchemaError`.
    """

    cursor = conn.cursor()
    cursor.execute(
        """
        CREATE TABLE IF NOT EXISTS meta (
            key TEXT PRIMARY KEY,
            value TEXT
        )
        """
    )
    row = cursor.execute("SELECT value FROM meta WHERE key = 'schema_version'").fetchone()

    if row is None:
        cursor.execute(
            "INSERT INTO meta (key, value) VALUES ('schema_version', ?)",
            (str(target_version),),
        )
        conn.commit()
        return SchemaStatus(version=target_version, initialized=True)

    try:
        stored_version = int(row[0])
    except (TypeError, ValueError) as exc:
        logger.exception(
            "Invalid schema version stored in ledger DB",
            extra=structured_log_extra(event="ledger_schema_invalid"),
        )
        raise LedgerSchemaError(found=row[0], expected=target_version) from exc

    if stored_version != target_version:
        raise LedgerSchemaError(found=stored_version, expected=target_version)

    return SchemaStatus(version=stored_version, initialized=False)


def ensure_ledger_tables(conn: sqlite3.Connection) -> None:
    cursor = conn.cursor()
    cursor.execute(
        """
        CREATE TABLE IF NOT EXISTS transactions (
            id TEXT PRIMARY KEY,
            portfolio_id TEXT NOT NULL,
            date TEXT NOT NULL,
            ts REAL NOT NULL,
            type TEXT NOT NULL,
            amount REAL NOT NULL,
            unit_price REAL NOT NULL,
            quantity REAL NOT NULL,
            note TEXT
        )
        """
    )
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_transactions_ts ON transactions(ts)")
    conn.commit()


def records_to_transactions(records: Any) -> List[Transaction]:
    """Parse a list of external records; malformed input yields an empty ledger."""

    if not isinstance(records, list):
        logger.warning(
            "Persisted ledger is not a list; loading an empty ledger",
            extra=structured_log_extra(event="ledger_load_degraded"),
        )
        return []

    try:
        transactions = [transaction_from_record(record) for record in records]
    except LedgerError as exc:
        logger.warning(
            "Malformed persisted ledger; loading an empty ledger: %s",
            exc,
            extra=structured_log_extra(event="ledger_load_degraded"),
        )
        return []

    seen = set()
    for tx in transactions:
        if tx.id in seen:
            logger.warning(
                "Duplicate transaction id %s in persisted ledger; loading an empty ledger",
                tx.id,
                extra=structured_log_extra(event="ledger_load_degraded", transaction_id=tx.id),
            )
            return []
        seen.add(tx.id)
    return transactions


class LedgerStore(abc.ABC):
    """Holds the flat transaction set and the active view selector."""

    def __init__(self) -> None:
        self._revision = 0

    @property
    def revision(self) -> int:
        """Counter bumped on every mutation; used to memoize replays."""

        return self._revision

    def _bump(self) -> None:
        self._revision += 1

    @abc.abstractmethod
    def append(self, transaction: Transaction) -> Transaction:
        """Stores ``transaction`` under a fresh id and returns the stored copy."""
        pass

    @abc.abstractmethod
    def remove(self, transaction_id: str) -> bool:
        """Permanently deletes a transaction; returns whether it existed."""
        pass

    @abc.abstractmethod
    def load(self) -> List[Transaction]:
        pass

    @abc.abstractmethod
    def persist(self, transactions: List[Transaction]) -> None:
        """Replaces the whole transaction set."""
        pass

    @abc.abstractmethod
    def get_active_view(self) -> LedgerView:
        pass

    @abc.abstractmethod
    def set_active_view(self, view: LedgerView) -> None:
        pass


class InMemoryLedgerStore(LedgerStore):
    def __init__(
        self,
        transactions: Optional[List[Transaction]] = None,
        active_view: LedgerView = LedgerView.MAIN,
    ):
        super().__init__()
        self._transactions: Dict[str, Transaction] = {tx.id: tx for tx in transactions or []}
        self._active_view = active_view

    def append(self, transaction: Transaction) -> Transaction:
        stored = replace(transaction, id=str(uuid.uuid4()))
        self._transactions[stored.id] = stored
        self._bump()
        return stored

    def remove(self, transaction_id: str) -> bool:
        removed = self._transactions.pop(transaction_id, None) is not None
        if removed:
            self._bump()
        return removed

    def load(self) -> List[Transaction]:
        return list(self._transactions.values())

    def persist(self, transactions: List[Transaction]) -> None:
        self._transactions = {tx.id: tx for tx in transactions}
        self._bump()

    def get_active_view(self) -> LedgerView:
        return self._active_view

    def set_active_view(self, view: LedgerView) -> None:
        self._active_view = view


class SQLiteLedgerStore(LedgerStore):
    def __init__(self, db_path: str = "ledger.db"):
        super().__init__()
        self.db_path = str(Path(db_path).expanduser())
        self._init_db()

    def _init_db(self):
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path)

        try:
            ensure_ledger_schema(conn, CURRENT_SCHEMA_VERSION)
            ensure_ledger_tables(conn)
        finally:
            conn.close()

    def _get_conn(self):
        return sqlite3.connect(self.db_path)

    @staticmethod
    def _row_values(tx: Transaction) -> Tuple[Any, ...]:
        return (
            tx.id,
            tx.portfolio_id.value,
            format_timestamp(tx.date),
            tx.date.timestamp(),
            tx.kind.value,
            tx.amount,
            tx.unit_price,
            tx.quantity,
            tx.note,
        )

    def append(self, transaction: Transaction) -> Transaction:
        stored = replace(transaction, id=str(uuid.uuid4()))
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO transactions (
                    id, portfolio_id, date, ts, type, amount, unit_price, quantity, note
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                self._row_values(stored),
            )
            conn.commit()
        finally:
            conn.close()
        self._bump()
        return stored

    def remove(self, transaction_id: str) -> bool:
        conn = self._get_conn()
        try:
            cursor = conn.execute("DELETE FROM transactions WHERE id = ?", (transaction_id,))
            conn.commit()
            removed = cursor.rowcount > 0
        finally:
            conn.close()
        if removed:
            self._bump()
        return removed

    def load(self) -> List[Transaction]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                """
                SELECT id, portfolio_id, date, type, amount, unit_price, quantity, note
                FROM transactions ORDER BY ts ASC
                """
            ).fetchall()
        finally:
            conn.close()

        records = [
            {
                "id": row[0],
                "portfolioId": row[1],
                "date": row[2],
                "type": row[3],
                "amount": row[4],
                "unitPrice": row[5],
                "quantity": row[6],
                "note": row[7],
            }
            for row in rows
        ]
        return records_to_transactions(records)

    def persist(self, transactions: List[Transaction]) -> None:
        conn = self._get_conn()
        try:
            with conn:
                conn.execute("DELETE FROM transactions")
                conn.executemany(
                    """
                    INSERT INTO transactions (
                        id, portfolio_id, date, ts, type, amount, unit_price, quantity, note
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [self._row_values(tx) for tx in transactions],
                )
        finally:
            conn.close()
        self._bump()

    def get_active_view(self) -> LedgerView:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT value FROM meta WHERE key = ?", (ACTIVE_VIEW_KEY,)
            ).fetchone()
        finally:
            conn.close()

        if row is None:
            return LedgerView.MAIN
        try:
            return resolve_view(row[0])
        except LedgerError:
            logger.warning(
                "Stored active view %r is invalid; defaulting to main",
                row[0],
                extra=structured_log_extra(event="ledger_view_invalid"),
            )
            return LedgerView.MAIN

    def set_active_view(self, view: LedgerView) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO meta (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value
                """,
                (ACTIVE_VIEW_KEY, view.value),
            )
            conn.commit()
        finally:
            conn.close()


def dump_json(transactions: List[Transaction], view: LedgerView, stream: IO[str]) -> None:
    """Write a whole-ledger snapshot using the external record shape."""

    payload = {
        "transactions": [tx.to_record() for tx in transactions],
        "activeView": view.value,
    }
    json.dump(payload, stream, indent=2)


def load_json(stream: IO[str]) -> Tuple[List[Transaction], LedgerView]:
    """Read a snapshot written by :func:`dump_json`.

    A bare list of records is accepted as well. Malformed content degrades to
    an empty ledger and the ``main`` view.
    """

    try:
        payload = json.load(stream)
    except json.JSONDecodeError as exc:
        logger.warning(
            "Ledger snapshot is not valid JSON; loading an empty ledger: %s",
            exc,
            extra=structured_log_extra(event="ledger_load_degraded"),
        )
        return [], LedgerView.MAIN

    if isinstance(payload, list):
        return records_to_transactions(payload), LedgerView.MAIN

    if not isinstance(payload, dict):
        return records_to_transactions(None), LedgerView.MAIN

    try:
        view = resolve_view(payload.get("activeView"))
    except LedgerError:
        view = LedgerView.MAIN
    return records_to_transactions(payload.get("transactions")), view


__all__ = [
    "ACTIVE_VIEW_KEY",
    "CURRENT_SCHEMA_VERSION",
    "InMemoryLedgerStore",
    "LedgerStore",
    "SQLiteLedgerStore",
    "SchemaStatus",
    "dump_json",
    "ensure_ledger_schema",
    "ensure_ledger_tables",
    "load_json",
    "records_to_transactions",
]
