# carbonledger/storage/sqlite.py
import os
import json
import logging
import sqlite3
from pathlib import Path
from typing import List, Optional

from carbonledger.core.errors import StaleLedger
from carbonledger.core.types import Credit, CreditStatus, LedgerEvent
from carbonledger.core.canon import canonical_json_str
from carbonledger.core.hashing import event_hash
from . import StorageBackend

logger = logging.getLogger(__name__)

MEMORY = ":memory:"


class SQLiteStorage(StorageBackend):
    """SQLite persistent storage for a credit ledger and its journal."""

    def __init__(self, db_path: str | Path | None = None):
        if db_path is None:
            env_path = os.environ.get("CARBON_LEDGER_DB_PATH")
            db_path = env_path if env_path else Path.cwd() / "carbon-credits.db"

        if str(db_path) == MEMORY:
            self.db_path = None
        else:
            self.db_path = Path(db_path)
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self.db_path = self.db_path.resolve()

        self._conn: Optional[sqlite3.Connection] = None
        self._connect()

    def _connect(self):
        conn_str = MEMORY if self.db_path is None else str(self.db_path)
        # Access is serialized by the owning CreditLedger's lock
        self._conn = sqlite3.connect(conn_str, isolation_level=None, check_same_thread=False)
        if self.db_path is not None:
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._create_schema()

    def _create_schema(self):
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS credits (
                id          INTEGER PRIMARY KEY,
                amount      INTEGER NOT NULL,
                vintage     INTEGER NOT NULL,
                owner       TEXT    NOT NULL,
                status      TEXT    NOT NULL
            )
        """)
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS events (
                sequence        INTEGER PRIMARY KEY,
                kind            TEXT    NOT NULL,
                credit_id       INTEGER NOT NULL,
                caller          TEXT    NOT NULL,
                prev_hash       TEXT    NOT NULL,
                event_hash      TEXT    NOT NULL,
                canonical_json  TEXT    NOT NULL
            )
        """)
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS meta (
                key     TEXT PRIMARY KEY,
                value   INTEGER NOT NULL
            )
        """)
        self.conn.execute("CREATE INDEX IF NOT EXISTS idx_owner  ON credits(owner)")
        self.conn.execute("CREATE INDEX IF NOT EXISTS idx_credit ON events(credit_id)")

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Storage connection is closed")
        return self._conn

    def commit(self, credit: Credit, next_id: int, event: LedgerEvent) -> None:
        conn = self.conn
        conn.execute("BEGIN IMMEDIATE")
        try:
            # Journal row first: a taken sequence means another writer got here before us
            try:
                conn.execute("""
                    INSERT INTO events
                    (sequence, kind, credit_id, caller, prev_hash, event_hash, canonical_json)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                """, (
                    event.sequence, event.kind, event.credit_id, event.caller,
                    event.prev_hash, event_hash(event), canonical_json_str(event.to_dict())
                ))
            except sqlite3.IntegrityError as e:
                raise StaleLedger(
                    f"Journal slot {event.sequence} is already taken in {self.db_path or MEMORY}",
                    credit.id,
                ) from e
            conn.execute("""
                INSERT INTO credits (id, amount, vintage, owner, status)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET owner = excluded.owner, status = excluded.status
            """, (credit.id, credit.amount, credit.vintage, credit.owner, credit.status.value))
            conn.execute("""
                INSERT INTO meta (key, value) VALUES ('next_id', ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
            """, (next_id,))
        except Exception:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")

    def load_credits(self) -> List[Credit]:
        cursor = self.conn.execute(
            "SELECT id, amount, vintage, owner, status FROM credits ORDER BY id ASC"
        )
        return [
            Credit(id=cid, amount=amount, vintage=vintage, owner=owner, status=CreditStatus(status))
            for cid, amount, vintage, owner, status in cursor
        ]

    def load_counter(self) -> int:
        row = self.conn.execute("SELECT value FROM meta WHERE key = 'next_id'").fetchone()
        return row[0] if row else 0

    def load_events(self) -> List[LedgerEvent]:
        cursor = self.conn.execute(
            "SELECT canonical_json FROM events ORDER BY sequence ASC"
        )
        events = [LedgerEvent.from_dict(json.loads(row[0])) for row in cursor]
        logger.debug("Loaded %d events from %s", len(events), self.db_path or MEMORY)
        return events

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
