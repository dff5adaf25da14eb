# commitment_registry/store.py
"""
sqlite persistence for the registry audit trail and state snapshots.

EventStore subscribes to a registry's EventLog and writes every emitted
event. Registry snapshots are stored with an explicit schema version; a
snapshot written under a different version is refused rather than guessed
at.
"""

import json
import logging
import os
import sqlite3
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from nacl.signing import SigningKey, VerifyKey

from .errors import CheckpointSignatureError, SchemaVersionError, StateNotFoundError, StoreError
from .events import (
    AccountAdded,
    AccountRemoved,
    AccountUpdated,
    RegistryEvent,
    RootRecorded,
    RootValidityWindowSet,
)
from .hashing import to_hex, from_hex
from .signing import require_valid_root_record, sign_root_record


logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

AUDIT_TABLES = ("account_updates", "accounts", "roots", "validity_window_changes", "registry_state")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _connect(db_path: str) -> sqlite3.Connection:
    try:
        return sqlite3.connect(db_path)
    except sqlite3.Error as e:
        raise StoreError(f"Cannot open registry database at {db_path}", cause=e) from e


def init_db(db_path: str) -> None:
    if os.path.dirname(db_path):
        os.makedirs(os.path.dirname(db_path), exist_ok=True)
    conn = _connect(db_path)
    try:
        c = conn.cursor()
        c.execute('''
            CREATE TABLE IF NOT EXISTS accounts (
                account_index INTEGER PRIMARY KEY,
                commitment TEXT NOT NULL,
                removed INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT
            )
        ''')
        c.execute('''
            CREATE TABLE IF NOT EXISTS account_updates (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                account_index INTEGER NOT NULL,
                kind TEXT NOT NULL,               -- 'update' or 'remove'
                old_commitment TEXT NOT NULL,
                new_commitment TEXT NOT NULL,
                recorded_at TEXT NOT NULL,
                FOREIGN KEY (account_index) REFERENCES accounts (account_index)
            )
        ''')
        c.execute('''
            CREATE TABLE IF NOT EXISTS roots (
                epoch INTEGER PRIMARY KEY,
                root TEXT NOT NULL,
                timestamp INTEGER NOT NULL,
                signature TEXT
            )
        ''')
        c.execute('''
            CREATE TABLE IF NOT EXISTS validity_window_changes (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                old_window INTEGER NOT NULL,
                new_window INTEGER NOT NULL,
                recorded_at TEXT NOT NULL
            )
        ''')
        c.execute('''
            CREATE TABLE IF NOT EXISTS registry_state (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                schema_version INTEGER NOT NULL,
                state TEXT NOT NULL,
                saved_at TEXT NOT NULL
            )
        ''')
        c.execute("CREATE INDEX IF NOT EXISTS idx_roots_root ON roots (root)")
        c.execute("CREATE INDEX IF NOT EXISTS idx_account_updates_account ON account_updates (account_index)")
        conn.commit()
    except sqlite3.Error as e:
        raise StoreError("Failed to initialize registry database", cause=e) from e
    finally:
        conn.close()
    logger.debug("Registry database ready at %s", db_path)


class EventStore:
    """Persists registry events; optionally signs every recorded root."""

    def __init__(self, db_path: str, signing_key: Optional[SigningKey] = None):
        self.db_path = db_path
        self.signing_key = signing_key
        init_db(db_path)

    def handle(self, event: RegistryEvent) -> None:
        conn = _connect(self.db_path)
        try:
            self._write(conn.cursor(), event)
            conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to persist {type(event).__name__}", cause=e) from e
        finally:
            conn.close()

    def _write(self, c: sqlite3.Cursor, event: RegistryEvent) -> None:
        now = _now()
        if isinstance(event, AccountAdded):
            c.execute(
                "INSERT INTO accounts (account_index, commitment, created_at) VALUES (?, ?, ?)",
                (event.account_index, to_hex(event.commitment), now),
            )
        elif isinstance(event, AccountUpdated):
            c.execute(
                "UPDATE accounts SET commitment = ?, updated_at = ? WHERE account_index = ?",
                (to_hex(event.new_commitment), now, event.account_index),
            )
            c.execute('''
                INSERT INTO account_updates (account_index, kind, old_commitment, new_commitment, recorded_at)
                VALUES (?, 'update', ?, ?, ?)
            ''', (event.account_index, to_hex(event.old_commitment), to_hex(event.new_commitment), now))
        elif isinstance(event, AccountRemoved):
            c.execute(
                "UPDATE accounts SET commitment = ?, removed = 1, updated_at = ? WHERE account_index = ?",
                (to_hex(0), now, event.account_index),
            )
            c.execute('''
                INSERT INTO account_updates (account_index, kind, old_commitment, new_commitment, recorded_at)
                VALUES (?, 'remove', ?, ?, ?)
            ''', (event.account_index, to_hex(event.commitment), to_hex(0), now))
        elif isinstance(event, RootRecorded):
            signature = sign_root_record(self.signing_key, event) if self.signing_key else None
            c.execute(
                "INSERT OR REPLACE INTO roots (epoch, root, timestamp, signature) VALUES (?, ?, ?, ?)",
                (event.epoch, to_hex(event.root), event.timestamp, signature),
            )
        elif isinstance(event, RootValidityWindowSet):
            c.execute(
                "INSERT INTO validity_window_changes (old_window, new_window, recorded_at) VALUES (?, ?, ?)",
                (event.old_window, event.new_window, now),
            )

    # ==================== Snapshots ====================

    def save_state(self, state_dict: dict) -> None:
        conn = _connect(self.db_path)
        try:
            conn.execute('''
                INSERT OR REPLACE INTO registry_state (id, schema_version, state, saved_at)
                VALUES (1, ?, ?, ?)
            ''', (SCHEMA_VERSION, json.dumps(state_dict), _now()))
            conn.commit()
        except sqlite3.Error as e:
            raise StoreError("Failed to save registry state", cause=e) from e
        finally:
            conn.close()

    def load_state(self) -> dict:
        conn = _connect(self.db_path)
        try:
            row = conn.execute("SELECT schema_version, state FROM registry_state WHERE id = 1").fetchone()
        finally:
            conn.close()
        if row is None:
            raise StateNotFoundError(f"No registry state saved in {self.db_path}")
        if row[0] != SCHEMA_VERSION:
            raise SchemaVersionError(
                f"Registry state has schema version {row[0]}",
                found_version=row[0],
                supported_version=SCHEMA_VERSION,
            )
        return json.loads(row[1])

    def reset(self) -> None:
        """Delete the snapshot and every audit row, leaving empty tables."""
        conn = _connect(self.db_path)
        try:
            for table in AUDIT_TABLES:
                conn.execute(f"DELETE FROM {table}")
            conn.commit()
        except sqlite3.Error as e:
            raise StoreError("Failed to reset registry database", cause=e) from e
        finally:
            conn.close()
        logger.info("Cleared registry database at %s", self.db_path)

    def has_state(self) -> bool:
        conn = _connect(self.db_path)
        try:
            return conn.execute("SELECT 1 FROM registry_state WHERE id = 1").fetchone() is not None
        finally:
            conn.close()

    # ==================== Queries ====================

    def accounts(self) -> List[Tuple[int, int]]:
        """(account_index, commitment) ordered by index; removed accounts carry 0."""
        conn = _connect(self.db_path)
        try:
            rows = conn.execute("SELECT account_index, commitment FROM accounts ORDER BY account_index").fetchall()
        finally:
            conn.close()
        return [(r[0], from_hex(r[1])) for r in rows]

    def get_account(self, account_index: int) -> Optional[dict]:
        conn = _connect(self.db_path)
        try:
            row = conn.execute(
                "SELECT commitment, removed, created_at, updated_at FROM accounts WHERE account_index = ?",
                (account_index,),
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        return {
            "account_index": account_index,
            "commitment": row[0],
            "removed": bool(row[1]),
            "created_at": row[2],
            "updated_at": row[3],
        }

    def roots(self, limit: int = 100) -> List[dict]:
        conn = _connect(self.db_path)
        try:
            rows = conn.execute(
                "SELECT epoch, root, timestamp, signature FROM roots ORDER BY epoch DESC LIMIT ?",
                (limit,),
            ).fetchall()
        finally:
            conn.close()
        return [{"epoch": r[0], "root": r[1], "timestamp": r[2], "signature": r[3]} for r in rows]

    def stats(self) -> dict:
        conn = _connect(self.db_path)
        try:
            c = conn.cursor()
            total_accounts = c.execute("SELECT COUNT(*) FROM accounts").fetchone()[0]
            total_updates = c.execute("SELECT COUNT(*) FROM account_updates").fetchone()[0]
            total_roots = c.execute("SELECT COUNT(*) FROM roots").fetchone()[0]
        finally:
            conn.close()
        return {
            "total_accounts": total_accounts,
            "total_updates": total_updates,
            "total_roots": total_roots,
        }

    def verify_root_signatures(self, verify_key: VerifyKey) -> List[Tuple[int, bool]]:
        """Check every stored root signature. Unsigned roots report False."""
        conn = _connect(self.db_path)
        try:
            rows = conn.execute("SELECT epoch, root, timestamp, signature FROM roots ORDER BY epoch").fetchall()
        finally:
            conn.close()
        results = []
        for epoch, root, timestamp, signature in rows:
            record = RootRecorded(root=from_hex(root), timestamp=timestamp, epoch=epoch)
            try:
                require_valid_root_record(verify_key, signature or "", record)
            except CheckpointSignatureError as e:
                logger.warning("%s", e.message)
                results.append((epoch, False))
            else:
                results.append((epoch, True))
        return results
