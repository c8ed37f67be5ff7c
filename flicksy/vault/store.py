"""
SQLite storage for user credentials and encrypted secrets.
"""

from __future__ import annotations
import logging
import sqlite3
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .errors import DuplicateIdentityError, StorageError

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path.home() / ".flicksy" / "flicksy.db"


@dataclass
class UserRecord:
    """Registered local account. Identity is stored only as a digest."""
    id: int
    identity_hash: str
    password_hash: str
    password_salt: str
    created_at: int  # epoch milliseconds


@dataclass
class SecretRecord:
    """Encrypted secret for one external service."""
    id: int
    service_name: str
    ciphertext: str
    nonce: str
    created_at: int  # epoch milliseconds


def _now_ms() -> int:
    return int(time.time() * 1000)


class VaultStore:
    """
    Single-file SQLite store with `users` and `secrets` tables.

    The connection is opened lazily and shared for the life of the
    store. It may be used from worker threads; a lock serializes access.
    """

    def __init__(self, db_path: Path = None):
        """
        Initialize store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path) if db_path else DEFAULT_DB_PATH
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    def _connect(self) -> sqlite3.Connection:
        if self._conn is None:
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            except (OSError, sqlite3.Error) as e:
                raise StorageError(f"Cannot open database {self.db_path}: {e}") from e
            conn.row_factory = sqlite3.Row
            self._conn = conn
        return self._conn

    def initialize_schema(self) -> None:
        """Create tables if needed. Safe to call on every start."""
        with self._lock:
            conn = self._connect()
            try:
                conn.execute("PRAGMA journal_mode = WAL")
                conn.execute("PRAGMA foreign_keys = ON")
                conn.executescript('''
                    CREATE TABLE IF NOT EXISTS users (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        identity_hash TEXT NOT NULL UNIQUE,
                        password_hash TEXT NOT NULL,
                        password_salt TEXT NOT NULL,
                        created_at INTEGER NOT NULL
                    );

                    CREATE TABLE IF NOT EXISTS secrets (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        service_name TEXT NOT NULL UNIQUE,
                        ciphertext TEXT NOT NULL,
                        nonce TEXT NOT NULL,
                        created_at INTEGER NOT NULL
                    );
                ''')
                conn.commit()
            except sqlite3.Error as e:
                raise StorageError(f"Schema initialization failed: {e}") from e

        logger.info(f"Vault schema ready at {self.db_path}")

    def is_initialized(self) -> bool:
        """Check if both tables exist."""
        if not self.db_path.exists():
            return False

        with self._lock:
            try:
                cursor = self._connect().execute(
                    "SELECT COUNT(*) FROM sqlite_master "
                    "WHERE type='table' AND name IN ('users', 'secrets')"
                )
                return cursor.fetchone()[0] == 2
            except sqlite3.Error as e:
                raise StorageError(f"Cannot inspect database: {e}") from e

    def close(self) -> None:
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None

    # ── Users ────────────────────────────────────────────────────────

    def insert_user(self, identity_hash: str, password_hash: str, password_salt: str) -> int:
        """
        Add a user row.

        Returns:
            New user ID

        Raises:
            DuplicateIdentityError: identity_hash already registered
            StorageError: Any other database failure
        """
        with self._lock:
            conn = self._connect()
            try:
                cursor = conn.execute(
                    "INSERT INTO users (identity_hash, password_hash, password_salt, created_at) "
                    "VALUES (?, ?, ?, ?)",
                    (identity_hash, password_hash, password_salt, _now_ms())
                )
                conn.commit()
            except sqlite3.IntegrityError as e:
                conn.rollback()
                raise DuplicateIdentityError("User already exists") from e
            except sqlite3.Error as e:
                conn.rollback()
                raise StorageError(f"Failed to insert user: {e}") from e

        return cursor.lastrowid

    def find_user_by_identity_hash(self, identity_hash: str) -> Optional[UserRecord]:
        """Get user by identity hash, None if absent."""
        row = self._fetch_one(
            "SELECT id, identity_hash, password_hash, password_salt, created_at "
            "FROM users WHERE identity_hash = ?",
            (identity_hash,)
        )
        if not row:
            return None
        return UserRecord(**dict(row))

    # ── Secrets ──────────────────────────────────────────────────────

    def upsert_secret(self, service_name: str, ciphertext: str, nonce_hex: str) -> None:
        """Insert or replace the secret for service_name."""
        with self._lock:
            conn = self._connect()
            try:
                conn.execute('''
                    INSERT INTO secrets (service_name, ciphertext, nonce, created_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(service_name) DO UPDATE SET
                        ciphertext = excluded.ciphertext,
                        nonce = excluded.nonce,
                        created_at = excluded.created_at
                ''', (service_name, ciphertext, nonce_hex, _now_ms()))
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise StorageError(f"Failed to store secret '{service_name}': {e}") from e

    def get_secret(self, service_name: str) -> Optional[SecretRecord]:
        """Get secret row by service name, None if absent."""
        row = self._fetch_one(
            "SELECT id, service_name, ciphertext, nonce, created_at "
            "FROM secrets WHERE service_name = ?",
            (service_name,)
        )
        if not row:
            return None
        return SecretRecord(**dict(row))

    def _fetch_one(self, sql: str, params: tuple) -> Optional[sqlite3.Row]:
        with self._lock:
            try:
                return self._connect().execute(sql, params).fetchone()
            except sqlite3.Error as e:
                raise StorageError(f"Query failed: {e}") from e
