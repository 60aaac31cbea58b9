from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from typing import Iterator, List, Optional, Sequence

from domain.errors import ConstraintError, StoreError


logger = logging.getLogger(__name__)

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS games (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        chat_id INTEGER NOT NULL,
        message_id INTEGER,
        game_date TEXT,
        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (chat_id, message_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS transactions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        game_id INTEGER NOT NULL REFERENCES games(id) ON DELETE CASCADE,
        username TEXT NOT NULL CHECK (length(trim(username)) > 0),
        amount INTEGER NOT NULL CHECK (amount > 0),
        type TEXT NOT NULL CHECK (type IN ('in', 'out')),
        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_transactions_game_id ON transactions (game_id)",
    "CREATE INDEX IF NOT EXISTS idx_transactions_username ON transactions (username)",
    """
    CREATE TABLE IF NOT EXISTS user_stats (
        username TEXT PRIMARY KEY,
        total_in INTEGER NOT NULL DEFAULT 0,
        total_out INTEGER NOT NULL DEFAULT 0,
        games_count INTEGER NOT NULL DEFAULT 0,
        updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
)


class SqliteDatabase:
    """
    Owned handle to a SQLite database file.

    One connection is kept open between `open()` and `close()` and shared by
    the repositories built on top of it. Access is serialised with a
    re-entrant lock; `transaction()` holds the lock for the whole block so
    readers never see a half-applied change.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._depth = 0

    @property
    def db_path(self) -> str:
        return self._db_path

    def open(self) -> "SqliteDatabase":
        if self._conn is not None:
            return self
        try:
            # Autocommit mode: transactions are opened explicitly below.
            conn = sqlite3.connect(
                self._db_path,
                isolation_level=None,
                check_same_thread=False,
            )
            conn.execute("PRAGMA foreign_keys = ON")
            if self._db_path != ":memory:":
                conn.execute("PRAGMA journal_mode = WAL")
        except sqlite3.Error as exc:
            raise StoreError(f"Cannot open SQLite database {self._db_path}: {exc}") from exc

        self._conn = conn
        self._ensure_schema()
        logger.info("SQLite database opened at %s", self._db_path)
        return self

    def close(self) -> None:
        with self._lock:
            if self._conn is None:
                return
            self._conn.close()
            self._conn = None
            logger.info("SQLite database %s closed", self._db_path)

    def __enter__(self) -> "SqliteDatabase":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreError("Database is not open")
        return self._conn

    def _ensure_schema(self) -> None:
        with self.transaction() as conn:
            for statement in SCHEMA:
                conn.execute(statement)

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Hold the connection for one atomic block.

        Nested calls join the outer transaction; the outermost block
        commits on success and rolls back on any exception.
        """

        with self._lock:
            conn = self._connection()
            outermost = self._depth == 0
            if outermost:
                try:
                    conn.execute("BEGIN IMMEDIATE")
                except sqlite3.Error as exc:
                    raise StoreError(f"Cannot begin transaction: {exc}") from exc
            self._depth += 1
            try:
                yield conn
            except BaseException:
                self._depth -= 1
                if outermost:
                    self._rollback(conn)
                raise
            else:
                self._depth -= 1
                if outermost:
                    try:
                        conn.execute("COMMIT")
                    except sqlite3.Error as exc:
                        self._rollback(conn)
                        raise StoreError(f"Cannot commit transaction: {exc}") from exc

    @staticmethod
    def _rollback(conn: sqlite3.Connection) -> None:
        # SQLite may already have rolled back on its own (e.g. SQLITE_FULL).
        if conn.in_transaction:
            conn.execute("ROLLBACK")

    def _run(self, sql: str, params: Sequence, fetch: Optional[str]):
        with self._lock:
            conn = self._connection()
            try:
                cur = conn.execute(sql, params)
                if fetch == "one":
                    return cur.fetchone()
                if fetch == "all":
                    return cur.fetchall()
                return cur
            except (sqlite3.IntegrityError, OverflowError) as exc:
                raise ConstraintError(str(exc)) from exc
            except sqlite3.Error as exc:
                raise StoreError(str(exc)) from exc

    def execute(self, sql: str, params: Sequence = ()) -> sqlite3.Cursor:
        """Run one statement, translating driver errors into ledger errors."""

        return self._run(sql, params, None)

    def fetchone(self, sql: str, params: Sequence = ()) -> Optional[tuple]:
        """Run a query and read its first row before releasing the lock."""

        return self._run(sql, params, "one")

    def fetchall(self, sql: str, params: Sequence = ()) -> List[tuple]:
        """Run a query and read every row before releasing the lock."""

        return self._run(sql, params, "all")
