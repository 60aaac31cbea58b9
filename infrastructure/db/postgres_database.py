from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, List, Optional, Sequence

import psycopg2

from domain.errors import ConstraintError, StoreError


logger = logging.getLogger(__name__)

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS games (
        id SERIAL PRIMARY KEY,
        chat_id BIGINT NOT NULL,
        message_id BIGINT,
        game_date DATE,
        created_at TIMESTAMP NOT NULL DEFAULT NOW(),
        UNIQUE (chat_id, message_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS transactions (
        id SERIAL PRIMARY KEY,
        game_id INTEGER NOT NULL REFERENCES games(id) ON DELETE CASCADE,
        username TEXT NOT NULL CHECK (length(trim(username)) > 0),
        amount BIGINT NOT NULL CHECK (amount > 0),
        type TEXT NOT NULL CHECK (type IN ('in', 'out')),
        created_at TIMESTAMP NOT NULL DEFAULT NOW()
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_transactions_game_id ON transactions (game_id)",
    "CREATE INDEX IF NOT EXISTS idx_transactions_username ON transactions (username)",
    """
    CREATE TABLE IF NOT EXISTS user_stats (
        username TEXT PRIMARY KEY,
        total_in BIGINT NOT NULL DEFAULT 0,
        total_out BIGINT NOT NULL DEFAULT 0,
        games_count INTEGER NOT NULL DEFAULT 0,
        updated_at TIMESTAMP NOT NULL DEFAULT NOW()
    )
    """,
)

_CONSTRAINT_ERRORS = (psycopg2.IntegrityError,)


class PostgresDatabase:
    """
    Owned handle to a PostgreSQL database.

    Mirrors `SqliteDatabase`: one psycopg2 connection per handle, guarded
    by a re-entrant lock. The connection runs in autocommit mode and
    `transaction()` issues BEGIN/COMMIT itself; nested blocks become
    savepoints so a failed statement can be undone without aborting the
    enclosing transaction.
    """

    def __init__(self, dsn: str) -> None:
        self._dsn = dsn
        self._conn = None
        self._lock = threading.RLock()
        self._depth = 0

    def open(self) -> "PostgresDatabase":
        if self._conn is not None:
            return self
        try:
            conn = psycopg2.connect(self._dsn)
            conn.autocommit = True
        except psycopg2.Error as exc:
            raise StoreError(f"Cannot connect to PostgreSQL: {exc}") from exc

        self._conn = conn
        self._ensure_schema()
        logger.info("PostgreSQL connection opened")
        return self

    def close(self) -> None:
        with self._lock:
            if self._conn is None:
                return
            self._conn.close()
            self._conn = None
            logger.info("PostgreSQL connection closed")

    def __enter__(self) -> "PostgresDatabase":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _connection(self):
        if self._conn is None:
            raise StoreError("Database is not open")
        return self._conn

    def _ensure_schema(self) -> None:
        with self.transaction():
            for statement in SCHEMA:
                self.execute(statement)

    def _raw(self, sql: str) -> None:
        with self._connection().cursor() as cur:
            cur.execute(sql)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            self._connection()
            savepoint = f"sp_{self._depth}" if self._depth else None
            try:
                self._raw(f"SAVEPOINT {savepoint}" if savepoint else "BEGIN")
            except psycopg2.Error as exc:
                raise StoreError(f"Cannot begin transaction: {exc}") from exc
            self._depth += 1
            try:
                yield
            except BaseException:
                self._depth -= 1
                self._raw(f"ROLLBACK TO SAVEPOINT {savepoint}" if savepoint else "ROLLBACK")
                raise
            else:
                self._depth -= 1
                try:
                    self._raw(f"RELEASE SAVEPOINT {savepoint}" if savepoint else "COMMIT")
                except psycopg2.Error as exc:
                    if not savepoint:
                        self._raw("ROLLBACK")
                    raise StoreError(f"Cannot commit transaction: {exc}") from exc

    def _run(self, sql: str, params: Sequence, fetch: Optional[str]):
        with self._lock:
            conn = self._connection()
            try:
                with conn.cursor() as cur:
                    cur.execute(sql, params)
                    if fetch == "one":
                        return cur.fetchone()
                    if fetch == "all":
                        return cur.fetchall()
                    return cur.rowcount
            except _CONSTRAINT_ERRORS as exc:
                raise ConstraintError(str(exc)) from exc
            except psycopg2.Error as exc:
                raise StoreError(str(exc)) from exc

    def execute(self, sql: str, params: Sequence = ()) -> int:
        """Run a statement and return the affected row count."""

        return self._run(sql, params, None)

    def fetchone(self, sql: str, params: Sequence = ()):
        return self._run(sql, params, "one")

    def fetchall(self, sql: str, params: Sequence = ()) -> List[tuple]:
        return self._run(sql, params, "all")
