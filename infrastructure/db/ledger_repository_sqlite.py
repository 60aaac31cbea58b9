from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date, datetime
from typing import Iterator, List, Optional

from domain.errors import ConstraintError
from domain.models import Direction, Game, Transaction, validate_transaction_fields
from domain.repositories import LedgerRepository
from infrastructure.db.sqlite_database import SqliteDatabase


logger = logging.getLogger(__name__)


def _parse_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SqliteLedgerRepository(LedgerRepository):
    """
    SQLite-backed implementation of `LedgerRepository`.

    Owns the `games` and `transactions` tables of the shared
    `SqliteDatabase` and maps their rows to the domain models.
    """

    def __init__(self, database: SqliteDatabase) -> None:
        self._db = database

    @staticmethod
    def _game_to_domain(row) -> Game:
        return Game(
            id=int(row[0]),
            chat_id=int(row[1]),
            origin_message_id=int(row[2]) if row[2] is not None else None,
            game_date=_parse_date(row[3]),
            created_at=_parse_timestamp(row[4]),
        )

    @staticmethod
    def _transaction_to_domain(row) -> Transaction:
        return Transaction(
            id=int(row[0]),
            game_id=int(row[1]),
            username=row[2],
            amount=int(row[3]),
            direction=Direction(row[4]),
            created_at=_parse_timestamp(row[5]),
        )

    @contextmanager
    def unit_of_work(self) -> Iterator[None]:
        with self._db.transaction():
            yield

    def create_game(
        self,
        chat_id: int,
        origin_message_id: Optional[int],
        game_date: Optional[date] = None,
    ) -> int:
        with self._db.transaction():
            cur = self._db.execute(
                """
                INSERT INTO games (chat_id, message_id, game_date)
                VALUES (?, ?, ?)
                """,
                (chat_id, origin_message_id, game_date.isoformat() if game_date else None),
            )
            game_id = int(cur.lastrowid)
        logger.info(
            "Created game %s (chat=%s, message=%s, date=%s)",
            game_id,
            chat_id,
            origin_message_id,
            game_date,
        )
        return game_id

    def get_game(self, game_id: int) -> Optional[Game]:
        row = self._db.fetchone(
            "SELECT id, chat_id, message_id, game_date, created_at FROM games WHERE id = ?",
            (game_id,),
        )
        if not row:
            return None
        return self._game_to_domain(row)

    def find_game_by_origin(self, chat_id: int, origin_message_id: int) -> Optional[Game]:
        row = self._db.fetchone(
            """
            SELECT id, chat_id, message_id, game_date, created_at
            FROM games
            WHERE chat_id = ? AND message_id = ?
            ORDER BY id DESC
            LIMIT 1
            """,
            (chat_id, origin_message_id),
        )
        if not row:
            return None
        return self._game_to_domain(row)

    def update_game_date(self, game_id: int, game_date: Optional[date]) -> None:
        with self._db.transaction():
            self._db.execute(
                "UPDATE games SET game_date = ? WHERE id = ?",
                (game_date.isoformat() if game_date else None, game_id),
            )

    def delete_game(self, game_id: int) -> None:
        with self._db.transaction():
            self._db.execute("DELETE FROM transactions WHERE game_id = ?", (game_id,))
            self._db.execute("DELETE FROM games WHERE id = ?", (game_id,))
        logger.info("Deleted game %s", game_id)

    def append_transaction(
        self,
        game_id: int,
        username: str,
        amount: int,
        direction: Direction,
    ) -> None:
        name, direction = validate_transaction_fields(username, amount, direction)

        with self._db.transaction():
            if self._db.fetchone("SELECT 1 FROM games WHERE id = ?", (game_id,)) is None:
                raise ConstraintError(f"Game {game_id} does not exist")

            self._db.execute(
                """
                INSERT INTO transactions (game_id, username, amount, type)
                VALUES (?, ?, ?, ?)
                """,
                (game_id, name, amount, direction.value),
            )

    def get_transactions(self, game_id: int) -> List[Transaction]:
        rows = self._db.fetchall(
            """
            SELECT id, game_id, username, amount, type, created_at
            FROM transactions
            WHERE game_id = ?
            ORDER BY id
            """,
            (game_id,),
        )
        return [self._transaction_to_domain(row) for row in rows]

    def delete_transactions_by_game(self, game_id: int) -> int:
        with self._db.transaction():
            cur = self._db.execute("DELETE FROM transactions WHERE game_id = ?", (game_id,))
            deleted = cur.rowcount
        logger.info("Deleted %s transactions of game %s", deleted, game_id)
        return deleted
