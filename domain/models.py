from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Optional

from .errors import ConstraintError


# Largest amount both backends store: SQLite INTEGER and PostgreSQL BIGINT.
MAX_AMOUNT = 2**63 - 1


class Direction(str, Enum):
    """Which way chips moved for a ledger line."""

    IN = "in"
    OUT = "out"


@dataclass
class Game:
    """
    One recorded session of the cash game.

    A game is scoped to a chat and, when it was registered from a chat
    message, to the ID of that message. Imported games have no origin
    message.
    """

    id: int
    chat_id: int
    origin_message_id: Optional[int]
    game_date: Optional[date]
    created_at: Optional[datetime] = None


@dataclass
class Transaction:
    """A single buy-in or cash-out line stored for a game."""

    id: int
    game_id: int
    username: str
    amount: int
    direction: Direction
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class LedgerEntry:
    """A parsed `+<amount> | <name>` line, not yet persisted."""

    username: str
    amount: int
    direction: Direction


@dataclass
class UserStats:
    """
    Aggregated totals for one participant.

    Derived data: always recomputable from the transactions it summarises.
    """

    username: str
    total_in: int
    total_out: int
    games_count: int = 0

    @property
    def score(self) -> int:
        return self.total_out - self.total_in


@dataclass
class UserScore:
    username: str
    score: int


def validate_transaction_fields(username: str, amount: int, direction) -> tuple[str, Direction]:
    """
    Check a ledger line before it is written.

    Returns the trimmed username and the direction as a `Direction`;
    raises `ConstraintError` for anything the ledger must not store.
    """

    try:
        direction = Direction(direction)
    except ValueError:
        raise ConstraintError(f"Invalid direction: {direction!r}") from None

    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ConstraintError(f"Amount must be a positive integer, got {amount!r}")
    if amount > MAX_AMOUNT:
        raise ConstraintError(f"Amount {amount} exceeds the maximum of {MAX_AMOUNT}")

    name = (username or "").strip()
    if not name:
        raise ConstraintError("Username must not be empty")

    return name, direction
