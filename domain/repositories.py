from __future__ import annotations

from datetime import date
from typing import ContextManager, List, Optional, Protocol

from .models import Direction, Game, Transaction, UserStats
from .stats import StatsWindow


class LedgerRepository(Protocol):
    """
    Abstraction over game and transaction persistence.

    Implementations are responsible for:
    - Mapping between database rows and the `Game` / `Transaction` models.
    - Enforcing the ledger constraints and raising `ConstraintError`.
    - Wrapping driver failures in `StoreError`.
    """

    def unit_of_work(self) -> ContextManager[None]:
        """
        Run every call made inside the block as one atomic change.

        Nested blocks join the outermost one. An exception rolls back the
        whole block and is re-raised.
        """

        ...

    def create_game(
        self,
        chat_id: int,
        origin_message_id: Optional[int],
        game_date: Optional[date] = None,
    ) -> int:
        """Insert a new game and return its ID."""

        ...

    def get_game(self, game_id: int) -> Optional[Game]:
        ...

    def find_game_by_origin(self, chat_id: int, origin_message_id: int) -> Optional[Game]:
        """Return the game registered from the given chat message, if any."""

        ...

    def update_game_date(self, game_id: int, game_date: Optional[date]) -> None:
        ...

    def delete_game(self, game_id: int) -> None:
        """Delete a game together with any transactions it still has."""

        ...

    def append_transaction(
        self,
        game_id: int,
        username: str,
        amount: int,
        direction: Direction,
    ) -> None:
        """
        Append one ledger line to a game.

        Raises `ConstraintError` if the amount is not positive, the
        direction is unknown, the username is empty or the game is missing.
        """

        ...

    def get_transactions(self, game_id: int) -> List[Transaction]:
        ...

    def delete_transactions_by_game(self, game_id: int) -> int:
        """Delete every transaction of a game and return how many went."""

        ...


class StatsRepository(Protocol):
    """
    Aggregate queries over the ledger.

    Results are returned unordered; ranking is done by `domain.stats`.
    """

    def query_stats(self, window: StatsWindow) -> List[UserStats]:
        """Compute per-user totals live from transactions in `window`."""

        ...

    def recompute_all(self) -> int:
        """
        Rebuild the stored all-time snapshot from every transaction.

        The rebuild is atomic; returns the number of users written.
        """

        ...

    def get_snapshot(self) -> List[UserStats]:
        """Return the snapshot written by the last `recompute_all`."""

        ...
