from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Iterable, Optional

from domain.errors import LedgerError
from domain.models import LedgerEntry
from domain.parser import parse_lines
from domain.repositories import LedgerRepository


logger = logging.getLogger(__name__)


class ReconcileOutcome(Enum):
    UPDATED = "updated"
    CREATED = "created"
    DISCARDED = "discarded"


@dataclass
class ReconcileResult:
    game_id: Optional[int]
    saved_count: int
    game_date: Optional[date]
    outcome: ReconcileOutcome


def append_entries(
    game_id: int,
    entries: Iterable[LedgerEntry],
    ledger_repo: LedgerRepository,
) -> int:
    """
    Append parsed entries one by one and return how many were stored.

    A rejected line is logged and skipped; the rest of the batch goes on.
    """

    saved = 0
    for entry in entries:
        try:
            ledger_repo.append_transaction(game_id, entry.username, entry.amount, entry.direction)
        except LedgerError as exc:
            logger.warning(
                "Could not save %s +%s (%s) for game %s: %s",
                entry.username,
                entry.amount,
                entry.direction.value,
                game_id,
                exc,
            )
            continue
        saved += 1
    return saved


def replace_game_transactions(
    game_id: int,
    lines: Iterable[str],
    game_date: Optional[date],
    ledger_repo: LedgerRepository,
) -> int:
    """
    Make the game's transactions exactly what `lines` parse to.

    Date update, deletion and replay happen in one unit of work.
    """

    entries = parse_lines(lines).entries
    with ledger_repo.unit_of_work():
        ledger_repo.update_game_date(game_id, game_date)
        deleted = ledger_repo.delete_transactions_by_game(game_id)
        saved = append_entries(game_id, entries, ledger_repo)
    logger.info("Game %s replayed: %s removed, %s saved", game_id, deleted, saved)
    return saved


def create_game_from_lines(
    chat_id: int,
    origin_message_id: Optional[int],
    lines: Iterable[str],
    game_date: date,
    ledger_repo: LedgerRepository,
) -> Optional[tuple[int, int]]:
    """
    Create a game and fill it from `lines`.

    If nothing could be saved the game is deleted again and None is
    returned; otherwise `(game_id, saved_count)`.
    """

    entries = parse_lines(lines).entries
    with ledger_repo.unit_of_work():
        game_id = ledger_repo.create_game(chat_id, origin_message_id, game_date)
        saved = append_entries(game_id, entries, ledger_repo)
        if saved == 0:
            ledger_repo.delete_game(game_id)
            logger.info("Game %s rolled back: no valid entries", game_id)
            return None
    return game_id, saved


def reconcile_edit(
    chat_id: int,
    message_id: int,
    lines: Iterable[str],
    ledger_repo: LedgerRepository,
    game_date: Optional[date] = None,
    today: Optional[date] = None,
) -> ReconcileResult:
    """
    Bring the ledger in line with the edited text of a chat message.

    - A game already registered from the message is replayed: its date is
      updated (the stored one is kept when the text has no date directive)
      and its transactions are replaced by what the new text parses to.
    - Otherwise the message is handled as a fresh submission; a game that
      would end up empty is not kept.
    """

    today = today or date.today()
    lines = list(lines)

    existing = ledger_repo.find_game_by_origin(chat_id, message_id)
    if existing is not None:
        new_date = game_date or existing.game_date or today
        saved = replace_game_transactions(existing.id, lines, new_date, ledger_repo)
        return ReconcileResult(
            game_id=existing.id,
            saved_count=saved,
            game_date=new_date,
            outcome=ReconcileOutcome.UPDATED,
        )

    new_date = game_date or today
    created = create_game_from_lines(chat_id, message_id, lines, new_date, ledger_repo)
    if created is None:
        return ReconcileResult(
            game_id=None,
            saved_count=0,
            game_date=new_date,
            outcome=ReconcileOutcome.DISCARDED,
        )

    game_id, saved = created
    return ReconcileResult(
        game_id=game_id,
        saved_count=saved,
        game_date=new_date,
        outcome=ReconcileOutcome.CREATED,
    )
