from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional

from application.reconciliation import (
    ReconcileOutcome,
    create_game_from_lines,
    reconcile_edit,
    replace_game_transactions,
)
from domain.models import UserScore, UserStats
from domain.parser import parse_lines
from domain.repositories import LedgerRepository, StatsRepository
from domain.stats import parse_stats_filter, rank_stats, to_scores


logger = logging.getLogger(__name__)


@dataclass
class SubmissionResult:
    """
    Outcome of registering or updating a game from chat lines.

    `game_id` is None when nothing was kept. `saved_count` is the number
    of ledger lines actually stored and is the only reliable measure of
    success: rejected lines are skipped, not reported.
    """

    game_id: Optional[int]
    saved_count: int
    game_date: Optional[date] = None
    updated: bool = False


def submit_message(
    chat_id: int,
    message_id: int,
    lines: Iterable[str],
    ledger_repo: LedgerRepository,
    game_date: Optional[date] = None,
    today: Optional[date] = None,
) -> SubmissionResult:
    """
    Register a game from a newly posted message.

    Lines that parse to no entries create nothing. A message that already
    has a game (e.g. delivered twice) replaces that game's transactions
    instead of creating a second one, keeping its stored date unless a
    new one is given.
    """

    lines = list(lines)
    today = today or date.today()

    if parse_lines(lines).count == 0:
        logger.info("Message %s in chat %s has no ledger lines", message_id, chat_id)
        return SubmissionResult(game_id=None, saved_count=0, game_date=game_date or today)

    existing = ledger_repo.find_game_by_origin(chat_id, message_id)
    if existing is not None:
        game_date = game_date or existing.game_date or today
        saved = replace_game_transactions(existing.id, lines, game_date, ledger_repo)
        return SubmissionResult(
            game_id=existing.id,
            saved_count=saved,
            game_date=game_date,
            updated=True,
        )

    game_date = game_date or today
    created = create_game_from_lines(chat_id, message_id, lines, game_date, ledger_repo)
    if created is None:
        return SubmissionResult(game_id=None, saved_count=0, game_date=game_date)

    game_id, saved = created
    return SubmissionResult(game_id=game_id, saved_count=saved, game_date=game_date)


def submit_edit(
    chat_id: int,
    message_id: int,
    lines: Iterable[str],
    ledger_repo: LedgerRepository,
    game_date: Optional[date] = None,
    today: Optional[date] = None,
) -> SubmissionResult:
    """Re-read an edited message; see `reconcile_edit` for the rules."""

    result = reconcile_edit(
        chat_id,
        message_id,
        lines,
        ledger_repo,
        game_date=game_date,
        today=today,
    )
    return SubmissionResult(
        game_id=result.game_id,
        saved_count=result.saved_count,
        game_date=result.game_date,
        updated=result.outcome is ReconcileOutcome.UPDATED,
    )


def import_game(
    chat_id: int,
    lines: Iterable[str],
    ledger_repo: LedgerRepository,
    game_date: Optional[date] = None,
    today: Optional[date] = None,
) -> SubmissionResult:
    """Create a game that is not tied to any chat message."""

    game_date = game_date or today or date.today()
    created = create_game_from_lines(chat_id, None, list(lines), game_date, ledger_repo)
    if created is None:
        return SubmissionResult(game_id=None, saved_count=0, game_date=game_date)

    game_id, saved = created
    return SubmissionResult(game_id=game_id, saved_count=saved, game_date=game_date)


def query_stats(
    raw_filter: Optional[str],
    stats_repo: StatsRepository,
    today: Optional[date] = None,
) -> List[UserStats]:
    """
    Per-user totals for the requested period, best score first.

    Raises `InvalidFilterError` before touching the store when the filter
    is not empty, `all` or a 4-digit year.
    """

    stats_filter = parse_stats_filter(raw_filter)
    window = stats_filter.window(today or date.today())
    return rank_stats(stats_repo.query_stats(window))


def query_scores(
    raw_filter: Optional[str],
    stats_repo: StatsRepository,
    today: Optional[date] = None,
) -> List[UserScore]:
    stats_filter = parse_stats_filter(raw_filter)
    window = stats_filter.window(today or date.today())
    return to_scores(stats_repo.query_stats(window))


def recompute_all(stats_repo: StatsRepository) -> int:
    """Rebuild the all-time snapshot; returns the number of users in it."""

    return stats_repo.recompute_all()


def get_snapshot(stats_repo: StatsRepository) -> List[UserStats]:
    return rank_stats(stats_repo.get_snapshot())
