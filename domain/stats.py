from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, List, Optional

from .errors import InvalidFilterError
from .models import UserScore, UserStats


TRAILING_WINDOW_DAYS = 365

_YEAR_RE = re.compile(r"^[0-9]{4}$")


@dataclass(frozen=True)
class StatsWindow:
    """
    Range of game dates included in a live stats query.

    `start` is inclusive, `end` exclusive; None means unbounded. A window
    with either bound set only matches games that have a date.
    """

    start: Optional[date] = None
    end: Optional[date] = None

    @property
    def is_bounded(self) -> bool:
        return self.start is not None or self.end is not None

    def contains(self, game_date: Optional[date]) -> bool:
        if not self.is_bounded:
            return True
        if game_date is None:
            return False
        if self.start is not None and game_date < self.start:
            return False
        if self.end is not None and game_date >= self.end:
            return False
        return True


@dataclass(frozen=True)
class StatsFilter:
    """
    A validated stats filter.

    Exactly one of the forms is active: trailing year (default), all time,
    or one calendar year.
    """

    all_time: bool = False
    year: Optional[int] = None

    @property
    def label(self) -> str:
        if self.all_time:
            return "all"
        if self.year is not None:
            return str(self.year)
        return "last-year"

    def window(self, today: date) -> StatsWindow:
        if self.all_time:
            return StatsWindow()
        if self.year is not None:
            end = date(self.year + 1, 1, 1) if self.year < date.max.year else None
            return StatsWindow(start=date(self.year, 1, 1), end=end)
        return StatsWindow(start=today - timedelta(days=TRAILING_WINDOW_DAYS))


def parse_stats_filter(raw: Optional[str]) -> StatsFilter:
    """
    Validate a user-supplied filter argument.

    Accepts nothing (trailing 365 days), `all`, or a 4-digit year; anything
    else raises `InvalidFilterError`.
    """

    if raw is None or not raw.strip():
        return StatsFilter()

    value = raw.strip().lower()
    if value == "all":
        return StatsFilter(all_time=True)
    if _YEAR_RE.match(value):
        year = int(value)
        if year < 1:
            raise InvalidFilterError(raw)
        return StatsFilter(year=year)
    raise InvalidFilterError(raw)


def rank_stats(rows: Iterable[UserStats]) -> List[UserStats]:
    """Order by score descending; equal scores by username ascending."""

    return sorted(rows, key=lambda row: (-row.score, row.username))


def to_scores(rows: Iterable[UserStats]) -> List[UserScore]:
    return [UserScore(username=row.username, score=row.score) for row in rank_stats(rows)]
