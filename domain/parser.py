from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional

from .models import Direction, LedgerEntry


logger = logging.getLogger(__name__)

DEFAULT_IN_HEADER = "Вход:"
DEFAULT_OUT_HEADER = "Выход:"

# +<amount> [spaces] | <name> [// comment]
_ENTRY_RE = re.compile(r"^\+([0-9]+)\s*\|(.*)$")
_COMMENT_MARKER = "//"


class ParseState(Enum):
    """Section the parser is currently in."""

    NONE = "none"
    IN = "in"
    OUT = "out"

    @property
    def direction(self) -> Optional[Direction]:
        if self is ParseState.IN:
            return Direction.IN
        if self is ParseState.OUT:
            return Direction.OUT
        return None


@dataclass
class ParseResult:
    entries: List[LedgerEntry] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.entries)


def match_entry_line(line: str) -> Optional[tuple[int, str]]:
    """
    Match a single `+<amount> | <name>` line.

    Returns `(amount, name)` when the line has the right shape, a positive
    amount and a non-empty name once the `//` comment is removed, else None.
    """

    match = _ENTRY_RE.match(line)
    if not match:
        return None

    amount = int(match.group(1))
    name = match.group(2).split(_COMMENT_MARKER, 1)[0].strip()
    if amount <= 0 or not name:
        return None
    return amount, name


class LineParser:
    """
    Turns the lines of a chat message into ledger entries.

    Lines are expected to be trimmed and non-empty. Section headers switch
    the direction for every following data line; data lines seen before any
    header, and lines that are not data lines at all, are skipped.
    """

    def __init__(
        self,
        in_header: str = DEFAULT_IN_HEADER,
        out_header: str = DEFAULT_OUT_HEADER,
    ) -> None:
        self._in_header = in_header.casefold()
        self._out_header = out_header.casefold()

    def _header_state(self, line: str) -> Optional[ParseState]:
        folded = line.casefold()
        if folded == self._in_header:
            return ParseState.IN
        if folded == self._out_header:
            return ParseState.OUT
        return None

    def parse(self, lines: Iterable[str]) -> ParseResult:
        state = ParseState.NONE
        result = ParseResult()

        for line in lines:
            header = self._header_state(line)
            if header is not None:
                state = header
                logger.debug("Switched section to %s", state.value)
                continue

            matched = match_entry_line(line)
            if matched is None:
                logger.debug("Skipped line: %r", line)
                continue

            direction = state.direction
            if direction is None:
                logger.debug("Skipped entry before any section header: %r", line)
                continue

            amount, name = matched
            result.entries.append(LedgerEntry(username=name, amount=amount, direction=direction))

        return result


_default_parser = LineParser()


def parse_lines(lines: Iterable[str]) -> ParseResult:
    """Parse with the default `Вход:` / `Выход:` headers."""

    return _default_parser.parse(lines)
