"""
Helpers for turning raw message text into the lines the parser consumes.

They are transport-agnostic: Telegram and Discord handlers both go through
here so that a game registered on either channel is read the same way.
"""

from __future__ import annotations

import re
from datetime import date
from typing import List, Optional

from .parser import DEFAULT_IN_HEADER, DEFAULT_OUT_HEADER, match_entry_line


GAME_COMMAND = "game"

_GAME_DATE_RE = re.compile(r"game\s+(\d{2})\.(\d{2})\.(\d{4})")
_GAME_COMMAND_RE = re.compile(r"\bgame\b")


def split_lines(text: str) -> List[str]:
    """Split text into trimmed lines, dropping blank ones."""

    return [line.strip() for line in text.splitlines() if line.strip()]


def is_command_line(line: str) -> bool:
    return bool(_GAME_COMMAND_RE.search(line)) and match_entry_line(line) is None


def _is_section_start(line: str) -> bool:
    folded = line.casefold()
    if folded in (DEFAULT_IN_HEADER.casefold(), DEFAULT_OUT_HEADER.casefold()):
        return True
    return match_entry_line(line) is not None


def strip_command_line(lines: List[str]) -> List[str]:
    """
    Drop a leading `game` command line and anything above it.

    Only lines before the first section header or data line are looked at,
    so a later chat remark such as "good game" is left to the parser.
    When no leading command line is present the lines are returned unchanged.
    """

    for index, line in enumerate(lines):
        if _is_section_start(line):
            break
        if is_command_line(line):
            return lines[index + 1 :]
    return list(lines)


def extract_game_date(text: str) -> Optional[date]:
    """
    Find a `game DD.MM.YYYY` directive and return it as a date.

    Returns None if there is no directive or it names an impossible day.
    """

    match = _GAME_DATE_RE.search(text)
    if not match:
        return None

    day, month, year = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError:
        return None
