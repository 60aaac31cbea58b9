from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Sequence

from domain.messages import GAME_COMMAND, extract_game_date, split_lines, strip_command_line


@dataclass
class GameCommand:
    """A `@bot game [DD.MM.YYYY]` message and the data lines under it."""

    game_date: Optional[date]
    lines: List[str]


def message_text(message) -> Optional[str]:
    """Text of a message, falling back to the caption of a photo."""

    text = getattr(message, "text", None)
    if text is not None:
        return text
    return getattr(message, "caption", None)


def _message_entities(message) -> Sequence:
    if getattr(message, "text", None) is not None:
        return getattr(message, "entities", None) or []
    return getattr(message, "caption_entities", None) or []


def entity_text(text: str, offset: int, length: int) -> str:
    """
    Slice an entity out of `text`.

    Telegram counts offsets in UTF-16 code units, so emoji and other
    astral characters take two positions.
    """

    encoded = text.encode("utf-16-le")
    return encoded[offset * 2 : (offset + length) * 2].decode("utf-16-le")


def mentions_bot(message, bot_username: str) -> bool:
    text = message_text(message)
    if not text:
        return False

    expected = f"@{bot_username}".lower()
    for entity in _message_entities(message):
        if entity.type != "mention":
            continue
        if entity_text(text, entity.offset, entity.length).lower() == expected:
            return True
    return False


def parse_game_command(message, bot_username: str) -> Optional[GameCommand]:
    """
    Recognise a game registration addressed to the bot.

    Returns None unless the message mentions the bot and contains the
    `game` keyword.
    """

    text = message_text(message)
    if not text or GAME_COMMAND not in text:
        return None
    if not mentions_bot(message, bot_username):
        return None

    return GameCommand(
        game_date=extract_game_date(text),
        lines=strip_command_line(split_lines(text)),
    )


def command_argument(text: Optional[str]) -> Optional[str]:
    """First argument after a slash command, e.g. `2024` in `/stats 2024`."""

    if not text:
        return None
    parts = text.split()
    if len(parts) < 2:
        return None
    return parts[1]
