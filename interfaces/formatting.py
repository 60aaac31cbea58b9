from __future__ import annotations

from datetime import date
from typing import List, Optional, Sequence

from domain.models import UserScore, UserStats
from domain.stats import StatsFilter


STATS_LIMIT = 30
TOP_LIMIT = 10

HELP_TEXT = "\n".join(
    [
        "📚 *Список доступных команд:*",
        "/stats [all|ГГГГ] — статистика участников (игры, вход, выход, разница)",
        "/top [all|ГГГГ] — топ-10 по разнице (выход минус вход)",
        "/stats\\_update — пересчитать общую статистику",
        "/help — показать это сообщение",
        "",
        "ℹ️ *Как добавлять данные:*",
        "Строки вида `+<сумма> | <ник>`, секции `Вход:` и `Выход:`.",
        "Пример:",
        "```",
        "Вход:",
        "+500 | Тема",
        "+700 | @Rabotyaga3000",
        "Выход:",
        "+1840 | @EgorVaganov1111",
        "```",
    ]
)


def filter_suffix(stats_filter: StatsFilter) -> str:
    if stats_filter.all_time:
        return " (всё время)"
    if stats_filter.year is not None:
        return f" ({stats_filter.year} год)"
    return " (последний год)"


def usage_hint(command: str) -> str:
    return (
        f"❌ Неверный формат. Используйте `/{command} all`, `/{command} 2024` "
        f"или просто `/{command}` для последнего года."
    )


def signed(value: int) -> str:
    return f"+{value}" if value >= 0 else str(value)


def format_stats_table(rows: Sequence[UserStats], stats_filter: StatsFilter) -> str:
    """Render stats as a fixed-width table inside a Markdown code block."""

    lines: List[str] = [
        f"📊 Статистика участников{filter_suffix(stats_filter)}:",
        "```",
        "№    Участник           Игр    Вход    Выход   Разница",
        "-" * 55,
    ]
    for index, row in enumerate(rows[:STATS_LIMIT], start=1):
        lines.append(
            f"{str(index).ljust(4)} {row.username.ljust(18)} "
            f"{str(row.games_count).rjust(4)} {str(row.total_in).rjust(6)} "
            f"{str(row.total_out).rjust(6)} {signed(row.score).rjust(7)}"
        )
    lines.append("```")
    return "\n".join(lines)


def format_top(scores: Sequence[UserScore], stats_filter: StatsFilter) -> str:
    title = f"🏆 Топ участников{filter_suffix(stats_filter)}:"
    body = [
        f"{index}. {item.username} — {signed(item.score)}"
        for index, item in enumerate(scores[:TOP_LIMIT], start=1)
    ]
    return "\n".join([title, *body])


def format_created(game_date: Optional[date], saved_count: int) -> str:
    return f"✅ Игра от {game_date} успешно создана. Добавлено записей: {saved_count}"


def format_updated(game_date: Optional[date], saved_count: int) -> str:
    return f"✏️ Игра от {game_date} обновлена. Добавлено записей: {saved_count}"


NO_ENTRIES_TEXT = "⚠️ Не найдено ни одной корректной записи. Игра не создана."
NO_DATA_TEXT = "📊 Пока нет данных за указанный период."
