from __future__ import annotations

import logging
from typing import Optional

import discord
from discord.ext import commands

from application.services import (
    SubmissionResult,
    query_scores,
    query_stats,
    recompute_all,
    submit_edit,
    submit_message,
)
from domain.errors import InvalidFilterError
from domain.messages import extract_game_date, split_lines, strip_command_line
from domain.repositories import LedgerRepository, StatsRepository
from domain.stats import parse_stats_filter
from interfaces.formatting import (
    NO_DATA_TEXT,
    format_created,
    format_stats_table,
    format_top,
    format_updated,
)


logger = logging.getLogger(__name__)

COMMAND_PREFIX = "!"

HELP_TEXT = (
    "!stats [all|ГГГГ]    - статистика участников (игры, вход, выход, разница)\n"
    "!top [all|ГГГГ]      - топ-10 по разнице (выход минус вход)\n"
    "!stats_update        - пересчитать общую статистику\n"
    "!help                - показать это сообщение\n"
    "\n"
    "Игра: строки `+<сумма> | <ник>` под секциями `Вход:` и `Выход:`."
)


def _result_text(result: SubmissionResult) -> Optional[str]:
    if result.game_id is None:
        return None
    if result.updated:
        return format_updated(result.game_date, result.saved_count)
    return format_created(result.game_date, result.saved_count)


def create_discord_bot(
    ledger_repo: LedgerRepository,
    stats_repo: StatsRepository,
    reply_ttl: float = 30.0,
) -> commands.Bot:
    """
    Configure and return a Discord bot with behaviour analogous to
    the Telegram interface: stats commands, games posted as plain messages
    and reconciliation of edited messages.
    """

    intents = discord.Intents.default()
    intents.message_content = True
    intents.guilds = True

    # Disable the default help command so we can provide our own `!help`.
    bot = commands.Bot(command_prefix=COMMAND_PREFIX, intents=intents, help_command=None)
    delete_after = reply_ttl if reply_ttl > 0 else None

    @bot.event
    async def on_ready():
        logger.info("Discord bot logged in as %s (id=%s)", bot.user, bot.user.id)

    @bot.command(name="help")
    async def help_cmd(ctx: commands.Context):
        await ctx.send(HELP_TEXT, delete_after=delete_after)

    @bot.command(name="stats")
    async def stats_cmd(ctx: commands.Context, raw_filter: Optional[str] = None):
        try:
            stats_filter = parse_stats_filter(raw_filter)
        except InvalidFilterError:
            await ctx.send("❌ Неверный формат. Используйте `!stats`, `!stats all` или `!stats 2024`.", delete_after=delete_after)
            return

        rows = query_stats(raw_filter, stats_repo)
        if not rows:
            await ctx.send(NO_DATA_TEXT, delete_after=delete_after)
            return
        await ctx.send(format_stats_table(rows, stats_filter), delete_after=delete_after)

    @bot.command(name="top")
    async def top_cmd(ctx: commands.Context, raw_filter: Optional[str] = None):
        try:
            stats_filter = parse_stats_filter(raw_filter)
        except InvalidFilterError:
            await ctx.send("❌ Неверный формат. Используйте `!top`, `!top all` или `!top 2024`.", delete_after=delete_after)
            return

        scores = query_scores(raw_filter, stats_repo)
        if not scores:
            await ctx.send(NO_DATA_TEXT, delete_after=delete_after)
            return
        await ctx.send(format_top(scores, stats_filter), delete_after=delete_after)

    @bot.command(name="stats_update")
    async def stats_update_cmd(ctx: commands.Context):
        written = recompute_all(stats_repo)
        await ctx.send(f"✅ Статистика успешно пересчитана! Участников: {written}", delete_after=delete_after)

    @bot.event
    async def on_command_error(ctx: commands.Context, error: commands.CommandError):
        logger.error("Command %s failed: %s", ctx.command, error)
        await ctx.send("❌ Ошибка при выполнении команды.", delete_after=delete_after)

    @bot.event
    async def on_message(message: discord.Message):
        if message.author.bot:
            return

        if message.content.startswith(COMMAND_PREFIX):
            await bot.process_commands(message)
            return

        text = message.content
        try:
            result = submit_message(
                message.channel.id,
                message.id,
                strip_command_line(split_lines(text)),
                ledger_repo,
                game_date=extract_game_date(text),
            )
        except Exception:
            logger.exception("Could not process message %s", message.id)
            return

        reply = _result_text(result)
        if reply:
            await message.channel.send(reply, delete_after=delete_after)

    @bot.event
    async def on_message_edit(before: discord.Message, after: discord.Message):
        if after.author.bot or after.content == before.content:
            return

        text = after.content
        try:
            result = submit_edit(
                after.channel.id,
                after.id,
                strip_command_line(split_lines(text)),
                ledger_repo,
                game_date=extract_game_date(text),
            )
        except Exception:
            logger.exception("Could not reconcile edited message %s", after.id)
            return

        reply = _result_text(result)
        if reply:
            await after.channel.send(reply, delete_after=delete_after)

    return bot
