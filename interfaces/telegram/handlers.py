from __future__ import annotations

import logging
import threading

import telebot
from telebot.apihelper import ApiTelegramException

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
    HELP_TEXT,
    NO_DATA_TEXT,
    NO_ENTRIES_TEXT,
    format_created,
    format_stats_table,
    format_top,
    format_updated,
    usage_hint,
)
from interfaces.telegram.message_parsing import (
    command_argument,
    message_text,
    parse_game_command,
)


logger = logging.getLogger(__name__)

DEFAULT_REPLY_TTL_SECONDS = 30.0


def _result_text(result: SubmissionResult) -> str:
    if result.game_id is None:
        return NO_ENTRIES_TEXT
    if result.updated:
        return format_updated(result.game_date, result.saved_count)
    return format_created(result.game_date, result.saved_count)


def create_telegram_bot(
    bot_token: str,
    ledger_repo: LedgerRepository,
    stats_repo: StatsRepository,
    reply_ttl: float = DEFAULT_REPLY_TTL_SECONDS,
) -> telebot.TeleBot:
    """
    Configure and return a TeleBot instance wired to the application layer.

    This module contains only Telegram-specific concerns: reading messages
    and captions, deleting command messages and short-lived replies, and
    rendering results. Ledger and stats logic lives in `application`.
    """

    bot = telebot.TeleBot(bot_token)

    def _delete_quietly(chat_id: int, message_id: int) -> None:
        try:
            bot.delete_message(chat_id, message_id)
        except ApiTelegramException as exc:
            logger.warning("Could not delete message %s in chat %s: %s", message_id, chat_id, exc)

    def reply_with_auto_delete(message, text: str, parse_mode=None) -> None:
        sent = bot.send_message(message.chat.id, text, parse_mode=parse_mode)
        if reply_ttl > 0:
            timer = threading.Timer(reply_ttl, _delete_quietly, args=(sent.chat.id, sent.message_id))
            timer.daemon = True
            timer.start()

    def delete_command_message(message) -> None:
        _delete_quietly(message.chat.id, message.message_id)

    def bot_username() -> str:
        return bot.user.username or ""

    @bot.message_handler(commands=["start", "help"])
    def handle_help(message):
        delete_command_message(message)
        reply_with_auto_delete(message, HELP_TEXT, parse_mode="Markdown")

    @bot.message_handler(commands=["stats"])
    def handle_stats(message):
        logger.info("/stats from %s in chat %s", message.from_user.id, message.chat.id)
        delete_command_message(message)
        raw_filter = command_argument(message.text)
        try:
            stats_filter = parse_stats_filter(raw_filter)
            rows = query_stats(raw_filter, stats_repo)
        except InvalidFilterError:
            reply_with_auto_delete(message, usage_hint("stats"))
            return
        except Exception:  # Report and keep polling.
            logger.exception("/stats failed")
            reply_with_auto_delete(message, "❌ Ошибка при загрузке статистики.")
            return

        if not rows:
            reply_with_auto_delete(message, NO_DATA_TEXT)
            return
        reply_with_auto_delete(message, format_stats_table(rows, stats_filter), parse_mode="Markdown")

    @bot.message_handler(commands=["top"])
    def handle_top(message):
        logger.info("/top from %s in chat %s", message.from_user.id, message.chat.id)
        delete_command_message(message)
        raw_filter = command_argument(message.text)
        try:
            stats_filter = parse_stats_filter(raw_filter)
            scores = query_scores(raw_filter, stats_repo)
        except InvalidFilterError:
            reply_with_auto_delete(message, usage_hint("top"))
            return
        except Exception:
            logger.exception("/top failed")
            reply_with_auto_delete(message, "❌ Ошибка при загрузке топа.")
            return

        if not scores:
            reply_with_auto_delete(message, NO_DATA_TEXT)
            return
        reply_with_auto_delete(message, format_top(scores, stats_filter))

    @bot.message_handler(commands=["stats_update"])
    def handle_stats_update(message):
        logger.info("/stats_update in chat %s", message.chat.id)
        delete_command_message(message)
        status = bot.send_message(message.chat.id, "🔄 Пересчёт статистики...")
        try:
            written = recompute_all(stats_repo)
        except Exception:
            logger.exception("/stats_update failed")
            reply_with_auto_delete(message, "❌ Ошибка при пересчёте.")
            return
        finally:
            _delete_quietly(status.chat.id, status.message_id)

        reply_with_auto_delete(message, f"✅ Статистика успешно пересчитана! Участников: {written}")

    def register_game(message, delete_source: bool) -> None:
        command = parse_game_command(message, bot_username())
        if command is None:
            return

        if delete_source:
            delete_command_message(message)

        try:
            result = submit_message(
                message.chat.id,
                message.message_id,
                command.lines,
                ledger_repo,
                game_date=command.game_date,
            )
        except Exception:
            logger.exception("Could not register game from message %s", message.message_id)
            reply_with_auto_delete(message, "❌ Не удалось сохранить игру.")
            return

        reply_with_auto_delete(message, _result_text(result))

    @bot.message_handler(content_types=["photo"])
    def handle_photo(message):
        # Photos stay in the chat; only the caption is read.
        if message.caption:
            register_game(message, delete_source=False)

    @bot.message_handler(content_types=["text"])
    def handle_text(message):
        if parse_game_command(message, bot_username()) is not None:
            register_game(message, delete_source=True)
            return

        if message.text.startswith("/"):
            return

        try:
            result = submit_message(message.chat.id, message.message_id, split_lines(message.text), ledger_repo)
        except Exception:
            logger.exception("Could not process message %s", message.message_id)
            return

        if result.game_id is not None:
            logger.info("Message %s saved %s entries to game %s", message.message_id, result.saved_count, result.game_id)

    @bot.edited_message_handler(content_types=["text", "photo"])
    def handle_edit(message):
        text = message_text(message)
        if not text:
            return

        try:
            result = submit_edit(
                message.chat.id,
                message.message_id,
                strip_command_line(split_lines(text)),
                ledger_repo,
                game_date=extract_game_date(text),
            )
        except Exception:
            logger.exception("Could not reconcile edited message %s", message.message_id)
            reply_with_auto_delete(message, "❌ Не удалось обновить игру из отредактированного сообщения.")
            return

        if result.game_id is None:
            logger.info("Edited message %s has no ledger lines; nothing kept", message.message_id)
            return
        reply_with_auto_delete(message, _result_text(result))

    return bot
