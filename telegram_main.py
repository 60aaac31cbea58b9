import logging
import os

from dotenv import load_dotenv

from infrastructure.db.factory import open_storage
from interfaces.telegram.handlers import create_telegram_bot


load_dotenv()

BOT_TOKEN = os.environ.get("BOT_TOKEN")
DATABASE_URL = os.environ.get("DATABASE_URL")
DB_PATH = os.environ.get("DB_PATH", "stats.db")
REPLY_TTL_SECONDS = float(os.environ.get("REPLY_TTL_SECONDS", "30"))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

logger = logging.getLogger(__name__)


def main() -> None:
    if not BOT_TOKEN:
        raise RuntimeError("BOT_TOKEN environment variable is not set.")

    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    storage = open_storage(DATABASE_URL, DB_PATH)
    try:
        bot = create_telegram_bot(BOT_TOKEN, storage.ledger_repo, storage.stats_repo, REPLY_TTL_SECONDS)
        logger.info("Telegram bot started")
        bot.infinity_polling(allowed_updates=["message", "edited_message"])
    finally:
        storage.close()


if __name__ == "__main__":
    main()
