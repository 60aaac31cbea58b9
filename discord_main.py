import logging
import os

from dotenv import load_dotenv

from infrastructure.db.factory import open_storage
from interfaces.discord.handlers import create_discord_bot


load_dotenv()

DISCORD_TOKEN = os.environ.get("DISCORD_TOKEN")
DATABASE_URL = os.environ.get("DATABASE_URL")
DB_PATH = os.environ.get("DB_PATH", "stats.db")
REPLY_TTL_SECONDS = float(os.environ.get("REPLY_TTL_SECONDS", "30"))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


def main() -> None:
    if not DISCORD_TOKEN:
        raise RuntimeError("DISCORD_TOKEN environment variable is not set.")

    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    storage = open_storage(DATABASE_URL, DB_PATH)
    try:
        bot = create_discord_bot(storage.ledger_repo, storage.stats_repo, REPLY_TTL_SECONDS)
        bot.run(DISCORD_TOKEN, log_handler=None)
    finally:
        storage.close()


if __name__ == "__main__":
    main()
