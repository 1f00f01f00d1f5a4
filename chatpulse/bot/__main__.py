"""
chatpulse.bot.__main__ — Entry point for ``python -m chatpulse.bot``
=====================================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (infrastructure settings).
3. Create the SQLAlchemy engine, ensure tables exist, seed default settings.
4. Build and warm the ConfigCache (gameplay settings from DB).
5. Create the ChatPulseBot and hand it config + engine + cache.
6. Start the bot (blocking — runs the asyncio event loop).
"""

from __future__ import annotations

import logging
import os
import sys

from dotenv import load_dotenv

from chatpulse.bot.core import ChatPulseBot
from chatpulse.config import load_config
from chatpulse.database.engine import create_db_engine, init_db
from chatpulse.engine.cache import ConfigCache

logger = logging.getLogger("chatpulse")


def _configure_logging() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
        datefmt="%H:%M:%S",
    )


def main() -> None:
    """Bootstrap and run the ChatPulse bot."""

    # 1. Environment variables (secrets).
    load_dotenv()
    _configure_logging()

    token = os.getenv("DISCORD_TOKEN")
    if not token or token == "your-discord-bot-token-here":
        logger.critical(
            "DISCORD_TOKEN is not set.  "
            "Copy .env.example → .env and paste your bot token."
        )
        sys.exit(1)

    # 2. Infrastructure configuration.
    cfg = load_config()
    logger.info("Config loaded — Community: %s", cfg.community_name)

    # 3. Database (create_all + settings seed, idempotent).
    engine = create_db_engine()
    init_db(engine)

    # 4. Build and warm the ConfigCache.
    cache = ConfigCache(engine)
    cache.load_all()

    # 5. Bot.
    bot = ChatPulseBot(cfg=cfg, engine=engine, cache=cache)

    # 6. Run (blocks until Ctrl+C or SIGTERM).
    logger.info("Starting ChatPulse bot…")
    try:
        bot.run(token, log_handler=None)
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully…")


if __name__ == "__main__":
    main()
