"""
chatpulse.bot.core — Bot Instance & Cog Loader
===============================================

Defines :class:`ChatPulseBot`, a ``commands.Bot`` subclass that:

1. Stores the shared state every cog needs — config (``bot.cfg``), DB engine
   (``bot.engine``), settings cache (``bot.cache``), read-aggregate cache
   (``bot.stats_cache``) and the redelivery guard (``bot.guard``).
2. Loads every cog listed in :data:`EXTENSIONS`.
3. Syncs the slash-command tree on startup (guild-scoped for dev, global
   for production — controlled by the ``DEV_GUILD_ID`` env var).
"""

from __future__ import annotations

import logging
import os

import discord
from discord.ext import commands
from sqlalchemy import Engine

from chatpulse.config import ChatPulseConfig
from chatpulse.engine.anti_gaming import RedeliveryGuard
from chatpulse.engine.cache import ConfigCache, StatsCache

logger = logging.getLogger(__name__)

# Cog modules to load on startup.
EXTENSIONS: list[str] = [
    "chatpulse.bot.cogs.messages",
    "chatpulse.bot.cogs.stats",
    "chatpulse.bot.cogs.admin",
    "chatpulse.bot.cogs.tasks",
]


class ChatPulseBot(commands.Bot):
    """Custom Bot subclass that carries project-wide state.

    Parameters
    ----------
    cfg:
        The parsed :class:`ChatPulseConfig` from ``config.yaml``.
    engine:
        A SQLAlchemy :class:`Engine` connected to PostgreSQL.
    cache:
        Warm :class:`ConfigCache` of the ``settings`` table.
    """

    def __init__(self, cfg: ChatPulseConfig, engine: Engine, cache: ConfigCache) -> None:
        # MESSAGE_CONTENT is privileged (enable it in the Developer Portal);
        # classification needs the text.  Presences are never used.
        intents = discord.Intents.default()
        intents.message_content = True
        intents.presences = False

        super().__init__(
            command_prefix=cfg.bot_prefix,
            intents=intents,
            description=f"{cfg.community_name} — activity points & emoji stats",
        )

        # Attach shared state so cogs can read it via self.bot.*
        self.cfg = cfg
        self.engine = engine
        self.cache = cache
        self.stats_cache = StatsCache.from_settings(cache)
        self.guard = RedeliveryGuard(
            ttl_seconds=cache.get_float("dedup.window_seconds", 60.0),
        )

    # -----------------------------------------------------------------------
    # Lifecycle hooks
    # -----------------------------------------------------------------------
    async def setup_hook(self) -> None:
        """Called once before the bot connects to Discord.

        Loads all cog extensions.  A cog that fails to load is logged and
        skipped; the rest still start.
        """
        for ext in EXTENSIONS:
            try:
                await self.load_extension(ext)
                logger.info("Loaded extension: %s", ext)
            except Exception as exc:
                logger.error("Failed to load extension %s: %s", ext, exc)

    async def on_ready(self) -> None:
        """Fired when the bot has connected and the cache is populated."""
        assert self.user is not None  # guaranteed after on_ready
        logger.info("Logged in as %s (ID: %s)", self.user.name, self.user.id)

        # --- Slash-command sync ---------------------------------------------
        dev_guild_id = os.getenv("DEV_GUILD_ID")
        if dev_guild_id:
            guild = discord.Object(id=int(dev_guild_id))
            self.tree.copy_global_to(guild=guild)
            synced = await self.tree.sync(guild=guild)
            logger.info("Synced %d commands to dev guild %s", len(synced), dev_guild_id)
        else:
            synced = await self.tree.sync()
            logger.info("Synced %d commands globally", len(synced))

        if self.cfg.announce_channel_id and self.get_channel(self.cfg.announce_channel_id) is None:
            logger.warning(
                "Announce channel %d not visible — level-ups will be posted in place",
                self.cfg.announce_channel_id,
            )

    async def close(self) -> None:
        logger.info("Bot shutting down…")
        self.stats_cache.clear()
        await super().close()
