"""
chatpulse.bot.cogs.tasks — Periodic Background Tasks
=====================================================

Scheduled jobs that run on ``discord.ext.tasks`` loops:

- **Retention cleanup** — daily, removes message records older than
  ``retention.message_days`` and emoji counters idle for longer than
  ``retention.emoji_days``.
- **Memory housekeeping** — every 5 minutes, prunes expired redelivery
  guard claims and stats cache entries.

These tasks fire in the bot process (not a separate worker).  Database
work runs via ``run_db()`` to avoid blocking the event loop.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from discord.ext import commands, tasks

from chatpulse.database.engine import run_db
from chatpulse.services.retention_service import run_retention_cleanup

if TYPE_CHECKING:
    from chatpulse.bot.core import ChatPulseBot

logger = logging.getLogger(__name__)


class PeriodicTasks(commands.Cog):
    """Cog for scheduled background maintenance tasks."""

    def __init__(self, bot: ChatPulseBot) -> None:
        self.bot = bot

    async def cog_load(self) -> None:
        self.retention_loop.start()
        self.housekeeping_loop.start()

    async def cog_unload(self) -> None:
        self.retention_loop.cancel()
        self.housekeeping_loop.cancel()

    # -------------------------------------------------------------------
    # Retention cleanup — runs every 24 hours
    # -------------------------------------------------------------------
    @tasks.loop(hours=24)
    async def retention_loop(self):
        """Delete rows older than the configured retention windows."""
        message_days = self.bot.cache.get_int("retention.message_days", 90)
        emoji_days = self.bot.cache.get_int("retention.emoji_days", 365)

        try:
            result = await run_db(
                run_retention_cleanup, self.bot.engine, message_days, emoji_days,
            )
        except Exception:
            logger.exception("Retention task failed", extra={"task": "retention"})
            return

        if result["messages_deleted"] or result["emoji_counters_deleted"]:
            # Aggregates built from the purged rows are stale now
            self.bot.stats_cache.clear()
        logger.info(
            "Retention task complete: %d message records, %d emoji counters deleted",
            result["messages_deleted"], result["emoji_counters_deleted"],
        )

    @retention_loop.before_loop
    async def _wait_retention(self):
        await self.bot.wait_until_ready()

    # -------------------------------------------------------------------
    # In-memory housekeeping — runs every 5 minutes
    # -------------------------------------------------------------------
    @tasks.loop(minutes=5)
    async def housekeeping_loop(self):
        claims = self.bot.guard.prune()
        entries = self.bot.stats_cache.prune()
        if claims or entries:
            logger.debug(
                "Housekeeping: pruned %d guard claims, %d cache entries", claims, entries,
            )

    @housekeeping_loop.before_loop
    async def _wait_housekeeping(self):
        await self.bot.wait_until_ready()


async def setup(bot: ChatPulseBot) -> None:
    await bot.add_cog(PeriodicTasks(bot))
