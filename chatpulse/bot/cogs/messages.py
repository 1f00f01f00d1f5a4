"""
chatpulse.bot.cogs.messages — Message Listener
===============================================

Listens for ``on_message``, normalizes each guild message into a
:class:`~chatpulse.engine.events.MessageEvent` and runs it through the
analysis / points pipeline.

Pipeline:
1. on_message fires → gate checks (bot, DM, system messages)
2. Build MessageEvent with attachment metadata
3. Call message_service.process_message (runs on a background thread via run_db)
4. Announce level-ups through announcement_service
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from chatpulse.database.engine import run_db
from chatpulse.engine.events import AttachmentInfo, MessageEvent
from chatpulse.services.announcement_service import announce_level_up
from chatpulse.services.message_service import OutcomeStatus, process_message

if TYPE_CHECKING:
    from chatpulse.bot.core import ChatPulseBot

logger = logging.getLogger(__name__)

_USER_MESSAGE_TYPES = (discord.MessageType.default, discord.MessageType.reply)


def build_message_event(message: discord.Message) -> MessageEvent:
    """Copy the fields the pipeline needs off a gateway message."""
    author = message.author
    return MessageEvent(
        message_id=message.id,
        user_id=author.id,
        guild_id=message.guild.id if message.guild else 0,
        channel_id=message.channel.id,
        content=message.content or "",
        username=author.name,
        display_name=getattr(author, "display_name", None),
        author_is_bot=author.bot,
        attachments=tuple(
            AttachmentInfo(content_type=a.content_type, filename=a.filename)
            for a in message.attachments
        ),
        timestamp=message.created_at,
    )


class Messages(commands.Cog, name="Messages"):
    """Analyses every guild message and awards activity points."""

    def __init__(self, bot: ChatPulseBot) -> None:
        self.bot = bot

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        try:
            await self._handle_message(message)
        except Exception:
            logger.exception(
                "Error processing message %s from user %s",
                message.id,
                message.author.id,
                extra={"event_type": "message", "user_id": message.author.id,
                       "message_id": message.id},
            )

    async def _handle_message(self, message: discord.Message) -> None:
        """Inner message handler (separated for error isolation)."""

        # Gate 1: Ignore bots (including ourselves)
        if message.author.bot or (self.bot.user and message.author.id == self.bot.user.id):
            return

        # Gate 2: Ignore DMs
        if message.guild is None:
            logger.debug("Ignoring DM from %s", message.author.name)
            return

        # Gate 3: Ignore joins, pins, boosts and slash-command responses
        if message.type not in _USER_MESSAGE_TYPES or message.interaction_metadata is not None:
            return

        event = build_message_event(message)
        outcome = await run_db(
            process_message,
            self.bot.engine,
            event,
            guard=self.bot.guard,
            cache=self.bot.cache,
            stats_cache=self.bot.stats_cache,
        )

        if outcome.status != OutcomeStatus.PROCESSED:
            logger.debug("Message %s not processed: %s", message.id, outcome.status)
            return

        if outcome.leveled_up:
            logger.info(
                "%s reached level %d (+%d coins)",
                message.author.display_name,
                outcome.award.new_level,
                outcome.award.coins_earned,
            )
            await announce_level_up(
                self.bot,
                result=outcome.award,
                user_id=message.author.id,
                avatar_url=message.author.display_avatar.url,
                fallback_channel=message.channel,
            )


async def setup(bot: ChatPulseBot) -> None:
    await bot.add_cog(Messages(bot))
