"""
chatpulse.services.announcement_service — Level-up Announcements
=================================================================

Owns channel resolution for public celebrations.  Embed construction lives
in :mod:`chatpulse.services.embeds`.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from discord.abc import Messageable

from chatpulse.services.embeds import build_level_up_embed

if TYPE_CHECKING:
    import discord

    from chatpulse.bot.core import ChatPulseBot
    from chatpulse.services.points_service import AwardResult

logger = logging.getLogger(__name__)


def resolve_announce_channel(
    bot: ChatPulseBot,
    fallback_channel: Messageable | None = None,
) -> Messageable | None:
    """Configured announce channel if visible, else *fallback_channel*."""
    if bot.cfg.announce_channel_id:
        ch = bot.get_channel(bot.cfg.announce_channel_id)
        if ch and isinstance(ch, Messageable):
            return ch
    if isinstance(fallback_channel, Messageable):
        return fallback_channel
    return None


async def _send_embed(channel: Messageable | None, embed: discord.Embed) -> None:
    if channel is None:
        return
    try:
        await channel.send(embed=embed)
    except Exception:
        logger.exception(
            "Failed to send announcement embed to channel %s", getattr(channel, "id", "?"),
        )


async def announce_level_up(
    bot: ChatPulseBot,
    *,
    result: AwardResult,
    user_id: int,
    avatar_url: str,
    fallback_channel: Messageable | None = None,
) -> None:
    """Post a level-up embed when *result* crossed a level boundary."""
    if not result.level_up:
        return
    target = resolve_announce_channel(bot, fallback_channel)
    embed = build_level_up_embed(user_id, avatar_url, result.new_level, result.coins_earned)
    await _send_embed(target, embed)
