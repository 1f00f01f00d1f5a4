"""
tests/test_messages_cog.py — Message Listener Tests
====================================================

Gateway messages are stood in for by SimpleNamespace objects carrying just
the attributes the listener reads.
"""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import discord
import pytest

from chatpulse.bot.cogs.messages import Messages, build_message_event
from chatpulse.engine.anti_gaming import RedeliveryGuard
from chatpulse.engine.cache import StatsCache
from chatpulse.services.points_service import get_user

from conftest import CHANNEL_ID, GUILD_ID, USER_ID, make_cache

BOT_USER_ID = 101010101010101010


def run_async(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _message(now, *, message_id=900000000000000001, content="this is a perfectly reasonable message",
             bot=False, guild=True, message_type=discord.MessageType.default,
             interaction_metadata=None, attachments=()):
    author = SimpleNamespace(
        id=USER_ID,
        name="alice",
        display_name="Alice",
        bot=bot,
        display_avatar=SimpleNamespace(url="https://cdn.example/a.png"),
    )
    return SimpleNamespace(
        id=message_id,
        author=author,
        guild=SimpleNamespace(id=GUILD_ID) if guild else None,
        channel=SimpleNamespace(id=CHANNEL_ID),
        content=content,
        type=message_type,
        interaction_metadata=interaction_metadata,
        attachments=list(attachments),
        created_at=now,
    )


@pytest.fixture
def bot(db_engine):
    return SimpleNamespace(
        user=SimpleNamespace(id=BOT_USER_ID),
        engine=db_engine,
        guard=RedeliveryGuard(),
        cache=make_cache(),
        stats_cache=StatsCache(),
    )


class TestBuildMessageEvent:
    def test_copies_fields(self, now):
        attachment = SimpleNamespace(content_type="image/png", filename="cat.png")
        event = build_message_event(_message(now, attachments=[attachment]))
        assert (event.message_id, event.user_id, event.guild_id, event.channel_id) == (
            900000000000000001, USER_ID, GUILD_ID, CHANNEL_ID,
        )
        assert event.username == "alice"
        assert event.display_name == "Alice"
        assert event.attachments[0].is_image
        assert event.timestamp == now


class TestOnMessage:
    def test_processes_guild_message(self, bot, now):
        run_async(Messages(bot).on_message(_message(now)))
        user = get_user(bot.engine, USER_ID)
        assert user.total_messages == 1
        assert user.total_points == 1

    @pytest.mark.parametrize("overrides", [
        {"bot": True},
        {"guild": False},
        {"message_type": discord.MessageType.pins_add},
        {"interaction_metadata": object()},
    ])
    def test_gated_messages_never_reach_pipeline(self, bot, now, overrides):
        with patch("chatpulse.bot.cogs.messages.run_db", new=AsyncMock()) as mock_run_db:
            run_async(Messages(bot).on_message(_message(now, **overrides)))
        mock_run_db.assert_not_awaited()

    def test_own_messages_ignored(self, bot, now):
        message = _message(now)
        message.author.id = BOT_USER_ID
        with patch("chatpulse.bot.cogs.messages.run_db", new=AsyncMock()) as mock_run_db:
            run_async(Messages(bot).on_message(message))
        mock_run_db.assert_not_awaited()

    def test_level_up_is_announced(self, bot, now):
        bot.cache = make_cache({"points.per_message": 100})
        with patch("chatpulse.bot.cogs.messages.announce_level_up", new=AsyncMock()) as mock_announce:
            run_async(Messages(bot).on_message(_message(now)))
        mock_announce.assert_awaited_once()
        assert mock_announce.call_args.kwargs["result"].new_level == 2
        assert mock_announce.call_args.kwargs["user_id"] == USER_ID

    def test_pipeline_errors_are_logged_not_raised(self, bot, now, caplog):
        failing = AsyncMock(side_effect=RuntimeError("boom"))
        with patch("chatpulse.bot.cogs.messages.run_db", new=failing):
            run_async(Messages(bot).on_message(_message(now)))
        assert "Error processing message" in caplog.text
