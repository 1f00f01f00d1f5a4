"""
tests/test_emoji_service.py — Emoji Usage Aggregator Tests
===========================================================

Additive upserts, concurrent increments, guild / member reads and the
roster usage report.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from chatpulse.database.models import EmojiKind, EmojiUsage
from chatpulse.engine.cache import CacheEvent
from chatpulse.engine.content import EmojiOccurrence, extract_emojis
from chatpulse.errors import ValidationError
from chatpulse.services.emoji_service import (
    generate_emoji_report,
    get_emoji_leaderboard,
    get_emoji_trends,
    get_guild_emoji_stats,
    get_top_emoji_users,
    get_unused_emojis,
    get_user_emoji_stats,
    group_occurrences,
    record_emoji_usage,
)

from conftest import GUILD_ID, OTHER_USER_ID, USER_ID

SMILE = EmojiOccurrence(EmojiKind.UNICODE, "\U0001f600")
FIRE = EmojiOccurrence(EmojiKind.UNICODE, "\U0001f525")
PEPE = EmojiOccurrence(EmojiKind.CUSTOM, "pepe", 123456789012345678)

OTHER_GUILD_ID = 666666666666666666


def _counts(engine, user_id=USER_ID) -> dict[str, int]:
    with Session(engine) as session:
        rows = session.scalars(select(EmojiUsage).where(EmojiUsage.user_id == user_id)).all()
        return {row.emoji_name: row.usage_count for row in rows}


class TestGrouping:
    def test_groups_by_kind_and_name(self):
        groups = group_occurrences([SMILE, PEPE, SMILE, SMILE])
        assert groups[(EmojiKind.UNICODE, SMILE.name)][1] == 3
        assert groups[(EmojiKind.CUSTOM, "pepe")][1] == 1
        assert list(groups) == [(EmojiKind.UNICODE, SMILE.name), (EmojiKind.CUSTOM, "pepe")]


class TestRecordUsage:
    def test_same_emoji_three_times_adds_three(self, db_engine, now):
        groups = record_emoji_usage(db_engine, USER_ID, GUILD_ID, [SMILE] * 3, now=now)
        assert groups == 1
        assert _counts(db_engine) == {SMILE.name: 3}

    def test_counts_accumulate_across_messages(self, db_engine, now):
        record_emoji_usage(db_engine, USER_ID, GUILD_ID, [SMILE, FIRE], now=now)
        record_emoji_usage(db_engine, USER_ID, GUILD_ID, [SMILE, SMILE], now=now)
        assert _counts(db_engine) == {SMILE.name: 3, FIRE.name: 1}

    def test_guilds_counted_separately(self, db_engine, now):
        record_emoji_usage(db_engine, USER_ID, GUILD_ID, [SMILE], now=now)
        record_emoji_usage(db_engine, USER_ID, OTHER_GUILD_ID, [SMILE], now=now)
        with Session(db_engine) as session:
            assert len(session.scalars(select(EmojiUsage)).all()) == 2

    def test_custom_emoji_keeps_id(self, db_engine, now):
        record_emoji_usage(
            db_engine, USER_ID, GUILD_ID,
            extract_emojis("<:pepe:123456789012345678> :pepe: <:pepe:123456789012345678>"),
            now=now,
        )
        with Session(db_engine) as session:
            row = session.scalars(select(EmojiUsage)).one()
        assert row.emoji_type == EmojiKind.CUSTOM
        assert row.emoji_id == 123456789012345678
        assert row.usage_count == 2

    def test_empty_is_noop(self, db_engine):
        assert record_emoji_usage(db_engine, USER_ID, GUILD_ID, []) == 0

    @pytest.mark.parametrize("user_id, guild_id", [(42, GUILD_ID), (USER_ID, "guild"), (True, GUILD_ID)])
    def test_malformed_ids_rejected(self, db_engine, now, user_id, guild_id):
        with pytest.raises(ValidationError):
            record_emoji_usage(db_engine, user_id, guild_id, [SMILE], now=now)
        assert _counts(db_engine) == {}

    def test_publishes_member_invalidation(self, db_engine, now, stats_cache):
        with patch.object(stats_cache, "publish") as mock_publish:
            record_emoji_usage(db_engine, USER_ID, GUILD_ID, [SMILE], stats_cache=stats_cache, now=now)
        mock_publish.assert_called_once_with(CacheEvent.for_user(USER_ID, GUILD_ID))

    def test_concurrent_increments_are_not_lost(self, file_engine):
        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(
                lambda _: record_emoji_usage(file_engine, USER_ID, GUILD_ID, [SMILE]),
                range(50),
            ))
        assert _counts(file_engine) == {SMILE.name: 50}


class TestReads:
    @pytest.fixture
    def usage(self, db_engine, now):
        record_emoji_usage(db_engine, USER_ID, GUILD_ID, [SMILE] * 5 + [PEPE], now=now)
        record_emoji_usage(db_engine, OTHER_USER_ID, GUILD_ID, [PEPE] * 2 + [FIRE], now=now)
        record_emoji_usage(db_engine, USER_ID, OTHER_GUILD_ID, [FIRE] * 9, now=now)
        return db_engine

    def test_guild_stats(self, usage):
        stats = get_guild_emoji_stats(usage, GUILD_ID)
        assert [s["emoji_name"] for s in stats] == [SMILE.name, "pepe", FIRE.name]
        pepe = stats[1]
        assert pepe["total_usage"] == 3
        assert pepe["unique_users"] == 2
        assert pepe["emoji_id"] == PEPE.id

    def test_guild_stats_served_from_cache_until_invalidated(self, usage, stats_cache, now):
        first = get_guild_emoji_stats(usage, GUILD_ID, stats_cache=stats_cache)
        record_emoji_usage(usage, OTHER_USER_ID, GUILD_ID, [FIRE] * 10, now=now)
        assert get_guild_emoji_stats(usage, GUILD_ID, stats_cache=stats_cache) == first

        record_emoji_usage(
            usage, OTHER_USER_ID, GUILD_ID, [FIRE], stats_cache=stats_cache, now=now,
        )
        fresh = get_guild_emoji_stats(usage, GUILD_ID, stats_cache=stats_cache)
        assert fresh[0]["emoji_name"] == FIRE.name
        assert fresh[0]["total_usage"] == 12

    def test_user_stats(self, usage):
        stats = get_user_emoji_stats(usage, USER_ID, GUILD_ID)
        assert [f["emoji_name"] for f in stats["favorites"]] == [SMILE.name, "pepe"]
        assert stats["unique_emojis"] == 2
        assert stats["total_usage"] == 6
        assert stats["avg_usage_per_emoji"] == 3.0

    def test_user_stats_across_guilds(self, usage):
        stats = get_user_emoji_stats(usage, USER_ID)
        assert stats["favorites"][0]["emoji_name"] == FIRE.name
        assert stats["total_usage"] == 15

    def test_user_without_usage(self, db_engine):
        stats = get_user_emoji_stats(db_engine, USER_ID, GUILD_ID)
        assert stats["favorites"] == []
        assert stats["total_usage"] == 0
        assert stats["avg_usage_per_emoji"] == 0.0

    def test_leaderboard_by_unique_users(self, usage):
        rows = get_emoji_leaderboard(usage, GUILD_ID, "unique_users", limit=1)
        assert rows[0]["emoji_name"] == "pepe"

    def test_leaderboard_unknown_order(self, usage):
        with pytest.raises(ValidationError):
            get_emoji_leaderboard(usage, GUILD_ID, "alphabetical")

    def test_top_emoji_users(self, usage):
        rows = get_top_emoji_users(usage, GUILD_ID, "pepe")
        assert [(r["user_id"], r["usage_count"]) for r in rows] == [
            (OTHER_USER_ID, 2), (USER_ID, 1),
        ]

    def test_trends_include_recent_usage(self, db_engine):
        record_emoji_usage(db_engine, USER_ID, GUILD_ID, [SMILE] * 4)
        trends = get_emoji_trends(db_engine, GUILD_ID, days=7)
        assert [(t["emoji_name"], t["usage"]) for t in trends] == [(SMILE.name, 4)]

    def test_unused_roster(self, usage):
        assert get_unused_emojis(usage, GUILD_ID, ["pepe", "kek", "blob"]) == ["kek", "blob"]


class TestReport:
    def test_report_recommendations(self, db_engine, now):
        roster = ["pepe"] + [f"unused_{i}" for i in range(11)]
        record_emoji_usage(db_engine, USER_ID, GUILD_ID, [SMILE] * 101 + [PEPE], now=now)

        report = generate_emoji_report(db_engine, GUILD_ID, roster)

        assert report["usage"] == {
            "total_custom_emojis": 12,
            "used_emojis": 1,
            "unused_emojis": 11,
            "usage_rate": 8.3,
        }
        assert report["diversity"]["total_unique_emojis"] == 2
        assert report["popular_emojis"][0]["emoji_name"] == SMILE.name
        assert len(report["unused_emojis"]) == 10
        kinds = {r["type"] for r in report["recommendations"]}
        assert kinds == {"cleanup", "engagement", "expansion"}

    def test_empty_roster(self, db_engine):
        report = generate_emoji_report(db_engine, GUILD_ID, [])
        assert report["usage"]["usage_rate"] == 0.0
        assert report["diversity"]["average_usage_per_emoji"] == 0.0
        assert report["popular_emojis"] == []
