"""
tests/test_cache.py — ConfigCache & StatsCache Unit Tests
==========================================================

Typed settings accessors, notify routing, TTL expiry and scoped
invalidation events.
"""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest

from chatpulse.database.engine import get_session
from chatpulse.database.models import Setting
from chatpulse.engine.cache import (
    EMOJI_STATS,
    USER_STATS,
    CacheEvent,
    CacheScope,
    ConfigCache,
    StatsCache,
)

from conftest import make_cache

GUILD = 100
OTHER_GUILD = 200


class FakeClock:
    def __init__(self) -> None:
        self.t = 0.0

    def __call__(self) -> float:
        return self.t


class TestConfigCache:
    def test_seeded_defaults_loaded(self, config_cache):
        assert config_cache.get_int("points.cooldown_seconds") == 30
        assert config_cache.get_int("points.per_level") == 100
        assert config_cache.get_bool("features.emoji_stats") is True
        assert config_cache.get_float("dedup.window_seconds") == 60.0

    def test_missing_key_returns_default(self, config_cache):
        assert config_cache.get_int("nope", 7) == 7
        assert config_cache.get_bool("nope", True) is True
        assert config_cache.get_setting("nope") is None

    def test_unparseable_value_returns_default(self, db_engine):
        with get_session(db_engine) as session:
            session.add(Setting(key="broken", value_json='"abc"', category="test"))
        cache = ConfigCache(db_engine)
        cache.load_all()
        assert cache.get_int("broken", 3) == 3
        assert cache.get_setting("broken") == "abc"

    def test_notify_reloads_settings(self, db_engine, config_cache):
        with get_session(db_engine) as session:
            session.get(Setting, "points.cooldown_seconds").value_json = json.dumps(5)
        assert config_cache.get_int("points.cooldown_seconds") == 30
        config_cache.handle_notify("Settings ")
        assert config_cache.get_int("points.cooldown_seconds") == 5

    def test_unknown_notify_ignored(self):
        cache = ConfigCache(MagicMock())
        with patch.object(cache, "_load_settings") as mock_load:
            cache.handle_notify("unknown_table")
            mock_load.assert_not_called()


class TestStatsCache:
    def test_get_or_load_caches(self):
        cache = StatsCache()
        loader = MagicMock(return_value=[1, 2])
        key = cache.key(EMOJI_STATS, GUILD, None, "guild", 20)
        assert cache.get_or_load(key, loader) == [1, 2]
        assert cache.get_or_load(key, loader) == [1, 2]
        loader.assert_called_once()

    def test_entries_expire_per_namespace(self):
        clock = FakeClock()
        cache = StatsCache({EMOJI_STATS: 300, USER_STATS: 120}, clock=clock)
        cache.set(cache.key(EMOJI_STATS, GUILD), "emoji")
        cache.set(cache.key(USER_STATS, GUILD, 1), "user")
        clock.t = 150
        assert cache.get(cache.key(EMOJI_STATS, GUILD)) == "emoji"
        assert cache.get(cache.key(USER_STATS, GUILD, 1)) is None
        clock.t = 300
        assert cache.get(cache.key(EMOJI_STATS, GUILD)) is None

    def test_prune(self):
        clock = FakeClock()
        cache = StatsCache({USER_STATS: 10}, clock=clock)
        cache.set(cache.key(USER_STATS, GUILD, 1), "a")
        cache.set(cache.key(EMOJI_STATS, GUILD), "b")
        clock.t = 11
        assert cache.prune() == 1
        assert len(cache) == 1

    def test_from_settings(self):
        cache = StatsCache.from_settings(make_cache({"cache.user_stats_ttl_seconds": 5}))
        cache.set(cache.key(USER_STATS, GUILD, 1), "x")
        assert len(cache) == 1


class TestCacheEvents:
    @pytest.fixture
    def filled(self) -> StatsCache:
        cache = StatsCache()
        cache.set(cache.key(EMOJI_STATS, GUILD, None, "guild", 20), "guild emoji")
        cache.set(cache.key(USER_STATS, GUILD, 1), "user 1")
        cache.set(cache.key(USER_STATS, GUILD, 2), "user 2")
        cache.set(cache.key(EMOJI_STATS, OTHER_GUILD, None, "guild", 20), "other guild")
        return cache

    def test_user_event_drops_user_and_guild_aggregates(self, filled):
        dropped = filled.publish(CacheEvent.for_user(1, GUILD))
        assert dropped == 2
        assert filled.get(filled.key(USER_STATS, GUILD, 2)) == "user 2"
        assert filled.get(filled.key(EMOJI_STATS, OTHER_GUILD, None, "guild", 20)) == "other guild"

    def test_guild_event_drops_whole_guild(self, filled):
        assert filled.publish(CacheEvent.for_guild(GUILD)) == 3
        assert len(filled) == 1

    def test_all_event_drops_everything(self, filled):
        assert filled.publish(CacheEvent(CacheScope.ALL)) == 4
        assert len(filled) == 0

    def test_clear(self, filled):
        filled.clear()
        assert len(filled) == 0
