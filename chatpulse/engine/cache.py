"""
chatpulse.engine.cache — Settings cache & read-aggregate cache
===============================================================

Two in-memory caches, both thread-safe (they are touched from the
``run_db`` worker threads):

* :class:`ConfigCache` — parsed ``settings`` rows with typed accessors.
  Reloaded on startup and on explicit :meth:`ConfigCache.handle_notify`.
* :class:`StatsCache` — TTL cache for expensive read aggregates (guild emoji
  stats, per-user detailed stats).  The write path publishes a
  :class:`CacheEvent` after every commit that changes those aggregates, so
  readers never see stale data for longer than it takes to deliver the event.
"""

from __future__ import annotations

import enum
import json
import logging
import threading
import time
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session

from chatpulse.database.models import Setting

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ConfigCache:
    """Thread-safe in-memory cache of the ``settings`` table.

    Usage::

        cache = ConfigCache(engine)
        cache.load_all()

        cooldown = cache.get_int("points.cooldown_seconds", default=30)
        if cache.get_bool("features.emoji_stats", default=True): ...
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._lock = threading.Lock()
        # key → parsed JSON value
        self._settings: dict[str, Any] = {}

    # -------------------------------------------------------------------
    # Cache loading (synchronous — called via run_db or directly)
    # -------------------------------------------------------------------
    def load_all(self) -> None:
        """Load every cached partition from the DB.  Call on startup."""
        self._load_settings()
        logger.info("ConfigCache loaded: %d settings", len(self._settings))

    def _load_settings(self) -> None:
        with Session(self._engine) as session:
            rows = session.scalars(select(Setting)).all()
            parsed: dict[str, Any] = {}
            for row in rows:
                try:
                    parsed[row.key] = json.loads(row.value_json)
                except (json.JSONDecodeError, TypeError):
                    parsed[row.key] = row.value_json
        with self._lock:
            self._settings = parsed

    # -------------------------------------------------------------------
    # Typed setting accessors (thread-safe)
    # -------------------------------------------------------------------
    def get_setting(self, key: str, default: Any = None) -> Any:
        """Return the parsed JSON value for *key*, or *default*."""
        with self._lock:
            return self._settings.get(key, default)

    def get_int(self, key: str, default: int = 0) -> int:
        val = self.get_setting(key)
        if val is None:
            return default
        try:
            return int(val)
        except (TypeError, ValueError):
            return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        val = self.get_setting(key)
        if val is None:
            return default
        try:
            return float(val)
        except (TypeError, ValueError):
            return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        val = self.get_setting(key)
        if val is None:
            return default
        return bool(val)

    # -------------------------------------------------------------------
    # Invalidation
    # -------------------------------------------------------------------
    def handle_notify(self, table_name: str) -> None:
        """Reload the cache partition backing *table_name*."""
        table_name = table_name.strip().lower()
        logger.info("Config cache invalidation for table: %s", table_name)
        if table_name == "settings":
            self._load_settings()
        else:
            logger.warning("Unknown table in notify: %s — ignoring", table_name)


# ---------------------------------------------------------------------------
# Read-aggregate cache
# ---------------------------------------------------------------------------
class CacheScope(enum.StrEnum):
    USER = "user"
    GUILD = "guild"
    ALL = "all"


@dataclass(frozen=True, slots=True)
class CacheEvent:
    """Invalidation notice published by the write path after commit.

    * ``USER`` — one member's aggregates in one guild changed (this also
      drops the guild-wide aggregates that include that member).
    * ``GUILD`` — every aggregate for the guild is stale.
    * ``ALL`` — drop everything.
    """

    scope: CacheScope
    guild_id: int | None = None
    user_id: int | None = None

    @classmethod
    def for_user(cls, user_id: int, guild_id: int) -> CacheEvent:
        return cls(CacheScope.USER, guild_id=guild_id, user_id=user_id)

    @classmethod
    def for_guild(cls, guild_id: int) -> CacheEvent:
        return cls(CacheScope.GUILD, guild_id=guild_id)


# Namespaces and their default lifetimes
EMOJI_STATS = "emoji_stats"
USER_STATS = "user_stats"

DEFAULT_TTLS: dict[str, float] = {
    EMOJI_STATS: 300.0,
    USER_STATS: 120.0,
}


class StatsCache:
    """TTL cache keyed by ``(namespace, guild_id, user_id, *extra)``.

    ``user_id`` is ``None`` for guild-wide aggregates.  Entries are dropped
    on expiry or when a matching :class:`CacheEvent` is published.
    """

    def __init__(
        self,
        ttls: dict[str, float] | None = None,
        *,
        default_ttl: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttls = {**DEFAULT_TTLS, **(ttls or {})}
        self._default_ttl = default_ttl
        self._clock = clock
        self._lock = threading.Lock()
        # key → (expires_at, value)
        self._entries: dict[tuple, tuple[float, Any]] = {}

    @classmethod
    def from_settings(cls, cache: ConfigCache) -> StatsCache:
        return cls({
            EMOJI_STATS: cache.get_float("cache.emoji_stats_ttl_seconds", DEFAULT_TTLS[EMOJI_STATS]),
            USER_STATS: cache.get_float("cache.user_stats_ttl_seconds", DEFAULT_TTLS[USER_STATS]),
        })

    @staticmethod
    def key(namespace: str, guild_id: int, user_id: int | None = None, *extra: Hashable) -> tuple:
        return (namespace, guild_id, user_id, *extra)

    def get(self, key: tuple) -> Any | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= now:
                del self._entries[key]
                return None
            return value

    def set(self, key: tuple, value: Any) -> None:
        ttl = self._ttls.get(key[0], self._default_ttl)
        with self._lock:
            self._entries[key] = (self._clock() + ttl, value)

    def get_or_load(self, key: tuple, loader: Callable[[], T]) -> T:
        """Return the cached value for *key* or compute, store and return it."""
        cached = self.get(key)
        if cached is not None:
            return cached
        value = loader()
        self.set(key, value)
        return value

    def publish(self, event: CacheEvent) -> int:
        """Apply an invalidation event; returns the number of entries dropped."""
        with self._lock:
            if event.scope == CacheScope.ALL:
                dropped = len(self._entries)
                self._entries.clear()
            else:
                stale = [k for k in self._entries if self._matches(k, event)]
                for k in stale:
                    del self._entries[k]
                dropped = len(stale)
        if dropped:
            logger.debug("Stats cache %s invalidation dropped %d entries", event.scope, dropped)
        return dropped

    def clear(self) -> None:
        self.publish(CacheEvent(CacheScope.ALL))

    def prune(self) -> int:
        """Drop expired entries; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, (exp, _) in self._entries.items() if exp <= now]
            for k in expired:
                del self._entries[k]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @staticmethod
    def _matches(key: tuple, event: CacheEvent) -> bool:
        _, guild_id, user_id = key[:3]
        if guild_id != event.guild_id:
            return False
        if event.scope == CacheScope.GUILD:
            return True
        return user_id is None or user_id == event.user_id
