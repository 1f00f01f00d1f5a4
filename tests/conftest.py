"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest
from sqlalchemy import Engine

from chatpulse.database.engine import create_db_engine, init_db
from chatpulse.engine.anti_gaming import RedeliveryGuard
from chatpulse.engine.cache import ConfigCache, StatsCache

GUILD_ID = 111111111111111111
USER_ID = 222222222222222222
OTHER_USER_ID = 333333333333333333
ADMIN_ID = 444444444444444444
CHANNEL_ID = 555555555555555555


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with all ChatPulse tables and seeded settings.

    Built by the production factory, so it gets the same SQLite connect hooks
    (``BEGIN IMMEDIATE`` transactions) and a StaticPool shared by every
    thread (``run_db`` hands work to ``asyncio.to_thread``).
    """
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def file_engine(tmp_path) -> Engine:
    """File-backed SQLite engine for tests that hit the DB from many threads."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'chatpulse.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def config_cache(db_engine: Engine) -> ConfigCache:
    """A real ConfigCache warmed from the seeded settings."""
    cache = ConfigCache(db_engine)
    cache.load_all()
    return cache


def make_cache(overrides: dict | None = None) -> MagicMock:
    """A mock ConfigCache that answers from *overrides*, else the caller's default."""
    values = dict(overrides or {})
    mock_cache = MagicMock(spec=ConfigCache)
    mock_cache.get_setting.side_effect = lambda key, default=None: values.get(key, default)
    mock_cache.get_int.side_effect = lambda key, default=0: int(values.get(key, default))
    mock_cache.get_float.side_effect = lambda key, default=0.0: float(values.get(key, default))
    mock_cache.get_bool.side_effect = lambda key, default=False: bool(values.get(key, default))
    return mock_cache


@pytest.fixture
def cache() -> MagicMock:
    """A mock ConfigCache that returns every default."""
    return make_cache()


@pytest.fixture
def stats_cache() -> StatsCache:
    return StatsCache(default_ttl=300)


@pytest.fixture
def guard() -> RedeliveryGuard:
    return RedeliveryGuard(ttl_seconds=60)


@pytest.fixture
def now() -> datetime:
    return datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)
