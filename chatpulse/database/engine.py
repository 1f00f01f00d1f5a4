"""
chatpulse.database.engine — Database Connection & Async Helper
===============================================================

discord.py runs on an ``asyncio`` event loop while SQLAlchemy + psycopg2 is
synchronous.  Calling the database straight from a coroutine would stall
every other event until the query returns, so all DB work is shipped to a
worker thread:

    1. An event fires in Discord (async world).
    2. The cog calls ``await run_db(some_function, arg1, arg2)``.
    3. ``run_db`` hands the synchronous function to the default thread pool
       via ``asyncio.to_thread()``.
    4. The result is awaited back in the cog.

Usage::

    from chatpulse.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS …

    # Inside an async cog method:
    outcome = await run_db(process_message, engine, event, ...)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from chatpulse.database.models import Base
from chatpulse.errors import StorageError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(url: str | None = None) -> Engine:
    """Build a SQLAlchemy :class:`Engine` from *url* or ``DATABASE_URL``.

    The connection pool is sized for a single-process community bot:
    * ``pool_size=5`` — five persistent connections.
    * ``max_overflow=10`` — up to 10 extra connections under load.
    * ``pool_timeout=10`` — fail after 10 s if no connection is available.
    * ``pool_recycle=3600`` — recycle connections after 1 hour.

    On PostgreSQL, ``DB_STATEMENT_TIMEOUT_MS`` (default 5000) bounds every
    statement so a stuck query surfaces as a storage error instead of
    hanging the worker thread.

    Raises
    ------
    RuntimeError
        If no URL is given and ``DATABASE_URL`` is not set.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )

    kwargs: dict = {}
    if url.startswith("postgresql"):
        timeout_ms = int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "5000"))
        kwargs["connect_args"] = {"options": f"-c statement_timeout={timeout_ms}"}
        kwargs.update(pool_size=5, max_overflow=10, pool_timeout=10, pool_recycle=3600)
    elif url.startswith("sqlite"):
        kwargs["connect_args"] = {"timeout": 30, "check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, or every checkout would see an empty DB
            kwargs["poolclass"] = StaticPool

    engine = create_engine(
        url,
        echo=False,        # Set True for SQL debugging
        pool_pre_ping=True,
        **kwargs,
    )
    if engine.dialect.name == "sqlite":
        _serialize_sqlite_writers(engine)
    logger.info("Database engine created → %s", engine.url.host or engine.url.database)
    return engine


def _serialize_sqlite_writers(engine: Engine) -> None:
    """Make SQLite transactions take the write lock up front.

    pysqlite defers BEGIN until the first write, so ``SELECT … FOR UPDATE``
    (silently dropped by SQLite) would protect nothing and SAVEPOINTs could
    commit early.  Emitting ``BEGIN IMMEDIATE`` ourselves serializes writers
    the way the row lock does on PostgreSQL.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, _record) -> None:
        dbapi_connection.isolation_level = None
        if engine.url.database not in (None, "", ":memory:"):
            dbapi_connection.execute("PRAGMA journal_mode=WAL")

    @event.listens_for(engine, "begin")
    def _on_begin(connection) -> None:
        connection.exec_driver_sql("BEGIN IMMEDIATE")


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables defined in :mod:`chatpulse.database.models`.

    Safe to call on every startup (``CREATE TABLE IF NOT EXISTS`` under the
    hood).  Afterwards seeds the default gameplay settings; seeding only
    inserts keys that don't already exist.

    .. note::

        In production the schema is managed by Alembic (``alembic upgrade
        head``).  ``create_all`` stays as a safety net for dev/test.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")

    from chatpulse.database.seed import seed_default_settings

    seed_default_settings(engine)


# ---------------------------------------------------------------------------
# Session helper
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine) -> Iterator[Session]:
    """Yield a :class:`Session` that commits on success and rolls back on
    exception.

    Usage::

        with get_session(engine) as session:
            session.add(User(id=123, username="drew"))
            # commit happens automatically on block exit
    """
    session = Session(engine)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------
@contextmanager
def storage_errors(operation: str) -> Iterator[None]:
    """Re-raise any :class:`SQLAlchemyError` as :class:`StorageError`.

    Wrap the outermost ``get_session`` block so commit failures are caught
    too.  The original exception stays available as ``__cause__``.
    """
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error("Storage failure during %s: %s", operation, exc)
        raise StorageError(f"{operation} failed: {exc.__class__.__name__}") from exc


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a **synchronous** database function on a background thread.

    Every DB call in a cog goes through this wrapper::

        result = await run_db(my_sync_db_function, engine, user_id)

    Under the hood it calls :func:`asyncio.to_thread`, which schedules
    *func* on the default ``ThreadPoolExecutor`` so the bot's event loop
    is never blocked.
    """
    return await asyncio.to_thread(func, *args, **kwargs)
