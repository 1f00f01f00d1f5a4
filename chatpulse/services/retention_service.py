"""
chatpulse.services.retention_service — Retention Cleanup
=========================================================

Periodic cleanup of aged message records and idle emoji counters.

    - Message records older than ``retention.message_days`` (default 90).
    - Emoji counters whose ``last_used`` is older than
      ``retention.emoji_days`` (default 365).
    - Runs as a ``discord.ext.tasks`` loop (daily) or can be invoked ad-hoc.

**Deletion is batched** so the tables are never locked for long: rows are
removed in chunks of ``BATCH_SIZE``, each chunk in its own transaction.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import Engine, delete, func, select

from chatpulse.database.engine import get_session, storage_errors
from chatpulse.database.models import EmojiUsage, MessageRecord

logger = logging.getLogger(__name__)

# How many rows to delete in each batch (avoids long-held row locks)
BATCH_SIZE = 5_000


def _batched_delete(engine: Engine, model, column, cutoff: datetime) -> int:
    deleted = 0
    while True:
        with storage_errors(f"retention purge of {model.__tablename__}"), get_session(engine) as session:
            ids = session.scalars(
                select(model.id).where(column < cutoff).limit(BATCH_SIZE)
            ).all()
            if not ids:
                break
            result = session.execute(delete(model).where(model.id.in_(ids)))
            deleted += result.rowcount or 0
            logger.info(
                "Retention: deleted %d %s rows (total so far: %d)",
                result.rowcount, model.__tablename__, deleted,
            )
    return deleted


def purge_message_records(engine: Engine, cutoff: datetime) -> int:
    """Delete message records created before *cutoff*."""
    return _batched_delete(engine, MessageRecord, MessageRecord.created_at, cutoff)


def purge_emoji_usage(engine: Engine, cutoff: datetime) -> int:
    """Delete emoji counters last used before *cutoff*."""
    return _batched_delete(engine, EmojiUsage, EmojiUsage.last_used, cutoff)


def run_retention_cleanup(
    engine: Engine,
    message_days: int = 90,
    emoji_days: int = 365,
) -> dict[str, int]:
    """Delete records older than the retention windows.

    Returns a summary dict: ``{"messages_deleted": N, "emoji_counters_deleted": M}``.
    """
    now = datetime.now(UTC)
    messages_deleted = purge_message_records(engine, now - timedelta(days=message_days))
    emoji_deleted = purge_emoji_usage(engine, now - timedelta(days=emoji_days))

    logger.info(
        "Retention cleanup complete: %d message records, %d emoji counters removed "
        "(message_days=%d, emoji_days=%d)",
        messages_deleted, emoji_deleted, message_days, emoji_days,
    )
    return {"messages_deleted": messages_deleted, "emoji_counters_deleted": emoji_deleted}


def get_retention_stats(engine: Engine) -> dict:
    """Row counts and age range of the retained tables."""
    with get_session(engine) as session:
        total_records = session.scalar(
            select(func.count()).select_from(MessageRecord)
        ) or 0
        oldest_record = session.scalar(select(func.min(MessageRecord.created_at)))
        newest_record = session.scalar(select(func.max(MessageRecord.created_at)))
        total_counters = session.scalar(
            select(func.count()).select_from(EmojiUsage)
        ) or 0
        oldest_counter = session.scalar(select(func.min(EmojiUsage.last_used)))

    return {
        "total_message_records": total_records,
        "total_emoji_counters": total_counters,
        "oldest_record": oldest_record.isoformat() if oldest_record else None,
        "newest_record": newest_record.isoformat() if newest_record else None,
        "oldest_counter_use": oldest_counter.isoformat() if oldest_counter else None,
    }
