"""
chatpulse.services.stats_service — Per-guild member aggregates
===============================================================

Reads over ``message_records`` plus the materialized ``guild_user_stats``
table.  :func:`refresh_user_stats` recomputes a member's aggregate from the
full record history; :func:`get_user_detailed_stats` builds the profile view
(activity level, content diversity, engagement score) and is cached for
two minutes by default.
"""

from __future__ import annotations

import logging
import math
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import ColumnElement, case, distinct, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from chatpulse.constants import level_progress
from chatpulse.database.engine import get_session, storage_errors
from chatpulse.database.models import GuildUserStats, MessageRecord, MessageType, User
from chatpulse.engine.anti_gaming import as_utc
from chatpulse.engine.cache import USER_STATS, CacheEvent
from chatpulse.engine.style import (
    activity_level,
    classify_interaction_style,
    content_diversity,
    engagement_score,
)
from chatpulse.errors import UserNotFound

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from chatpulse.engine.cache import ConfigCache, StatsCache

logger = logging.getLogger(__name__)

# Column name stem in GuildUserStats for each message type
_TYPE_FIELDS: dict[MessageType, str] = {
    MessageType.TEXT_ONLY: "text_only_messages",
    MessageType.EMOJI_RICH: "emoji_rich_messages",
    MessageType.LINK_SHARE: "link_share_messages",
    MessageType.IMAGE_UPLOAD: "image_upload_messages",
}


def _count_of(message_type: MessageType) -> ColumnElement[int]:
    return func.coalesce(
        func.sum(case((MessageRecord.message_type == message_type.value, 1), else_=0)), 0
    )


def _message_stats(session: Session, *filters) -> dict:
    row = session.execute(
        select(
            func.count(MessageRecord.id).label("total"),
            *(_count_of(t).label(t.value) for t in MessageType),
            func.coalesce(func.avg(MessageRecord.text_length), 0).label("avg_text_length"),
            func.coalesce(func.sum(MessageRecord.emoji_count), 0).label("total_emojis"),
            func.coalesce(func.sum(MessageRecord.link_count), 0).label("total_links"),
            func.coalesce(func.sum(MessageRecord.image_count), 0).label("total_images"),
            func.coalesce(func.sum(MessageRecord.points_awarded), 0).label("total_points"),
        ).where(*filters)
    ).one()
    mapping = row._mapping
    return {
        "total_messages": int(row.total),
        "counts": {t: int(mapping[t.value]) for t in MessageType},
        "avg_text_length": round(float(row.avg_text_length), 1),
        "total_emojis": int(row.total_emojis),
        "total_links": int(row.total_links),
        "total_images": int(row.total_images),
        "total_points_awarded": int(row.total_points),
    }


# ---------------------------------------------------------------------------
# Per-member reads
# ---------------------------------------------------------------------------
def get_message_stats(engine: Engine, user_id: int, guild_id: int | None = None) -> dict:
    """Per-type message counts and sums for a member (optionally one guild)."""
    filters = [MessageRecord.user_id == user_id]
    if guild_id is not None:
        filters.append(MessageRecord.guild_id == guild_id)
    with Session(engine) as session:
        return _message_stats(session, *filters)


def refresh_user_stats(
    engine: Engine,
    user_id: int,
    guild_id: int,
    *,
    stats_cache: StatsCache | None = None,
) -> GuildUserStats:
    """Recompute and upsert the member's ``guild_user_stats`` row."""
    with storage_errors("refresh_user_stats"), get_session(engine) as session:
        stats = _message_stats(
            session, MessageRecord.user_id == user_id, MessageRecord.guild_id == guild_id,
        )
        style = classify_interaction_style(stats["counts"], stats["avg_text_length"])

        row = session.get(GuildUserStats, (user_id, guild_id))
        if row is None:
            try:
                with session.begin_nested():   # SAVEPOINT
                    row = GuildUserStats(user_id=user_id, guild_id=guild_id)
                    session.add(row)
                    session.flush()
            except IntegrityError:
                row = session.get(GuildUserStats, (user_id, guild_id), populate_existing=True)

        row.total_messages = stats["total_messages"]
        for message_type, field_name in _TYPE_FIELDS.items():
            setattr(row, field_name, stats["counts"][message_type])
        row.avg_text_length = stats["avg_text_length"]
        row.interaction_style = style.value
        row.last_calculated = datetime.now(UTC)
        session.flush()
        session.expunge(row)

    if stats_cache is not None:
        stats_cache.publish(CacheEvent.for_user(user_id, guild_id))
    return row


def _build_detailed_stats(
    engine: Engine,
    user_id: int,
    guild_id: int | None,
    cache: ConfigCache | None,
) -> dict:
    with Session(engine) as session:
        user = session.get(User, user_id)
        if user is None:
            raise UserNotFound(user_id)
        filters = [MessageRecord.user_id == user_id]
        if guild_id is not None:
            filters.append(MessageRecord.guild_id == guild_id)
        stats = _message_stats(session, *filters)
        stored = (
            session.get(GuildUserStats, (user_id, guild_id)) if guild_id is not None else None
        )

        joined = as_utc(user.created_at) if user.created_at else datetime.now(UTC)
        days_active = max(1, math.ceil((datetime.now(UTC) - joined).total_seconds() / 86400))
        style = (
            stored.interaction_style if stored is not None
            else classify_interaction_style(stats["counts"], stats["avg_text_length"]).value
        )

        return {
            "user": {
                "id": user.id,
                "username": user.username,
                "display_name": user.display_name,
                "total_messages": user.total_messages,
                "total_points": user.total_points,
                "level": user.level,
                "coins": user.coins,
                "joined": user.created_at,
            },
            "activity": {
                "counts": {t.value: n for t, n in stats["counts"].items()},
                "avg_text_length": stats["avg_text_length"],
                "total_emojis": stats["total_emojis"],
                "total_links": stats["total_links"],
                "total_images": stats["total_images"],
            },
            "analysis": {
                "interaction_style": style,
                "activity_level": activity_level(user.total_messages),
                "content_diversity": content_diversity(stats["counts"]),
                "engagement_score": engagement_score(
                    user.level,
                    user.total_messages,
                    days_active,
                    stats["avg_text_length"],
                    stats["counts"],
                ),
            },
            "progress": level_progress(user.total_points, cache),
            "last_calculated": stored.last_calculated if stored is not None else None,
        }


def get_user_detailed_stats(
    engine: Engine,
    user_id: int,
    guild_id: int | None = None,
    *,
    cache: ConfigCache | None = None,
    stats_cache: StatsCache | None = None,
) -> dict:
    """Profile view of a member.  Raises :class:`UserNotFound`."""
    if stats_cache is None or guild_id is None:
        return _build_detailed_stats(engine, user_id, guild_id, cache)
    return stats_cache.get_or_load(
        stats_cache.key(USER_STATS, guild_id, user_id),
        lambda: _build_detailed_stats(engine, user_id, guild_id, cache),
    )


# ---------------------------------------------------------------------------
# Guild reads
# ---------------------------------------------------------------------------
def get_guild_message_stats(engine: Engine, guild_id: int) -> dict:
    """Guild-wide message totals, distinct authors and per-type counts."""
    with Session(engine) as session:
        stats = _message_stats(session, MessageRecord.guild_id == guild_id)
        stats["unique_users"] = session.scalar(
            select(func.count(distinct(MessageRecord.user_id)))
            .where(MessageRecord.guild_id == guild_id)
        ) or 0
    return stats


def get_top_active_users(engine: Engine, guild_id: int, limit: int = 10) -> list[dict]:
    """Members with the most recorded messages in the guild."""
    with Session(engine) as session:
        rows = session.execute(
            select(
                MessageRecord.user_id,
                func.count(MessageRecord.id).label("message_count"),
                func.coalesce(func.sum(MessageRecord.points_awarded), 0).label("points"),
                func.avg(MessageRecord.text_length).label("avg_text_length"),
            )
            .where(MessageRecord.guild_id == guild_id)
            .group_by(MessageRecord.user_id)
            .order_by(func.count(MessageRecord.id).desc())
            .limit(limit)
        ).all()
    return [
        {
            "user_id": r.user_id,
            "message_count": r.message_count,
            "points": int(r.points),
            "avg_text_length": round(float(r.avg_text_length or 0), 1),
        }
        for r in rows
    ]


def get_message_type_distribution(engine: Engine, guild_id: int) -> dict[str, dict]:
    """``{type: {"count", "percentage"}}`` for every message type."""
    with Session(engine) as session:
        stats = _message_stats(session, MessageRecord.guild_id == guild_id)
    total = stats["total_messages"]
    return {
        t.value: {
            "count": n,
            "percentage": round(n / total * 100, 1) if total else 0.0,
        }
        for t, n in stats["counts"].items()
    }
