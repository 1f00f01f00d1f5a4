"""
chatpulse.services.emoji_service — Emoji Usage Aggregator
==========================================================

Write side: one message's emoji occurrences are grouped by (kind, name) and
each group becomes a single atomic upsert::

    INSERT … ON CONFLICT (user_id, guild_id, emoji_name, emoji_type)
    DO UPDATE SET usage_count = emoji_usage.usage_count + excluded.usage_count

so concurrent messages from the same member never lose an increment, and a
message with the same emoji three times adds exactly 3.

Read side: guild and per-member aggregates.  The guild stats read is served
through :class:`~chatpulse.engine.cache.StatsCache`; the write path publishes
a :class:`~chatpulse.engine.cache.CacheEvent` after commit.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, bindparam, distinct, func, select, text
from sqlalchemy.orm import Session

from chatpulse.constants import is_valid_snowflake
from chatpulse.database.engine import get_session, storage_errors
from chatpulse.database.models import EmojiKind, EmojiUsage
from chatpulse.engine.cache import EMOJI_STATS, CacheEvent
from chatpulse.engine.content import EmojiOccurrence
from chatpulse.errors import ValidationError

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from chatpulse.engine.cache import StatsCache

logger = logging.getLogger(__name__)

_UPSERT_SQL = text("""
    INSERT INTO emoji_usage
        (user_id, guild_id, emoji_name, emoji_type, emoji_id, usage_count, first_used, last_used)
    VALUES
        (:user_id, :guild_id, :emoji_name, :emoji_type, :emoji_id, :n, :now, :now)
    ON CONFLICT (user_id, guild_id, emoji_name, emoji_type)
    DO UPDATE SET
        usage_count = emoji_usage.usage_count + excluded.usage_count,
        last_used = excluded.last_used,
        emoji_id = COALESCE(excluded.emoji_id, emoji_usage.emoji_id)
""").bindparams(bindparam("now", type_=DateTime(timezone=True)))

EMOJI_LEADERBOARD_ORDERS = ("total", "unique_users", "recent")

# Report thresholds
_CLEANUP_UNUSED_COUNT = 10
_LOW_USAGE_RATE = 50.0
_POPULAR_USAGE = 100


# ---------------------------------------------------------------------------
# Write side
# ---------------------------------------------------------------------------
def group_occurrences(
    emojis: Iterable[EmojiOccurrence],
) -> dict[tuple[EmojiKind, str], tuple[EmojiOccurrence, int]]:
    """Collapse occurrences into ``(kind, name) → (first occurrence, count)``.

    Insertion order follows first appearance in the message.
    """
    groups: dict[tuple[EmojiKind, str], tuple[EmojiOccurrence, int]] = {}
    for occ in emojis:
        key = (occ.kind, occ.name)
        first, count = groups.get(key, (occ, 0))
        groups[key] = (first, count + 1)
    return groups


def upsert_emoji_counts(
    session: Session,
    user_id: int,
    guild_id: int,
    emojis: Iterable[EmojiOccurrence],
    now: datetime,
) -> int:
    """Apply one additive upsert per emoji group; returns the group count."""
    groups = group_occurrences(emojis)
    for (kind, name), (first, count) in groups.items():
        session.execute(_UPSERT_SQL, {
            "user_id": user_id,
            "guild_id": guild_id,
            "emoji_name": name,
            "emoji_type": kind.value,
            "emoji_id": first.id,
            "n": count,
            "now": now,
        })
    return len(groups)


def record_emoji_usage(
    engine: Engine,
    user_id: int,
    guild_id: int,
    emojis: Iterable[EmojiOccurrence],
    *,
    stats_cache: StatsCache | None = None,
    now: datetime | None = None,
) -> int:
    """Record one message's emojis in their own transaction.

    Returns the number of distinct emojis touched.  Publishes a cache
    invalidation for the member after commit.
    """
    if not is_valid_snowflake(user_id):
        raise ValidationError(f"Invalid user id: {user_id!r}")
    if not is_valid_snowflake(guild_id):
        raise ValidationError(f"Invalid guild id: {guild_id!r}")
    emojis = list(emojis)
    if not emojis:
        return 0
    now = now or datetime.now(UTC)
    with storage_errors("record_emoji_usage"), get_session(engine) as session:
        groups = upsert_emoji_counts(session, user_id, guild_id, emojis, now)

    if stats_cache is not None:
        stats_cache.publish(CacheEvent.for_user(user_id, guild_id))
    logger.debug("Recorded %d emoji groups for user %d in guild %d", groups, user_id, guild_id)
    return groups


def cleanup_old_usage(engine: Engine, days_old: int = 365) -> int:
    """Delete counters idle for more than *days_old* days."""
    from chatpulse.services.retention_service import purge_emoji_usage

    return purge_emoji_usage(engine, datetime.now(UTC) - timedelta(days=days_old))


# ---------------------------------------------------------------------------
# Read side
# ---------------------------------------------------------------------------
def _load_guild_emoji_stats(engine: Engine, guild_id: int, limit: int) -> list[dict]:
    with Session(engine) as session:
        rows = session.execute(
            select(
                EmojiUsage.emoji_name,
                EmojiUsage.emoji_type,
                func.max(EmojiUsage.emoji_id).label("emoji_id"),
                func.sum(EmojiUsage.usage_count).label("total_usage"),
                func.count(distinct(EmojiUsage.user_id)).label("unique_users"),
            )
            .where(EmojiUsage.guild_id == guild_id)
            .group_by(EmojiUsage.emoji_name, EmojiUsage.emoji_type)
            .order_by(func.sum(EmojiUsage.usage_count).desc())
            .limit(limit)
        ).all()
    return [
        {
            "emoji_name": r.emoji_name,
            "emoji_type": r.emoji_type,
            "emoji_id": r.emoji_id,
            "total_usage": int(r.total_usage or 0),
            "unique_users": r.unique_users,
        }
        for r in rows
    ]


def get_guild_emoji_stats(
    engine: Engine,
    guild_id: int,
    limit: int = 20,
    *,
    stats_cache: StatsCache | None = None,
) -> list[dict]:
    """Most used emojis in the guild with total usage and distinct users."""
    if stats_cache is None:
        return _load_guild_emoji_stats(engine, guild_id, limit)
    return stats_cache.get_or_load(
        stats_cache.key(EMOJI_STATS, guild_id, None, "guild", limit),
        lambda: _load_guild_emoji_stats(engine, guild_id, limit),
    )


def get_user_emoji_stats(
    engine: Engine,
    user_id: int,
    guild_id: int | None = None,
    limit: int = 10,
) -> dict:
    """A member's favorite emojis plus diversity figures.

    Returns ``{"favorites", "unique_emojis", "total_usage",
    "avg_usage_per_emoji"}``.
    """
    with Session(engine) as session:
        filters = [EmojiUsage.user_id == user_id]
        if guild_id is not None:
            filters.append(EmojiUsage.guild_id == guild_id)

        favorites = session.execute(
            select(
                EmojiUsage.emoji_name,
                EmojiUsage.emoji_type,
                func.max(EmojiUsage.emoji_id).label("emoji_id"),
                func.sum(EmojiUsage.usage_count).label("usage_count"),
                func.max(EmojiUsage.last_used).label("last_used"),
            )
            .where(*filters)
            .group_by(EmojiUsage.emoji_name, EmojiUsage.emoji_type)
            .order_by(func.sum(EmojiUsage.usage_count).desc())
            .limit(limit)
        ).all()

        diversity = session.execute(
            select(
                func.count(distinct(EmojiUsage.emoji_name)).label("unique_emojis"),
                func.coalesce(func.sum(EmojiUsage.usage_count), 0).label("total_usage"),
                func.coalesce(func.avg(EmojiUsage.usage_count), 0).label("avg_usage"),
            ).where(*filters)
        ).one()

    return {
        "favorites": [
            {
                "emoji_name": r.emoji_name,
                "emoji_type": r.emoji_type,
                "emoji_id": r.emoji_id,
                "usage_count": int(r.usage_count or 0),
                "last_used": r.last_used,
            }
            for r in favorites
        ],
        "unique_emojis": diversity.unique_emojis,
        "total_usage": int(diversity.total_usage),
        "avg_usage_per_emoji": round(float(diversity.avg_usage), 1),
    }


def get_emoji_leaderboard(
    engine: Engine,
    guild_id: int,
    order_by: str = "total",
    limit: int = 10,
) -> list[dict]:
    """Guild emojis ranked by ``total`` usage, ``unique_users`` or ``recent`` use."""
    total = func.sum(EmojiUsage.usage_count)
    users = func.count(distinct(EmojiUsage.user_id))
    recent = func.max(EmojiUsage.last_used)
    orderings = {"total": total.desc(), "unique_users": users.desc(), "recent": recent.desc()}
    if order_by not in orderings:
        raise ValidationError(
            f"Unknown emoji leaderboard order {order_by!r}; expected one of "
            f"{', '.join(EMOJI_LEADERBOARD_ORDERS)}"
        )

    with Session(engine) as session:
        rows = session.execute(
            select(
                EmojiUsage.emoji_name,
                EmojiUsage.emoji_type,
                total.label("total_usage"),
                users.label("unique_users"),
                recent.label("last_used"),
            )
            .where(EmojiUsage.guild_id == guild_id)
            .group_by(EmojiUsage.emoji_name, EmojiUsage.emoji_type)
            .order_by(orderings[order_by])
            .limit(limit)
        ).all()
    return [
        {
            "emoji_name": r.emoji_name,
            "emoji_type": r.emoji_type,
            "total_usage": int(r.total_usage or 0),
            "unique_users": r.unique_users,
            "last_used": r.last_used,
        }
        for r in rows
    ]


def get_top_emoji_users(
    engine: Engine,
    guild_id: int,
    emoji_name: str,
    limit: int = 10,
) -> list[dict]:
    """Members who used *emoji_name* the most in the guild."""
    with Session(engine) as session:
        rows = session.execute(
            select(
                EmojiUsage.user_id,
                func.sum(EmojiUsage.usage_count).label("usage_count"),
                func.max(EmojiUsage.last_used).label("last_used"),
            )
            .where(EmojiUsage.guild_id == guild_id, EmojiUsage.emoji_name == emoji_name)
            .group_by(EmojiUsage.user_id)
            .order_by(func.sum(EmojiUsage.usage_count).desc())
            .limit(limit)
        ).all()
    return [
        {"user_id": r.user_id, "usage_count": int(r.usage_count or 0), "last_used": r.last_used}
        for r in rows
    ]


def get_emoji_trends(engine: Engine, guild_id: int, days: int = 7) -> list[dict]:
    """Usage of emojis last used within *days*, grouped by day and name.

    Counters are cumulative, so this buckets each counter by the day it was
    last touched rather than splitting its history.
    """
    cutoff = datetime.now(UTC) - timedelta(days=days)
    day = func.date(EmojiUsage.last_used)
    with Session(engine) as session:
        rows = session.execute(
            select(
                day.label("day"),
                EmojiUsage.emoji_name,
                func.sum(EmojiUsage.usage_count).label("usage"),
            )
            .where(EmojiUsage.guild_id == guild_id, EmojiUsage.last_used >= cutoff)
            .group_by(day, EmojiUsage.emoji_name)
            .order_by(day.desc(), func.sum(EmojiUsage.usage_count).desc())
        ).all()
    return [
        {"date": str(r.day), "emoji_name": r.emoji_name, "usage": int(r.usage or 0)}
        for r in rows
    ]


def get_unused_emojis(engine: Engine, guild_id: int, roster: Iterable[str]) -> list[str]:
    """Names from the guild's custom emoji *roster* nobody has used yet."""
    with Session(engine) as session:
        used = set(session.scalars(
            select(distinct(EmojiUsage.emoji_name)).where(
                EmojiUsage.guild_id == guild_id,
                EmojiUsage.emoji_type == EmojiKind.CUSTOM.value,
            )
        ).all())
    return [name for name in roster if name not in used]


def generate_emoji_report(engine: Engine, guild_id: int, roster: Iterable[str]) -> dict:
    """Usage rate of the custom emoji roster plus actionable recommendations."""
    roster = list(roster)
    all_stats = _load_guild_emoji_stats(engine, guild_id, 100)
    unused = get_unused_emojis(engine, guild_id, roster)
    popular = all_stats[:10]

    used_count = len(roster) - len(unused)
    usage_rate = round(used_count / len(roster) * 100, 1) if roster else 0.0
    usage = {
        "total_custom_emojis": len(roster),
        "used_emojis": used_count,
        "unused_emojis": len(unused),
        "usage_rate": usage_rate,
    }
    diversity = {
        "total_unique_emojis": len(all_stats),
        "average_usage_per_emoji": (
            round(sum(s["total_usage"] for s in all_stats) / len(all_stats), 1)
            if all_stats else 0.0
        ),
    }

    recommendations: list[dict] = []
    if len(unused) > _CLEANUP_UNUSED_COUNT:
        recommendations.append({
            "type": "cleanup",
            "priority": "medium",
            "message": f"Consider removing {len(unused)} unused custom emojis to free slots",
        })
    if usage_rate < _LOW_USAGE_RATE:
        recommendations.append({
            "type": "engagement",
            "priority": "low",
            "message": "Custom emoji usage is low; an event could encourage people to use them",
        })
    if popular and popular[0]["total_usage"] > _POPULAR_USAGE:
        recommendations.append({
            "type": "expansion",
            "priority": "low",
            "message": f'"{popular[0]["emoji_name"]}" is very popular; consider adding similar emojis',
        })

    return {
        "usage": usage,
        "diversity": diversity,
        "popular_emojis": popular[:5],
        "unused_emojis": unused[:10],
        "recommendations": recommendations,
    }
