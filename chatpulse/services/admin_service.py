"""
chatpulse.services.admin_service — Audited Administrative Mutations
====================================================================

Destructive guild-level operations plus the shared audit helper.  Every
mutation writes an ``admin_log`` row inside the same transaction as the
change it records, so a rolled-back change leaves no audit row behind.

Per-user ledger adjustments (points, coins) live in
:mod:`chatpulse.services.points_service` and call :func:`log_admin_action`
from there.
"""

from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from chatpulse.constants import is_valid_snowflake
from chatpulse.database.engine import get_session, storage_errors
from chatpulse.database.models import (
    AdminActionType,
    AdminLog,
    EmojiUsage,
    GuildUserStats,
    MessageRecord,
)
from chatpulse.engine.cache import CacheEvent, CacheScope
from chatpulse.errors import ValidationError

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from chatpulse.config import ChatPulseConfig
    from chatpulse.engine.cache import StatsCache

logger = logging.getLogger(__name__)

# Typed verbatim by the admin to confirm a reset
CONFIRM_PHRASE = "CONFIRM"


class ResetScope(enum.StrEnum):
    EMOJI = "emoji"
    ALL = "all"


# ---------------------------------------------------------------------------
# Audit helper
# ---------------------------------------------------------------------------
def log_admin_action(
    session: Session,
    *,
    actor_id: int,
    action_type: AdminActionType,
    target_table: str,
    target_id: str | None,
    before: dict | None,
    after: dict | None,
    guild_id: int | None = None,
    reason: str | None = None,
) -> None:
    """Insert a row into admin_log within the current transaction."""
    session.add(AdminLog(
        actor_id=actor_id,
        action_type=action_type.value,
        target_table=target_table,
        target_id=target_id,
        guild_id=guild_id,
        before_snapshot=before,
        after_snapshot=after,
        reason=reason,
    ))


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------
def is_reset_authorized(
    cfg: ChatPulseConfig,
    user_id: int,
    role_ids: set[int] | frozenset[int],
    guild_owner_id: int | None,
) -> bool:
    """Guild owner, allow-listed users and holders of the admin role may reset."""
    return user_id == guild_owner_id or cfg.is_admin(user_id, role_ids)


def validate_reset_request(scope: str, confirmation: str) -> ResetScope:
    """Parse *scope* and check the confirmation phrase.

    Raises :class:`ValidationError` for an unknown scope or a confirmation
    that is not exactly ``CONFIRM``.
    """
    try:
        parsed = ResetScope(scope)
    except ValueError:
        raise ValidationError(
            f"Unknown reset scope {scope!r}; expected one of "
            f"{', '.join(s.value for s in ResetScope)}"
        ) from None
    if confirmation != CONFIRM_PHRASE:
        raise ValidationError(f"Type {CONFIRM_PHRASE} to confirm the reset")
    return parsed


# ---------------------------------------------------------------------------
# Guild reset
# ---------------------------------------------------------------------------
def _guild_counts(session: Session, guild_id: int) -> dict[str, int]:
    def count(model) -> int:
        return session.scalar(
            select(func.count()).select_from(model).where(model.guild_id == guild_id)
        ) or 0

    return {
        "message_records": count(MessageRecord),
        "emoji_usage": count(EmojiUsage),
        "guild_user_stats": count(GuildUserStats),
    }


def reset_guild_stats(
    engine: Engine,
    guild_id: int,
    scope: ResetScope | str,
    *,
    actor_id: int,
    stats_cache: StatsCache | None = None,
    reason: str | None = None,
) -> dict[str, int]:
    """Bulk-delete a guild's statistics.

    * ``emoji`` — every ``emoji_usage`` row for the guild.
    * ``all`` — emoji counters, message records and per-guild aggregates.

    User ledgers (points, level, coins) are global and untouched.  Cache
    invalidation is published after commit.  Returns deleted row counts
    keyed by table name.
    """
    if not is_valid_snowflake(guild_id):
        raise ValidationError(f"Invalid guild id: {guild_id!r}")
    try:
        scope = ResetScope(scope)
    except ValueError:
        raise ValidationError(f"Unknown reset scope {scope!r}") from None

    targets: list = [EmojiUsage]
    if scope == ResetScope.ALL:
        targets += [MessageRecord, GuildUserStats]

    deleted: dict[str, int] = {}
    with storage_errors("reset_guild_stats"), get_session(engine) as session:
        before = _guild_counts(session, guild_id)
        for model in targets:
            result = session.execute(delete(model).where(model.guild_id == guild_id))
            deleted[model.__tablename__] = result.rowcount or 0

        log_admin_action(
            session,
            actor_id=actor_id,
            action_type=(
                AdminActionType.RESET_ALL if scope == ResetScope.ALL
                else AdminActionType.RESET_EMOJI
            ),
            target_table=",".join(m.__tablename__ for m in targets),
            target_id=str(guild_id),
            guild_id=guild_id,
            before=before,
            after=_guild_counts(session, guild_id),
            reason=reason,
        )

    if stats_cache is not None:
        stats_cache.publish(
            CacheEvent(CacheScope.ALL) if scope == ResetScope.ALL
            else CacheEvent.for_guild(guild_id)
        )

    logger.warning(
        "Guild %d stats reset (scope=%s) by %d: %s",
        guild_id, scope.value, actor_id, deleted,
    )
    return deleted


def get_admin_log(engine: Engine, guild_id: int | None = None, limit: int = 20) -> list[AdminLog]:
    """Most recent audit rows, newest first."""
    with get_session(engine) as session:
        stmt = select(AdminLog).order_by(AdminLog.timestamp.desc(), AdminLog.id.desc()).limit(limit)
        if guild_id is not None:
            stmt = stmt.where(AdminLog.guild_id == guild_id)
        rows = session.scalars(stmt).all()
        for row in rows:
            session.expunge(row)
        return list(rows)
