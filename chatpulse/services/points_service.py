"""
chatpulse.services.points_service — Points & Leveling Ledger
=============================================================

Every mutation of ``users.total_points`` / ``level`` / ``coins`` goes
through this module.  Mutations run on a row locked with
``SELECT … FOR UPDATE`` (:func:`locked_user`), so two concurrent awards for
the same member serialize instead of losing an update.  After every points
mutation the stored level equals :func:`~chatpulse.constants.level_for_points`
of the stored points.

Session-level helpers (``apply_award``, ``record_message_activity``,
``locked_user``) are shared with the message pipeline, which runs them
inside its own per-message transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from chatpulse.constants import DEFAULT_LEVEL_UP_BONUS_COINS, is_valid_snowflake, level_for_points
from chatpulse.database.engine import get_session, storage_errors
from chatpulse.database.models import AdminActionType, User
from chatpulse.engine.anti_gaming import RejectReason, check_award_eligibility
from chatpulse.engine.content import ContentProfile
from chatpulse.engine.quality import award_quantity
from chatpulse.errors import InsufficientFunds, UserNotFound, ValidationError
from chatpulse.services.admin_service import log_admin_action

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from chatpulse.engine.cache import ConfigCache

logger = logging.getLogger(__name__)

LEADERBOARD_ORDERS = {
    "points": (User.total_points.desc(), User.id),
    "level": (User.level.desc(), User.total_points.desc(), User.id),
    "messages": (User.total_messages.desc(), User.id),
}


@dataclass(slots=True)
class AwardResult:
    """Outcome of one points mutation."""

    success: bool
    points_awarded: int = 0
    level_up: bool = False
    old_level: int = 1
    new_level: int = 1
    coins_earned: int = 0
    total_points: int = 0
    reason: RejectReason | None = None

    @classmethod
    def rejected(cls, reason: RejectReason, user: User | None = None) -> AwardResult:
        level = user.level if user is not None else 1
        return cls(
            success=False,
            old_level=level,
            new_level=level,
            total_points=user.total_points if user is not None else 0,
            reason=reason,
        )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------
def validate_user_id(user_id: int) -> None:
    if not is_valid_snowflake(user_id):
        raise ValidationError(f"Invalid user id: {user_id!r}")


def validate_quantity(amount: int, what: str = "amount") -> None:
    """Quantities must be non-negative integers (bools rejected)."""
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise ValidationError(f"{what} must be a non-negative integer, got {amount!r}")


# ---------------------------------------------------------------------------
# Session-level primitives
# ---------------------------------------------------------------------------
def get_or_create_user(
    session: Session,
    user_id: int,
    username: str,
    display_name: str | None = None,
) -> User:
    """Fetch or insert a User row.

    A concurrent first message from the same member may insert the row
    first; the SAVEPOINT absorbs the unique violation and we re-read.
    """
    user = session.get(User, user_id)
    if user is None:
        try:
            with session.begin_nested():   # SAVEPOINT
                user = User(id=user_id, username=username, display_name=display_name)
                session.add(user)
                session.flush()
        except IntegrityError:
            user = session.get(User, user_id, populate_existing=True)
            if user is None:
                raise
    elif username and (user.username != username or user.display_name != display_name):
        user.username = username
        user.display_name = display_name
        session.flush()
    return user


def locked_user(session: Session, user_id: int) -> User | None:
    """Re-read *user_id* under ``SELECT … FOR UPDATE`` for the rest of the txn."""
    return session.get(User, user_id, with_for_update=True, populate_existing=True)


def apply_award(
    session: Session,
    user: User,
    points: int,
    cache: ConfigCache | None = None,
    *,
    now: datetime | None = None,
) -> AwardResult:
    """Credit *points* to a locked *user* and re-derive the level.

    Level-up coins (``rewards.level_up_bonus_coins`` per level gained) are
    credited only when the level increases.  ``last_award_at`` is set when
    *now* is given.
    """
    bonus = (
        cache.get_int("rewards.level_up_bonus_coins", DEFAULT_LEVEL_UP_BONUS_COINS)
        if cache else DEFAULT_LEVEL_UP_BONUS_COINS
    )
    old_level = user.level
    user.total_points = (user.total_points or 0) + points
    new_level = level_for_points(user.total_points, cache)
    coins = bonus * (new_level - old_level) if new_level > old_level else 0
    user.level = new_level
    user.coins = (user.coins or 0) + coins
    if now is not None:
        user.last_award_at = now
    session.flush()

    if new_level > old_level:
        logger.info(
            "User %d leveled up %d → %d (+%d coins)",
            user.id, old_level, new_level, coins,
        )
    return AwardResult(
        success=True,
        points_awarded=points,
        level_up=new_level > old_level,
        old_level=old_level,
        new_level=new_level,
        coins_earned=coins,
        total_points=user.total_points,
    )


def record_message_activity(session: Session, user_id: int, now: datetime) -> None:
    """Atomic ``total_messages + 1`` and ``last_message_at`` refresh."""
    session.execute(
        update(User)
        .where(User.id == user_id)
        .values(total_messages=User.total_messages + 1, last_message_at=now)
        .execution_options(synchronize_session=False)
    )


# ---------------------------------------------------------------------------
# Engine-level operations
# ---------------------------------------------------------------------------
def award(
    engine: Engine,
    user_id: int,
    guild_id: int,
    profile: ContentProfile,
    *,
    username: str,
    display_name: str | None = None,
    author_is_bot: bool = False,
    cache: ConfigCache | None = None,
    now: datetime | None = None,
) -> AwardResult:
    """Gate and credit one message's points in its own transaction.

    Creates the member on first sight.  The message counter and
    ``last_message_at`` are refreshed whether or not points are credited.
    Rejections are returned, not raised; ``reason`` says which guard failed.
    """
    validate_user_id(user_id)
    now = now or datetime.now(UTC)
    if cache is not None and not cache.get_bool("features.rewards", True):
        return AwardResult.rejected(RejectReason.REWARDS_DISABLED)

    with storage_errors("award"), get_session(engine) as session:
        get_or_create_user(session, user_id, username, display_name)
        user = locked_user(session, user_id)
        reason = check_award_eligibility(
            profile, user.last_award_at, now, author_is_bot=author_is_bot, cache=cache,
        )
        if reason is None:
            result = apply_award(session, user, award_quantity(profile, cache), cache, now=now)
        else:
            logger.debug("Award for %d in guild %d rejected: %s", user_id, guild_id, reason)
            result = AwardResult.rejected(reason, user)
        record_message_activity(session, user_id, now)
        return result


def spend_coins(engine: Engine, user_id: int, amount: int) -> int:
    """Debit *amount* coins; returns the new balance.

    Raises :class:`InsufficientFunds` without mutating if the balance is short.
    """
    validate_user_id(user_id)
    validate_quantity(amount, "amount")
    with storage_errors("spend_coins"), get_session(engine) as session:
        user = locked_user(session, user_id)
        if user is None:
            raise UserNotFound(user_id)
        if amount > user.coins:
            raise InsufficientFunds(amount, user.coins)
        user.coins -= amount
        return user.coins


def grant_coins(
    engine: Engine,
    user_id: int,
    amount: int,
    *,
    actor_id: int,
    reason: str | None = None,
    guild_id: int | None = None,
) -> int:
    """Credit *amount* coins (admin action, audited); returns the new balance."""
    validate_user_id(user_id)
    validate_quantity(amount, "amount")
    with storage_errors("grant_coins"), get_session(engine) as session:
        user = locked_user(session, user_id)
        if user is None:
            raise UserNotFound(user_id)
        before = {"coins": user.coins}
        user.coins += amount
        log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.GRANT_COINS,
            target_table="users",
            target_id=str(user_id),
            guild_id=guild_id,
            before=before,
            after={"coins": user.coins},
            reason=reason,
        )
        return user.coins


def admin_adjust_points(
    engine: Engine,
    user_id: int,
    delta: int,
    *,
    actor_id: int,
    reason: str | None = None,
    guild_id: int | None = None,
    cache: ConfigCache | None = None,
) -> AwardResult:
    """Add (or remove, when negative) points, bypassing every gate.

    Positive adjustments credit level-up coins like a normal award.
    Removing more than the member holds raises :class:`InsufficientFunds`.
    """
    validate_user_id(user_id)
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise ValidationError(f"delta must be an integer, got {delta!r}")

    with storage_errors("admin_adjust_points"), get_session(engine) as session:
        user = locked_user(session, user_id)
        if user is None:
            raise UserNotFound(user_id)
        before = {"total_points": user.total_points, "level": user.level, "coins": user.coins}

        if delta >= 0:
            result = apply_award(session, user, delta, cache)
        else:
            if -delta > user.total_points:
                raise InsufficientFunds(-delta, user.total_points, currency="points")
            old_level = user.level
            user.total_points += delta
            user.level = level_for_points(user.total_points, cache)
            result = AwardResult(
                success=True,
                points_awarded=delta,
                old_level=old_level,
                new_level=user.level,
                total_points=user.total_points,
            )

        log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.ADJUST_POINTS,
            target_table="users",
            target_id=str(user_id),
            guild_id=guild_id,
            before=before,
            after={"total_points": user.total_points, "level": user.level, "coins": user.coins},
            reason=reason,
        )
        return result


def reset_user_points(
    engine: Engine,
    user_id: int,
    *,
    actor_id: int,
    reason: str | None = None,
    guild_id: int | None = None,
) -> None:
    """Set a member back to 0 points / level 1.  Coins are kept."""
    validate_user_id(user_id)
    with storage_errors("reset_user_points"), get_session(engine) as session:
        user = locked_user(session, user_id)
        if user is None:
            raise UserNotFound(user_id)
        before = {"total_points": user.total_points, "level": user.level}
        user.total_points = 0
        user.level = 1
        log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.RESET_POINTS,
            target_table="users",
            target_id=str(user_id),
            guild_id=guild_id,
            before=before,
            after={"total_points": 0, "level": 1},
            reason=reason,
        )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_user(engine: Engine, user_id: int) -> User | None:
    """Detached snapshot of *user_id*, or None."""
    with Session(engine) as session:
        user = session.get(User, user_id)
        if user is not None:
            session.expunge(user)
        return user


def get_leaderboard(engine: Engine, order_by: str = "points", limit: int = 10) -> list[User]:
    """Top members by ``points``, ``level`` or ``messages``."""
    try:
        ordering = LEADERBOARD_ORDERS[order_by]
    except KeyError:
        raise ValidationError(
            f"Unknown leaderboard order {order_by!r}; expected one of "
            f"{', '.join(LEADERBOARD_ORDERS)}"
        ) from None
    with Session(engine) as session:
        rows = session.scalars(
            select(User).where(User.total_messages > 0).order_by(*ordering).limit(limit)
        ).all()
        for row in rows:
            session.expunge(row)
        return list(rows)


def get_user_rank(engine: Engine, user_id: int) -> int | None:
    """1-based rank by total points, or None for an unknown member."""
    with Session(engine) as session:
        points = session.scalar(select(User.total_points).where(User.id == user_id))
        if points is None:
            return None
        ahead = session.scalar(
            select(func.count()).select_from(User).where(User.total_points > points)
        ) or 0
        return ahead + 1


def count_users(engine: Engine) -> int:
    with Session(engine) as session:
        return session.scalar(select(func.count()).select_from(User)) or 0
