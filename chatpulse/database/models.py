"""
chatpulse.database.models — SQLAlchemy 2.0 Data Models
=======================================================

Tables:
- users              — Community member ledger (Discord snowflake PK)
- message_records    — One immutable row per processed message (no content)
- emoji_usage        — Per (user, guild, emoji) usage counters
- guild_user_stats   — Materialized per-guild aggregates + interaction style
- settings           — Gameplay tuning key-value store
- admin_log          — Append-only audit trail
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Float,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only autoincrements INTEGER PRIMARY KEY and has no JSONB
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")
JSONDoc = JSON().with_variant(JSONB(), "postgresql")


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all ChatPulse ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class MessageType(enum.StrEnum):
    """Dominant content category of a message (first match wins)."""
    IMAGE_UPLOAD = "image_upload"
    LINK_SHARE = "link_share"
    EMOJI_RICH = "emoji_rich"
    TEXT_ONLY = "text_only"


class EmojiKind(enum.StrEnum):
    CUSTOM = "custom"
    UNICODE = "unicode"


class InteractionStyle(enum.StrEnum):
    """How a member mostly communicates inside one guild."""
    TEXT_FOCUSED = "text_focused"
    EMOJI_EXPRESSIVE = "emoji_expressive"
    LINK_SHARER = "link_sharer"
    VISUAL_CONTRIBUTOR = "visual_contributor"
    BALANCED = "balanced"


class AdminActionType(enum.StrEnum):
    """Categories of admin mutations recorded in admin_log."""
    RESET_EMOJI = "RESET_EMOJI"
    RESET_ALL = "RESET_ALL"
    RESET_POINTS = "RESET_POINTS"
    ADJUST_POINTS = "ADJUST_POINTS"
    GRANT_COINS = "GRANT_COINS"


# ---------------------------------------------------------------------------
# Users — one row per Discord member
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    username: Mapped[str] = mapped_column(String(100), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(100), default=None)
    total_messages: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    coins: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # Refreshed on every processed message
    last_message_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    # Last point-earning message; drives the cooldown gate
    last_award_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("total_points >= 0", name="ck_users_points_nonneg"),
        CheckConstraint("coins >= 0", name="ck_users_coins_nonneg"),
        CheckConstraint("level >= 1", name="ck_users_level_min"),
        Index("ix_users_points_desc", "total_points"),
    )

    def __repr__(self) -> str:
        return (
            f"<User id={self.id} name={self.username!r} "
            f"pts={self.total_points} lvl={self.level}>"
        )


# ---------------------------------------------------------------------------
# MessageRecord — immutable per-message analysis row
# ---------------------------------------------------------------------------
class MessageRecord(Base):
    """One row per processed message id.

    Only derived metrics are stored; the raw message text never is.  The
    unique ``message_id`` makes re-processing a redelivered message a no-op.
    """
    __tablename__ = "message_records"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    message_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    channel_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    text_length: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    message_type: Mapped[str] = mapped_column(String(20), nullable=False)
    emoji_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    link_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    image_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    points_awarded: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("message_id", name="uq_message_records_message_id"),
        Index("ix_message_records_user_guild", "user_id", "guild_id"),
        Index("ix_message_records_guild_time", "guild_id", "created_at"),
        Index("ix_message_records_created", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<MessageRecord msg={self.message_id} user={self.user_id} "
            f"type={self.message_type}>"
        )


# ---------------------------------------------------------------------------
# EmojiUsage — per (user, guild, emoji) counters
# ---------------------------------------------------------------------------
class EmojiUsage(Base):
    """Cumulative usage counter for one emoji by one member in one guild.

    Written only through the additive ``INSERT … ON CONFLICT`` upsert in
    :mod:`chatpulse.services.emoji_service`; ``usage_count`` never decreases.
    """
    __tablename__ = "emoji_usage"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    emoji_name: Mapped[str] = mapped_column(String(100), nullable=False)
    emoji_type: Mapped[str] = mapped_column(String(10), nullable=False)
    emoji_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    usage_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    first_used: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    last_used: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id", "guild_id", "emoji_name", "emoji_type",
            name="uq_emoji_usage_user_guild_emoji",
        ),
        Index("ix_emoji_usage_guild_name", "guild_id", "emoji_name"),
        Index("ix_emoji_usage_last_used", "last_used"),
    )

    def __repr__(self) -> str:
        return (
            f"<EmojiUsage user={self.user_id} guild={self.guild_id} "
            f"emoji={self.emoji_name!r} n={self.usage_count}>"
        )


# ---------------------------------------------------------------------------
# GuildUserStats — materialized per-guild aggregates
# ---------------------------------------------------------------------------
class GuildUserStats(Base):
    """Recomputed from ``message_records`` by ``stats_service.refresh_user_stats``."""
    __tablename__ = "guild_user_stats"

    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    guild_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    total_messages: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    text_only_messages: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    emoji_rich_messages: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    link_share_messages: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    image_upload_messages: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    avg_text_length: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    interaction_style: Mapped[str] = mapped_column(
        String(20), default=InteractionStyle.BALANCED, nullable=False
    )
    last_calculated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_guild_user_stats_guild", "guild_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<GuildUserStats user={self.user_id} guild={self.guild_id} "
            f"style={self.interaction_style}>"
        )


# ---------------------------------------------------------------------------
# AdminLog — append-only audit trail
# ---------------------------------------------------------------------------
class AdminLog(Base):
    __tablename__ = "admin_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_table: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    guild_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    before_snapshot: Mapped[dict | None] = mapped_column(JSONDoc, nullable=True)
    after_snapshot: Mapped[dict | None] = mapped_column(JSONDoc, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_admin_log_actor_time", "actor_id", "timestamp"),
        Index("ix_admin_log_target", "target_table", "target_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<AdminLog id={self.id} actor={self.actor_id} action={self.action_type}>"


# ---------------------------------------------------------------------------
# Setting — gameplay tuning key-value store
# ---------------------------------------------------------------------------
class Setting(Base):
    """Key-value configuration store.

    Every gameplay tuning knob (points per message, cooldown, leveling,
    feature flags, retention windows) lives here so it can be changed
    without redeploying.  Values are stored as JSON strings; typed accessors
    live in :class:`~chatpulse.engine.cache.ConfigCache`.
    """
    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value_json: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="general")
    description: Mapped[str | None] = mapped_column(Text, default=None)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_settings_category", "category"),
    )

    def __repr__(self) -> str:
        return f"<Setting key={self.key!r} category={self.category!r}>"
