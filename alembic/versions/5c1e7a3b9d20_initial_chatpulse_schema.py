"""Initial ChatPulse schema

Revision ID: 5c1e7a3b9d20
Revises:
Create Date: 2026-10-19 09:12:31.118204

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '5c1e7a3b9d20'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")
_BIGINT_PK = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def _created_at(name: str) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.func.now())


def upgrade() -> None:
    """Create users, message_records, emoji_usage, guild_user_stats, admin_log, settings."""

    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger, primary_key=True),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column("display_name", sa.String(100), nullable=True),
        sa.Column("total_messages", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_points", sa.Integer, nullable=False, server_default="0"),
        sa.Column("level", sa.Integer, nullable=False, server_default="1"),
        sa.Column("coins", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_message_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_award_at", sa.DateTime(timezone=True), nullable=True),
        _created_at("created_at"),
        _created_at("updated_at"),
        sa.CheckConstraint("total_points >= 0", name="ck_users_points_nonneg"),
        sa.CheckConstraint("coins >= 0", name="ck_users_coins_nonneg"),
        sa.CheckConstraint("level >= 1", name="ck_users_level_min"),
    )
    op.create_index("ix_users_points_desc", "users", ["total_points"])

    # --- message_records ---
    op.create_table(
        "message_records",
        sa.Column("id", _BIGINT_PK, primary_key=True, autoincrement=True),
        sa.Column("message_id", sa.BigInteger, nullable=False),
        sa.Column("user_id", sa.BigInteger, nullable=False),
        sa.Column("guild_id", sa.BigInteger, nullable=False),
        sa.Column("channel_id", sa.BigInteger, nullable=False),
        sa.Column("text_length", sa.Integer, nullable=False, server_default="0"),
        sa.Column("message_type", sa.String(20), nullable=False),
        sa.Column("emoji_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("link_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("image_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("points_awarded", sa.Integer, nullable=False, server_default="0"),
        _created_at("created_at"),
        sa.UniqueConstraint("message_id", name="uq_message_records_message_id"),
    )
    op.create_index("ix_message_records_user_guild", "message_records", ["user_id", "guild_id"])
    op.create_index("ix_message_records_guild_time", "message_records", ["guild_id", "created_at"])
    op.create_index("ix_message_records_created", "message_records", ["created_at"])

    # --- emoji_usage ---
    op.create_table(
        "emoji_usage",
        sa.Column("id", _BIGINT_PK, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger, nullable=False),
        sa.Column("guild_id", sa.BigInteger, nullable=False),
        sa.Column("emoji_name", sa.String(100), nullable=False),
        sa.Column("emoji_type", sa.String(10), nullable=False),
        sa.Column("emoji_id", sa.BigInteger, nullable=True),
        sa.Column("usage_count", sa.Integer, nullable=False, server_default="0"),
        _created_at("first_used"),
        _created_at("last_used"),
        sa.UniqueConstraint(
            "user_id", "guild_id", "emoji_name", "emoji_type",
            name="uq_emoji_usage_user_guild_emoji",
        ),
    )
    op.create_index("ix_emoji_usage_guild_name", "emoji_usage", ["guild_id", "emoji_name"])
    op.create_index("ix_emoji_usage_last_used", "emoji_usage", ["last_used"])

    # --- guild_user_stats ---
    op.create_table(
        "guild_user_stats",
        sa.Column("user_id", sa.BigInteger, primary_key=True),
        sa.Column("guild_id", sa.BigInteger, primary_key=True),
        sa.Column("total_messages", sa.Integer, nullable=False, server_default="0"),
        sa.Column("text_only_messages", sa.Integer, nullable=False, server_default="0"),
        sa.Column("emoji_rich_messages", sa.Integer, nullable=False, server_default="0"),
        sa.Column("link_share_messages", sa.Integer, nullable=False, server_default="0"),
        sa.Column("image_upload_messages", sa.Integer, nullable=False, server_default="0"),
        sa.Column("avg_text_length", sa.Float, nullable=False, server_default="0"),
        sa.Column("interaction_style", sa.String(20), nullable=False, server_default="balanced"),
        _created_at("last_calculated"),
    )
    op.create_index("ix_guild_user_stats_guild", "guild_user_stats", ["guild_id"])

    # --- admin_log ---
    op.create_table(
        "admin_log",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("actor_id", sa.BigInteger, nullable=False),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("target_table", sa.String(50), nullable=False),
        sa.Column("target_id", sa.String(100), nullable=True),
        sa.Column("guild_id", sa.BigInteger, nullable=True),
        sa.Column("before_snapshot", _JSON, nullable=True),
        sa.Column("after_snapshot", _JSON, nullable=True),
        sa.Column("reason", sa.Text, nullable=True),
        _created_at("timestamp"),
    )
    op.create_index("ix_admin_log_actor_time", "admin_log", ["actor_id", "timestamp"])
    op.create_index(
        "ix_admin_log_target", "admin_log", ["target_table", "target_id", "timestamp"],
    )

    # --- settings ---
    op.create_table(
        "settings",
        sa.Column("key", sa.String(100), primary_key=True),
        sa.Column("value_json", sa.Text, nullable=False),
        sa.Column("category", sa.String(50), nullable=False, server_default="general"),
        sa.Column("description", sa.Text, nullable=True),
        _created_at("updated_at"),
    )
    op.create_index("ix_settings_category", "settings", ["category"])


def downgrade() -> None:
    """Drop every ChatPulse table."""
    for table in (
        "settings", "admin_log", "guild_user_stats",
        "emoji_usage", "message_records", "users",
    ):
        op.drop_table(table)
