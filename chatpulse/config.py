"""
chatpulse.config — YAML Configuration Loader
=============================================

Reads ``config.yaml`` for **infrastructure-only** settings (Discord identity,
admin access, announcement channel).  Gameplay tuning (points, cooldown,
levels, feature flags, retention) lives in the ``settings`` database table
and is read through :class:`~chatpulse.engine.cache.ConfigCache`.

Usage::

    from chatpulse.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.guild_id)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object — infrastructure/identity only.
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ChatPulseConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str

    # Discord
    bot_prefix: str
    guild_id: int  # Primary guild snowflake (for scoping command sync)

    # Admin access — destructive commands require one of these or guild ownership
    admin_role_id: int
    admin_user_ids: frozenset[int] = field(default_factory=frozenset)

    # Optional
    announce_channel_id: int | None = None  # Where to post level-ups

    def is_admin(self, user_id: int, role_ids: set[int] | frozenset[int] = frozenset()) -> bool:
        """Return True if *user_id* is allow-listed or holds the admin role."""
        return user_id in self.admin_user_ids or self.admin_role_id in role_ids


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> ChatPulseConfig:
    """Read *path* and return a :class:`ChatPulseConfig` instance.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return ChatPulseConfig(
        community_name=raw["community_name"],
        bot_prefix=raw.get("bot_prefix", "!"),
        guild_id=int(raw["guild_id"]),
        admin_role_id=int(raw["admin_role_id"]),
        admin_user_ids=frozenset(int(uid) for uid in raw.get("admin_user_ids") or []),
        announce_channel_id=(
            int(raw["announce_channel_id"]) if raw.get("announce_channel_id") else None
        ),
    )
