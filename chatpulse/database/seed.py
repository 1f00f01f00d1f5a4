"""
chatpulse.database.seed — Default Settings Seeder
==================================================

Baseline gameplay settings seeded on first startup (points, leveling,
cooldown, feature flags, retention, caching).

Idempotent — only inserts keys that don't already exist.  Values edited
later are never overwritten.
"""

from __future__ import annotations

import json
import logging

from sqlalchemy import Engine

from chatpulse.database.engine import get_session
from chatpulse.database.models import Setting

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default settings catalogue
# ---------------------------------------------------------------------------
DEFAULT_SETTINGS: dict[str, tuple[object, str, str]] = {
    "points.per_message": (1, "points", "Base points per qualifying message"),
    "points.per_level": (100, "points", "Cumulative points per level"),
    "points.max_level": (100, "points", "Level cap"),
    "points.cooldown_seconds": (
        30, "anti_gaming", "Min seconds between point-earning messages",
    ),
    "rewards.level_up_bonus_coins": (25, "rewards", "Coins credited per level gained"),
    "anti_gaming.min_text_length": (3, "anti_gaming", "Shorter messages earn nothing"),
    "anti_gaming.emoji_flood_count": (
        10, "anti_gaming", "Emoji count above which a short message is a flood",
    ),
    "anti_gaming.emoji_flood_text_length": (
        10, "anti_gaming", "Text length below which an emoji-heavy message is a flood",
    ),
    "quality.min_score": (1, "quality", "Minimum quality score to earn points"),
    "features.emoji_stats": (True, "features", "Track per-emoji usage counters"),
    "features.content_analysis": (
        True, "features", "Store per-message analysis records",
    ),
    "features.rewards": (True, "features", "Award points, levels and coins"),
    "retention.message_days": (90, "retention", "Days to keep message records"),
    "retention.emoji_days": (365, "retention", "Days to keep idle emoji counters"),
    "cache.emoji_stats_ttl_seconds": (300, "cache", "Guild emoji stats cache lifetime"),
    "cache.user_stats_ttl_seconds": (120, "cache", "User detailed stats cache lifetime"),
    "dedup.window_seconds": (60, "anti_gaming", "Redelivery guard window"),
    "leaderboard.size": (10, "display", "Rows shown by /leaderboard"),
}
"""Each entry maps ``key`` → ``(default_value, category, description)``."""


# ---------------------------------------------------------------------------
# Seeder
# ---------------------------------------------------------------------------
def seed_default_settings(engine: Engine) -> int:
    """Insert default settings that don't yet exist.

    Returns the number of rows inserted.
    """
    inserted = 0
    with get_session(engine) as session:
        for key, (value, category, desc) in DEFAULT_SETTINGS.items():
            if session.get(Setting, key) is None:
                session.add(Setting(
                    key=key,
                    value_json=json.dumps(value),
                    category=category,
                    description=desc,
                ))
                inserted += 1

    if inserted:
        logger.info("Seeded %d default settings.", inserted)
    return inserted
