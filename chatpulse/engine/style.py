"""
chatpulse.engine.style — Interaction style & engagement metrics
================================================================

Pure functions over per-type message counts.  Used by
:mod:`chatpulse.services.stats_service` when materializing
``guild_user_stats`` and building profile views.
"""

from __future__ import annotations

import math
from collections.abc import Mapping

from chatpulse.database.models import InteractionStyle, MessageType

# ---------------------------------------------------------------------------
# Style thresholds (checked in this order)
# ---------------------------------------------------------------------------
_TEXT_RATIO = 0.7
_TEXT_MIN_AVG_LENGTH = 20
_EMOJI_RATIO = 0.4
_LINK_RATIO = 0.3
_IMAGE_RATIO = 0.2

# (upper bound exclusive, label)
_ACTIVITY_LEVELS: tuple[tuple[int, str], ...] = (
    (10, "new"),
    (50, "casual"),
    (200, "active"),
    (500, "regular"),
)


def classify_interaction_style(
    counts: Mapping[MessageType, int],
    avg_text_length: float,
) -> InteractionStyle:
    """Dominant communication style from per-type message counts.

    Returns ``BALANCED`` when there are no messages or no ratio clears its
    threshold.
    """
    total = sum(counts.get(t, 0) for t in MessageType)
    if total == 0:
        return InteractionStyle.BALANCED

    def ratio(t: MessageType) -> float:
        return counts.get(t, 0) / total

    if ratio(MessageType.TEXT_ONLY) >= _TEXT_RATIO and avg_text_length >= _TEXT_MIN_AVG_LENGTH:
        return InteractionStyle.TEXT_FOCUSED
    if ratio(MessageType.EMOJI_RICH) >= _EMOJI_RATIO:
        return InteractionStyle.EMOJI_EXPRESSIVE
    if ratio(MessageType.LINK_SHARE) >= _LINK_RATIO:
        return InteractionStyle.LINK_SHARER
    if ratio(MessageType.IMAGE_UPLOAD) >= _IMAGE_RATIO:
        return InteractionStyle.VISUAL_CONTRIBUTOR
    return InteractionStyle.BALANCED


def activity_level(total_messages: int) -> str:
    for bound, label in _ACTIVITY_LEVELS:
        if total_messages < bound:
            return label
    return "power_user"


def content_diversity(counts: Mapping[MessageType, int]) -> float:
    """Percentage of the four message types the member has used (0–100)."""
    used = sum(1 for t in MessageType if counts.get(t, 0) > 0)
    return round(used / len(MessageType) * 100, 1)


def engagement_score(
    level: int,
    total_messages: int,
    days_active: int,
    avg_text_length: float,
    counts: Mapping[MessageType, int],
) -> int:
    """Composite 0–100 engagement score.

    level × 2, plus up to 50 for messages per day, plus a text-length bonus
    (20 / 10 / 5 above 30 / 15 / 5 chars), plus 0.3 × content diversity.
    """
    score = level * 2.0
    per_day = total_messages / max(1, days_active)
    score += min(per_day * 5, 50)

    if avg_text_length > 30:
        score += 20
    elif avg_text_length > 15:
        score += 10
    elif avg_text_length > 5:
        score += 5

    score += content_diversity(counts) * 0.3
    return min(100, math.floor(score + 0.5))
