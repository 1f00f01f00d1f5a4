"""
chatpulse.engine.quality — Quality score & reward multiplier
=============================================================

Two pure functions over a :class:`ContentProfile`:

* :func:`quality_score` — additive 0–20 score, used as an eligibility floor.
* :func:`reward_multiplier` — 0.1–2.0 factor applied to the base points.

The base points value is read from ConfigCache settings when available,
falling back to the module default.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from chatpulse.database.models import MessageType
from chatpulse.engine.content import ContentProfile

if TYPE_CHECKING:
    from chatpulse.engine.cache import ConfigCache

# ---------------------------------------------------------------------------
# Score weights
# ---------------------------------------------------------------------------
_LENGTH_SCORE_CAP = 10.0
_EMOJI_SCORE = 2.0
_LINK_SCORE = 3.0
_IMAGE_SCORE = 5.0
_EMOJI_SPAM_SCORE_PENALTY = 2.0
_SCORE_MAX = 20.0

# ---------------------------------------------------------------------------
# Multiplier tiers
# ---------------------------------------------------------------------------
# (min exclusive length, bonus) — highest tier only
_LENGTH_TIERS: tuple[tuple[int, float], ...] = ((50, 0.3), (20, 0.2), (10, 0.1))
_EMOJI_DIVERSITY = 0.1
_LINK_DIVERSITY = 0.1
_IMAGE_DIVERSITY = 0.2
_TYPE_BONUS: dict[MessageType, float] = {
    MessageType.IMAGE_UPLOAD: 0.2,
    MessageType.LINK_SHARE: 0.1,
}
_SHORT_TEXT_CHARS = 3
_SHORT_TEXT_PENALTY = 0.5
_EMOJI_SPAM_COUNT = 5
_EMOJI_SPAM_PENALTY = 0.7
_MULTIPLIER_MIN = 0.1
_MULTIPLIER_MAX = 2.0

DEFAULT_POINTS_PER_MESSAGE = 1


def quality_score(profile: ContentProfile) -> float:
    """Additive quality score clamped to [0, 20]."""
    score = min(profile.text_length / 10, _LENGTH_SCORE_CAP)
    if profile.has_emojis:
        score += _EMOJI_SCORE
    if profile.has_links:
        score += _LINK_SCORE
    if profile.has_images:
        score += _IMAGE_SCORE
    # Emoji spam: many emojis with little surrounding text
    if profile.emoji_count > _EMOJI_SPAM_COUNT and profile.text_length < profile.emoji_count:
        score -= _EMOJI_SPAM_SCORE_PENALTY
    return max(0.0, min(_SCORE_MAX, score))


def reward_multiplier(profile: ContentProfile) -> float:
    """Multiplicative reward factor clamped to [0.1, 2.0]."""
    multiplier = 1.0

    for min_length, bonus in _LENGTH_TIERS:
        if profile.text_length > min_length:
            multiplier += bonus
            break

    if profile.has_emojis:
        multiplier += _EMOJI_DIVERSITY
    if profile.has_links:
        multiplier += _LINK_DIVERSITY
    if profile.has_images:
        multiplier += _IMAGE_DIVERSITY

    multiplier += _TYPE_BONUS.get(profile.message_type, 0.0)

    if (
        profile.text_length < _SHORT_TEXT_CHARS
        and not profile.has_images
        and not profile.has_links
    ):
        multiplier *= _SHORT_TEXT_PENALTY
    if (
        profile.emoji_count > _EMOJI_SPAM_COUNT
        and profile.text_length < profile.emoji_count * 2
    ):
        multiplier *= _EMOJI_SPAM_PENALTY

    return max(_MULTIPLIER_MIN, min(_MULTIPLIER_MAX, multiplier))


def award_quantity(profile: ContentProfile, cache: ConfigCache | None = None) -> int:
    """Points earned by *profile*: ``floor(points_per_message × multiplier)``."""
    base = (
        cache.get_int("points.per_message", DEFAULT_POINTS_PER_MESSAGE)
        if cache else DEFAULT_POINTS_PER_MESSAGE
    )
    # Round before flooring so 10 × 1.4 is 14, not 13.999…
    return max(0, math.floor(round(base * reward_multiplier(profile), 6)))
