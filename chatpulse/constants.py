"""
chatpulse.constants — Shared Constants & Helpers
=================================================

Single source of truth for the leveling formula, the text-scanning regexes,
identifier validation and presentation constants.  Import from here instead
of duplicating in cogs, services, and tests.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from chatpulse.engine.cache import ConfigCache

# ---------------------------------------------------------------------------
# Presentation (used by bot embeds)
# ---------------------------------------------------------------------------
RANK_BADGES: list[str] = ["\U0001f947", "\U0001f948", "\U0001f949"]  # 🥇🥈🥉

STYLE_LABELS: dict[str, str] = {
    "text_focused": "\U0001f4dd Text-focused",
    "emoji_expressive": "\U0001f604 Emoji-expressive",
    "link_sharer": "\U0001f517 Link sharer",
    "visual_contributor": "\U0001f5bc\ufe0f Visual contributor",
    "balanced": "\u2696\ufe0f Balanced",
}

# ---------------------------------------------------------------------------
# Leveling defaults (overridable via the ``settings`` table)
# ---------------------------------------------------------------------------
DEFAULT_POINTS_PER_LEVEL = 100
DEFAULT_MAX_LEVEL = 100
DEFAULT_LEVEL_UP_BONUS_COINS = 25


# ---------------------------------------------------------------------------
# Leveling formula — THE single canonical implementation
# ---------------------------------------------------------------------------
def level_for_points(points: int, cache: ConfigCache | None = None) -> int:
    """Level reached with *points* cumulative points.

    ::

        level = min(max_level, points // points_per_level + 1)

    Parameters are read from the ``settings`` table via *cache*.
    """
    if cache is not None:
        per_level = cache.get_int("points.per_level", DEFAULT_POINTS_PER_LEVEL)
        max_level = cache.get_int("points.max_level", DEFAULT_MAX_LEVEL)
    else:
        per_level = DEFAULT_POINTS_PER_LEVEL
        max_level = DEFAULT_MAX_LEVEL
    per_level = max(per_level, 1)
    return min(max_level, max(points, 0) // per_level + 1)


def level_progress(points: int, cache: ConfigCache | None = None) -> dict[str, int]:
    """Progress inside the current level, for progress bars.

    Returns ``{"level", "current", "required", "percentage"}``.
    """
    per_level = (
        cache.get_int("points.per_level", DEFAULT_POINTS_PER_LEVEL)
        if cache is not None else DEFAULT_POINTS_PER_LEVEL
    )
    per_level = max(per_level, 1)
    level = level_for_points(points, cache)
    current = max(points, 0) - (level - 1) * per_level
    # At max level the remainder keeps growing; cap the bar at full
    current = min(current, per_level)
    return {
        "level": level,
        "current": current,
        "required": per_level,
        "percentage": (current * 100) // per_level,
    }


# ---------------------------------------------------------------------------
# Text scanning patterns
# ---------------------------------------------------------------------------
# <:name:id> or <a:name:id>
CUSTOM_EMOJI_RE = re.compile(r"<(a?):(\w+):(\d+)>")

# :name: shortcode (colon-delimited custom emoji caption)
SHORTCODE_RE = re.compile(r":([a-zA-Z0-9_]+):")

URL_RE = re.compile(r"https?://[^\s]+")

# One pictographic emoji grapheme: base code point with optional skin tone /
# VS16, joined by ZWJ into sequences; or a regional-indicator flag pair.
# Digits, '#' and '*' alone never match.
_PICTO = (
    "["
    "\U0001F300-\U0001F5FF"  # symbols & pictographs
    "\U0001F600-\U0001F64F"  # emoticons
    "\U0001F680-\U0001F6FF"  # transport & map
    "\U0001F700-\U0001F8FF"
    "\U0001F900-\U0001F9FF"  # supplemental symbols & pictographs
    "\U0001FA70-\U0001FAFF"  # symbols & pictographs extended-A
    "\u2600-\u27BF"          # misc symbols + dingbats
    "\u2B50\u2B55\u2B1B\u2B1C"
    "\u231A\u231B\u23E9-\u23F3\u23F8-\u23FA"
    "]"
)
_MODIFIERS = "[\U0001F3FB-\U0001F3FF]?\uFE0F?"
UNICODE_EMOJI_RE = re.compile(
    "[\U0001F1E6-\U0001F1FF]{2}"
    f"|{_PICTO}{_MODIFIERS}(?:\u200D{_PICTO}{_MODIFIERS})*"
)

# ---------------------------------------------------------------------------
# Identifier validation
# ---------------------------------------------------------------------------
_SNOWFLAKE_RE = re.compile(r"^\d{17,19}$")


def is_valid_snowflake(value: int | str) -> bool:
    """True if *value* looks like a Discord snowflake (17–19 digits)."""
    if isinstance(value, bool):
        return False
    return bool(_SNOWFLAKE_RE.match(str(value)))
