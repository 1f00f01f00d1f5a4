"""
chatpulse.engine.anti_gaming — Cooldown gate & redelivery guard
================================================================

Two independent defences against point farming:

* :func:`check_award_eligibility` / :func:`should_award` — pure guards
  deciding whether one message may earn points (cooldown, short text, emoji
  flood, quality floor, automated author).
* :class:`RedeliveryGuard` — thread-safe TTL set of recently claimed
  message ids so a gateway redelivery is not processed twice.
"""

from __future__ import annotations

import enum
import logging
import time
from collections import OrderedDict
from datetime import UTC, datetime
from threading import Lock
from typing import TYPE_CHECKING

from chatpulse.engine.content import ContentProfile
from chatpulse.engine.quality import quality_score

if TYPE_CHECKING:
    from chatpulse.engine.cache import ConfigCache

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Default thresholds
# ---------------------------------------------------------------------------
DEFAULT_COOLDOWN_SECONDS = 30
_MIN_TEXT_LENGTH = 3
_EMOJI_FLOOD_COUNT = 10
_EMOJI_FLOOD_TEXT_LENGTH = 10
_MIN_QUALITY_SCORE = 1.0


class RejectReason(enum.StrEnum):
    """Why a message earned nothing; checked in this order."""
    AUTOMATED_AUTHOR = "automated_author"
    COOLDOWN = "cooldown"
    SHORT_TEXT = "short_text"
    EMOJI_FLOOD = "emoji_flood"
    LOW_QUALITY = "low_quality"
    REWARDS_DISABLED = "rewards_disabled"


def as_utc(ts: datetime) -> datetime:
    """Attach UTC to naive timestamps (SQLite drops tzinfo on read)."""
    return ts.replace(tzinfo=UTC) if ts.tzinfo is None else ts


def cooldown_remaining(
    last_award_at: datetime | None,
    now: datetime,
    cache: ConfigCache | None = None,
) -> float:
    """Seconds left before the user may earn again (0.0 when clear)."""
    if last_award_at is None:
        return 0.0
    cooldown = (
        cache.get_int("points.cooldown_seconds", DEFAULT_COOLDOWN_SECONDS)
        if cache else DEFAULT_COOLDOWN_SECONDS
    )
    elapsed = (as_utc(now) - as_utc(last_award_at)).total_seconds()
    return max(0.0, cooldown - elapsed)


def check_award_eligibility(
    profile: ContentProfile,
    last_award_at: datetime | None,
    now: datetime,
    *,
    author_is_bot: bool = False,
    cache: ConfigCache | None = None,
) -> RejectReason | None:
    """Return the first failing guard, or ``None`` if the message may earn.

    Every guard is independent; any single failure rejects.
    """
    if author_is_bot:
        return RejectReason.AUTOMATED_AUTHOR

    if cooldown_remaining(last_award_at, now, cache) > 0:
        return RejectReason.COOLDOWN

    min_length = cache.get_int("anti_gaming.min_text_length", _MIN_TEXT_LENGTH) if cache else _MIN_TEXT_LENGTH
    flood_count = cache.get_int("anti_gaming.emoji_flood_count", _EMOJI_FLOOD_COUNT) if cache else _EMOJI_FLOOD_COUNT
    flood_text = cache.get_int("anti_gaming.emoji_flood_text_length", _EMOJI_FLOOD_TEXT_LENGTH) if cache else _EMOJI_FLOOD_TEXT_LENGTH
    min_quality = cache.get_float("quality.min_score", _MIN_QUALITY_SCORE) if cache else _MIN_QUALITY_SCORE

    if profile.text_length < min_length:
        return RejectReason.SHORT_TEXT
    if profile.emoji_count > flood_count and profile.text_length < flood_text:
        return RejectReason.EMOJI_FLOOD
    if quality_score(profile) < min_quality:
        return RejectReason.LOW_QUALITY
    return None


def should_award(
    profile: ContentProfile,
    last_award_at: datetime | None,
    now: datetime,
    *,
    author_is_bot: bool = False,
    cache: ConfigCache | None = None,
) -> bool:
    """True if the message passes every guard."""
    return check_award_eligibility(
        profile, last_award_at, now, author_is_bot=author_is_bot, cache=cache,
    ) is None


# ---------------------------------------------------------------------------
# Redelivery guard
# ---------------------------------------------------------------------------
class RedeliveryGuard:
    """Bounded set of recently claimed message ids.

    Thread-safe.  Entries expire after *ttl_seconds*; once *max_entries* is
    reached the oldest claim is evicted.  The database unique index on
    ``message_records.message_id`` still catches anything evicted early.
    """

    def __init__(
        self,
        ttl_seconds: float = 60.0,
        max_entries: int = 10_000,
        *,
        clock=time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._lock = Lock()
        # message_id → claim time, oldest first
        self._claims: OrderedDict[int, float] = OrderedDict()

    def claim(self, message_id: int) -> bool:
        """Claim *message_id*; False if it was already claimed and still live."""
        now = self._clock()
        with self._lock:
            self._expire(now)
            if message_id in self._claims:
                return False
            self._claims[message_id] = now
            while len(self._claims) > self.max_entries:
                self._claims.popitem(last=False)
            return True

    def release(self, message_id: int) -> None:
        """Forget a claim so a later redelivery can be processed."""
        with self._lock:
            self._claims.pop(message_id, None)

    def prune(self) -> int:
        """Drop expired claims; returns how many were removed."""
        with self._lock:
            return self._expire(self._clock())

    def _expire(self, now: float) -> int:
        cutoff = now - self.ttl_seconds
        removed = 0
        while self._claims:
            oldest_id, claimed_at = next(iter(self._claims.items()))
            if claimed_at > cutoff:
                break
            del self._claims[oldest_id]
            removed += 1
        if removed:
            logger.debug("Redelivery guard expired %d claims", removed)
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._claims)

    def __contains__(self, message_id: object) -> bool:
        with self._lock:
            return message_id in self._claims
