"""
tests/test_anti_gaming.py — Cooldown Gate & Redelivery Guard Tests
===================================================================

Tests every award guard in isolation, the guard order, and the bounded
TTL redelivery guard.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from chatpulse.database.models import EmojiKind, MessageType
from chatpulse.engine.anti_gaming import (
    RedeliveryGuard,
    RejectReason,
    check_award_eligibility,
    cooldown_remaining,
    should_award,
)
from chatpulse.engine.content import ContentProfile, EmojiOccurrence, classify_content

from conftest import make_cache

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)
GOOD_TEXT = "this is a perfectly reasonable message"


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.t = start

    def __call__(self) -> float:
        return self.t


class TestCooldownGate:
    def test_hi_five_seconds_after_award(self):
        """'hi' 5 s after the last award fails both cooldown and length guards."""
        profile = classify_content("hi")
        last = NOW - timedelta(seconds=5)
        assert should_award(profile, last, NOW) is False
        assert check_award_eligibility(profile, last, NOW) == RejectReason.COOLDOWN
        assert check_award_eligibility(profile, None, NOW) == RejectReason.SHORT_TEXT

    def test_first_message_is_eligible(self):
        assert should_award(classify_content(GOOD_TEXT), None, NOW)

    def test_cooldown_blocks_good_message(self):
        last = NOW - timedelta(seconds=29)
        reason = check_award_eligibility(classify_content(GOOD_TEXT), last, NOW)
        assert reason == RejectReason.COOLDOWN

    def test_cooldown_boundary_is_clear(self):
        last = NOW - timedelta(seconds=30)
        assert should_award(classify_content(GOOD_TEXT), last, NOW)

    def test_naive_timestamp_treated_as_utc(self):
        last = (NOW - timedelta(seconds=10)).replace(tzinfo=None)
        assert cooldown_remaining(last, NOW) == 20.0

    def test_cooldown_from_settings(self):
        cache = make_cache({"points.cooldown_seconds": 5})
        last = NOW - timedelta(seconds=10)
        assert should_award(classify_content(GOOD_TEXT), last, NOW, cache=cache)

    def test_no_last_award_means_no_cooldown(self):
        assert cooldown_remaining(None, NOW) == 0.0


class TestSpamGuards:
    def test_bot_author_rejected_first(self):
        reason = check_award_eligibility(
            classify_content(GOOD_TEXT), None, NOW, author_is_bot=True,
        )
        assert reason == RejectReason.AUTOMATED_AUTHOR

    def test_emoji_flood(self):
        profile = ContentProfile(
            has_text=True,
            text_length=5,
            emojis=(EmojiOccurrence(EmojiKind.UNICODE, "\U0001f600"),) * 11,
            links=(),
            has_images=False,
            image_count=0,
            message_type=MessageType.EMOJI_RICH,
        )
        assert check_award_eligibility(profile, None, NOW) == RejectReason.EMOJI_FLOOD

    def test_low_quality(self):
        """Short plain text scores under the quality floor."""
        assert check_award_eligibility(classify_content("hello"), None, NOW) == RejectReason.LOW_QUALITY

    def test_short_text_with_emoji_passes_quality(self):
        assert should_award(classify_content("ok \U0001f44d"), None, NOW)

    def test_thresholds_from_settings(self):
        cache = make_cache({"anti_gaming.min_text_length": 1, "quality.min_score": 0})
        assert should_award(classify_content("hi"), None, NOW, cache=cache)


class TestRedeliveryGuard:
    def test_claim_once(self):
        guard = RedeliveryGuard(ttl_seconds=60, clock=FakeClock())
        assert guard.claim(1) is True
        assert guard.claim(1) is False
        assert 1 in guard

    def test_release_allows_reclaim(self):
        guard = RedeliveryGuard(ttl_seconds=60, clock=FakeClock())
        guard.claim(1)
        guard.release(1)
        assert guard.claim(1) is True

    def test_release_unknown_is_noop(self):
        guard = RedeliveryGuard()
        guard.release(42)
        assert len(guard) == 0

    def test_claim_expires_after_ttl(self):
        clock = FakeClock()
        guard = RedeliveryGuard(ttl_seconds=60, clock=clock)
        guard.claim(1)
        clock.t += 59
        assert guard.claim(1) is False
        clock.t += 1
        assert guard.claim(1) is True

    def test_prune_counts_expired(self):
        clock = FakeClock()
        guard = RedeliveryGuard(ttl_seconds=10, clock=clock)
        guard.claim(1)
        guard.claim(2)
        clock.t += 5
        guard.claim(3)
        clock.t += 5
        assert guard.prune() == 2
        assert len(guard) == 1

    def test_bounded_evicts_oldest(self):
        guard = RedeliveryGuard(ttl_seconds=60, max_entries=3, clock=FakeClock())
        for message_id in range(5):
            guard.claim(message_id)
        assert len(guard) == 3
        assert 0 not in guard and 1 not in guard
        assert 4 in guard
