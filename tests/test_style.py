"""
tests/test_style.py — Interaction Style & Engagement Tests
===========================================================
"""

from __future__ import annotations

from chatpulse.database.models import InteractionStyle, MessageType
from chatpulse.engine.style import (
    activity_level,
    classify_interaction_style,
    content_diversity,
    engagement_score,
)


def _counts(text=0, emoji=0, link=0, image=0) -> dict[MessageType, int]:
    return {
        MessageType.TEXT_ONLY: text,
        MessageType.EMOJI_RICH: emoji,
        MessageType.LINK_SHARE: link,
        MessageType.IMAGE_UPLOAD: image,
    }


class TestInteractionStyle:
    def test_text_focused(self):
        """70% text with average length 25 is text-focused."""
        style = classify_interaction_style(_counts(70, 10, 10, 10), 25)
        assert style == InteractionStyle.TEXT_FOCUSED

    def test_text_heavy_but_short_falls_through(self):
        style = classify_interaction_style(_counts(70, 10, 10, 10), 12)
        assert style == InteractionStyle.BALANCED

    def test_emoji_expressive(self):
        assert classify_interaction_style(_counts(5, 4, 1, 0), 10) == InteractionStyle.EMOJI_EXPRESSIVE

    def test_link_sharer(self):
        assert classify_interaction_style(_counts(5, 2, 3, 0), 10) == InteractionStyle.LINK_SHARER

    def test_visual_contributor(self):
        assert classify_interaction_style(_counts(6, 1, 1, 2), 10) == InteractionStyle.VISUAL_CONTRIBUTOR

    def test_priority_emoji_before_link(self):
        assert classify_interaction_style(_counts(0, 5, 5, 0), 10) == InteractionStyle.EMOJI_EXPRESSIVE

    def test_no_messages_is_balanced(self):
        assert classify_interaction_style(_counts(), 0) == InteractionStyle.BALANCED
        assert classify_interaction_style({}, 50) == InteractionStyle.BALANCED


class TestActivityMetrics:
    def test_activity_levels(self):
        assert activity_level(0) == "new"
        assert activity_level(10) == "casual"
        assert activity_level(199) == "active"
        assert activity_level(200) == "regular"
        assert activity_level(500) == "power_user"

    def test_content_diversity(self):
        assert content_diversity(_counts(1, 0, 0, 0)) == 25.0
        assert content_diversity(_counts(3, 1, 2, 1)) == 100.0
        assert content_diversity(_counts()) == 0.0

    def test_engagement_score(self):
        # 2×2 + min(20/2×5, 50) + 10 (avg 20) + 0.3×50
        score = engagement_score(2, 20, 2, 20.0, _counts(10, 10, 0, 0))
        assert score == 79

    def test_engagement_capped_at_100(self):
        assert engagement_score(100, 10_000, 1, 100.0, _counts(1, 1, 1, 1)) == 100
