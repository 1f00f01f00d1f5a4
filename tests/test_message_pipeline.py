"""
tests/test_message_pipeline.py — Per-message Pipeline Tests
============================================================

End-to-end runs of :func:`process_message` against SQLite: record insert,
award, activity counter and emoji upserts in one transaction; idempotent
redelivery; rollback and guard release on storage failure; feature flags.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from chatpulse.database.models import EmojiUsage, MessageRecord, MessageType, User
from chatpulse.engine.anti_gaming import RedeliveryGuard, RejectReason
from chatpulse.engine.cache import CacheEvent
from chatpulse.engine.events import AttachmentInfo, MessageEvent
from chatpulse.errors import StorageError, ValidationError
from chatpulse.services.message_service import OutcomeStatus, process_message

from conftest import CHANNEL_ID, GUILD_ID, USER_ID, make_cache

MESSAGE_ID = 777777777777777777
SMILE = "\U0001f600"
TEXT = f"great game tonight everyone, see you next week {SMILE}{SMILE}"


def _event(now, message_id=MESSAGE_ID, content=TEXT, **overrides) -> MessageEvent:
    fields = dict(
        message_id=message_id,
        user_id=USER_ID,
        guild_id=GUILD_ID,
        channel_id=CHANNEL_ID,
        content=content,
        username="alice",
        display_name="Alice",
        timestamp=now,
    )
    fields.update(overrides)
    return MessageEvent(**fields)


def _snapshot(engine) -> dict:
    """Row counts and ledger values the pipeline can touch."""
    with Session(engine) as session:
        user = session.get(User, USER_ID)
        return {
            "records": session.scalar(select(func.count()).select_from(MessageRecord)),
            "emoji_total": session.scalar(select(func.coalesce(func.sum(EmojiUsage.usage_count), 0))),
            "points": user.total_points if user else None,
            "messages": user.total_messages if user else None,
        }


class TestProcessMessage:
    def test_full_pipeline(self, db_engine, guard, cache, now):
        outcome = process_message(db_engine, _event(now), guard=guard, cache=cache)

        assert outcome.status == OutcomeStatus.PROCESSED
        assert outcome.profile.message_type == MessageType.TEXT_ONLY
        assert outcome.award.success
        assert outcome.emoji_groups == 1
        assert _snapshot(db_engine) == {
            "records": 1, "emoji_total": 2, "points": outcome.award.points_awarded, "messages": 1,
        }
        with Session(db_engine) as session:
            record = session.scalars(select(MessageRecord)).one()
        assert record.message_id == MESSAGE_ID
        assert record.emoji_count == 2
        assert record.points_awarded == outcome.award.points_awarded

    def test_image_message_recorded(self, db_engine, guard, cache, now):
        event = _event(now, content="", attachments=(AttachmentInfo("image/png", "cat.png"),))
        outcome = process_message(db_engine, event, guard=guard, cache=cache)
        assert outcome.profile.message_type == MessageType.IMAGE_UPLOAD
        with Session(db_engine) as session:
            assert session.scalars(select(MessageRecord.image_count)).one() == 1

    def test_redelivery_after_restart_is_a_noop(self, db_engine, cache, now):
        """A fresh guard (new process) falls back to the unique message id."""
        process_message(db_engine, _event(now), guard=RedeliveryGuard(), cache=cache)
        before = _snapshot(db_engine)

        outcome = process_message(db_engine, _event(now), guard=RedeliveryGuard(), cache=cache)

        assert outcome.status == OutcomeStatus.DUPLICATE
        assert outcome.award is None
        assert _snapshot(db_engine) == before

    def test_redelivery_caught_by_guard(self, db_engine, guard, cache, now):
        process_message(db_engine, _event(now), guard=guard, cache=cache)
        outcome = process_message(db_engine, _event(now), guard=guard, cache=cache)
        assert outcome.status == OutcomeStatus.DUPLICATE
        assert outcome.profile is None

    @pytest.mark.parametrize("overrides", [
        {"user_id": 42},
        {"guild_id": -1},
        {"message_id": 12345},
    ])
    def test_malformed_ids_rejected_before_any_write(self, db_engine, guard, cache, now, overrides):
        event = _event(now, **overrides)
        with pytest.raises(ValidationError):
            process_message(db_engine, event, guard=guard, cache=cache)
        assert event.message_id not in guard
        assert _snapshot(db_engine)["records"] == 0

    def test_bot_author_ignored(self, db_engine, guard, cache, now):
        outcome = process_message(
            db_engine, _event(now, author_is_bot=True), guard=guard, cache=cache,
        )
        assert outcome.status == OutcomeStatus.IGNORED
        assert MESSAGE_ID not in guard
        assert _snapshot(db_engine)["records"] == 0

    def test_cooldown_still_counts_message(self, db_engine, guard, cache, now):
        first = process_message(db_engine, _event(now), guard=guard, cache=cache)
        second = process_message(
            db_engine, _event(now + timedelta(seconds=5), message_id=MESSAGE_ID + 1),
            guard=guard, cache=cache,
        )
        assert second.status == OutcomeStatus.PROCESSED
        assert second.award.reason == RejectReason.COOLDOWN
        snap = _snapshot(db_engine)
        assert snap["messages"] == 2
        assert snap["points"] == first.award.points_awarded
        assert snap["emoji_total"] == 4

    def test_level_up_flag(self, db_engine, guard, now):
        outcome = process_message(
            db_engine, _event(now), guard=guard, cache=make_cache({"points.per_message": 100}),
        )
        assert outcome.leveled_up
        assert outcome.award.new_level > 1

    def test_publishes_invalidation_after_commit(self, db_engine, guard, cache, stats_cache, now):
        with patch.object(stats_cache, "publish") as mock_publish:
            process_message(db_engine, _event(now), guard=guard, cache=cache, stats_cache=stats_cache)
        mock_publish.assert_called_once_with(CacheEvent.for_user(USER_ID, GUILD_ID))


class TestConcurrency:
    def test_parallel_messages_from_one_member_all_count(self, file_engine, guard, now):
        cache = make_cache({"points.per_message": 1, "points.cooldown_seconds": 0})
        with ThreadPoolExecutor(max_workers=8) as pool:
            outcomes = list(pool.map(
                lambda n: process_message(
                    file_engine, _event(now, message_id=MESSAGE_ID + n), guard=guard, cache=cache,
                ),
                range(30),
            ))

        assert all(o.status == OutcomeStatus.PROCESSED for o in outcomes)
        assert all(o.award.points_awarded == 1 for o in outcomes)
        assert _snapshot(file_engine) == {
            "records": 30, "emoji_total": 60, "points": 30, "messages": 30,
        }


class TestStorageFailure:
    def test_failure_rolls_back_and_releases_claim(self, db_engine, guard, cache, stats_cache, now):
        failure = OperationalError("UPDATE users", {}, Exception("disk I/O error"))
        with (
            patch("chatpulse.services.message_service.record_message_activity", side_effect=failure),
            patch.object(stats_cache, "publish") as mock_publish,
        ):
            with pytest.raises(StorageError) as exc_info:
                process_message(db_engine, _event(now), guard=guard, cache=cache, stats_cache=stats_cache)

        assert exc_info.value.__cause__ is failure
        assert MESSAGE_ID not in guard
        mock_publish.assert_not_called()
        assert _snapshot(db_engine) == {
            "records": 0, "emoji_total": 0, "points": None, "messages": None,
        }

    def test_retry_after_failure_succeeds(self, db_engine, guard, cache, now):
        failure = OperationalError("INSERT", {}, Exception("connection lost"))
        with patch("chatpulse.services.message_service.upsert_emoji_counts", side_effect=failure):
            with pytest.raises(StorageError):
                process_message(db_engine, _event(now), guard=guard, cache=cache)

        outcome = process_message(db_engine, _event(now), guard=guard, cache=cache)
        assert outcome.status == OutcomeStatus.PROCESSED
        assert _snapshot(db_engine)["records"] == 1


class TestFeatureFlags:
    def test_content_analysis_disabled_skips_record(self, db_engine, guard, now):
        cache = make_cache({"features.content_analysis": False})
        outcome = process_message(db_engine, _event(now), guard=guard, cache=cache)
        assert outcome.award.success
        snap = _snapshot(db_engine)
        assert snap["records"] == 0
        assert snap["messages"] == 1

    def test_emoji_stats_disabled(self, db_engine, guard, now):
        cache = make_cache({"features.emoji_stats": False})
        outcome = process_message(db_engine, _event(now), guard=guard, cache=cache)
        assert outcome.emoji_groups == 0
        assert _snapshot(db_engine)["emoji_total"] == 0

    def test_rewards_disabled(self, db_engine, guard, now):
        cache = make_cache({"features.rewards": False})
        outcome = process_message(db_engine, _event(now), guard=guard, cache=cache)
        assert outcome.award.reason == RejectReason.REWARDS_DISABLED
        snap = _snapshot(db_engine)
        assert snap["points"] == 0
        assert snap["messages"] == 1
        assert snap["records"] == 1
