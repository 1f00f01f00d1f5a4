"""
chatpulse.services.message_service — Per-message pipeline
==========================================================

Turns one :class:`~chatpulse.engine.events.MessageEvent` into its durable
effects, all inside **one** transaction:

1. ``message_records`` insert (SAVEPOINT + IntegrityError on the unique
   ``message_id``; a duplicate ends processing with no other change)
2. member row fetched / created, then locked
3. cooldown gate → conditional points award
4. ``total_messages + 1`` (always)
5. emoji counter upserts (when the message has emojis)

A storage failure rolls all of it back and surfaces as
:class:`~chatpulse.errors.StorageError` for this message only; the redelivery
guard claim is released so a later redelivery gets another chance.  Cache
invalidation is published only after commit.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from chatpulse.constants import is_valid_snowflake
from chatpulse.database.engine import get_session, storage_errors
from chatpulse.database.models import MessageRecord
from chatpulse.engine.anti_gaming import RejectReason, RedeliveryGuard, check_award_eligibility
from chatpulse.engine.cache import CacheEvent
from chatpulse.engine.content import ContentProfile, classify_content
from chatpulse.engine.events import MessageEvent
from chatpulse.engine.quality import award_quantity
from chatpulse.errors import StorageError, ValidationError
from chatpulse.services.emoji_service import upsert_emoji_counts
from chatpulse.services.points_service import (
    AwardResult,
    apply_award,
    get_or_create_user,
    locked_user,
    record_message_activity,
)

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from chatpulse.engine.cache import ConfigCache, StatsCache

logger = logging.getLogger(__name__)


class OutcomeStatus(enum.StrEnum):
    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"


@dataclass(slots=True)
class MessageOutcome:
    status: OutcomeStatus
    profile: ContentProfile | None = None
    award: AwardResult | None = None
    emoji_groups: int = 0

    @property
    def leveled_up(self) -> bool:
        return self.award is not None and self.award.level_up


def _insert_record(session: Session, event: MessageEvent, profile: ContentProfile) -> MessageRecord | None:
    """Insert the analysis row; None if this message id was already recorded."""
    record = MessageRecord(
        message_id=event.message_id,
        user_id=event.user_id,
        guild_id=event.guild_id,
        channel_id=event.channel_id,
        text_length=profile.text_length,
        message_type=profile.message_type.value,
        emoji_count=profile.emoji_count,
        link_count=profile.link_count,
        image_count=profile.image_count,
        points_awarded=0,
        created_at=event.timestamp,
    )
    try:
        with session.begin_nested():   # SAVEPOINT
            session.add(record)
            session.flush()
    except IntegrityError:
        # The SAVEPOINT was rolled back; the outer txn is still alive.
        return None
    return record


def process_message(
    engine: Engine,
    event: MessageEvent,
    *,
    guard: RedeliveryGuard,
    cache: ConfigCache | None = None,
    stats_cache: StatsCache | None = None,
) -> MessageOutcome:
    """Run the full pipeline for one guild message.

    Raises :class:`ValidationError` for a malformed message, member or guild
    id before anything is claimed or written.
    """
    for what, value in (
        ("message", event.message_id), ("user", event.user_id), ("guild", event.guild_id),
    ):
        if not is_valid_snowflake(value):
            raise ValidationError(f"Invalid {what} id: {value!r}")

    if event.author_is_bot:
        return MessageOutcome(OutcomeStatus.IGNORED)

    if not guard.claim(event.message_id):
        logger.debug("Message %d already claimed; skipping redelivery", event.message_id)
        return MessageOutcome(OutcomeStatus.DUPLICATE)

    profile = classify_content(event.content, event.attachments)
    now = event.timestamp

    def enabled(flag: str) -> bool:
        return cache.get_bool(flag, True) if cache is not None else True

    try:
        with storage_errors("process_message"), get_session(engine) as session:
            record = None
            if enabled("features.content_analysis"):
                record = _insert_record(session, event, profile)
                if record is None:
                    logger.info("Message %d already recorded; skipping", event.message_id)
                    return MessageOutcome(OutcomeStatus.DUPLICATE, profile=profile)

            get_or_create_user(session, event.user_id, event.username, event.display_name)
            user = locked_user(session, event.user_id)

            if enabled("features.rewards"):
                reason = check_award_eligibility(
                    profile, user.last_award_at, now, author_is_bot=event.author_is_bot, cache=cache,
                )
                if reason is None:
                    award = apply_award(session, user, award_quantity(profile, cache), cache, now=now)
                else:
                    award = AwardResult.rejected(reason, user)
            else:
                award = AwardResult.rejected(RejectReason.REWARDS_DISABLED, user)

            record_message_activity(session, event.user_id, now)

            emoji_groups = 0
            if profile.has_emojis and enabled("features.emoji_stats"):
                emoji_groups = upsert_emoji_counts(
                    session, event.user_id, event.guild_id, profile.emojis, now,
                )

            if record is not None and award.success:
                record.points_awarded = award.points_awarded
    except StorageError:
        guard.release(event.message_id)
        raise

    if stats_cache is not None:
        stats_cache.publish(CacheEvent.for_user(event.user_id, event.guild_id))

    logger.debug(
        "Message %d from %d: %s, %d pts (%s)",
        event.message_id, event.user_id, profile.message_type,
        award.points_awarded, award.reason or "awarded",
    )
    return MessageOutcome(
        OutcomeStatus.PROCESSED, profile=profile, award=award, emoji_groups=emoji_groups,
    )
