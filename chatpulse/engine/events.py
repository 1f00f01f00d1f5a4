"""
chatpulse.engine.events — MessageEvent and AttachmentInfo
==========================================================

The normalized message envelope.  The Messages cog converts every
``discord.Message`` into a :class:`MessageEvent` before the pipeline sees
it, so services and tests never touch discord.py objects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime

__all__ = ["AttachmentInfo", "MessageEvent"]


@dataclass(frozen=True, slots=True)
class AttachmentInfo:
    """The two attachment fields classification looks at."""

    content_type: str | None = None
    filename: str = ""

    @property
    def is_image(self) -> bool:
        return bool(self.content_type) and self.content_type.startswith("image/")


@dataclass(frozen=True, slots=True)
class MessageEvent:
    """Normalized incoming guild message.

    ``content`` is only held in memory while the message is analysed; it is
    never written to the database.
    """

    message_id: int
    user_id: int
    guild_id: int
    channel_id: int
    content: str
    username: str
    display_name: str | None = None
    author_is_bot: bool = False
    attachments: tuple[AttachmentInfo, ...] = ()
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
