"""
chatpulse.engine.content — Message Content Classifier
======================================================

Pure function from raw text + attachment descriptors to a
:class:`ContentProfile`.  No I/O, no state; safe to call from any thread.

Emoji extraction runs in three passes over a working copy of the text, each
pass removing what it matched so later passes cannot double count:

1. custom markup ``<:name:id>`` / ``<a:name:id>``
2. ``:shortcode:`` captions, skipped when a custom emoji of the same name
   was already recorded
3. unicode pictographs in whatever is left
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from chatpulse.constants import CUSTOM_EMOJI_RE, SHORTCODE_RE, UNICODE_EMOJI_RE, URL_RE
from chatpulse.database.models import EmojiKind, MessageType
from chatpulse.engine.events import AttachmentInfo

__all__ = ["EmojiOccurrence", "ContentProfile", "classify_content", "extract_emojis"]

# Emoji count at which a message counts as emoji-rich
EMOJI_RICH_THRESHOLD = 3


@dataclass(frozen=True, slots=True)
class EmojiOccurrence:
    kind: EmojiKind
    name: str
    id: int | None = None


@dataclass(frozen=True, slots=True)
class ContentProfile:
    """Everything downstream stages need to know about one message."""

    has_text: bool
    text_length: int
    emojis: tuple[EmojiOccurrence, ...]
    links: tuple[str, ...]
    has_images: bool
    image_count: int
    message_type: MessageType

    @property
    def emoji_count(self) -> int:
        return len(self.emojis)

    @property
    def link_count(self) -> int:
        return len(self.links)

    @property
    def has_emojis(self) -> bool:
        return bool(self.emojis)

    @property
    def has_links(self) -> bool:
        return bool(self.links)


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------
def extract_emojis(text: str) -> list[EmojiOccurrence]:
    """Return every emoji occurrence in *text*, duplicates included."""
    found: list[EmojiOccurrence] = []
    custom_names: set[str] = set()

    for match in CUSTOM_EMOJI_RE.finditer(text):
        name = match.group(2)
        found.append(EmojiOccurrence(EmojiKind.CUSTOM, name, int(match.group(3))))
        custom_names.add(name)
    working = CUSTOM_EMOJI_RE.sub(" ", text)

    for match in SHORTCODE_RE.finditer(working):
        name = match.group(1)
        if name not in custom_names:
            found.append(EmojiOccurrence(EmojiKind.CUSTOM, name))
    working = SHORTCODE_RE.sub(" ", working)

    for match in UNICODE_EMOJI_RE.finditer(working):
        found.append(EmojiOccurrence(EmojiKind.UNICODE, match.group(0)))

    return found


def _message_type(has_images: bool, link_count: int, emoji_count: int) -> MessageType:
    # Mixed content collapses into the first matching bucket
    if has_images:
        return MessageType.IMAGE_UPLOAD
    if link_count:
        return MessageType.LINK_SHARE
    if emoji_count >= EMOJI_RICH_THRESHOLD:
        return MessageType.EMOJI_RICH
    return MessageType.TEXT_ONLY


def classify_content(
    raw_text: str | None,
    attachments: Iterable[AttachmentInfo] = (),
) -> ContentProfile:
    """Analyse one message.

    ``text_length`` is the character count of the raw text, surrounding
    whitespace included; absent text is treated as empty.  An attachment is
    an image when its content type starts with ``image/``.
    """
    text = raw_text or ""
    emojis = tuple(extract_emojis(text))
    links = tuple(URL_RE.findall(text))
    image_count = sum(1 for a in attachments if a.is_image)

    return ContentProfile(
        has_text=bool(text),
        text_length=len(text),
        emojis=emojis,
        links=links,
        has_images=image_count > 0,
        image_count=image_count,
        message_type=_message_type(image_count > 0, len(links), len(emojis)),
    )
