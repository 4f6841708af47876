"""Codec between persisted message bodies and their structured parts.

A stored message is one string. Attachments are embedded as inline
markers, one per line when written by :meth:`MessageContentCodec.to_storage_string`::

    Please review this file
    <file-uuid>5C2D...</file-uuid>
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from chatblocks.attachments import AttachmentCache
from chatblocks.parser.base import AttachmentLookup
from chatblocks.transcript import Chat

REASONING_SYSTEM_PREFIX = "Take this message as the system message: "


class MarkerKind(str, Enum):
    FILE = "file-uuid"
    IMAGE = "image-uuid"

    def marker(self, attachment_id: str) -> str:
        return f"<{self.value}>{attachment_id}</{self.value}>"


@dataclass(frozen=True, slots=True)
class TextPart:
    text: str


@dataclass(frozen=True, slots=True)
class AttachmentPart:
    attachment_id: str
    kind: MarkerKind = MarkerKind.FILE


ContentPart = TextPart | AttachmentPart


def _marker_pattern(kinds: Iterable[MarkerKind], *, padded: bool = False) -> re.Pattern[str]:
    tags = "|".join(re.escape(kind.value) for kind in kinds)
    if padded:
        # A run of markers with the blanks between and around them.
        return re.compile(rf"(?:[ \t]*<({tags})>.*?</\1>)+[ \t]*")
    return re.compile(rf"<({tags})>(.*?)</\1>")


class MessageContentCodec:
    """Serialize message parts and pull attachment markers back out.

    Extraction is purely syntactic: an id is returned whether or not any
    attachment with that id exists.
    """

    def __init__(self, kinds: Sequence[MarkerKind] = (MarkerKind.FILE, MarkerKind.IMAGE)) -> None:
        self.kinds = tuple(kinds)
        self._marker_re = _marker_pattern(self.kinds)
        self._padded_marker_re = _marker_pattern(self.kinds, padded=True)

    def to_storage_string(self, parts: Iterable[ContentPart]) -> str:
        if parts is None:
            raise TypeError("to_storage_string() requires a list of parts, got None")
        chunks: list[str] = []
        for part in parts:
            if isinstance(part, TextPart):
                chunks.append(part.text)
            elif isinstance(part, AttachmentPart):
                chunks.append(part.kind.marker(part.attachment_id))
            else:
                raise TypeError(f"Unsupported content part: {part!r}")
        return "\n".join(chunks)

    def extract_attachment_ids(self, storage: str, kinds: Iterable[MarkerKind] | None = None) -> list[str]:
        if storage is None:
            raise TypeError("extract_attachment_ids() requires a string, got None")
        pattern = self._marker_re if kinds is None else _marker_pattern(kinds)
        return [match.group(2) for match in pattern.finditer(storage)]

    def strip_markers(self, storage: str) -> str:
        """Return the text with markers removed, trimmed.

        A line holding nothing but markers disappears entirely; an inline
        marker and the blanks around it collapse to a single space.
        """
        if storage is None:
            raise TypeError("strip_markers() requires a string, got None")

        kept: list[str] = []
        for line in storage.split("\n"):
            if not self._marker_re.search(line):
                kept.append(line)
                continue
            cleaned = self._padded_marker_re.sub(" ", line).strip(" \t")
            if cleaned:
                kept.append(cleaned)
        return "\n".join(kept).strip()

    def request_content(self, storage: str, lookup: AttachmentLookup) -> list[dict[str, Any]]:
        """Build the multi-part content of an API request message.

        Text comes first with markers stripped, followed by one data-URI
        part per image attachment the lookup can resolve.
        """
        parts: list[dict[str, Any]] = []
        text = self.strip_markers(storage)
        if text:
            parts.append({"type": "text", "text": text})

        for attachment_id in self.extract_attachment_ids(storage):
            attachment = lookup.lookup(attachment_id)
            if attachment is None or not attachment.is_image:
                continue
            parts.append({"type": "image_url", "image_url": attachment.data_uri()})
        return parts


def build_request_messages(
    chat: Chat,
    user_message: str | None = None,
    *,
    context_size: int,
    lookup: AttachmentLookup | None = None,
    system_as_user: bool = False,
    codec: MessageContentCodec | None = None,
) -> list[dict[str, Any]]:
    """Assemble the message list for a chat completion request.

    The system message comes first, under the ``user`` role with a prefix
    when ``system_as_user`` is set (models without a system role). Then the
    last ``context_size`` history messages in timestamp order, then
    ``user_message`` unless it is already the last history entry. A user
    message carrying attachment markers is sent as multi-part content.
    """
    if context_size < 0:
        raise ValueError(f"context_size must be >= 0, got {context_size}")
    codec = codec or MessageContentCodec()

    if system_as_user:
        messages: list[dict[str, Any]] = [{"role": "user", "content": REASONING_SYSTEM_PREFIX + chat.system_message}]
    else:
        messages = [{"role": "system", "content": chat.system_message}]

    history = sorted(chat.messages, key=lambda m: m.timestamp.timestamp() if m.timestamp else float("-inf"))
    window = history[-context_size:] if context_size else []
    for message in window:
        messages.append({"role": "user" if message.own else "assistant", "content": message.body})

    if user_message is None or messages[-1]["content"] == user_message:
        return messages

    if codec.extract_attachment_ids(user_message):
        content = codec.request_content(user_message, lookup if lookup is not None else AttachmentCache())
        messages.append({"role": "user", "content": content})
    else:
        messages.append({"role": "user", "content": user_message})
    return messages
