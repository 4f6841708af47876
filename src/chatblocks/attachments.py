"""Attachment resolution and the synchronous cache the parser reads from."""

from __future__ import annotations

import base64
import logging
import mimetypes
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ResolvedAttachment:
    attachment_id: str
    data: bytes
    media_type: str = "application/octet-stream"
    filename: str | None = None

    @property
    def is_image(self) -> bool:
        return self.media_type.startswith("image/")

    def data_uri(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.media_type};base64,{encoded}"


class AttachmentResolver(Protocol):
    def resolve(self, attachment_id: str) -> ResolvedAttachment | None:  # pragma: no cover - structural protocol
        """Fetch attachment bytes and type, or None when the id is unknown."""


class AttachmentCache:
    """In-memory id -> attachment map, filled ahead of parsing.

    Readers from several render passes may run concurrently with a single
    populating resolver. Attachments are immutable once stored, so the last
    write for an id wins.
    """

    def __init__(self) -> None:
        self._items: dict[str, ResolvedAttachment] = {}
        self._lock = threading.Lock()

    def lookup(self, attachment_id: str) -> ResolvedAttachment | None:
        with self._lock:
            return self._items.get(attachment_id)

    get = lookup

    def put(self, attachment: ResolvedAttachment) -> None:
        with self._lock:
            self._items[attachment.attachment_id] = attachment

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __contains__(self, attachment_id: object) -> bool:
        with self._lock:
            return attachment_id in self._items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def prime(self, resolver: AttachmentResolver, attachment_ids: Iterable[str]) -> int:
        """Resolve ids not cached yet and store the hits; returns how many were stored."""
        stored = 0
        for attachment_id in dict.fromkeys(attachment_ids):
            if attachment_id in self:
                continue
            attachment = resolver.resolve(attachment_id)
            if attachment is None:
                logger.debug("Attachment %s could not be resolved", attachment_id)
                continue
            self.put(attachment)
            stored += 1
        return stored

    def prime_from_text(self, resolver: AttachmentResolver, text: str) -> int:
        """Prime the cache with every attachment marker found in a message body."""
        from chatblocks.message_content import MessageContentCodec

        return self.prime(resolver, MessageContentCodec().extract_attachment_ids(text))


class DirectoryAttachmentStore:
    """Resolve attachments stored as ``<id>.<ext>`` files under one directory."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def resolve(self, attachment_id: str) -> ResolvedAttachment | None:
        path = self._find(attachment_id)
        if path is None:
            logger.debug("No attachment file for %s under %s", attachment_id, self.root)
            return None
        try:
            data = path.read_bytes()
        except OSError as exc:
            logger.debug("Failed to read attachment %s: %s", path, exc)
            return None

        mime, _ = mimetypes.guess_type(path.name)
        return ResolvedAttachment(
            attachment_id=attachment_id,
            data=data,
            media_type=mime or "application/octet-stream",
            filename=path.name,
        )

    def _find(self, attachment_id: str) -> Path | None:
        # Ids are opaque; anything that could escape the root is rejected.
        if not attachment_id or "/" in attachment_id or "\\" in attachment_id or attachment_id.startswith("."):
            return None
        if not self.root.is_dir():
            return None
        candidates = sorted(
            p for p in self.root.iterdir() if p.is_file() and (p.stem == attachment_id or p.name == attachment_id)
        )
        return candidates[0] if candidates else None
