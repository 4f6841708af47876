"""Caller-side policy for rendering a response while it streams.

The parser is a pure function of the full text. This module owns the rest:
accumulating chunks, throttling how often the buffer is re-parsed, parsing
only a prefix of very long buffers for interactive updates, and running the
final untruncated parse exactly once when the stream ends.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterable, Callable, Iterable
from dataclasses import dataclass, field

from chatblocks.config import DEFAULT_PREVIEW_LIMIT, DEFAULT_RENDER_INTERVAL
from chatblocks.parser.base import ContentElement
from chatblocks.parser.classifier import IMAGE_OPEN
from chatblocks.parser.stream_parser import StreamingMessageParser

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[list[ContentElement]], None]


@dataclass(slots=True)
class RenderedMessage:
    elements: list[ContentElement] = field(default_factory=list)
    truncated: bool = False


def _should_truncate(text: str, preview_limit: int) -> bool:
    # Buffers holding image markers are never cut.
    return len(text) > preview_limit and IMAGE_OPEN not in text


def render_message(
    text: str,
    parser: StreamingMessageParser,
    *,
    show_full: bool = False,
    preview_limit: int = DEFAULT_PREVIEW_LIMIT,
) -> RenderedMessage:
    """Parse a stored message for display, truncating long ones unless asked not to."""
    if not show_full and _should_truncate(text, preview_limit):
        return RenderedMessage(parser.parse(text[:preview_limit]), truncated=True)
    return RenderedMessage(parser.parse(text), truncated=False)


class StreamRenderSession:
    """Accumulate streamed chunks and decide when to re-parse.

    ``feed`` re-parses at most once per ``min_interval`` seconds; ``finish``
    always produces the complete, untruncated result and does so once.
    """

    def __init__(
        self,
        parser: StreamingMessageParser,
        *,
        min_interval: float = DEFAULT_RENDER_INTERVAL,
        preview_limit: int = DEFAULT_PREVIEW_LIMIT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if min_interval < 0:
            raise ValueError(f"min_interval must be >= 0, got {min_interval}")
        if preview_limit <= 0:
            raise ValueError(f"preview_limit must be > 0, got {preview_limit}")
        self.parser = parser
        self.min_interval = min_interval
        self.preview_limit = preview_limit
        self._clock = clock
        self._chunks: list[str] = []
        self._text = ""
        self._dirty = False
        self._last_parse_at: float | None = None
        self._final: list[ContentElement] | None = None
        self._cancelled = False
        self.reparse_count = 0

    @property
    def text(self) -> str:
        if self._chunks:
            self._text += "".join(self._chunks)
            self._chunks.clear()
        return self._text

    @property
    def finished(self) -> bool:
        return self._final is not None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def feed(self, chunk: str) -> list[ContentElement] | None:
        """Append a chunk; return fresh elements when a re-parse was due."""
        if self._final is not None or self._cancelled:
            raise RuntimeError("Cannot feed a stream that is finished or cancelled")
        if chunk is None:
            raise TypeError("feed() requires a string chunk, got None")
        if chunk:
            self._chunks.append(chunk)
            self._dirty = True

        now = self._clock()
        if not self._dirty:
            return None
        if self._last_parse_at is not None and now - self._last_parse_at < self.min_interval:
            return None

        self._last_parse_at = now
        self._dirty = False
        return self._parse(self.text, interactive=True)

    def finish(self) -> list[ContentElement]:
        """Run the final full parse once; later calls return the same result."""
        if self._final is None:
            self._final = self._parse(self.text, interactive=False)
            logger.debug("Stream finished after %d parses (%d chars)", self.reparse_count, len(self._text))
        return self._final

    def cancel(self) -> None:
        self._cancelled = True

    def run(self, chunks: Iterable[str], on_update: UpdateCallback | None = None) -> list[ContentElement]:
        for chunk in chunks:
            if self._cancelled:
                break
            elements = self.feed(chunk)
            if elements is not None and on_update is not None:
                on_update(elements)
        return self.finish()

    async def arun(
        self, chunks: AsyncIterable[str], on_update: UpdateCallback | None = None
    ) -> list[ContentElement]:
        async for chunk in chunks:
            if self._cancelled:
                break
            elements = self.feed(chunk)
            if elements is not None and on_update is not None:
                on_update(elements)
        return self.finish()

    def _parse(self, text: str, *, interactive: bool) -> list[ContentElement]:
        self.reparse_count += 1
        if interactive and _should_truncate(text, self.preview_limit):
            return self.parser.parse(text[: self.preview_limit])
        return self.parser.parse(text)
