"""Tests for the streaming render session and history rendering.

Covers:
- Throttled re-parses driven by an injected clock
- Truncated interactive parses and the untruncated final parse
- Exactly-once finish, cancellation, sync and async chunk sources
"""

from __future__ import annotations

import asyncio

import pytest

from chatblocks.parser.base import CodeBlock, TextBlock
from chatblocks.parser.stream_parser import StreamingMessageParser
from chatblocks.streaming import StreamRenderSession, render_message


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _session(**kwargs) -> tuple[StreamRenderSession, FakeClock]:
    clock = FakeClock()
    return StreamRenderSession(StreamingMessageParser(), clock=clock, **kwargs), clock


# ---------------------------------------------------------------------------
# Throttling
# ---------------------------------------------------------------------------

def test_first_chunk_parses_immediately() -> None:
    session, _ = _session(min_interval=1.0)
    assert session.feed("Hello") == [TextBlock("Hello")]
    assert session.reparse_count == 1


def test_reparses_are_throttled() -> None:
    session, clock = _session(min_interval=1.0)
    session.feed("Hel")

    clock.now = 0.5
    assert session.feed("lo") is None
    assert session.reparse_count == 1

    clock.now = 1.5
    assert session.feed(" there") == [TextBlock("Hello there")]
    assert session.reparse_count == 2


def test_empty_chunk_does_not_reparse() -> None:
    session, clock = _session(min_interval=0.0)
    assert session.feed("") is None
    session.feed("x")
    clock.now = 10.0
    assert session.feed("") is None


def test_growing_code_block_through_session() -> None:
    session, clock = _session(min_interval=0.1)
    assert session.feed("```py\nprint(1)") == [CodeBlock("print(1)", "py", 0)]
    clock.now = 1.0
    assert session.feed("\n```") == [CodeBlock("print(1)", "py", 0)]


# ---------------------------------------------------------------------------
# Truncation and finish
# ---------------------------------------------------------------------------

def test_interactive_parse_is_truncated_but_final_is_not() -> None:
    session, _ = _session(min_interval=0.0, preview_limit=10)
    assert session.feed("abcdefghijklmno") == [TextBlock("abcdefghij")]
    assert session.finish() == [TextBlock("abcdefghijklmno")]


def test_image_marker_disables_truncation() -> None:
    text = "x" * 20 + "\n<image-uuid>abc</image-uuid>"
    session, _ = _session(min_interval=0.0, preview_limit=10)
    assert session.feed(text) == [TextBlock(text)]


def test_finish_runs_once() -> None:
    session, _ = _session(min_interval=100.0)
    session.feed("a")
    session.feed("b")

    first = session.finish()
    count = session.reparse_count
    second = session.finish()

    assert first == [TextBlock("ab")]
    assert second is first
    assert session.reparse_count == count == 2
    assert session.finished


def test_feed_after_finish_or_cancel_fails() -> None:
    session, _ = _session()
    session.finish()
    with pytest.raises(RuntimeError):
        session.feed("late")

    cancelled, _ = _session()
    cancelled.cancel()
    assert cancelled.cancelled
    with pytest.raises(RuntimeError):
        cancelled.feed("late")


def test_invalid_session_settings() -> None:
    with pytest.raises(ValueError):
        StreamRenderSession(StreamingMessageParser(), min_interval=-1)
    with pytest.raises(ValueError):
        StreamRenderSession(StreamingMessageParser(), preview_limit=0)


# ---------------------------------------------------------------------------
# Chunk sources
# ---------------------------------------------------------------------------

def test_run_reports_updates() -> None:
    session, _ = _session(min_interval=0.0)
    updates: list[list] = []

    final = session.run(["Hel", "lo"], on_update=updates.append)

    assert updates == [[TextBlock("Hel")], [TextBlock("Hello")]]
    assert final == [TextBlock("Hello")]


def test_run_stops_when_cancelled() -> None:
    session, _ = _session(min_interval=0.0)

    def cancel_after_first(_elements: list) -> None:
        session.cancel()

    final = session.run(["one", " two", " three"], on_update=cancel_after_first)
    assert final == [TextBlock("one")]


def test_arun_consumes_async_chunks() -> None:
    async def chunks():
        for chunk in ("<think>", "plan", "</think>\n", "Answer"):
            yield chunk

    session, _ = _session(min_interval=0.0)
    updates: list[list] = []
    final = asyncio.run(session.arun(chunks(), on_update=updates.append))

    assert len(updates) == 4
    assert [type(e).__name__ for e in final] == ["ThinkingBlock", "TextBlock"]
    assert session.text == "<think>plan</think>\nAnswer"


# ---------------------------------------------------------------------------
# History rendering
# ---------------------------------------------------------------------------

def test_render_message_truncates_long_messages() -> None:
    parser = StreamingMessageParser()
    text = "y" * 50

    preview = render_message(text, parser, preview_limit=10)
    assert preview.truncated
    assert preview.elements == [TextBlock("y" * 10)]

    full = render_message(text, parser, preview_limit=10, show_full=True)
    assert not full.truncated
    assert full.elements == [TextBlock(text)]


def test_render_message_short_message() -> None:
    result = render_message("short", StreamingMessageParser())
    assert not result.truncated
    assert result.elements == [TextBlock("short")]
