"""Tests for the persisted message codec."""

from __future__ import annotations

import base64
from datetime import datetime

import pytest

from chatblocks.attachments import AttachmentCache, ResolvedAttachment
from chatblocks.message_content import (
    AttachmentPart,
    MarkerKind,
    MessageContentCodec,
    TextPart,
    build_request_messages,
)
from chatblocks.transcript import Chat, ChatMessage


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def test_marker_grammar() -> None:
    assert MarkerKind.FILE.marker("abc") == "<file-uuid>abc</file-uuid>"
    assert MarkerKind.IMAGE.marker("abc") == "<image-uuid>abc</image-uuid>"


def test_to_storage_string_joins_with_newlines() -> None:
    parts = [TextPart("hello"), AttachmentPart("A1"), AttachmentPart("I1", MarkerKind.IMAGE)]
    assert MessageContentCodec().to_storage_string(parts) == (
        "hello\n<file-uuid>A1</file-uuid>\n<image-uuid>I1</image-uuid>"
    )


def test_to_storage_string_rejects_unknown_parts() -> None:
    with pytest.raises(TypeError):
        MessageContentCodec().to_storage_string(["raw string"])  # type: ignore[list-item]


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

def test_extract_keeps_order_and_duplicates() -> None:
    storage = "<file-uuid>a</file-uuid> x <file-uuid>b</file-uuid>\n<image-uuid>c</image-uuid>\n<file-uuid>a</file-uuid>"
    assert MessageContentCodec().extract_attachment_ids(storage) == ["a", "b", "c", "a"]


def test_extract_filtered_by_kind() -> None:
    storage = "<file-uuid>a</file-uuid>\n<image-uuid>b</image-uuid>"
    codec = MessageContentCodec()
    assert codec.extract_attachment_ids(storage, kinds=[MarkerKind.FILE]) == ["a"]
    assert codec.extract_attachment_ids(storage, kinds=[MarkerKind.IMAGE]) == ["b"]


def test_codec_limited_to_file_markers() -> None:
    codec = MessageContentCodec(kinds=(MarkerKind.FILE,))
    storage = "text\n<file-uuid>a</file-uuid>\n<image-uuid>b</image-uuid>"
    assert codec.extract_attachment_ids(storage) == ["a"]
    assert codec.strip_markers(storage) == "text\n<image-uuid>b</image-uuid>"


def test_extraction_is_syntactic() -> None:
    assert MessageContentCodec().extract_attachment_ids("<file-uuid>not-a-real-id</file-uuid>") == ["not-a-real-id"]


def test_mismatched_tags_are_not_markers() -> None:
    assert MessageContentCodec().extract_attachment_ids("<file-uuid>a</image-uuid>") == []


# ---------------------------------------------------------------------------
# Stripping
# ---------------------------------------------------------------------------

def test_strip_marker_lines() -> None:
    storage = "Please see\n<file-uuid>a</file-uuid>\nthanks"
    assert MessageContentCodec().strip_markers(storage) == "Please see\nthanks"


def test_strip_inline_marker_collapses_spaces() -> None:
    assert MessageContentCodec().strip_markers("see <file-uuid>a</file-uuid> now") == "see now"


def test_strip_preserves_untouched_spacing() -> None:
    storage = "  indented  text\n\n<file-uuid>a</file-uuid>\nnext   line"
    assert MessageContentCodec().strip_markers(storage) == "indented  text\n\nnext   line"


def test_strip_markers_only() -> None:
    assert MessageContentCodec().strip_markers("<file-uuid>a</file-uuid>\n<image-uuid>b</image-uuid>") == ""


def test_strip_adjacent_inline_markers() -> None:
    codec = MessageContentCodec()
    assert codec.strip_markers("a <file-uuid>1</file-uuid> <file-uuid>2</file-uuid> b") == "a b"
    assert codec.strip_markers("a<image-uuid>1</image-uuid>\t<file-uuid>2</file-uuid>b") == "a b"


# ---------------------------------------------------------------------------
# Round trip
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "parts",
    [
        [TextPart("hello"), AttachmentPart("A1"), TextPart("world")],
        [AttachmentPart("A1"), AttachmentPart("A1"), TextPart("dup ids")],
        [TextPart("multi\nline\n\ntext"), AttachmentPart("I1", MarkerKind.IMAGE), AttachmentPart("F2")],
        [TextPart(""), AttachmentPart("A1")],
        [TextPart("  padded  "), AttachmentPart("A1"), TextPart(""), TextPart("tail\n")],
        [TextPart("only text")],
        [],
    ],
)
def test_round_trip(parts: list) -> None:
    codec = MessageContentCodec()
    storage = codec.to_storage_string(parts)

    ids = [p.attachment_id for p in parts if isinstance(p, AttachmentPart)]
    texts = [p.text for p in parts if isinstance(p, TextPart)]

    assert codec.extract_attachment_ids(storage) == ids
    assert codec.strip_markers(storage) == "\n".join(texts).strip()


# ---------------------------------------------------------------------------
# Request content
# ---------------------------------------------------------------------------

def test_request_content_text_then_images() -> None:
    cache = AttachmentCache()
    cache.put(ResolvedAttachment("I1", b"png-bytes", "image/png"))
    cache.put(ResolvedAttachment("F1", b"%PDF", "application/pdf"))

    storage = "Describe this\n<image-uuid>I1</image-uuid>\n<file-uuid>F1</file-uuid>\n<image-uuid>missing</image-uuid>"
    parts = MessageContentCodec().request_content(storage, cache)

    encoded = base64.b64encode(b"png-bytes").decode("ascii")
    assert parts == [
        {"type": "text", "text": "Describe this"},
        {"type": "image_url", "image_url": f"data:image/png;base64,{encoded}"},
    ]


def test_request_content_without_text() -> None:
    cache = AttachmentCache()
    cache.put(ResolvedAttachment("I1", b"x", "image/jpeg"))
    parts = MessageContentCodec().request_content("<image-uuid>I1</image-uuid>", cache)
    assert [p["type"] for p in parts] == ["image_url"]


# ---------------------------------------------------------------------------
# API boundary
# ---------------------------------------------------------------------------

def test_none_input_fails_fast() -> None:
    codec = MessageContentCodec()
    with pytest.raises(TypeError):
        codec.extract_attachment_ids(None)  # type: ignore[arg-type]
    with pytest.raises(TypeError):
        codec.strip_markers(None)  # type: ignore[arg-type]
    with pytest.raises(TypeError):
        codec.to_storage_string(None)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Request messages
# ---------------------------------------------------------------------------

def _history_chat() -> Chat:
    return Chat(
        system_message="Be kind",
        messages=[
            ChatMessage("second", own=False, timestamp=datetime(2025, 1, 1, 10, 2)),
            ChatMessage("first", own=True, timestamp=datetime(2025, 1, 1, 10, 1)),
            ChatMessage("third", own=True, timestamp=datetime(2025, 1, 1, 10, 3)),
        ],
    )


def test_request_messages_window_in_timestamp_order() -> None:
    messages = build_request_messages(_history_chat(), "next", context_size=2)
    assert messages == [
        {"role": "system", "content": "Be kind"},
        {"role": "assistant", "content": "second"},
        {"role": "user", "content": "third"},
        {"role": "user", "content": "next"},
    ]


def test_request_messages_system_as_user() -> None:
    messages = build_request_messages(_history_chat(), None, context_size=0, system_as_user=True)
    assert messages == [{"role": "user", "content": "Take this message as the system message: Be kind"}]


def test_request_messages_skip_user_message_already_in_history() -> None:
    messages = build_request_messages(_history_chat(), "third", context_size=3)
    assert [m["content"] for m in messages] == ["Be kind", "first", "second", "third"]


def test_request_messages_window_larger_than_history() -> None:
    messages = build_request_messages(_history_chat(), None, context_size=10)
    assert len(messages) == 4


def test_request_messages_multi_part_for_attachments() -> None:
    cache = AttachmentCache()
    cache.put(ResolvedAttachment("I1", b"abc", "image/png"))

    messages = build_request_messages(
        Chat(system_message="sys"), "Look\n<image-uuid>I1</image-uuid>", context_size=5, lookup=cache
    )

    assert messages[-1] == {
        "role": "user",
        "content": [
            {"type": "text", "text": "Look"},
            {"type": "image_url", "image_url": "data:image/png;base64,YWJj"},
        ],
    }


def test_request_messages_file_marker_without_lookup() -> None:
    messages = build_request_messages(Chat(), "Read <file-uuid>F1</file-uuid>", context_size=5)
    assert messages[-1] == {"role": "user", "content": [{"type": "text", "text": "Read"}]}


def test_request_messages_rejects_negative_window() -> None:
    with pytest.raises(ValueError):
        build_request_messages(Chat(), "hi", context_size=-1)
