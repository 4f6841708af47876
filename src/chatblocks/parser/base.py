"""Core content model produced by the message parser."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from chatblocks.attachments import ResolvedAttachment


class BlockType(str, Enum):
    """Tag assigned to a single line by the classifier."""

    TEXT = "text"
    TABLE = "table"
    CODE_BLOCK = "code_block"
    FORMULA_BLOCK = "formula_block"
    FORMULA_LINE = "formula_line"
    THINKING = "thinking"
    IMAGE_UUID = "image_uuid"


@dataclass(slots=True)
class TextBlock:
    content: str


@dataclass(slots=True)
class ThinkingBlock:
    content: str
    expanded: bool = False


@dataclass(slots=True)
class TableBlock:
    header: list[str] = field(default_factory=list)
    rows: list[list[str]] = field(default_factory=list)


@dataclass(slots=True)
class CodeBlock:
    code: str
    language: str = ""
    indent: int = 0


@dataclass(slots=True)
class FormulaBlock:
    latex: str


@dataclass(slots=True)
class ImageBlock:
    attachment_id: str
    attachment: ResolvedAttachment


ContentElement = TextBlock | ThinkingBlock | TableBlock | CodeBlock | FormulaBlock | ImageBlock


class AttachmentLookup(Protocol):
    def lookup(self, attachment_id: str) -> ResolvedAttachment | None:  # pragma: no cover - structural protocol
        """Return an already-resolved attachment, or None on a cache miss."""


def element_to_dict(element: ContentElement) -> dict[str, Any]:
    """Serialize an element into a JSON-friendly dict tagged with ``type``."""
    if isinstance(element, TextBlock):
        return {"type": "text", "content": element.content}
    if isinstance(element, ThinkingBlock):
        return {"type": "thinking", "content": element.content, "expanded": element.expanded}
    if isinstance(element, TableBlock):
        return {"type": "table", "header": list(element.header), "rows": [list(row) for row in element.rows]}
    if isinstance(element, CodeBlock):
        return {"type": "code", "code": element.code, "language": element.language, "indent": element.indent}
    if isinstance(element, FormulaBlock):
        return {"type": "formula", "latex": element.latex}
    if isinstance(element, ImageBlock):
        return {
            "type": "image",
            "attachment_id": element.attachment_id,
            "media_type": element.attachment.media_type,
            "size": len(element.attachment.data),
        }
    raise TypeError(f"Not a content element: {element!r}")
