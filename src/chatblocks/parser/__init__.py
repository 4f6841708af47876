"""Parser package."""

from .base import (
    AttachmentLookup,
    BlockType,
    CodeBlock,
    ContentElement,
    FormulaBlock,
    ImageBlock,
    TableBlock,
    TextBlock,
    ThinkingBlock,
    element_to_dict,
)
from .classifier import classify
from .stream_parser import StreamingMessageParser

__all__ = [
    "AttachmentLookup",
    "BlockType",
    "CodeBlock",
    "ContentElement",
    "FormulaBlock",
    "ImageBlock",
    "TableBlock",
    "TextBlock",
    "ThinkingBlock",
    "element_to_dict",
    "classify",
    "StreamingMessageParser",
]
