"""Line classification for the message parser."""

from __future__ import annotations

import re

from .base import BlockType

THINK_OPEN = "<think>"
THINK_CLOSE = "</think>"
CODE_FENCE = "```"
FORMULA_OPEN = "\\["
FORMULA_CLOSE = "\\]"
IMAGE_OPEN = "<image-uuid>"
IMAGE_CLOSE = "</image-uuid>"

_CELL_SPLIT_RE = re.compile(r"(?<!\\)\|")


def classify(line: str) -> BlockType:
    """Map one line to a block tag; first matching rule wins."""
    if line is None:
        raise TypeError("classify() requires a string line, got None")

    trimmed = line.strip()

    if trimmed.startswith(THINK_OPEN):
        return BlockType.THINKING
    if trimmed.startswith(CODE_FENCE):
        return BlockType.CODE_BLOCK
    if trimmed.startswith("|"):
        return BlockType.TABLE
    if trimmed.startswith(FORMULA_OPEN):
        if trimmed.replace(" ", "") == FORMULA_OPEN:
            return BlockType.FORMULA_BLOCK
        return BlockType.FORMULA_LINE
    if trimmed.startswith(FORMULA_CLOSE):
        return BlockType.FORMULA_LINE
    if trimmed.startswith(IMAGE_OPEN):
        return BlockType.IMAGE_UUID
    return BlockType.TEXT


def split_table_row(line: str) -> list[str]:
    """Split a pipe-table row into stripped cells.

    One leading and one trailing pipe are dropped, interior empty cells are
    kept and ``\\|`` stays a literal pipe inside a cell.
    """
    row = line.strip()
    if row.startswith("|"):
        row = row[1:]
    if row.endswith("|") and not row.endswith("\\|"):
        row = row[:-1]
    return [cell.strip().replace("\\|", "|") for cell in _CELL_SPLIT_RE.split(row)]


def is_delimiter_row(cells: list[str]) -> bool:
    """True for header separator rows such as ``|---|:-:|``."""
    filled = [cell for cell in cells if cell]
    if not filled:
        return False
    return all(set(cell) <= {"-", ":"} for cell in filled)
