"""Streaming chat message parser.

The parser turns the whole current text of a (possibly still streaming)
model response into an ordered list of content elements. It keeps no state
between calls: every update re-parses the full buffer, since text that
arrives later can change how earlier lines read (a closing fence turns an
unterminated code block into a terminated one).

One parse is a reduction over lines with a small state machine::

    DEFAULT --table row--> IN_TABLE --other line--> DEFAULT (+ table)
    DEFAULT --```-------> IN_CODE  --```--------> DEFAULT (+ code)
    DEFAULT --<think>---> IN_THINKING --</think>-> DEFAULT (+ thinking)
    DEFAULT --\\[--------> IN_FORMULA --\\]-------> DEFAULT (+ formula)

Leaving DEFAULT always emits the pending text run first, so elements come
out in input order.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from enum import Enum

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
)
from .classifier import (
    FORMULA_CLOSE,
    FORMULA_OPEN,
    IMAGE_CLOSE,
    THINK_CLOSE,
    THINK_OPEN,
    classify,
    is_delimiter_row,
    split_table_row,
)

logger = logging.getLogger(__name__)

_IMAGE_REF_RE = re.compile(r"<image-uuid>(.*?)</image-uuid>")


class ParserState(Enum):
    DEFAULT = "default"
    IN_TABLE = "in_table"
    IN_CODE = "in_code"
    IN_THINKING = "in_thinking"
    IN_FORMULA = "in_formula"


Transition = tuple[ParserState, list[ContentElement]]


class StreamingMessageParser:
    """Parse raw model output into content elements.

    ``attachments`` is a synchronous lookup (usually an
    :class:`~chatblocks.attachments.AttachmentCache` primed before parsing)
    used to turn ``<image-uuid>`` lines into image elements.
    """

    def __init__(self, attachments: AttachmentLookup | None = None) -> None:
        self.attachments = attachments

    def parse(self, text: str) -> list[ContentElement]:
        if text is None:
            raise TypeError("parse() requires a string, got None")
        return self.parse_lines(text.split("\n"))

    def parse_lines(self, lines: Iterable[str]) -> list[ContentElement]:
        if lines is None:
            raise TypeError("parse_lines() requires an iterable of lines, got None")
        run = _ParseRun(self.attachments)
        for line in lines:
            run.feed(line)
        return run.finish()


class _ParseRun:
    """Accumulators for a single parse call."""

    def __init__(self, attachments: AttachmentLookup | None) -> None:
        self.attachments = attachments
        self.state = ParserState.DEFAULT
        self.elements: list[ContentElement] = []
        self.all_lines: list[str] = []

        self.text_lines: list[str] = []
        self.table_header: list[str] | None = None
        self.table_rows: list[list[str]] = []
        self.code_lines: list[str] = []
        self.code_language = ""
        self.code_indent: int | None = None
        self.thinking_lines: list[str] = []
        self.formula_lines: list[str] = []

        self._transitions: dict[ParserState, Callable[[str, BlockType], Transition]] = {
            ParserState.DEFAULT: self._on_default,
            ParserState.IN_TABLE: self._on_table,
            ParserState.IN_CODE: self._on_code,
            ParserState.IN_THINKING: self._on_thinking,
            ParserState.IN_FORMULA: self._on_formula,
        }

    def feed(self, line: str) -> None:
        self.all_lines.append(line)
        self.state, emitted = self._transitions[self.state](line, classify(line))
        self.elements.extend(emitted)

    def finish(self) -> list[ContentElement]:
        self.elements.extend(self._flush_text())
        if self.state is ParserState.IN_CODE:
            logger.debug("Unterminated code block flushed at end of input")
            self.elements.append(self._take_code())
        if self.state is ParserState.IN_TABLE:
            self.elements.append(self._take_table())
        if self.state is ParserState.IN_THINKING:
            logger.debug("Unterminated thinking block flushed at end of input")
            self.elements.append(self._take_thinking())
        if self.state is ParserState.IN_FORMULA:
            logger.debug("Unterminated formula block flushed at end of input")
            self.elements.append(self._take_formula())
        self.state = ParserState.DEFAULT

        if not self.elements and self.all_lines:
            # Blank-only input still renders as the text it is.
            return [TextBlock("\n".join(self.all_lines))]
        return self.elements

    # -- transitions ---------------------------------------------------------

    def _on_default(self, line: str, kind: BlockType) -> Transition:
        if kind is BlockType.TEXT:
            self.text_lines.append(line)
            return ParserState.DEFAULT, []

        if kind is BlockType.IMAGE_UUID:
            image = self._resolve_image(line)
            if image is None:
                self.text_lines.append(line)
                return ParserState.DEFAULT, []
            emitted = [*self._flush_text(), image]
            self._continue_text(line.split(IMAGE_CLOSE, 1)[1])
            return ParserState.DEFAULT, emitted

        if kind is BlockType.FORMULA_LINE and not line.strip().startswith(FORMULA_OPEN):
            # A closing delimiter with no open block.
            self.text_lines.append(line)
            return ParserState.DEFAULT, []

        emitted = self._flush_text()

        if kind is BlockType.TABLE:
            self._add_table_row(line)
            return ParserState.IN_TABLE, emitted

        if kind is BlockType.CODE_BLOCK:
            self.code_language = line.strip().lstrip("`").strip()
            self.code_lines = []
            self.code_indent = None
            return ParserState.IN_CODE, emitted

        if kind is BlockType.THINKING:
            rest = line.split(THINK_OPEN, 1)[1]
            if THINK_CLOSE in rest:
                inner, after = rest.split(THINK_CLOSE, 1)
                self.thinking_lines = [inner]
                emitted.append(self._take_thinking())
                self._continue_text(after)
                return ParserState.DEFAULT, emitted
            self.thinking_lines = [rest] if rest.strip() else []
            return ParserState.IN_THINKING, emitted

        if kind is BlockType.FORMULA_BLOCK:
            self.formula_lines = []
            return ParserState.IN_FORMULA, emitted

        # Single-line formula: content on the opening line closes it at once.
        latex = line.strip()[len(FORMULA_OPEN):]
        after = ""
        if FORMULA_CLOSE in latex:
            latex, after = latex.split(FORMULA_CLOSE, 1)
        emitted.append(FormulaBlock(latex.strip()))
        self._continue_text(after)
        return ParserState.DEFAULT, emitted

    def _on_table(self, line: str, kind: BlockType) -> Transition:
        if kind is BlockType.TABLE:
            self._add_table_row(line)
            return ParserState.IN_TABLE, []
        table = self._take_table()
        state, emitted = self._on_default(line, kind)
        return state, [table, *emitted]

    def _on_code(self, line: str, kind: BlockType) -> Transition:
        if kind is BlockType.CODE_BLOCK:
            return ParserState.DEFAULT, [self._take_code()]
        self._add_code_line(line)
        return ParserState.IN_CODE, []

    def _on_thinking(self, line: str, kind: BlockType) -> Transition:
        if THINK_CLOSE not in line:
            self.thinking_lines.append(line)
            return ParserState.IN_THINKING, []
        before, after = line.split(THINK_CLOSE, 1)
        if before.strip():
            self.thinking_lines.append(before)
        thinking = self._take_thinking()
        self._continue_text(after)
        return ParserState.DEFAULT, [thinking]

    def _on_formula(self, line: str, kind: BlockType) -> Transition:
        if FORMULA_CLOSE not in line:
            self.formula_lines.append(line)
            return ParserState.IN_FORMULA, []
        before, after = line.split(FORMULA_CLOSE, 1)
        if before.strip():
            self.formula_lines.append(before)
        formula = self._take_formula()
        self._continue_text(after)
        return ParserState.DEFAULT, [formula]

    # -- accumulators --------------------------------------------------------

    def _flush_text(self) -> list[ContentElement]:
        lines, self.text_lines = self.text_lines, []
        if not lines:
            return []
        content = "\n".join(lines)
        if not content.strip():
            return []
        return [TextBlock(content)]

    def _continue_text(self, remainder: str) -> None:
        remainder = remainder.strip()
        if remainder:
            self.text_lines.append(remainder)

    def _add_table_row(self, line: str) -> None:
        cells = split_table_row(line)
        if is_delimiter_row(cells):
            return
        if self.table_header is None:
            self.table_header = cells
        else:
            self.table_rows.append(cells)

    def _take_table(self) -> TableBlock:
        table = TableBlock(header=self.table_header or [], rows=self.table_rows)
        self.table_header = None
        self.table_rows = []
        return table

    def _add_code_line(self, line: str) -> None:
        body = line.lstrip()
        leading = len(line) - len(body)
        if self.code_indent is None:
            if not body:
                self.code_lines.append(line)
                return
            self.code_indent = leading
        self.code_lines.append(line[min(leading, self.code_indent):])

    def _take_code(self) -> CodeBlock:
        code = CodeBlock(
            code="\n".join(self.code_lines),
            language=self.code_language,
            indent=self.code_indent or 0,
        )
        self.code_lines = []
        self.code_language = ""
        self.code_indent = None
        return code

    def _take_thinking(self) -> ThinkingBlock:
        content = "\n".join(self.thinking_lines).replace(THINK_OPEN, "").replace(THINK_CLOSE, "")
        self.thinking_lines = []
        return ThinkingBlock(content.strip())

    def _take_formula(self) -> FormulaBlock:
        latex = "\n".join(self.formula_lines).strip()
        self.formula_lines = []
        return FormulaBlock(latex)

    def _resolve_image(self, line: str) -> ImageBlock | None:
        match = _IMAGE_REF_RE.search(line)
        if match is None:
            return None
        attachment_id = match.group(1).strip()
        if not attachment_id or self.attachments is None:
            logger.debug("Image reference %r left as text (no attachment cache)", attachment_id)
            return None
        attachment = self.attachments.lookup(attachment_id)
        if attachment is None or not attachment.is_image:
            logger.debug("Image reference %r left as text (unresolved)", attachment_id)
            return None
        return ImageBlock(attachment_id=attachment_id, attachment=attachment)
