"""Render a chat transcript into a self-contained HTML page."""

from __future__ import annotations

import html
import re
from dataclasses import asdict, dataclass
from pathlib import Path

from jinja2 import Environment, FileSystemLoader

from chatblocks.parser.base import (
    CodeBlock,
    ContentElement,
    FormulaBlock,
    ImageBlock,
    TableBlock,
    TextBlock,
    ThinkingBlock,
)
from chatblocks.parser.stream_parser import StreamingMessageParser
from chatblocks.transcript import Chat


@dataclass(slots=True)
class RenderedMessage:
    role: str
    own: bool
    timestamp: str
    anchor: str
    html: str


class HTMLRenderer:
    """Render parsed chat messages into the transcript template."""

    def __init__(self, template_path: Path | None = None) -> None:
        if template_path is None:
            template_path = Path(__file__).resolve().parent.parent / "template" / "transcript.html"

        loader = FileSystemLoader(str(template_path.parent))
        self._env = Environment(loader=loader, autoescape=True, trim_blocks=True, lstrip_blocks=True)
        self._template_name = template_path.name

    def render(
        self,
        chat: Chat,
        *,
        parser: StreamingMessageParser | None = None,
        title_override: str | None = None,
        dark_mode: bool = False,
    ) -> str:
        parser = parser or StreamingMessageParser()
        page_title = title_override or chat.name or "Untitled"
        assistant = chat.persona or "Assistant"

        messages = [
            RenderedMessage(
                role="You" if message.own else assistant,
                own=message.own,
                timestamp=message.timestamp.isoformat(timespec="minutes") if message.timestamp else "",
                anchor=f"m-{idx + 1}",
                html=self.render_elements(parser.parse(message.body)),
            )
            for idx, message in enumerate(chat.messages)
        ]

        template = self._env.get_template(self._template_name)
        return template.render(
            page_title=page_title,
            persona=chat.persona or "Default",
            created=chat.created.isoformat(timespec="minutes") if chat.created else "",
            system_message=chat.system_message,
            messages=[asdict(m) for m in messages],
            dark_mode=dark_mode,
        )

    def render_elements(self, elements: list[ContentElement]) -> str:
        return "\n".join(part for part in (self._render_block(element) for element in elements) if part)

    def _render_block(self, block: ContentElement) -> str:
        if isinstance(block, TextBlock):
            paragraphs = [p for p in re.split(r"\n\s*\n", block.content) if p.strip()]
            return "\n".join(
                f'<div class="chat-paragraph">{self._render_paragraph_text(p.strip())}</div>' for p in paragraphs
            )

        if isinstance(block, ThinkingBlock):
            open_attr = " open" if block.expanded else ""
            body = self._render_paragraph_text(block.content)
            return f'<details class="chat-thinking"{open_attr}><summary>Thinking</summary><div>{body}</div></details>'

        if isinstance(block, CodeBlock):
            return self._render_code(block)

        if isinstance(block, TableBlock):
            return self._render_table(block)

        if isinstance(block, FormulaBlock):
            return f'<pre class="chat-formula" data-display="true"><code>{html.escape(block.latex)}</code></pre>'

        if isinstance(block, ImageBlock):
            alt = html.escape(block.attachment.filename or block.attachment_id)
            return (
                '<div class="chat-image-wrapper">'
                f'<img src="{block.attachment.data_uri()}" alt="{alt}" loading="lazy" class="chat-image" />'
                "</div>"
            )

        return ""

    def _render_paragraph_text(self, text: str) -> str:
        math_chunks: list[str] = []

        def stash_math(match: re.Match[str]) -> str:
            math_chunks.append(match.group(1).strip())
            return f"@@MATH_{len(math_chunks)-1}@@"

        text_with_math_tokens = re.sub(r"\$([^$\n]+)\$", stash_math, text)
        escaped = html.escape(text_with_math_tokens).replace("\n", "<br />")

        for idx, latex in enumerate(math_chunks):
            token = f"@@MATH_{idx}@@"
            fragment = '<code class="chat-math-inline">' + html.escape(latex) + "</code>"
            escaped = escaped.replace(token, fragment)

        return escaped

    def _render_code(self, block: CodeBlock) -> str:
        lang_class = f' class="language-{html.escape(block.language)}"' if block.language else ""
        padding = f' style="padding-left: {block.indent}ch"' if block.indent else ""
        label = f'<span class="chat-code-lang">{html.escape(block.language)}</span>' if block.language else ""
        return f'<div class="chat-code"{padding}>{label}<pre><code{lang_class}>{html.escape(block.code)}</code></pre></div>'

    def _render_table(self, block: TableBlock) -> str:
        width = max([len(block.header), *(len(row) for row in block.rows)], default=0)

        head_html = ""
        if block.header:
            head_cells = "".join(f"<th>{html.escape(cell)}</th>" for cell in _pad(block.header, width))
            head_html = f"<thead><tr>{head_cells}</tr></thead>"

        row_html = ""
        if block.rows:
            rows = []
            for row in block.rows:
                cells = "".join(f"<td>{html.escape(cell)}</td>" for cell in _pad(row, width))
                rows.append(f"<tr>{cells}</tr>")
            row_html = "<tbody>" + "".join(rows) + "</tbody>"

        return f'<div class="chat-table-wrap"><table class="chat-table">{head_html}{row_html}</table></div>'


def _pad(cells: list[str], width: int) -> list[str]:
    # Ragged rows are padded for display only; the parsed table is untouched.
    return cells + [""] * (width - len(cells))
