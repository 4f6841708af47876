"""chatblocks CLI entrypoint."""

from __future__ import annotations

import json
from pathlib import Path

import click

from chatblocks.attachments import AttachmentCache, DirectoryAttachmentStore
from chatblocks.config import ConfigError, Settings, load_settings
from chatblocks.logging_setup import configure as configure_logging
from chatblocks.parser.base import element_to_dict
from chatblocks.parser.stream_parser import StreamingMessageParser
from chatblocks.renderer.html_renderer import HTMLRenderer
from chatblocks.renderer.text_renderer import format_chat
from chatblocks.streaming import StreamRenderSession, render_message
from chatblocks.transcript import load_chat

_INPUT = click.Path(exists=True, dir_okay=False, path_type=Path)
_DIR = click.Path(exists=True, file_okay=False, path_type=Path)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--log-level", type=str, default=None, help="Log level (default from CHATBLOCKS_LOG_LEVEL)")
@click.pass_context
def main(ctx: click.Context, log_level: str | None) -> None:
    """Parse streamed chat model output into structured content blocks."""
    try:
        settings = load_settings()
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    configure_logging(log_level or settings.log_level)
    ctx.obj = settings


@main.command("parse")
@click.argument("input_path", type=_INPUT)
@click.option("--attachments", "attachments_dir", type=_DIR, default=None, help="Directory of <id>.<ext> attachments")
@click.option("--full/--preview", default=True, show_default=True, help="Parse the whole message or a truncated preview")
@click.option("--indent", type=int, default=2, show_default=True, help="JSON indentation")
@click.pass_obj
def parse_command(
    settings: Settings,
    input_path: Path,
    attachments_dir: Path | None,
    full: bool,
    indent: int,
) -> None:
    """Parse a stored message body and print its elements as JSON."""
    text = input_path.read_text(encoding="utf-8", errors="replace")
    parser = _build_parser(attachments_dir or settings.attachments_dir, text)
    rendered = render_message(text, parser, show_full=full, preview_limit=settings.preview_limit)

    payload = {
        "truncated": rendered.truncated,
        "elements": [element_to_dict(element) for element in rendered.elements],
    }
    click.echo(json.dumps(payload, indent=indent, ensure_ascii=False))


@main.command("replay")
@click.argument("input_path", type=_INPUT)
@click.option("--chunk-size", type=click.IntRange(min=1), default=16, show_default=True, help="Characters per chunk")
@click.option("--interval", type=click.FloatRange(min=0), default=None, help="Minimum seconds between re-parses")
@click.option("--attachments", "attachments_dir", type=_DIR, default=None, help="Directory of <id>.<ext> attachments")
@click.pass_obj
def replay_command(
    settings: Settings,
    input_path: Path,
    chunk_size: int,
    interval: float | None,
    attachments_dir: Path | None,
) -> None:
    """Replay a message as a chunked stream and show each re-parse."""
    text = input_path.read_text(encoding="utf-8", errors="replace")
    parser = _build_parser(attachments_dir or settings.attachments_dir, text)
    session = StreamRenderSession(
        parser,
        min_interval=settings.render_interval if interval is None else interval,
        preview_limit=settings.preview_limit,
    )

    def show(elements: list) -> None:
        tags = [element_to_dict(element)["type"] for element in elements]
        click.echo(f"update {session.reparse_count}: {' '.join(tags) or '(empty)'}")

    chunks = (text[i : i + chunk_size] for i in range(0, len(text), chunk_size))
    final = session.run(chunks, on_update=show)
    click.echo(json.dumps([element_to_dict(element) for element in final], indent=2, ensure_ascii=False))


@main.command("export")
@click.argument("input_path", type=_INPUT)
@click.option("--output", "-o", type=click.Path(path_type=Path), required=True, help="Output file path")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["html", "text"], case_sensitive=False),
    default="html",
    show_default=True,
    help="Export format",
)
@click.option("--title", type=str, default=None, help="Override chat title")
@click.option("--dark-mode", is_flag=True, help="Enable dark mode stylesheet")
@click.option("--attachments", "attachments_dir", type=_DIR, default=None, help="Directory of <id>.<ext> attachments")
@click.pass_obj
def export_command(
    settings: Settings,
    input_path: Path,
    output: Path,
    output_format: str,
    title: str | None,
    dark_mode: bool,
    attachments_dir: Path | None,
) -> None:
    """Export a chat JSON file as a shareable HTML page or text file."""
    try:
        chat = load_chat(input_path)
    except ValueError as exc:
        raise click.ClickException(f"Invalid chat file {input_path.name}: {exc}") from exc

    if output_format.lower() == "text":
        rendered = format_chat(chat)
    else:
        bodies = "\n".join(message.body for message in chat.messages)
        parser = _build_parser(attachments_dir or settings.attachments_dir, bodies)
        rendered = HTMLRenderer().render(chat, parser=parser, title_override=title, dark_mode=dark_mode)

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(rendered, encoding="utf-8")

    click.echo(f"Rendered: {output}")


def _build_parser(attachments_dir: Path | None, text: str) -> StreamingMessageParser:
    cache = AttachmentCache()
    if attachments_dir is not None:
        cache.prime_from_text(DirectoryAttachmentStore(attachments_dir), text)
    return StreamingMessageParser(attachments=cache)


if __name__ == "__main__":  # pragma: no cover
    main()
