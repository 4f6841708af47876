"""Plain-text share format for chats."""

from __future__ import annotations

from datetime import datetime

from chatblocks.transcript import Chat, ChatMessage

SHARE_FOOTER = "--- Shared from chatblocks ---"


def _short(ts: datetime | None) -> str:
    return ts.strftime("%Y-%m-%d %H:%M") if ts else "-"


def format_message(message: ChatMessage, assistant_name: str = "Assistant") -> str:
    role = "You" if message.own else (assistant_name or "Assistant")
    return f"[{role} - {_short(message.timestamp)}]\n{message.body}\n"


def format_chat(chat: Chat) -> str:
    lines = [
        f"Chat: {chat.name or 'Untitled'}",
        f"Created: {_short(chat.created)}",
        f"Persona: {chat.persona or 'Default'}",
        "",
    ]
    result = "\n".join(lines) + "\n"

    if chat.system_message:
        result += f"[System Message]\n{chat.system_message}\n\n"

    for message in chat.messages:
        result += format_message(message, assistant_name=chat.persona)

    return result + "\n" + SHARE_FOOTER
