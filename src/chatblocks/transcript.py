"""Chat transcript model and JSON loading for export."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any


@dataclass(slots=True)
class ChatMessage:
    body: str
    own: bool = False
    timestamp: datetime | None = None


@dataclass(slots=True)
class Chat:
    name: str = ""
    messages: list[ChatMessage] = field(default_factory=list)
    system_message: str = ""
    persona: str = ""
    created: datetime | None = None


def load_chat(path: Path) -> Chat:
    """Load a chat exported as JSON.

    Expected shape::

        {"name": "...", "persona": "...", "system_message": "...",
         "created": "2025-01-01T10:00:00",
         "messages": [{"body": "...", "own": true, "timestamp": "..."}]}
    """
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    return chat_from_dict(raw)


def chat_from_dict(raw: Any) -> Chat:
    if not isinstance(raw, dict):
        raise ValueError("chat JSON must be an object")

    messages_raw = raw.get("messages", [])
    if not isinstance(messages_raw, list):
        raise ValueError("'messages' must be a list")

    messages: list[ChatMessage] = []
    for idx, item in enumerate(messages_raw):
        if not isinstance(item, dict):
            raise ValueError(f"messages[{idx}] must be an object")
        body = item.get("body", "")
        if not isinstance(body, str):
            raise ValueError(f"messages[{idx}].body must be a string")
        own = item.get("own", False)
        if not isinstance(own, bool):
            raise ValueError(f"messages[{idx}].own must be a boolean")
        messages.append(
            ChatMessage(
                body=body,
                own=own,
                timestamp=_parse_timestamp(item.get("timestamp"), f"messages[{idx}].timestamp"),
            )
        )

    return Chat(
        name=str(raw.get("name") or ""),
        messages=messages,
        system_message=str(raw.get("system_message") or ""),
        persona=str(raw.get("persona") or ""),
        created=_parse_timestamp(raw.get("created"), "created"),
    )


def _parse_timestamp(value: Any, field_name: str) -> datetime | None:
    if value in (None, ""):
        return None
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be an ISO-8601 string")
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValueError(f"{field_name} is not an ISO-8601 timestamp: {value!r}") from exc
