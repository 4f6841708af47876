"""Runtime settings resolved from environment variables."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

DEFAULT_RENDER_INTERVAL = 0.2
DEFAULT_PREVIEW_LIMIT = 25_000
DEFAULT_LOG_LEVEL = "WARNING"


class ConfigError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class Settings:
    render_interval: float = DEFAULT_RENDER_INTERVAL
    preview_limit: int = DEFAULT_PREVIEW_LIMIT
    attachments_dir: Path | None = None
    log_level: str = DEFAULT_LOG_LEVEL


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    env = os.environ if environ is None else environ

    render_interval = _parse_float(env, "CHATBLOCKS_RENDER_INTERVAL", DEFAULT_RENDER_INTERVAL)
    if render_interval < 0:
        raise ConfigError(f"CHATBLOCKS_RENDER_INTERVAL must be >= 0, got {render_interval}")

    preview_limit = _parse_int(env, "CHATBLOCKS_PREVIEW_LIMIT", DEFAULT_PREVIEW_LIMIT)
    if preview_limit <= 0:
        raise ConfigError(f"CHATBLOCKS_PREVIEW_LIMIT must be > 0, got {preview_limit}")

    raw_dir = env.get("CHATBLOCKS_ATTACHMENTS_DIR", "").strip()
    attachments_dir = Path(raw_dir).expanduser() if raw_dir else None

    log_level = env.get("CHATBLOCKS_LOG_LEVEL", DEFAULT_LOG_LEVEL).strip().upper() or DEFAULT_LOG_LEVEL
    if not isinstance(logging.getLevelName(log_level), int):
        raise ConfigError(f"CHATBLOCKS_LOG_LEVEL is not a logging level: {log_level!r}")

    return Settings(
        render_interval=render_interval,
        preview_limit=preview_limit,
        attachments_dir=attachments_dir,
        log_level=log_level,
    )


def _parse_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from exc


def _parse_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from exc
