"""Logging bootstrap for the chatblocks logger hierarchy.

Library modules only create loggers; handlers are installed here, by the
CLI or by an embedding application that wants chatblocks' records.
"""

from __future__ import annotations

import logging

_CONFIGURED = False


def _parse_level(raw: str | int | None) -> int:
    if isinstance(raw, int):
        return raw
    normalized = str(raw or "WARNING").strip().upper()
    level = logging.getLevelName(normalized)
    return level if isinstance(level, int) else logging.WARNING


def configure(level: str | int | None = None) -> logging.Logger:
    """Attach a stderr handler to the ``chatblocks`` logger.

    Idempotent: later calls only adjust the level.
    """
    global _CONFIGURED
    resolved = _parse_level(level)
    logger = logging.getLogger("chatblocks")
    logger.setLevel(resolved)

    if _CONFIGURED:
        for handler in logger.handlers:
            handler.setLevel(resolved)
        return logger

    handler = logging.StreamHandler()
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter("[%(name)s] %(levelname)s %(message)s"))
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.propagate = False
    logging.captureWarnings(True)

    _CONFIGURED = True
    return logger
