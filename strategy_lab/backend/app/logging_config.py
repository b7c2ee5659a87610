"""Logging setup for the strategy backend and CLI."""

from __future__ import annotations

import logging
import sys

# Per-keystroke flushes of the editor queues; only interesting when debugging.
EDITOR_CHATTER_LOGGERS = ("strategy_lab.backend.core.persistence.debounce",)


def resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level '{level}'")
    return resolved


def configure_logging(level: int | str = logging.INFO) -> None:
    """Log to stdout; editor queue chatter stays at WARNING unless `level` is DEBUG."""

    resolved = resolve_level(level)
    logging.basicConfig(
        level=resolved,
        format="%(asctime)s [%(levelname)s] %(name)s %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    for name in EDITOR_CHATTER_LOGGERS:
        logging.getLogger(name).setLevel(resolved if resolved <= logging.DEBUG else logging.WARNING)


__all__ = ["EDITOR_CHATTER_LOGGERS", "configure_logging", "resolve_level"]
