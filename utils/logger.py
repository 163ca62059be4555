"""Logging setup for the CLI and run summaries."""

from __future__ import annotations

import logging
import sys
from typing import Any, TextIO

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
NOISY_LOGGERS = ("urllib3", "requests")


def resolve_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    value = getattr(logging, str(level).strip().upper(), None)
    return value if isinstance(value, int) else logging.INFO


def setup_logging(level: str | int = "INFO", format_string: str = DEFAULT_FORMAT, stream: TextIO | None = None) -> int:
    """
    Replace root handlers with one stream handler; returns the resolved level.
    HTTP client loggers stay at WARNING unless level is DEBUG.
    """
    resolved = resolve_level(level)
    logging.basicConfig(
        level=resolved,
        format=format_string,
        datefmt="%Y-%m-%dT%H:%M:%S",
        stream=stream or sys.stdout,
        force=True,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(resolved if resolved <= logging.DEBUG else logging.WARNING)
    return resolved


def log_structured(logger: logging.Logger, level: int, msg: str, **fields: Any) -> None:
    """
    Log msg with fields both as record extras (for JSON formatters) and as
    trailing key=value pairs (for the plain format).
    """
    if not fields:
        logger.log(level, msg)
        return
    logger.log(level, "%s %s", msg, " ".join(f"{k}={v}" for k, v in fields.items()), extra=fields)
