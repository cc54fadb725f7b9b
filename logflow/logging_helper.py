"""Logging setup and terminal formatting helpers."""

from __future__ import annotations

import json
import logging
import os
from typing import Any

ANSI_COLORS = {
    "reset": "\x1b[0m",
    "blue": "\x1b[34m",
    "green": "\x1b[32m",
    "yellow": "\x1b[33m",
    "cyan": "\x1b[36m",
    "red": "\x1b[31m",
}

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

LEVEL_COLORS = {
    "ERROR": "red",
    "WARN": "yellow",
    "INFO": "blue",
    "DEBUG": "cyan",
}


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once for CLI and web entry points."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def colorize(text: str, color: str) -> str:
    if os.getenv("NO_COLOR"):
        return text
    return f"{ANSI_COLORS[color]}{text}{ANSI_COLORS['reset']}"


def json_dumps_readable(obj: Any) -> str:
    """Convert object to JSON string with actual newlines for readability."""
    return json.dumps(obj, ensure_ascii=False, indent=2, default=str).replace("\\n", "\n")
