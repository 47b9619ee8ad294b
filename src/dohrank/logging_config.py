"""
Logging setup for DoH Rank.

Configures the root logger with bracketed lowercase level tags and
UTC timestamps, e.g. ``2026-10-19T08:00:00Z [warn] dohrank.transports: ...``.
"""

import logging
import sys
from datetime import datetime, timezone
from typing import Optional

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "crit": logging.CRITICAL,
    "critical": logging.CRITICAL,
}

LEVEL_NAMES = ["debug", "info", "warning", "error", "critical"]


class BracketLevelFormatter(logging.Formatter):
    """Formatter that adds a bracketed level tag and a UTC timestamp."""

    _TAGS = {
        logging.DEBUG: "[debug]",
        logging.INFO: "[info]",
        logging.WARNING: "[warn]",
        logging.ERROR: "[error]",
        logging.CRITICAL: "[crit]",
    }

    def formatTime(self, record, datefmt=None):
        return datetime.fromtimestamp(record.created, timezone.utc).strftime(
            "%Y-%m-%dT%H:%M:%SZ"
        )

    def format(self, record):
        record.level_tag = self._TAGS.get(record.levelno, f"[lvl{record.levelno}]")
        return super().format(record)


def init_logging(level: str = "warning", log_file: Optional[str] = None) -> None:
    """
    Configure the root logger.

    Args:
        level: debug, info, warn(ing), error or crit(ical); unknown
            names fall back to warning
        log_file: Optional path that receives the same records as stderr
    """
    root = logging.getLogger()
    root.setLevel(_LEVELS.get(str(level).lower(), logging.WARNING))

    # Remove existing handlers to avoid duplicates
    for h in list(root.handlers):
        root.removeHandler(h)

    formatter = BracketLevelFormatter(fmt="%(asctime)s %(level_tag)s %(name)s: %(message)s")

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(formatter)
    root.addHandler(stderr_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(root.level, logging.WARNING))
