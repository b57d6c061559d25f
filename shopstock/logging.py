"""
Logging setup for shopstock.

The root logger is configured once on import from LOG_LEVEL; modules then use
`get_logger(__name__)`. Ids and free-form strings that come from callers go
through the sanitize helpers before they reach a log line.
"""

import logging
import os
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FORMAT_SIMPLE = "%(levelname)s - %(name)s - %(message)s"

# Supabase, Realtime and Upstash all log every request at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "hpack", "websockets")


def _configure_root_logger() -> None:
    root = logging.getLogger()
    if root.handlers:
        return

    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    root.setLevel(getattr(logging, level_name, logging.INFO))

    handler = logging.StreamHandler(sys.stdout)
    # Vercel adds its own timestamps
    on_vercel = os.environ.get("VERCEL") == "1"
    handler.setFormatter(logging.Formatter(LOG_FORMAT_SIMPLE if on_vercel else LOG_FORMAT))
    root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


_configure_root_logger()


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def _escape_log_injection(value: str) -> str:
    """Escape control characters that could forge log entries (CWE-117)."""
    return (
        value.replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
        .replace("\x00", "")
    )


def sanitize_id_for_logging(id_value: str | None) -> str:
    """First 8 characters of an escaped id, or "N/A"."""
    if not id_value:
        return "N/A"
    return _escape_log_injection(str(id_value))[:8]


def sanitize_string_for_logging(value: str | None, max_length: int = 50) -> str:
    """Escaped string truncated to `max_length` with a trailing ellipsis, or "N/A"."""
    if not value:
        return "N/A"
    safe_value = _escape_log_injection(str(value))
    if len(safe_value) <= max_length:
        return safe_value
    return safe_value[:max_length] + "..."


__all__ = [
    "get_logger",
    "sanitize_id_for_logging",
    "sanitize_string_for_logging",
]
