"""Logging for Waypoint, stdlib only.

Loggers live under the ``waypoint.`` namespace. ``configure()`` installs a
compact ANSI text handler or a JSON handler on the namespace root, and
``LogContext`` binds key-value pairs (``run_id``, ``agent``) to every record
emitted inside a scope, including records from concurrently running tasks.

Usage::

    from waypoint.log import LogContext, configure, get_logger

    log = get_logger("runner")        # -> waypoint.runner
    configure(level="DEBUG")
    with LogContext(run_id="r-1"):
        log.info("turn started")
"""

from __future__ import annotations

import json
import logging
import os
import sys
import threading
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

_PREFIX = "waypoint"

_bound: ContextVar[dict[str, Any] | None] = ContextVar("waypoint_log_bound", default=None)

_LEVEL_STYLE: dict[int, tuple[str, str]] = {
    logging.DEBUG: ("D", "\033[2m"),
    logging.INFO: ("I", "\033[36m"),
    logging.WARNING: ("W", "\033[33m"),
    logging.ERROR: ("E", "\033[31m"),
    logging.CRITICAL: ("C", "\033[1;31m"),
}
_RESET = "\033[0m"
_DIM = "\033[2m"


def _short_name(name: str) -> str:
    if name.startswith(f"{_PREFIX}."):
        return name[len(_PREFIX) + 1 :]
    return name


class TextFormatter(logging.Formatter):
    """One line per record: time, level letter, logger, bound fields, message."""

    def format(self, record: logging.LogRecord) -> str:
        letter, color = _LEVEL_STYLE.get(record.levelno, ("?", ""))
        ts = self.formatTime(record, "%H:%M:%S")
        bound = _bound.get()
        fields = "".join(f" {k}={v}" for k, v in bound.items()) if bound else ""
        line = (
            f"{_DIM}{ts}{_RESET} {color}{letter} {_short_name(record.name)}{_RESET}"
            f"{fields} ▸ {record.getMessage()}"
        )
        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            line += f"\n{color}{record.exc_text}{_RESET}"
        return line


class JsonFormatter(logging.Formatter):
    """One JSON object per record, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        bound = _bound.get()
        if bound:
            entry.update(bound)
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def get_logger(name: str) -> logging.Logger:
    """Return a stdlib logger under the ``waypoint.`` namespace.

    Names are auto-prefixed; ``__name__`` of Waypoint modules already is.
    """
    if name != _PREFIX and not name.startswith(f"{_PREFIX}."):
        name = f"{_PREFIX}.{name}"
    return logging.getLogger(name)


_lock = threading.Lock()
_configured = False


def _resolve_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    return getattr(logging, level.upper(), logging.WARNING)


def configure(level: str | int = "WARNING", fmt: str = "text", *, force: bool = False) -> None:
    """Attach a stderr handler to the ``waypoint`` logger once.

    Args:
        level: Level name or number.
        fmt: ``"text"`` or ``"json"``.
        force: Replace an existing handler instead of doing nothing.
    """
    global _configured

    with _lock:
        if _configured and not force:
            return
        root = logging.getLogger(_PREFIX)
        root.handlers.clear()
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(JsonFormatter() if fmt == "json" else TextFormatter())
        root.addHandler(handler)
        root.setLevel(_resolve_level(level))
        _configured = True


def reset() -> None:
    """Drop handlers and restore the default level. Used by tests."""
    global _configured
    with _lock:
        _configured = False
        root = logging.getLogger(_PREFIX)
        root.handlers.clear()
        root.setLevel(logging.WARNING)


def configure_from_env() -> None:
    """Honour ``WAYPOINT_DEBUG=1`` and ``WAYPOINT_LOG_LEVEL``.

    Runs at import. Sets the level on the namespace root and, only when one of
    the variables is present, installs the text handler.
    """
    debug = os.environ.get("WAYPOINT_DEBUG") == "1"
    level_name = os.environ.get("WAYPOINT_LOG_LEVEL", "").upper()
    if debug:
        level_name = "DEBUG"
    if level_name not in {"DEBUG", "INFO", "WARNING", "ERROR"}:
        level_name = "WARNING"
    logging.getLogger(_PREFIX).setLevel(level_name)
    if debug or "WAYPOINT_LOG_LEVEL" in os.environ:
        configure(level=level_name)


configure_from_env()


class LogContext:
    """Bind key-value pairs to every log record emitted inside the block.

    Bindings nest and are task-local, so concurrent runs keep their own
    ``run_id``.
    """

    def __init__(self, **bindings: Any) -> None:
        self._bindings = bindings
        self._token: Any = None

    def __enter__(self) -> LogContext:
        merged = dict(_bound.get() or {})
        merged.update(self._bindings)
        self._token = _bound.set(merged)
        return self

    def __exit__(self, *_: object) -> None:
        if self._token is not None:
            _bound.reset(self._token)
            self._token = None
