"""
Structured logging for the cache.

Every record carries the current session id (one per CLI invocation) and
the store being accessed, both held in context variables:

- ``log_context()`` scopes them
- ``JSONFormatter`` writes them as top-level fields of a JSON line
- ``ContextRichHandler`` prefixes console lines with them
- ``ContextLogger`` turns keyword arguments into structured ``extra``

``setup_logging()`` attaches the console handler and, when a log file is
configured, a JSON-lines file handler to the ``cb`` logger.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator

from rich.console import Console
from rich.logging import RichHandler
from rich.text import Text

ROOT_LOGGER = "cb"
NOISY_LOGGERS = ("httpx", "httpcore", "aiosqlite", "asyncio")

_session_id_var: ContextVar[str | None] = ContextVar("session_id", default=None)
_store_var: ContextVar[str | None] = ContextVar("store", default=None)


def get_session_id() -> str | None:
    return _session_id_var.get()


def get_store_context() -> str | None:
    return _store_var.get()


@contextmanager
def log_context(
    session_id: str | None = None,
    store: str | None = None,
) -> Generator[None, None, None]:
    """Set session id and/or store for the duration of the block.

    Arguments left as None keep the enclosing value. Both variables are
    restored on exit.
    """
    session_token = _session_id_var.set(session_id) if session_id is not None else None
    store_token = _store_var.set(store) if store is not None else None
    try:
        yield
    finally:
        if store_token is not None:
            _store_var.reset(store_token)
        if session_token is not None:
            _session_id_var.reset(session_token)


def _context_fields() -> dict[str, str]:
    fields: dict[str, str] = {}
    session_id = get_session_id()
    store = get_store_context()
    if session_id:
        fields["session_id"] = session_id
    if store:
        fields["store"] = store
    return fields


class JSONFormatter(logging.Formatter):
    """One JSON object per line: level, logger, message, context, extra."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context_fields(),
        }

        extra = getattr(record, "extra", None)
        if extra:
            entry["extra"] = extra

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class ContextRichHandler(RichHandler):
    """RichHandler that prefixes the level with session and store."""

    def get_level_text(self, record: logging.LogRecord) -> Text:
        level_text = super().get_level_text(record)

        parts: list[str] = []
        session_id = get_session_id()
        store = get_store_context()
        if session_id:
            # uuid7 leads with a timestamp; the tail tells sessions apart
            parts.append(f"[dim]{session_id[-8:]}[/dim]")
        if store:
            parts.append(f"[cyan]{store}[/cyan]")

        if not parts:
            return level_text
        return Text.from_markup(f"{level_text} {' '.join(parts)}")


class ContextLogger:
    """Wrapper whose keyword arguments become structured fields.

    ``logger.error("Cache get failed", key=key)`` logs the message with
    ``{"key": key}`` under ``record.extra``. Session and store are added by
    the formatter and handler, not copied into every record.
    """

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    @property
    def name(self) -> str:
        return self._logger.name

    def _log(self, level: int, msg: str, *args: Any, exc_info: bool = False, **fields: Any) -> None:
        if self._logger.isEnabledFor(level):
            self._logger.log(level, msg, *args, exc_info=exc_info, extra={"extra": fields})

    def debug(self, msg: str, *args: Any, **fields: Any) -> None:
        self._log(logging.DEBUG, msg, *args, **fields)

    def info(self, msg: str, *args: Any, **fields: Any) -> None:
        self._log(logging.INFO, msg, *args, **fields)

    def warning(self, msg: str, *args: Any, **fields: Any) -> None:
        self._log(logging.WARNING, msg, *args, **fields)

    def error(self, msg: str, *args: Any, exc_info: bool = False, **fields: Any) -> None:
        self._log(logging.ERROR, msg, *args, exc_info=exc_info, **fields)


_console: Console | None = None
_configured = False


def get_console() -> Console:
    """Console on stderr shared by log output, so stdout stays clean for command results."""
    global _console
    if _console is None:
        _console = Console(stderr=True)
    return _console


def setup_logging(
    log_level: str = "INFO",
    log_file: Path | None = None,
    console_output: bool = True,
) -> None:
    """(Re)configure the ``cb`` logger.

    Args:
        log_level: Level for the logger and the console handler.
        log_file: JSON-lines file receiving every record at DEBUG and
            above. Parent directories are created. None disables it.
        console_output: Attach the rich console handler.
    """
    global _configured

    level = getattr(logging, log_level.upper())
    root = logging.getLogger(ROOT_LOGGER)
    for handler in root.handlers:
        handler.close()
    root.handlers.clear()
    root.setLevel(logging.DEBUG if log_file else level)
    root.propagate = False

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(JSONFormatter())
        file_handler.setLevel(logging.DEBUG)
        root.addHandler(file_handler)

    if console_output:
        console_handler = ContextRichHandler(
            console=get_console(),
            show_time=True,
            show_path=False,
            rich_tracebacks=True,
            markup=False,
        )
        console_handler.setLevel(level)
        root.addHandler(console_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str) -> ContextLogger:
    """Get a ContextLogger under the ``cb`` namespace.

    Names outside it (``cache.kv``) are prefixed (``cb.cache.kv``). The
    first call configures console logging at INFO if nothing else has.
    """
    if not _configured:
        setup_logging()

    if name != ROOT_LOGGER and not name.startswith(f"{ROOT_LOGGER}."):
        name = f"{ROOT_LOGGER}.{name}"
    return ContextLogger(logging.getLogger(name))
