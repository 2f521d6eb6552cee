"""
Structured JSON Logging Module.

Every component receives a ``StructuredLogger`` through its constructor
and emits one JSON object per record.  Audit records carry an
``event`` field (``LOGIN_SUCCESS``, ``TOKEN_REFRESHED``, ...) so the
session lifecycle can be reconstructed from the log alone.

Credentials never reach a handler: values under credential-looking keys
are masked at any nesting depth, and ``Bearer <token>`` fragments are
scrubbed from messages and exception text.
"""

import json
import logging
import re
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional, TextIO

_SENSITIVE_KEYS: frozenset[str] = frozenset({
    "access_token",
    "refresh_token",
    "id_token",
    "password",
    "new_password",
    "authorization",
})
_MASK: str = "***"
_BEARER_PATTERN = re.compile(r"(Bearer\s+)[^\s\"',]+", re.IGNORECASE)

# Attribute names every LogRecord carries; anything else came from ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    logging.makeLogRecord({}).__dict__.keys()
) | {"message", "asctime"}


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return lowered in _SENSITIVE_KEYS or lowered.endswith("_token")


def _mask(value: Any) -> Any:
    """Return *value* as JSON-safe data with credentials masked."""
    if isinstance(value, dict):
        return {
            str(k): _MASK if _is_sensitive(str(k)) else _mask(v)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_mask(item) for item in value]
    if value is None or isinstance(value, (bool, int, float)):
        return value
    return _BEARER_PATTERN.sub(r"\1" + _MASK, str(value))


class JSONFormatter(logging.Formatter):
    """Render a record as ``{timestamp, level, logger_name, message[, extra][, exception]}``."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger_name": record.name,
            "message": _mask(record.getMessage()),
        }

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS
        }
        if extra:
            payload["extra"] = _mask(extra)

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            payload["exception"] = _mask(record.exc_text)

        return json.dumps(payload, ensure_ascii=False)


def _attach_handlers(
    target: logging.Logger,
    level: int,
    stream: TextIO,
    log_file: str,
    max_bytes: int,
    backup_count: int,
) -> None:
    formatter = JSONFormatter()

    console = logging.StreamHandler(stream)
    console.setLevel(level)
    console.setFormatter(formatter)
    target.addHandler(console)

    try:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        rotating = RotatingFileHandler(
            filename=str(path),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
    except OSError as exc:
        target.warning(
            "Log file %s unavailable (%s); logging to console only.", log_file, exc,
        )
        return
    rotating.setLevel(level)
    rotating.setFormatter(formatter)
    target.addHandler(rotating)


class StructuredLogger:
    """Injectable wrapper around a named ``logging.Logger``.

    Handlers are attached the first time a name is used, so building
    several wrappers for one name never duplicates output.  File
    settings default to ``AppConfig.LOG_*``.
    """

    def __init__(
        self,
        name: str = "authcore",
        level: int = logging.INFO,
        stream: Optional[TextIO] = None,
        log_file: Optional[str] = None,
        max_bytes: Optional[int] = None,
        backup_count: Optional[int] = None,
    ) -> None:
        self._logger: logging.Logger = logging.getLogger(name)
        self._logger.setLevel(level)

        if self._logger.handlers:
            return

        # Deferred so importing the logger never reads the environment.
        from authcore.config import get_config
        cfg = get_config()
        _attach_handlers(
            self._logger,
            level=level,
            stream=stream or sys.stdout,
            log_file=log_file or cfg.LOG_FILE,
            max_bytes=max_bytes if max_bytes is not None else cfg.LOG_MAX_BYTES,
            backup_count=backup_count if backup_count is not None else cfg.LOG_BACKUP_COUNT,
        )

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def debug(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.error(msg, *args, **kwargs)

    def critical(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.critical(msg, *args, **kwargs)


def get_logger(name: str = "authcore") -> StructuredLogger:
    """Return a ``StructuredLogger`` for *name* with default settings."""
    return StructuredLogger(name=name)
