"""
Structured JSON Logging.

One JSON object per line, written to stdout and (unless ``LOG_FILE`` is
empty) to a size-rotated file.  Payment gateway forms, password hashes and
verification tokens pass through the services that log, so the formatter
masks credential-looking values before anything is written:

- ``extra`` fields whose key names a credential are replaced wholesale;
- ``key=value`` pairs for those keys inside messages and tracebacks (query
  strings, form dumps, ``requests`` error text) have their value masked.
"""

import json
import logging
import re
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, TextIO, Union

REDACTED: str = "***"

# Substrings of field names whose values are never logged.
SENSITIVE_KEY_PARTS: tuple[str, ...] = (
    "passwd",
    "password",
    "secret",
    "token",
    "salt",
    "api_key",
)

_SENSITIVE_PAIR_RE: re.Pattern[str] = re.compile(
    r"(?P<key>\b\w*(?:" + "|".join(SENSITIVE_KEY_PARTS) + r")\w*)"
    r"(?P<sep>\s*[=:]\s*['\"]?)"
    r"(?P<value>[^&\s'\",}]+)",
    re.IGNORECASE,
)


def is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(part in lowered for part in SENSITIVE_KEY_PARTS)


def redact_text(text: str) -> str:
    """Mask the value of every ``credential=value`` pair in *text*.

    ``"store_id=abc&store_passwd=s3cr3t"`` -> ``"store_id=abc&store_passwd=***"``
    """
    return _SENSITIVE_PAIR_RE.sub(
        lambda m: f"{m.group('key')}{m.group('sep')}{REDACTED}", text,
    )


class JSONFormatter(logging.Formatter):
    """Formats log records as redacted JSON objects.

    Each entry carries ``timestamp`` (ISO-8601, UTC), ``level``,
    ``logger_name`` and ``message``, plus ``extra`` for caller-supplied
    fields and ``exception`` for tracebacks.
    """

    _STANDARD_ATTRS: frozenset[str] = frozenset(
        logging.LogRecord(
            name="", level=0, pathname="", lineno=0, msg="", args=(), exc_info=None
        ).__dict__.keys()
    )

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Union[str, dict[str, str]]] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger_name": record.name,
            "message": redact_text(record.getMessage()),
        }

        extra_fields: dict[str, str] = {
            key: REDACTED if is_sensitive_key(key) else redact_text(str(value))
            for key, value in record.__dict__.items()
            if key not in self._STANDARD_ATTRS
        }
        if extra_fields:
            entry["extra"] = extra_fields

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            entry["exception"] = redact_text(record.exc_text)

        return json.dumps(entry, ensure_ascii=False)


class StructuredLogger:
    """Injectable JSON logger.

    Services receive one through their constructor; the wrapped
    ``logging.Logger`` is available as ``.logger``.

    Usage::

        log = StructuredLogger(name="payments")
        log.info("Verifying payment: %s", val_id, extra={"gateway": "sslcommerz"})
    """

    def __init__(
        self,
        name: str = "alumni",
        level: int = logging.INFO,
        stream: Union[TextIO, None] = None,
        log_file: Optional[str] = None,
        max_bytes: Optional[int] = None,
        backup_count: Optional[int] = None,
    ) -> None:
        self._logger: logging.Logger = logging.getLogger(name)
        self._logger.setLevel(level)

        # Handlers are attached once per logger name.
        if self._logger.handlers:
            return

        formatter = JSONFormatter()
        stream_handler = logging.StreamHandler(stream or sys.stdout)
        stream_handler.setLevel(level)
        stream_handler.setFormatter(formatter)
        self._logger.addHandler(stream_handler)

        if log_file is None or max_bytes is None or backup_count is None:
            # Lazy import: config itself may log while loading.
            from alumni.config import get_config
            cfg = get_config()
            log_file = cfg.LOG_FILE if log_file is None else log_file
            max_bytes = cfg.LOG_MAX_BYTES if max_bytes is None else max_bytes
            backup_count = cfg.LOG_BACKUP_COUNT if backup_count is None else backup_count

        if log_file:
            self._attach_file_handler(log_file, max_bytes, backup_count, level, formatter)

    def _attach_file_handler(
        self,
        log_file: str,
        max_bytes: int,
        backup_count: int,
        level: int,
        formatter: logging.Formatter,
    ) -> None:
        try:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                filename=str(log_path),
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
        except OSError as exc:
            self._logger.warning(
                "Could not create log file '%s': %s. Continuing with console logging only.",
                log_file,
                exc,
            )
            return
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        self._logger.addHandler(file_handler)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def debug(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.error(msg, *args, **kwargs)

    def critical(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.critical(msg, *args, **kwargs)


def get_logger(name: str = "alumni") -> StructuredLogger:
    """Convenience factory using the configured file and rotation settings."""
    return StructuredLogger(name=name)
