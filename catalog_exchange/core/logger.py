# SPDX-License-Identifier: AGPL-3.0-only OR LicenseRef-Moltr-Commercial
# Copyright (C) 2026 Walter Troska / moltrHQ <hello@moltr.tech>
# See LICENSE (AGPL-3.0) or LICENSE-COMMERCIAL for licensing terms.

"""Structured exchange logging.

Wraps the ``catalog_exchange.*`` loggers with key=value context, redaction of
credentials and session secrets, and a JSON line per handled exchange request.
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

EVENTS_FILENAME = "exchange_events.jsonl"

_SENSITIVE_KEYS = frozenset({
    "password", "passwd", "pwd", "secret", "token", "authorization",
    "credential", "csrf_token", "csrftoken", "sessid", "cookie",
})

# Session ids are shown truncated, never in full
_TRUNCATED_KEYS = frozenset({"session_id", "sessionid"})


def _redact_value(key: str, value: Any) -> Any:
    """Redact or shorten sensitive values in log context."""
    if not isinstance(value, str):
        return value
    lowered = key.lower()
    if lowered in _SENSITIVE_KEYS:
        return "[REDACTED]" if value else value
    if lowered in _TRUNCATED_KEYS:
        return value[:8]
    return value


def _format_context(context: dict[str, Any]) -> str:
    return " ".join(f"{k}={_redact_value(k, v)!r}" for k, v in context.items())


class ExchangeLogger:
    """Structured logger for the exchange components.

    Messages go to ``catalog_exchange.<name>`` and propagate to whatever the
    process configured at the root (the server uses ``basicConfig``). Request
    events go to the child logger ``catalog_exchange.<name>.events``; with a
    ``log_dir`` each instance also appends them to its own
    ``exchange_events.jsonl`` and the component log is mirrored to a
    rotating ``catalog-exchange-<name>.log``.
    """

    def __init__(
        self,
        name: str = "exchange",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        max_bytes: int = 10 * 1024 * 1024,  # 10 MB
        backup_count: int = 5,
    ) -> None:
        """Initialize the logger.

        Args:
            name: Component name, appended to ``catalog_exchange.``.
            level: Log level name.
            log_dir: Directory for log files. If None, nothing is written to disk.
            max_bytes: Max size per log file before rotation.
            backup_count: Number of rotated log files to keep.
        """
        self._name = name
        self._logger = logging.getLogger(f"catalog_exchange.{name}")
        self._logger.setLevel(getattr(logging, level.upper(), logging.INFO))
        self._events = logging.getLogger(f"catalog_exchange.{name}.events")
        self._events_file: Optional[RotatingFileHandler] = None

        if log_dir:
            log_dir = Path(log_dir)
            log_dir.mkdir(parents=True, exist_ok=True)
            self._attach_file(log_dir / f"catalog-exchange-{name}.log", max_bytes, backup_count)

            self._events_file = RotatingFileHandler(
                log_dir / EVENTS_FILENAME,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
            self._events_file.setFormatter(logging.Formatter("%(message)s"))

    def _attach_file(self, path: Path, max_bytes: int, backup_count: int) -> None:
        """Mirror the component log to ``path`` unless a handler already does."""
        target = os.path.abspath(path)
        for handler in self._logger.handlers:
            if isinstance(handler, logging.FileHandler) and handler.baseFilename == target:
                return
        file_handler = RotatingFileHandler(
            path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
        self._logger.addHandler(file_handler)

    def debug(self, message: str, **context: Any) -> None:
        self._log(logging.DEBUG, message, context)

    def info(self, message: str, **context: Any) -> None:
        self._log(logging.INFO, message, context)

    def warning(self, message: str, **context: Any) -> None:
        self._log(logging.WARNING, message, context)

    def error(self, message: str, exc_info: bool = False, **context: Any) -> None:
        self._log(logging.ERROR, message, context, exc_info=exc_info)

    def exchange_event(self, exchange_type: str, mode: str, outcome: str, details: dict[str, Any]) -> None:
        """Log one handled exchange request as a JSON line.

        Args:
            exchange_type: Raw ``type`` query parameter.
            mode: Raw ``mode`` query parameter.
            outcome: ``success`` or ``failure``.
            details: Extra fields (filename, message, ...); secrets are redacted.
        """
        event = {
            "event_id": str(uuid.uuid4()),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "component": self._name,
            "type": exchange_type,
            "mode": mode,
            "outcome": outcome,
            **{k: _redact_value(k, v) for k, v in details.items()},
        }
        level = logging.INFO if outcome == "success" else logging.WARNING
        json_line = json.dumps(event, ensure_ascii=False, default=str)
        self._events.log(level, json_line)

        if self._events_file is not None:
            self._events_file.emit(logging.LogRecord(
                name=self._events.name, level=level, pathname="", lineno=0,
                msg=json_line, args=(), exc_info=None,
            ))

    def close(self) -> None:
        """Release the events file, if one was opened."""
        if self._events_file is not None:
            self._events_file.close()
            self._events_file = None

    def _log(self, level: int, message: str, context: dict[str, Any], exc_info: bool = False) -> None:
        if context:
            self._logger.log(level, "%s | %s", message, _format_context(context), exc_info=exc_info)
        else:
            self._logger.log(level, message, exc_info=exc_info)
