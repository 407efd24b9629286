"""
Logging utilities for formsync.

Provides structured logging with sync context support so that every line
emitted while reconciling a form or paging through submissions can be traced
back to the form and the pull run that produced it.
"""

import contextvars
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional


CONTEXT_FIELDS = ("form_id", "run_id", "slot", "attempt")

_current_context: contextvars.ContextVar = contextvars.ContextVar("formsync_sync_context", default={})


class StructuredFormatter(logging.Formatter):
    """
    Formatter that outputs JSON-structured log lines.

    Each log line includes:
    - Standard log fields (timestamp, level, message, logger)
    - Sync context fields if present (form_id, run_id, slot, attempt)
    """

    def __init__(self, include_timestamp: bool = True):
        super().__init__()
        self.include_timestamp = include_timestamp

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as JSON."""
        log_entry = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_timestamp:
            log_entry["timestamp"] = datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat()

        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Formatter that outputs human-readable log lines with sync context.

    Format: TIMESTAMP - LOGGER - LEVEL - MESSAGE [form_id=X run_id=Y]
    """

    def __init__(self, include_timestamp: bool = True):
        if include_timestamp:
            fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        else:
            fmt = "%(name)s - %(levelname)s - %(message)s"
        super().__init__(fmt)

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)

        context_parts = []
        for field in ("form_id", "run_id"):
            value = getattr(record, field, None)
            if value is not None:
                context_parts.append(f"{field}={value}")

        if context_parts:
            return f"{base} [{' '.join(context_parts)}]"
        return base


def configure_logging(
    level: int = logging.INFO,
    include_timestamp: bool = True,
    structured: bool = False,
) -> logging.Logger:
    """
    Configure the formsync package logger.

    Args:
        level: Logging level (default: INFO)
        include_timestamp: Whether to include timestamp in log messages
        structured: If True, output JSON-structured logs; if False, human-readable

    Returns:
        The configured package logger
    """
    package_logger = logging.getLogger("formsync")
    package_logger.setLevel(level)

    # Only add handler if none exist (avoid duplicate handlers)
    if not package_logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(level)

        if structured:
            formatter = StructuredFormatter(include_timestamp=include_timestamp)
        else:
            formatter = HumanReadableFormatter(include_timestamp=include_timestamp)

        handler.setFormatter(formatter)
        package_logger.addHandler(handler)

    return package_logger


class SyncContext:
    """
    Context manager for adding sync fields to log records.

    The active context is held per thread (and per asyncio task), so slots
    reconciled in parallel each log their own fields.

    Example:
        >>> with SyncContext(form_id="household_survey", run_id="r-42"):
        ...     log_with_context(logger, logging.INFO, "Reconciling")
    """

    def __init__(
        self,
        form_id: Optional[str] = None,
        run_id: Optional[str] = None,
        **extra: Any,
    ):
        self.context = {
            "form_id": form_id,
            "run_id": run_id,
            **extra,
        }
        self.context = {k: v for k, v in self.context.items() if v is not None}
        self._token: Optional[contextvars.Token] = None

    def __enter__(self) -> "SyncContext":
        # Inner contexts extend the enclosing one
        self.context = {**_current_context.get(), **self.context}
        self._token = _current_context.set(self.context)
        return self

    def __exit__(self, *args) -> None:
        _current_context.reset(self._token)
        self._token = None

    @classmethod
    def get_current(cls) -> Dict[str, Any]:
        """Get the current sync context."""
        return dict(_current_context.get())


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    **extra: Any,
) -> None:
    """
    Log a message with the current sync context merged with extra fields.
    """
    context = SyncContext.get_current()
    context.update(extra)
    logger.log(level, message, extra=context)
