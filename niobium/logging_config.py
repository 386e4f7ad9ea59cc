"""
Niobium - Structured Logging Configuration
==========================================
Provides JSON-formatted structured logging with deployment-run context.

Features:
- JSON output for CI log collectors
- Run-scoped context (run_id, stage)
- Stage timing (duration_ms)
- Error tracking with stack traces
- Log level filtering via environment

Usage:
    from niobium.logging_config import get_logger, log_event

    logger = get_logger(__name__)
    logger.info("Routes fetched", extra={"route_count": 20})

    # Or use the helper
    log_event("routes_fetched", route_count=20, duration_ms=45)
"""

from __future__ import annotations

import json
import logging
import os
import sys
import threading
import time
import traceback
import uuid
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from niobium.config import get_settings


class LogLevel(str, Enum):
    """Standard log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# =============================================================================
# Context Variables
# =============================================================================


class LogContext:
    """
    Thread-local storage for run-scoped log context.

    Worker threads spawned inside a stage do not inherit it; their records
    carry only the fields passed in ``extra``.
    """

    _local = threading.local()

    @classmethod
    def set_run_id(cls, run_id: str | None) -> None:
        """Set the current run ID."""
        cls._local.run_id = run_id

    @classmethod
    def get_run_id(cls) -> str | None:
        """Get the current run ID."""
        return getattr(cls._local, "run_id", None)

    @classmethod
    def set_stage(cls, stage: str | None) -> None:
        """Set the current pipeline stage."""
        cls._local.stage = stage

    @classmethod
    def get_stage(cls) -> str | None:
        """Get the current pipeline stage."""
        return getattr(cls._local, "stage", None)

    @classmethod
    def clear(cls) -> None:
        """Clear all context."""
        cls._local.run_id = None
        cls._local.stage = None

    @classmethod
    def get_all(cls) -> dict[str, Any]:
        """Get all context as a dict."""
        return {
            "run_id": cls.get_run_id(),
            "stage": cls.get_stage(),
        }


# =============================================================================
# JSON Formatter
# =============================================================================


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs in a consistent JSON format with timestamps,
    log levels, and contextual fields.
    """

    _STANDARD_ATTRS = frozenset({
        "name", "msg", "args", "levelname", "levelno", "pathname",
        "filename", "module", "lineno", "funcName", "created", "msecs",
        "relativeCreated", "thread", "threadName", "processName",
        "process", "getMessage", "exc_info", "exc_text", "stack_info",
        "taskName", "message",
    })

    def __init__(
        self,
        *,
        service_name: str = "niobium",
        include_extra_fields: bool = True,
    ) -> None:
        super().__init__()
        self.service_name = service_name
        self.include_extra_fields = include_extra_fields
        self._iso_format = "%Y-%m-%dT%H:%M:%S.%fZ"

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON."""
        log_entry: dict[str, Any] = {
            "timestamp": self._format_timestamp(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
        }

        if record.pathname:
            log_entry["file"] = Path(record.pathname).name
            log_entry["line"] = record.lineno
            log_entry["function"] = record.funcName

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self._format_traceback(record.exc_info),
            }

        for key, value in LogContext.get_all().items():
            if value is not None:
                log_entry[key] = value

        if self.include_extra_fields:
            for key, value in record.__dict__.items():
                if key not in self._STANDARD_ATTRS and not key.startswith("_"):
                    log_entry[key] = value

        return json.dumps(log_entry, default=self._json_serializer, ensure_ascii=False)

    def _format_timestamp(self, created: float) -> str:
        """Format Unix timestamp to ISO 8601 string."""
        dt = datetime.fromtimestamp(created, tz=timezone.utc)
        return dt.strftime(self._iso_format)

    def _format_traceback(self, exc_info: Any) -> str | None:
        """Format exception traceback."""
        if not exc_info:
            return None
        return "".join(traceback.format_exception(*exc_info))

    @staticmethod
    def _json_serializer(obj: Any) -> str:
        """Custom JSON serializer for non-serializable objects."""
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Path):
            return str(obj)
        return str(obj)


# =============================================================================
# Console Formatter (human-readable)
# =============================================================================


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable formatter for interactive runs.
    """

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self) -> None:
        super().__init__()
        self._iso_format = "%Y-%m-%dT%H:%M:%S.%fZ"

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for console."""
        level_color = self.LEVEL_COLORS.get(record.levelname, "")
        timestamp = self._format_timestamp(record.created)
        stage = LogContext.get_stage() or "-"

        base = (
            f"{level_color}{record.levelname:<8}{self.RESET} "
            f"{timestamp} "
            f"[{stage}] "
            f"{record.name}: "
            f"{record.getMessage()}"
        )

        if record.exc_info:
            base += "\n" + "".join(traceback.format_exception(*record.exc_info))

        return base

    def _format_timestamp(self, created: float) -> str:
        """Format Unix timestamp to ISO 8601 string."""
        dt = datetime.fromtimestamp(created, tz=timezone.utc)
        return dt.strftime(self._iso_format)


# =============================================================================
# Logger Factory
# =============================================================================


def _get_log_level() -> int:
    """Get log level from environment."""
    level_str = os.environ.get("LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_str, logging.INFO)


def _should_use_json() -> bool:
    """Determine if JSON logging should be used."""
    if os.environ.get("LOG_FORMAT", "").lower() == "console":
        return False
    if os.environ.get("LOG_FORMAT", "").lower() == "json":
        return True
    # Interactive terminals get console output, CI gets JSON
    return not (sys.stderr.isatty() or get_settings().debug_mode)


_loggers: dict[str, logging.Logger] = {}


def configure_logging(
    *,
    level: str | int | None = None,
    service_name: str = "niobium",
    log_format: str | None = None,
) -> None:
    """
    Configure the root logger with structured logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        service_name: Service name for log identification
        log_format: Format type ("json" or "console")
    """
    resolved_level = _get_log_level() if level is None else _convert_level(level)
    use_json = _should_use_json() if log_format is None else log_format == "json"

    root = logging.getLogger()
    root.setLevel(resolved_level)
    root.handlers.clear()

    # stdout stays clean for the run summary
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(resolved_level)

    if use_json:
        handler.setFormatter(StructuredFormatter(service_name=service_name))
    else:
        handler.setFormatter(ConsoleFormatter())

    root.addHandler(handler)

    # uvicorn's own access log would interleave with ours on every fetch
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger by name.

    Never configures logging itself; handlers are installed by
    ``configure_logging``, which only the CLI calls.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Logger instance
    """
    if name not in _loggers:
        _loggers[name] = logging.getLogger(name)

    return _loggers[name]


def _convert_level(level: str | int) -> int:
    """Convert log level string to int constant."""
    if isinstance(level, int):
        return level
    return getattr(logging, str(level).upper(), logging.INFO)


# =============================================================================
# Helper Functions
# =============================================================================


def log_event(
    event_name: str,
    level: str | LogLevel = LogLevel.INFO,
    **extra_fields: Any,
) -> None:
    """
    Log a structured event with additional fields.

    Args:
        event_name: Name of the event (used as message)
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        **extra_fields: Additional structured fields to include

    Example:
        log_event("changes_detected", changed_count=3)
    """
    logger = get_logger("niobium.event")
    level_name = level.value if isinstance(level, LogLevel) else str(level)
    log_func = getattr(logger, level_name.lower(), logger.info)
    log_func(event_name, extra=extra_fields)


def log_error(
    event_name: str,
    exc: BaseException | None = None,
    **extra_fields: Any,
) -> None:
    """
    Log an error event with optional exception info.

    Args:
        event_name: Name of the error event
        exc: Exception to log
        **extra_fields: Additional structured fields
    """
    logger = get_logger("niobium.error")
    exc_info = (type(exc), exc, exc.__traceback__) if exc is not None else None
    logger.error(event_name, exc_info=exc_info, extra=extra_fields)


# =============================================================================
# Context Manager
# =============================================================================


class LogContextManager:
    """
    Context manager for run-scoped log context.

    Example:
        with LogContextManager(run_id="abc123"):
            logger.info("Deploying")
    """

    def __init__(self, *, run_id: str | None = None) -> None:
        self.run_id = run_id or str(uuid.uuid4())

    def __enter__(self) -> LogContextManager:
        LogContext.set_run_id(self.run_id)
        return self

    def __exit__(self, *args: Any) -> None:
        LogContext.clear()


# =============================================================================
# Performance Tracking
# =============================================================================


class PerformanceTracker:
    """
    Context manager for timing one pipeline stage.

    Sets the stage in the log context and logs the duration plus any fields
    added through ``extra`` when the context exits.

    Example:
        with PerformanceTracker("fetch_routes") as tracker:
            files = fetcher.fetch_all(routes)
            tracker.extra["file_count"] = len(files)
    """

    def __init__(
        self,
        operation: str,
        **extra_fields: Any,
    ) -> None:
        self.operation = operation
        self.extra = extra_fields
        self._start_time: float | None = None
        self._previous_stage: str | None = None

    def __enter__(self) -> PerformanceTracker:
        self._previous_stage = LogContext.get_stage()
        LogContext.set_stage(self.operation)
        self._start_time = time.perf_counter()
        return self

    def __exit__(self, *args: Any) -> None:
        if self._start_time is None:
            return

        duration_ms = (time.perf_counter() - self._start_time) * 1000
        self.extra["duration_ms"] = round(duration_ms, 2)

        if args[0] is not None:
            self.extra["error"] = str(args[1])
            get_logger("niobium.performance").warning(
                f"{self.operation}_failed",
                extra=self.extra,
            )
        else:
            get_logger("niobium.performance").info(
                f"{self.operation}_completed",
                extra=self.extra,
            )
        LogContext.set_stage(self._previous_stage)
