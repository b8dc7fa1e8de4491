"""
Structured Logging Configuration

Provides:
- Correlation IDs for tracing a single bus operation across components
- JSON formatting for file logs
- Human-readable console output
- Log rotation support
"""

import contextvars
import json
import logging
import logging.handlers
import sys
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union
from uuid import uuid4


correlation_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "correlation_id", default=None
)
agent_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "agent_id", default=None
)


class CorrelationContext:
    """Context manager for setting correlation context."""

    def __init__(
        self,
        correlation_id: Optional[str] = None,
        agent_id: Optional[str] = None,
    ):
        self.correlation_id = correlation_id or str(uuid4())
        self.agent_id = agent_id
        self._tokens = []

    def __enter__(self):
        self._tokens.append((correlation_id_var, correlation_id_var.set(self.correlation_id)))
        if self.agent_id:
            self._tokens.append((agent_id_var, agent_id_var.set(self.agent_id)))
        return self

    def __exit__(self, *args):
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(
        self,
        include_traceback: bool = True,
        extra_fields: Optional[Dict[str, Any]] = None,
    ):
        super().__init__()
        self.include_traceback = include_traceback
        self.extra_fields = extra_fields or {}

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "thread_name": record.threadName,
        }

        correlation_id = correlation_id_var.get()
        agent_id = agent_id_var.get()
        if correlation_id:
            log_data["correlation_id"] = correlation_id
        if agent_id:
            log_data["agent_id"] = agent_id

        log_data.update(self.extra_fields)

        if record.exc_info and self.include_traceback:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info),
            }

        return json.dumps(log_data, default=str)


class StructuredFormatter(logging.Formatter):
    """Human-readable structured formatter for console output."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
        "RESET": "\033[0m",
    }

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).strftime(
            "%Y-%m-%d %H:%M:%S"
        )

        level = record.levelname
        if self.use_color and sys.stdout.isatty():
            level = f"{self.COLORS.get(level, '')}{level}{self.COLORS['RESET']}"

        parts = [f"[{timestamp}]", f"[{level}]", f"[{record.name}]", record.getMessage()]

        context_parts = []
        correlation_id = correlation_id_var.get()
        agent_id = agent_id_var.get()
        if correlation_id:
            context_parts.append(f"correlation_id={correlation_id[:8]}")
        if agent_id:
            context_parts.append(f"agent_id={agent_id}")
        if context_parts:
            parts.append(f"[{', '.join(context_parts)}]")

        if record.exc_info:
            parts.append("\n" + "".join(traceback.format_exception(*record.exc_info)))

        return " ".join(parts)


def setup_logging(
    level: Union[str, int] = logging.INFO,
    json_format: bool = False,
    log_dir: Optional[Union[str, Path]] = None,
    log_file: str = "ai_link.log",
    console_output: bool = True,
    max_bytes: int = 50 * 1024 * 1024,
    backup_count: int = 5,
    extra_fields: Optional[Dict[str, Any]] = None,
) -> logging.Logger:
    """
    Configure logging for the bus process.

    Args:
        level: Logging level name or number
        json_format: Use JSON on the console too (file logs are always JSON)
        log_dir: Directory for a rotating log file; None disables file logging
        log_file: Name of the log file
        console_output: Enable console output
        max_bytes: Max size of log file before rotation
        backup_count: Number of rotated files to keep
        extra_fields: Additional fields to include in every JSON record

    Returns:
        The ``ailink`` package logger
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    package_logger = logging.getLogger("ailink")
    package_logger.setLevel(level)
    package_logger.handlers.clear()
    package_logger.propagate = False

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path / log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(JSONFormatter(extra_fields=extra_fields))
        package_logger.addHandler(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        if json_format:
            console_handler.setFormatter(JSONFormatter(extra_fields=extra_fields))
        else:
            console_handler.setFormatter(StructuredFormatter(use_color=True))
        package_logger.addHandler(console_handler)

    return package_logger


def get_correlation_id() -> Optional[str]:
    """Get current correlation ID."""
    return correlation_id_var.get()
