# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Structured logging configuration for Verdict.

Provides:
- JSON formatter for production (machine-parseable)
- Standard formatter for development (human-readable)
- Tick IDs so every line written during one monitor pass can be grouped
- Claim IDs attached while a single claim is being processed
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

_tick_id: ContextVar[str | None] = ContextVar("tick_id", default=None)
_claim_id: ContextVar[str | None] = ContextVar("claim_id", default=None)


def get_tick_id() -> str | None:
    """Return the ID of the monitor tick running in this context, if any."""
    return _tick_id.get()


def get_claim_id() -> str | None:
    """Return the claim currently being processed in this context, if any."""
    return _claim_id.get()


@contextmanager
def tick_context(tick_id: str | None = None) -> Generator[str, None, None]:
    """Scope a monitor tick.

    Args:
        tick_id: Optional ID to reuse. If None, a new UUID is generated.

    Yields:
        The tick ID in effect.

    Example:
        with tick_context() as tid:
            logger.info("Scanning claims")  # carries tid
    """
    tid = tick_id or str(uuid.uuid4())
    token = _tick_id.set(tid)
    try:
        yield tid
    finally:
        _tick_id.reset(token)


@contextmanager
def claim_context(claim_id: str) -> Generator[str, None, None]:
    """Scope the processing of one claim."""
    token = _claim_id.set(claim_id)
    try:
        yield claim_id
    finally:
        _claim_id.reset(token)


class JSONFormatter(logging.Formatter):
    """JSON log formatter for production environments.

    Includes the tick and claim IDs when present in context, and any
    ``extra_data`` dict passed through ``logger.info(..., extra=...)``.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        tick_id = get_tick_id()
        if tick_id:
            log_data["tick_id"] = tick_id
        claim_id = get_claim_id()
        if claim_id:
            log_data["claim_id"] = claim_id

        if record.levelno >= logging.WARNING:
            log_data["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_data"):
            log_data["extra"] = record.extra_data

        return json.dumps(log_data, default=str)


class StandardFormatter(logging.Formatter):
    """Standard log formatter for development.

    Human-readable format with colors for terminal output. The first eight
    characters of the tick ID and the claim ID prefix each message.
    """

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"
    CONTEXT_COLOR = "\033[90m"  # Gray

    def __init__(self, use_colors: bool = True):
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        record = logging.makeLogRecord(record.__dict__)

        parts = []
        tick_id = get_tick_id()
        if tick_id:
            parts.append(tick_id[:8])
        claim_id = get_claim_id()
        if claim_id:
            parts.append(f"claim={claim_id}")
        if parts:
            prefix = f"[{' '.join(parts)}]"
            if self.use_colors:
                prefix = f"{self.CONTEXT_COLOR}{prefix}{self.RESET}"
            record.msg = f"{prefix} {record.msg}"

        if self.use_colors:
            color = self.COLORS.get(record.levelname, "")
            record.levelname = f"{color}{record.levelname}{self.RESET}"

        return super().format(record)


def configure_logging(
    level: str | int | None = None,
    json_format: bool | None = None,
    log_file: str | None = None,
) -> None:
    """Configure logging for the verdict CLI and monitor.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL); defaults to settings
        json_format: Use JSON format (auto-detect if None)
        log_file: Optional file to write logs to

    Environment variables:
        VERDICT_LOG_LEVEL: Default log level
        VERDICT_LOG_FORMAT: Log format ("json" or "text", auto-detect if unset)
        VERDICT_LOG_FILE: Log file path
    """
    from .config import get_config

    config = get_config()

    if level is None:
        level = config.log_level
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    if json_format is None:
        format_env = config.log_format.lower()
        if format_env == "json":
            json_format = True
        elif format_env == "text":
            json_format = False
        else:
            json_format = not sys.stderr.isatty()

    log_file = config.log_file if log_file is None else log_file

    formatter: logging.Formatter = JSONFormatter() if json_format else StandardFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        # File output is always JSON
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name (typically ``__name__``)."""
    return logging.getLogger(name)
