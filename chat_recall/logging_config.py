"""Centralized logging configuration for Chat Recall.

One call to ``setup_logging`` configures the root logger; modules only do
``logger = logging.getLogger(__name__)``. Supports:

- text (optionally colored) and JSON formatters
- console output and a rotating JSON file log
- correlation IDs on every record
"""

import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

# Third-party loggers that are chatty at INFO
_NOISY_LOGGERS = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "openai": logging.WARNING,
    "uvicorn": logging.INFO,
    "uvicorn.access": logging.WARNING,
    "fastapi": logging.INFO,
}


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        correlation_id = getattr(record, "correlation_id", None)
        if correlation_id and correlation_id != "-":
            log_obj["correlation_id"] = correlation_id

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj)


class TextFormatter(logging.Formatter):
    """Human-readable formatter with ANSI level colors on a TTY."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
        "RESET": "\033[0m",
    }

    def __init__(self, use_colors: bool = True, include_correlation_id: bool = True):
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        self.include_correlation_id = include_correlation_id
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        original_levelname = record.levelname
        if self.use_colors:
            color = self.COLORS.get(record.levelname, self.COLORS["RESET"])
            record.levelname = f"{color}{original_levelname}{self.COLORS['RESET']}"
        try:
            result = super().format(record)
        finally:
            record.levelname = original_levelname

        if self.include_correlation_id:
            correlation_id = getattr(record, "correlation_id", None)
            if correlation_id and correlation_id != "-":
                result = f"[{correlation_id[:8]}] {result}"
        return result


def setup_logging(
    level: str = "INFO",
    format_type: str = "text",
    log_file: Optional[str] = None,
    use_colors: bool = True,
    quiet: bool = False,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    enable_correlation_ids: bool = True,
) -> None:
    """Configure the root logger.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL (unknown -> INFO)
        format_type: "text" or "json" for console output
        log_file: Optional path; always written as rotating JSON
        use_colors: Colored console output (text mode, TTY only)
        quiet: Suppress console output
        max_bytes: File size before rotation
        backup_count: Rotated files to keep
        enable_correlation_ids: Stamp records with the request correlation id

    Example:
        >>> setup_logging(level="DEBUG")
        >>> setup_logging(level="INFO", format_type="json", log_file="/var/log/chat_recall.log")
    """
    from .correlation import CorrelationIdFilter

    root = logging.getLogger()
    root.handlers.clear()

    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        print(f"Warning: Invalid log level '{level}', using INFO", file=sys.stderr)
        log_level = logging.INFO
    root.setLevel(log_level)

    correlation_filter = CorrelationIdFilter() if enable_correlation_ids else None

    formatter: logging.Formatter
    if format_type == "json":
        formatter = JSONFormatter()
    else:
        formatter = TextFormatter(use_colors=use_colors, include_correlation_id=enable_correlation_ids)

    if not quiet:
        console = logging.StreamHandler(sys.stdout)
        console.setLevel(log_level)
        console.setFormatter(formatter)
        if correlation_filter:
            console.addFilter(correlation_filter)
        root.addHandler(console)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file, mode="a", maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(JSONFormatter())
        if correlation_filter:
            file_handler.addFilter(correlation_filter)
        root.addHandler(file_handler)

    for name, noisy_level in _NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(noisy_level)

    root.info(
        "Logging configured: level=%s, format=%s, file=%s, quiet=%s, correlation_ids=%s",
        level,
        format_type,
        log_file or "none",
        quiet,
        enable_correlation_ids,
    )


def reset_logging() -> None:
    """Drop all root handlers (tests)."""
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.WARNING)
