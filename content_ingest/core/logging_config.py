"""
Logging Configuration Module
============================
Structured JSON logging with pipeline context support.

This module provides:
- JSON formatted logging for production
- Text formatting for development
- Content-aware logging (content_id / account_id on every record)
"""

import logging
import sys
import json
from datetime import datetime, timezone
from typing import Optional, Dict, Any
from pathlib import Path
from logging.handlers import RotatingFileHandler


_CONTEXT_FIELDS = ("content_id", "account_id", "stage")


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter for structured logging.

    Produces JSON lines compatible with log aggregation systems
    like ELK, Splunk, or CloudWatch.
    """

    def __init__(self, include_timestamp: bool = True):
        """
        Initialize the JSON formatter.

        Args:
            include_timestamp: Include ISO8601 timestamp in output
        """
        super().__init__()
        self.include_timestamp = include_timestamp

    def format(self, record: logging.LogRecord) -> str:
        """
        Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            str: JSON formatted log line
        """
        log_data: Dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_timestamp:
            log_data["timestamp"] = datetime.now(timezone.utc).isoformat()

        log_data["source"] = {
            "file": record.filename,
            "line": record.lineno,
            "function": record.funcName,
        }

        # Pipeline context
        for name in _CONTEXT_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        if hasattr(record, "extra_data"):
            log_data["data"] = record.extra_data

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """
    Human-readable text formatter for development.

    Provides colorized output when running in a terminal.
    """

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",      # Reset
    }

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors and sys.stdout.isatty()

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        level = record.levelname

        if self.use_colors:
            color = self.COLORS.get(level, "")
            reset = self.COLORS["RESET"]
            level_str = f"{color}{level:8s}{reset}"
        else:
            level_str = f"{level:8s}"

        context_parts = [
            f"{name}={getattr(record, name)}"
            for name in _CONTEXT_FIELDS
            if hasattr(record, name)
        ]
        context_str = f" [{', '.join(context_parts)}]" if context_parts else ""

        message = record.getMessage()
        if hasattr(record, "extra_data") and record.extra_data:
            message += f" | {record.extra_data}"

        output = f"{timestamp} | {level_str} | {record.name}{context_str} | {message}"

        if record.exc_info:
            output += f"\n{self.formatException(record.exc_info)}"

        return output


class ContentLogger(logging.LoggerAdapter):
    """
    Logger adapter that stamps pipeline context onto every record.

    Used by each pipeline step so a single content item can be followed
    through transcription, moderation and dispatch in aggregated logs.
    """

    def __init__(
        self,
        logger: logging.Logger,
        content_id: str,
        account_id: Optional[str] = None,
        stage: Optional[str] = None,
    ):
        """
        Initialize the content logger.

        Args:
            logger: Base logger instance
            content_id: Content row being processed
            account_id: Owning account, if known
            stage: Pipeline stage name
        """
        super().__init__(logger, {})
        self.content_id = content_id
        self.account_id = account_id
        self.stage = stage

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = kwargs.get("extra", {})
        extra["content_id"] = self.content_id
        if self.account_id:
            extra["account_id"] = self.account_id
        if self.stage:
            extra["stage"] = self.stage
        kwargs["extra"] = extra
        return msg, kwargs

    def with_data(self, msg: str, data: Dict[str, Any], level: int = logging.INFO) -> None:
        """Log ``msg`` with a structured ``data`` payload."""
        self.log(level, msg, extra={"extra_data": data})


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    output: str = "stdout",
    file_path: Optional[str] = None,
    max_file_size: int = 10_000_000,
    backup_count: int = 5,
) -> None:
    """
    Configure global logging settings.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Output format (json or text)
        output: Output destination (stdout, file, both)
        file_path: Path to log file (required if output includes file)
        max_file_size: Maximum log file size in bytes
        backup_count: Number of backup files to keep
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    if log_format == "json":
        formatter = JSONFormatter()
    else:
        formatter = TextFormatter()

    if output in ("stdout", "both"):
        stdout_handler = logging.StreamHandler(sys.stdout)
        stdout_handler.setFormatter(formatter)
        root_logger.addHandler(stdout_handler)

    if output in ("file", "both") and file_path:
        log_path = Path(file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            file_path,
            maxBytes=max_file_size,
            backupCount=backup_count,
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # Suppress noisy third-party loggers
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance by name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        logging.Logger: Configured logger instance
    """
    return logging.getLogger(name)


def get_content_logger(
    name: str,
    content_id: str,
    account_id: Optional[str] = None,
    stage: Optional[str] = None,
) -> ContentLogger:
    """
    Get a logger that tags every record with the content being processed.

    Args:
        name: Logger name (typically __name__)
        content_id: Content row being processed
        account_id: Owning account, if known
        stage: Pipeline stage name

    Returns:
        ContentLogger: Logger with content context
    """
    return ContentLogger(logging.getLogger(name), content_id, account_id, stage)
