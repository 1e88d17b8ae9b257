"""Logging configuration for rb-scrobbler."""

import logging
import re
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

import coloredlogs

# "key": "value" pairs that must never reach a log: request signatures, session
# keys (sent as sk, returned as key) and passwords
SECRET_PATTERN = re.compile(r'("(?:api_sig|sk|key|password)"\s*:\s*")[^"]*(")')


def redact_secrets(text: str) -> str:
    """Mask secret values in JSON-style text."""
    return SECRET_PATTERN.sub(r"\1***\2", text)


class SecretFilter(logging.Filter):
    """Masks secrets in every record passing through a handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact_secrets(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def setup_logger(
    name: str = "rb_scrobbler",
    log_file: Optional[Path] = None,
    level: str = "INFO",
    max_size_mb: int = 10,
    backup_count: int = 5,
    console: bool = True
) -> logging.Logger:
    """Set up a logger with file and console handlers.

    Args:
        name: Logger name
        log_file: Path to log file (if None, no file logging)
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        max_size_mb: Maximum log file size in MB before rotation
        backup_count: Number of backup log files to keep
        console: Whether to add console handler

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))
    logger.handlers.clear()

    file_formatter = logging.Formatter(
        fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    console_formatter = coloredlogs.ColoredFormatter(
        fmt='%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setFormatter(file_formatter)
        file_handler.addFilter(SecretFilter())
        logger.addHandler(file_handler)

    # Progress goes to stderr so stdout stays free for the run summary
    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(console_formatter)
        console_handler.addFilter(SecretFilter())
        logger.addHandler(console_handler)

    return logger
