"""
Logging setup for dd-backup.

Thin wrapper around loguru that configures console and optional rotating
file output, plus a helper for structured context.
"""

import sys
from pathlib import Path
from typing import Any, Dict, Optional, Union

from loguru import logger

VALID_LOG_LEVELS = ["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"]

DEFAULT_CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<level>{message}</level>"
)

DEFAULT_FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
    "{name}:{function}:{line} | {message} | {extra}"
)

def _normalize_level(log_level: str) -> str:
    level = str(log_level).upper()
    if level not in VALID_LOG_LEVELS:
        raise ValueError(
            f"Invalid log level '{log_level}'. Must be one of {VALID_LOG_LEVELS}"
        )
    return level


def setup_logger(
    log_level: str = "INFO",
    log_file: Optional[Union[str, Path]] = None,
    console: bool = True,
    format_string: Optional[str] = None,
    rotation: Union[str, int] = "10 MB",
    retention: Union[str, int] = "30 days",
    compression: Optional[str] = "gz",
) -> None:
    """
    Configure loguru handlers.

    Removes existing handlers, then adds a stderr handler (if console=True)
    and a rotating file handler (if log_file is given). Safe to call more
    than once.

    Args:
        log_level: Minimum level (case-insensitive)
        log_file: Optional path to a log file; parent directories are created
        console: Log to stderr
        format_string: Override the default format for all handlers
        rotation: loguru rotation setting (size string or bytes)
        retention: loguru retention setting
        compression: Compression for rotated files, or None

    Raises:
        ValueError: If log_level is not a valid level
    """
    level = _normalize_level(log_level)

    logger.remove()

    if console:
        logger.add(
            sys.stderr,
            level=level,
            format=format_string or DEFAULT_CONSOLE_FORMAT,
            colorize=True,
        )

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(log_path),
            level=level,
            format=format_string or DEFAULT_FILE_FORMAT,
            rotation=rotation,
            retention=retention,
            compression=compression,
            encoding="utf-8",
        )


def get_logger():
    """Return the shared loguru logger."""
    return logger


def log_context(**kwargs: Any) -> Dict[str, Any]:
    """
    Build a context dict for logger.bind().

    Example:
        >>> log = get_logger().bind(**log_context(uuid="1234", serial="S1"))
    """
    return dict(kwargs)
