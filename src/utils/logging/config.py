"""
Logging configuration for schema-mirror.

The diagnostic stream is stderr; stdout is reserved for the one-line run
summary and for `plan` output, so both can be piped independently.
"""

import logging
import logging.handlers
import os
import sys

from .formatters import ConsoleFormatter, JSONFormatter

APP_NAME = "schema-mirror"

# Libraries that are chatty at INFO/DEBUG
NOISY_LOGGERS = ("urllib3", "requests", "pymysql", "opentelemetry")


def verbosity_to_level(verbose: int) -> str:
    """
    Map the CLI -v count to a log level.

    0 -> WARNING (errors and warnings only), 1 -> INFO (progress per phase
    and relation), 2 or more -> DEBUG.
    """
    if verbose <= 0:
        return "WARNING"
    if verbose == 1:
        return "INFO"
    return "DEBUG"


def _build_formatter(json_format: bool, for_file: bool) -> logging.Formatter:
    if json_format:
        return JSONFormatter(
            include_timestamp=True,
            include_hostname=True,
            app_name=APP_NAME,
        )
    if for_file:
        return ConsoleFormatter(use_colors=False)
    return ConsoleFormatter(use_colors=True)


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    console_output: bool = True,
    json_format: bool = False,
    max_bytes: int = 50 * 1024 * 1024,  # 50MB
    backup_count: int = 5,
) -> None:
    """
    Configure logging for the application

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file (if None, file logging is disabled)
        console_output: Whether to log to stderr
        json_format: Use JSON format for both console and file logs
        max_bytes: Maximum log file size before rotation
        backup_count: Number of rotated log files to keep
    """
    numeric_level = getattr(logging, level.upper(), logging.WARNING)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(numeric_level)
        console_handler.setFormatter(_build_formatter(json_format, for_file=False))
        root_logger.addHandler(console_handler)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            filename=log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(_build_formatter(json_format, for_file=True))
        root_logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    logging.getLogger(__name__).debug(
        f"Logging initialized: level={level}, file={log_file or 'none'}, "
        f"console={console_output}, json={json_format}"
    )


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance (typically for __name__)."""
    return logging.getLogger(name)


def shutdown_logging() -> None:
    """
    Flush and close every root handler.

    Called by the CLI on exit so the rotating file handler releases its
    file descriptor.
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        try:
            handler.flush()
            handler.close()
        except (OSError, ValueError) as e:
            sys.stderr.write(f"Failed to close log handler {handler!r}: {e}\n")
        root_logger.removeHandler(handler)


def configure_from_env() -> None:
    """
    Configure logging from environment variables

    Environment variables:
        LOG_LEVEL: Log level (default: WARNING)
        LOG_FILE: Log file path (default: none)
        LOG_JSON: Use JSON format (default: false)
        LOG_CONSOLE: Enable console output (default: true)
    """
    truthy = ("true", "1", "yes")

    setup_logging(
        level=os.getenv("LOG_LEVEL", "WARNING"),
        log_file=os.getenv("LOG_FILE") or None,
        console_output=os.getenv("LOG_CONSOLE", "true").lower() in truthy,
        json_format=os.getenv("LOG_JSON", "false").lower() in truthy,
    )
