"""
Structured logging configuration for schema-mirror

Provides console and JSON formatted logging with relation context and an
optional rotating log file.

Usage:
    from utils.logging import setup_logging, verbosity_to_level

    # Setup logging once at CLI startup
    setup_logging(level=verbosity_to_level(args.verbose), json_format=False)

    # Modules use the standard logger
    logger = logging.getLogger(__name__)
    logger.info("Table copied", extra={"relation": "orders", "rows": 1200})
"""

from .config import (
    configure_from_env,
    get_logger,
    setup_logging,
    shutdown_logging,
    verbosity_to_level,
)
from .formatters import ConsoleFormatter, JSONFormatter

__all__ = [
    "setup_logging",
    "shutdown_logging",
    "get_logger",
    "configure_from_env",
    "verbosity_to_level",
    "JSONFormatter",
    "ConsoleFormatter",
]
