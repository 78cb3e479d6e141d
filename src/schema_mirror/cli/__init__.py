"""
Command-line interface for schema-mirror.

Available commands:
- sync: Bring the target schema in line with the source schema
- plan: Show the decisions a sync would take
- report: Render a JSON run report

Exit status: 0 on success, 1 when a relation failed, a table is
inconsistent or the run aborted, 2 on configuration or usage errors.
"""

import logging
import os
import sys

import requests

from utils.db import DatabaseError
from utils.logging import configure_from_env, setup_logging, shutdown_logging, verbosity_to_level
from utils.tracing import shutdown_tracing

from schema_mirror.errors import AmbiguousComparisonStrategy, SchemaMirrorError

from .commands import build_config, cmd_plan, cmd_report, cmd_sync
from .credentials import get_connection_settings
from .parser import create_parser

logger = logging.getLogger(__name__)

LOGGING_ENV_VARS = ("LOG_LEVEL", "LOG_FILE", "LOG_JSON", "LOG_CONSOLE")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2

COMMANDS = {
    'sync': cmd_sync,
    'plan': cmd_plan,
    'report': cmd_report,
}


def _configure_logging(args) -> None:
    explicit = args.verbose or args.log_file or args.log_format != 'text'
    if not explicit and any(os.getenv(name) for name in LOGGING_ENV_VARS):
        configure_from_env()
        return
    setup_logging(
        level=verbosity_to_level(args.verbose),
        log_file=args.log_file,
        json_format=args.log_format == 'json',
    )


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the schema-mirror CLI"""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help(sys.stderr)
        return EXIT_USAGE

    _configure_logging(args)

    try:
        return COMMANDS[args.command](args)
    except (AmbiguousComparisonStrategy, ValueError) as e:
        logger.error(str(e))
        print(f"schema-mirror {args.command}: error: {e}", file=sys.stderr)
        return EXIT_USAGE
    except (SchemaMirrorError, DatabaseError, requests.RequestException, RuntimeError) as e:
        logger.error(f"{args.command} aborted: {e}")
        return EXIT_FAILURE
    except KeyboardInterrupt:
        logger.error("Interrupted")
        return 130
    finally:
        shutdown_tracing()
        shutdown_logging()


__all__ = [
    'main',
    'build_config',
    'get_connection_settings',
    'cmd_sync',
    'cmd_plan',
    'cmd_report',
    'create_parser',
]


if __name__ == '__main__':
    sys.exit(main())
