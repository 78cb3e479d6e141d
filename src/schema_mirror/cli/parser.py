"""
Command-line argument parser configuration.

Defines the `sync`, `plan` and `report` commands of the schema-mirror CLI
and their options.
"""

import argparse

from schema_mirror.config import DEFAULT_BATCH_SIZE

EPILOG = """
Examples:
  # Bring analytics_copy in line with analytics, comparing row counts
  schema-mirror sync --source-database analytics --target-database analytics_copy --by-count

  # Full copy without foreign key checks, dumping with mysqldump --tab
  schema-mirror sync --source-database shop --target-host replica --force --native --no-fk-checks

  # Show what a sync would do
  schema-mirror plan --source-database shop --target-host replica --by-date

  # Use Vault for credentials and write a JSON run report
  schema-mirror sync --use-vault --source-database shop --by-checksum --report run.json

  # Render a previous run report
  schema-mirror report --input run.json --format console
"""


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1: {number}")
    return number


def _separator(value: str) -> str:
    # Accept the escapes mysqldump understands
    return value.encode("utf-8").decode("unicode_escape")


def _add_connection_arguments(parser: argparse.ArgumentParser) -> None:
    source = parser.add_argument_group("source database")
    source.add_argument('--source-host', help='Source MySQL host (env: MIRROR_SOURCE_HOST)')
    source.add_argument('--source-port', type=int, help='Source MySQL port (env: MIRROR_SOURCE_PORT)')
    source.add_argument('--source-user', help='Source MySQL user (env: MIRROR_SOURCE_USER)')
    source.add_argument('--source-password', help='Source MySQL password (env: MIRROR_SOURCE_PASSWORD)')
    source.add_argument('--source-database', help='Source schema (env: MIRROR_SOURCE_DATABASE)')

    target = parser.add_argument_group("target database")
    target.add_argument('--target-host', help='Target MySQL host (env: MIRROR_TARGET_HOST)')
    target.add_argument('--target-port', type=int, help='Target MySQL port (env: MIRROR_TARGET_PORT)')
    target.add_argument('--target-user', help='Target MySQL user (env: MIRROR_TARGET_USER)')
    target.add_argument('--target-password', help='Target MySQL password (env: MIRROR_TARGET_PASSWORD)')
    target.add_argument(
        '--target-database',
        help='Target schema (env: MIRROR_TARGET_DATABASE, default: source schema)'
    )

    parser.add_argument(
        '--use-vault',
        action='store_true',
        help='Fetch credentials from HashiCorp Vault (VAULT_ADDR, VAULT_TOKEN)'
    )


def _add_comparison_arguments(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        '--by-date',
        action='store_true',
        help='Replace tables modified more recently on the source'
    )
    group.add_argument(
        '--by-count',
        action='store_true',
        help='Replace tables whose row counts differ'
    )
    group.add_argument(
        '--by-checksum',
        action='store_true',
        help='Replace tables whose CHECKSUM TABLE values differ'
    )
    group.add_argument(
        '--force',
        action='store_true',
        help='Replace every table and view'
    )
    parser.add_argument(
        '--views',
        dest='views',
        action=argparse.BooleanOptionalAction,
        default=True,
        help='Synchronize views (default: on)'
    )
    parser.add_argument(
        '--workdir',
        default='.',
        help='Directory for .sql/.txt artifacts and the resume ledger (default: .)'
    )


def _add_observability_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        '--metrics-port',
        type=int,
        help='Expose Prometheus metrics on this port while running'
    )
    parser.add_argument(
        '--otlp-endpoint',
        help='Export traces to this OTLP gRPC endpoint (env: OTLP_ENDPOINT)'
    )


def create_parser() -> argparse.ArgumentParser:
    """
    Create and configure the argument parser for the CLI.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog='schema-mirror',
        description="Bring a target MySQL schema in line with a source schema",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=EPILOG,
    )

    parser.add_argument(
        '-v', '--verbose',
        action='count',
        default=0,
        help='Show progress (-v) or debug output (-vv)'
    )
    parser.add_argument(
        '--log-format',
        choices=['text', 'json'],
        default='text',
        help='Log output format (default: text)'
    )
    parser.add_argument(
        '--log-file',
        help='Also write logs to this file (rotated)'
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # ========== Sync command ==========
    sync_parser = subparsers.add_parser(
        'sync',
        help='Synchronize the target schema',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    _add_connection_arguments(sync_parser)
    _add_comparison_arguments(sync_parser)
    sync_parser.add_argument(
        '--no-fk-checks',
        action='store_true',
        help='Disable foreign key checks on the target while relations are copied'
    )
    sync_parser.add_argument(
        '--native',
        action='store_true',
        help='Dump data with mysqldump --tab and load it with LOAD DATA INFILE'
    )
    sync_parser.add_argument(
        '--batch-size',
        type=_positive_int,
        default=DEFAULT_BATCH_SIZE,
        help=f'Rows per INSERT batch when loading data files (default: {DEFAULT_BATCH_SIZE})'
    )
    sync_parser.add_argument(
        '--fields-terminated-by',
        type=_separator,
        default=',',
        help='Field delimiter of data files (default: ,)'
    )
    sync_parser.add_argument(
        '--fields-enclosed-by',
        type=_separator,
        default='"',
        help='Field enclosure of data files (default: ")'
    )
    sync_parser.add_argument(
        '--lines-terminated-by',
        type=_separator,
        default='\n',
        help='Line terminator of data files (default: \\n)'
    )
    sync_parser.add_argument(
        '--null-sentinel',
        default='\\N',
        help='Marker written for NULL values (default: \\N; --native always uses \\N)'
    )
    sync_parser.add_argument(
        '--no-resume',
        action='store_true',
        help='Ignore and do not write the resume ledger'
    )
    sync_parser.add_argument(
        '--purge-artifacts',
        action='store_true',
        help='Delete each data file after it has been loaded'
    )
    sync_parser.add_argument(
        '--report',
        help='Write a JSON run report to this file'
    )
    sync_parser.add_argument('--mysqldump', default='mysqldump', help='mysqldump executable')
    _add_observability_arguments(sync_parser)

    # ========== Plan command ==========
    plan_parser = subparsers.add_parser(
        'plan',
        help='Show the decisions a sync would take, without changing anything'
    )
    _add_connection_arguments(plan_parser)
    _add_comparison_arguments(plan_parser)
    plan_parser.add_argument(
        '--format',
        choices=['console', 'json'],
        default='console',
        help='Output format (default: console)'
    )
    plan_parser.add_argument(
        '--no-resume',
        action='store_true',
        help='Plan as if no relation had been processed before'
    )

    # ========== Report command ==========
    report_parser = subparsers.add_parser('report', help='Render a JSON run report')
    report_parser.add_argument(
        '--input',
        required=True,
        help='Input JSON report file'
    )
    report_parser.add_argument(
        '--format',
        choices=['console', 'json', 'csv'],
        default='console',
        help='Output format (default: console)'
    )
    report_parser.add_argument(
        '--output',
        help='Output file path (required for json and csv formats)'
    )

    return parser
