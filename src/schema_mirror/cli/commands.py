"""
CLI command implementations.

- sync: reconcile the target schema with the source schema
- plan: print the decisions a sync would take
- report: render a JSON run report written by `sync --report`

Each command returns the process exit status.
"""

import argparse
import json
import logging
from pathlib import Path

from utils.metrics import MetricsPublisher, SyncMetrics
from utils.tracing import initialize_tracing

from schema_mirror.compare import ComparisonStrategy
from schema_mirror.config import FlatFileDialect, SyncConfig
from schema_mirror.ledger import open_ledger
from schema_mirror.orchestrator import SchemaMirror
from schema_mirror.report import (
    export_report_csv,
    export_report_json,
    format_plan_console,
    format_report_console,
    generate_report,
)
from schema_mirror.session import MySQLSession
from schema_mirror.snapshot import RelationKind
from schema_mirror.transfer import build_strategy

from .credentials import get_connection_settings

logger = logging.getLogger(__name__)


def build_config(args: argparse.Namespace, vault_client=None) -> SyncConfig:
    """
    Turn parsed arguments into a SyncConfig

    Raises:
        AmbiguousComparisonStrategy: If no comparison flag was given
        ValueError: For invalid connection or dialect settings
    """
    comparison = ComparisonStrategy.from_flags(
        by_date=args.by_date,
        by_count=args.by_count,
        by_checksum=args.by_checksum,
        force=args.force,
    )
    source, target = get_connection_settings(args, vault_client)

    options = {}
    if getattr(args, "fields_terminated_by", None) is not None:
        options["dialect"] = FlatFileDialect(
            field_delimiter=args.fields_terminated_by,
            enclosure=args.fields_enclosed_by,
            line_terminator=args.lines_terminated_by,
            null_sentinel=args.null_sentinel,
        )

    return SyncConfig(
        source=source,
        target=target,
        comparison=comparison,
        workdir=Path(args.workdir),
        native=getattr(args, "native", False),
        sync_views=args.views,
        suspend_foreign_key_checks=getattr(args, "no_fk_checks", False),
        resume=not args.no_resume,
        purge_artifacts=getattr(args, "purge_artifacts", False),
        batch_size=getattr(args, "batch_size", 1000),
        mysqldump_path=getattr(args, "mysqldump", "mysqldump"),
        **options,
    )


def _open_sessions(config: SyncConfig) -> tuple[MySQLSession, MySQLSession]:
    source = MySQLSession.open(config.source, "source")
    try:
        target = MySQLSession.open(config.target, "target")
    except Exception:
        source.close()
        raise
    logger.info(
        f"Connected to source {config.source.describe()} and target {config.target.describe()}"
    )
    return source, target


def cmd_sync(args: argparse.Namespace) -> int:
    """
    Run one sync

    Args:
        args: Parsed command-line arguments

    Returns:
        0 on full success, 1 if any relation failed or a table is inconsistent
    """
    config = build_config(args)

    initialize_tracing(otlp_endpoint=args.otlp_endpoint)
    if args.metrics_port:
        MetricsPublisher(port=args.metrics_port).start()
    metrics = SyncMetrics()

    logger.info(
        f"Starting sync of {config.source_schema} into {config.target_schema} "
        f"(comparison: {config.comparison.value}, transfer: "
        f"{'native' if config.native else 'bulk-file'})"
    )

    ledger = open_ledger(config.workdir, config.source_schema, resume=config.resume)
    source, target = _open_sessions(config)
    try:
        strategy = build_strategy(source, target, config)
        mirror = SchemaMirror(config, source, target, strategy, ledger, metrics)
        result = mirror.run()
    finally:
        source.close()
        target.close()

    print(result.summary_line())

    if args.report:
        report = generate_report(result.to_dict())
        export_report_json(report, args.report)
        logger.info(f"Run report written to {args.report}")

    return result.exit_code


def cmd_plan(args: argparse.Namespace) -> int:
    """
    Print the decisions a sync would take

    Args:
        args: Parsed command-line arguments

    Returns:
        0; failures raise
    """
    config = build_config(args)
    ledger = open_ledger(config.workdir, config.source_schema, resume=config.resume)

    source, target = _open_sessions(config)
    try:
        strategy = build_strategy(source, target, config)
        mirror = SchemaMirror(config, source, target, strategy, ledger)
        decisions = mirror.plan()
    finally:
        source.close()
        target.close()

    if not config.sync_views:
        decisions = [d for d in decisions if d.kind is not RelationKind.VIEW]

    payload = [d.to_dict() for d in decisions]
    if args.format == "json":
        print(json.dumps(payload, indent=2))
    else:
        print(format_plan_console(payload))
    return 0


def cmd_report(args: argparse.Namespace) -> int:
    """
    Render a report written by `sync --report`

    Args:
        args: Parsed command-line arguments

    Returns:
        0 when rendered, 1 when the input cannot be read, 2 when an output
        file is required but missing
    """
    logger.info(f"Loading run report from {args.input}")

    if args.format in ("csv", "json") and not args.output:
        logger.error(f"Output file required for {args.format.upper()} format")
        return 2

    try:
        with open(args.input) as f:
            report = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Failed to read report {args.input}: {e}")
        return 1

    if args.format == "console":
        print(format_report_console(report))
    elif args.format == "csv":
        export_report_csv(report, args.output)
        logger.info(f"Report exported to {args.output}")
    elif args.format == "json":
        export_report_json(report, args.output)
        logger.info(f"Report exported to {args.output}")

    return 0
