"""
Metrics for schema sync runs.

Tracks per-relation outcomes, transfer durations, rows moved and the
consistency assertion, labelled by relation name.
"""

import logging
import time
from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
)

logger = logging.getLogger(__name__)


class SyncMetrics:
    """
    Metrics for one or more sync runs

    Pass a private CollectorRegistry in tests so metric names do not clash
    with the global registry.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or REGISTRY

        self.relations_processed_total = Counter(
            "schema_mirror_relations_processed_total",
            "Relations processed by kind, decision and outcome",
            ["kind", "decision", "status"],
            registry=self.registry,
        )

        self.transfer_duration_seconds = Histogram(
            "schema_mirror_transfer_duration_seconds",
            "Duration of one relation transfer in seconds",
            ["relation"],
            buckets=(0.1, 0.5, 1, 5, 10, 30, 60, 300, 900, 3600),
            registry=self.registry,
        )

        self.rows_transferred_total = Counter(
            "schema_mirror_rows_transferred_total",
            "Rows moved from source to target",
            ["relation"],
            registry=self.registry,
        )

        self.consistency_mismatch_total = Counter(
            "schema_mirror_consistency_mismatch_total",
            "Row count mismatches found by the final assertion",
            ["relation"],
            registry=self.registry,
        )

        self.row_count_difference = Gauge(
            "schema_mirror_row_count_difference",
            "Source minus target row count at assertion time",
            ["relation"],
            registry=self.registry,
        )

        self.last_run_success = Gauge(
            "schema_mirror_last_run_success",
            "1 if the last run succeeded, 0 otherwise",
            registry=self.registry,
        )

        self.last_run_timestamp = Gauge(
            "schema_mirror_last_run_timestamp",
            "Unix timestamp of the last completed run",
            registry=self.registry,
        )

    def record_relation(
        self,
        relation: str,
        kind: str,
        decision: str,
        success: bool,
        duration: float | None = None,
        rows: int | None = None,
    ) -> None:
        """
        Record the outcome of one relation's cycle

        Args:
            relation: Relation name
            kind: "table" or "view"
            decision: Lower-case decision name (create, replace, ...)
            success: Whether the cycle completed without error
            duration: Transfer duration in seconds, when a transfer ran
            rows: Rows moved, when known
        """
        status = "success" if success else "failed"
        self.relations_processed_total.labels(
            kind=kind, decision=decision, status=status
        ).inc()

        if duration is not None:
            self.transfer_duration_seconds.labels(relation=relation).observe(duration)

        if rows:
            self.rows_transferred_total.labels(relation=relation).inc(rows)

    def record_consistency(
        self,
        relation: str,
        source_count: int,
        target_count: int,
    ) -> None:
        """Record one assertion result; mismatches also bump the counter."""
        difference = source_count - target_count
        self.row_count_difference.labels(relation=relation).set(difference)

        if difference != 0:
            self.consistency_mismatch_total.labels(relation=relation).inc()
            logger.debug(
                f"Consistency mismatch recorded: relation={relation}, "
                f"difference={difference}"
            )

    def record_run(self, success: bool) -> None:
        self.last_run_success.set(1 if success else 0)
        self.last_run_timestamp.set(time.time())
