"""
Reconciliation Orchestrator.

Drives one sync run through its states:

    INIT -> ENSURE_TARGET_SCHEMA -> PLAN_TABLES -> APPLY_TABLES
         -> PLAN_VIEWS -> APPLY_VIEWS -> PRUNE_ORPHANS
         -> ASSERT_CONSISTENCY -> DONE

Each relation goes through Decide -> [Drop] -> [CopyStructure] ->
[CopyData] -> Verify. Failures of one relation are recorded on the
RunResult and never stop the others; only an unset comparison strategy,
an unreadable catalog or a target schema that cannot be created abort
the run.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from functools import partial
from typing import Any, TypeVar

from opentelemetry import trace

from utils.db import DatabaseError
from utils.tracing import add_span_attributes, trace_operation

from schema_mirror.compare import (
    ChangeDecision,
    ComparisonStrategy,
    DecisionKind,
    decide,
    summarize,
    verify_table,
)
from schema_mirror.config import SyncConfig
from schema_mirror.errors import (
    CatalogUnavailable,
    ConnectionLost,
    ConsistencyMismatch,
    LedgerWriteError,
    RelationTransferFailed,
    SchemaCreationFailed,
    SchemaMirrorError,
)
from schema_mirror.snapshot import (
    RelationKind,
    SchemaSnapshot,
    attach_checksums,
    empty_snapshot,
    read_snapshot,
)
from schema_mirror.transfer import ArtifactPaths, TransferStrategy

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Errors that end one relation's cycle without ending the run
RELATION_ERRORS = (DatabaseError, SchemaMirrorError, OSError)


class RunState(Enum):
    INIT = "init"
    ENSURE_TARGET_SCHEMA = "ensure_target_schema"
    PLAN_TABLES = "plan_tables"
    APPLY_TABLES = "apply_tables"
    PLAN_VIEWS = "plan_views"
    APPLY_VIEWS = "apply_views"
    PRUNE_ORPHANS = "prune_orphans"
    ASSERT_CONSISTENCY = "assert_consistency"
    DONE = "done"


@dataclass
class RelationOutcome:
    """What happened to one relation during the run."""

    name: str
    kind: str
    decision: str
    status: str  # synced, unchanged, removed, failed
    rows: int | None = None
    duration: float | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind,
            "decision": self.decision,
            "status": self.status,
            "rows": self.rows,
            "duration_seconds": round(self.duration, 3) if self.duration is not None else None,
            "error": self.error,
        }


@dataclass
class RunResult:
    """Accumulated outcome of a run; exit_code reflects every recorded error."""

    source_schema: str
    target_schema: str
    strategy: str
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None
    decisions: list[ChangeDecision] = field(default_factory=list)
    outcomes: list[RelationOutcome] = field(default_factory=list)
    synced: list[str] = field(default_factory=list)
    transferred: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    errors: list[SchemaMirrorError] = field(default_factory=list)
    mismatches: list[ConsistencyMismatch] = field(default_factory=list)
    verifications: list[dict[str, Any]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors and not self.mismatches

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1

    @property
    def duration(self) -> float | None:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def summary_line(self) -> str:
        counts = summarize(self.decisions)
        status = "OK" if self.success else "FAILED"
        return (
            f"{status}: {self.source_schema} -> {self.target_schema} "
            f"[{self.strategy}] created={counts['create']} replaced={counts['replace']} "
            f"unchanged={counts['unchanged']} removed={counts['remove']} "
            f"skipped={len(self.skipped)} errors={len(self.errors)} "
            f"mismatches={len(self.mismatches)}"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_schema": self.source_schema,
            "target_schema": self.target_schema,
            "strategy": self.strategy,
            "success": self.success,
            "exit_code": self.exit_code,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": self.duration,
            "decisions": [d.to_dict() for d in self.decisions],
            "decision_counts": summarize(self.decisions),
            "relations": [o.to_dict() for o in self.outcomes],
            "synced": list(self.synced),
            "skipped": list(self.skipped),
            "errors": [
                {"relation": getattr(e, "name", None), "type": type(e).__name__, "message": str(e)}
                for e in self.errors
            ],
            "verifications": list(self.verifications),
            "warnings": list(self.warnings),
        }


class SchemaMirror:
    """
    Runs one reconciliation of a target schema against a source schema.

    Args:
        config: Run configuration
        source: Session on the source schema
        target: Session on the target schema
        strategy: Transfer strategy bound to the same sessions
        ledger: ResumeLedger or DisabledLedger
        metrics: Optional SyncMetrics
    """

    def __init__(
        self,
        config: SyncConfig,
        source,
        target,
        strategy: TransferStrategy,
        ledger,
        metrics=None,
    ):
        self.config = config
        self.source = source
        self.target = target
        self.strategy = strategy
        self.ledger = ledger
        self.metrics = metrics
        self._state = RunState.INIT
        # Kind of the object currently holding a name on the target, per relation in flight
        self._occupants: dict[str, RelationKind] = {}

    @property
    def state(self) -> RunState:
        return self._state

    def _enter(self, state: RunState) -> None:
        logger.debug(f"State {self._state.name} -> {state.name}")
        self._state = state
        add_span_attributes(state=state.value)

    # -- planning -----------------------------------------------------------

    def _snapshots(self, strategy: ComparisonStrategy) -> tuple[SchemaSnapshot, SchemaSnapshot, list[str]]:
        try:
            source = read_snapshot(self.source)
            if self.target.schema_exists():
                target = read_snapshot(self.target)
            else:
                target = empty_snapshot(self.target.schema)
        except ConnectionLost as e:
            raise CatalogUnavailable(
                self.source.schema if e.side == "source" else self.target.schema, str(e)
            ) from e

        # Ledger entries are skipped outright: not decided, not transferred
        skipped = sorted(
            name for name in self.ledger.entries() if name in source or name in target
        )
        if skipped:
            logger.info(f"Skipping {len(skipped)} relation(s) listed in the resume ledger")
            source = source.without(skipped)
            target = target.without(skipped)

        if strategy is ComparisonStrategy.BY_CHECKSUM:
            shared = {t.name for t in source.tables()} & {t.name for t in target.tables()}
            source = attach_checksums(self.source, source, shared)
            target = attach_checksums(self.target, target, shared)

        return source, target, skipped

    def plan(self) -> list[ChangeDecision]:
        """
        Decide without changing anything

        Raises:
            AmbiguousComparisonStrategy: If no comparison strategy is configured
            CatalogUnavailable: If either catalog cannot be read
        """
        strategy = ComparisonStrategy.require(self.config.comparison)
        source, target, _ = self._snapshots(strategy)
        return decide(source, target, strategy)

    # -- run --------------------------------------------------------------

    def run(self) -> RunResult:
        """
        Execute the full state machine

        Returns:
            RunResult; check `success` / `exit_code`

        Raises:
            AmbiguousComparisonStrategy: Before any statement is issued
            SchemaCreationFailed: If the target schema cannot be created
            CatalogUnavailable: If either catalog cannot be read
        """
        self._enter(RunState.INIT)
        strategy = ComparisonStrategy.require(self.config.comparison)

        result = RunResult(
            source_schema=self.source.schema,
            target_schema=self.target.schema,
            strategy=strategy.value,
        )

        with trace_operation(
            "schema_mirror.run",
            kind=trace.SpanKind.INTERNAL,
            source_schema=self.source.schema,
            target_schema=self.target.schema,
            comparison=strategy.value,
            transfer=self.strategy.name,
        ) as span:
            self._enter(RunState.ENSURE_TARGET_SCHEMA)
            self._ensure_target_schema()

            self._enter(RunState.PLAN_TABLES)
            source, target, result.skipped = self._snapshots(strategy)
            decisions = decide(source, target, strategy)
            result.decisions = decisions
            for decision in decisions:
                if decision.warning:
                    logger.warning(decision.warning)
                    result.warnings.append(decision.warning)

            tables = [
                d for d in decisions
                if d.kind is RelationKind.TABLE and d.decision is not DecisionKind.REMOVE
            ]
            logger.info(f"Planned {len(tables)} table(s): {summarize(tables)}")

            self._enter(RunState.APPLY_TABLES)
            for decision in tables:
                self._apply(decision, result)

            self._enter(RunState.PLAN_VIEWS)
            views = []
            if self.config.sync_views:
                views = [
                    d for d in decisions
                    if d.kind is RelationKind.VIEW and d.decision is not DecisionKind.REMOVE
                ]
                logger.info(f"Planned {len(views)} view(s): {summarize(views)}")
            else:
                logger.info("View synchronization disabled")

            self._enter(RunState.APPLY_VIEWS)
            for decision in views:
                self._apply(decision, result)

            self._enter(RunState.PRUNE_ORPHANS)
            for decision in decisions:
                if decision.decision is not DecisionKind.REMOVE:
                    continue
                if decision.kind is RelationKind.VIEW and not self.config.sync_views:
                    continue
                self._prune(decision, result)

            self._enter(RunState.ASSERT_CONSISTENCY)
            self._assert_consistency(result)

            self._enter(RunState.DONE)
            span.set_attribute("success", result.success)

        result.finished_at = datetime.now(UTC)
        if self.metrics:
            self.metrics.record_run(result.success)

        logger.info(result.summary_line())
        return result

    def _ensure_target_schema(self) -> None:
        try:
            if not self.target.schema_exists():
                logger.info(f"Target schema {self.target.schema} does not exist, creating it")
                self.target.create_schema()
            self.target.use_schema()
        except (DatabaseError, SchemaMirrorError) as e:
            raise SchemaCreationFailed(
                f"Cannot create target schema {self.target.schema}: {e}"
            ) from e

    # -- per relation -----------------------------------------------------

    def _reconnect(self, side: str) -> None:
        session = self.source if side == "source" else self.target
        session.reconnect()

    def _retrying_once(self, name: str, operation: Callable[[], T]) -> T:
        """
        Run operation; on a lost connection reconnect that side and run it
        once more. A second loss propagates.
        """
        try:
            return operation()
        except ConnectionLost as e:
            logger.warning(f"{e} while processing {name}; reconnecting and retrying once")
            self._reconnect(e.side)
            return operation()

    def _restore_foreign_key_checks(self) -> None:
        try:
            self.target.set_foreign_key_checks(True)
        except ConnectionLost:
            # A new connection starts with checks enabled
            logger.warning("Target connection lost while re-enabling foreign key checks")

    def _cycle(self, decision: ChangeDecision, result: RunResult) -> int | None:
        relation = decision.source
        suspend = self.config.suspend_foreign_key_checks

        if suspend:
            self.target.set_foreign_key_checks(False)
        try:
            occupant = self._occupants.get(decision.name)
            if occupant is not None:
                self.target.drop_relation(decision.name, occupant)
            # From here on a failed attempt may leave a partial copy behind
            self._occupants[decision.name] = relation.kind
            rows = self.strategy.transfer(relation)
        finally:
            if suspend:
                self._restore_foreign_key_checks()

        if relation.is_table:
            self._verify_row_count(decision, result)
        return rows

    def _verify_row_count(self, decision: ChangeDecision, result: RunResult) -> None:
        expected = decision.source.row_count
        if expected is None:
            return
        try:
            actual = self.target.count_rows(decision.name)
        except DatabaseError as e:
            logger.warning(f"Could not verify row count of {decision.name}: {e}")
            return
        if actual != expected:
            message = (
                f"{decision.name}: target has {actual} rows after transfer, "
                f"source snapshot had {expected}"
            )
            logger.warning(message)
            result.warnings.append(message)

    def _fail(
        self,
        decision: ChangeDecision,
        result: RunResult,
        error: SchemaMirrorError,
        duration: float | None = None,
    ) -> None:
        logger.error(f"Failed to {decision.decision.value} {decision.kind.value} {error}")
        result.errors.append(error)
        result.outcomes.append(RelationOutcome(
            name=decision.name,
            kind=decision.kind.value,
            decision=decision.decision.value,
            status="failed",
            duration=duration,
            error=str(error),
        ))
        if self.metrics:
            self.metrics.record_relation(
                decision.name, decision.kind.value, decision.decision.value,
                success=False, duration=duration,
            )

    def _mark_synced(self, name: str, result: RunResult) -> None:
        result.synced.append(name)
        try:
            self.ledger.record(name)
        except LedgerWriteError as e:
            logger.error(f"{e}; {name} will be reprocessed by a resumed run")
            result.errors.append(e)

    def _apply(self, decision: ChangeDecision, result: RunResult) -> None:
        name = decision.name

        if decision.decision is DecisionKind.UNCHANGED:
            logger.info(f"{decision.kind.value} {name}: unchanged ({decision.reason})")
            result.outcomes.append(RelationOutcome(
                name=name, kind=decision.kind.value, decision="unchanged", status="unchanged",
            ))
            if decision.kind is RelationKind.TABLE:
                self._mark_synced(name, result)
            if self.metrics:
                self.metrics.record_relation(name, decision.kind.value, "unchanged", success=True)
            return

        logger.info(f"{decision.kind.value} {name}: {decision.decision.value} ({decision.reason})")
        started = time.perf_counter()
        if decision.decision is DecisionKind.REPLACE:
            self._occupants[name] = decision.target.kind

        with trace_operation(
            "relation.cycle",
            relation=name,
            relation_kind=decision.kind.value,
            decision=decision.decision.value,
        ):
            try:
                rows = self._retrying_once(name, partial(self._cycle, decision, result))
            except RelationTransferFailed as e:
                self._fail(decision, result, e, time.perf_counter() - started)
                return
            except RELATION_ERRORS as e:
                self._fail(
                    decision, result, RelationTransferFailed(name, str(e)),
                    time.perf_counter() - started,
                )
                return
            finally:
                self._occupants.pop(name, None)

        duration = time.perf_counter() - started
        result.transferred.append(name)
        result.outcomes.append(RelationOutcome(
            name=name,
            kind=decision.kind.value,
            decision=decision.decision.value,
            status="synced",
            rows=rows,
            duration=duration,
        ))
        if decision.kind is RelationKind.TABLE:
            self._mark_synced(name, result)
        if self.metrics:
            self.metrics.record_relation(
                name, decision.kind.value, decision.decision.value,
                success=True, duration=duration, rows=rows,
            )

        rows_text = f", {rows} rows" if rows is not None else ""
        logger.info(f"{decision.kind.value} {name}: done in {duration:.2f}s{rows_text}")

    def _prune(self, decision: ChangeDecision, result: RunResult) -> None:
        name = decision.name
        logger.info(f"{decision.kind.value} {name}: remove ({decision.reason})")

        def drop():
            self.target.drop_relation(name, decision.target.kind)

        try:
            self._retrying_once(name, drop)
            removed = ArtifactPaths(self.config.workdir, name).remove()
        except RELATION_ERRORS as e:
            error = e if isinstance(e, RelationTransferFailed) else RelationTransferFailed(name, str(e))
            self._fail(decision, result, error)
            return

        if removed:
            logger.info(f"Removed {len(removed)} artifact file(s) of {name}")
        result.outcomes.append(RelationOutcome(
            name=name, kind=decision.kind.value, decision="remove", status="removed",
        ))
        if self.metrics:
            self.metrics.record_relation(name, decision.kind.value, "remove", success=True)

    def _assert_consistency(self, result: RunResult) -> None:
        for name in result.synced:
            try:
                comparison = self._retrying_once(
                    name, partial(verify_table, self.source, self.target, name)
                )
            except RELATION_ERRORS as e:
                error = RelationTransferFailed(name, f"consistency check failed: {e}")
                logger.error(str(error))
                result.errors.append(error)
                continue

            result.verifications.append(comparison)
            if self.metrics:
                self.metrics.record_consistency(
                    name, comparison["source_count"], comparison["target_count"]
                )

            if not comparison["match"]:
                mismatch = ConsistencyMismatch(
                    name, comparison["source_count"], comparison["target_count"]
                )
                logger.error(str(mismatch))
                result.mismatches.append(mismatch)
            else:
                logger.debug(f"{name}: {comparison['source_count']} rows on both sides")
