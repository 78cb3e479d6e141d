"""
Change Detector.

Classifies every relation of a source/target snapshot pair as CREATE,
REPLACE, UNCHANGED or REMOVE. Pure: no database access, no side effects.
"""

from collections import Counter
from dataclasses import dataclass
from enum import Enum

from schema_mirror.snapshot.models import (
    RelationDescriptor,
    RelationKind,
    SchemaSnapshot,
)

from .strategy import ComparisonStrategy


class DecisionKind(Enum):
    CREATE = "create"
    REPLACE = "replace"
    UNCHANGED = "unchanged"
    REMOVE = "remove"


@dataclass(frozen=True)
class ChangeDecision:
    """What to do with one relation, and why."""

    name: str
    kind: RelationKind
    decision: DecisionKind
    source: RelationDescriptor | None
    target: RelationDescriptor | None
    reason: str
    warning: str | None = None

    @property
    def needs_transfer(self) -> bool:
        return self.decision in (DecisionKind.CREATE, DecisionKind.REPLACE)

    @property
    def needs_drop(self) -> bool:
        return self.decision in (DecisionKind.REPLACE, DecisionKind.REMOVE)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "kind": self.kind.value,
            "decision": self.decision.value,
            "reason": self.reason,
            "warning": self.warning,
        }


def _by_modification_date(source: RelationDescriptor, target: RelationDescriptor):
    if source.updated_at is None or target.updated_at is None:
        side, missing = (
            ("source", source) if source.updated_at is None else ("target", target)
        )
        return (
            DecisionKind.REPLACE,
            f"{side} modification time unknown",
            f"{source.name}: {side} has no modification time "
            f"(engine {missing.engine or 'unknown'}); replacing since freshness "
            "cannot be proven",
        )
    if source.updated_at > target.updated_at:
        return (
            DecisionKind.REPLACE,
            f"source modified {source.updated_at.isoformat()} after target "
            f"{target.updated_at.isoformat()}",
            None,
        )
    return DecisionKind.UNCHANGED, "target is not older than source", None


def _by_row_count(source: RelationDescriptor, target: RelationDescriptor):
    if source.row_count != target.row_count:
        return (
            DecisionKind.REPLACE,
            f"row count {target.row_count} -> {source.row_count}",
            None,
        )
    return DecisionKind.UNCHANGED, f"row counts equal ({source.row_count})", None


def _by_checksum(source: RelationDescriptor, target: RelationDescriptor):
    if source.checksum is None or target.checksum is None:
        return (
            DecisionKind.REPLACE,
            "checksum unavailable",
            f"{source.name}: checksum unavailable; replacing because equality "
            "cannot be proven",
        )
    if source.checksum != target.checksum:
        return DecisionKind.REPLACE, "checksums differ", None
    return DecisionKind.UNCHANGED, "checksums equal", None


def _force(source: RelationDescriptor, target: RelationDescriptor):
    return DecisionKind.REPLACE, "forced", None


TABLE_RULES = {
    ComparisonStrategy.BY_MODIFICATION_DATE: _by_modification_date,
    ComparisonStrategy.BY_ROW_COUNT: _by_row_count,
    ComparisonStrategy.BY_CHECKSUM: _by_checksum,
    ComparisonStrategy.FORCE: _force,
}


def _decide_shared(
    source: RelationDescriptor,
    target: RelationDescriptor,
    strategy: ComparisonStrategy,
) -> ChangeDecision:
    if source.kind is not target.kind:
        outcome = (
            DecisionKind.REPLACE,
            f"{target.kind.value} on target, {source.kind.value} on source",
            None,
        )
    elif source.is_view:
        if strategy is ComparisonStrategy.FORCE:
            outcome = (DecisionKind.REPLACE, "forced", None)
        elif source.definition != target.definition:
            outcome = (DecisionKind.REPLACE, "view definition differs", None)
        else:
            outcome = (DecisionKind.UNCHANGED, "view definition equal", None)
    else:
        outcome = TABLE_RULES[strategy](source, target)

    decision, reason, warning = outcome
    return ChangeDecision(
        name=source.name,
        kind=source.kind,
        decision=decision,
        source=source,
        target=target,
        reason=reason,
        warning=warning,
    )


def decide(
    source: SchemaSnapshot,
    target: SchemaSnapshot,
    strategy: ComparisonStrategy,
) -> list[ChangeDecision]:
    """
    Decide what to do with every relation on either side

    Args:
        source: Snapshot of the source schema
        target: Snapshot of the target schema
        strategy: How shared tables are compared

    Returns:
        Table decisions followed by view decisions, each group ordered by
        name. A relation only on the target is REMOVE and is grouped under
        the kind it has there.

    Raises:
        AmbiguousComparisonStrategy: If strategy is unset
    """
    strategy = ComparisonStrategy.require(strategy)

    decisions = []
    for name in source.names() | target.names():
        source_rel = source.get(name)
        target_rel = target.get(name)

        if target_rel is None:
            decisions.append(ChangeDecision(
                name=name,
                kind=source_rel.kind,
                decision=DecisionKind.CREATE,
                source=source_rel,
                target=None,
                reason="absent from target",
            ))
        elif source_rel is None:
            decisions.append(ChangeDecision(
                name=name,
                kind=target_rel.kind,
                decision=DecisionKind.REMOVE,
                source=None,
                target=target_rel,
                reason="absent from source",
            ))
        else:
            decisions.append(_decide_shared(source_rel, target_rel, strategy))

    kind_order = {RelationKind.TABLE: 0, RelationKind.VIEW: 1}
    decisions.sort(key=lambda d: (kind_order[d.kind], d.name))
    return decisions


def summarize(decisions: list[ChangeDecision]) -> dict[str, int]:
    """Count decisions per kind, e.g. {"create": 2, "replace": 1, ...}."""
    counts = Counter(d.decision for d in decisions)
    return {kind.value: counts.get(kind, 0) for kind in DecisionKind}
