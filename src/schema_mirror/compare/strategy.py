"""
Comparison strategies for deciding whether a shared table must be replaced.
"""

from enum import Enum

from schema_mirror.errors import AmbiguousComparisonStrategy


class ComparisonStrategy(Enum):
    """How a table present on both sides is judged stale."""

    BY_MODIFICATION_DATE = "date"
    BY_ROW_COUNT = "count"
    BY_CHECKSUM = "checksum"
    FORCE = "force"

    @classmethod
    def from_flags(
        cls,
        by_date: bool = False,
        by_count: bool = False,
        by_checksum: bool = False,
        force: bool = False,
    ) -> "ComparisonStrategy":
        """
        Resolve the one selected strategy from boolean flags

        Raises:
            AmbiguousComparisonStrategy: If no flag or more than one flag is set
        """
        selected = [
            strategy
            for strategy, flag in (
                (cls.BY_MODIFICATION_DATE, by_date),
                (cls.BY_ROW_COUNT, by_count),
                (cls.BY_CHECKSUM, by_checksum),
                (cls.FORCE, force),
            )
            if flag
        ]

        if not selected:
            raise AmbiguousComparisonStrategy(
                "No comparison strategy selected; choose one of "
                "by-date, by-count, by-checksum or force"
            )
        if len(selected) > 1:
            names = ", ".join(s.value for s in selected)
            raise AmbiguousComparisonStrategy(
                f"Several comparison strategies selected ({names}); choose exactly one"
            )
        return selected[0]

    @classmethod
    def require(cls, strategy: "ComparisonStrategy | None") -> "ComparisonStrategy":
        """Return strategy unchanged, or raise if it is unset."""
        if not isinstance(strategy, cls):
            raise AmbiguousComparisonStrategy(
                "Comparison strategy is unset; a run cannot start without one"
            )
        return strategy
