"""
Row count comparison results.

These dictionaries back the post-run consistency assertion and feed the
run report.
"""

from datetime import UTC, datetime
from typing import Any


def compare_row_counts(
    table_name: str,
    source_count: int,
    target_count: int
) -> dict[str, Any]:
    """
    Compare row counts between source and target tables

    Args:
        table_name: Name of the table being compared
        source_count: Row count from source database
        target_count: Row count from target database

    Returns:
        Dictionary containing comparison results:
        - table: Table name
        - source_count: Source row count
        - target_count: Target row count
        - match: Boolean indicating if counts match
        - difference: Difference (target - source)
        - status: MATCH or MISMATCH
        - timestamp: ISO format timestamp

    Raises:
        ValueError: If row counts are negative
    """
    if source_count < 0 or target_count < 0:
        raise ValueError(
            f"Row counts cannot be negative: source={source_count}, target={target_count}"
        )

    match = source_count == target_count

    return {
        "table": table_name,
        "source_count": source_count,
        "target_count": target_count,
        "match": match,
        "difference": target_count - source_count,
        "status": "MATCH" if match else "MISMATCH",
        "timestamp": datetime.now(UTC).isoformat(),
    }


def verify_table(source_session, target_session, table_name: str) -> dict[str, Any]:
    """
    Re-count one table on both sides and compare

    Args:
        source_session: Session on the source schema
        target_session: Session on the target schema
        table_name: Table to verify

    Returns:
        compare_row_counts result
    """
    source_count = source_session.count_rows(table_name)
    target_count = target_session.count_rows(table_name)
    return compare_row_counts(table_name, source_count, target_count)
