"""
Report generation for sync runs.

Turns the dictionary produced by RunResult.to_dict() into a report with
discrepancy analysis and actionable recommendations. The report is plain
data so it can be written as JSON and rendered again later by
`schema-mirror report`.
"""

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any


class DiscrepancyType:
    """Constants for discrepancy types."""

    ROW_COUNT_MISMATCH = "ROW_COUNT_MISMATCH"
    TRANSFER_FAILED = "TRANSFER_FAILED"
    LEDGER_WRITE_FAILED = "LEDGER_WRITE_FAILED"


# Error type names as they appear in RunResult.to_dict()["errors"]
_ERROR_ISSUE_TYPES = {
    "LedgerWriteError": DiscrepancyType.LEDGER_WRITE_FAILED,
}


def _create_row_count_discrepancy(
    verification: dict[str, Any],
    severity_func: Callable[[int, int], str],
) -> dict[str, Any]:
    """
    Create a row count mismatch discrepancy record.

    Args:
        verification: compare_row_counts result for one table
        severity_func: Function to calculate severity

    Returns:
        Discrepancy dictionary
    """
    difference = verification.get("difference", 0)
    severity = severity_func(verification.get("source_count", 0), abs(difference))

    return {
        "table": verification["table"],
        "issue_type": DiscrepancyType.ROW_COUNT_MISMATCH,
        "severity": severity,
        "details": {
            "source_count": verification.get("source_count", 0),
            "target_count": verification.get("target_count", 0),
            "missing_rows": abs(difference) if difference < 0 else 0,
            "extra_rows": difference if difference > 0 else 0,
        },
        "timestamp": verification.get("timestamp", datetime.now(UTC).isoformat()),
    }


def _create_error_discrepancy(error: dict[str, Any]) -> dict[str, Any]:
    issue_type = _ERROR_ISSUE_TYPES.get(error.get("type", ""), DiscrepancyType.TRANSFER_FAILED)
    return {
        "table": error.get("relation") or "",
        "issue_type": issue_type,
        "severity": "MEDIUM" if issue_type == DiscrepancyType.LEDGER_WRITE_FAILED else "HIGH",
        "details": {"error": error.get("message", "")},
        "timestamp": datetime.now(UTC).isoformat(),
    }


def generate_report(run: dict[str, Any]) -> dict[str, Any]:
    """
    Generate a report from a sync run

    Args:
        run: RunResult.to_dict() output

    Returns:
        Dictionary containing:
        - status: PASS, FAIL, or NO_DATA
        - source_schema / target_schema / strategy
        - decision_counts: create / replace / unchanged / remove
        - total_tables: Number of tables verified after the run
        - tables_matched / tables_mismatched: Verification outcome
        - relations_failed: Number of relations with errors
        - discrepancies: List of discrepancy details
        - warnings: Warnings raised while deciding and verifying
        - summary: Human-readable summary
        - recommendations: List of recommended actions
        - timestamp: Report generation timestamp
        - source_total_rows / target_total_rows
    """
    verifications = run.get("verifications", [])
    errors = run.get("errors", [])
    decisions = run.get("decisions", [])

    base = {
        "source_schema": run.get("source_schema"),
        "target_schema": run.get("target_schema"),
        "strategy": run.get("strategy"),
        "decision_counts": run.get("decision_counts", {}),
        "skipped": run.get("skipped", []),
        "warnings": run.get("warnings", []),
        "relations": run.get("relations", []),
        "duration_seconds": run.get("duration_seconds"),
        "timestamp": datetime.now(UTC).isoformat(),
    }

    if not verifications and not errors and not decisions:
        return {
            **base,
            "status": "NO_DATA",
            "total_tables": 0,
            "tables_matched": 0,
            "tables_mismatched": 0,
            "relations_failed": 0,
            "discrepancies": [],
            "summary": "No relations were processed",
            "recommendations": [],
            "source_total_rows": 0,
            "target_total_rows": 0,
        }

    tables_matched = 0
    tables_mismatched = 0
    discrepancies = []
    source_total_rows = 0
    target_total_rows = 0

    for verification in verifications:
        source_total_rows += verification.get("source_count", 0)
        target_total_rows += verification.get("target_count", 0)

        if verification.get("match", False):
            tables_matched += 1
        else:
            tables_mismatched += 1
            discrepancies.append(
                _create_row_count_discrepancy(verification, _calculate_severity)
            )

    for error in errors:
        discrepancies.append(_create_error_discrepancy(error))

    relations_failed = len({e.get("relation") for e in errors})
    status = "PASS" if not discrepancies else "FAIL"

    return {
        **base,
        "status": status,
        "total_tables": len(verifications),
        "tables_matched": tables_matched,
        "tables_mismatched": tables_mismatched,
        "relations_failed": relations_failed,
        "discrepancies": discrepancies,
        "summary": _generate_summary(len(verifications), tables_matched, tables_mismatched, relations_failed),
        "recommendations": _generate_recommendations(discrepancies, base["warnings"]),
        "source_total_rows": source_total_rows,
        "target_total_rows": target_total_rows,
    }


def _calculate_severity(source_count: int, difference: int) -> str:
    """
    Calculate severity level based on row count difference

    Args:
        source_count: Number of rows in source
        difference: Absolute difference in row counts

    Returns:
        Severity level: LOW, MEDIUM, HIGH, or CRITICAL
    """
    if source_count == 0:
        return "LOW" if difference == 0 else "CRITICAL"

    percentage_diff = (difference / source_count) * 100

    if percentage_diff < 0.1:
        return "LOW"
    elif percentage_diff < 1.0:
        return "MEDIUM"
    elif percentage_diff < 10.0:
        return "HIGH"
    else:
        return "CRITICAL"


def _generate_summary(total_tables: int, matched: int, mismatched: int, failed: int) -> str:
    """
    Generate human-readable summary

    Args:
        total_tables: Number of tables verified
        matched: Number of tables that matched
        mismatched: Number of tables with differing row counts
        failed: Number of relations that could not be processed

    Returns:
        Summary string
    """
    if mismatched == 0 and failed == 0:
        return f"All {total_tables} tables are in sync. Row counts match on both sides."

    parts = []
    if mismatched:
        parts.append(
            f"Row counts differ in {mismatched} of {total_tables} tables; "
            f"{matched} tables are consistent."
        )
    if failed:
        parts.append(f"{failed} relation(s) failed to synchronize.")
    return " ".join(parts)


def _generate_recommendations(
    discrepancies: list[dict[str, Any]],
    warnings: list[str],
) -> list[str]:
    """
    Generate actionable recommendations based on discrepancies

    Args:
        discrepancies: List of discrepancy details
        warnings: Run warnings

    Returns:
        List of recommendation strings
    """
    recommendations = []

    if not discrepancies:
        recommendations.append(
            "Target schema is consistent with the source. No action required."
        )
        if warnings:
            recommendations.append(
                f"Review {len(warnings)} warning(s); relations without modification "
                "timestamps or checksums are always replaced."
            )
        return recommendations

    row_count_issues = [
        d for d in discrepancies if d["issue_type"] == DiscrepancyType.ROW_COUNT_MISMATCH
    ]

    if row_count_issues:
        missing_rows = sum(d["details"].get("missing_rows", 0) for d in row_count_issues)
        if missing_rows > 0:
            recommendations.append(
                f"Target is missing {missing_rows} rows. The source may have been "
                "written to during the run; re-run with --force for the affected tables."
            )

        extra_rows = sum(d["details"].get("extra_rows", 0) for d in row_count_issues)
        if extra_rows > 0:
            recommendations.append(
                f"Target has {extra_rows} extra rows. Check for writers on the target "
                "schema while the sync was running."
            )

    transfer_issues = [
        d for d in discrepancies if d["issue_type"] == DiscrepancyType.TRANSFER_FAILED
    ]
    if transfer_issues:
        names = ", ".join(sorted(d["table"] for d in transfer_issues if d["table"]))
        recommendations.append(
            f"Transfer failed for {len(transfer_issues)} relation(s) ({names}). "
            "Fix the reported errors and run sync again; completed tables are "
            "skipped through the resume ledger."
        )

    ledger_issues = [
        d for d in discrepancies if d["issue_type"] == DiscrepancyType.LEDGER_WRITE_FAILED
    ]
    if ledger_issues:
        recommendations.append(
            "The resume ledger could not be written. Check free space and "
            "permissions of the working directory."
        )

    if len(discrepancies) > 5:
        recommendations.append(
            "Multiple relations affected. Consider a full resync with --force --no-resume."
        )

    return recommendations
