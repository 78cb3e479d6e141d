"""
Report formatting and export utilities.

Exports sync reports as JSON, CSV or console text.
"""

import csv
import json
from typing import Any


def export_report_json(report: dict[str, Any], output_path: str) -> None:
    """
    Export report to JSON file

    Args:
        report: Report dictionary
        output_path: Path to output file
    """
    with open(output_path, 'w') as f:
        json.dump(report, f, indent=2, default=str)


def export_report_csv(report: dict[str, Any], output_path: str) -> None:
    """
    Export one line per processed relation to a CSV file

    Args:
        report: Report dictionary
        output_path: Path to output file
    """
    with open(output_path, 'w', newline='') as f:
        writer = csv.writer(f)

        writer.writerow([
            "Relation",
            "Kind",
            "Decision",
            "Status",
            "Rows",
            "Duration (s)",
            "Error",
        ])

        for relation in report.get("relations", []):
            writer.writerow([
                relation.get("name", ""),
                relation.get("kind", ""),
                relation.get("decision", ""),
                relation.get("status", ""),
                relation.get("rows") if relation.get("rows") is not None else "",
                relation.get("duration_seconds") if relation.get("duration_seconds") is not None else "",
                relation.get("error") or "",
            ])


def format_report_console(report: dict[str, Any]) -> str:
    """
    Format report for console output

    Args:
        report: Report dictionary

    Returns:
        Formatted string for console display
    """
    lines = []
    counts = report.get("decision_counts", {})

    lines.append("=" * 80)
    lines.append("SCHEMA SYNC REPORT")
    lines.append("=" * 80)
    lines.append(f"Status: {report['status']}")
    lines.append(f"Timestamp: {report['timestamp']}")
    lines.append(f"Source Schema: {report.get('source_schema')}")
    lines.append(f"Target Schema: {report.get('target_schema')}")
    lines.append(f"Comparison: {report.get('strategy')}")
    lines.append(
        "Decisions: "
        + ", ".join(f"{key}={counts.get(key, 0)}" for key in ("create", "replace", "unchanged", "remove"))
    )
    lines.append(f"Skipped (resumed): {len(report.get('skipped', []))}")
    lines.append(f"Tables Verified: {report['total_tables']}")
    lines.append(f"Tables Matched: {report['tables_matched']}")
    lines.append(f"Tables Mismatched: {report['tables_mismatched']}")
    lines.append(f"Relations Failed: {report.get('relations_failed', 0)}")
    lines.append(f"Source Total Rows: {report['source_total_rows']:,}")
    lines.append(f"Target Total Rows: {report['target_total_rows']:,}")
    lines.append("")

    lines.append("SUMMARY")
    lines.append("-" * 80)
    lines.append(report['summary'])
    lines.append("")

    if report['discrepancies']:
        lines.append("DISCREPANCIES")
        lines.append("-" * 80)

        for disc in report['discrepancies']:
            lines.append(f"Relation: {disc['table']}")
            lines.append(f"  Issue: {disc['issue_type']}")
            lines.append(f"  Severity: {disc['severity']}")
            lines.append(f"  Details: {disc['details']}")
            lines.append("")

    if report.get('warnings'):
        lines.append("WARNINGS")
        lines.append("-" * 80)
        for warning in report['warnings']:
            lines.append(f"- {warning}")
        lines.append("")

    if report['recommendations']:
        lines.append("RECOMMENDATIONS")
        lines.append("-" * 80)
        for i, rec in enumerate(report['recommendations'], 1):
            lines.append(f"{i}. {rec}")
        lines.append("")

    lines.append("=" * 80)

    return "\n".join(lines)


def format_plan_console(decisions: list[dict[str, Any]]) -> str:
    """
    Format planned decisions as an aligned table

    Args:
        decisions: ChangeDecision.to_dict() values

    Returns:
        Formatted string for console display
    """
    if not decisions:
        return "Nothing to do: source and target schemas are both empty."

    width = max(len(d["name"]) for d in decisions)
    lines = [f"{'RELATION':<{width}}  {'KIND':<5}  {'DECISION':<9}  REASON"]
    for d in decisions:
        lines.append(f"{d['name']:<{width}}  {d['kind']:<5}  {d['decision']:<9}  {d['reason']}")
        if d.get("warning"):
            lines.append(f"{'':<{width}}  warning: {d['warning']}")
    return "\n".join(lines)
