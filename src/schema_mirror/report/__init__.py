"""
Sync report generation and formatting.

Builds a report from a RunResult dictionary and renders it as JSON, CSV
or console text.
"""

from .formatters import (
    export_report_csv,
    export_report_json,
    format_plan_console,
    format_report_console,
)
from .generator import (
    DiscrepancyType,
    _calculate_severity,
    _generate_recommendations,
    _generate_summary,
    generate_report,
)

__all__ = [
    'generate_report',
    'export_report_json',
    'export_report_csv',
    'format_report_console',
    'format_plan_console',
    'DiscrepancyType',
    '_calculate_severity',
    '_generate_summary',
    '_generate_recommendations',
]
