"""
Deciding what must change on the target.

This submodule provides the comparison strategies, the Change Detector and
the row count comparisons used by the consistency assertion.
"""

from .counts import compare_row_counts, verify_table
from .detector import ChangeDecision, DecisionKind, decide, summarize
from .strategy import ComparisonStrategy

__all__ = [
    "ComparisonStrategy",
    "DecisionKind",
    "ChangeDecision",
    "decide",
    "summarize",
    "compare_row_counts",
    "verify_table",
]
