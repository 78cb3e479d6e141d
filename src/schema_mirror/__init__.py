"""
schema-mirror: bring a target MySQL schema in line with a source schema.

Tables and views missing on the target are created, stale ones replaced
(judged by modification date, row count, checksum, or unconditionally)
and target-only ones removed. Completed tables are recorded in a resume
ledger so an interrupted run can pick up where it stopped.
"""

from .compare import ChangeDecision, ComparisonStrategy, DecisionKind
from .config import ConnectionSettings, FlatFileDialect, SyncConfig
from .orchestrator import RunResult, RunState, SchemaMirror

__version__ = "1.0.0"

__all__ = [
    "SchemaMirror",
    "RunResult",
    "RunState",
    "SyncConfig",
    "ConnectionSettings",
    "FlatFileDialect",
    "ComparisonStrategy",
    "ChangeDecision",
    "DecisionKind",
]
