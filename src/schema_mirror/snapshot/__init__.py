"""
Schema snapshots: what relations a schema holds and their vital statistics.
"""

from .models import RelationDescriptor, RelationKind, SchemaSnapshot
from .reader import (
    EXACT_COUNT_ENGINES,
    attach_checksums,
    empty_snapshot,
    normalize_view_definition,
    read_snapshot,
    table_checksum,
)

__all__ = [
    "RelationKind",
    "RelationDescriptor",
    "SchemaSnapshot",
    "read_snapshot",
    "empty_snapshot",
    "attach_checksums",
    "table_checksum",
    "normalize_view_definition",
    "EXACT_COUNT_ENGINES",
]
