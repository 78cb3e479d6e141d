"""
Transfer strategy interface.

A strategy moves one relation's structure and (for tables) data from the
source session to the target session. The structure step is shared: the
DDL captured by SHOW CREATE is written to `<name>.sql` and replayed on the
target. Strategies differ in how they move data.
"""

import logging
from abc import ABC, abstractmethod

from opentelemetry import trace

from utils.tracing import trace_operation

from schema_mirror.config import SyncConfig
from schema_mirror.errors import ConnectionLost, RelationTransferFailed
from schema_mirror.snapshot.models import RelationDescriptor

from .artifacts import ArtifactPaths
from .views import rewrite_view_definition

logger = logging.getLogger(__name__)


class TransferStrategy(ABC):
    """Moves one relation at a time from source to target."""

    name = "abstract"

    def __init__(self, source, target, config: SyncConfig):
        self.source = source
        self.target = target
        self.config = config

    def artifacts(self, name: str) -> ArtifactPaths:
        return ArtifactPaths(self.config.workdir, name)

    def copy_structure(self, relation: RelationDescriptor) -> str:
        """
        Recreate the relation's structure on the target

        Views have their definer removed and are forced to SQL SECURITY
        INVOKER.

        Returns:
            The DDL that was executed
        """
        ddl = self.source.show_create(relation.name, relation.kind)
        if relation.is_view:
            ddl = rewrite_view_definition(ddl, self.source.schema)

        paths = self.artifacts(relation.name)
        paths.workdir.mkdir(parents=True, exist_ok=True)
        paths.structure.write_text(ddl.rstrip().rstrip(";") + ";\n", encoding="utf-8")

        self.target.execute_script(ddl)
        logger.debug(f"Structure of {relation.kind.value} {relation.name} copied")
        return ddl

    @abstractmethod
    def copy_data(self, relation: RelationDescriptor) -> int | None:
        """
        Copy all rows of a table into its (empty) target copy

        Returns:
            Number of rows moved, or None when the mechanism cannot tell
        """

    def transfer(self, relation: RelationDescriptor) -> int | None:
        """
        Structure, then data for tables

        Raises:
            ConnectionLost: If either connection drops (the caller may retry)
            RelationTransferFailed: For any other failure
        """
        with trace_operation(
            "relation.transfer",
            kind=trace.SpanKind.INTERNAL,
            relation=relation.name,
            relation_kind=relation.kind.value,
            strategy=self.name,
        ) as span:
            try:
                self.copy_structure(relation)
                if not relation.is_table:
                    return None
                rows = self.copy_data(relation)
            except (ConnectionLost, RelationTransferFailed):
                raise
            except Exception as e:
                raise RelationTransferFailed(relation.name, str(e)) from e

            if rows is not None:
                span.set_attribute("rows", rows)
            return rows
