"""
Flat-file transfer: dump a table to `<name>.txt`, then load it back.
"""

import logging

from utils.tracing import add_span_event

from schema_mirror.snapshot.models import RelationDescriptor

from .base import TransferStrategy
from .flatfile import FlatFileReader, FlatFileWriter, binary_positions

logger = logging.getLogger(__name__)


class BulkFileStrategy(TransferStrategy):
    """
    Client-side dump/load through a delimited data file.

    The source table is read-locked while it is dumped and the target
    table write-locked while it is loaded; both locks are released on
    every path.
    """

    name = "bulk-file"

    def dump(self, relation: RelationDescriptor) -> int:
        """Write every source row to the data file; returns rows written."""
        columns = self.source.column_types(relation.name)
        column_names = [column for column, _ in columns]
        paths = self.artifacts(relation.name)
        paths.workdir.mkdir(parents=True, exist_ok=True)

        with self.source.table_lock(relation.name, "READ"):
            with open(paths.data, "w", encoding="utf-8", newline="") as stream:
                writer = FlatFileWriter(
                    stream, self.config.dialect, binary_positions(columns)
                )
                written = writer.write_rows(
                    self.source.iter_rows(relation.name, column_names)
                )

        add_span_event("dumped", rows=written)
        logger.debug(f"Dumped {written} rows of {relation.name} to {paths.data}")
        return written

    def load(self, relation: RelationDescriptor) -> int:
        """Insert the data file into the target table in batches."""
        columns = self.target.column_types(relation.name)
        column_names = [column for column, _ in columns]
        paths = self.artifacts(relation.name)
        batch_size = self.config.batch_size
        loaded = 0

        with self.target.table_lock(relation.name, "WRITE"):
            with open(paths.data, encoding="utf-8", newline="") as stream:
                reader = FlatFileReader(
                    stream,
                    self.config.dialect,
                    binary_positions(columns),
                    expected_fields=len(column_names),
                )
                batch = []
                for record in reader:
                    batch.append(record)
                    if len(batch) >= batch_size:
                        loaded += self.target.insert_rows(relation.name, column_names, batch)
                        batch = []
                if batch:
                    loaded += self.target.insert_rows(relation.name, column_names, batch)

        add_span_event("loaded", rows=loaded)
        logger.debug(f"Loaded {loaded} rows into {relation.name}")
        return loaded

    def copy_data(self, relation: RelationDescriptor) -> int:
        self.dump(relation)
        loaded = self.load(relation)

        if self.config.purge_artifacts:
            self.artifacts(relation.name).data.unlink(missing_ok=True)

        return loaded
