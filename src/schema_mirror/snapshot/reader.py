"""
Schema Snapshot Reader.

Turns a schema's catalog rows into a SchemaSnapshot. Row counts are made
exact: only engines that maintain an exact TABLE_ROWS are trusted, every
other table is counted with COUNT(*).
"""

import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from opentelemetry import trace

from utils.db import DatabaseError
from utils.tracing import trace_operation

from schema_mirror.errors import CatalogUnavailable, ConnectionLost

from .models import RelationDescriptor, RelationKind, SchemaSnapshot

logger = logging.getLogger(__name__)

# Engines whose information_schema.TABLES.TABLE_ROWS is exact
EXACT_COUNT_ENGINES = frozenset({"myisam", "aria", "memory"})


def normalize_view_definition(definition: str | None, schema: str) -> str | None:
    """
    Strip the view's own schema qualifier so equivalent views defined in
    differently named schemas compare equal.
    """
    if definition is None:
        return None
    return definition.replace(f"`{schema}`.", "").strip()


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _describe(session, schema: str, row: dict[str, Any]) -> RelationDescriptor | None:
    kind = RelationKind.from_catalog(row["table_type"] or "")
    if kind is None:
        return None

    name = row["name"]

    if kind is RelationKind.VIEW:
        return RelationDescriptor(
            name=name,
            kind=kind,
            definition=normalize_view_definition(row.get("view_definition"), schema),
        )

    engine = row.get("engine")
    if engine and engine.lower() in EXACT_COUNT_ENGINES and row.get("table_rows") is not None:
        row_count = int(row["table_rows"])
    else:
        row_count = session.count_rows(name)

    return RelationDescriptor(
        name=name,
        kind=kind,
        row_count=row_count,
        updated_at=_as_utc(row.get("update_time")),
        engine=engine,
    )


def read_snapshot(session, schema: str | None = None) -> SchemaSnapshot:
    """
    Capture a snapshot of every table and view in a schema

    Args:
        session: MySQLSession (or compatible) bound to the schema
        schema: Schema name (default: the session's schema)

    Returns:
        SchemaSnapshot keyed by relation name

    Raises:
        CatalogUnavailable: If the schema does not exist or its catalog
            cannot be queried
        ConnectionLost: If the connection drops while reading
    """
    schema = schema or session.schema

    with trace_operation(
        "snapshot.read",
        kind=trace.SpanKind.CLIENT,
        side=session.side,
        schema=schema,
    ) as span:
        captured_at = datetime.now(UTC)
        try:
            if not session.schema_exists():
                raise CatalogUnavailable(schema, "schema does not exist")

            descriptors = []
            for row in session.fetch_catalog():
                descriptor = _describe(session, schema, row)
                if descriptor is not None:
                    descriptors.append(descriptor)
        except (CatalogUnavailable, ConnectionLost):
            raise
        except DatabaseError as e:
            raise CatalogUnavailable(schema, str(e)) from e

        snapshot = SchemaSnapshot.of(schema, descriptors, captured_at=captured_at)
        span.set_attribute("relations", len(snapshot))

    logger.info(
        f"Snapshot of {session.side} schema {schema}: "
        f"{len(snapshot.tables())} tables, {len(snapshot.views())} views"
    )
    return snapshot


def empty_snapshot(schema: str) -> SchemaSnapshot:
    """Snapshot of a schema that does not exist yet."""
    return SchemaSnapshot.of(schema, [])


def attach_checksums(session, snapshot: SchemaSnapshot, names: Iterable[str]) -> SchemaSnapshot:
    """
    Return a copy of snapshot with CHECKSUM TABLE values for the given tables

    Views and names absent from the snapshot are skipped.

    Raises:
        CatalogUnavailable: If a checksum query fails
    """
    checksums: dict[str, int | None] = {}

    with trace_operation("snapshot.checksums", side=session.side, schema=snapshot.schema):
        for name in sorted(names):
            descriptor = snapshot.get(name)
            if descriptor is None or not descriptor.is_table:
                continue
            try:
                checksums[name] = table_checksum(session, name)
            except DatabaseError as e:
                raise CatalogUnavailable(snapshot.schema, f"checksum of {name}: {e}") from e

    return snapshot.with_checksums(checksums)


def table_checksum(session, name: str) -> int | None:
    checksum = session.checksum(name)
    logger.debug(f"{session.side} checksum of {name}: {checksum}")
    return checksum
