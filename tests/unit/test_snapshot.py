"""
Unit tests for schema snapshots

Tests verify:
- Catalog rows become RelationDescriptors
- Exact row counts (COUNT(*) where the engine only estimates)
- Missing schemas and catalog errors
- Checksum attachment
"""

from datetime import UTC, datetime

import pytest

from utils.db import DatabaseError

from schema_mirror.errors import CatalogUnavailable, ConnectionLost
from schema_mirror.snapshot import (
    RelationDescriptor,
    RelationKind,
    SchemaSnapshot,
    attach_checksums,
    empty_snapshot,
    normalize_view_definition,
    read_snapshot,
)


class TestReadSnapshot:
    """Test read_snapshot against FakeSession"""

    def test_tables_and_views(self, source):
        source.add_table("orders", rows=[(1, "a"), (2, "b")])
        source.add_view("paid", "select `{schema}`.`orders`.`id` AS `id` from `{schema}`.`orders`")

        snapshot = read_snapshot(source)

        assert snapshot.schema == "shop"
        assert [t.name for t in snapshot.tables()] == ["orders"]
        assert [v.name for v in snapshot.views()] == ["paid"]
        assert snapshot.get("orders").row_count == 2
        assert snapshot.get("paid").row_count is None
        assert snapshot.get("paid").definition == "select `orders`.`id` AS `id` from `orders`"

    def test_innodb_counted_exactly(self, source):
        """Test estimated TABLE_ROWS is replaced by COUNT(*)"""
        source.add_table("orders", rows=[(1, "a")])
        catalog = source.fetch_catalog()
        catalog[0]["table_rows"] = 9999
        source.fetch_catalog = lambda: catalog

        assert read_snapshot(source).get("orders").row_count == 1

    def test_myisam_trusted(self, source):
        source.add_table("log", rows=[(1, "a")], engine="MyISAM")
        source.fail("count_rows", AssertionError("COUNT(*) should not run"))

        assert read_snapshot(source).get("log").row_count == 1

    def test_update_time_is_utc(self, source):
        source.add_table("orders", updated_at=datetime(2024, 3, 1, 8, 30, tzinfo=UTC))

        assert read_snapshot(source).get("orders").updated_at == datetime(2024, 3, 1, 8, 30, tzinfo=UTC)

    def test_missing_schema(self, source):
        source.exists = False

        with pytest.raises(CatalogUnavailable, match="does not exist"):
            read_snapshot(source)

    def test_catalog_error(self, source):
        source.fail("fetch_catalog", DatabaseError("SELECT command denied", code=1142))

        with pytest.raises(CatalogUnavailable) as exc_info:
            read_snapshot(source)

        assert exc_info.value.schema == "shop"

    def test_connection_lost_propagates(self, source):
        source.add_table("orders")
        source.lose_connection("count_rows", "orders")

        with pytest.raises(ConnectionLost):
            read_snapshot(source)

    def test_empty_schema(self, source):
        assert len(read_snapshot(source)) == 0


class TestNormalizeViewDefinition:
    def test_qualifier_removed(self):
        assert normalize_view_definition(" select `a`.`t`.`x` from `a`.`t` ", "a") == (
            "select `t`.`x` from `t`"
        )

    def test_none(self):
        assert normalize_view_definition(None, "a") is None


class TestAttachChecksums:
    """Test checksum attachment for the checksum strategy"""

    def test_only_requested_tables(self, source):
        source.add_table("orders", checksum=111)
        source.add_table("items", checksum=222)
        source.add_view("v", "select 1")
        snapshot = read_snapshot(source)

        with_sums = attach_checksums(source, snapshot, ["orders", "v", "ghost"])

        assert with_sums.get("orders").checksum == 111
        assert with_sums.get("items").checksum is None
        assert snapshot.get("orders").checksum is None

    def test_failure(self, source):
        source.add_table("orders")
        snapshot = read_snapshot(source)
        source.fail("checksum", DatabaseError("denied", code=1142))

        with pytest.raises(CatalogUnavailable, match="checksum of orders"):
            attach_checksums(source, snapshot, ["orders"])


class TestSchemaSnapshot:
    """Test snapshot value semantics"""

    def test_without(self):
        snapshot = SchemaSnapshot.of("shop", [
            RelationDescriptor("a", RelationKind.TABLE, row_count=1),
            RelationDescriptor("b", RelationKind.VIEW),
        ])

        trimmed = snapshot.without(["a"])

        assert trimmed.names() == {"b"}
        assert snapshot.names() == {"a", "b"}

    def test_immutable(self):
        snapshot = empty_snapshot("shop")
        with pytest.raises(TypeError):
            snapshot.relations["x"] = None

    @pytest.mark.parametrize("table_type, kind", [
        ("BASE TABLE", RelationKind.TABLE),
        ("VIEW", RelationKind.VIEW),
        ("SYSTEM VIEW", None),
    ])
    def test_kind_from_catalog(self, table_type, kind):
        assert RelationKind.from_catalog(table_type) is kind
