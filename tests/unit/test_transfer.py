"""
Unit tests for the transfer strategies

Tests verify:
- Structure capture to <name>.sql and replay on the target
- Bulk-file dump/load with table locks and batched inserts
- Native mysqldump --tab command line and LOAD DATA INFILE load
- Artifact naming and removal
"""

import subprocess
from unittest.mock import patch

import pytest

from utils.db import DatabaseError

from schema_mirror.config import FlatFileDialect
from schema_mirror.errors import ConnectionLost, RelationTransferFailed, TransportError
from schema_mirror.snapshot import RelationDescriptor, RelationKind
from schema_mirror.transfer import (
    ArtifactPaths,
    BulkFileStrategy,
    NativeBulkStrategy,
    SubprocessTransporter,
    build_strategy,
)


def table(name, rows=0):
    return RelationDescriptor(name=name, kind=RelationKind.TABLE, row_count=rows, engine="InnoDB")


def view(name):
    return RelationDescriptor(name=name, kind=RelationKind.VIEW)


class TestArtifactPaths:
    """Test artifact naming"""

    def test_paths(self, tmp_path):
        paths = ArtifactPaths(tmp_path, "orders")

        assert paths.structure == tmp_path / "orders.sql"
        assert paths.data == tmp_path / "orders.txt"

    def test_remove(self, tmp_path):
        paths = ArtifactPaths(tmp_path, "orders")
        paths.structure.write_text("CREATE TABLE ...")

        assert paths.remove() == [paths.structure]
        assert not paths.structure.exists()
        assert paths.remove() == []

    def test_unsafe_name_rejected(self, tmp_path):
        with pytest.raises(ValueError):
            ArtifactPaths(tmp_path, "../etc/passwd")


class TestBuildStrategy:
    def test_bulk_file_by_default(self, source, target, make_config):
        assert isinstance(build_strategy(source, target, make_config()), BulkFileStrategy)

    def test_native(self, source, target, make_config, transporter):
        strategy = build_strategy(source, target, make_config(native=True), transporter)

        assert isinstance(strategy, NativeBulkStrategy)
        assert strategy.transporter is transporter


class TestCopyStructure:
    """Test structure capture and replay"""

    def test_table_structure(self, source, target, make_config, tmp_path):
        source.add_table("orders", rows=[(1, "a")])
        strategy = BulkFileStrategy(source, target, make_config())

        strategy.copy_structure(table("orders"))

        assert "orders" in target.tables
        assert target.tables["orders"].rows == []
        assert (tmp_path / "orders.sql").read_text().startswith("CREATE TABLE `orders`")

    def test_view_definer_removed(self, source, target, make_config, tmp_path):
        source.add_view("big_orders", "select `{schema}`.`orders`.`id` AS `id` from `{schema}`.`orders`")
        strategy = BulkFileStrategy(source, target, make_config())

        ddl = strategy.copy_structure(view("big_orders"))

        assert "DEFINER=" not in ddl
        assert "SQL SECURITY INVOKER" in ddl
        assert "`shop`." not in ddl
        assert target.views["big_orders"] == "select `orders`.`id` AS `id` from `orders`"
        assert (tmp_path / "big_orders.sql").read_text().endswith(";\n")


class TestBulkFileStrategy:
    """Test client-side dump and load"""

    def test_transfer_table(self, source, target, make_config):
        rows = [(1, "plain"), (2, None), (3, 'with "quotes", commas\nand newlines')]
        source.add_table("orders", rows=rows)
        strategy = BulkFileStrategy(source, target, make_config())

        assert strategy.transfer(table("orders", 3)) == 3
        assert target.tables["orders"].rows == rows

    def test_locks_taken_and_released(self, source, target, make_config):
        source.add_table("orders", rows=[(1, "a")])
        BulkFileStrategy(source, target, make_config()).transfer(table("orders", 1))

        assert source.lock_history == [("orders", "READ")]
        assert target.lock_history == [("orders", "WRITE")]
        assert source.locks == []
        assert target.locks == []

    def test_lock_released_when_load_fails(self, source, target, make_config):
        source.add_table("orders", rows=[(1, "a")])
        target.fail("insert_rows", DatabaseError("Data too long", code=1406))

        with pytest.raises(RelationTransferFailed, match="orders"):
            BulkFileStrategy(source, target, make_config()).transfer(table("orders", 1))

        assert target.locks == []

    def test_batches(self, source, target, make_config):
        source.add_table("orders", rows=[(i, f"row {i}") for i in range(5)])
        strategy = BulkFileStrategy(source, target, make_config(batch_size=2))

        with patch.object(target, "insert_rows", wraps=target.insert_rows) as insert:
            assert strategy.transfer(table("orders", 5)) == 5

        assert [len(c.args[2]) for c in insert.call_args_list] == [2, 2, 1]

    def test_empty_table(self, source, target, make_config, tmp_path):
        source.add_table("empty")

        assert BulkFileStrategy(source, target, make_config()).transfer(table("empty")) == 0
        assert (tmp_path / "empty.txt").read_text() == ""

    def test_binary_columns(self, source, target, make_config):
        columns = [("id", "int"), ("payload", "blob")]
        source.add_table("blobs", rows=[(1, b"\x00\xff\n"), (2, None)], columns=columns)

        BulkFileStrategy(source, target, make_config()).transfer(table("blobs", 2))

        assert target.tables["blobs"].rows == [(1, b"\x00\xff\n"), (2, None)]

    def test_spatial_columns(self, source, target, make_config):
        point = bytes.fromhex("00000000" "0101000000" "000000000000f03f" "0000000000000040")
        source.add_table("places", rows=[(1, point)], columns=[("id", "int"), ("location", "point")])

        BulkFileStrategy(source, target, make_config()).transfer(table("places", 1))

        assert target.tables["places"].rows == [(1, point)]

    def test_artifacts_kept_by_default(self, source, target, make_config, tmp_path):
        source.add_table("orders", rows=[(1, "a")])
        BulkFileStrategy(source, target, make_config()).transfer(table("orders", 1))

        assert (tmp_path / "orders.sql").exists()
        assert (tmp_path / "orders.txt").exists()

    def test_purge_artifacts(self, source, target, make_config, tmp_path):
        source.add_table("orders", rows=[(1, "a")])
        BulkFileStrategy(source, target, make_config(purge_artifacts=True)).transfer(table("orders", 1))

        assert (tmp_path / "orders.sql").exists()
        assert not (tmp_path / "orders.txt").exists()

    def test_view_has_no_data(self, source, target, make_config, tmp_path):
        source.add_view("v", "select 1 AS `x`")

        assert BulkFileStrategy(source, target, make_config()).transfer(view("v")) is None
        assert not (tmp_path / "v.txt").exists()

    def test_connection_lost_propagates(self, source, target, make_config):
        source.add_table("orders", rows=[(1, "a")])
        source.lose_connection("iter_rows", "orders")

        with pytest.raises(ConnectionLost):
            BulkFileStrategy(source, target, make_config()).transfer(table("orders", 1))

    def test_structure_failure_wrapped(self, source, target, make_config):
        source.add_table("orders")
        target.fail("execute_script", DatabaseError("Access denied", code=1142))

        with pytest.raises(RelationTransferFailed) as exc_info:
            BulkFileStrategy(source, target, make_config()).transfer(table("orders"))

        assert exc_info.value.name == "orders"
        assert "Access denied" in exc_info.value.message


class TestNativeBulkStrategy:
    """Test mysqldump --tab followed by LOAD DATA INFILE on the target session"""

    def test_dump_command(self, source, target, make_config, transporter, tmp_path):
        source.add_table("orders", rows=[(1, "a")])
        strategy = NativeBulkStrategy(source, target, make_config(native=True), transporter)

        strategy.transfer(table("orders", 1))

        (argv, password), = [c.args for c in transporter.run.call_args_list]
        assert argv[0] == "mysqldump"
        assert f"--tab={tmp_path.resolve()}" in argv
        assert "--no-create-info" in argv
        assert argv[-2:] == ["shop", "orders"]
        assert password == "secret"

    def test_rows_loaded_through_target_session(self, source, target, make_config, transporter, tmp_path):
        source.add_table("orders", rows=[(1, "a"), (2, None)])
        strategy = NativeBulkStrategy(source, target, make_config(native=True), transporter)

        assert strategy.transfer(table("orders", 2)) == 2

        assert target.tables["orders"].rows == [(1, "a"), (2, None)]
        (load,) = target.loads
        assert load["path"] == str((tmp_path / "orders.txt").resolve())

    def test_load_write_locked(self, source, target, make_config, transporter):
        source.add_table("orders", rows=[(1, "a")])
        NativeBulkStrategy(source, target, make_config(native=True), transporter).transfer(table("orders"))

        assert target.loads[0]["locks"] == [("orders", "WRITE")]
        assert target.locks == []

    def test_password_not_on_command_line(self, source, target, make_config, transporter):
        source.add_table("orders")
        NativeBulkStrategy(source, target, make_config(native=True), transporter).transfer(table("orders"))

        for c in transporter.run.call_args_list:
            assert not any("secret" in arg for arg in c.args[0])

    def test_dialect_shared_by_dump_and_load(self, source, target, make_config, transporter):
        dialect = FlatFileDialect(field_delimiter="|", line_terminator="\r\n")
        source.add_table("orders", rows=[(1, "a|b\r\nc")])
        NativeBulkStrategy(
            source, target, make_config(native=True, dialect=dialect), transporter
        ).transfer(table("orders"))

        argv = transporter.run.call_args.args[0]
        assert "--fields-terminated-by=|" in argv
        assert "--lines-terminated-by=\r\n" in argv
        assert target.tables["orders"].rows == [(1, "a|b\r\nc")]

    def test_captured_structure_preserved(self, source, target, make_config, transporter, tmp_path):
        """Test the DDL written by --tab does not replace the captured one"""
        source.add_table("orders")
        dump = transporter.run.side_effect

        def dump_with_ddl(argv, password=None):
            (tmp_path / "orders.sql").write_text("-- written by mysqldump\n")
            return dump(argv, password)

        transporter.run.side_effect = dump_with_ddl
        NativeBulkStrategy(source, target, make_config(native=True), transporter).transfer(table("orders"))

        assert (tmp_path / "orders.sql").read_text().startswith("CREATE TABLE `orders`")

    def test_purge_artifacts(self, source, target, make_config, transporter, tmp_path):
        source.add_table("orders", rows=[(1, "a")])
        NativeBulkStrategy(
            source, target, make_config(native=True, purge_artifacts=True), transporter
        ).transfer(table("orders"))

        assert not (tmp_path / "orders.txt").exists()
        assert target.tables["orders"].rows == [(1, "a")]

    def test_tool_failure(self, source, target, make_config, transporter):
        source.add_table("orders")
        transporter.run.side_effect = TransportError("mysqldump", 2, "Access denied; you need the FILE privilege")

        with pytest.raises(RelationTransferFailed, match="FILE privilege"):
            NativeBulkStrategy(source, target, make_config(native=True), transporter).transfer(table("orders"))

    def test_data_file_not_visible_to_target(self, source, target, make_config, transporter):
        source.add_table("orders")
        transporter.run.side_effect = None
        transporter.run.return_value = ""

        with pytest.raises(RelationTransferFailed, match="not found"):
            NativeBulkStrategy(source, target, make_config(native=True), transporter).transfer(table("orders"))
        assert target.locks == []

    def test_connection_lost_during_load_propagates(self, source, target, make_config, transporter):
        source.add_table("orders", rows=[(1, "a")])
        target.lose_connection("load_data_file", name="orders")

        with pytest.raises(ConnectionLost):
            NativeBulkStrategy(source, target, make_config(native=True), transporter).transfer(table("orders"))


class TestSubprocessTransporter:
    """Test external command execution"""

    @patch("schema_mirror.transfer.native.subprocess.run")
    def test_password_in_environment(self, mock_run):
        mock_run.return_value = subprocess.CompletedProcess([], 0, stdout="done", stderr="")

        assert SubprocessTransporter().run(["mysqldump", "--host=db"], password="pw") == "done"

        assert mock_run.call_args.kwargs["env"]["MYSQL_PWD"] == "pw"
        assert mock_run.call_args.args[0] == ["mysqldump", "--host=db"]

    @patch("schema_mirror.transfer.native.subprocess.run")
    def test_non_zero_exit(self, mock_run):
        mock_run.return_value = subprocess.CompletedProcess(
            [], 2, stdout="", stderr="mysqldump: Got error: 1045: Access denied\n"
        )

        with pytest.raises(TransportError) as exc_info:
            SubprocessTransporter().run(["mysqldump"])

        assert exc_info.value.returncode == 2
        assert "Access denied" in str(exc_info.value)

    @patch("schema_mirror.transfer.native.subprocess.run", side_effect=FileNotFoundError())
    def test_missing_binary(self, mock_run):
        with pytest.raises(TransportError) as exc_info:
            SubprocessTransporter().run(["/opt/nowhere/mysqldump"])

        assert exc_info.value.returncode == 127

    @patch("schema_mirror.transfer.native.subprocess.run")
    def test_timeout(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(["mysqldump"], 5)

        with pytest.raises(TransportError, match="timed out"):
            SubprocessTransporter(timeout=5).run(["mysqldump"])
