"""
Pytest configuration and fixtures for schema-mirror tests.

Provides an in-memory FakeSession with the same interface as
schema_mirror.session.MySQLSession, so the orchestrator and the transfer
strategies can be exercised without a MySQL server.
"""

import re
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from utils.db import DatabaseError

from schema_mirror.compare import ComparisonStrategy
from schema_mirror.config import ConnectionSettings, FlatFileDialect, SyncConfig
from schema_mirror.errors import ConnectionLost
from schema_mirror.snapshot import RelationKind
from schema_mirror.transfer import Transporter
from schema_mirror.transfer.flatfile import FlatFileReader, FlatFileWriter


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "integration: requires live MySQL servers")
    config.addinivalue_line("markers", "property: hypothesis property-based test")
    config.addinivalue_line("markers", "slow: mark test as slow running")


BASE_TIME = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

TABLE_DDL = re.compile(
    r"CREATE TABLE `(?P<name>[^`]+)` \((?P<body>.*)\)\s*ENGINE=(?P<engine>\w+)",
    re.DOTALL,
)
VIEW_DDL = re.compile(r"VIEW `(?P<name>[^`]+)` AS (?P<body>.*)$", re.DOTALL)
COLUMN_DEF = re.compile(r"`([^`]+)` (\w+)")
INTEGER_TYPES = {"tinyint", "smallint", "mediumint", "int", "bigint"}


@dataclass
class FakeTable:
    columns: list[tuple[str, str]]
    rows: list[tuple] = field(default_factory=list)
    engine: str = "InnoDB"
    updated_at: datetime | None = None
    checksum: int | None = None


class FakeSession:
    """
    In-memory MySQLSession.

    Failures are injected with fail(operation, exc, name=None); each
    injected exception is raised once, in order.
    """

    def __init__(self, schema: str, side: str, exists: bool = True):
        self.schema = schema
        self.side = side
        self.exists = exists
        self.tables: dict[str, FakeTable] = {}
        self.views: dict[str, str] = {}
        self.foreign_key_checks = True
        self.fk_history: list[bool] = []
        self.locks: list[tuple[str, str]] = []
        self.lock_history: list[tuple[str, str]] = []
        self.statements: list[str] = []
        self.loads: list[dict] = []
        self.reconnects = 0
        self.closed = False
        self.clock = BASE_TIME
        self._failures: dict[tuple[str, str | None], list[Exception]] = defaultdict(list)

    # -- test helpers -----------------------------------------------------

    def add_table(self, name, rows=(), columns=None, engine="InnoDB", updated_at=None,
                  checksum=None):
        self.tables[name] = FakeTable(
            columns=list(columns or [("id", "int"), ("label", "varchar")]),
            rows=[tuple(r) for r in rows],
            engine=engine,
            updated_at=updated_at if updated_at is not None else self.clock,
            checksum=checksum,
        )
        return self.tables[name]

    def add_view(self, name, body):
        """body may contain {schema}, replaced by this session's schema."""
        self.views[name] = body.format(schema=self.schema)

    def fail(self, operation, exc, name=None):
        self._failures[(operation, name)].append(exc)

    def lose_connection(self, operation, name=None):
        self.fail(operation, ConnectionLost(self.side, "injected"), name)

    def _maybe_fail(self, operation, name=None):
        for key in ((operation, name), (operation, None)):
            if self._failures.get(key):
                raise self._failures[key].pop(0)

    def _touch(self, table: FakeTable) -> None:
        self.clock += timedelta(seconds=1)
        table.updated_at = self.clock

    @staticmethod
    def _coerce(table: FakeTable, row) -> tuple:
        # The server converts text to the column type on INSERT
        return tuple(
            int(value) if value is not None and data_type in INTEGER_TYPES else value
            for value, (_, data_type) in zip(row, table.columns)
        )

    def _table(self, name) -> FakeTable:
        if name not in self.tables:
            raise DatabaseError(f"Table '{self.schema}.{name}' doesn't exist", code=1146)
        return self.tables[name]

    # -- schema -------------------------------------------------------------

    def schema_exists(self):
        self._maybe_fail("schema_exists")
        return self.exists

    def create_schema(self):
        self._maybe_fail("create_schema")
        self.exists = True
        self.statements.append(f"CREATE DATABASE {self.schema}")

    def use_schema(self):
        self._maybe_fail("use_schema")
        self.statements.append(f"USE {self.schema}")

    # -- catalog ------------------------------------------------------------

    def fetch_catalog(self):
        self._maybe_fail("fetch_catalog")
        rows = [
            {
                "name": name,
                "table_type": "BASE TABLE",
                "engine": table.engine,
                "table_rows": len(table.rows),
                "update_time": table.updated_at.replace(tzinfo=None) if table.updated_at else None,
                "view_definition": None,
            }
            for name, table in self.tables.items()
        ]
        rows += [
            {
                "name": name,
                "table_type": "VIEW",
                "engine": None,
                "table_rows": None,
                "update_time": None,
                "view_definition": body,
            }
            for name, body in self.views.items()
        ]
        return sorted(rows, key=lambda r: r["name"])

    def count_rows(self, name):
        self._maybe_fail("count_rows", name)
        return len(self._table(name).rows)

    def checksum(self, name):
        self._maybe_fail("checksum", name)
        table = self._table(name)
        if table.checksum is not None:
            return table.checksum
        return hash(tuple(table.rows)) & 0xFFFFFFFF

    def show_create(self, name, kind):
        self._maybe_fail("show_create", name)
        if kind is RelationKind.VIEW:
            return (
                "CREATE ALGORITHM=UNDEFINED DEFINER=`admin`@`%` SQL SECURITY DEFINER "
                f"VIEW `{name}` AS {self.views[name]}"
            )
        table = self._table(name)
        body = ",\n".join(f"  `{column}` {data_type}" for column, data_type in table.columns)
        return f"CREATE TABLE `{name}` (\n{body}\n) ENGINE={table.engine}"

    def column_types(self, name):
        self._maybe_fail("column_types", name)
        return list(self._table(name).columns)

    # -- data ---------------------------------------------------------------

    def iter_rows(self, name, columns):
        self._maybe_fail("iter_rows", name)
        yield from list(self._table(name).rows)

    def insert_rows(self, name, columns, rows):
        self._maybe_fail("insert_rows", name)
        table = self._table(name)
        table.rows.extend(self._coerce(table, r) for r in rows)
        self._touch(table)
        return len(rows)

    def load_data_file(self, name, path, columns, dialect):
        self._maybe_fail("load_data_file", name)
        table = self._table(name)
        self.loads.append({
            "name": name,
            "path": path,
            "foreign_key_checks": self.foreign_key_checks,
            "locks": list(self.locks),
        })
        if not Path(path).exists():
            raise DatabaseError(f"File '{path}' not found (Errcode: 2)", code=29)
        with open(path, encoding="utf-8", newline="") as stream:
            rows = list(FlatFileReader(stream, dialect, expected_fields=len(columns)))
        table.rows.extend(self._coerce(table, r) for r in rows)
        self._touch(table)
        return len(rows)

    # -- structure ----------------------------------------------------------

    def execute_script(self, ddl):
        self._maybe_fail("execute_script")
        self.statements.append(ddl)

        match = TABLE_DDL.search(ddl)
        if match:
            name = match.group("name")
            if name in self.tables or name in self.views:
                raise DatabaseError(f"Table '{name}' already exists", code=1050)
            table = FakeTable(
                columns=COLUMN_DEF.findall(match.group("body")),
                engine=match.group("engine"),
            )
            self.tables[name] = table
            self._touch(table)
            return

        match = VIEW_DDL.search(ddl)
        if match:
            name = match.group("name")
            if name in self.tables or name in self.views:
                raise DatabaseError(f"Table '{name}' already exists", code=1050)
            self.views[name] = match.group("body").strip()
            return

        raise DatabaseError(f"You have an error in your SQL syntax near {ddl[:30]!r}", code=1064)

    def drop_relation(self, name, kind):
        self._maybe_fail("drop_relation", name)
        self.statements.append(f"DROP {kind.value.upper()} {name}")
        if kind is RelationKind.VIEW:
            self.views.pop(name, None)
        else:
            self.tables.pop(name, None)

    # -- session state ------------------------------------------------------

    def set_foreign_key_checks(self, enabled):
        self._maybe_fail("set_foreign_key_checks")
        self.foreign_key_checks = enabled
        self.fk_history.append(enabled)

    @contextmanager
    def table_lock(self, name, mode):
        self._maybe_fail("table_lock", name)
        self.locks.append((name, mode))
        self.lock_history.append((name, mode))
        try:
            yield
        finally:
            self.locks.remove((name, mode))

    def reconnect(self):
        self._maybe_fail("reconnect")
        self.reconnects += 1
        self.foreign_key_checks = True

    def close(self):
        self.closed = True


@pytest.fixture
def source():
    return FakeSession("shop", "source")


@pytest.fixture
def target():
    return FakeSession("shop_copy", "target")


@pytest.fixture
def make_config(tmp_path: Path):
    """Build a SyncConfig over tmp_path; keyword arguments override fields."""

    def _make(**overrides) -> SyncConfig:
        values = {
            "source": ConnectionSettings(database="shop", password="secret"),
            "target": ConnectionSettings(host="replica", database="shop_copy", password="secret"),
            "comparison": ComparisonStrategy.BY_ROW_COUNT,
            "workdir": tmp_path,
        }
        values.update(overrides)
        return SyncConfig(**values)

    return _make


@pytest.fixture
def transporter(source):
    """
    Transporter double for mysqldump --tab.

    Writes <name>.txt from the fake source table with the field options
    found on the command line, the way the source server would.
    """

    def dump(argv, password=None):
        options = dict(
            arg[2:].split("=", 1) for arg in argv
            if arg.startswith(("--tab=", "--fields-", "--lines-"))
        )
        dialect = FlatFileDialect(
            field_delimiter=options["fields-terminated-by"],
            enclosure=options["fields-enclosed-by"],
            escape=options["fields-escaped-by"],
            line_terminator=options["lines-terminated-by"],
        )
        name = argv[-1]
        with open(Path(options["tab"]) / f"{name}.txt", "w", encoding="utf-8", newline="") as f:
            FlatFileWriter(f, dialect).write_rows(source.tables[name].rows)
        return ""

    fake = MagicMock(spec=Transporter)
    fake.run.side_effect = dump
    return fake
