"""
MySQL session: every statement the engine issues against one database.

A session is bound to one side ("source" or "target") and one schema. The
snapshot reader, the transfer strategies and the orchestrator talk to the
database only through this interface, which keeps them testable against
an in-memory stand-in.
"""

import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

from utils.db import ConnectionLostError, DatabaseError, MySQLConnection
from utils.retry import retry_database_operation
from utils.sql_safety import quote_identifier, quote_qualified

from schema_mirror.config import ConnectionSettings, FlatFileDialect
from schema_mirror.errors import ConnectionLost
from schema_mirror.snapshot.models import RelationKind

logger = logging.getLogger(__name__)

CATALOG_QUERY = """
    SELECT
        t.TABLE_NAME AS name,
        t.TABLE_TYPE AS table_type,
        t.ENGINE AS engine,
        t.TABLE_ROWS AS table_rows,
        t.UPDATE_TIME AS update_time,
        v.VIEW_DEFINITION AS view_definition
    FROM information_schema.TABLES t
    LEFT JOIN information_schema.VIEWS v
        ON v.TABLE_SCHEMA = t.TABLE_SCHEMA AND v.TABLE_NAME = t.TABLE_NAME
    WHERE t.TABLE_SCHEMA = %s
    ORDER BY t.TABLE_NAME
"""

COLUMNS_QUERY = """
    SELECT COLUMN_NAME, DATA_TYPE
    FROM information_schema.COLUMNS
    WHERE TABLE_SCHEMA = %s AND TABLE_NAME = %s
      AND EXTRA NOT LIKE %s AND EXTRA NOT LIKE %s
    ORDER BY ORDINAL_POSITION
"""

LOCK_MODES = ("READ", "WRITE")

# ER_UNKNOWN_SYSTEM_VARIABLE (MariaDB / MySQL 5.7 lack the stats expiry setting)
ER_UNKNOWN_SYSTEM_VARIABLE = 1193


class MySQLSession:
    """SQL operations for one schema over one MySQLConnection."""

    def __init__(self, connection: MySQLConnection, schema: str, side: str):
        quote_identifier(schema)
        self.connection = connection
        self.schema = schema
        self.side = side
        self.foreign_key_checks = True
        self._schema_selected = False

    @classmethod
    def open(cls, settings: ConnectionSettings, side: str) -> "MySQLSession":
        connection = MySQLConnection(
            host=settings.host,
            port=settings.port,
            user=settings.user,
            password=settings.password,
            side=side,
        )
        connection.connect()
        return cls(connection, settings.database, side)

    def __repr__(self) -> str:
        return f"MySQLSession({self.side}, schema={self.schema!r})"

    @contextmanager
    def _guard(self) -> Iterator[None]:
        try:
            yield
        except ConnectionLostError as e:
            raise ConnectionLost(self.side) from e

    def _qualified(self, name: str) -> str:
        return quote_qualified(self.schema, name)

    # -- schema ---------------------------------------------------------

    def schema_exists(self) -> bool:
        with self._guard():
            row = self.connection.fetchone(
                "SELECT 1 FROM information_schema.SCHEMATA WHERE SCHEMA_NAME = %s",
                (self.schema,),
            )
        return row is not None

    def create_schema(self) -> None:
        with self._guard():
            self.connection.execute(
                f"CREATE DATABASE IF NOT EXISTS {quote_identifier(self.schema)}"
            )
        logger.info(f"Created {self.side} schema {self.schema}")

    def use_schema(self) -> None:
        """Make this schema the default so unqualified DDL lands in it."""
        with self._guard():
            self.connection.execute(f"USE {quote_identifier(self.schema)}")
        self._schema_selected = True

    # -- catalog ----------------------------------------------------------

    def _disable_stats_cache(self) -> None:
        # MySQL 8 caches TABLE_ROWS / UPDATE_TIME for a day by default
        try:
            self.connection.execute("SET SESSION information_schema_stats_expiry = 0")
        except DatabaseError as e:
            if e.code != ER_UNKNOWN_SYSTEM_VARIABLE:
                raise

    @retry_database_operation(max_retries=3, base_delay=1.0)
    def fetch_catalog(self) -> list[dict[str, Any]]:
        """
        One row per relation in the schema.

        Keys: name, table_type, engine, table_rows, update_time,
        view_definition.
        """
        with self._guard():
            self._disable_stats_cache()
            return self.connection.fetchall_dict(CATALOG_QUERY, (self.schema,))

    @retry_database_operation(max_retries=3, base_delay=1.0)
    def count_rows(self, name: str) -> int:
        with self._guard():
            row = self.connection.fetchone(f"SELECT COUNT(*) FROM {self._qualified(name)}")
        return int(row[0])

    @retry_database_operation(max_retries=3, base_delay=1.0)
    def checksum(self, name: str) -> int | None:
        """CHECKSUM TABLE result; None when the server cannot compute it."""
        with self._guard():
            row = self.connection.fetchone(f"CHECKSUM TABLE {self._qualified(name)}")
        if row is None or row[1] is None:
            return None
        return int(row[1])

    def show_create(self, name: str, kind: RelationKind) -> str:
        keyword = "VIEW" if kind is RelationKind.VIEW else "TABLE"
        with self._guard():
            row = self.connection.fetchone(f"SHOW CREATE {keyword} {self._qualified(name)}")
        if row is None:
            raise DatabaseError(f"{self.side}: SHOW CREATE {keyword} {name} returned nothing")
        return row[1]

    def column_types(self, name: str) -> list[tuple[str, str]]:
        """(column, data type) pairs in ordinal order, generated columns excluded."""
        with self._guard():
            rows = self.connection.fetchall(
                COLUMNS_QUERY,
                (self.schema, name, "%VIRTUAL GENERATED%", "%STORED GENERATED%"),
            )
        return [(column, data_type.lower()) for column, data_type in rows]

    # -- data -------------------------------------------------------------

    def iter_rows(self, name: str, columns: Sequence[str]) -> Iterator[tuple]:
        column_list = ", ".join(quote_identifier(c) for c in columns)
        sql = f"SELECT {column_list} FROM {self._qualified(name)}"
        with self._guard():
            yield from self.connection.stream(sql)

    def insert_rows(
        self, name: str, columns: Sequence[str], rows: Sequence[Sequence[Any]]
    ) -> int:
        if not rows:
            return 0
        column_list = ", ".join(quote_identifier(c) for c in columns)
        placeholders = ", ".join(["%s"] * len(columns))
        sql = (
            f"INSERT INTO {self._qualified(name)} ({column_list}) "
            f"VALUES ({placeholders})"
        )
        with self._guard():
            self.connection.executemany(sql, rows)
        return len(rows)

    def load_data_file(
        self, name: str, path: str, columns: Sequence[str], dialect: FlatFileDialect
    ) -> int:
        """
        LOAD DATA INFILE a server-side data file into a table.

        Runs on this session's connection, so FOREIGN_KEY_CHECKS and table
        locks held here apply to the load. Returns the rows loaded.
        """
        column_list = ", ".join(quote_identifier(c) for c in columns)
        sql = (
            f"LOAD DATA INFILE %s INTO TABLE {self._qualified(name)} "
            "CHARACTER SET utf8mb4 "
            "FIELDS TERMINATED BY %s ENCLOSED BY %s ESCAPED BY %s "
            "LINES TERMINATED BY %s "
            f"({column_list})"
        )
        params = (
            path,
            dialect.field_delimiter,
            dialect.enclosure,
            dialect.escape,
            dialect.line_terminator,
        )
        with self._guard():
            return self.connection.execute(sql, params)

    # -- structure --------------------------------------------------------

    def execute_script(self, ddl: str) -> None:
        """Run one DDL statement as captured by SHOW CREATE."""
        with self._guard():
            self.connection.execute(ddl)

    def drop_relation(self, name: str, kind: RelationKind) -> None:
        keyword = "VIEW" if kind is RelationKind.VIEW else "TABLE"
        with self._guard():
            self.connection.execute(f"DROP {keyword} IF EXISTS {self._qualified(name)}")
        logger.debug(f"Dropped {self.side} {keyword.lower()} {name}")

    # -- session state ----------------------------------------------------

    def set_foreign_key_checks(self, enabled: bool) -> None:
        with self._guard():
            self.connection.execute(f"SET FOREIGN_KEY_CHECKS = {1 if enabled else 0}")
        self.foreign_key_checks = enabled

    @contextmanager
    def table_lock(self, name: str, mode: str) -> Iterator[None]:
        """
        Hold LOCK TABLES <name> READ|WRITE for the duration of the block.

        UNLOCK TABLES always runs on exit. If the connection is already gone
        the server has dropped the lock with it.
        """
        if mode not in LOCK_MODES:
            raise ValueError(f"Invalid lock mode: {mode!r}")

        with self._guard():
            self.connection.execute(f"LOCK TABLES {self._qualified(name)} {mode}")
        try:
            yield
        finally:
            try:
                self.connection.execute("UNLOCK TABLES")
            except ConnectionLostError:
                logger.warning(
                    f"{self.side} connection lost while holding {mode} lock on {name}; "
                    "lock released by server"
                )

    def reconnect(self) -> None:
        """Open a fresh connection and restore the default schema."""
        with self._guard():
            self.connection.reconnect()
        self.foreign_key_checks = True
        if self._schema_selected:
            self.use_schema()

    def close(self) -> None:
        self.connection.close()
