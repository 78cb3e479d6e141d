"""
PyMySQL connection wrapper with reconnect support.

One MySQLConnection is owned per side of a sync for the whole run. Driver
errors are translated into DatabaseError, and lost-connection errors into
ConnectionLostError so callers can decide to reconnect.
"""

import logging
import time
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

import pymysql
import pymysql.cursors
from opentelemetry import trace
from prometheus_client import Counter, Histogram

from utils.retry import retry_with_backoff
from utils.tracing import trace_operation

logger = logging.getLogger(__name__)

# Client-side codes for a connection that went away mid-session
CONNECTION_LOST_CODES = frozenset({2006, 2013, 2055})


# Metrics
DB_CONNECTS_TOTAL = Counter(
    "schema_mirror_db_connects_total",
    "Connection attempts per side and outcome",
    ["side", "outcome"],
)

DB_ERRORS_TOTAL = Counter(
    "schema_mirror_db_errors_total",
    "Driver errors per side and error kind",
    ["side", "error_type"],
)

DB_QUERY_SECONDS = Histogram(
    "schema_mirror_db_query_seconds",
    "Statement execution time",
    ["side"],
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0, 120.0],
)


class DatabaseError(Exception):
    """A MySQL driver error, with the server/client error code when known."""

    def __init__(self, message: str, code: int | None = None):
        super().__init__(message)
        self.code = code


class ConnectionLostError(DatabaseError):
    """The server connection dropped (gone away / lost during query)."""


def _error_code(exc: BaseException) -> int | None:
    args = getattr(exc, "args", ())
    if args and isinstance(args[0], int):
        return args[0]
    return None


def is_connection_lost(exc: BaseException) -> bool:
    """True if a driver exception means the connection is no longer usable."""
    if isinstance(exc, pymysql.err.InterfaceError):
        return True
    if isinstance(exc, pymysql.err.OperationalError):
        return _error_code(exc) in CONNECTION_LOST_CODES
    return False


class MySQLConnection:
    """
    A single PyMySQL connection for one side of a sync.

    Connections are opened with autocommit on and LOCAL INFILE disabled.
    No default database is selected; callers qualify names or issue USE.
    """

    def __init__(
        self,
        host: str,
        port: int,
        user: str,
        password: str | None,
        side: str,
        connect_timeout: int = 10,
        read_timeout: int | None = None,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.side = side
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self._conn: pymysql.connections.Connection | None = None

    def __repr__(self) -> str:
        return f"MySQLConnection({self.side}: {self.user}@{self.host}:{self.port})"

    @property
    def is_open(self) -> bool:
        return self._conn is not None and bool(self._conn.open)

    @retry_with_backoff(
        max_retries=2,
        base_delay=1.0,
        retryable_exceptions=(pymysql.err.OperationalError,),
        should_retry=lambda e: _error_code(e) in (2003, 2013),
    )
    def _open(self) -> pymysql.connections.Connection:
        return pymysql.connect(
            host=self.host,
            port=self.port,
            user=self.user,
            password=self.password or "",
            charset="utf8mb4",
            autocommit=True,
            local_infile=False,
            connect_timeout=self.connect_timeout,
            read_timeout=self.read_timeout,
        )

    def connect(self) -> None:
        """
        Open the connection

        Raises:
            DatabaseError: If the server refuses or cannot be reached
        """
        with trace_operation(
            "mysql.connect",
            kind=trace.SpanKind.CLIENT,
            side=self.side,
            db_host=self.host,
        ):
            try:
                self._conn = self._open()
            except pymysql.err.MySQLError as e:
                DB_CONNECTS_TOTAL.labels(side=self.side, outcome="failed").inc()
                raise DatabaseError(
                    f"Cannot connect to {self.side} {self.host}:{self.port}: {e}",
                    code=_error_code(e),
                ) from e

        DB_CONNECTS_TOTAL.labels(side=self.side, outcome="success").inc()
        logger.info(f"Connected to {self.side} {self.user}@{self.host}:{self.port}")

    def reconnect(self) -> None:
        """Drop the current connection (if any) and open a fresh one."""
        logger.warning(f"Reconnecting {self.side} connection to {self.host}:{self.port}")
        self.close()
        self.connect()

    def close(self) -> None:
        if self._conn is None:
            return
        try:
            self._conn.close()
        except pymysql.err.Error as e:
            # Already closed by the server; nothing left to release
            logger.debug(f"Ignoring error closing {self.side} connection: {e}")
        finally:
            self._conn = None

    def _require(self) -> pymysql.connections.Connection:
        if self._conn is None:
            raise ConnectionLostError(f"{self.side} connection is not open")
        return self._conn

    @contextmanager
    def _translate_errors(self, sql: str) -> Iterator[None]:
        started = time.perf_counter()
        try:
            yield
        except pymysql.err.MySQLError as e:
            code = _error_code(e)
            if is_connection_lost(e):
                DB_ERRORS_TOTAL.labels(side=self.side, error_type="connection_lost").inc()
                raise ConnectionLostError(
                    f"{self.side} connection lost: {e}", code=code
                ) from e
            DB_ERRORS_TOTAL.labels(side=self.side, error_type=type(e).__name__).inc()
            logger.debug(f"{self.side} statement failed: {sql[:200]}")
            raise DatabaseError(f"{self.side}: {e}", code=code) from e
        finally:
            DB_QUERY_SECONDS.labels(side=self.side).observe(time.perf_counter() - started)

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> int:
        """Execute one statement, returning the affected row count."""
        conn = self._require()
        with self._translate_errors(sql):
            with conn.cursor() as cursor:
                return cursor.execute(sql, params)

    def executemany(self, sql: str, rows: Sequence[Sequence[Any]]) -> int:
        """Execute a statement for a batch of parameter rows."""
        conn = self._require()
        with self._translate_errors(sql):
            with conn.cursor() as cursor:
                return cursor.executemany(sql, rows) or 0

    def fetchall(self, sql: str, params: Sequence[Any] | None = None) -> list[tuple]:
        conn = self._require()
        with self._translate_errors(sql):
            with conn.cursor() as cursor:
                cursor.execute(sql, params)
                return list(cursor.fetchall())

    def fetchall_dict(
        self, sql: str, params: Sequence[Any] | None = None
    ) -> list[dict[str, Any]]:
        conn = self._require()
        with self._translate_errors(sql):
            with conn.cursor(pymysql.cursors.DictCursor) as cursor:
                cursor.execute(sql, params)
                return list(cursor.fetchall())

    def fetchone(self, sql: str, params: Sequence[Any] | None = None) -> tuple | None:
        conn = self._require()
        with self._translate_errors(sql):
            with conn.cursor() as cursor:
                cursor.execute(sql, params)
                return cursor.fetchone()

    def stream(
        self,
        sql: str,
        params: Sequence[Any] | None = None,
        fetch_size: int = 1000,
    ) -> Iterator[tuple]:
        """
        Stream a result set with an unbuffered cursor.

        The result must be consumed (or the generator closed) before any
        other statement runs on this connection.
        """
        conn = self._require()
        with self._translate_errors(sql):
            with conn.cursor(pymysql.cursors.SSCursor) as cursor:
                cursor.execute(sql, params)
                while True:
                    rows = cursor.fetchmany(fetch_size)
                    if not rows:
                        break
                    yield from rows
