"""
Resume Ledger.

Records which tables a run has fully processed so an interrupted run can
be restarted in the same working directory without repeating finished
work. The ledger is an append-only text file, one name per line, scoped
to one (working directory, database) pair.

Entries are never removed by the tool. Deleting the file (or the line)
is the way to force a table to be reprocessed. Concurrent runs against
the same directory are not supported.
"""

import logging
from pathlib import Path

from opentelemetry import trace
from prometheus_client import Counter

from utils.sql_safety import validate_identifier
from utils.tracing import trace_operation

from schema_mirror.errors import LedgerWriteError

logger = logging.getLogger(__name__)


# Metrics
LEDGER_OPERATIONS = Counter(
    "schema_mirror_ledger_operations_total",
    "Resume ledger file operations",
    ["operation"],  # load, record, error
)


class ResumeLedger:
    """File-backed set of relation names already processed."""

    enabled = True

    def __init__(self, workdir: str | Path, database: str):
        validate_identifier(database)
        self.workdir = Path(workdir)
        self.database = database
        self.path = self.workdir / f".{database}.ledger"
        self._names: set[str] = set()
        self._order: list[str] = []
        self._load()

    def _load(self) -> None:
        with trace_operation(
            "ledger.load",
            kind=trace.SpanKind.INTERNAL,
            database=self.database,
        ):
            if not self.path.exists():
                logger.debug(f"No resume ledger at {self.path}")
                return

            with open(self.path, encoding="utf-8") as f:
                for line in f:
                    name = line.strip()
                    if name and name not in self._names:
                        self._names.add(name)
                        self._order.append(name)

            LEDGER_OPERATIONS.labels(operation="load").inc()

        if self._order:
            logger.info(
                f"Resume ledger {self.path} lists {len(self._order)} "
                "already processed relation(s)"
            )

    def has(self, name: str) -> bool:
        return name in self._names

    def __contains__(self, name: object) -> bool:
        return name in self._names

    def __len__(self) -> int:
        return len(self._order)

    def entries(self) -> list[str]:
        """Recorded names in the order they were recorded."""
        return list(self._order)

    def record(self, name: str) -> None:
        """
        Append a name and flush it to disk

        Raises:
            LedgerWriteError: If the ledger file cannot be written
        """
        if name in self._names:
            return

        try:
            self.workdir.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(f"{name}\n")
                f.flush()
        except OSError as e:
            LEDGER_OPERATIONS.labels(operation="error").inc()
            raise LedgerWriteError(name, f"cannot write {self.path}: {e}") from e

        self._names.add(name)
        self._order.append(name)
        LEDGER_OPERATIONS.labels(operation="record").inc()
        logger.debug(f"Recorded {name} in resume ledger")


class DisabledLedger:
    """Ledger stand-in for runs without resume: remembers nothing."""

    enabled = False

    def has(self, name: str) -> bool:
        return False

    def __contains__(self, name: object) -> bool:
        return False

    def __len__(self) -> int:
        return 0

    def entries(self) -> list[str]:
        return []

    def record(self, name: str) -> None:
        pass


def open_ledger(workdir: str | Path, database: str, resume: bool = True):
    """ResumeLedger when resuming is enabled, DisabledLedger otherwise."""
    if resume:
        return ResumeLedger(workdir, database)
    return DisabledLedger()
