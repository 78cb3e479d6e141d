"""
Native bulk transfer through the MySQL client tools.

`mysqldump --tab` makes the source server write `<name>.txt` into the
working directory, and the target session loads it with LOAD DATA INFILE.
Both servers therefore need access to the working directory (same host or
a shared mount) and the FILE privilege. The load runs on the target
session itself, so suspended foreign key checks apply to it.
"""

import logging
import os
import subprocess
from abc import ABC, abstractmethod
from collections.abc import Sequence

from utils.tracing import add_span_event

from schema_mirror.config import ConnectionSettings, SyncConfig
from schema_mirror.errors import TransportError
from schema_mirror.snapshot.models import RelationDescriptor

from .base import TransferStrategy

logger = logging.getLogger(__name__)


class Transporter(ABC):
    """Runs one external bulk command to completion."""

    @abstractmethod
    def run(self, argv: Sequence[str], password: str | None = None) -> str:
        """
        Run a command and wait for it

        Args:
            argv: Program and arguments
            password: Passed through MYSQL_PWD, never on the command line

        Returns:
            The command's stdout

        Raises:
            TransportError: If the command cannot start or exits non-zero
        """


class SubprocessTransporter(Transporter):
    """Blocking subprocess.run per command."""

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout

    def run(self, argv: Sequence[str], password: str | None = None) -> str:
        env = dict(os.environ)
        if password:
            env["MYSQL_PWD"] = password

        logger.debug(f"Running {' '.join(argv)}")
        try:
            completed = subprocess.run(
                list(argv),
                env=env,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise TransportError(argv[0], 127, f"{argv[0]} not found") from e
        except subprocess.TimeoutExpired as e:
            raise TransportError(argv[0], -1, f"timed out after {self.timeout}s") from e

        if completed.returncode != 0:
            raise TransportError(argv[0], completed.returncode, completed.stderr)
        return completed.stdout


def _connection_args(settings: ConnectionSettings) -> list[str]:
    return [
        f"--host={settings.host}",
        f"--port={settings.port}",
        f"--user={settings.user}",
    ]


def _field_args(config: SyncConfig) -> list[str]:
    d = config.dialect
    return [
        f"--fields-terminated-by={d.field_delimiter}",
        f"--fields-enclosed-by={d.enclosure}",
        f"--fields-escaped-by={d.escape}",
        f"--lines-terminated-by={d.line_terminator}",
    ]


class NativeBulkStrategy(TransferStrategy):
    """Server-side dump through mysqldump --tab, loaded with LOAD DATA INFILE."""

    name = "native"

    def __init__(self, source, target, config: SyncConfig, transporter: Transporter | None = None):
        super().__init__(source, target, config)
        self.transporter = transporter or SubprocessTransporter()

    def dump_command(self, relation: RelationDescriptor) -> list[str]:
        return [
            self.config.mysqldump_path,
            *_connection_args(self.config.source),
            f"--tab={self.config.workdir.resolve()}",
            "--no-create-info",
            "--skip-triggers",
            *_field_args(self.config),
            self.config.source_schema,
            relation.name,
        ]

    def load(self, relation: RelationDescriptor) -> int:
        """Load the dumped data file into the write-locked target table."""
        columns = [column for column, _ in self.target.column_types(relation.name)]
        path = str(self.artifacts(relation.name).data.resolve())

        with self.target.table_lock(relation.name, "WRITE"):
            loaded = self.target.load_data_file(
                relation.name, path, columns, self.config.dialect
            )

        add_span_event("loaded", rows=loaded)
        logger.debug(f"Loaded {loaded} rows into {relation.name} from {path}")
        return loaded

    def copy_data(self, relation: RelationDescriptor) -> int:
        self.config.workdir.mkdir(parents=True, exist_ok=True)
        structure = self.artifacts(relation.name).structure
        ddl = structure.read_text(encoding="utf-8") if structure.exists() else None

        self.transporter.run(self.dump_command(relation), self.config.source.password)

        # --tab always writes <name>.sql too; keep the DDL we captured
        if ddl is not None:
            structure.write_text(ddl, encoding="utf-8")

        loaded = self.load(relation)

        if self.config.purge_artifacts:
            self.artifacts(relation.name).data.unlink(missing_ok=True)

        return loaded
