"""
Configuration values for a sync run.

Built once by the CLI (or by a caller embedding the engine) and passed into
every component constructor. Nothing in the engine reads global options.
"""

from dataclasses import dataclass, field
from pathlib import Path

from utils.sql_safety import validate_identifier, validate_integer_param

from schema_mirror.compare.strategy import ComparisonStrategy

DEFAULT_BATCH_SIZE = 1000


@dataclass(frozen=True)
class ConnectionSettings:
    """Where and as whom to connect for one side of the sync."""

    host: str = "localhost"
    port: int = 3306
    user: str = "root"
    password: str | None = field(default=None, repr=False)
    database: str = ""

    def describe(self) -> str:
        return f"{self.user}@{self.host}:{self.port}/{self.database}"


@dataclass(frozen=True)
class FlatFileDialect:
    """
    Layout of the flat data files.

    Defaults match what SELECT ... INTO OUTFILE / LOAD DATA INFILE use with
    FIELDS TERMINATED BY ',' ENCLOSED BY '"', so files can be loaded by
    MySQL itself.
    """

    field_delimiter: str = ","
    enclosure: str = '"'
    escape: str = "\\"
    line_terminator: str = "\n"
    null_sentinel: str = "\\N"

    def __post_init__(self):
        if not self.field_delimiter:
            raise ValueError("Field delimiter cannot be empty")
        if not self.line_terminator:
            raise ValueError("Line terminator cannot be empty")
        if self.field_delimiter == self.line_terminator:
            raise ValueError("Field delimiter and line terminator must differ")
        if len(self.enclosure) != 1:
            raise ValueError("Field enclosure must be exactly one character")
        if len(self.escape) != 1 or self.escape == self.enclosure:
            raise ValueError("Escape must be one character distinct from the enclosure")
        if not self.null_sentinel or self.null_sentinel.startswith(self.enclosure):
            raise ValueError("NULL sentinel must be non-empty and unenclosed")
        for separator in (self.field_delimiter, self.line_terminator):
            if self.null_sentinel.startswith(separator):
                raise ValueError("NULL sentinel cannot start with a separator")


@dataclass(frozen=True)
class SyncConfig:
    """
    Everything a run needs to know.

    `comparison` may be None here so that an unset strategy surfaces as
    AmbiguousComparisonStrategy when the run starts, before any mutation.
    """

    source: ConnectionSettings
    target: ConnectionSettings
    comparison: ComparisonStrategy | None
    workdir: Path = field(default_factory=Path.cwd)
    native: bool = False
    sync_views: bool = True
    suspend_foreign_key_checks: bool = False
    resume: bool = True
    purge_artifacts: bool = False
    batch_size: int = DEFAULT_BATCH_SIZE
    dialect: FlatFileDialect = field(default_factory=FlatFileDialect)
    mysqldump_path: str = "mysqldump"

    def __post_init__(self):
        validate_identifier(self.source.database)
        validate_identifier(self.target.database)
        validate_integer_param(self.batch_size, "batch_size", min_value=1)
        # mysqldump --tab always writes NULL as <escape>N
        native_null = self.dialect.escape + "N"
        if self.native and self.dialect.null_sentinel != native_null:
            raise ValueError(
                f"NULL sentinel {self.dialect.null_sentinel!r} is not supported with "
                f"native transfer, which always writes {native_null!r}"
            )
        # Accept plain strings for convenience
        object.__setattr__(self, "workdir", Path(self.workdir))

    @property
    def source_schema(self) -> str:
        return self.source.database

    @property
    def target_schema(self) -> str:
        return self.target.database
