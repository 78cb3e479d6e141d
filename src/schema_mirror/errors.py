"""
Error kinds raised by the schema-mirror engine.

Fatal kinds (CatalogUnavailable, AmbiguousComparisonStrategy,
SchemaCreationFailed) abort a run. Per-relation kinds are collected on the
RunResult and only affect the exit status.
"""


class SchemaMirrorError(Exception):
    """Base class for all schema-mirror errors."""


class CatalogUnavailable(SchemaMirrorError):
    """The catalog of a schema could not be queried."""

    def __init__(self, schema: str, reason: str):
        super().__init__(f"Catalog for schema {schema!r} unavailable: {reason}")
        self.schema = schema
        self.reason = reason


class AmbiguousComparisonStrategy(SchemaMirrorError):
    """Zero or several comparison strategies were selected."""


class SchemaCreationFailed(SchemaMirrorError):
    """The target schema did not exist and could not be created."""


class RelationError(SchemaMirrorError):
    """An error scoped to a single relation; the run continues."""

    def __init__(self, name: str, message: str):
        super().__init__(f"{name}: {message}")
        self.name = name
        self.message = message


class RelationTransferFailed(RelationError):
    """Dropping, copying or loading one relation failed."""


class LedgerWriteError(RelationError):
    """A completed relation could not be recorded in the resume ledger."""


class ConsistencyMismatch(RelationError):
    """Row counts differ between source and target after the run."""

    def __init__(self, name: str, source_count: int, target_count: int):
        super().__init__(
            name,
            f"row count mismatch (source={source_count}, target={target_count})",
        )
        self.source_count = source_count
        self.target_count = target_count


class ConnectionLost(SchemaMirrorError):
    """The connection to one side dropped; the relation may be retried."""

    def __init__(self, side: str, reason: str = ""):
        message = f"{side} connection lost"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.side = side


class TransportError(SchemaMirrorError):
    """An external bulk tool (mysqldump) failed."""

    def __init__(self, command: str, returncode: int, stderr: str = ""):
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else "no output"
        super().__init__(f"{command} exited with status {returncode}: {detail}")
        self.command = command
        self.returncode = returncode
        self.stderr = stderr


class FlatFileError(SchemaMirrorError):
    """A flat data file is malformed or truncated."""
