"""
Transfer strategies: how a relation's structure and data reach the target.

- BulkFileStrategy: client-side dump to `<name>.txt` and batched load
- NativeBulkStrategy: server-side mysqldump --tab / LOAD DATA INFILE
"""

from schema_mirror.config import SyncConfig

from .artifacts import ArtifactPaths
from .base import TransferStrategy
from .bulk_file import BulkFileStrategy
from .flatfile import FlatFileReader, FlatFileWriter, binary_positions
from .native import NativeBulkStrategy, SubprocessTransporter, Transporter
from .views import rewrite_view_definition


def build_strategy(
    source,
    target,
    config: SyncConfig,
    transporter: Transporter | None = None,
) -> TransferStrategy:
    """Pick the strategy the configuration asks for."""
    if config.native:
        return NativeBulkStrategy(source, target, config, transporter)
    return BulkFileStrategy(source, target, config)


__all__ = [
    "TransferStrategy",
    "BulkFileStrategy",
    "NativeBulkStrategy",
    "Transporter",
    "SubprocessTransporter",
    "ArtifactPaths",
    "FlatFileReader",
    "FlatFileWriter",
    "binary_positions",
    "rewrite_view_definition",
    "build_strategy",
]
