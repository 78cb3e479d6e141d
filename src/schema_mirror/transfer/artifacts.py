"""
On-disk transfer artifacts for one relation.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from utils.sql_safety import validate_identifier

logger = logging.getLogger(__name__)

STRUCTURE_SUFFIX = ".sql"
DATA_SUFFIX = ".txt"


@dataclass(frozen=True)
class ArtifactPaths:
    """
    `<workdir>/<name>.sql` (DDL) and `<workdir>/<name>.txt` (data).

    Paths are derived from the relation name alone; the working directory
    is never scanned.
    """

    workdir: Path
    name: str

    def __post_init__(self):
        validate_identifier(self.name)
        object.__setattr__(self, "workdir", Path(self.workdir))

    @property
    def structure(self) -> Path:
        return self.workdir / f"{self.name}{STRUCTURE_SUFFIX}"

    @property
    def data(self) -> Path:
        return self.workdir / f"{self.name}{DATA_SUFFIX}"

    def remove(self) -> list[Path]:
        """Delete whichever artifacts exist; returns the paths removed."""
        removed = []
        for path in (self.structure, self.data):
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            removed.append(path)
            logger.debug(f"Removed artifact {path}")
        return removed
