"""
Point-in-time descriptions of the relations in one schema.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType


class RelationKind(Enum):
    TABLE = "table"
    VIEW = "view"

    @classmethod
    def from_catalog(cls, table_type: str) -> "RelationKind | None":
        """Map information_schema.TABLES.TABLE_TYPE; None for kinds we ignore."""
        return {"BASE TABLE": cls.TABLE, "VIEW": cls.VIEW}.get(table_type.upper())


@dataclass(frozen=True)
class RelationDescriptor:
    """
    One relation as the catalog reported it.

    row_count is exact (COUNT(*) where the engine only estimates) and None
    for views. updated_at is None where the engine does not track it.
    checksum is only filled when comparing by checksum. definition holds
    the normalised view body.
    """

    name: str
    kind: RelationKind
    row_count: int | None = None
    updated_at: datetime | None = None
    engine: str | None = None
    checksum: int | None = None
    definition: str | None = None

    @property
    def is_table(self) -> bool:
        return self.kind is RelationKind.TABLE

    @property
    def is_view(self) -> bool:
        return self.kind is RelationKind.VIEW

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "kind": self.kind.value,
            "row_count": self.row_count,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "engine": self.engine,
            "checksum": self.checksum,
        }


@dataclass(frozen=True)
class SchemaSnapshot:
    """
    All relations of a schema, captured by one catalog read.

    Snapshots are never mutated; `without` and `with_checksums` return new
    snapshots.
    """

    schema: str
    captured_at: datetime
    relations: Mapping[str, RelationDescriptor] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "relations", MappingProxyType(dict(self.relations)))

    @classmethod
    def of(
        cls,
        schema: str,
        descriptors: Iterable[RelationDescriptor],
        captured_at: datetime | None = None,
    ) -> "SchemaSnapshot":
        return cls(
            schema=schema,
            captured_at=captured_at or datetime.now(UTC),
            relations={d.name: d for d in descriptors},
        )

    def __contains__(self, name: object) -> bool:
        return name in self.relations

    def __len__(self) -> int:
        return len(self.relations)

    def get(self, name: str) -> RelationDescriptor | None:
        return self.relations.get(name)

    def names(self) -> set[str]:
        return set(self.relations)

    def tables(self) -> list[RelationDescriptor]:
        return sorted(
            (d for d in self.relations.values() if d.is_table), key=lambda d: d.name
        )

    def views(self) -> list[RelationDescriptor]:
        return sorted(
            (d for d in self.relations.values() if d.is_view), key=lambda d: d.name
        )

    def without(self, names: Iterable[str]) -> "SchemaSnapshot":
        excluded = set(names)
        return SchemaSnapshot(
            schema=self.schema,
            captured_at=self.captured_at,
            relations={n: d for n, d in self.relations.items() if n not in excluded},
        )

    def with_checksums(self, checksums: Mapping[str, int | None]) -> "SchemaSnapshot":
        relations = dict(self.relations)
        for name, checksum in checksums.items():
            if name in relations:
                relations[name] = replace(relations[name], checksum=checksum)
        return SchemaSnapshot(
            schema=self.schema, captured_at=self.captured_at, relations=relations
        )
