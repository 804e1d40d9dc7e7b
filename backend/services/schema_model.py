"""
Schema model value types.

Tables, fields, relationships and rows as frozen dataclasses. Sequences are
tuples so a revision can never be edited in place; the store builds a new
FullState for every change and reuses untouched containers.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

CARDINALITIES = ("1:1", "1:N", "N:1", "N:N")
DEFAULT_CARDINALITY = "1:N"

Row = Mapping[str, Any]
DataDef = Mapping[str, Tuple[Row, ...]]


def freeze_row(row: Mapping[str, Any]) -> Row:
    """Read-only view over a private copy of ``row``."""
    if isinstance(row, MappingProxyType):
        return row
    return MappingProxyType(dict(row))


def _freeze_rows(rows: Sequence[Mapping[str, Any]]) -> Tuple[Row, ...]:
    # Already-frozen tuples are reused as is, so untouched tables keep their identity.
    if isinstance(rows, tuple) and all(isinstance(r, MappingProxyType) for r in rows):
        return rows
    return tuple(freeze_row(r) for r in rows)


def typed_equal(a: Any, b: Any) -> bool:
    """Value equality that also tells 1, 1.0 and True apart, recursing into containers."""
    if isinstance(a, Mapping) and isinstance(b, Mapping):
        return a.keys() == b.keys() and all(typed_equal(a[k], b[k]) for k in a)
    if type(a) is not type(b):
        return False
    if isinstance(a, (list, tuple)):
        return len(a) == len(b) and all(typed_equal(x, y) for x, y in zip(a, b))
    return a == b


def _new_relationship_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class FieldDef:
    name: str
    type: str = "VARCHAR(100)"
    required: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "type": self.type, "required": self.required}

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "FieldDef":
        return cls(name=str(raw["name"]), type=str(raw["type"]), required=bool(raw.get("required", False)))


@dataclass(frozen=True)
class TableDef:
    name: str
    fields: Tuple[FieldDef, ...] = ()

    def field_names(self) -> Tuple[str, ...]:
        return tuple(f.name for f in self.fields)

    def get_field(self, name: str) -> Optional[FieldDef]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "fields": [f.to_dict() for f in self.fields]}

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "TableDef":
        return cls(name=str(raw["name"]), fields=tuple(FieldDef.from_dict(f) for f in raw.get("fields") or []))


@dataclass(frozen=True)
class Relationship:
    """Directed reference between two table columns.

    ``id`` is a session-scoped handle: it takes no part in equality and is
    not persisted, so two relationships with the same endpoints and
    cardinality are duplicates whatever their ids.
    """
    source_table: str
    source_field: str
    target_table: str
    target_field: str
    cardinality: str = DEFAULT_CARDINALITY
    id: str = field(default_factory=_new_relationship_id, compare=False)

    @property
    def label(self) -> str:
        return f"{self.source_field} → {self.target_field} ({self.cardinality})"

    def touches_table(self, table: str) -> bool:
        return self.source_table == table or self.target_table == table

    def touches_field(self, table: str, field_name: str) -> bool:
        return (self.source_table == table and self.source_field == field_name) or (
            self.target_table == table and self.target_field == field_name
        )

    def to_dict(self, include_id: bool = False) -> Dict[str, Any]:
        out = {
            "sourceTable": self.source_table,
            "sourceField": self.source_field,
            "targetTable": self.target_table,
            "targetField": self.target_field,
            "cardinality": self.cardinality,
        }
        if include_id:
            out["id"] = self.id
        return out

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Relationship":
        cardinality = raw.get("cardinality")
        if cardinality not in CARDINALITIES:
            cardinality = DEFAULT_CARDINALITY
        return cls(
            source_table=str(raw["sourceTable"]),
            source_field=str(raw["sourceField"]),
            target_table=str(raw["targetTable"]),
            target_field=str(raw["targetField"]),
            cardinality=cardinality,
        )


@dataclass(frozen=True)
class SchemaDef:
    tables: Tuple[TableDef, ...] = ()
    relationships: Tuple[Relationship, ...] = ()

    def table_names(self) -> Tuple[str, ...]:
        return tuple(t.name for t in self.tables)

    def get_table(self, name: str) -> Optional[TableDef]:
        for t in self.tables:
            if t.name == name:
                return t
        return None

    def has_table(self, name: str) -> bool:
        return self.get_table(name) is not None

    def to_dict(self, include_ids: bool = False) -> Dict[str, Any]:
        return {
            "tables": [t.to_dict() for t in self.tables],
            "relationships": [r.to_dict(include_id=include_ids) for r in self.relationships],
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "SchemaDef":
        return cls(
            tables=tuple(TableDef.from_dict(t) for t in raw.get("tables") or []),
            relationships=tuple(Relationship.from_dict(r) for r in raw.get("relationships") or []),
        )


@dataclass(frozen=True)
class FullState:
    """Schema plus rows: the single unit that is persisted and replaced."""
    schema: SchemaDef = field(default_factory=SchemaDef)
    data: DataDef = field(default_factory=dict)

    def __post_init__(self):
        frozen = {name: _freeze_rows(rows) for name, rows in self.data.items()}
        object.__setattr__(self, "data", MappingProxyType(frozen))

    @classmethod
    def empty(cls) -> "FullState":
        return cls(schema=SchemaDef(), data={})

    def rows(self, table: str) -> Tuple[Row, ...]:
        return self.data.get(table, ())

    def with_changes(self, **changes: Any) -> "FullState":
        return replace(self, **changes)

    def same_as(self, other: "FullState") -> bool:
        """Equal schema and rows whose values match in type as well as value."""
        return self.schema == other.schema and typed_equal(self.data, other.data)

    def to_dict(self, include_ids: bool = False) -> Dict[str, Any]:
        return {
            "schema": self.schema.to_dict(include_ids=include_ids),
            "data": {name: [dict(r) for r in rows] for name, rows in self.data.items()},
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "FullState":
        if not isinstance(raw, Mapping):
            raise TypeError("state must be a JSON object")
        schema = SchemaDef.from_dict(raw["schema"])
        raw_data = raw.get("data") or {}
        if not isinstance(raw_data, Mapping):
            raise TypeError("state.data must be a JSON object")
        data: Dict[str, Tuple[Row, ...]] = {}
        for name, rows in raw_data.items():
            if not isinstance(rows, list):
                raise TypeError(f"rows for table {name!r} must be a list")
            data[str(name)] = tuple(freeze_row(r) for r in rows)
        return cls(schema=schema, data=data)
