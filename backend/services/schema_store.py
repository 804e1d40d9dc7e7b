"""
SchemaStore: the single authority over the editable schema + data state.

Every operation reads the latest committed FullState, builds the next one
without touching the old, persists it under one fixed key and returns True.
Structurally invalid requests (duplicate names, missing tables, bad
indices) change nothing and return False.
"""
import json
import logging
import os
import threading
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from backend.services.errors import StorageError
from backend.services.runtime import log_event
from backend.services.schema_model import (
    DataDef,
    FieldDef,
    FullState,
    Relationship,
    Row,
    SchemaDef,
    TableDef,
)
from backend.services.storage import KeyValueStore

logger = logging.getLogger("schema_store")

STATE_KEY = "sqlJsonEditorState"
ALLOW_SELF_REFERENTIAL_RELATIONSHIPS = os.getenv(
    "ALLOW_SELF_REFERENTIAL_RELATIONSHIPS", "true"
).lower() in {"1", "true", "yes", "on"}


class SchemaStore:
    def __init__(
        self,
        kv_store: KeyValueStore,
        allow_self_referential_relationships: bool = ALLOW_SELF_REFERENTIAL_RELATIONSHIPS,
        key: str = STATE_KEY,
    ):
        self._kv = kv_store
        self._key = key
        self.allow_self_referential_relationships = allow_self_referential_relationships
        self._lock = threading.RLock()
        # Rows waiting for their table to appear in the schema.
        self._pending: Dict[str, List[Row]] = {}
        self._state = self._load()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def _load(self) -> FullState:
        try:
            raw = self._kv.get(self._key)
        except StorageError as exc:
            log_event(logger, logging.ERROR, "state_load_failed", error=str(exc))
            return FullState.empty()
        if raw is None:
            return FullState.empty()
        try:
            return FullState.from_dict(json.loads(raw))
        except (ValueError, TypeError, KeyError, AttributeError) as exc:
            log_event(logger, logging.WARNING, "state_load_corrupt", error=str(exc))
            return FullState.empty()

    def _persist(self, state: FullState) -> None:
        try:
            self._kv.set(self._key, json.dumps(state.to_dict(), ensure_ascii=False))
        except (StorageError, TypeError, ValueError) as exc:
            log_event(logger, logging.ERROR, "state_persist_failed", error=str(exc))

    def _commit(self, state: FullState, op: str) -> bool:
        previous = self._state
        if state.same_as(previous):
            logger.debug("noop op=%s", op)
            return False
        self._state = state
        self._persist(state)
        log_event(
            logger,
            logging.DEBUG,
            "state_committed",
            op=op,
            tables=len(state.schema.tables),
            relationships=len(state.schema.relationships),
        )
        if self._pending and previous.schema.table_names() != state.schema.table_names():
            self._flush_pending()
        return True

    @property
    def state(self) -> FullState:
        return self._state

    # ------------------------------------------------------------------
    # Schema operations
    # ------------------------------------------------------------------
    def set_schema(self, schema: SchemaDef) -> bool:
        with self._lock:
            current = self._state
            data: DataDef = {t.name: current.data.get(t.name, ()) for t in schema.tables}
            return self._commit(FullState(schema=schema, data=data), "set_schema")

    def add_table(self, name: str) -> bool:
        with self._lock:
            current = self._state
            if current.schema.has_table(name):
                return False
            schema = SchemaDef(
                tables=current.schema.tables + (TableDef(name=name),),
                relationships=current.schema.relationships,
            )
            data = dict(current.data)
            data[name] = ()
            return self._commit(FullState(schema=schema, data=data), "add_table")

    def remove_table(self, name: str) -> bool:
        with self._lock:
            current = self._state
            schema = SchemaDef(
                tables=tuple(t for t in current.schema.tables if t.name != name),
                relationships=tuple(r for r in current.schema.relationships if not r.touches_table(name)),
            )
            data = {k: v for k, v in current.data.items() if k != name}
            return self._commit(FullState(schema=schema, data=data), "remove_table")

    def rename_table(self, old_name: str, new_name: str) -> bool:
        with self._lock:
            current = self._state
            if old_name == new_name or not current.schema.has_table(old_name):
                return False
            if current.schema.has_table(new_name):
                return False
            tables = tuple(
                TableDef(name=new_name, fields=t.fields) if t.name == old_name else t
                for t in current.schema.tables
            )
            relationships = tuple(_rename_table_in_relationship(r, old_name, new_name) for r in current.schema.relationships)
            data = {(new_name if k == old_name else k): v for k, v in current.data.items()}
            return self._commit(
                FullState(schema=SchemaDef(tables=tables, relationships=relationships), data=data),
                "rename_table",
            )

    def add_field(self, table_name: str, field: FieldDef) -> bool:
        with self._lock:
            current = self._state
            table = current.schema.get_table(table_name)
            if table is None or table.get_field(field.name) is not None:
                return False
            updated = TableDef(name=table.name, fields=table.fields + (field,))
            return self._commit(_replace_table(current, updated), "add_field")

    def update_field(self, table_name: str, old_field_name: str, new_field: FieldDef) -> bool:
        """Replace a field definition.

        A rename is carried into every relationship endpoint on this table.
        Row values stored under the old name are left where they are.
        """
        with self._lock:
            current = self._state
            table = current.schema.get_table(table_name)
            if table is None or table.get_field(old_field_name) is None:
                return False
            renamed = new_field.name != old_field_name
            if renamed and table.get_field(new_field.name) is not None:
                return False
            updated = TableDef(
                name=table.name,
                fields=tuple(new_field if f.name == old_field_name else f for f in table.fields),
            )
            state = _replace_table(current, updated)
            if renamed:
                relationships = tuple(
                    _rename_field_in_relationship(r, table_name, old_field_name, new_field.name)
                    for r in state.schema.relationships
                )
                state = state.with_changes(schema=SchemaDef(tables=state.schema.tables, relationships=relationships))
            return self._commit(state, "update_field")

    def remove_field(self, table_name: str, field_name: str) -> bool:
        with self._lock:
            current = self._state
            table = current.schema.get_table(table_name)
            if table is None or table.get_field(field_name) is None:
                return False
            updated = TableDef(name=table.name, fields=tuple(f for f in table.fields if f.name != field_name))
            state = _replace_table(current, updated)
            relationships = tuple(
                r for r in state.schema.relationships if not r.touches_field(table_name, field_name)
            )
            state = state.with_changes(schema=SchemaDef(tables=state.schema.tables, relationships=relationships))
            return self._commit(state, "remove_field")

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------
    def add_relationship(self, rel: Relationship) -> bool:
        with self._lock:
            current = self._state
            if rel.source_table == rel.target_table and not self.allow_self_referential_relationships:
                return False
            if rel in current.schema.relationships:
                return False
            schema = SchemaDef(
                tables=current.schema.tables,
                relationships=current.schema.relationships + (rel,),
            )
            return self._commit(current.with_changes(schema=schema), "add_relationship")

    def remove_relationship(self, index: int) -> bool:
        with self._lock:
            current = self._state
            rels = current.schema.relationships
            if index < 0 or index >= len(rels):
                return False
            schema = SchemaDef(tables=current.schema.tables, relationships=rels[:index] + rels[index + 1:])
            return self._commit(current.with_changes(schema=schema), "remove_relationship")

    def remove_relationship_by_id(self, rel_id: str) -> bool:
        with self._lock:
            for idx, rel in enumerate(self._state.schema.relationships):
                if rel.id == rel_id:
                    return self.remove_relationship(idx)
            return False

    def find_relationship_for_edge(self, source_table: str, target_table: str, label: str) -> Optional[int]:
        """Map a diagram edge (source, target, label) back to its relationship index."""
        for idx, rel in enumerate(self._state.schema.relationships):
            if rel.source_table == source_table and rel.target_table == target_table and rel.label == label:
                return idx
        return None

    # ------------------------------------------------------------------
    # Rows
    # ------------------------------------------------------------------
    def add_row(self, table_name: str, row: Mapping[str, Any]) -> bool:
        with self._lock:
            current = self._state
            if not current.schema.has_table(table_name):
                return False
            return self._commit(_replace_rows(current, table_name, current.rows(table_name) + (dict(row),)), "add_row")

    def update_row(self, table_name: str, index: int, row: Mapping[str, Any]) -> bool:
        with self._lock:
            current = self._state
            if table_name not in current.data:
                return False
            rows = current.data[table_name]
            if index < 0 or index >= len(rows):
                return False
            new_rows = rows[:index] + (dict(row),) + rows[index + 1:]
            return self._commit(_replace_rows(current, table_name, new_rows), "update_row")

    def remove_row(self, table_name: str, index: int) -> bool:
        with self._lock:
            current = self._state
            if table_name not in current.data:
                return False
            rows = current.data[table_name]
            if index < 0 or index >= len(rows):
                return False
            return self._commit(_replace_rows(current, table_name, rows[:index] + rows[index + 1:]), "remove_row")

    # ------------------------------------------------------------------
    # Pending rows (generated data waiting for its schema)
    # ------------------------------------------------------------------
    @property
    def pending_rows(self) -> Dict[str, Tuple[Row, ...]]:
        with self._lock:
            return {k: tuple(v) for k, v in self._pending.items()}

    def stage_rows(self, data: Mapping[str, Sequence[Mapping[str, Any]]]) -> None:
        with self._lock:
            for table_name, rows in data.items():
                self._pending.setdefault(table_name, []).extend(dict(r) for r in rows)
            self._flush_pending()

    def _flush_pending(self) -> None:
        table_names = set(self._state.schema.table_names())
        ready = [name for name in self._pending if name in table_names]
        for name in ready:
            rows = self._pending.pop(name)
            for row in rows:
                self.add_row(name, row)
        if ready:
            log_event(logger, logging.INFO, "pending_rows_flushed", tables=ready, remaining=list(self._pending))

    def apply_generated(self, schema: SchemaDef, data: Mapping[str, Sequence[Mapping[str, Any]]]) -> None:
        with self._lock:
            self.set_schema(schema)
            self.stage_rows(data)

    def clear_all(self) -> None:
        with self._lock:
            self._state = FullState.empty()
            self._pending.clear()
            try:
                self._kv.delete(self._key)
            except StorageError as exc:
                log_event(logger, logging.ERROR, "state_clear_failed", error=str(exc))
            log_event(logger, logging.INFO, "state_cleared")


def _replace_table(state: FullState, updated: TableDef) -> FullState:
    tables = tuple(updated if t.name == updated.name else t for t in state.schema.tables)
    return state.with_changes(schema=SchemaDef(tables=tables, relationships=state.schema.relationships))


def _replace_rows(state: FullState, table_name: str, rows: Tuple[Row, ...]) -> FullState:
    data = dict(state.data)
    data[table_name] = rows
    return state.with_changes(data=data)


def _rename_table_in_relationship(rel: Relationship, old: str, new: str) -> Relationship:
    if not rel.touches_table(old):
        return rel
    return Relationship(
        source_table=new if rel.source_table == old else rel.source_table,
        source_field=rel.source_field,
        target_table=new if rel.target_table == old else rel.target_table,
        target_field=rel.target_field,
        cardinality=rel.cardinality,
        id=rel.id,
    )


def _rename_field_in_relationship(rel: Relationship, table: str, old: str, new: str) -> Relationship:
    if not rel.touches_field(table, old):
        return rel
    return Relationship(
        source_table=rel.source_table,
        source_field=new if (rel.source_table == table and rel.source_field == old) else rel.source_field,
        target_table=rel.target_table,
        target_field=new if (rel.target_table == table and rel.target_field == old) else rel.target_field,
        cardinality=rel.cardinality,
        id=rel.id,
    )
