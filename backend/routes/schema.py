"""Schema editing routes: whole-state access, tables, fields and relationships."""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel

from backend.routes.deps import get_store
from backend.services.schema_model import CARDINALITIES, DEFAULT_CARDINALITY, FieldDef, Relationship, SchemaDef
from backend.services.schema_store import SchemaStore
from backend.services.validation import is_valid_schema

router = APIRouter(prefix="/api", tags=["schema"])
logger = logging.getLogger("schema_route")


class TableRequest(BaseModel):
    name: str


class RenameTableRequest(BaseModel):
    new_name: str


class FieldRequest(BaseModel):
    name:     str
    type:     str  = "VARCHAR(100)"
    required: bool = False


class RelationshipRequest(BaseModel):
    source_table: str
    source_field: str
    target_table: str
    target_field: str
    cardinality:  str = DEFAULT_CARDINALITY


class EdgeDeleteRequest(BaseModel):
    source: str
    target: str
    label:  str


def state_payload(store: SchemaStore) -> Dict[str, Any]:
    return store.state.to_dict(include_ids=True)


def mutation_response(store: SchemaStore, changed: bool) -> Dict[str, Any]:
    return {"changed": changed, "state": state_payload(store)}


def _field_from_request(req: FieldRequest) -> FieldDef:
    if not req.name.strip():
        raise HTTPException(400, "Field name must not be empty.")
    return FieldDef(name=req.name.strip(), type=req.type, required=req.required)


@router.get("/state")
def get_state(store: SchemaStore = Depends(get_store)):
    return {
        "state": state_payload(store),
        "pending_rows": {k: list(v) for k, v in store.pending_rows.items()},
    }


@router.delete("/state")
def clear_state(store: SchemaStore = Depends(get_store)):
    store.clear_all()
    return mutation_response(store, True)


@router.put("/schema")
def replace_schema(schema: Dict[str, Any] = Body(...), store: SchemaStore = Depends(get_store)):
    if not is_valid_schema({"schema": schema}):
        raise HTTPException(400, "Schema does not have the expected shape.")
    return mutation_response(store, store.set_schema(SchemaDef.from_dict(schema)))


# --- Tables -------------------------------------------------------------

@router.post("/tables")
def add_table(req: TableRequest, store: SchemaStore = Depends(get_store)):
    name = req.name.strip()
    if not name:
        raise HTTPException(400, "Table name must not be empty.")
    return mutation_response(store, store.add_table(name))


@router.delete("/tables/{name}")
def remove_table(name: str, store: SchemaStore = Depends(get_store)):
    return mutation_response(store, store.remove_table(name))


@router.patch("/tables/{name}")
def rename_table(name: str, req: RenameTableRequest, store: SchemaStore = Depends(get_store)):
    new_name = req.new_name.strip()
    if not new_name:
        raise HTTPException(400, "Table name must not be empty.")
    return mutation_response(store, store.rename_table(name, new_name))


# --- Fields -------------------------------------------------------------

@router.post("/tables/{name}/fields")
def add_field(name: str, req: FieldRequest, store: SchemaStore = Depends(get_store)):
    return mutation_response(store, store.add_field(name, _field_from_request(req)))


@router.put("/tables/{name}/fields/{field_name}")
def update_field(name: str, field_name: str, req: FieldRequest, store: SchemaStore = Depends(get_store)):
    return mutation_response(store, store.update_field(name, field_name, _field_from_request(req)))


@router.delete("/tables/{name}/fields/{field_name}")
def remove_field(name: str, field_name: str, store: SchemaStore = Depends(get_store)):
    return mutation_response(store, store.remove_field(name, field_name))


# --- Relationships ------------------------------------------------------

@router.post("/relationships")
def add_relationship(req: RelationshipRequest, store: SchemaStore = Depends(get_store)):
    if req.cardinality not in CARDINALITIES:
        raise HTTPException(400, f"Cardinality must be one of {', '.join(CARDINALITIES)}.")
    rel = Relationship(
        source_table=req.source_table,
        source_field=req.source_field,
        target_table=req.target_table,
        target_field=req.target_field,
        cardinality=req.cardinality,
    )
    return mutation_response(store, store.add_relationship(rel))


@router.delete("/relationships/by-id/{rel_id}")
def remove_relationship_by_id(rel_id: str, store: SchemaStore = Depends(get_store)):
    return mutation_response(store, store.remove_relationship_by_id(rel_id))


@router.delete("/relationships/{index}")
def remove_relationship(index: int, store: SchemaStore = Depends(get_store)):
    return mutation_response(store, store.remove_relationship(index))


@router.post("/relationships/edge-delete")
def remove_relationship_for_edge(req: EdgeDeleteRequest, store: SchemaStore = Depends(get_store)):
    index: Optional[int] = store.find_relationship_for_edge(req.source, req.target, req.label)
    if index is None:
        logger.info("edge_delete_unmatched source=%s target=%s label=%s", req.source, req.target, req.label)
        return mutation_response(store, False)
    return mutation_response(store, store.remove_relationship(index))


@router.get("/relationships/edges")
def list_edges(store: SchemaStore = Depends(get_store)) -> List[Dict[str, Any]]:
    return [
        {"id": r.id, "source": r.source_table, "target": r.target_table, "label": r.label}
        for r in store.state.schema.relationships
    ]
