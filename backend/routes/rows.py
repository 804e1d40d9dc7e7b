"""Row editing routes for the data editor."""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from backend.routes.deps import get_store
from backend.routes.schema import mutation_response
from backend.services.random_rows import random_row
from backend.services.schema_model import TableDef
from backend.services.schema_store import SchemaStore
from backend.services.validation import validate_form_row

router = APIRouter(prefix="/api/tables", tags=["rows"])
logger = logging.getLogger("rows_route")


class RowRequest(BaseModel):
    values: Dict[str, Any]
    check:  bool = True


def _prepare(table: Optional[TableDef], req: RowRequest) -> Dict[str, Any]:
    """Coerce and validate form values against the table's fields; 400 on failure."""
    if table is None or not req.check:
        return dict(req.values)
    row, error = validate_form_row(table, req.values)
    if error:
        logger.info("row_rejected table=%s reason=%s", table.name, error)
        raise HTTPException(400, error)
    return row


@router.post("/{name}/rows")
def add_row(name: str, req: RowRequest, store: SchemaStore = Depends(get_store)):
    row = _prepare(store.state.schema.get_table(name), req)
    return mutation_response(store, store.add_row(name, row))


@router.post("/{name}/rows/random")
def add_random_row(name: str, store: SchemaStore = Depends(get_store)):
    table = store.state.schema.get_table(name)
    if table is None:
        return mutation_response(store, False)
    return mutation_response(store, store.add_row(name, random_row(table)))


@router.put("/{name}/rows/{index}")
def update_row(name: str, index: int, req: RowRequest, store: SchemaStore = Depends(get_store)):
    row = _prepare(store.state.schema.get_table(name), req)
    return mutation_response(store, store.update_row(name, index, row))


@router.delete("/{name}/rows/{index}")
def remove_row(name: str, index: int, store: SchemaStore = Depends(get_store)):
    return mutation_response(store, store.remove_row(name, index))
