"""Ad-hoc query execution and export downloads."""
import logging
from typing import Any, List, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from pydantic import BaseModel

from backend.routes.deps import get_query_engine, get_store
from backend.services.exports import JSON_EXPORT_FILENAME, SQL_EXPORT_FILENAME, export_json, export_sql
from backend.services.query_engine import InMemoryQueryEngine
from backend.services.schema_store import SchemaStore

router = APIRouter(prefix="/api", tags=["query"])
logger = logging.getLogger("query_route")


class ExecuteRequest(BaseModel):
    sql: str


class ExecuteResponse(BaseModel):
    success:   bool
    results:   Optional[List[Any]] = None
    row_count: int                 = 0
    error:     Optional[str]       = None


@router.post("/query/execute", response_model=ExecuteResponse)
def execute_query(
    req: ExecuteRequest,
    store: SchemaStore = Depends(get_store),
    engine: InMemoryQueryEngine = Depends(get_query_engine),
):
    rows, error = engine.execute(store.state, req.sql)
    if error:
        return ExecuteResponse(success=False, error=error)
    return ExecuteResponse(success=True, results=rows, row_count=len(rows))


def _attachment(body: str, filename: str, media_type: str) -> Response:
    return Response(
        content=body,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/export/json")
def download_json(store: SchemaStore = Depends(get_store)):
    return _attachment(export_json(store.state), JSON_EXPORT_FILENAME, "application/json")


@router.get("/export/sql")
def download_sql(store: SchemaStore = Depends(get_store)):
    return _attachment(export_sql(store.state), SQL_EXPORT_FILENAME, "application/sql")
