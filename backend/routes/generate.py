"""Generation routes: description -> schema + data, request -> SQL, and the example gallery."""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from backend.routes.deps import get_completion, get_query_engine, get_store
from backend.routes.schema import state_payload
from backend.services.examples import EXAMPLES, load_example
from backend.services.generation import CompleteFn, GenerationResult, generate_into_store, generate_sql
from backend.services.query_engine import InMemoryQueryEngine
from backend.services.runtime import log_event
from backend.services.schema_store import SchemaStore

router = APIRouter(prefix="/api", tags=["generate"])
logger = logging.getLogger("generate_route")


class GenerateSchemaRequest(BaseModel):
    description: str


class GenerateSchemaResponse(BaseModel):
    success:    bool
    message:    Optional[str]            = None
    diagnostic: Optional[str]            = None
    attempts:   int                      = 0
    state:      Optional[Dict[str, Any]] = None


class GenerateSqlRequest(BaseModel):
    table_name: str
    request:    str
    execute:    bool = True


class GenerateSqlResponse(BaseModel):
    success:    bool
    sql:        Optional[str]        = None
    results:    Optional[List[Any]]  = None
    row_count:  int                  = 0
    message:    Optional[str]        = None
    diagnostic: Optional[str]        = None
    error:      Optional[str]        = None
    attempts:   int                  = 0


class LoadExampleRequest(BaseModel):
    index: Optional[int] = None


def _failure_fields(result: GenerationResult) -> Dict[str, Any]:
    return {"message": result.message, "diagnostic": result.diagnostic, "attempts": result.attempts}


@router.post("/generate/schema", response_model=GenerateSchemaResponse)
def generate_schema(
    req: GenerateSchemaRequest,
    store: SchemaStore = Depends(get_store),
    complete: CompleteFn = Depends(get_completion),
):
    if not req.description.strip():
        raise HTTPException(400, "Enter a description of the business.")
    result = generate_into_store(store, complete, req.description.strip())
    if not result.ok:
        return GenerateSchemaResponse(success=False, **_failure_fields(result))
    return GenerateSchemaResponse(success=True, attempts=result.attempts, state=state_payload(store))


@router.post("/generate/sql", response_model=GenerateSqlResponse)
def generate_sql_for_table(
    req: GenerateSqlRequest,
    store: SchemaStore = Depends(get_store),
    engine: InMemoryQueryEngine = Depends(get_query_engine),
    complete: CompleteFn = Depends(get_completion),
):
    if not req.request.strip():
        raise HTTPException(400, "Enter a request.")
    state = store.state
    if not state.schema.has_table(req.table_name):
        raise HTTPException(404, f'Table "{req.table_name}" does not exist.')

    result = generate_sql(complete, state.schema, req.table_name, req.request.strip())
    if not result.ok:
        return GenerateSqlResponse(success=False, **_failure_fields(result))
    if not req.execute:
        return GenerateSqlResponse(success=True, sql=result.value, attempts=result.attempts)

    rows, error = engine.execute(state, result.value)
    if error:
        log_event(logger, logging.WARNING, "generated_sql_failed", table=req.table_name)
        return GenerateSqlResponse(success=False, sql=result.value, error=error, attempts=result.attempts)
    return GenerateSqlResponse(
        success=True,
        sql=result.value,
        results=rows,
        row_count=len(rows),
        attempts=result.attempts,
    )


@router.get("/examples")
def list_examples():
    return [{"index": i, "paragraph": ex["paragraph"]} for i, ex in enumerate(EXAMPLES)]


@router.post("/examples/load")
def load_gallery_example(req: LoadExampleRequest, store: SchemaStore = Depends(get_store)):
    try:
        chosen = load_example(store, req.index)
    except IndexError as e:
        raise HTTPException(400, str(e))
    return {**chosen, "state": state_payload(store)}
