"""
FastAPI backend for the SQL schema studio.
Run with: uvicorn backend.main:app --reload --port 8000
"""
import sys
import os
import uuid
import logging
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

# Ensure project root is importable
sys.path.insert(0, str(Path(__file__).parent.parent))
load_dotenv(Path(__file__).parent.parent / ".env")

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from backend.routes.schema import router as schema_router
from backend.routes.rows import router as rows_router
from backend.routes.generate import router as generate_router
from backend.routes.query import router as query_router
from backend.services.errors import StorageError
from backend.services.generation import CompleteFn
from backend.services.query_engine import InMemoryQueryEngine
from backend.services.runtime import set_request_id, clear_context, shutdown_shared_executor
from backend.services.schema_store import SchemaStore
from backend.services.storage import MemoryKeyValueStore, create_key_value_store

logger = logging.getLogger("backend")

if not logging.getLogger().handlers:
    logging.basicConfig(
        level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def _default_store() -> SchemaStore:
    try:
        kv = create_key_value_store()
    except StorageError:
        logger.exception("state storage unavailable; falling back to in-memory state")
        kv = MemoryKeyValueStore()
    return SchemaStore(kv)


def create_app(
    store: Optional[SchemaStore] = None,
    complete: Optional[CompleteFn] = None,
    query_engine: Optional[InMemoryQueryEngine] = None,
) -> FastAPI:
    app = FastAPI(title="SQL Schema Studio API", version="1.0.0")
    app.state.store = store or _default_store()
    app.state.query_engine = query_engine or InMemoryQueryEngine()
    # None until the first generation request builds the LangChain client.
    app.state.complete = complete

    @app.on_event("shutdown")
    def shutdown_workers():
        shutdown_shared_executor(wait=False)
        app.state.query_engine.dispose()

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):
        request_id = set_request_id(request.headers.get("x-request-id") or str(uuid.uuid4()))
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("request_failed request_id=%s path=%s", request_id, request.url.path)
            raise
        finally:
            clear_context()
        response.headers["x-request-id"] = request_id
        return response

    # CORS for the React dev server
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:5173", "http://127.0.0.1:5173",
            "http://localhost:3000", "http://127.0.0.1:3000",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(schema_router)
    app.include_router(rows_router)
    app.include_router(generate_router)
    app.include_router(query_router)

    @app.get("/api/health")
    def health():
        return {"status": "ok", "tables": len(app.state.store.state.schema.tables)}

    return app


app = create_app()
