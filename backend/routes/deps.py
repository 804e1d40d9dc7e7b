"""Request-scoped access to the app-wide store, query engine and completion client."""
import logging

from fastapi import HTTPException, Request

from backend.services.generation import CompleteFn
from backend.services.query_engine import InMemoryQueryEngine
from backend.services.schema_store import SchemaStore

logger = logging.getLogger("deps")


def get_store(request: Request) -> SchemaStore:
    return request.app.state.store


def get_query_engine(request: Request) -> InMemoryQueryEngine:
    return request.app.state.query_engine


def get_completion(request: Request) -> CompleteFn:
    """Completion client, built on first use so the app starts without an API key."""
    complete = getattr(request.app.state, "complete", None)
    if complete is not None:
        return complete
    from backend.services.llm_client import LLMCompletionClient, create_chat_model
    try:
        complete = LLMCompletionClient(create_chat_model())
    except ValueError as e:
        logger.warning("completion client unavailable: %s", e)
        raise HTTPException(503, str(e))
    request.app.state.complete = complete
    return complete
