"""
In-memory query execution over the editor state.

Each call re-registers every schema table (drop, create, load) on a private
SQLite engine and then runs the SQL text as given. A failed call leaves the
engine in an unknown state; the next call rebuilds it from scratch.
"""
import logging
import threading
import time
from typing import Any, Dict, List, Optional, Set, Tuple

from sqlalchemy.engine import Engine

from app.db_utils import create_memory_engine, drop_table, execute_query_safe, register_table
from backend.services.runtime import log_event
from backend.services.schema_model import FullState

logger = logging.getLogger("query_engine")

EXECUTION_FAILED_MESSAGE = "Error executing the query on the in-memory data."
EMPTY_QUERY_MESSAGE = "There is no SQL query to execute."


class InMemoryQueryEngine:
    def __init__(self, engine: Optional[Engine] = None):
        self._engine = engine or create_memory_engine()
        self._lock = threading.Lock()
        # Tables registered by earlier calls; dropped once they leave the schema.
        self._registered: Set[str] = set()

    def execute(self, state: FullState, sql: str) -> Tuple[Optional[List[Dict[str, Any]]], Optional[str]]:
        """Returns (rows, None) on success or (None, error message) on any failure."""
        if not sql or not sql.strip():
            return None, EMPTY_QUERY_MESSAGE
        started = time.perf_counter()
        with self._lock:
            current = set(state.schema.table_names())
            try:
                with self._engine.begin() as conn:
                    for name in sorted(self._registered - current):
                        drop_table(conn, name)
                    skipped = [
                        t.name for t in state.schema.tables
                        if not register_table(conn, t, state.rows(t.name))
                    ]
                    rows = execute_query_safe(conn, sql)
            except Exception as exc:
                # A rolled-back call may leave stale tables behind; keep tracking them.
                self._registered |= current
                log_event(
                    logger,
                    logging.WARNING,
                    "query_execution_failed",
                    error=str(exc)[:500],
                    sql=sql[:500],
                )
                return None, EXECUTION_FAILED_MESSAGE
            self._registered = current
        log_event(
            logger,
            logging.INFO,
            "query_execution_ok",
            row_count=len(rows),
            tables=len(state.schema.tables),
            skipped_tables=skipped,
            elapsed_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return rows, None

    def dispose(self) -> None:
        self._engine.dispose()
