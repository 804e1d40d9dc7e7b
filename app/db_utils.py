"""
Database Utilities - In-memory SQLite engine, typed table registration and safe query execution
"""
import json
import logging
import time
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import pandas as pd
from sqlalchemy import Column, Float, Integer, MetaData, String, Table, create_engine
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.pool import StaticPool

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))
from backend.services.errors import QueryExecutionError
from backend.services.runtime import log_event
from backend.services.schema_model import TableDef
from backend.services.validation import coerce_value, column_kind

logger = logging.getLogger("db_utils")

_COLUMN_TYPES = {
    "integer": Integer,
    "float": Float,
    "string": String,
}


def create_memory_engine() -> Engine:
    """
    Create a private in-memory SQLite engine.

    StaticPool keeps a single DBAPI connection alive for the engine's lifetime;
    with the default pool every checkout would open a fresh, empty database.
    """
    return create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False,
    )


def build_table(table: TableDef, metadata: Optional[MetaData] = None) -> Table:
    """SQLAlchemy Table for a schema table, one typed column per declared field."""
    columns = [Column(f.name, _COLUMN_TYPES[column_kind(f.type)]()) for f in table.fields]
    return Table(table.name, metadata if metadata is not None else MetaData(), *columns)


def to_sql_scalar(value: Any) -> Any:
    """Lists and objects are stored as their JSON text; SQLite only binds scalars."""
    if isinstance(value, (list, tuple, dict)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return value


def project_rows(table: TableDef, rows: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Shape rows for a bulk insert: every declared field present, nothing else."""
    return [
        {f.name: to_sql_scalar(coerce_value(row.get(f.name), f.type)) for f in table.fields}
        for row in rows
    ]


def drop_table(conn: Connection, name: str) -> None:
    Table(name, MetaData()).drop(conn, checkfirst=True)


def register_table(conn: Connection, table: TableDef, rows: Sequence[Mapping[str, Any]]) -> bool:
    """Drop-if-exists, create with typed columns, bulk load. False when the table has no columns."""
    sa_table = build_table(table)
    sa_table.drop(conn, checkfirst=True)
    if not table.fields:
        # SQLite cannot create a table without columns.
        return False
    sa_table.create(conn)
    if rows:
        conn.execute(sa_table.insert(), project_rows(table, rows))
    return True


def execute_query_safe(conn: Connection, query: str) -> List[Dict[str, Any]]:
    """
    Run raw SQL text on an open connection and return rows as plain dicts.

    The text goes to the driver untouched, so ``:word`` inside string
    literals is never mistaken for a bind parameter. Statements that return
    no rows (UPDATE, DELETE, ...) yield an empty list.

    Raises:
        QueryExecutionError: wrapping whatever the driver raised
    """
    started = time.perf_counter()
    try:
        result = conn.exec_driver_sql(query)
        rows = [dict(r._mapping) for r in result] if result.returns_rows else []
    except Exception as e:
        raise QueryExecutionError(f"Query execution failed: {str(e)}") from e
    log_event(
        logger,
        logging.DEBUG,
        "query_executed",
        row_count=len(rows),
        elapsed_ms=round((time.perf_counter() - started) * 1000, 2),
    )
    return rows


def results_to_frame(rows: List[Dict[str, Any]]) -> pd.DataFrame:
    if not rows:
        return pd.DataFrame()
    return pd.DataFrame(rows, columns=list(rows[0].keys()))


def format_results(rows: Optional[List[Dict[str, Any]]], max_rows: int = 50) -> str:
    """Plain-text table for terminals and logs."""
    if not rows:
        return "The query returned no rows."
    df = results_to_frame(rows)
    shown = df.head(max_rows)
    text = shown.astype(object).where(shown.notna(), "NULL").to_string(index=False)
    if len(df) > max_rows:
        text += f"\n... {len(df) - max_rows} more rows"
    return text
