"""Downloadable dumps of the editor state: JSON and a SQLite-flavoured SQL script."""
import json
from typing import Any, Dict, List

from sqlalchemy.dialects import sqlite
from sqlalchemy.schema import CreateTable

from app.db_utils import build_table, project_rows
from backend.services.schema_model import FullState, TableDef
from backend.services.validation import column_kind

JSON_EXPORT_FILENAME = "schema_data.json"
SQL_EXPORT_FILENAME = "schema_data.sql"

_DIALECT = sqlite.dialect()


def export_json(state: FullState) -> str:
    return json.dumps(state.to_dict(), indent=2, ensure_ascii=False)


def _literal_row(table: TableDef, row: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(row)
    for f in table.fields:
        value = out.get(f.name)
        if value is not None and column_kind(f.type) == "string" and not isinstance(value, str):
            out[f.name] = str(value)
    return out


def export_sql(state: FullState) -> str:
    """CREATE TABLE for every table in schema order, then one INSERT per row."""
    ddl: List[str] = []
    inserts: List[str] = []
    for table in state.schema.tables:
        if not table.fields:
            ddl.append(f"-- table {table.name} has no columns")
            continue
        sa_table = build_table(table)
        ddl.append(str(CreateTable(sa_table).compile(dialect=_DIALECT)).strip() + ";")
        for row in project_rows(table, state.rows(table.name)):
            stmt = sa_table.insert().values(**_literal_row(table, row))
            inserts.append(str(stmt.compile(dialect=_DIALECT, compile_kwargs={"literal_binds": True})) + ";")
    parts = ["\n\n".join(ddl)]
    if inserts:
        parts.append("\n".join(inserts))
    return "\n\n".join(p for p in parts if p) + "\n"
