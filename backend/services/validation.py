"""
Shape validators for generated content, plus the type-tag rules shared by
row coercion, the data editor and the in-memory engine DDL.

The validators fail closed: anything they do not recognise is invalid.
"""
import re
from typing import Any, Mapping, Optional, Tuple

from backend.services.schema_model import CARDINALITIES, TableDef

_INT_RE = re.compile(r"INT", re.IGNORECASE)
_FLOAT_RE = re.compile(r"REAL|FLOAT|DOUBLE", re.IGNORECASE)
_TEXT_RE = re.compile(r"TEXT|CHAR|STRING", re.IGNORECASE)
_DATE_RE = re.compile(r"DATE", re.IGNORECASE)

_RELATIONSHIP_KEYS = ("sourceTable", "sourceField", "targetTable", "targetField")


# --- Type tags ---

def column_kind(type_tag: str) -> str:
    """Classify a free-form type tag as "integer", "float" or "string".

    INT is checked first, so "INTERVAL" or "POINT" count as integers too;
    DATE and everything unmatched are strings.
    """
    tag = type_tag or ""
    if _INT_RE.search(tag):
        return "integer"
    if _FLOAT_RE.search(tag):
        return "float"
    return "string"


def is_text_type(type_tag: str) -> bool:
    return bool(_TEXT_RE.search(type_tag or ""))


def is_date_type(type_tag: str) -> bool:
    return bool(_DATE_RE.search(type_tag or ""))


def coerce_value(raw: Any, type_tag: str) -> Any:
    kind = column_kind(type_tag)
    if raw is None or isinstance(raw, bool) or kind == "string":
        return raw
    if kind == "integer":
        if isinstance(raw, int):
            return raw
        try:
            return int(float(str(raw).strip()))
        except (TypeError, ValueError, OverflowError):
            return None
    if isinstance(raw, (int, float)):
        return float(raw)
    try:
        return float(str(raw).strip())
    except (TypeError, ValueError):
        return None


def coerce_row(table: TableDef, row: Mapping[str, Any]) -> dict:
    """Coerce declared fields by type; keys the table does not declare pass through."""
    out = dict(row)
    for f in table.fields:
        if f.name in out:
            out[f.name] = coerce_value(out[f.name], f.type)
    return out


def validate_row(table: TableDef, row: Mapping[str, Any]) -> Tuple[bool, Optional[str]]:
    for f in table.fields:
        value = row.get(f.name)
        if f.required and (value is None or str(value).strip() == ""):
            return False, f'Field "{f.name}" is required.'
        if value is None:
            continue
        kind = column_kind(f.type)
        if kind == "integer" and (isinstance(value, bool) or not isinstance(value, int)):
            return False, f'Field "{f.name}" must be an integer.'
        if kind == "float" and (isinstance(value, bool) or not isinstance(value, (int, float))):
            return False, f'Field "{f.name}" must be a real number.'
    return True, None


def validate_form_row(table: TableDef, values: Mapping[str, Any]) -> Tuple[Optional[dict], Optional[str]]:
    """Coerce raw editor input and validate it.

    A non-blank value that does not parse as its column's number type is
    reported as a type error rather than a missing value.
    """
    row = coerce_row(table, values)
    for f in table.fields:
        raw = values.get(f.name)
        if raw is not None and str(raw).strip() != "" and row.get(f.name) is None:
            kind = column_kind(f.type)
            return None, f'Field "{f.name}" must be an integer.' if kind == "integer" else f'Field "{f.name}" must be a real number.'
    ok, error = validate_row(table, row)
    if not ok:
        return None, error
    return row, None


# --- Generated content validators ---

def is_valid_schema(obj: Any) -> bool:
    if not isinstance(obj, dict):
        return False
    schema = obj.get("schema")
    if not isinstance(schema, dict):
        return False
    tables = schema.get("tables")
    relationships = schema.get("relationships")
    if not isinstance(tables, list) or not isinstance(relationships, list):
        return False

    for t in tables:
        if not isinstance(t, dict) or not isinstance(t.get("name"), str) or not isinstance(t.get("fields"), list):
            return False
        for f in t["fields"]:
            if (
                not isinstance(f, dict)
                or not isinstance(f.get("name"), str)
                or not isinstance(f.get("type"), str)
                or not isinstance(f.get("required"), bool)
            ):
                return False

    for r in relationships:
        if not isinstance(r, dict):
            return False
        if any(not isinstance(r.get(k), str) for k in _RELATIONSHIP_KEYS):
            return False
        if r.get("cardinality") not in CARDINALITIES:
            return False
    return True


def is_valid_data(obj: Any, schema: Mapping[str, Any]) -> bool:
    """Every declared table has a row list and every row carries the required keys.

    Only key presence is checked; values may be of any type, including null.
    """
    if not isinstance(obj, dict) or not isinstance(obj.get("data"), dict):
        return False
    data = obj["data"]
    for t in schema.get("tables") or []:
        rows = data.get(t["name"])
        if not isinstance(rows, list):
            return False
        required = [f["name"] for f in t.get("fields") or [] if f.get("required")]
        for row in rows:
            if not isinstance(row, dict):
                return False
            if any(name not in row for name in required):
                return False
    return True


def is_valid_full_response(obj: Any) -> bool:
    return is_valid_schema(obj) and is_valid_data(obj, obj["schema"])


def is_valid_sql(sql: Any, table_name: str) -> bool:
    # Substring match, not tokenised: "Users" is also found in "PowerUsers".
    if not isinstance(sql, str):
        return False
    normalized = sql.strip().lower()
    if not normalized.startswith("select"):
        return False
    return table_name.lower() in normalized
