"""Random sample rows for quickly filling a table from the data editor."""
import random
import re
import string
from datetime import date, timedelta
from typing import Any, Dict, Optional

from backend.services.schema_model import FieldDef, TableDef
from backend.services.validation import column_kind, is_date_type, is_text_type


def random_value(field: FieldDef, rng: Optional[random.Random] = None) -> Any:
    rng = rng or random
    kind = column_kind(field.type)
    if kind == "integer":
        return rng.randrange(1000)
    if kind == "float":
        return round(rng.random() * 1000, 2)
    if is_text_type(field.type):
        base = re.sub(r"[^a-zA-Z]", "", field.name) or "txt"
        suffix = "".join(rng.choice(string.ascii_lowercase + string.digits) for _ in range(6))
        return f"{base}_{suffix}"
    if is_date_type(field.type):
        return (date.today() - timedelta(days=rng.randrange(1, 115))).isoformat()
    return None


def random_row(table: TableDef, rng: Optional[random.Random] = None) -> Dict[str, Any]:
    return {f.name: random_value(f, rng) for f in table.fields}
