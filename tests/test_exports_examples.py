import json
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT))

from backend.services.examples import EXAMPLES, load_example
from backend.services.exports import export_json, export_sql
from backend.services.query_engine import InMemoryQueryEngine
from backend.services.schema_model import FieldDef, FullState
from backend.services.schema_store import SchemaStore
from backend.services.storage import MemoryKeyValueStore
from backend.services.validation import is_valid_full_response


def _store() -> SchemaStore:
    return SchemaStore(MemoryKeyValueStore())


def test_examples_are_valid_generated_content():
    for example in EXAMPLES:
        assert example["paragraph"]
        assert is_valid_full_response({"schema": example["schema"], "data": example["data"]})


def test_load_example_replaces_state():
    store = _store()
    store.add_table("Scratch")
    chosen = load_example(store, 0)
    assert chosen == {"index": 0, "paragraph": EXAMPLES[0]["paragraph"]}
    names = store.state.schema.table_names()
    assert "Scratch" not in names
    assert names == tuple(t["name"] for t in EXAMPLES[0]["schema"]["tables"])
    for name in names:
        assert len(store.state.rows(name)) == len(EXAMPLES[0]["data"][name])


def test_load_random_example_and_bounds():
    store = _store()
    chosen = load_example(store)
    assert 0 <= chosen["index"] < len(EXAMPLES)
    with pytest.raises(IndexError):
        load_example(store, len(EXAMPLES))


def test_examples_are_queryable():
    store = _store()
    engine = InMemoryQueryEngine()
    try:
        load_example(store, 0)
        rows, error = engine.execute(
            store.state,
            "SELECT b.title FROM Loans l JOIN Books b ON b.id = l.book_id",
        )
    finally:
        engine.dispose()
    assert error is None
    assert rows == [{"title": "One Hundred Years of Solitude"}]


def test_export_json_matches_persisted_layout():
    store = _store()
    load_example(store, 1)
    exported = json.loads(export_json(store.state))
    assert exported == store.state.to_dict()
    assert FullState.from_dict(exported) == store.state
    assert "id" not in exported["schema"]["relationships"][0]


def test_export_sql_creates_tables_and_inserts():
    store = _store()
    store.add_table("Users")
    store.add_field("Users", FieldDef("id", "INT", True))
    store.add_field("Users", FieldDef("name", "VARCHAR(100)"))
    store.add_row("Users", {"id": 1, "name": "O'Brien"})
    store.add_table("Empty")

    sql = export_sql(store.state)
    assert "CREATE TABLE" in sql
    assert "Users" in sql
    assert "INSERT INTO" in sql
    assert "'O''Brien'" in sql
    assert "-- table Empty has no columns" in sql


def test_export_sql_of_empty_state():
    assert export_sql(FullState.empty()).strip() == ""
