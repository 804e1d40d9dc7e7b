import json
import sys
from pathlib import Path

ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT))

from backend.services.schema_store import SchemaStore
from backend.services.storage import MemoryKeyValueStore
from tools import studio_cli


def _store() -> SchemaStore:
    return SchemaStore(MemoryKeyValueStore())


def test_example_then_query(capsys):
    store = _store()
    assert studio_cli.main(["example", "--index", "0"], store=store) == 0
    assert "library" in capsys.readouterr().out

    assert studio_cli.main(["query", "SELECT name FROM Authors ORDER BY id"], store=store) == 0
    out = capsys.readouterr().out
    assert "Gabriel García Márquez" in out
    assert "Isabel Allende" in out


def test_query_failure_exit_code(capsys):
    assert studio_cli.main(["query", "SELECT * FROM Missing"], store=_store()) == 1
    assert "Error executing the query" in capsys.readouterr().out


def test_generate_with_injected_completion(capsys):
    store = _store()
    payload = {
        "schema": {"tables": [{"name": "Pets", "fields": [{"name": "id", "type": "INT", "required": True}]}], "relationships": []},
        "data": {"Pets": [{"id": 1}]},
    }
    args = studio_cli.build_parser().parse_args(["generate", "a pet shop", "--attempts", "2"])
    assert studio_cli.cmd_generate(store, args, complete=lambda prompt: json.dumps(payload)) == 0
    assert "Pets" in capsys.readouterr().out
    assert store.state.rows("Pets") == ({"id": 1},)


def test_export_to_file(tmp_path):
    store = _store()
    studio_cli.main(["example", "--index", "1"], store=store)
    out = tmp_path / "dump.sql"
    assert studio_cli.main(["export", "sql", "--out", str(out)], store=store) == 0
    assert "CREATE TABLE" in out.read_text(encoding="utf-8")
