import json
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT))

from backend.main import create_app
from backend.services.schema_store import SchemaStore
from backend.services.storage import MemoryKeyValueStore

VALID_RESPONSE = {
    "schema": {
        "tables": [{"name": "Users", "fields": [{"name": "id", "type": "INT", "required": True}]}],
        "relationships": [],
    },
    "data": {"Users": [{"id": 1}, {"id": 2}]},
}


class _DummyCompletion:
    def __init__(self, *answers):
        self.answers = list(answers)
        self.prompts = []

    def __call__(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.answers.pop(0) if len(self.answers) > 1 else self.answers[0]


@pytest.fixture
def completion():
    return _DummyCompletion(json.dumps(VALID_RESPONSE))


@pytest.fixture
def client(completion):
    app = create_app(store=SchemaStore(MemoryKeyValueStore()), complete=completion)
    return TestClient(app)


def _users_table(client):
    client.post("/api/tables", json={"name": "Users"})
    client.post("/api/tables/Users/fields", json={"name": "id", "type": "INT", "required": True})
    client.post("/api/tables/Users/fields", json={"name": "name", "type": "VARCHAR(100)"})


def test_health_and_request_id(client):
    resp = client.get("/api/health", headers={"x-request-id": "req-123"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert resp.headers["x-request-id"] == "req-123"


def test_table_and_field_lifecycle(client):
    _users_table(client)
    resp = client.post("/api/tables", json={"name": "Users"})
    assert resp.json()["changed"] is False

    resp = client.patch("/api/tables/Users", json={"new_name": "Customers"})
    body = resp.json()
    assert body["changed"] is True
    assert [t["name"] for t in body["state"]["schema"]["tables"]] == ["Customers"]

    resp = client.put("/api/tables/Customers/fields/name", json={"name": "full_name", "type": "TEXT"})
    fields = resp.json()["state"]["schema"]["tables"][0]["fields"]
    assert [f["name"] for f in fields] == ["id", "full_name"]

    resp = client.delete("/api/tables/Customers/fields/full_name")
    assert resp.json()["changed"] is True
    resp = client.delete("/api/tables/Customers")
    assert resp.json()["state"] == {"schema": {"tables": [], "relationships": []}, "data": {}}


def test_blank_table_name_is_rejected(client):
    assert client.post("/api/tables", json={"name": "  "}).status_code == 400
    assert client.post("/api/tables", json={}).status_code == 422


def test_relationship_routes(client):
    _users_table(client)
    client.post("/api/tables", json={"name": "Orders"})
    client.post("/api/tables/Orders/fields", json={"name": "user_id", "type": "INT"})
    rel = {"source_table": "Orders", "source_field": "user_id", "target_table": "Users", "target_field": "id", "cardinality": "N:1"}

    assert client.post("/api/relationships", json=rel).json()["changed"] is True
    assert client.post("/api/relationships", json=rel).json()["changed"] is False
    assert client.post("/api/relationships", json={**rel, "cardinality": "many"}).status_code == 400

    edges = client.get("/api/relationships/edges").json()
    assert edges[0]["label"] == "user_id → id (N:1)"

    resp = client.post(
        "/api/relationships/edge-delete",
        json={"source": "Orders", "target": "Users", "label": "user_id → id (N:1)"},
    )
    assert resp.json()["changed"] is True
    assert resp.json()["state"]["schema"]["relationships"] == []

    client.post("/api/relationships", json=rel)
    rel_id = client.get("/api/state").json()["state"]["schema"]["relationships"][0]["id"]
    assert client.delete(f"/api/relationships/by-id/{rel_id}").json()["changed"] is True
    assert client.delete("/api/relationships/0").json()["changed"] is False


def test_row_routes_validate_and_coerce(client):
    _users_table(client)
    resp = client.post("/api/tables/Users/rows", json={"values": {"id": "5", "name": "Ana"}})
    assert resp.status_code == 200
    assert resp.json()["state"]["data"]["Users"] == [{"id": 5, "name": "Ana"}]

    resp = client.post("/api/tables/Users/rows", json={"values": {"id": "abc"}})
    assert resp.status_code == 400
    assert resp.json()["detail"] == 'Field "id" must be an integer.'

    resp = client.post("/api/tables/Users/rows", json={"values": {"name": "Bo"}})
    assert resp.status_code == 400
    assert resp.json()["detail"] == 'Field "id" is required.'

    resp = client.put("/api/tables/Users/rows/0", json={"values": {"id": 6, "name": "Ana"}})
    assert resp.json()["state"]["data"]["Users"] == [{"id": 6, "name": "Ana"}]
    assert client.put("/api/tables/Users/rows/9", json={"values": {"id": 1}}).json()["changed"] is False

    resp = client.post("/api/tables/Users/rows/random")
    assert len(resp.json()["state"]["data"]["Users"]) == 2

    assert client.delete("/api/tables/Users/rows/0").json()["changed"] is True
    assert client.post("/api/tables/Ghost/rows", json={"values": {"id": 1}}).json()["changed"] is False


def test_replace_schema_route(client):
    schema = VALID_RESPONSE["schema"]
    resp = client.put("/api/schema", json=schema)
    assert resp.json()["changed"] is True
    assert resp.json()["state"]["data"] == {"Users": []}
    assert client.put("/api/schema", json={"tables": "nope"}).status_code == 400


def test_generate_schema_route(client, completion):
    resp = client.post("/api/generate/schema", json={"description": "a user list"})
    body = resp.json()
    assert body["success"] is True
    assert body["attempts"] == 1
    assert body["state"]["data"]["Users"] == [{"id": 1}, {"id": 2}]
    assert len(completion.prompts) == 1


def test_generate_schema_route_reports_terminal_failure():
    completion = _DummyCompletion("not json")
    app = create_app(store=SchemaStore(MemoryKeyValueStore()), complete=completion)
    body = TestClient(app).post("/api/generate/schema", json={"description": "anything"}).json()
    assert body["success"] is False
    assert body["message"] == "Error: could not generate the schema in the required format after 5 attempts."
    assert len(completion.prompts) == 5


def test_generate_sql_route_executes_query():
    completion = _DummyCompletion("SELECT id FROM Users WHERE id > 1")
    store = SchemaStore(MemoryKeyValueStore())
    client = TestClient(create_app(store=store, complete=completion))
    client.put("/api/schema", json=VALID_RESPONSE["schema"])
    client.post("/api/tables/Users/rows", json={"values": {"id": 1}})
    client.post("/api/tables/Users/rows", json={"values": {"id": 2}})

    body = client.post("/api/generate/sql", json={"table_name": "Users", "request": "ids above one"}).json()
    assert body["success"] is True
    assert body["sql"] == "SELECT id FROM Users WHERE id > 1"
    assert body["results"] == [{"id": 2}]
    assert body["row_count"] == 1

    resp = client.post("/api/generate/sql", json={"table_name": "Ghost", "request": "x"})
    assert resp.status_code == 404


def test_query_execute_route(client):
    _users_table(client)
    client.post("/api/tables/Users/rows", json={"values": {"id": 1, "name": "Ana"}})
    body = client.post("/api/query/execute", json={"sql": "SELECT name FROM Users"}).json()
    assert body == {"success": True, "results": [{"name": "Ana"}], "row_count": 1, "error": None}

    body = client.post("/api/query/execute", json={"sql": "SELECT * FROM Nowhere"}).json()
    assert body["success"] is False
    assert body["error"] == "Error executing the query on the in-memory data."


def test_examples_and_exports(client):
    assert len(client.get("/api/examples").json()) >= 3
    body = client.post("/api/examples/load", json={"index": 2}).json()
    assert body["index"] == 2
    assert "Products" in [t["name"] for t in body["state"]["schema"]["tables"]]
    assert client.post("/api/examples/load", json={"index": 99}).status_code == 400

    resp = client.get("/api/export/json")
    assert resp.headers["content-disposition"] == 'attachment; filename="schema_data.json"'
    assert "Products" in resp.json()["data"]

    resp = client.get("/api/export/sql")
    assert "CREATE TABLE" in resp.text
    assert 'filename="schema_data.sql"' in resp.headers["content-disposition"]


def test_clear_state(client):
    _users_table(client)
    resp = client.delete("/api/state")
    assert resp.json()["state"]["schema"]["tables"] == []
    assert client.get("/api/state").json()["pending_rows"] == {}
