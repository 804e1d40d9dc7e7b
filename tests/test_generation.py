import json
import sys
import time
from pathlib import Path

import pytest

ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT))

from backend.services.generation import (
    generate_into_store,
    generate_schema_with_data,
    generate_sql,
    generate_validated,
    parse_json_object,
)
from backend.services.errors import ParseError
from backend.services.llm_client import LLMCompletionClient
from backend.services.schema_model import FieldDef, SchemaDef, TableDef
from backend.services.schema_store import SchemaStore
from backend.services.storage import MemoryKeyValueStore

SCHEMA_FAILURE = "Error: could not generate the schema in the required format after 5 attempts."
SQL_FAILURE = "Error: could not generate a valid SQL query after 5 attempts."

VALID_RESPONSE = {
    "schema": {
        "tables": [
            {
                "name": "Users",
                "fields": [
                    {"name": "id", "type": "INT", "required": True},
                    {"name": "name", "type": "VARCHAR(100)", "required": True},
                ],
            },
            {
                "name": "Orders",
                "fields": [
                    {"name": "id", "type": "INT", "required": True},
                    {"name": "user_id", "type": "INT", "required": True},
                ],
            },
        ],
        "relationships": [
            {
                "sourceTable": "Orders",
                "sourceField": "user_id",
                "targetTable": "Users",
                "targetField": "id",
                "cardinality": "N:1",
            }
        ],
    },
    "data": {
        "Users": [{"id": 1, "name": "Ana"}],
        "Orders": [{"id": 10, "user_id": 1}, {"id": 11, "user_id": 1}],
    },
}


class _ScriptedCompletion:
    """Returns queued answers in order; exceptions in the queue are raised."""

    def __init__(self, *answers):
        self.answers = list(answers)
        self.prompts = []

    def __call__(self, prompt: str) -> str:
        self.prompts.append(prompt)
        answer = self.answers.pop(0) if len(self.answers) > 1 else self.answers[0]
        if isinstance(answer, Exception):
            raise answer
        return answer


class _DummyLLM:
    def __init__(self, response_text: str, delay_s: float = 0.0):
        self.response_text = response_text
        self.delay_s = delay_s
        self.prompts = []

    def invoke(self, prompt: str):
        self.prompts.append(prompt)
        if self.delay_s:
            time.sleep(self.delay_s)

        class _Resp:
            def __init__(self, content: str):
                self.content = content

        return _Resp(self.response_text)


def _users_schema() -> SchemaDef:
    return SchemaDef(tables=(TableDef("Users", (FieldDef("id", "INT", True), FieldDef("name", "VARCHAR(100)"))),))


def test_schema_generation_gives_up_after_five_calls():
    complete = _ScriptedCompletion("not json at all")
    result = generate_schema_with_data(complete, "a library")
    assert result.ok is False
    assert result.message == SCHEMA_FAILURE
    assert result.attempts == 5
    assert len(complete.prompts) == 5
    assert result.diagnostic.startswith("Attempt 5:")
    assert [f.kind for f in result.failures] == ["parse_error"] * 5


def test_schema_generation_succeeds_on_third_attempt():
    complete = _ScriptedCompletion("{}", "[1, 2]", json.dumps(VALID_RESPONSE), "never used")
    result = generate_schema_with_data(complete, "an online shop")
    assert result.ok is True
    assert result.attempts == 3
    assert len(complete.prompts) == 3
    assert result.value == VALID_RESPONSE
    assert [f.kind for f in result.failures] == ["shape_invalid", "parse_error"]


def test_prompt_is_built_once_and_reused():
    complete = _ScriptedCompletion("nope")
    generate_schema_with_data(complete, "a hotel", max_attempts=3)
    assert len(set(complete.prompts)) == 1
    assert '"a hotel"' in complete.prompts[0]


def test_collaborator_errors_consume_attempts():
    complete = _ScriptedCompletion(RuntimeError("network down"), RuntimeError("again"), json.dumps(VALID_RESPONSE))
    result = generate_schema_with_data(complete, "a school")
    assert result.ok is True
    assert result.attempts == 3
    assert [f.kind for f in result.failures] == ["collaborator_error", "collaborator_error"]


def test_collaborator_that_always_fails_exhausts_budget():
    complete = _ScriptedCompletion(TimeoutError("slow"))
    result = generate_schema_with_data(complete, "a school", max_attempts=2)
    assert result.ok is False
    assert result.attempts == 2
    assert result.message == "Error: could not generate the schema in the required format after 2 attempts."
    assert "slow" in result.diagnostic


def test_json_in_code_fence_is_accepted():
    fenced = "```json\n" + json.dumps(VALID_RESPONSE) + "\n```"
    result = generate_schema_with_data(_ScriptedCompletion(fenced), "a shop")
    assert result.ok is True
    assert result.attempts == 1


def test_parse_json_object_rejects_non_objects():
    with pytest.raises(ParseError):
        parse_json_object("[1, 2, 3]")
    with pytest.raises(ParseError):
        parse_json_object("")


def test_sql_generation_validates_select_and_table():
    complete = _ScriptedCompletion("DELETE FROM Users", "SELECT 1", "  SELECT * FROM Users WHERE id = 1  ")
    result = generate_sql(complete, _users_schema(), "Users", "user number one")
    assert result.ok is True
    assert result.value == "SELECT * FROM Users WHERE id = 1"
    assert result.attempts == 3
    assert len(complete.prompts) == 3


def test_sql_generation_exhausted_message():
    complete = _ScriptedCompletion("I cannot help with that")
    result = generate_sql(complete, _users_schema(), "Users", "everything")
    assert result.ok is False
    assert result.message == SQL_FAILURE
    assert len(complete.prompts) == 5


def test_sql_prompt_embeds_schema_but_not_data():
    complete = _ScriptedCompletion("SELECT * FROM Users")
    generate_sql(complete, _users_schema(), "Users", "all users")
    prompt = complete.prompts[0]
    assert '"name": "Users"' in prompt
    assert '"all users"' in prompt
    assert '"data"' not in prompt


def test_generate_validated_with_custom_parts():
    calls = []

    def complete(prompt):
        calls.append(prompt)
        return str(len(calls))

    result = generate_validated(
        complete,
        lambda: "count",
        int,
        lambda n: n >= 4,
        max_attempts=5,
        failure_message="never",
    )
    assert result.ok is True
    assert result.value == 4
    assert len(calls) == 4


def test_generate_into_store_replays_rows_on_success():
    store = SchemaStore(MemoryKeyValueStore())
    store.add_table("Old")
    result = generate_into_store(store, _ScriptedCompletion(json.dumps(VALID_RESPONSE)), "orders")
    assert result.ok is True
    state = store.state
    assert state.schema.table_names() == ("Users", "Orders")
    assert state.rows("Orders") == ({"id": 10, "user_id": 1}, {"id": 11, "user_id": 1})
    assert len(state.schema.relationships) == 1
    assert store.pending_rows == {}


def test_generate_into_store_failure_leaves_store_cleared():
    store = SchemaStore(MemoryKeyValueStore())
    store.add_table("Old")
    result = generate_into_store(store, _ScriptedCompletion("garbage"), "orders", max_attempts=2)
    assert result.ok is False
    assert store.state.schema.tables == ()


def test_llm_completion_client_strips_content():
    llm = _DummyLLM("  SELECT 1  ")
    client = LLMCompletionClient(llm, timeout_s=5)
    assert client("give me one") == "SELECT 1"
    assert llm.prompts == ["give me one"]


def test_llm_completion_client_times_out():
    client = LLMCompletionClient(_DummyLLM("late", delay_s=0.5), timeout_s=0.1)
    with pytest.raises(TimeoutError):
        client.complete("hurry")
