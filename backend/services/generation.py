"""
Bounded-retry generation: turn free text into validated structure.

One generic loop (``generate_validated``) drives both flows:
- business description -> schema + sample data (JSON)
- natural-language request -> SQL text

Attempts run back to back. A collaborator error, an unparseable answer and
a shape mismatch each consume one attempt; the first valid answer wins. When
the budget is spent the caller gets a failed GenerationResult carrying the
fixed terminal message and the last diagnostic.
"""
import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from backend.services.errors import CollaboratorError, GenerationAttemptError, ParseError, ShapeValidationError
from backend.services.prompts import (
    build_schema_with_data_prompt,
    build_sql_prompt,
    schema_failure_message,
    sql_failure_message,
)
from backend.services.runtime import log_event
from backend.services.schema_model import SchemaDef
from backend.services.schema_store import SchemaStore
from backend.services.validation import is_valid_full_response, is_valid_sql

logger = logging.getLogger("generation")

GENERATION_MAX_ATTEMPTS = max(1, int(os.getenv("GENERATION_MAX_ATTEMPTS", "5")))

CompleteFn = Callable[[str], str]


@dataclass
class AttemptFailure:
    attempt: int
    kind: str
    detail: str


@dataclass
class GenerationResult:
    ok: bool
    value: Any = None
    attempts: int = 0
    message: Optional[str] = None
    diagnostic: Optional[str] = None
    failures: List[AttemptFailure] = field(default_factory=list)


def _strip_fence(text: str) -> str:
    raw = (text or "").strip()
    m = re.search(r"```(?:json)?\s*(.*?)```", raw, flags=re.IGNORECASE | re.DOTALL)
    return m.group(1).strip() if m else raw


def parse_json_object(text: str) -> Dict[str, Any]:
    try:
        obj = json.loads(_strip_fence(text))
    except (TypeError, ValueError) as exc:
        raise ParseError(f"invalid JSON: {exc}") from exc
    if not isinstance(obj, dict):
        raise ParseError("expected a JSON object")
    return obj


def parse_sql_text(text: str) -> str:
    if not isinstance(text, str):
        raise ParseError("expected SQL text")
    return text.strip()


def generate_validated(
    complete: CompleteFn,
    prompt_builder: Callable[[], str],
    parse: Callable[[str], Any],
    validator: Callable[[Any], bool],
    max_attempts: int = GENERATION_MAX_ATTEMPTS,
    failure_message: str = "Error: generation failed.",
    flow: str = "generation",
) -> GenerationResult:
    prompt = prompt_builder()
    failures: List[AttemptFailure] = []

    for attempt in range(1, max_attempts + 1):
        try:
            try:
                raw = complete(prompt)
            except Exception as exc:
                raise CollaboratorError(f"completion call failed: {exc}") from exc
            parsed = parse(raw)
            if not validator(parsed):
                raise ShapeValidationError(f"content does not match the required format: {str(raw)[:200]!r}")
        except GenerationAttemptError as exc:
            failures.append(AttemptFailure(attempt=attempt, kind=exc.kind, detail=str(exc)))
            log_event(
                logger,
                logging.WARNING,
                "generation_attempt_failed",
                flow=flow,
                attempt=attempt,
                max_attempts=max_attempts,
                kind=exc.kind,
                detail=str(exc)[:300],
            )
            continue

        log_event(logger, logging.INFO, "generation_succeeded", flow=flow, attempt=attempt)
        return GenerationResult(ok=True, value=parsed, attempts=attempt, failures=failures)

    diagnostic = f"Attempt {failures[-1].attempt}: {failures[-1].detail}" if failures else None
    log_event(logger, logging.ERROR, "generation_exhausted", flow=flow, attempts=max_attempts, diagnostic=diagnostic)
    return GenerationResult(
        ok=False,
        attempts=max_attempts,
        message=failure_message,
        diagnostic=diagnostic,
        failures=failures,
    )


def generate_schema_with_data(
    complete: CompleteFn,
    description: str,
    max_attempts: int = GENERATION_MAX_ATTEMPTS,
) -> GenerationResult:
    return generate_validated(
        complete,
        lambda: build_schema_with_data_prompt(description, max_attempts=max_attempts),
        parse_json_object,
        is_valid_full_response,
        max_attempts=max_attempts,
        failure_message=schema_failure_message(max_attempts),
        flow="schema_with_data",
    )


def generate_into_store(
    store: SchemaStore,
    complete: CompleteFn,
    description: str,
    max_attempts: int = GENERATION_MAX_ATTEMPTS,
) -> GenerationResult:
    """Clear the store, generate, and on success commit schema then replay rows."""
    store.clear_all()
    result = generate_schema_with_data(complete, description, max_attempts=max_attempts)
    if result.ok:
        store.apply_generated(SchemaDef.from_dict(result.value["schema"]), result.value["data"])
    return result


def generate_sql(
    complete: CompleteFn,
    schema: SchemaDef,
    table_name: str,
    request: str,
    max_attempts: int = GENERATION_MAX_ATTEMPTS,
) -> GenerationResult:
    return generate_validated(
        complete,
        lambda: build_sql_prompt(schema, table_name, request, max_attempts=max_attempts),
        parse_sql_text,
        lambda sql: is_valid_sql(sql, table_name),
        max_attempts=max_attempts,
        failure_message=sql_failure_message(max_attempts),
        flow="nl_to_sql",
    )
