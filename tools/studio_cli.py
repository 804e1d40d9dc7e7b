#!/usr/bin/env python3
"""
Command-line access to the schema studio state.

Works on the same persisted state as the HTTP app (STATE_DB_PATH):
- generate a schema with sample data from a business description
- load one of the gallery examples
- run SQL against the in-memory copy of the data
- export the state as JSON or SQL
"""

import os
import sys
import json
import logging
import argparse
from pathlib import Path
from typing import List, Optional

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

from app.db_utils import format_results
from backend.services.examples import load_example
from backend.services.exports import export_json, export_sql
from backend.services.generation import CompleteFn, generate_into_store
from backend.services.query_engine import InMemoryQueryEngine
from backend.services.runtime import shutdown_shared_executor
from backend.services.schema_store import SchemaStore
from backend.services.storage import create_key_value_store

logger = logging.getLogger("studio_cli")


def _default_completion() -> CompleteFn:
    from backend.services.llm_client import LLMCompletionClient, create_chat_model
    return LLMCompletionClient(create_chat_model())


def cmd_generate(store: SchemaStore, args, complete: Optional[CompleteFn] = None) -> int:
    result = generate_into_store(store, complete or _default_completion(), args.description, max_attempts=args.attempts)
    if not result.ok:
        print(result.message)
        if result.diagnostic:
            print(f"Last failure: {result.diagnostic}")
        return 1
    print(f"Generated in {result.attempts} attempt(s): {', '.join(store.state.schema.table_names())}")
    return 0


def cmd_example(store: SchemaStore, args) -> int:
    try:
        chosen = load_example(store, args.index)
    except IndexError as e:
        print(str(e))
        return 2
    print(chosen["paragraph"])
    return 0


def cmd_query(store: SchemaStore, args) -> int:
    engine = InMemoryQueryEngine()
    try:
        rows, error = engine.execute(store.state, args.sql)
    finally:
        engine.dispose()
    if error:
        print(error)
        return 1
    print(format_results(rows, max_rows=args.max_rows))
    return 0


def cmd_export(store: SchemaStore, args) -> int:
    body = export_json(store.state) if args.format == "json" else export_sql(store.state)
    if args.out:
        Path(args.out).write_text(body, encoding="utf-8")
        print(f"Wrote {args.format} export to {args.out}")
    else:
        sys.stdout.write(body)
    return 0


def cmd_state(store: SchemaStore, args) -> int:
    print(json.dumps(store.state.to_dict(), indent=2, ensure_ascii=False))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="SQL schema studio command-line tool")
    parser.add_argument("--state-db", default=None, help="State database path (default: STATE_DB_PATH)")
    sub = parser.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate", help="Generate a schema with sample data from a description")
    gen.add_argument("description")
    gen.add_argument("--attempts", type=int, default=int(os.getenv("GENERATION_MAX_ATTEMPTS", "5")))
    gen.set_defaults(handler=cmd_generate)

    ex = sub.add_parser("example", help="Load a gallery example (random when --index is omitted)")
    ex.add_argument("--index", type=int, default=None)
    ex.set_defaults(handler=cmd_example)

    q = sub.add_parser("query", help="Run SQL on the current data")
    q.add_argument("sql")
    q.add_argument("--max-rows", type=int, default=50)
    q.set_defaults(handler=cmd_query)

    exp = sub.add_parser("export", help="Export the current state")
    exp.add_argument("format", choices=["json", "sql"])
    exp.add_argument("--out", default=None, help="Output file (default: stdout)")
    exp.set_defaults(handler=cmd_export)

    st = sub.add_parser("state", help="Print the persisted state")
    st.set_defaults(handler=cmd_state)
    return parser


def main(argv: Optional[List[str]] = None, store: Optional[SchemaStore] = None) -> int:
    load_dotenv(Path(__file__).parent.parent / ".env")
    logging.basicConfig(
        level=getattr(logging, os.getenv("LOG_LEVEL", "WARNING").upper(), logging.WARNING),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    args = build_parser().parse_args(argv)
    if store is None:
        store = SchemaStore(create_key_value_store(args.state_db))
    try:
        return args.handler(store, args)
    finally:
        shutdown_shared_executor(wait=False)


if __name__ == "__main__":
    sys.exit(main())
