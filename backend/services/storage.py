"""
Local key-value stores backing the editor state.

Two implementations share one small interface (get / set / delete):
an in-process dict for tests and ephemeral runs, and a single-file SQLite
table accessed through SQLAlchemy for anything that should survive restarts.
"""
import logging
import os
import threading
from typing import Dict, Optional

from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from backend.services.errors import StorageError

logger = logging.getLogger("storage")

STATE_DB_PATH = os.getenv("STATE_DB_PATH", "schema_studio_state.db")


class KeyValueStore:
    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class MemoryKeyValueStore(KeyValueStore):
    """Thread-safe in-process store."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._entries: Dict[str, str] = dict(initial or {})
        self._lock = threading.RLock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._entries.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._entries[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries


_metadata = MetaData()
_kv_table = Table(
    "kv_store",
    _metadata,
    Column("key", String(255), primary_key=True),
    Column("value", Text, nullable=False),
)


class SqliteKeyValueStore(KeyValueStore):
    """One ``kv_store`` table in a local SQLite file.

    Every failure is re-raised as StorageError so callers only have one
    exception type to log.
    """

    def __init__(self, path: str = STATE_DB_PATH, engine: Optional[Engine] = None):
        self.path = path
        self._engine = engine or create_engine(f"sqlite:///{path}", future=True)
        try:
            _metadata.create_all(self._engine)
        except SQLAlchemyError as exc:
            raise StorageError(f"cannot initialise key-value store at {path}: {exc}") from exc

    def get(self, key: str) -> Optional[str]:
        try:
            with self._engine.connect() as conn:
                return conn.execute(select(_kv_table.c.value).where(_kv_table.c.key == key)).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StorageError(f"read failed for key {key!r}: {exc}") from exc

    def set(self, key: str, value: str) -> None:
        try:
            with self._engine.begin() as conn:
                conn.execute(delete(_kv_table).where(_kv_table.c.key == key))
                conn.execute(_kv_table.insert().values(key=key, value=value))
        except SQLAlchemyError as exc:
            raise StorageError(f"write failed for key {key!r}: {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            with self._engine.begin() as conn:
                conn.execute(delete(_kv_table).where(_kv_table.c.key == key))
        except SQLAlchemyError as exc:
            raise StorageError(f"delete failed for key {key!r}: {exc}") from exc

    def dispose(self) -> None:
        self._engine.dispose()


def create_key_value_store(path: Optional[str] = None) -> KeyValueStore:
    """``:memory:`` (or an empty path) selects the in-process store."""
    target = STATE_DB_PATH if path is None else path
    if not target or target == ":memory:":
        return MemoryKeyValueStore()
    logger.info("Using SQLite key-value store at %s", target)
    return SqliteKeyValueStore(target)
