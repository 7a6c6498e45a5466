"""Key-value store with pluggable in-memory / SQLite backends.

The runtime state and session records are persisted here so a UI can
read the last run after a restart and ``continue`` can reattach to a
session. Values must be JSON-serialisable.

Usage::

    from tabpilot.store import build_kv_store

    store = build_kv_store()
    store.set("runtime", {"status": "idle"})
    state = store.get("runtime")
"""

from __future__ import annotations

import copy
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import sqlalchemy as sa

from tabpilot.store.sql import build_engine, build_session_factory, kv_entries

logger = logging.getLogger(__name__)


class KeyValueStore:
    """Abstract-ish key-value interface implemented by both backends."""

    def get(self, key: str) -> Any | None:
        """Return the stored value or ``None`` if unknown."""
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        """Create or replace the value stored under ``key``."""
        raise NotImplementedError

    def delete(self, key: str) -> None:
        """Remove ``key`` if present."""
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        """Return True if ``key`` has a value."""
        return self.get(key) is not None


class InMemoryKeyValueStore(KeyValueStore):
    """In-memory store for tests and throwaway runs."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    def get(self, key: str) -> Any | None:
        value = self._data.get(key)
        return copy.deepcopy(value) if value is not None else None

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class SqliteKeyValueStore(KeyValueStore):
    """SQLite-backed store (one row per key, JSON values).

    Args:
        db_path: Path to the SQLite database file; created on first use.
    """

    def __init__(self, db_path: Path | str) -> None:
        self._engine = build_engine(db_path)
        self._session_factory = build_session_factory(self._engine)
        logger.debug("SqliteKeyValueStore at %s", db_path)

    def get(self, key: str) -> Any | None:
        with self._session_factory() as session:
            row = session.execute(sa.select(kv_entries.c.value).where(kv_entries.c.key == key)).first()
        return row[0] if row else None

    def set(self, key: str, value: Any) -> None:
        now = datetime.now(timezone.utc)
        with self._session_factory() as session:
            updated = session.execute(
                sa.update(kv_entries).where(kv_entries.c.key == key).values(value=value, updated_at=now)
            )
            if updated.rowcount == 0:
                session.execute(sa.insert(kv_entries).values(key=key, value=value, updated_at=now))
            session.commit()

    def delete(self, key: str) -> None:
        with self._session_factory() as session:
            session.execute(sa.delete(kv_entries).where(kv_entries.c.key == key))
            session.commit()

    def close(self) -> None:
        """Dispose of the engine's connection pool."""
        self._engine.dispose()


def build_kv_store(backend: str | None = None) -> KeyValueStore:
    """Create the configured key-value store.

    Args:
        backend: ``memory`` or ``sqlite``; defaults to ``store.backend``.
    """
    from tabpilot.settings import get_settings

    settings = get_settings()
    name = (backend or settings.store.backend).lower().strip()
    if name == "memory":
        return InMemoryKeyValueStore()
    if name == "sqlite":
        return SqliteKeyValueStore(settings.store.sqlite_path)
    raise ValueError(f"Unknown store backend: {name!r}. Supported: memory, sqlite")
