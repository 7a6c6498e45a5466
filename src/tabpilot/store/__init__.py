from tabpilot.store.kv_store import (
    InMemoryKeyValueStore,
    KeyValueStore,
    SqliteKeyValueStore,
    build_kv_store,
)

__all__ = ["InMemoryKeyValueStore", "KeyValueStore", "SqliteKeyValueStore", "build_kv_store"]
