"""
relayq Storage — snapshot persistence backends.

- KeyValueStore: the protocol the queues persist through
- InMemoryStore: dict-backed, for tests and ephemeral queues
- JsonFileStore: one JSON file per key
- SqlKeyValueStore: async SQLAlchemy table
"""
from relayq.storage.base import InMemoryStore, KeyValueStore
from relayq.storage.file import JsonFileStore
from relayq.storage.sql import KeyValueEntry, SqlKeyValueStore

__all__ = [
    "InMemoryStore",
    "JsonFileStore",
    "KeyValueEntry",
    "KeyValueStore",
    "SqlKeyValueStore",
]
