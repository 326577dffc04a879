"""
callguard/storage — record stores for sessions, conversations and detections.
"""

from callguard.storage.base import RecordStore, protection_rate
from callguard.storage.memory_store import MemoryStore
from callguard.storage.sqlite_store import SqliteStore

__all__ = [
    "MemoryStore",
    "RecordStore",
    "SqliteStore",
    "protection_rate",
]
