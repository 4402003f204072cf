"""
Persistence layer for the file status tracker.

SQLite-backed storage for tracked file records and tracker settings.
"""

from .manager import StatusStore, format_timestamp, parse_timestamp
from .errors import PersistenceError, SchemaError, LoadError, SaveError

__all__ = [
    "StatusStore",
    "format_timestamp",
    "parse_timestamp",
    "PersistenceError",
    "SchemaError",
    "LoadError",
    "SaveError",
]
