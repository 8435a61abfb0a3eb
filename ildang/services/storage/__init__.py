"""
Storage Services Package

Provides the abstract record store interface and its SQLite implementation.
"""

from ildang.services.storage.interface import (
    IMMUTABLE_FIELDS,
    INDEXED_FIELDS,
    ChangeListener,
    Collection,
    ConflictError,
    ConnectionError,
    NotFoundError,
    RecordChange,
    RecordStoreInterface,
    StorageError,
    StoreTransaction,
)
from ildang.services.storage.sqlite_store import (
    SettingsRow,
    SQLiteRecordStore,
    SQLiteTransaction,
    WorkLogRow,
    build_engine,
)

__all__ = [
    # Interfaces
    "ChangeListener",
    "Collection",
    "RecordChange",
    "RecordStoreInterface",
    "StoreTransaction",
    "IMMUTABLE_FIELDS",
    "INDEXED_FIELDS",
    # Exceptions
    "ConflictError",
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    # SQLite implementation
    "SettingsRow",
    "SQLiteRecordStore",
    "SQLiteTransaction",
    "WorkLogRow",
    "build_engine",
]
