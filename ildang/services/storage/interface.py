"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for the record store.
This allows us to:
1. Keep the SQLite backend swappable
2. Give the live query layer a single change feed to listen to
3. Keep aggregation and reporting decoupled from persistence

The interface is intentionally small - keyed collections with a handful of
indexed fields, not an ORM. Every operation runs inside a transaction;
change notifications are published only after that transaction commits.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from enum import Enum
from typing import Any, Callable, Iterable, Optional

from pydantic import BaseModel, ConfigDict


class Collection(str, Enum):
    """The keyed collections owned by the store."""
    LOGS = "logs"
    SETTINGS = "settings"


# Fields that can be used for ordering and range queries
INDEXED_FIELDS: dict[Collection, tuple[str, ...]] = {
    Collection.LOGS: ("id", "date", "location", "is_paid", "created_at"),
    Collection.SETTINGS: ("id",),
}

# Fields a patch may never change
IMMUTABLE_FIELDS = frozenset({"id", "created_at"})


class RecordChange(BaseModel):
    """
    One committed write, as seen by change listeners.
    
    before/after hold the indexed field values of the record prior to and
    after the write (None for inserts and deletes respectively).
    A change with key None touches the whole collection (clear).
    """
    model_config = ConfigDict(frozen=True)
    
    collection: Collection
    key: Optional[int] = None
    before: Optional[dict[str, Any]] = None
    after: Optional[dict[str, Any]] = None
    
    @property
    def is_collection_wide(self) -> bool:
        return self.key is None


ChangeListener = Callable[[list[RecordChange]], None]


class StoreTransaction(ABC):
    """
    Scoped access to a set of collections.
    
    All writes made through one transaction commit together or not at all.
    """
    
    @abstractmethod
    async def get(self, collection: Collection, key: int) -> Optional[BaseModel]:
        """Point lookup. Returns None if the key does not exist."""
        pass
    
    @abstractmethod
    async def add(self, collection: Collection, entity: BaseModel) -> int:
        """
        Insert one entity and return its key.
        
        Raises:
            ConflictError: If the entity carries a key that already exists
        """
        pass
    
    @abstractmethod
    async def update(self, collection: Collection, key: int, patch: dict[str, Any]) -> None:
        """
        Apply a partial update.
        
        Raises:
            NotFoundError: If the key does not exist
            StorageError: If the patch touches unknown or immutable fields
        """
        pass
    
    @abstractmethod
    async def delete(self, collection: Collection, key: int) -> None:
        """
        Delete one entity.
        
        Raises:
            NotFoundError: If the key does not exist
        """
        pass
    
    @abstractmethod
    async def query_range(
        self,
        collection: Collection,
        field: str,
        lo: Any = None,
        hi: Any = None,
        include_lower: bool = True,
        include_upper: bool = True,
        reverse: bool = False,
    ) -> list[BaseModel]:
        """
        Entities whose indexed field lies between lo and hi.
        
        None bounds are open. Results are ordered by the field (then key)
        ascending, or descending when reverse is set. lo > hi yields [].
        """
        pass
    
    @abstractmethod
    async def to_list(
        self,
        collection: Collection,
        order_by: str = "id",
        reverse: bool = False,
    ) -> list[BaseModel]:
        """Every entity of a collection, ordered by an indexed field."""
        pass
    
    @abstractmethod
    async def first(
        self,
        collection: Collection,
        order_by: str = "id",
        reverse: bool = False,
    ) -> Optional[BaseModel]:
        """First entity in the given order, or None for an empty collection."""
        pass
    
    @abstractmethod
    async def clear(self, collection: Collection) -> None:
        """Delete every entity of a collection."""
        pass
    
    @abstractmethod
    async def bulk_add(self, collection: Collection, entities: Iterable[BaseModel]) -> list[int]:
        """
        Insert many entities, yielding to the event loop between chunks.
        
        Raises:
            ConflictError: If any entity carries a key that already exists
        """
        pass
    
    @abstractmethod
    async def count(self, collection: Collection) -> int:
        pass


class RecordStoreInterface(ABC):
    """
    Abstract interface for the local record store.
    
    Any storage implementation must provide transactions and a change feed;
    the single-operation helpers (get/add/update/...) each run in their own
    transaction.
    """
    
    @abstractmethod
    async def initialize(self) -> None:
        """
        Prepare the store for use.
        
        Creates missing tables and inserts the blank settings row if the
        settings collection is empty. Safe to call on every startup.
        """
        pass
    
    @abstractmethod
    def transaction(self, *collections: Collection) -> AbstractAsyncContextManager[StoreTransaction]:
        """
        Open an exclusive transaction over the given collections.
        
        Usage:
            async with store.transaction(Collection.LOGS) as tx:
                await tx.add(Collection.LOGS, log)
        """
        pass
    
    @abstractmethod
    def add_change_listener(self, listener: ChangeListener) -> None:
        """Register a callable invoked with the changes of each commit."""
        pass
    
    @abstractmethod
    def remove_change_listener(self, listener: ChangeListener) -> None:
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConflictError(StorageError):
    """Attempted to insert an entity under a key that already exists."""
    pass


class ConnectionError(StorageError):
    """Could not open the storage backend."""
    pass
