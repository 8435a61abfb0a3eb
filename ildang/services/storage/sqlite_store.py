"""
SQLite Storage Implementation

DESIGN DECISION: SQLite (through SQLModel) is the storage backend because:
1. The ledger is local-first - one user, one device, no server
2. Real transactions give us all-or-nothing restores for free
3. Indexed range queries on the work date are exactly what reports need

TRADEOFFS:
- The SQLAlchemy session API is synchronous; calls are short and local,
  and bulk inserts yield to the event loop between chunks
- A single asyncio.Lock serializes every operation (single logical writer)

Domain models (WorkLog, UserSettings) are converted to and from table rows
at this boundary. Nothing outside this module sees a row object.
"""

import asyncio
import datetime as dt
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterable, Optional

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.pool import StaticPool
from sqlmodel import Field, Session, SQLModel, create_engine, select
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ildang.config import get_settings
from ildang.models.worklog import UserSettings, WorkLog
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


logger = structlog.get_logger(__name__)


class WorkLogRow(SQLModel, table=True):
    __tablename__ = "logs"
    
    id: Optional[int] = Field(default=None, primary_key=True)
    date: dt.date = Field(index=True)
    location: str = Field(index=True)
    task: str = ""
    amount: int = 0
    is_paid: bool = Field(default=False, index=True)
    is_day_off: bool = False
    memo: Optional[str] = None
    created_at: int = Field(index=True)


class SettingsRow(SQLModel, table=True):
    __tablename__ = "settings"
    
    id: Optional[int] = Field(default=None, primary_key=True)
    user_name: str = ""
    bank_name: str = ""
    bank_account: str = ""
    account_holder: str = ""


_TABLES: dict[Collection, type[SQLModel]] = {
    Collection.LOGS: WorkLogRow,
    Collection.SETTINGS: SettingsRow,
}

_MODELS: dict[Collection, type[BaseModel]] = {
    Collection.LOGS: WorkLog,
    Collection.SETTINGS: UserSettings,
}


def build_engine(db_url: str, echo: bool = False):
    """Create an engine for a file-backed or in-memory SQLite database."""
    kwargs: dict[str, Any] = {
        "echo": echo,
        "connect_args": {"check_same_thread": False},
    }
    if db_url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every session sees an empty database
        kwargs["poolclass"] = StaticPool
    return create_engine(db_url, **kwargs)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _indexed_values(collection: Collection, entity: BaseModel) -> dict[str, Any]:
    return {name: getattr(entity, name) for name in INDEXED_FIELDS[collection]}


class SQLiteTransaction(StoreTransaction):
    """
    A transaction bound to one SQLModel session.
    
    Changes are collected here and handed to the store, which publishes
    them once the session has committed.
    """
    
    def __init__(
        self,
        session: Session,
        scope: frozenset[Collection],
        chunk_size: int,
    ):
        self._session = session
        self._scope = scope
        self._chunk_size = chunk_size
        self.changes: list[RecordChange] = []
    
    def _table(self, collection: Collection) -> type[SQLModel]:
        collection = Collection(collection)
        if collection not in self._scope:
            raise StorageError(
                f"Collection '{collection.value}' is not part of this transaction"
            )
        return _TABLES[collection]
    
    def _column(self, collection: Collection, field: str):
        if field not in INDEXED_FIELDS[Collection(collection)]:
            raise StorageError(f"Field '{field}' is not indexed on '{collection.value}'")
        return getattr(self._table(collection), field)
    
    def _to_entity(self, collection: Collection, row: SQLModel) -> BaseModel:
        return _MODELS[collection].model_validate(row.model_dump())
    
    def _next_created_at(self) -> int:
        latest = self._session.exec(select(func.max(WorkLogRow.created_at))).one()
        return max(_now_ms(), (latest or 0) + 1)
    
    def _insert(self, collection: Collection, entity: BaseModel) -> SQLModel:
        table = self._table(collection)
        if not isinstance(entity, _MODELS[collection]):
            raise StorageError(
                f"Expected {_MODELS[collection].__name__}, got {type(entity).__name__}"
            )
        if entity.id is not None and self._session.get(table, entity.id) is not None:
            raise ConflictError(f"Key {entity.id} already exists in '{collection.value}'")
        
        if collection == Collection.LOGS and not entity.created_at:
            entity = entity.model_copy(update={"created_at": self._next_created_at()})
        
        row = table(**entity.model_dump())
        self._session.add(row)
        return row
    
    def _flush(self) -> None:
        try:
            self._session.flush()
        except IntegrityError as e:
            raise ConflictError(f"Duplicate key: {e.orig}") from e
    
    async def get(self, collection: Collection, key: int) -> Optional[BaseModel]:
        row = self._session.get(self._table(collection), key)
        return self._to_entity(collection, row) if row is not None else None
    
    async def add(self, collection: Collection, entity: BaseModel) -> int:
        collection = Collection(collection)
        row = self._insert(collection, entity)
        self._flush()
        stored = self._to_entity(collection, row)
        self.changes.append(RecordChange(
            collection=collection,
            key=row.id,
            after=_indexed_values(collection, stored),
        ))
        return row.id
    
    async def update(self, collection: Collection, key: int, patch: dict[str, Any]) -> None:
        collection = Collection(collection)
        model = _MODELS[collection]
        
        unknown = set(patch) - set(model.model_fields)
        if unknown:
            raise StorageError(f"Unknown fields in patch: {sorted(unknown)}")
        frozen = set(patch) & IMMUTABLE_FIELDS
        if frozen:
            raise StorageError(f"Immutable fields in patch: {sorted(frozen)}")
        
        row = self._session.get(self._table(collection), key)
        if row is None:
            raise NotFoundError(f"No entity with key {key} in '{collection.value}'")
        
        current = self._to_entity(collection, row)
        try:
            updated = model.model_validate({**current.model_dump(), **patch})
        except PydanticValidationError as e:
            raise StorageError(f"Patch would produce an invalid record: {e.error_count()} errors") from e
        for name, value in updated.model_dump().items():
            setattr(row, name, value)
        self._session.add(row)
        self._flush()
        
        self.changes.append(RecordChange(
            collection=collection,
            key=key,
            before=_indexed_values(collection, current),
            after=_indexed_values(collection, updated),
        ))
    
    async def delete(self, collection: Collection, key: int) -> None:
        collection = Collection(collection)
        row = self._session.get(self._table(collection), key)
        if row is None:
            raise NotFoundError(f"No entity with key {key} in '{collection.value}'")
        
        current = self._to_entity(collection, row)
        self._session.delete(row)
        self._flush()
        self.changes.append(RecordChange(
            collection=collection,
            key=key,
            before=_indexed_values(collection, current),
        ))
    
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
        collection = Collection(collection)
        table = self._table(collection)
        column = self._column(collection, field)
        
        if lo is not None and hi is not None and lo > hi:
            logger.warning(
                "inverted_range_query",
                collection=collection.value,
                field=field,
                lo=str(lo),
                hi=str(hi),
            )
            return []
        
        statement = select(table)
        if lo is not None:
            statement = statement.where(column >= lo if include_lower else column > lo)
        if hi is not None:
            statement = statement.where(column <= hi if include_upper else column < hi)
        
        if reverse:
            statement = statement.order_by(column.desc(), table.id.desc())
        else:
            statement = statement.order_by(column, table.id)
        
        rows = self._session.exec(statement).all()
        return [self._to_entity(collection, row) for row in rows]
    
    async def to_list(
        self,
        collection: Collection,
        order_by: str = "id",
        reverse: bool = False,
    ) -> list[BaseModel]:
        return await self.query_range(collection, order_by, reverse=reverse)
    
    async def first(
        self,
        collection: Collection,
        order_by: str = "id",
        reverse: bool = False,
    ) -> Optional[BaseModel]:
        collection = Collection(collection)
        table = self._table(collection)
        column = self._column(collection, order_by)
        
        statement = select(table)
        if reverse:
            statement = statement.order_by(column.desc(), table.id.desc())
        else:
            statement = statement.order_by(column, table.id)
        
        row = self._session.exec(statement.limit(1)).first()
        return self._to_entity(collection, row) if row is not None else None
    
    async def clear(self, collection: Collection) -> None:
        collection = Collection(collection)
        table = self._table(collection)
        for row in self._session.exec(select(table)).all():
            self._session.delete(row)
        self._flush()
        self.changes.append(RecordChange(collection=collection))
    
    async def bulk_add(self, collection: Collection, entities: Iterable[BaseModel]) -> list[int]:
        collection = Collection(collection)
        rows = []
        seen: set[int] = set()
        
        for index, entity in enumerate(entities, start=1):
            if entity.id is not None:
                if entity.id in seen:
                    raise ConflictError(
                        f"Key {entity.id} appears twice in bulk insert into '{collection.value}'"
                    )
                seen.add(entity.id)
            rows.append(self._insert(collection, entity))
            
            if index % self._chunk_size == 0:
                self._flush()
                await asyncio.sleep(0)
        
        self._flush()
        keys = [row.id for row in rows]
        for row in rows:
            self.changes.append(RecordChange(
                collection=collection,
                key=row.id,
                after=_indexed_values(collection, self._to_entity(collection, row)),
            ))
        return keys
    
    async def count(self, collection: Collection) -> int:
        table = self._table(collection)
        return self._session.exec(select(func.count()).select_from(table)).one()


class SQLiteRecordStore(RecordStoreInterface):
    """
    SQLite implementation of the record store.
    
    Every public operation takes the store lock, so observers never see a
    half-applied transaction. Listeners are called after commit, outside
    the lock.
    """
    
    def __init__(
        self,
        url: Optional[str] = None,
        echo: Optional[bool] = None,
        chunk_size: Optional[int] = None,
    ):
        settings = get_settings().store
        self.url = url or settings.database_url
        self._engine = build_engine(
            self.url,
            echo=settings.echo if echo is None else echo,
        )
        self._chunk_size = chunk_size or settings.restore_chunk_size
        self._lock = asyncio.Lock()
        self._owner: Optional[asyncio.Task] = None
        self._listeners: list[ChangeListener] = []
    
    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(OperationalError),
        reraise=True,
    )
    async def _connect(self) -> None:
        with self._engine.connect() as conn:
            conn.execute(text("select 1"))
    
    async def initialize(self) -> None:
        try:
            await self._connect()
        except OperationalError as e:
            raise ConnectionError(f"Could not open database {self.url}: {e}") from e
        
        SQLModel.metadata.create_all(self._engine)
        
        async with self.transaction(Collection.SETTINGS) as tx:
            if await tx.count(Collection.SETTINGS) == 0:
                await tx.add(Collection.SETTINGS, UserSettings())
                logger.info("settings_initialized", url=self.url)
    
    @asynccontextmanager
    async def transaction(self, *collections: Collection) -> AsyncIterator[SQLiteTransaction]:
        scope = frozenset(Collection(c) for c in collections) or frozenset(Collection)
        current = asyncio.current_task()
        if current is not None and self._owner is current:
            raise StorageError("Nested transactions are not supported; use the open transaction")
        
        async with self._lock:
            self._owner = current
            try:
                with Session(self._engine) as session:
                    tx = SQLiteTransaction(session, scope, self._chunk_size)
                    try:
                        yield tx
                        session.commit()
                    except BaseException:
                        session.rollback()
                        raise
            finally:
                self._owner = None
        
        if tx.changes:
            self._publish(tx.changes)
    
    def add_change_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)
    
    def remove_change_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)
    
    def _publish(self, changes: list[RecordChange]) -> None:
        for listener in list(self._listeners):
            try:
                listener(changes)
            except Exception as e:
                # The write has already committed; a failing observer must not undo it
                logger.error("change_listener_failed", error=str(e))
    
    # Single-operation helpers, each in its own transaction
    
    async def get(self, collection: Collection, key: int) -> Optional[BaseModel]:
        async with self.transaction(collection) as tx:
            return await tx.get(collection, key)
    
    async def add(self, collection: Collection, entity: BaseModel) -> int:
        async with self.transaction(collection) as tx:
            return await tx.add(collection, entity)
    
    async def update(self, collection: Collection, key: int, patch: dict[str, Any]) -> None:
        async with self.transaction(collection) as tx:
            await tx.update(collection, key, patch)
    
    async def delete(self, collection: Collection, key: int) -> None:
        async with self.transaction(collection) as tx:
            await tx.delete(collection, key)
    
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
        async with self.transaction(collection) as tx:
            return await tx.query_range(
                collection, field, lo, hi, include_lower, include_upper, reverse
            )
    
    async def to_list(
        self,
        collection: Collection,
        order_by: str = "id",
        reverse: bool = False,
    ) -> list[BaseModel]:
        async with self.transaction(collection) as tx:
            return await tx.to_list(collection, order_by, reverse)
    
    async def first(
        self,
        collection: Collection,
        order_by: str = "id",
        reverse: bool = False,
    ) -> Optional[BaseModel]:
        async with self.transaction(collection) as tx:
            return await tx.first(collection, order_by, reverse)
    
    async def clear(self, collection: Collection) -> None:
        """Clear a collection; clearing settings leaves a fresh blank row behind."""
        async with self.transaction(collection) as tx:
            await tx.clear(collection)
            if Collection(collection) == Collection.SETTINGS:
                await tx.add(Collection.SETTINGS, UserSettings())
    
    async def bulk_add(self, collection: Collection, entities: Iterable[BaseModel]) -> list[int]:
        async with self.transaction(collection) as tx:
            return await tx.bulk_add(collection, entities)
    
    async def count(self, collection: Collection) -> int:
        async with self.transaction(collection) as tx:
            return await tx.count(collection)
    
    def dispose(self) -> None:
        """Release pooled connections."""
        self._engine.dispose()
