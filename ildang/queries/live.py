"""
Live Query Layer

DESIGN DECISION: Reactive reads are an explicit observer contract.
- A subscription declares what it reads (Dependency objects)
- The store publishes committed changes (RecordChange objects)
- Only subscriptions whose dependencies were touched are recomputed

GUARANTEES:
- Recomputation happens only after a commit, never mid-transaction
- One subscription never sees an older result after a newer one
  (its recomputations are serialized in a single task)
- Rapid writes may coalesce into one recomputation reflecting all of them
- After cancel() nothing more is delivered

Consumers receive immutable model snapshots; they never hold a reference
into the store.
"""

import asyncio
from typing import Any, Awaitable, Callable, Generic, Iterable, Optional, TypeVar

import structlog
from pydantic import BaseModel, ConfigDict

from ildang.services.storage import Collection, RecordChange, RecordStoreInterface


logger = structlog.get_logger(__name__)

T = TypeVar("T")

QueryFn = Callable[[], Awaitable[T]]


class Dependency(BaseModel):
    """
    Something a live query reads.
    
    Without a field the whole collection is watched. With a field, only
    records whose value for that field lies in [lo, hi] (None = open)
    before or after a write count as touched.
    """
    model_config = ConfigDict(frozen=True)
    
    collection: Collection
    field: Optional[str] = None
    lo: Any = None
    hi: Any = None
    
    def touched_by(self, change: RecordChange) -> bool:
        if change.collection != self.collection:
            return False
        if self.field is None or change.is_collection_wide:
            return True
        return any(
            values is not None and self._in_range(values.get(self.field))
            for values in (change.before, change.after)
        )
    
    def _in_range(self, value: Any) -> bool:
        if value is None:
            return False
        if self.lo is not None and value < self.lo:
            return False
        if self.hi is not None and value > self.hi:
            return False
        return True


class Subscription(Generic[T]):
    """
    A live query result stream.
    
    Usage:
        sub = live.subscribe(fetch_logs, [Dependency(collection=Collection.LOGS)])
        async for logs in sub:
            ...
        sub.cancel()
    """
    
    def __init__(
        self,
        layer: "LiveQueryLayer",
        query_fn: QueryFn,
        dependencies: tuple[Dependency, ...],
        on_result: Optional[Callable[[T], None]] = None,
    ):
        self._layer = layer
        self._query_fn = query_fn
        self.dependencies = dependencies
        self._on_result = on_result
        
        self._task: Optional[asyncio.Task] = None
        self._dirty = False
        self._cancelled = False
        self._updated = asyncio.Event()
        
        self._latest: Optional[T] = None
        self._error: Optional[Exception] = None
        self._version = 0
        self._consumed = 0
    
    @property
    def latest(self) -> Optional[T]:
        """Most recent delivered result (None before the first one)."""
        return self._latest
    
    @property
    def version(self) -> int:
        """Number of results delivered so far."""
        return self._version
    
    @property
    def cancelled(self) -> bool:
        return self._cancelled
    
    @property
    def busy(self) -> bool:
        return self._task is not None and not self._task.done()
    
    def depends_on(self, changes: Iterable[RecordChange]) -> bool:
        return any(dep.touched_by(change) for change in changes for dep in self.dependencies)
    
    def invalidate(self) -> None:
        """Schedule a recomputation (coalesced with one already pending)."""
        if self._cancelled:
            return
        self._dirty = True
        if not self.busy:
            self._task = asyncio.get_running_loop().create_task(self._run())
    
    async def _run(self) -> None:
        while self._dirty and not self._cancelled:
            self._dirty = False
            try:
                result = await self._query_fn()
            except Exception as e:
                logger.error("live_query_failed", error=str(e))
                self._error = e
                self._updated.set()
                continue
            if self._cancelled:
                return
            self._deliver(result)
    
    def _deliver(self, result: T) -> None:
        self._latest = result
        self._version += 1
        self._updated.set()
        if self._on_result is not None:
            try:
                self._on_result(result)
            except Exception as e:
                logger.error("live_query_callback_failed", error=str(e))
    
    async def next(self) -> T:
        """
        Wait for a result newer than the last one returned.
        
        Raises:
            StopAsyncIteration: Once the subscription is cancelled
            Exception: Whatever the query raised during recomputation
        """
        while not self._cancelled and self._error is None and self._version == self._consumed:
            self._updated.clear()
            await self._updated.wait()
        
        if self._cancelled:
            raise StopAsyncIteration
        if self._error is not None:
            error, self._error = self._error, None
            raise error
        
        self._consumed = self._version
        return self._latest
    
    def __aiter__(self) -> "Subscription[T]":
        return self
    
    async def __anext__(self) -> T:
        return await self.next()
    
    def cancel(self) -> None:
        """Stop the subscription. Safe to call at any time, any number of times."""
        if self._cancelled:
            return
        self._cancelled = True
        if self.busy:
            self._task.cancel()
        self._layer._discard(self)
        self._updated.set()


class LiveQueryLayer:
    """
    Keeps live queries up to date with the record store.
    
    Registers itself as a change listener and re-runs only the
    subscriptions whose dependencies a commit touched.
    """
    
    def __init__(self, store: RecordStoreInterface):
        self._store = store
        self._subscriptions: list[Subscription] = []
        store.add_change_listener(self._on_changes)
    
    def subscribe(
        self,
        query_fn: QueryFn,
        dependencies: Iterable[Dependency],
        on_result: Optional[Callable[[Any], None]] = None,
    ) -> Subscription:
        """
        Start a live query. Must be called with a running event loop.
        
        The query runs once immediately and again after every commit
        that touches one of its dependencies.
        """
        subscription = Subscription(self, query_fn, tuple(dependencies), on_result)
        self._subscriptions.append(subscription)
        subscription.invalidate()
        return subscription
    
    def _on_changes(self, changes: list[RecordChange]) -> None:
        for subscription in list(self._subscriptions):
            if subscription.depends_on(changes):
                subscription.invalidate()
    
    def _discard(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
    
    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)
    
    async def wait_idle(self) -> None:
        """Wait until no recomputation is pending or running."""
        while True:
            tasks = [s._task for s in self._subscriptions if s.busy]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)
    
    def close(self) -> None:
        """Cancel every subscription and detach from the store."""
        for subscription in list(self._subscriptions):
            subscription.cancel()
        self._store.remove_change_listener(self._on_changes)
