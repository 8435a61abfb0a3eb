"""
Query Surface

The read API offered to UI collaborators. Every query here is either a
live subscription (re-delivered after relevant commits) or a one-shot read.

Decided behaviour for inverted ranges: query_by_date_range(start, end)
with start > end yields an empty list. Bounds are never swapped.
"""

import calendar
from datetime import date
from typing import Callable, Optional, Union

from ildang.models.worklog import UserSettings, WorkLog
from ildang.queries.live import Dependency, LiveQueryLayer, Subscription
from ildang.services.storage import Collection, RecordStoreInterface


DayLike = Union[date, str]


def parse_day(value: DayLike) -> date:
    """Accept a date or an ISO YYYY-MM-DD string."""
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """First and last day of a calendar month."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


class WorkLogQueries:
    """
    Live and one-shot reads over the record store.
    
    Holds the store only to run queries; results handed out are
    immutable snapshots.
    """
    
    def __init__(self, store: RecordStoreInterface, live: LiveQueryLayer):
        self._store = store
        self._live = live
    
    def query_by_date_range(
        self,
        start: DayLike,
        end: DayLike,
        reverse: bool = False,
        on_result: Optional[Callable[[list[WorkLog]], None]] = None,
    ) -> Subscription[list[WorkLog]]:
        """Logs with start <= date <= end, ordered by date (then key)."""
        start, end = parse_day(start), parse_day(end)
        
        async def fetch() -> list[WorkLog]:
            return await self.logs_between(start, end, reverse=reverse)
        
        return self._live.subscribe(
            fetch,
            [Dependency(collection=Collection.LOGS, field="date", lo=start, hi=end)],
            on_result,
        )
    
    def query_all(
        self,
        on_result: Optional[Callable[[list[WorkLog]], None]] = None,
    ) -> Subscription[list[WorkLog]]:
        """Every log, ordered by date (then key)."""
        
        async def fetch() -> list[WorkLog]:
            async with self._store.transaction(Collection.LOGS) as tx:
                return await tx.to_list(Collection.LOGS, order_by="date")
        
        return self._live.subscribe(
            fetch,
            [Dependency(collection=Collection.LOGS)],
            on_result,
        )
    
    def get_settings(
        self,
        on_result: Optional[Callable[[UserSettings], None]] = None,
    ) -> Subscription[UserSettings]:
        """The settings singleton."""
        return self._live.subscribe(
            self.current_settings,
            [Dependency(collection=Collection.SETTINGS)],
            on_result,
        )
    
    # One-shot reads
    
    async def logs_between(self, start: DayLike, end: DayLike, reverse: bool = False) -> list[WorkLog]:
        async with self._store.transaction(Collection.LOGS) as tx:
            return await tx.query_range(
                Collection.LOGS,
                "date",
                parse_day(start),
                parse_day(end),
                reverse=reverse,
            )
    
    async def month_logs(self, year: int, month: int, reverse: bool = False) -> list[WorkLog]:
        start, end = month_bounds(year, month)
        return await self.logs_between(start, end, reverse=reverse)
    
    async def last_entry(self) -> Optional[WorkLog]:
        """The most recently created log (used to pre-fill the entry form)."""
        async with self._store.transaction(Collection.LOGS) as tx:
            return await tx.first(Collection.LOGS, order_by="created_at", reverse=True)
    
    async def current_settings(self) -> UserSettings:
        async with self._store.transaction(Collection.SETTINGS) as tx:
            settings = await tx.first(Collection.SETTINGS)
        if settings is None:
            # Only reachable if initialize() was never called
            await self._store.initialize()
            return await self.current_settings()
        return settings
