"""
Main Orchestrator for Ildang

This module ties the components together and defines the end-to-end flows:
1. Entry (validate → persist → audit)
2. Settings (read / save the singleton)
3. Export (range → aggregate → build → text or image)
4. Backup (snapshot → JSON, JSON → validated whole-store restore, clear-all)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing is persisted before it has been validated
- Reports are built from store snapshots only; flows never hold rows
- Every write and every destructive action is audited
- Store contract violations are logged and re-raised, never swallowed
"""

from datetime import date
from typing import Any, NamedTuple, Optional
from uuid import UUID

from ildang.aggregation import build_calendar, group_by_month, payment_stats
from ildang.audit import AuditLogger, configure_logging, create_correlation_id
from ildang.backup import BackupCodec, InvalidFormatError, backup_file_name
from ildang.config import ReportSettings, get_settings
from ildang.models.report import MonthOverview, ReportView
from ildang.models.worklog import DAY_OFF_LOCATION, UserSettings, WorkLog
from ildang.queries import LiveQueryLayer, WorkLogQueries, month_bounds, parse_day
from ildang.queries.surface import DayLike
from ildang.reports import (
    ExportSerializer,
    Renderer,
    RenderError,
    ReportBuilder,
    export_file_name,
)
from ildang.services.storage import (
    Collection,
    NotFoundError,
    RecordStoreInterface,
    SQLiteRecordStore,
    StorageError,
)
from ildang.validation import ValidationError, WorkLogValidator


class WorkLogFlow:
    """
    Orchestrates work log entry and maintenance.
    
    Flow for a new entry:
    1. Validate (rejects leave no trace in the store)
    2. Persist (store assigns key and creation time)
    3. Audit
    """
    
    def __init__(
        self,
        store: RecordStoreInterface,
        queries: WorkLogQueries,
        validator: Optional[WorkLogValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._queries = queries
        self._validator = validator or WorkLogValidator()
        self._audit_logger = audit_logger or AuditLogger()
    
    def _check(self, result, correlation_id: Optional[UUID]) -> None:
        if result.has_errors:
            self._audit_logger.log_validation_failed(
                issues=[issue.model_dump() for issue in result.issues],
                correlation_id=correlation_id,
            )
            raise ValidationError(result)
    
    async def _insert(self, log: WorkLog) -> WorkLog:
        async with self._store.transaction(Collection.LOGS) as tx:
            key = await tx.add(Collection.LOGS, log)
            return await tx.get(Collection.LOGS, key)
    
    async def add_entry(
        self,
        work_date: DayLike,
        location: str,
        amount: int,
        task: str = "",
        memo: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> WorkLog:
        """
        Record one day of work at one site.
        
        Raises:
            ValidationError: If a required field is blank or out of range
        """
        correlation_id = correlation_id or create_correlation_id()
        self._check(
            self._validator.validate_entry(work_date, location, amount, task=task, memo=memo),
            correlation_id,
        )
        
        stored = await self._insert(WorkLog(
            date=parse_day(work_date),
            location=location,
            task=task or "",
            amount=amount,
            memo=memo or None,
        ))
        
        self._audit_logger.log_added(
            log_id=stored.id,
            work_date=stored.date.isoformat(),
            location=stored.location,
            amount=stored.amount,
            correlation_id=correlation_id,
        )
        return stored
    
    async def add_day_off(
        self,
        work_date: DayLike,
        memo: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> WorkLog:
        """Record a non-working day (excluded from every total)."""
        correlation_id = correlation_id or create_correlation_id()
        self._check(
            self._validator.validate_entry(work_date, None, 0, is_day_off=True, memo=memo),
            correlation_id,
        )
        
        stored = await self._insert(WorkLog(
            date=parse_day(work_date),
            location=DAY_OFF_LOCATION,
            amount=0,
            is_day_off=True,
            memo=memo or None,
        ))
        
        self._audit_logger.log_added(
            log_id=stored.id,
            work_date=stored.date.isoformat(),
            location=stored.location,
            amount=0,
            correlation_id=correlation_id,
        )
        return stored
    
    async def edit_entry(
        self,
        log_id: int,
        correlation_id: Optional[UUID] = None,
        **patch: Any,
    ) -> WorkLog:
        """
        Change fields of an existing log.
        
        Raises:
            NotFoundError: If the log does not exist
            ValidationError: If the edited record would be invalid
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            async with self._store.transaction(Collection.LOGS) as tx:
                existing = await tx.get(Collection.LOGS, log_id)
                if existing is None:
                    raise NotFoundError(f"Work log not found: {log_id}")
                self._check(self._validator.validate_patch(existing, patch), correlation_id)
                if "date" in patch:
                    patch["date"] = parse_day(patch["date"])
                await tx.update(Collection.LOGS, log_id, patch)
                updated = await tx.get(Collection.LOGS, log_id)
        except StorageError as e:
            self._audit_logger.log_error(type(e).__name__, str(e), correlation_id=correlation_id)
            raise
        
        self._audit_logger.log_updated(log_id, sorted(patch), correlation_id)
        return updated
    
    async def toggle_paid(self, log_id: int, correlation_id: Optional[UUID] = None) -> bool:
        """
        Flip the paid flag of one log and return the new value.
        
        Raises:
            NotFoundError: If the log does not exist
        """
        try:
            async with self._store.transaction(Collection.LOGS) as tx:
                existing = await tx.get(Collection.LOGS, log_id)
                if existing is None:
                    raise NotFoundError(f"Work log not found: {log_id}")
                is_paid = not existing.is_paid
                await tx.update(Collection.LOGS, log_id, {"is_paid": is_paid})
        except StorageError as e:
            self._audit_logger.log_error(type(e).__name__, str(e), correlation_id=correlation_id)
            raise
        
        self._audit_logger.log_paid_toggled(log_id, is_paid, correlation_id)
        return is_paid
    
    async def delete_entry(self, log_id: int, correlation_id: Optional[UUID] = None) -> None:
        """
        Raises:
            NotFoundError: If the log does not exist
        """
        try:
            await self._store.delete(Collection.LOGS, log_id)
        except StorageError as e:
            self._audit_logger.log_error(type(e).__name__, str(e), correlation_id=correlation_id)
            raise
        self._audit_logger.log_deleted(log_id, correlation_id)
    
    async def last_entry(self) -> Optional[WorkLog]:
        """Most recent entry, used to pre-fill site, task and amount."""
        return await self._queries.last_entry()
    
    async def month_overview(self, year: int, month: int) -> MonthOverview:
        """Logs (newest date first), paid/unpaid sums and calendar of a month."""
        logs = await self._queries.month_logs(year, month, reverse=True)
        return MonthOverview(
            logs=logs,
            stats=payment_stats(logs),
            calendar=build_calendar(year, month, logs),
        )


class SettingsFlow:
    """Reads and saves the settings singleton."""
    
    def __init__(
        self,
        store: RecordStoreInterface,
        queries: WorkLogQueries,
        validator: Optional[WorkLogValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._queries = queries
        self._validator = validator or WorkLogValidator()
        self._audit_logger = audit_logger or AuditLogger()

    async def current(self) -> UserSettings:
        return await self._queries.current_settings()
    
    async def save(
        self,
        user_name: Optional[str] = None,
        bank_name: Optional[str] = None,
        bank_account: Optional[str] = None,
        account_holder: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> UserSettings:
        """
        Update the given fields; None leaves a field unchanged.

        Raises:
            ValidationError: If a field is longer than the record allows
        """
        patch = {
            name: value
            for name, value in (
                ("user_name", user_name),
                ("bank_name", bank_name),
                ("bank_account", bank_account),
                ("account_holder", account_holder),
            )
            if value is not None
        }

        result = self._validator.validate_settings(patch)
        if result.has_errors:
            self._audit_logger.log_validation_failed(
                issues=[issue.model_dump() for issue in result.issues],
                correlation_id=correlation_id,
            )
            raise ValidationError(result)

        current = await self.current()
        if patch:
            await self._store.update(Collection.SETTINGS, current.id, patch)
            self._audit_logger.log_settings_saved(sorted(patch), correlation_id)
        return await self.current()


class ExportFlow:
    """
    Orchestrates report export.
    
    Flow:
    1. Read logs in range (date ascending) and the settings record
    2. Aggregate by month
    3. Assemble the ReportView
    4. Serialize to text or hand to the renderer
    """
    
    def __init__(
        self,
        queries: WorkLogQueries,
        builder: Optional[ReportBuilder] = None,
        serializer: Optional[ExportSerializer] = None,
        audit_logger: Optional[AuditLogger] = None,
        report_settings: Optional[ReportSettings] = None,
    ):
        self._queries = queries
        self._report_settings = report_settings or get_settings().report
        self._builder = builder or ReportBuilder(self._report_settings)
        self._serializer = serializer or ExportSerializer()
        self._audit_logger = audit_logger or AuditLogger()
    
    @staticmethod
    def default_range(today: date) -> tuple[date, date]:
        """The export screen opens on the current month."""
        return month_bounds(today.year, today.month)
    
    async def build_report(self, start: DayLike, end: DayLike) -> ReportView:
        start, end = parse_day(start), parse_day(end)
        logs = await self._queries.logs_between(start, end)
        settings = await self._queries.current_settings()
        return self._builder.build(group_by_month(logs), settings, start, end)
    
    async def copy_text(
        self,
        start: DayLike,
        end: DayLike,
        show_amount: bool = True,
        show_details: bool = False,
        correlation_id: Optional[UUID] = None,
    ) -> str:
        """The messenger-ready text claim for a range."""
        view = await self.build_report(start, end)
        text = self._serializer.to_text(view, show_amount=show_amount, show_details=show_details)
        self._audit_logger.log_report_exported("text", view.title, correlation_id)
        return text
    
    async def save_image(
        self,
        start: DayLike,
        end: DayLike,
        renderer: Renderer,
        today: date,
        show_amount: bool = True,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[str, bytes]:
        """
        Render the report card and return (file name, image bytes).
        
        Raises:
            RenderError: If the renderer fails
        """
        view = await self.build_report(start, end)
        try:
            image = await self._serializer.to_image(view, renderer, show_amount=show_amount)
        except RenderError as e:
            self._audit_logger.log_error("RenderError", str(e), correlation_id=correlation_id)
            raise
        
        self._audit_logger.log_report_exported("image", view.title, correlation_id)
        return export_file_name(self._report_settings.image_file_prefix, today), image


class BackupFlow:
    """
    Orchestrates backup, restore and clear-all.
    
    Restore and clear-all are destructive; both run as one transaction
    and are audited at warning level.
    """
    
    def __init__(
        self,
        store: RecordStoreInterface,
        codec: Optional[BackupCodec] = None,
        audit_logger: Optional[AuditLogger] = None,
        report_settings: Optional[ReportSettings] = None,
    ):
        self._store = store
        self._codec = codec or BackupCodec(store)
        self._audit_logger = audit_logger or AuditLogger()
        self._report_settings = report_settings or get_settings().report
    
    async def export_json(
        self,
        today: date,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[str, str]:
        """Return (file name, JSON text) of a full backup."""
        snapshot = await self._codec.snapshot()
        self._audit_logger.log_backup_created(len(snapshot.logs), correlation_id)
        return (
            backup_file_name(self._report_settings.backup_file_prefix, today),
            self._codec.dumps(snapshot),
        )
    
    async def restore_json(
        self,
        text: str,
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """
        Replace all data with the backup contents.
        
        Raises:
            InvalidFormatError: If the file is unusable (store untouched)
        """
        correlation_id = correlation_id or create_correlation_id()
        try:
            count = await self._codec.restore(text)
        except InvalidFormatError as e:
            self._audit_logger.log_backup_rejected(str(e), correlation_id)
            raise
        except StorageError as e:
            self._audit_logger.log_error(type(e).__name__, str(e), correlation_id=correlation_id)
            raise
        
        self._audit_logger.log_backup_restored(count, correlation_id)
        return count
    
    async def clear_all(self, correlation_id: Optional[UUID] = None) -> None:
        """Delete every log and reset settings to a blank row."""
        async with self._store.transaction(Collection.LOGS, Collection.SETTINGS) as tx:
            await tx.clear(Collection.LOGS)
            await tx.clear(Collection.SETTINGS)
            await tx.add(Collection.SETTINGS, UserSettings())
        self._audit_logger.log_store_cleared(correlation_id)


class AppComponents(NamedTuple):
    store: SQLiteRecordStore
    live: LiveQueryLayer
    queries: WorkLogQueries
    worklogs: WorkLogFlow
    settings: SettingsFlow
    export: ExportFlow
    backup: BackupFlow


async def create_app_components(
    database_url: Optional[str] = None,
) -> AppComponents:
    """
    Factory function to create and initialize all application components.
    
    Args:
        database_url: SQLite URL; defaults to the configured database.
                      Use "sqlite://" for a throwaway in-memory store.
    """
    configure_logging(get_settings().app.log_level)
    
    store = SQLiteRecordStore(database_url)
    await store.initialize()
    
    audit_logger = AuditLogger()
    live = LiveQueryLayer(store)
    queries = WorkLogQueries(store, live)
    
    return AppComponents(
        store=store,
        live=live,
        queries=queries,
        worklogs=WorkLogFlow(store, queries, audit_logger=audit_logger),
        settings=SettingsFlow(store, queries, audit_logger=audit_logger),
        export=ExportFlow(queries, audit_logger=audit_logger),
        backup=BackupFlow(store, audit_logger=audit_logger),
    )
