"""
Audit Logger

DESIGN DECISION: Every write to the ledger and every destructive action
(restore, clear-all) is logged as a structured event. This provides:
1. Traceability when a total looks wrong
2. Debugging capability
3. A record of restores and wipes

The audit logger:
- Writes JSON lines through structlog
- Never raises; logging must not break a committed write
- Supports correlation IDs to trace related events
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from ildang.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(ensure_ascii=False)
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """Route structlog output to stderr at the given level."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper(), logging.INFO))


class AuditLogger:
    """Central audit logging service."""
    
    def __init__(self, logger_name: str = "ildang.audit"):
        self._logger = structlog.get_logger(logger_name)
    
    def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns False if the event could not be written.
        """
        try:
            log_dict = event.to_log_dict()

            if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
                self._logger.error("audit_event", **log_dict)
            elif event.severity == AuditSeverity.WARNING:
                self._logger.warning("audit_event", **log_dict)
            elif event.severity == AuditSeverity.DEBUG:
                self._logger.debug("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except Exception as e:
            # Log failure but don't raise
            logging.getLogger(__name__).error(
                "audit_event_failed: %s (event_id=%s)", e, event.event_id
            )
            return False

        return True
    
    def log_added(
        self,
        log_id: int,
        work_date: str,
        location: str,
        amount: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.log_added(
            log_id=log_id,
            work_date=work_date,
            location=location,
            amount=amount,
            correlation_id=correlation_id,
        ))
    
    def log_updated(
        self,
        log_id: int,
        fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.log_updated(log_id, fields, correlation_id))
    
    def log_deleted(self, log_id: int, correlation_id: Optional[UUID] = None) -> None:
        self.log(AuditEventBuilder.log_deleted(log_id, correlation_id))
    
    def log_paid_toggled(
        self,
        log_id: int,
        is_paid: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.paid_toggled(log_id, is_paid, correlation_id))
    
    def log_validation_failed(
        self,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.validation_failed(issues, correlation_id))
    
    def log_settings_saved(
        self,
        fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.settings_saved(fields, correlation_id))
    
    def log_backup_created(self, log_count: int, correlation_id: Optional[UUID] = None) -> None:
        self.log(AuditEventBuilder.backup_created(log_count, correlation_id))
    
    def log_backup_restored(self, log_count: int, correlation_id: Optional[UUID] = None) -> None:
        self.log(AuditEventBuilder.backup_restored(log_count, correlation_id))
    
    def log_backup_rejected(self, reason: str, correlation_id: Optional[UUID] = None) -> None:
        self.log(AuditEventBuilder.backup_rejected(reason, correlation_id))
    
    def log_store_cleared(self, correlation_id: Optional[UUID] = None) -> None:
        self.log(AuditEventBuilder.store_cleared(correlation_id))
    
    def log_report_exported(
        self,
        export_format: str,
        title: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.report_exported(export_format, title, correlation_id))
    
    def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.
    
    Use this at the start of a user action (e.g., a restore) and pass
    it through all subsequent operations.
    """
    return uuid4()
