"""
Audit Models for Ildang

Every write to the ledger, every backup and every export is logged.
This provides:
1. Traceability of what happened to a record and when
2. Debugging information when a total looks wrong
3. A record of destructive actions (restore, clear-all)

DESIGN DECISION: Audit events are emitted, never edited.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Work log lifecycle
    LOG_ADDED = "log_added"
    LOG_UPDATED = "log_updated"
    LOG_DELETED = "log_deleted"
    PAID_TOGGLED = "paid_toggled"
    VALIDATION_FAILED = "validation_failed"
    
    # Settings
    SETTINGS_SAVED = "settings_saved"
    
    # Backup / maintenance
    BACKUP_CREATED = "backup_created"
    BACKUP_RESTORED = "backup_restored"
    BACKUP_REJECTED = "backup_rejected"
    STORE_CLEARED = "store_cleared"
    
    # Reports
    REPORT_EXPORTED = "report_exported"
    
    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


# Entity each event type is about; events not listed here concern the whole store
_ENTITY_TYPES: dict[AuditEventType, str] = {
    AuditEventType.LOG_ADDED: "log",
    AuditEventType.LOG_UPDATED: "log",
    AuditEventType.LOG_DELETED: "log",
    AuditEventType.PAID_TOGGLED: "log",
    AuditEventType.VALIDATION_FAILED: "log",
    AuditEventType.SETTINGS_SAVED: "settings",
    AuditEventType.BACKUP_CREATED: "backup",
    AuditEventType.BACKUP_RESTORED: "backup",
    AuditEventType.BACKUP_REJECTED: "backup",
    AuditEventType.REPORT_EXPORTED: "report",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEvent(BaseModel):
    """
    One entry of the audit trail.
    
    entity_type/entity_id point at the record the event concerns, when
    there is one. correlation_id ties together the events of one user
    action (e.g. a rejected entry followed by the corrected one).
    """
    
    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="UTC time the event was emitted"
    )
    
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO
    
    entity_type: Optional[str] = Field(
        default=None,
        description="'log', 'settings', 'backup' or 'report'"
    )
    entity_id: Optional[int] = Field(
        default=None,
        description="Store key of the record, if the event concerns one"
    )
    correlation_id: Optional[UUID] = None
    
    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None
    
    # False for events the system raised on its own (errors, rejects)
    is_user_action: bool = False
    
    def to_log_dict(self) -> dict:
        """Flatten into keyword arguments for a structlog call."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Factory methods for the events the ledger emits.
    
    Usage:
        event = AuditEventBuilder.log_added(log_id, "2024-06-01", "당진 공장", 150000)
        event = AuditEventBuilder.backup_restored(42, correlation_id)
    """
    
    @staticmethod
    def _event(
        event_type: AuditEventType,
        description: str,
        correlation_id: Optional[UUID],
        severity: AuditSeverity = AuditSeverity.INFO,
        user_action: bool = True,
        **fields: Any,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            severity=severity,
            entity_type=_ENTITY_TYPES.get(event_type),
            correlation_id=correlation_id,
            description=description,
            is_user_action=user_action,
            **fields,
        )
    
    @classmethod
    def log_added(
        cls,
        log_id: int,
        work_date: str,
        location: str,
        amount: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return cls._event(
            AuditEventType.LOG_ADDED,
            f"Work log added: {work_date} {location}",
            correlation_id,
            entity_id=log_id,
            details={"date": work_date, "location": location, "amount": amount},
        )
    
    @classmethod
    def log_updated(cls, log_id: int, fields: list[str], correlation_id: Optional[UUID] = None) -> AuditEvent:
        return cls._event(
            AuditEventType.LOG_UPDATED,
            f"Work log updated: {', '.join(fields)}",
            correlation_id,
            entity_id=log_id,
            details={"fields": fields},
        )
    
    @classmethod
    def log_deleted(cls, log_id: int, correlation_id: Optional[UUID] = None) -> AuditEvent:
        return cls._event(
            AuditEventType.LOG_DELETED,
            "Work log deleted",
            correlation_id,
            severity=AuditSeverity.WARNING,
            entity_id=log_id,
        )
    
    @classmethod
    def paid_toggled(cls, log_id: int, is_paid: bool, correlation_id: Optional[UUID] = None) -> AuditEvent:
        return cls._event(
            AuditEventType.PAID_TOGGLED,
            "Marked as paid" if is_paid else "Marked as unpaid",
            correlation_id,
            entity_id=log_id,
            details={"is_paid": is_paid},
        )
    
    @classmethod
    def validation_failed(cls, issues: list[dict], correlation_id: Optional[UUID] = None) -> AuditEvent:
        return cls._event(
            AuditEventType.VALIDATION_FAILED,
            f"Entry rejected with {len(issues)} issues",
            correlation_id,
            severity=AuditSeverity.WARNING,
            user_action=False,
            details={"issues": issues},
        )
    
    @classmethod
    def settings_saved(cls, fields: list[str], correlation_id: Optional[UUID] = None) -> AuditEvent:
        return cls._event(
            AuditEventType.SETTINGS_SAVED,
            "Settings saved",
            correlation_id,
            details={"fields": fields},
        )
    
    @classmethod
    def backup_created(cls, log_count: int, correlation_id: Optional[UUID] = None) -> AuditEvent:
        return cls._event(
            AuditEventType.BACKUP_CREATED,
            f"Backup created with {log_count} logs",
            correlation_id,
            details={"log_count": log_count},
        )
    
    @classmethod
    def backup_restored(cls, log_count: int, correlation_id: Optional[UUID] = None) -> AuditEvent:
        return cls._event(
            AuditEventType.BACKUP_RESTORED,
            f"Store replaced from backup ({log_count} logs)",
            correlation_id,
            severity=AuditSeverity.WARNING,
            details={"log_count": log_count},
        )
    
    @classmethod
    def backup_rejected(cls, reason: str, correlation_id: Optional[UUID] = None) -> AuditEvent:
        return cls._event(
            AuditEventType.BACKUP_REJECTED,
            "Backup file rejected",
            correlation_id,
            severity=AuditSeverity.WARNING,
            error_message=reason,
        )
    
    @classmethod
    def store_cleared(cls, correlation_id: Optional[UUID] = None) -> AuditEvent:
        return cls._event(
            AuditEventType.STORE_CLEARED,
            "All logs and settings cleared",
            correlation_id,
            severity=AuditSeverity.WARNING,
        )
    
    @classmethod
    def report_exported(
        cls,
        export_format: str,
        title: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return cls._event(
            AuditEventType.REPORT_EXPORTED,
            f"Report exported as {export_format}: {title}",
            correlation_id,
            details={"format": export_format, "title": title},
        )
    
    @classmethod
    def system_error(
        cls,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return cls._event(
            AuditEventType.SYSTEM_ERROR,
            f"{error_type} raised",
            correlation_id,
            severity=AuditSeverity.ERROR,
            user_action=False,
            error_message=error_message,
            details=details or {},
        )
