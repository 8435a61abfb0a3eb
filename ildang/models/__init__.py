"""
Data Models Package

This package contains all Pydantic models used in Ildang.
All data flowing through the system must conform to these schemas.
"""

from ildang.models.worklog import (
    DAY_OFF_LOCATION,
    UserSettings,
    WorkLog,
)
from ildang.models.report import (
    BankInfo,
    CalendarMonth,
    DailyTotal,
    GrandTotals,
    LocationSummary,
    MonthlyData,
    MonthOverview,
    PaymentStats,
    ReportView,
)
from ildang.models.backup import SNAPSHOT_VERSION, BackupSnapshot
from ildang.models.validation import ValidationIssue, ValidationResult
from ildang.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Records
    "DAY_OFF_LOCATION",
    "UserSettings",
    "WorkLog",
    # Report models
    "BankInfo",
    "CalendarMonth",
    "DailyTotal",
    "GrandTotals",
    "LocationSummary",
    "MonthlyData",
    "MonthOverview",
    "PaymentStats",
    "ReportView",
    # Backup
    "SNAPSHOT_VERSION",
    "BackupSnapshot",
    # Validation
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
