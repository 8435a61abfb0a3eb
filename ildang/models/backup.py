"""
Backup Snapshot Model

The versioned, whole-store export written to backup files:
    {"version": 1, "timestamp": "...", "logs": [...], "settings": {...}}
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from ildang.models.worklog import UserSettings, WorkLog


# Current snapshot format. Readers reject anything else.
SNAPSHOT_VERSION = 1


class BackupSnapshot(BaseModel):
    """A full export of all persisted entities."""
    model_config = ConfigDict(frozen=True)
    
    version: int = Field(default=SNAPSHOT_VERSION, ge=1)
    timestamp: datetime
    logs: list[WorkLog]
    settings: UserSettings
