"""
Backup Codec

Serializes the whole store (every WorkLog plus the settings row) to a
versioned JSON snapshot and restores it by whole-store replacement.

CRITICAL: restore validates first and mutates second.
A malformed file raises InvalidFormatError before anything is cleared,
and the clear + insert sequence runs in one transaction, so observers see
either the old store or the restored one - never a mix.

Restored records always receive fresh keys from the store; keys found
in the file are discarded.
"""

import json
from datetime import date, datetime, timezone
from typing import Any, Union

from pydantic import ValidationError as PydanticValidationError

from ildang.models.backup import SNAPSHOT_VERSION, BackupSnapshot
from ildang.models.worklog import UserSettings
from ildang.services.storage import Collection, RecordStoreInterface


class InvalidFormatError(Exception):
    """The backup data is malformed, incomplete or of an unknown version."""
    pass


class BackupCodec:
    """Snapshot and restore for one record store."""
    
    def __init__(self, store: RecordStoreInterface):
        self._store = store
    
    async def snapshot(self) -> BackupSnapshot:
        """Read logs and settings in one transaction and wrap them."""
        async with self._store.transaction(Collection.LOGS, Collection.SETTINGS) as tx:
            logs = await tx.to_list(Collection.LOGS)
            settings = await tx.first(Collection.SETTINGS)
        
        return BackupSnapshot(
            version=SNAPSHOT_VERSION,
            timestamp=datetime.now(timezone.utc),
            logs=logs,
            settings=settings or UserSettings(),
        )
    
    def dumps(self, snapshot: BackupSnapshot) -> str:
        """JSON text with camelCase keys, as written to backup files."""
        return json.dumps(
            snapshot.model_dump(mode="json", by_alias=True),
            ensure_ascii=False,
            indent=2,
        )
    
    def parse(self, source: Union[str, bytes, dict[str, Any], BackupSnapshot]) -> BackupSnapshot:
        """
        Validate backup data without touching the store.
        
        Raises:
            InvalidFormatError: If the data cannot be restored
        """
        if isinstance(source, BackupSnapshot):
            return source
        
        if isinstance(source, (str, bytes)):
            try:
                source = json.loads(source)
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise InvalidFormatError(f"Backup is not valid JSON: {e}") from e
        
        if not isinstance(source, dict):
            raise InvalidFormatError("Backup must be a JSON object")
        
        if source.get("logs") is None:
            raise InvalidFormatError("Backup is missing 'logs'")
        if source.get("settings") is None:
            raise InvalidFormatError("Backup is missing 'settings'")
        
        version = source.get("version")
        if version != SNAPSHOT_VERSION:
            raise InvalidFormatError(
                f"Unsupported backup version: {version!r} (expected {SNAPSHOT_VERSION})"
            )
        
        try:
            return BackupSnapshot.model_validate(source)
        except PydanticValidationError as e:
            raise InvalidFormatError(
                f"Backup contains invalid records: {e.error_count()} errors"
            ) from e
    
    def loads(self, text: Union[str, bytes]) -> BackupSnapshot:
        return self.parse(text)
    
    async def restore(self, source: Union[str, bytes, dict[str, Any], BackupSnapshot]) -> int:
        """
        Replace the whole store with the snapshot contents.
        
        Returns:
            Number of logs restored
        
        Raises:
            InvalidFormatError: Before any mutation, if the data is unusable
        """
        snapshot = self.parse(source)
        
        logs = [log.model_copy(update={"id": None}) for log in snapshot.logs]
        settings = snapshot.settings.model_copy(update={"id": None})
        
        async with self._store.transaction(Collection.LOGS, Collection.SETTINGS) as tx:
            await tx.clear(Collection.LOGS)
            await tx.clear(Collection.SETTINGS)
            await tx.bulk_add(Collection.LOGS, logs)
            await tx.add(Collection.SETTINGS, settings)
        
        return len(logs)


def backup_file_name(prefix: str, today: date) -> str:
    """'ildang_backup', date(2024, 6, 30) -> 'ildang_backup_2024-06-30.json'"""
    return f"{prefix}_{today.isoformat()}.json"
