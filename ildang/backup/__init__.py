"""Backup package: whole-store snapshot and restore."""

from ildang.backup.codec import BackupCodec, InvalidFormatError, backup_file_name

__all__ = ["BackupCodec", "InvalidFormatError", "backup_file_name"]
