"""Local persistence for recorded audio."""

from .backup_store import AudioBackupStore

__all__ = ["AudioBackupStore"]
