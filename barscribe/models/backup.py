"""Backup store data models."""

from dataclasses import dataclass


@dataclass(frozen=True)
class BackupRecord:
    """One persisted recording segment."""
    timestamp: int  # Milliseconds since the epoch, unique across the store
    session_id: str
    parameter_id: str
    audio_bytes: bytes
    mime_type: str = "audio/wav"

    @property
    def size_bytes(self) -> int:
        return len(self.audio_bytes)
