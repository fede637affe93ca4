"""Data models for the barscribe pipeline."""

from .audio import CaptureStats, SampleBlock
from .backup import BackupRecord
from .session import (
    WAV_MIME_TYPE,
    AudioSession,
    LiveTranscriptionCallbacks,
    SessionResult,
    SessionState,
    SessionStatus,
)
from .transcription import ChunkOutcome, DeliveryMode, TranscriptDelta

__all__ = [
    "CaptureStats",
    "SampleBlock",
    "BackupRecord",
    "WAV_MIME_TYPE",
    "AudioSession",
    "LiveTranscriptionCallbacks",
    "SessionResult",
    "SessionState",
    "SessionStatus",
    "ChunkOutcome",
    "DeliveryMode",
    "TranscriptDelta",
]
