"""Transcription-related data models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class DeliveryMode(Enum):
    """How captured audio is handed to a transcription provider."""
    CONTINUOUS = "continuous"
    WINDOWED = "windowed"


@dataclass(frozen=True)
class TranscriptDelta:
    """Newly recognized text delivered to the UI layer."""
    text: str
    is_final: bool


@dataclass
class ChunkOutcome:
    """Result of a single chunk send or window upload."""
    session_id: str
    mode: DeliveryMode
    sequence: int
    ok: bool
    text: str = ""
    error: Optional[str] = None
    elapsed_seconds: float = 0.0
    discarded: bool = False  # Arrived after the session stopped
    timestamp: datetime = field(default_factory=datetime.now)
