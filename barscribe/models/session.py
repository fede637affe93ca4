"""Session-related data models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional

from .audio import SampleBlock

WAV_MIME_TYPE = "audio/wav"


class SessionState(Enum):
    """Lifecycle of a streaming transcription session."""
    IDLE = "idle"
    CONNECTING = "connecting"
    ACTIVE = "active"
    STOPPING = "stopping"
    CLOSED = "closed"


class SessionStatus(Enum):
    """Connection status reported to the UI."""
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


@dataclass
class AudioSession:
    """State of one recording period (one answer to one question)."""
    session_id: str
    parameter_id: str
    target_sample_rate: int = 16000
    sample_rate: Optional[int] = None  # Native rate, known once the microphone is open
    started_at: datetime = field(default_factory=datetime.now)
    is_active: bool = False
    accumulated_transcript: str = ""
    raw_chunks: List[SampleBlock] = field(default_factory=list)

    def clear(self) -> None:
        """Drop everything buffered for this session."""
        self.is_active = False
        self.accumulated_transcript = ""
        self.raw_chunks = []


@dataclass(frozen=True)
class SessionResult:
    """What stopping a session hands back to the interview flow."""
    transcript: str
    audio_blob: bytes
    mime_type: str = WAV_MIME_TYPE


def _ignore(*_args) -> None:
    pass


@dataclass
class LiveTranscriptionCallbacks:
    """UI callbacks for a live transcription session."""
    on_transcript: Callable[[str, bool], None] = _ignore
    on_error: Callable[[Exception], None] = _ignore
    on_status_change: Callable[[SessionStatus], None] = _ignore
