"""Services layer for barscribe."""

from .live_transcription import LiveTranscriptionService, TranscriptionSession

__all__ = [
    "LiveTranscriptionService",
    "TranscriptionSession",
]
