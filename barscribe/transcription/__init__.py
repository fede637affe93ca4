"""Transcription providers for barscribe."""

from .base import (
    AbstractTranscriptionProvider,
    BufferTranscriptionProvider,
    StreamingTranscriptionProvider,
)
from .aggregator import OutcomeAggregator
from .gemini_backend import GeminiProvider
from .gemini_live import GeminiLiveProvider
from .google_backend import GoogleSpeechProvider
from .publisher import OUTCOME_TOPIC, OutcomePublisher
from .registry import PROVIDERS, create_provider
from .sarvam_backend import SarvamProvider

__all__ = [
    "AbstractTranscriptionProvider",
    "BufferTranscriptionProvider",
    "StreamingTranscriptionProvider",
    "OutcomeAggregator",
    "GeminiProvider",
    "GeminiLiveProvider",
    "GoogleSpeechProvider",
    "OUTCOME_TOPIC",
    "OutcomePublisher",
    "PROVIDERS",
    "create_provider",
    "SarvamProvider",
]
