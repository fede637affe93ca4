"""Abstract base classes for transcription providers.

A provider exposes exactly one of two capabilities, and the session picks its
delivery discipline from it:

* ``StreamingTranscriptionProvider`` takes every capture block over a
  persistent connection and pushes recognized text deltas back.
* ``BufferTranscriptionProvider`` takes one encoded WAV buffer per call and
  returns the recognized text.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional
import logging

import aiohttp

from ..models.transcription import DeliveryMode, TranscriptDelta

logger = logging.getLogger(__name__)


class AbstractTranscriptionProvider(ABC):
    """Common surface of all transcription providers."""

    name = "abstract"
    supports_audio_input = True
    delivery_mode: DeliveryMode

    async def close(self) -> None:
        """Release provider resources."""


class StreamingTranscriptionProvider(AbstractTranscriptionProvider):
    """Continuous low-latency provider over a bidirectional connection."""

    delivery_mode = DeliveryMode.CONTINUOUS

    @abstractmethod
    async def connect(self,
                      on_delta: Callable[[TranscriptDelta], None],
                      on_error: Callable[[Exception], None]) -> None:
        """Open the connection; returns once the provider accepts audio.

        Args:
            on_delta: Called with every recognized text delta, in arrival order
            on_error: Called once when the connection fails after it was established
        """

    @abstractmethod
    async def send_chunk(self, pcm16: bytes) -> None:
        """Send one block of little-endian 16-bit PCM at the target rate.

        Raises:
            TransportError: If the chunk could not be sent
        """


class BufferTranscriptionProvider(AbstractTranscriptionProvider):
    """Request/response provider: one WAV buffer in, one text result out."""

    delivery_mode = DeliveryMode.WINDOWED

    @abstractmethod
    async def transcribe_buffer(self, wav_bytes: bytes) -> str:
        """Transcribe a complete WAV buffer.

        Returns:
            Recognized text, empty if the response carried none

        Raises:
            TransportError: On network or provider HTTP errors
        """


class HttpProviderMixin:
    """Lazily created aiohttp session shared by a provider's requests."""

    request_timeout_seconds: float = 30.0

    def _init_http(self, http_session: Optional[aiohttp.ClientSession] = None) -> None:
        self._http_session = http_session
        self._owns_http_session = http_session is None

    def _get_http_session(self) -> aiohttp.ClientSession:
        if self._http_session is None or self._http_session.closed:
            self._http_session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.request_timeout_seconds))
            self._owns_http_session = True
        return self._http_session

    async def _close_http(self) -> None:
        if self._owns_http_session and self._http_session is not None and not self._http_session.closed:
            await self._http_session.close()
        self._http_session = None
