"""Google Cloud Speech-to-Text provider (windowed batch delivery)."""

import asyncio
import functools
import logging
import time
from typing import Optional

from google.api_core import exceptions as gax_exceptions
from google.cloud import speech
from google.oauth2 import service_account

from .base import BufferTranscriptionProvider
from ..exceptions import TransportError

logger = logging.getLogger(__name__)


class GoogleSpeechProvider(BufferTranscriptionProvider):
    """Synchronous ``recognize`` on each window, run off the event loop."""

    name = "google_speech"

    def __init__(self,
                 credentials_path: Optional[str] = None,
                 sample_rate: int = 16000,
                 language: str = "en-US",
                 enable_automatic_punctuation: bool = True,
                 model: str = "latest_short",
                 request_timeout: float = 10.0,
                 client: Optional[speech.SpeechClient] = None):
        """Initialize Google Speech provider.

        Args:
            credentials_path: Path to Google Cloud service account JSON file
            sample_rate: Rate of the uploaded WAV windows
            language: Language code (e.g., 'en-US', 'hi-IN')
            enable_automatic_punctuation: Enable automatic punctuation
            model: Recognition model name
            request_timeout: Per-request deadline in seconds
            client: Pre-built client; skips credential loading
        """
        if not credentials_path and client is None:
            raise ValueError("Google credentials path is required - cannot initialize without credentials")
        self.credentials_path = credentials_path
        self.language = language
        self.request_timeout = request_timeout
        self.client = client
        self.project_id = None
        self.config = speech.RecognitionConfig(
            encoding=speech.RecognitionConfig.AudioEncoding.LINEAR16,
            sample_rate_hertz=sample_rate,
            audio_channel_count=1,
            language_code=self.language,
            enable_automatic_punctuation=enable_automatic_punctuation,
            model=model,
        )

    def initialize(self) -> None:
        """Load service account credentials and build the client."""
        if self.client is not None:
            return
        logger.info(f"Loading Google credentials from: {self.credentials_path}")
        credentials = service_account.Credentials.from_service_account_file(self.credentials_path)
        self.client = speech.SpeechClient(credentials=credentials)
        self.project_id = credentials.project_id
        logger.info(f"Using Google Cloud project: {self.project_id}")

    async def transcribe_buffer(self, wav_bytes: bytes) -> str:
        if self.client is None:
            self.initialize()
        start_time = time.time()
        audio = speech.RecognitionAudio(content=wav_bytes)
        recognize = functools.partial(
            self.client.recognize, config=self.config, audio=audio, timeout=self.request_timeout)

        try:
            response = await asyncio.get_running_loop().run_in_executor(None, recognize)
        except gax_exceptions.DeadlineExceeded as e:
            raise TransportError(self.name, "recognize deadline exceeded", e) from e
        except gax_exceptions.ServiceUnavailable as e:
            raise TransportError(self.name, "service unavailable", e) from e
        except gax_exceptions.GoogleAPICallError as e:
            raise TransportError(self.name, f"API error: {e}", e) from e

        processing_time = time.time() - start_time
        if not response.results:
            logger.debug(f"--- NO SPEECH DETECTED --- ({processing_time:.3f}s)")
            return ""

        pieces = [result.alternatives[0].transcript.strip()
                  for result in response.results if result.alternatives]
        text = " ".join(p for p in pieces if p)
        logger.debug(f"Google transcript ({processing_time:.3f}s): '{text}'")
        return text
