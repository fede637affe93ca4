"""Sarvam speech-to-text REST provider (windowed batch delivery)."""

import asyncio
import logging
import time
from typing import Optional

import aiohttp
from pydantic import BaseModel, ValidationError

from .base import BufferTranscriptionProvider, HttpProviderMixin
from ..exceptions import TransportError

logger = logging.getLogger(__name__)

SARVAM_ENDPOINT = "https://api.sarvam.ai/speech-to-text"


class SarvamResponse(BaseModel):
    """Fields of the Sarvam response we rely on."""
    transcript: Optional[str] = None


class SarvamProvider(HttpProviderMixin, BufferTranscriptionProvider):
    """Uploads each window as a multipart WAV file and reads back ``transcript``."""

    name = "sarvam"

    def __init__(self,
                 api_key: str,
                 model: str = "saaras:v3",
                 endpoint: str = SARVAM_ENDPOINT,
                 http_session: Optional[aiohttp.ClientSession] = None):
        """Initialize Sarvam provider.

        Args:
            api_key: Sarvam API subscription key
            model: Speech model identifier sent with every upload
            endpoint: Speech-to-text URL
            http_session: Shared aiohttp session; one is created on demand if omitted
        """
        if not api_key:
            raise ValueError("Sarvam API key is required")
        self.api_key = api_key
        self.model = model
        self.endpoint = endpoint
        self._init_http(http_session)

    async def transcribe_buffer(self, wav_bytes: bytes) -> str:
        start_time = time.time()
        form = aiohttp.FormData()
        form.add_field("file", wav_bytes, filename="audio.wav", content_type="audio/wav")
        form.add_field("model", self.model)
        headers = {"api-subscription-key": self.api_key}

        try:
            async with self._get_http_session().post(self.endpoint, data=form, headers=headers) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise TransportError(self.name, f"HTTP {response.status} - {error_text}")
                body = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(self.name, f"request failed: {e}", e) from e

        try:
            parsed = SarvamResponse.model_validate_json(body)
        except ValidationError as e:
            logger.warning(f"Sarvam returned an unusable payload, treating as no text: {e}")
            return ""

        text = (parsed.transcript or "").strip()
        logger.debug(f"Sarvam transcript ({time.time() - start_time:.3f}s): '{text}'")
        return text

    async def close(self) -> None:
        await self._close_http()
