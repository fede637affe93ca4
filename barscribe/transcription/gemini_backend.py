"""Gemini multimodal provider: transcription by prompting an LLM with WAV audio."""

import asyncio
import base64
import logging
import time
from typing import List, Optional

import aiohttp
from pydantic import BaseModel, ValidationError

from .base import BufferTranscriptionProvider, HttpProviderMixin
from ..exceptions import TransportError

logger = logging.getLogger(__name__)

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
TRANSCRIBE_PROMPT = "Transcribe this audio verbatim. Output only the text."


class _Part(BaseModel):
    text: Optional[str] = None


class _Content(BaseModel):
    parts: List[_Part] = []


class _Candidate(BaseModel):
    content: Optional[_Content] = None


class GenerateContentResponse(BaseModel):
    """Subset of the generateContent response carrying the text."""
    candidates: List[_Candidate] = []

    @property
    def text(self) -> str:
        if not self.candidates or self.candidates[0].content is None:
            return ""
        return "".join(part.text or "" for part in self.candidates[0].content.parts)


class GeminiProvider(HttpProviderMixin, BufferTranscriptionProvider):
    """Sends base64 WAV plus an instruction prompt; the reply is the transcript."""

    name = "gemini"

    def __init__(self,
                 api_key: str,
                 model: str = "gemini-2.5-flash",
                 prompt: str = TRANSCRIBE_PROMPT,
                 temperature: float = 0.1,
                 api_base: str = GEMINI_API_BASE,
                 http_session: Optional[aiohttp.ClientSession] = None):
        if not api_key:
            raise ValueError("Gemini API key is required")
        self.api_key = api_key
        self.model = model
        self.prompt = prompt
        self.temperature = temperature
        self.url = f"{api_base}/models/{model}:generateContent"
        self._init_http(http_session)

    def build_request(self, wav_bytes: bytes) -> dict:
        """Request body carrying the audio inline with the prompt."""
        return {
            "contents": [{
                "role": "user",
                "parts": [
                    {"inlineData": {"mimeType": "audio/wav",
                                    "data": base64.b64encode(wav_bytes).decode("ascii")}},
                    {"text": self.prompt},
                ],
            }],
            "generationConfig": {"temperature": self.temperature},
        }

    async def transcribe_buffer(self, wav_bytes: bytes) -> str:
        start_time = time.time()
        headers = {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}

        try:
            async with self._get_http_session().post(
                    self.url, headers=headers, json=self.build_request(wav_bytes)) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise TransportError(self.name, f"HTTP {response.status} - {error_text}")
                body = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(self.name, f"request failed: {e}", e) from e

        try:
            text = GenerateContentResponse.model_validate_json(body).text.strip()
        except ValidationError as e:
            logger.warning(f"Gemini returned an unusable payload, treating as no text: {e}")
            return ""

        logger.debug(f"Gemini transcript ({time.time() - start_time:.3f}s): '{text}'")
        return text

    async def close(self) -> None:
        await self._close_http()
