"""Gemini Live provider: continuous PCM streaming over a websocket."""

import asyncio
import base64
import json
import logging
from typing import Callable, Optional

import aiohttp

from .base import StreamingTranscriptionProvider
from ..exceptions import TransportError
from ..models.transcription import TranscriptDelta

logger = logging.getLogger(__name__)

GEMINI_LIVE_URL = ("wss://generativelanguage.googleapis.com/ws/"
                   "google.ai.generativelanguage.v1beta.GenerativeService.BidiGenerateContent")


class GeminiLiveProvider(StreamingTranscriptionProvider):
    """Streams every block as base64 PCM16 and forwards input transcription deltas."""

    name = "gemini_live"

    def __init__(self,
                 api_key: str,
                 model: str = "gemini-2.0-flash-live-001",
                 sample_rate: int = 16000,
                 url: str = GEMINI_LIVE_URL,
                 setup_timeout: float = 10.0):
        if not api_key:
            raise ValueError("Gemini API key is required")
        self.api_key = api_key
        self.model = model
        self.sample_rate = sample_rate
        self.url = url
        self.setup_timeout = setup_timeout

        self._http_session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._receive_task: Optional[asyncio.Task] = None
        self._on_delta: Optional[Callable[[TranscriptDelta], None]] = None
        self._on_error: Optional[Callable[[Exception], None]] = None
        self._closing = False

    async def connect(self, on_delta, on_error) -> None:
        self._on_delta = on_delta
        self._on_error = on_error
        self._closing = False
        self._http_session = aiohttp.ClientSession()
        try:
            self._ws = await self._http_session.ws_connect(
                self.url, params={"key": self.api_key}, heartbeat=30.0)
            await self._ws.send_json({
                "setup": {
                    "model": f"models/{self.model}",
                    "generationConfig": {"responseModalities": ["TEXT"]},
                    "inputAudioTranscription": {},
                }
            })
            await asyncio.wait_for(self._await_setup_complete(), timeout=self.setup_timeout)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            await self.close()
            raise TransportError(self.name, f"could not open live session: {e}", e) from e
        except TransportError:
            await self.close()
            raise

        self._receive_task = asyncio.create_task(self._receive_loop(), name="gemini-live-receive")
        logger.info(f"Gemini Live session open (model={self.model})")

    async def _await_setup_complete(self) -> None:
        while True:
            message = await self._ws.receive()
            payload = self._decode(message)
            if payload is None:
                raise TransportError(self.name, f"connection ended during setup ({message.type.name})")
            if "setupComplete" in payload:
                return

    async def send_chunk(self, pcm16: bytes) -> None:
        if self._ws is None or self._ws.closed:
            raise TransportError(self.name, "live session is not open")
        try:
            await self._ws.send_json({
                "realtimeInput": {
                    "audio": {
                        "mimeType": f"audio/pcm;rate={self.sample_rate}",
                        "data": base64.b64encode(pcm16).decode("ascii"),
                    }
                }
            })
        except (aiohttp.ClientError, ConnectionResetError) as e:
            raise TransportError(self.name, f"send failed: {e}", e) from e

    async def _receive_loop(self) -> None:
        error: Optional[Exception] = None
        try:
            while True:
                message = await self._ws.receive()
                payload = self._decode(message)
                if payload is None:
                    if message.type == aiohttp.WSMsgType.ERROR:
                        error = TransportError(self.name, f"websocket error: {self._ws.exception()}")
                    break
                self._handle_payload(payload)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = TransportError(self.name, f"receive failed: {e}", e)

        if self._closing:
            return
        if error is None:
            error = TransportError(self.name, f"connection closed by server (code={self._ws.close_code})")
        logger.error(f"Gemini Live connection lost: {error}")
        if self._on_error:
            self._on_error(error)

    def _handle_payload(self, payload: dict) -> None:
        if "error" in payload:
            raise TransportError(self.name, f"server error: {payload['error']}")
        content = payload.get("serverContent") or {}
        transcription = content.get("inputTranscription") or {}
        text = transcription.get("text")
        if text and self._on_delta:
            self._on_delta(TranscriptDelta(text=text, is_final=bool(transcription.get("finished", False))))

    @staticmethod
    def _decode(message: aiohttp.WSMessage) -> Optional[dict]:
        """JSON payload of a data frame; None once the socket is closing or failed."""
        if message.type == aiohttp.WSMsgType.TEXT:
            return json.loads(message.data)
        if message.type == aiohttp.WSMsgType.BINARY:
            return json.loads(message.data.decode("utf-8"))
        return None

    async def close(self) -> None:
        self._closing = True
        if self._receive_task is not None:
            self._receive_task.cancel()
            try:
                await self._receive_task
            except asyncio.CancelledError:
                pass
            self._receive_task = None
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        self._ws = None
        if self._http_session is not None and not self._http_session.closed:
            await self._http_session.close()
        self._http_session = None
