"""Streaming transcription session: capture -> resample -> chunk -> transmit -> transcript.

All session state lives on one asyncio event loop. The microphone thread only
marshals blocks onto that loop, so appending a block, swapping a window buffer
and applying a transcript never run concurrently and need no locking.
"""

import asyncio
import functools
import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Set, Union

from ..audio.capture import DEFAULT_BLOCK_SIZE, PcmCapture
from ..audio.resample import resample
from ..audio.wav import encode_wav, float_to_pcm16, merge_blocks
from ..exceptions import InvalidParameterError, ProviderConfigurationError, SessionAlreadyActiveError
from ..models.audio import SampleBlock
from ..models.session import (
    AudioSession,
    LiveTranscriptionCallbacks,
    SessionResult,
    SessionState,
    SessionStatus,
)
from ..models.transcription import ChunkOutcome, DeliveryMode, TranscriptDelta
from ..storage.backup_store import AudioBackupStore
from ..transcription.base import (
    AbstractTranscriptionProvider,
    BufferTranscriptionProvider,
    StreamingTranscriptionProvider,
)
from ..transcription.publisher import OutcomePublisher
from ..transcription.registry import create_provider

logger = logging.getLogger(__name__)

TARGET_SAMPLE_RATE = 16000
WINDOW_SECONDS = 3.0


class CaptureUnit(Protocol):
    """What a session needs from a microphone capture."""
    sample_rate: Optional[int]

    def start(self) -> int: ...

    def stop(self) -> None: ...


CaptureFactory = Callable[[Callable[[SampleBlock], None], asyncio.AbstractEventLoop], CaptureUnit]


class TranscriptionSession:
    """One recording period, from "start recording" to the terminal backup write."""

    def __init__(self,
                 provider: AbstractTranscriptionProvider,
                 backup_store: Optional[AudioBackupStore],
                 session_id: str,
                 parameter_id: str,
                 callbacks: Optional[LiveTranscriptionCallbacks] = None,
                 capture_factory: Optional[CaptureFactory] = None,
                 target_sample_rate: int = TARGET_SAMPLE_RATE,
                 window_seconds: float = WINDOW_SECONDS,
                 outcome_publisher: Optional[OutcomePublisher] = None):
        """Initialize a session; nothing is acquired until :meth:`start`.

        Args:
            provider: Transcription provider; the session closes it on stop
            backup_store: Where the full recording is persisted on stop
            session_id: Interview identifier, stable across questions
            parameter_id: Question this recording answers
            callbacks: UI callbacks for transcript, errors and status
            capture_factory: Builds the capture unit from (on_block, loop)
            target_sample_rate: Rate the provider and the backup expect
            window_seconds: Window length for request/response providers
            outcome_publisher: Side channel for per-chunk outcomes
        """
        if not isinstance(provider, (StreamingTranscriptionProvider, BufferTranscriptionProvider)):
            raise TypeError(f"Provider {provider!r} exposes no transcription capability")

        self.provider = provider
        self.backup_store = backup_store
        self.callbacks = callbacks or LiveTranscriptionCallbacks()
        self.capture_factory = capture_factory or functools.partial(
            PcmCapture, preferred_sample_rate=target_sample_rate, block_size=DEFAULT_BLOCK_SIZE)
        self.window_seconds = window_seconds
        self.outcome_publisher = outcome_publisher or OutcomePublisher()

        self.audio = AudioSession(session_id=session_id, parameter_id=parameter_id,
                                  target_sample_rate=target_sample_rate)
        self.state = SessionState.IDLE

        self._capture: Optional[CaptureUnit] = None
        self._lifecycle_lock = asyncio.Lock()
        self._transport_failed = False

        # Continuous delivery
        self._send_queue: "asyncio.Queue[SampleBlock]" = asyncio.Queue()
        self._sender_task: Optional[asyncio.Task] = None
        self._chunk_sequence = 0

        # Windowed delivery
        self._window_blocks: List[SampleBlock] = []
        self._ticker_task: Optional[asyncio.Task] = None
        self._window_sequence = 0
        self._last_window_task: Optional[asyncio.Task] = None
        self._pending_windows: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def session_id(self) -> str:
        return self.audio.session_id

    @property
    def parameter_id(self) -> str:
        return self.audio.parameter_id

    @property
    def delivery_mode(self) -> DeliveryMode:
        return self.provider.delivery_mode

    @property
    def transcript(self) -> str:
        return self.audio.accumulated_transcript

    @property
    def is_active(self) -> bool:
        return self.state in (SessionState.CONNECTING, SessionState.ACTIVE)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def start(self) -> None:
        """Acquire the microphone, connect the provider and begin delivering audio.

        Raises:
            CaptureError: Microphone denied or unavailable
            TransportError: Streaming provider could not connect
        """
        async with self._lifecycle_lock:
            if self.state is not SessionState.IDLE:
                raise RuntimeError(f"Session {self.session_id} already {self.state.value}")

            loop = asyncio.get_running_loop()
            self.state = SessionState.CONNECTING
            self.audio.started_at = datetime.now()
            self.audio.is_active = True
            self._notify(self.callbacks.on_status_change, SessionStatus.CONNECTING)
            logger.info(f"Starting session {self.session_id}, param {self.parameter_id} "
                        f"({self.delivery_mode.value} delivery via {self.provider.name})")

            try:
                self._capture = self.capture_factory(self._on_block, loop)
                self.audio.sample_rate = await loop.run_in_executor(None, self._capture.start)
                if isinstance(self.provider, StreamingTranscriptionProvider):
                    await self.provider.connect(self._on_delta, self._on_transport_error)
            except Exception as e:
                logger.error(f"Failed to start session {self.session_id}: {e}")
                await self._abort_start()
                self._notify(self.callbacks.on_status_change, SessionStatus.DISCONNECTED)
                self._notify(self.callbacks.on_error, e)
                raise

            self.state = SessionState.ACTIVE
            if self.delivery_mode is DeliveryMode.CONTINUOUS:
                self._sender_task = asyncio.create_task(self._send_loop(), name=f"sender-{self.session_id}")
            else:
                self._ticker_task = asyncio.create_task(self._window_ticker(), name=f"windows-{self.session_id}")

            logger.info(f"Session {self.session_id} active: capturing at {self.audio.sample_rate}Hz, "
                        f"sending at {self.audio.target_sample_rate}Hz")
            self._notify(self.callbacks.on_status_change, SessionStatus.CONNECTED)

    async def stop(self) -> SessionResult:
        """Stop capture and transcription, persist the recording and return the result.

        Safe to call from any state; a session that is not running yields an
        empty transcript and an empty audio buffer.
        """
        async with self._lifecycle_lock:
            if self.state is not SessionState.ACTIVE:
                if self.state is SessionState.IDLE:
                    self.state = SessionState.CLOSED
                return SessionResult(transcript="", audio_blob=b"")

            self.state = SessionState.STOPPING
            self.audio.is_active = False
            logger.info(f"Stopping session {self.session_id}")

            await self._cancel_task(self._ticker_task)
            await self._cancel_task(self._sender_task)
            self._ticker_task = self._sender_task = None

            await self._close_provider()
            await self._release_capture()

            audio_blob = self._encode_recording()
            transcript = self.audio.accumulated_transcript
            if self.backup_store is not None:
                await self.backup_store.save(audio_blob, self.session_id, self.parameter_id)

            self.audio.clear()
            self._window_blocks = []
            self.state = SessionState.CLOSED
            logger.info(f"Session {self.session_id} closed: {len(transcript)} chars, "
                        f"{len(audio_blob)} bytes of audio")
            self._notify(self.callbacks.on_status_change, SessionStatus.DISCONNECTED)
            return SessionResult(transcript=transcript, audio_blob=audio_blob)

    async def drain(self) -> None:
        """Wait for every in-flight window upload to finish and be applied."""
        while self._pending_windows:
            await asyncio.wait(set(self._pending_windows))

    async def _abort_start(self) -> None:
        self.audio.is_active = False
        await self._close_provider()
        await self._release_capture()
        self.audio.clear()
        self.state = SessionState.CLOSED

    async def _close_provider(self) -> None:
        try:
            await self.provider.close()
        except Exception as e:
            logger.warning(f"Error closing provider {self.provider.name}: {e}")

    async def _release_capture(self) -> None:
        if self._capture is None:
            return
        try:
            await asyncio.get_running_loop().run_in_executor(None, self._capture.stop)
        except Exception as e:
            logger.error(f"Error releasing microphone: {e}", exc_info=True)
        self._capture = None

    @staticmethod
    async def _cancel_task(task: Optional[asyncio.Task]) -> None:
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    def _encode_recording(self) -> bytes:
        """Full recording as one WAV at the target rate."""
        target = self.audio.target_sample_rate
        native = self.audio.sample_rate or target
        blocks = [resample(block, native, target) for block in self.audio.raw_chunks if len(block)]
        return encode_wav(merge_blocks(blocks), target)

    # ------------------------------------------------------------------
    # Capture path (runs on the event loop)
    # ------------------------------------------------------------------
    def _on_block(self, block: SampleBlock) -> None:
        if not self.audio.is_active:
            return
        if self.audio.sample_rate is None and self._capture is not None:
            self.audio.sample_rate = self._capture.sample_rate

        self.audio.raw_chunks.append(block)
        try:
            resampled = resample(block, self.audio.sample_rate or self.audio.target_sample_rate,
                                 self.audio.target_sample_rate)
        except InvalidParameterError as e:
            logger.debug(f"Skipping block: {e}")
            return

        if self.delivery_mode is DeliveryMode.CONTINUOUS:
            if not self._transport_failed:
                self._send_queue.put_nowait(resampled)
        else:
            self._window_blocks.append(resampled)

    # ------------------------------------------------------------------
    # Continuous delivery
    # ------------------------------------------------------------------
    async def _send_loop(self) -> None:
        """Single consumer, so chunks leave in capture order."""
        while True:
            block = await self._send_queue.get()
            if not self.audio.is_active or self._transport_failed:
                continue
            self._chunk_sequence += 1
            start_time = time.monotonic()
            try:
                await self.provider.send_chunk(float_to_pcm16(block))
                outcome = ChunkOutcome(self.session_id, DeliveryMode.CONTINUOUS, self._chunk_sequence, ok=True,
                                       elapsed_seconds=time.monotonic() - start_time)
            except Exception as e:
                logger.warning(f"Chunk #{self._chunk_sequence} send failed, continuing: {e}")
                outcome = ChunkOutcome(self.session_id, DeliveryMode.CONTINUOUS, self._chunk_sequence, ok=False,
                                       error=str(e), elapsed_seconds=time.monotonic() - start_time)
            self.outcome_publisher.publish(outcome)

    def _on_delta(self, delta: TranscriptDelta) -> None:
        if not self.audio.is_active:
            logger.debug(f"Discarding late delta for closed session {self.session_id}")
            return
        if not delta.text:
            return
        self.audio.accumulated_transcript += delta.text
        self._notify(self.callbacks.on_transcript, delta.text, delta.is_final)

    def _on_transport_error(self, error: Exception) -> None:
        if not self.is_active:
            return
        self._transport_failed = True
        logger.error(f"Transport failure in session {self.session_id}, capture continues for backup: {error}")
        self._notify(self.callbacks.on_status_change, SessionStatus.DISCONNECTED)
        self._notify(self.callbacks.on_error, error)

    # ------------------------------------------------------------------
    # Windowed delivery
    # ------------------------------------------------------------------
    async def _window_ticker(self) -> None:
        while True:
            await asyncio.sleep(self.window_seconds)
            self.flush_window()

    def flush_window(self) -> Optional[asyncio.Task]:
        """Close the current window and upload it in the background.

        Returns:
            The upload task, or None if the window was empty
        """
        if self.state is not SessionState.ACTIVE or not self._window_blocks:
            return None

        blocks, self._window_blocks = self._window_blocks, []
        wav_bytes = encode_wav(merge_blocks(blocks), self.audio.target_sample_rate)
        self._window_sequence += 1

        task = asyncio.create_task(
            self._process_window(self._window_sequence, wav_bytes, self._last_window_task),
            name=f"window-{self.session_id}-{self._window_sequence}")
        self._last_window_task = task
        self._pending_windows.add(task)
        task.add_done_callback(self._pending_windows.discard)
        return task

    async def _process_window(self, sequence: int, wav_bytes: bytes,
                              previous: Optional[asyncio.Task]) -> None:
        start_time = time.monotonic()
        text, error = "", None
        try:
            text = await self.provider.transcribe_buffer(wav_bytes)
        except Exception as e:
            error = str(e)
            logger.error(f"Window #{sequence} of session {self.session_id} failed, dropping its text: {e}")

        # Apply results in window order even when uploads finish out of order
        if previous is not None and not previous.done():
            await asyncio.wait({previous})

        discarded = not self.audio.is_active
        if error is None and not discarded:
            self._append_window_text(text)
        self.outcome_publisher.publish(ChunkOutcome(
            self.session_id, DeliveryMode.WINDOWED, sequence, ok=error is None, text=text or "",
            error=error, elapsed_seconds=time.monotonic() - start_time, discarded=discarded))

    def _append_window_text(self, text: Optional[str]) -> None:
        text = (text or "").strip()
        if not text:
            return
        separator = " " if self.audio.accumulated_transcript else ""
        self.audio.accumulated_transcript += separator + text
        self._notify(self.callbacks.on_transcript, text + " ", True)

    # ------------------------------------------------------------------
    @staticmethod
    def _notify(callback: Callable, *args) -> None:
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"Error in session callback {getattr(callback, '__name__', callback)}: {e}",
                         exc_info=True)


class LiveTranscriptionService:
    """Owns the single live session of the process.

    ``start`` returns the session as a handle; ``stop`` and ``is_active``
    accept it. Starting while a session is live either stops that session
    first (default) or fails with ``SessionAlreadyActiveError``.
    """

    def __init__(self,
                 backup_store: Optional[AudioBackupStore],
                 capture_factory: Optional[CaptureFactory] = None,
                 target_sample_rate: int = TARGET_SAMPLE_RATE,
                 block_size: int = DEFAULT_BLOCK_SIZE,
                 window_seconds: float = WINDOW_SECONDS,
                 echo_cancellation: bool = True,
                 noise_suppression: bool = True,
                 outcome_publisher: Optional[OutcomePublisher] = None):
        self.backup_store = backup_store
        self.capture_factory = capture_factory or functools.partial(
            PcmCapture,
            preferred_sample_rate=target_sample_rate,
            block_size=block_size,
            echo_cancellation=echo_cancellation,
            noise_suppression=noise_suppression,
        )
        self.target_sample_rate = target_sample_rate
        self.window_seconds = window_seconds
        self.outcome_publisher = outcome_publisher or OutcomePublisher()

        self._current: Optional[TranscriptionSession] = None
        self._lock: Optional[asyncio.Lock] = None

    @property
    def current_session(self) -> Optional[TranscriptionSession]:
        return self._current

    def _get_lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def start(self,
                    provider_choice: Union[str, AbstractTranscriptionProvider],
                    credentials: Optional[Mapping[str, Any]] = None,
                    callbacks: Optional[LiveTranscriptionCallbacks] = None,
                    *,
                    session_id: str,
                    parameter_id: str,
                    replace_active: bool = True,
                    provider_options: Optional[Dict[str, Any]] = None) -> TranscriptionSession:
        """Start recording an answer.

        Args:
            provider_choice: Registered provider name or a provider instance
            credentials: Credentials for a named provider
            callbacks: UI callbacks
            session_id: Interview identifier
            parameter_id: Question identifier
            replace_active: Stop a live session first instead of failing
            provider_options: Extra options for a named provider

        Returns:
            The session handle

        Raises:
            ProviderConfigurationError: Provider unusable for audio, before any capture
            SessionAlreadyActiveError: A session is live and ``replace_active`` is False
            CaptureError: Microphone denied or unavailable
            TransportError: Streaming provider could not connect
        """
        async with self._get_lock():
            current = self._current
            if current is not None and current.is_active and not replace_active:
                raise SessionAlreadyActiveError(current.session_id)

            provider = self._resolve_provider(provider_choice, credentials, provider_options)

            if current is not None and current.is_active:
                logger.info(f"Session {current.session_id} (param {current.parameter_id}) still active, "
                            f"stopping it before starting param {parameter_id}")
                await current.stop()
            self._current = None

            session = TranscriptionSession(
                provider=provider,
                backup_store=self.backup_store,
                session_id=session_id,
                parameter_id=parameter_id,
                callbacks=callbacks,
                capture_factory=self.capture_factory,
                target_sample_rate=self.target_sample_rate,
                window_seconds=self.window_seconds,
                outcome_publisher=self.outcome_publisher,
            )
            await session.start()
            self._current = session
            return session

    async def stop(self, handle: Optional[TranscriptionSession] = None) -> SessionResult:
        """Stop the live session (or ``handle``, if it is the live one)."""
        async with self._get_lock():
            session = self._current
            if session is None or (handle is not None and handle is not session):
                return SessionResult(transcript="", audio_blob=b"")
            try:
                return await session.stop()
            finally:
                self._current = None

    def is_active(self, handle: Optional[TranscriptionSession] = None) -> bool:
        session = self._current
        if session is None or (handle is not None and handle is not session):
            return False
        return session.is_active

    def _resolve_provider(self, provider_choice, credentials, provider_options) -> AbstractTranscriptionProvider:
        if isinstance(provider_choice, AbstractTranscriptionProvider):
            if not provider_choice.supports_audio_input:
                raise ProviderConfigurationError(f"Provider '{provider_choice.name}' does not accept audio input")
            return provider_choice
        options = dict(provider_options or {})
        sample_rate = options.pop("sample_rate", self.target_sample_rate)
        return create_provider(provider_choice, credentials or {}, sample_rate=sample_rate, **options)
