"""Pytest configuration and fixtures for barscribe tests."""

import asyncio
import logging
import tempfile
from pathlib import Path
from typing import List, Optional
from unittest.mock import Mock, patch

import numpy as np
import pytest

from barscribe.storage.backup_store import AudioBackupStore
from barscribe.transcription.base import BufferTranscriptionProvider, StreamingTranscriptionProvider
from barscribe.exceptions import TransportError
from barscribe.models.transcription import TranscriptDelta


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without I/O beyond temp dirs")
    config.addinivalue_line("markers", "integration: tests wiring several components together")
    config.addinivalue_line("markers", "slow: tests that take more than a second")
    config.addinivalue_line("markers", "hardware: tests that need a real microphone")


class FakeCapture:
    """Capture unit the test pushes blocks through by hand."""

    def __init__(self, on_block, loop, sample_rate: int = 16000, error: Optional[Exception] = None,
                 blocks=()):
        self.on_block = on_block
        self.loop = loop
        self.sample_rate: Optional[int] = None
        self._native_rate = sample_rate
        self._error = error
        self._blocks = list(blocks)
        self.started = False
        self.stopped = False

    def start(self) -> int:
        if self._error is not None:
            raise self._error
        self.sample_rate = self._native_rate
        self.started = True
        for block in self._blocks:
            self.push(block)
        return self.sample_rate

    def stop(self) -> None:
        self.stopped = True

    def push(self, block) -> None:
        """Deliver a block the way PortAudio would, via the loop."""
        self.loop.call_soon_threadsafe(self.on_block, np.asarray(block, dtype=np.float32))


class FakeCaptureFactory:
    """Builds fake capture units; ``blocks`` are delivered as soon as capture starts."""

    def __init__(self, sample_rate: int = 16000, error: Optional[Exception] = None, blocks=()):
        self.sample_rate = sample_rate
        self.error = error
        self.blocks = list(blocks)
        self.captures: List[FakeCapture] = []

    def __call__(self, on_block, loop) -> FakeCapture:
        capture = FakeCapture(on_block, loop, self.sample_rate, self.error, self.blocks)
        self.captures.append(capture)
        return capture

    @property
    def last(self) -> FakeCapture:
        return self.captures[-1]


class FakeStreamingProvider(StreamingTranscriptionProvider):
    name = "fake_stream"

    def __init__(self, connect_error: Optional[Exception] = None, send_error: Optional[Exception] = None):
        self.connect_error = connect_error
        self.send_error = send_error
        self.sent: List[bytes] = []
        self.closed = False
        self.on_delta = None
        self.on_error = None

    async def connect(self, on_delta, on_error) -> None:
        if self.connect_error is not None:
            raise self.connect_error
        self.on_delta = on_delta
        self.on_error = on_error

    async def send_chunk(self, pcm16: bytes) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(pcm16)

    def emit(self, text: str, is_final: bool = False) -> None:
        self.on_delta(TranscriptDelta(text=text, is_final=is_final))

    def fail(self, message: str = "socket closed") -> None:
        self.on_error(TransportError(self.name, message))

    async def close(self) -> None:
        self.closed = True


class FakeBufferProvider(BufferTranscriptionProvider):
    """Answers each window from a script; entries may be text, exceptions or (delay, text)."""

    name = "fake_buffer"

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.received: List[bytes] = []
        self.closed = False

    async def transcribe_buffer(self, wav_bytes: bytes) -> str:
        self.received.append(wav_bytes)
        response = self.responses.pop(0) if self.responses else ""
        if isinstance(response, tuple):
            delay, response = response
            await asyncio.sleep(delay)
        if isinstance(response, Exception):
            raise response
        return response

    async def close(self) -> None:
        self.closed = True


class RecordingCallbacks:
    """Collects everything a session reports to the UI."""

    def __init__(self):
        self.transcripts = []
        self.errors = []
        self.statuses = []

    def on_transcript(self, text, is_final):
        self.transcripts.append((text, is_final))

    def on_error(self, error):
        self.errors.append(error)

    def on_status_change(self, status):
        self.statuses.append(status)

    def as_callbacks(self):
        from barscribe.models.session import LiveTranscriptionCallbacks
        return LiveTranscriptionCallbacks(self.on_transcript, self.on_error, self.on_status_change)


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def backup_store(temp_data_dir):
    return AudioBackupStore(temp_data_dir)


@pytest.fixture
def capture_factory():
    return FakeCaptureFactory()


@pytest.fixture
def recording_callbacks():
    return RecordingCallbacks()


@pytest.fixture
def sine_block():
    """Generate sine wave blocks for testing."""
    def generate(length=4096, sample_rate=16000, freq=440.0, amplitude=0.5):
        t = np.arange(length) / sample_rate
        return (amplitude * np.sin(2 * np.pi * freq * t)).astype(np.float32)
    return generate


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        mock_stream.start_stream.return_value = None
        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None

        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None
        mock_pyaudio_instance.get_default_input_device_info.return_value = {
            'index': 0, 'name': 'Mock Microphone', 'defaultSampleRate': 48000.0}
        mock_pyaudio_instance.is_format_supported.return_value = True

        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }


@pytest.fixture
def config_file(temp_data_dir):
    """Write a config file and return its path."""
    def write(text: str) -> str:
        path = Path(temp_data_dir) / "barscribe.yaml"
        path.write_text(text, encoding="utf-8")
        return str(path)
    return write


@pytest.fixture
def streaming_provider():
    """Factory for scripted streaming providers."""
    return FakeStreamingProvider


@pytest.fixture
def buffer_provider():
    """Factory for scripted request/response providers."""
    return FakeBufferProvider


@pytest.fixture
def make_capture_factory():
    return FakeCaptureFactory
