"""Microphone capture that pushes fixed-size float32 blocks onto an event loop."""

import asyncio
import errno
import logging
from datetime import datetime
from typing import Callable, Optional

import numpy as np
import pyaudio

from ..exceptions import DeviceError, MicrophonePermissionError
from ..models.audio import CaptureStats, SampleBlock

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_SIZE = 4096


class PcmCapture:
    """Mono microphone capture in PortAudio callback mode.

    Blocks are produced on PortAudio's own thread and handed to ``loop`` with
    ``call_soon_threadsafe``, so ``on_block`` always runs on the event loop.
    """

    def __init__(
        self,
        on_block: Callable[[SampleBlock], None],
        loop: asyncio.AbstractEventLoop,
        preferred_sample_rate: int = 16000,
        block_size: int = DEFAULT_BLOCK_SIZE,
        echo_cancellation: bool = True,
        noise_suppression: bool = True,
    ):
        """Initialize microphone capture.

        Args:
            on_block: Called on ``loop`` with every captured block
            loop: Event loop that owns the session consuming the blocks
            preferred_sample_rate: Rate to request; the device rate is used if unsupported
            block_size: Samples per block (frames per PortAudio buffer)
            echo_cancellation: Request echo cancellation from the host audio stack
            noise_suppression: Request noise suppression from the host audio stack
        """
        self.on_block = on_block
        self.loop = loop
        self.preferred_sample_rate = preferred_sample_rate
        self.block_size = block_size
        self.echo_cancellation = echo_cancellation
        self.noise_suppression = noise_suppression

        self.sample_rate: Optional[int] = None
        self.is_capturing = False
        self.start_time: Optional[datetime] = None
        self.total_blocks = 0

        self.pyaudio_instance: Optional[pyaudio.PyAudio] = None
        self.stream = None

    def start(self) -> int:
        """Open the default microphone and start pushing blocks.

        Returns:
            The sample rate the device was actually opened at

        Raises:
            MicrophonePermissionError: Access to the microphone was denied
            DeviceError: No input device, or the stream could not be opened
        """
        if self.is_capturing:
            logger.warning("Capture already running")
            return self.sample_rate

        try:
            self.pyaudio_instance = pyaudio.PyAudio()
            device = self._default_input_device()
            self.sample_rate = self._choose_sample_rate(device)
            logger.info(f"Opening microphone '{device.get('name')}' at {self.sample_rate}Hz, "
                        f"{self.block_size} samples/block "
                        f"(echo_cancellation={self.echo_cancellation}, "
                        f"noise_suppression={self.noise_suppression})")
            self.stream = self.pyaudio_instance.open(
                format=pyaudio.paFloat32,
                channels=1,
                rate=self.sample_rate,
                input=True,
                input_device_index=device.get("index"),
                frames_per_buffer=self.block_size,
                stream_callback=self._on_audio,
            )
            self.stream.start_stream()
        except OSError as e:
            self._release()
            raise self._translate_error(e) from e
        except Exception:
            self._release()
            raise

        self.start_time = datetime.now()
        self.total_blocks = 0
        self.is_capturing = True
        return self.sample_rate

    def stop(self) -> None:
        """Stop the stream and release the device. Safe to call repeatedly."""
        if not self.is_capturing and self.pyaudio_instance is None:
            return
        self.is_capturing = False
        self._release()
        logger.info(f"Capture stopped. Total blocks: {self.total_blocks}")

    def _default_input_device(self) -> dict:
        try:
            return self.pyaudio_instance.get_default_input_device_info()
        except OSError as e:
            raise DeviceError(f"No default input device available: {e}") from e

    def _choose_sample_rate(self, device: dict) -> int:
        try:
            self.pyaudio_instance.is_format_supported(
                self.preferred_sample_rate,
                input_device=device.get("index"),
                input_channels=1,
                input_format=pyaudio.paFloat32,
            )
            return self.preferred_sample_rate
        except ValueError:
            native_rate = int(device.get("defaultSampleRate", self.preferred_sample_rate))
            logger.info(f"{self.preferred_sample_rate}Hz not supported by device, using native {native_rate}Hz")
            return native_rate

    def _on_audio(self, in_data, frame_count, time_info, status):
        """PortAudio callback: runs on the audio thread and must never raise."""
        try:
            if status:
                logger.debug(f"PortAudio status flags: {status}")
            block = np.frombuffer(in_data, dtype=np.float32).copy()
            self.total_blocks += 1
            self.loop.call_soon_threadsafe(self.on_block, block)
        except RuntimeError:
            # Event loop already closed; the stream is about to be torn down
            logger.debug("Dropping audio block, event loop is closed")
        except Exception as e:
            logger.error(f"Error handing off audio block: {e}", exc_info=True)
        return (None, pyaudio.paContinue)

    def _release(self) -> None:
        if self.stream is not None:
            try:
                self.stream.stop_stream()
                self.stream.close()
            except OSError as e:
                logger.warning(f"Error closing audio stream: {e}")
            self.stream = None
        if self.pyaudio_instance is not None:
            self.pyaudio_instance.terminate()
            self.pyaudio_instance = None

    @staticmethod
    def _translate_error(error: OSError) -> Exception:
        if error.errno in (errno.EACCES, errno.EPERM) or "permission" in str(error).lower():
            return MicrophonePermissionError(f"Microphone access denied: {error}")
        return DeviceError(f"Could not open microphone: {error}")

    def get_capture_stats(self) -> CaptureStats:
        """Get current capture statistics."""
        duration = 0.0
        if self.start_time:
            duration = (datetime.now() - self.start_time).total_seconds()

        return CaptureStats(
            is_capturing=self.is_capturing,
            duration_seconds=duration,
            sample_rate=self.sample_rate or self.preferred_sample_rate,
            block_size=self.block_size,
            total_blocks=self.total_blocks,
        )
