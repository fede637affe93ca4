"""WAV (RIFF, mono, 16-bit PCM) encoding of float sample buffers."""

import io
import struct
import wave
from dataclasses import dataclass
from typing import Iterable, Sequence, Union

import numpy as np

from ..exceptions import InvalidParameterError
from ..models.audio import SampleBlock

WAV_HEADER_SIZE = 44
BYTES_PER_SAMPLE = 2

_HEADER_FORMAT = "<4sI4s4sIHHIIHH4sI"


@dataclass(frozen=True)
class WavHeader:
    """Fields of a canonical 44-byte WAV header."""
    riff_size: int
    audio_format: int
    channels: int
    sample_rate: int
    byte_rate: int
    block_align: int
    bits_per_sample: int
    data_size: int

    @property
    def sample_count(self) -> int:
        return self.data_size // self.block_align if self.block_align else 0


def float_to_pcm16(samples: Union[Sequence[float], np.ndarray]) -> bytes:
    """Quantize float samples to little-endian signed 16-bit PCM.

    Samples are clamped to [-1, 1]; negative values scale by 32768 and the rest
    by 32767, truncating toward zero.
    """
    clipped = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
    scaled = np.where(clipped < 0, clipped * 32768.0, clipped * 32767.0)
    return np.trunc(scaled).astype("<i2").tobytes()


def merge_blocks(blocks: Iterable[SampleBlock]) -> SampleBlock:
    """Concatenate sample blocks in order into one float32 array."""
    blocks = list(blocks)
    if not blocks:
        return np.zeros(0, dtype=np.float32)
    return np.concatenate([np.asarray(b, dtype=np.float32) for b in blocks])


def encode_wav(samples: Union[Sequence[float], np.ndarray], sample_rate: int) -> bytes:
    """Serialize mono float samples as a self-contained WAV file.

    Args:
        samples: Float samples, nominally in [-1, 1]
        sample_rate: Rate written to the header, in Hz

    Returns:
        44-byte header followed by the PCM data
    """
    if sample_rate <= 0:
        raise InvalidParameterError(f"Sample rate must be positive, got {sample_rate}")

    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(BYTES_PER_SAMPLE)
        wf.setframerate(sample_rate)
        wf.writeframes(float_to_pcm16(samples))
    return buffer.getvalue()


def decode_wav_header(data: bytes) -> WavHeader:
    """Parse the canonical header written by :func:`encode_wav`."""
    if len(data) < WAV_HEADER_SIZE:
        raise InvalidParameterError(f"WAV buffer too short: {len(data)} bytes")
    (riff, riff_size, wave_id, fmt_id, _fmt_size, audio_format, channels, sample_rate,
     byte_rate, block_align, bits, data_id, data_size) = struct.unpack(
        _HEADER_FORMAT, data[:WAV_HEADER_SIZE])
    if riff != b"RIFF" or wave_id != b"WAVE" or fmt_id != b"fmt " or data_id != b"data":
        raise InvalidParameterError("Not a canonical RIFF/WAVE buffer")
    return WavHeader(
        riff_size=riff_size,
        audio_format=audio_format,
        channels=channels,
        sample_rate=sample_rate,
        byte_rate=byte_rate,
        block_align=block_align,
        bits_per_sample=bits,
        data_size=data_size,
    )
