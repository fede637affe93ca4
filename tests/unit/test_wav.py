"""Unit tests for WAV encoding."""

import io
import wave

import numpy as np
import pytest
from scipy.io import wavfile

from barscribe.audio.wav import (
    WAV_HEADER_SIZE,
    decode_wav_header,
    encode_wav,
    float_to_pcm16,
    merge_blocks,
)
from barscribe.exceptions import InvalidParameterError


@pytest.mark.unit
class TestEncodeWav:
    """Test cases for encode_wav()."""

    def test_empty_samples_give_bare_header(self):
        """No samples: 44 bytes, data length 0, RIFF length 36."""
        data = encode_wav([], 16000)
        header = decode_wav_header(data)

        assert len(data) == WAV_HEADER_SIZE
        assert header.data_size == 0
        assert header.riff_size == 36

    def test_header_fields(self, sine_block):
        """Header describes mono 16-bit PCM at the given rate."""
        data = encode_wav(sine_block(1000), 16000)
        header = decode_wav_header(data)

        assert data[:4] == b"RIFF"
        assert data[8:12] == b"WAVE"
        assert header.audio_format == 1
        assert header.channels == 1
        assert header.sample_rate == 16000
        assert header.byte_rate == 32000
        assert header.block_align == 2
        assert header.bits_per_sample == 16
        assert header.data_size == 2000
        assert header.riff_size == 36 + 2000
        assert header.sample_count == 1000
        assert len(data) == WAV_HEADER_SIZE + 2000

    def test_round_trip_through_conformant_decoder(self, sine_block):
        """scipy reads back rate, count and amplitudes within one LSB."""
        samples = sine_block(4096, 16000, amplitude=0.9)
        rate, decoded = wavfile.read(io.BytesIO(encode_wav(samples, 16000)))

        assert rate == 16000
        assert decoded.dtype == np.int16
        assert len(decoded) == len(samples)
        expected = np.where(samples < 0, samples * 32768.0, samples * 32767.0)
        assert np.max(np.abs(decoded.astype(np.float64) - expected)) <= 1.0

    def test_standard_library_reader_accepts_output(self):
        """The wave module parses the buffer too."""
        data = encode_wav(np.linspace(-1, 1, 500), 44100)

        with wave.open(io.BytesIO(data), "rb") as wf:
            assert wf.getnchannels() == 1
            assert wf.getsampwidth() == 2
            assert wf.getframerate() == 44100
            assert wf.getnframes() == 500

    def test_non_positive_rate_rejected(self):
        """Sample rate must be positive."""
        with pytest.raises(InvalidParameterError):
            encode_wav([0.0], 0)

    def test_decode_rejects_short_or_foreign_buffers(self):
        """Only canonical RIFF/WAVE headers decode."""
        with pytest.raises(InvalidParameterError):
            decode_wav_header(b"RIFF")
        with pytest.raises(InvalidParameterError):
            decode_wav_header(b"X" * WAV_HEADER_SIZE)


@pytest.mark.unit
class TestPcmQuantization:
    """Test cases for float_to_pcm16()."""

    def test_full_scale_values(self):
        """-1 maps to -32768 and +1 to 32767."""
        pcm = np.frombuffer(float_to_pcm16([-1.0, 0.0, 1.0]), dtype="<i2")

        assert pcm.tolist() == [-32768, 0, 32767]

    def test_out_of_range_values_are_clamped(self):
        """Values beyond full scale saturate."""
        pcm = np.frombuffer(float_to_pcm16([-3.0, 2.5]), dtype="<i2")

        assert pcm.tolist() == [-32768, 32767]

    def test_truncates_toward_zero(self):
        """Fractional sample values are truncated, not rounded."""
        pcm = np.frombuffer(float_to_pcm16([0.5, -0.5]), dtype="<i2")

        assert pcm.tolist() == [16383, -16384]

    def test_output_is_little_endian_two_bytes_per_sample(self):
        """Byte layout is little-endian int16."""
        assert float_to_pcm16([1.0]) == b"\xff\x7f"
        assert len(float_to_pcm16(np.zeros(10))) == 20


@pytest.mark.unit
class TestMergeBlocks:
    """Test cases for merge_blocks()."""

    def test_preserves_order(self):
        """Blocks are concatenated in the order given."""
        merged = merge_blocks([np.array([1, 2], dtype=np.float32), np.array([3], dtype=np.float32)])

        assert merged.tolist() == [1.0, 2.0, 3.0]
        assert merged.dtype == np.float32

    def test_no_blocks_gives_empty_array(self):
        """Merging nothing yields zero samples."""
        assert len(merge_blocks([])) == 0
