"""Unit tests for the linear-interpolation resampler."""

import math

import numpy as np
import pytest

from barscribe.audio.resample import resample, resampled_length
from barscribe.exceptions import InvalidParameterError


@pytest.mark.unit
class TestResample:
    """Test cases for resample()."""

    @pytest.mark.parametrize("rate", [8000, 16000, 44100, 48000])
    def test_equal_rates_return_identical_block(self, rate, sine_block):
        """Resampling to the same rate is the identity."""
        block = sine_block(1000, rate)
        result = resample(block, rate, rate)

        assert result is block
        assert len(result) == 1000

    @pytest.mark.parametrize("length,from_rate,to_rate", [
        (4096, 44100, 16000),
        (4096, 48000, 16000),
        (1024, 16000, 48000),
        (333, 22050, 16000),
        (1, 48000, 16000),
        (1, 8000, 48000),
        (4096, 32000, 16000),
    ])
    def test_output_length_is_rounded_ratio(self, length, from_rate, to_rate):
        """Output length is len * to/from rounded half up."""
        block = np.zeros(length, dtype=np.float32)
        result = resample(block, from_rate, to_rate)

        expected = math.floor(length * to_rate / from_rate + 0.5)
        assert len(result) == expected
        assert resampled_length(length, from_rate, to_rate) == expected

    def test_downsample_by_integer_factor_picks_every_nth_sample(self):
        """A 3:1 ratio lands exactly on source samples."""
        block = np.arange(12, dtype=np.float32) / 12
        result = resample(block, 48000, 16000)

        np.testing.assert_allclose(result, block[::3], atol=1e-7)

    def test_upsample_interpolates_between_neighbours(self):
        """Doubling the rate inserts midpoints."""
        block = np.array([0.0, 1.0, 0.0], dtype=np.float32)
        result = resample(block, 8000, 16000)

        np.testing.assert_allclose(result, [0.0, 0.5, 1.0, 0.5, 0.0, 0.0], atol=1e-7)

    def test_last_sample_is_clamped(self):
        """Positions past the end reuse the last source sample."""
        block = np.array([0.25, 0.75], dtype=np.float32)
        result = resample(block, 16000, 48000)

        assert len(result) == 6
        assert result[-1] == pytest.approx(0.75)

    def test_output_is_float32(self, sine_block):
        """Interpolation happens in float64 but returns float32."""
        result = resample(sine_block(4096, 44100), 44100, 16000)

        assert result.dtype == np.float32

    def test_zero_block_stays_zero(self):
        """Silence stays silent."""
        result = resample(np.zeros(4096, dtype=np.float32), 44100, 16000)

        assert not result.any()

    @pytest.mark.parametrize("from_rate,to_rate", [(0, 16000), (16000, 0), (-1, 16000)])
    def test_non_positive_rate_rejected(self, from_rate, to_rate):
        """Non-positive rates are invalid parameters."""
        with pytest.raises(InvalidParameterError):
            resample(np.zeros(10, dtype=np.float32), from_rate, to_rate)

    def test_empty_block_rejected(self):
        """Empty blocks are invalid parameters."""
        with pytest.raises(InvalidParameterError):
            resample(np.zeros(0, dtype=np.float32), 44100, 16000)
