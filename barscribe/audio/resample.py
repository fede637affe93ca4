"""Linear-interpolation resampler for captured sample blocks."""

import numpy as np

from ..exceptions import InvalidParameterError
from ..models.audio import SampleBlock


def resampled_length(length: int, from_rate: int, to_rate: int) -> int:
    """Number of output samples for a block of ``length`` samples (round half up)."""
    return int(np.floor(length * to_rate / from_rate + 0.5))


def resample(block: SampleBlock, from_rate: int, to_rate: int) -> SampleBlock:
    """Resample a mono block from ``from_rate`` to ``to_rate``.

    Equal rates return ``block`` itself. Otherwise every output sample ``i`` is
    interpolated between the source samples around ``i * from_rate / to_rate``,
    with the upper neighbour clamped to the last source sample.

    Args:
        block: Mono float32 samples
        from_rate: Rate the block was captured at, in Hz
        to_rate: Rate to convert to, in Hz

    Returns:
        float32 block at ``to_rate``

    Raises:
        InvalidParameterError: On a non-positive rate or an empty block
    """
    if from_rate <= 0 or to_rate <= 0:
        raise InvalidParameterError(f"Sample rates must be positive (from={from_rate}, to={to_rate})")
    if block is None or len(block) == 0:
        raise InvalidParameterError("Cannot resample an empty block")
    if from_rate == to_rate:
        return block

    source = np.asarray(block, dtype=np.float64)
    last = len(source) - 1
    ratio = from_rate / to_rate
    new_length = resampled_length(len(source), from_rate, to_rate)

    positions = np.arange(new_length, dtype=np.float64) * ratio
    lower = np.minimum(np.floor(positions).astype(np.int64), last)
    upper = np.minimum(lower + 1, last)
    fraction = positions - lower

    result = source[lower] + (source[upper] - source[lower]) * fraction
    return result.astype(np.float32)
