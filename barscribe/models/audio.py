"""Audio-related data models."""

from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

# One mono block of float32 samples in [-1.0, 1.0]
SampleBlock = npt.NDArray[np.float32]


@dataclass
class CaptureStats:
    """Microphone capture statistics."""
    is_capturing: bool
    duration_seconds: float
    sample_rate: int
    block_size: int
    total_blocks: int
