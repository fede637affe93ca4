"""Audio capture and processing module."""

from .capture import PcmCapture
from .resample import resample
from .wav import decode_wav_header, encode_wav, merge_blocks

__all__ = [
    'PcmCapture',
    'resample',
    'encode_wav',
    'decode_wav_header',
    'merge_blocks',
]
