"""barscribe - audio capture and streaming transcription for interview answers."""

__version__ = "0.1.0"
