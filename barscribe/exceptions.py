"""Exception types raised by the capture and transcription pipeline."""

from typing import Optional


class BarscribeError(Exception):
    """Base class for all barscribe errors."""


class CaptureError(BarscribeError):
    """Raised when the microphone stream cannot be opened."""


class MicrophonePermissionError(CaptureError, PermissionError):
    """Raised when access to the microphone is denied."""


class DeviceError(CaptureError):
    """Raised when no usable input device is available."""


class InvalidParameterError(BarscribeError, ValueError):
    """Raised for degenerate audio parameters (empty blocks, non-positive rates)."""


class SessionAlreadyActiveError(BarscribeError):
    """Raised when a session is started while another one is still running."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Transcription session '{session_id}' is still active")


class ProviderConfigurationError(BarscribeError):
    """Raised when a transcription provider cannot be used for recording."""


class TransportError(BarscribeError):
    """Raised when a transcription provider call fails."""

    def __init__(self, provider: str, message: str, cause: Optional[Exception] = None):
        self.provider = provider
        self.cause = cause
        super().__init__(f"{provider}: {message}")


class BackupStoreError(BarscribeError):
    """Raised when the backup store cannot read its records."""
