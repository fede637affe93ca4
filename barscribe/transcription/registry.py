"""Provider registry: resolves a provider choice before any recording starts."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from .base import AbstractTranscriptionProvider
from .gemini_backend import GeminiProvider
from .gemini_live import GeminiLiveProvider
from .google_backend import GoogleSpeechProvider
from .sarvam_backend import SarvamProvider
from ..exceptions import ProviderConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderEntry:
    """How to build one provider and what it needs."""
    factory: Optional[Callable[..., AbstractTranscriptionProvider]]
    required_credentials: Tuple[str, ...] = ("api_key",)
    supports_audio_input: bool = True
    accepts_sample_rate: bool = False  # Factory takes the rate of the audio it will receive


def _google_speech(credentials_path: str, **options) -> GoogleSpeechProvider:
    if not Path(credentials_path).exists():
        raise ProviderConfigurationError(f"Google credentials file not found: {credentials_path}")
    provider = GoogleSpeechProvider(credentials_path=credentials_path, **options)
    provider.initialize()
    return provider


PROVIDERS: Dict[str, ProviderEntry] = {
    "sarvam": ProviderEntry(SarvamProvider),
    "gemini": ProviderEntry(GeminiProvider),
    "gemini_live": ProviderEntry(GeminiLiveProvider, accepts_sample_rate=True),
    "google_speech": ProviderEntry(_google_speech, required_credentials=("credentials_path",),
                                   accepts_sample_rate=True),
    # Chat-completion router without an audio input channel
    "openrouter": ProviderEntry(None, supports_audio_input=False),
}


def create_provider(name: str,
                    credentials: Mapping[str, Any],
                    sample_rate: Optional[int] = None,
                    **options) -> AbstractTranscriptionProvider:
    """Build a provider by name.

    Args:
        name: Registered provider name (see ``PROVIDERS``)
        credentials: Provider credentials, e.g. ``{"api_key": ...}``
        sample_rate: Rate of the audio the provider will receive; passed on
            to providers that need it unless ``options`` already set one
        **options: Provider-specific keyword options (model, language, ...)

    Raises:
        ProviderConfigurationError: Unknown provider, provider without audio
            input, or missing credentials
    """
    entry = PROVIDERS.get(name)
    if entry is None:
        raise ProviderConfigurationError(
            f"Unknown transcription provider '{name}'. Available: {', '.join(sorted(PROVIDERS))}")
    if not entry.supports_audio_input or entry.factory is None:
        raise ProviderConfigurationError(
            f"Provider '{name}' does not accept audio input and cannot be used for live transcription")

    missing = [key for key in entry.required_credentials if not credentials.get(key)]
    if missing:
        raise ProviderConfigurationError(f"Provider '{name}' is missing credentials: {', '.join(missing)}")

    kwargs = {key: credentials[key] for key in entry.required_credentials}
    kwargs.update(options)
    if entry.accepts_sample_rate and sample_rate is not None:
        kwargs.setdefault("sample_rate", sample_rate)
    try:
        provider = entry.factory(**kwargs)
    except (TypeError, ValueError) as e:
        raise ProviderConfigurationError(f"Invalid configuration for provider '{name}': {e}") from e

    logger.info(f"✅ Transcription provider '{name}' ready ({provider.delivery_mode.value} delivery)")
    return provider
