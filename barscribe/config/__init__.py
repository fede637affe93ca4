"""Simple YAML configuration loader for barscribe."""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional, Tuple
import logging

from ..transcription.registry import PROVIDERS

logger = logging.getLogger(__name__)


class BarscribeConfig:
    """barscribe configuration loader."""

    # Relative paths in these keys are resolved against the config file's directory
    PATH_KEYS = (
        'storage.data_directory',
        'logging.file_path',
        'providers.google_speech.credentials_path',
    )

    def __init__(self, config_path: str):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file
        """
        self.config_file = Path(config_path)

        if not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        logger.info(f"Loading configuration from: {self.config_file}")
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}") from e

        if not config:
            raise ValueError("Configuration file is empty")
        if not isinstance(config, dict):
            raise ValueError("Configuration file must contain a mapping at the top level")

        self.config = config
        self._resolve_paths()
        logger.info("Configuration loaded successfully")
        return config

    def _resolve_paths(self) -> None:
        config_dir = self.config_file.parent
        for key_path in self.PATH_KEYS:
            value = self.get(key_path)
            if value and not os.path.isabs(value):
                self.set(key_path, str(config_dir / value))

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'audio.block_size').

        Args:
            key_path: Dot-separated key path
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        value = self.config
        for key in key_path.split('.'):
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation.

        Args:
            key_path: Dot-separated path to config value
            value: Value to set
        """
        keys = key_path.split('.')
        config_dict = self.config
        for key in keys[:-1]:
            if not isinstance(config_dict.get(key), dict):
                config_dict[key] = {}
            config_dict = config_dict[key]
        config_dict[keys[-1]] = value
        logger.debug(f"Configuration key '{key_path}' set to: {value}")

    def get_data_directory(self) -> str:
        """Get data directory path."""
        data_dir = self.get('storage.data_directory', 'data')
        return str(Path(data_dir).absolute())

    def get_default_provider(self) -> str:
        return self.get('transcription.provider', 'sarvam')

    def get_provider_credentials(self, name: str) -> Dict[str, Any]:
        """Credentials of one provider - raises if not configured.

        Raises:
            ValueError: Provider section or its credential key is missing
        """
        section = self.get(f'providers.{name}')
        if not isinstance(section, dict):
            raise ValueError(f"Provider '{name}' not configured under 'providers' in {self.config_file}")

        credentials = {}
        for key in self._credential_keys(name):
            value = section.get(key)
            if not value:
                raise ValueError(f"Provider '{name}' has no '{key}' configured")
            credentials[key] = value
        return credentials

    def get_provider_options(self, name: str) -> Dict[str, Any]:
        """Provider settings other than credentials (model, language, ...)."""
        section = self.get(f'providers.{name}') or {}
        credential_keys = self._credential_keys(name)
        return {k: v for k, v in section.items() if k not in credential_keys}

    @staticmethod
    def _credential_keys(name: str) -> Tuple[str, ...]:
        entry = PROVIDERS.get(name)
        if entry is None:
            raise ValueError(f"Unknown transcription provider '{name}'")
        return entry.required_credentials

    def get_session_options(self) -> Dict[str, Any]:
        """Keyword arguments for ``LiveTranscriptionService``."""
        return {
            'target_sample_rate': int(self.get('audio.target_sample_rate', 16000)),
            'block_size': int(self.get('audio.block_size', 4096)),
            'window_seconds': float(self.get('transcription.window_seconds', 3.0)),
            'echo_cancellation': bool(self.get('audio.echo_cancellation', True)),
            'noise_suppression': bool(self.get('audio.noise_suppression', True)),
        }
