"""YAML configuration loader for chatrelay."""
import logging
from pathlib import Path
from typing import Optional

import yaml

from chatrelay.config.schema import ChatRelayConfig, ProviderConfig

logger = logging.getLogger(__name__)


class ConfigLoader:
    """Load and validate chatrelay configuration."""

    def __init__(self, config_path: str):
        """
        Args:
            config_path: Path to YAML configuration file
        """
        self.config_path = Path(config_path)
        self.config: ChatRelayConfig = ChatRelayConfig()

    def load(self) -> ChatRelayConfig:
        """Load and validate configuration from YAML file.

        A missing file is not an error: built-in defaults are used.
        """
        if not self.config_path.exists():
            logger.warning(f"Config file not found, using defaults: {self.config_path}")
            self.config = ChatRelayConfig()
            return self.config

        try:
            with open(self.config_path, "r") as f:
                raw_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML syntax in {self.config_path}: {e}") from e

        try:
            # Configured providers extend the built-in set rather than replace it
            providers = ChatRelayConfig().providers
            for name, value in (raw_config.pop("providers", None) or {}).items():
                providers[name] = ProviderConfig(**(value or {}))
            self.config = ChatRelayConfig(providers=providers, **raw_config)
        except Exception as e:
            raise ValueError(f"Configuration validation failed in {self.config_path}: {e}") from e

        return self.config

    def get_provider(self, name: str) -> Optional[ProviderConfig]:
        """Get specific provider configuration."""
        return self.config.providers.get(name)
