"""Global settings instance for railsdeploy.

Combines the configuration from railsdeploy.toml, database credentials from
the secrets file and environment variable overrides.
"""

import logging
from pathlib import Path

from railsdeploy.config.loader import load_config, load_secrets
from railsdeploy.config.schema import RailsDeployConfig, SecretsConfig

logger = logging.getLogger(__name__)


class Settings:
    """Unified settings object combining config and secrets."""

    def __init__(
        self,
        config: RailsDeployConfig | None = None,
        secrets: SecretsConfig | None = None,
        config_file: Path | None = None,
    ):
        """Initialize settings.

        Args:
            config: Optional RailsDeployConfig instance. If not provided, loads from file.
            secrets: Optional SecretsConfig instance. If not provided, loads from file.
            config_file: Explicit config file used when config is not given.
        """
        self._config = config or load_config(config_file)
        self._secrets = secrets or load_secrets()

    @property
    def config(self) -> RailsDeployConfig:
        """Get the full configuration object."""
        return self._config

    @property
    def secrets(self) -> SecretsConfig:
        """Get the secrets configuration object."""
        return self._secrets

    def __repr__(self) -> str:
        servers = ", ".join(sorted(self._config.servers))
        return f"Settings(deploy_root={self._config.deploy_root!r}, servers=[{servers}])"


_settings: Settings | None = None


def get_settings(config_file: Path | None = None) -> Settings:
    """Get the cached settings instance, loading it on first use.

    Args:
        config_file: Explicit config file; only honoured on first load.
    """
    global _settings
    if _settings is None:
        _settings = Settings(config_file=config_file)
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next get_settings() reloads."""
    global _settings
    _settings = None
