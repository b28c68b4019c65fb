"""railsdeploy configuration module.

Configuration is loaded from the following locations (in order of priority):
1. Environment variables (highest priority)
2. ./railsdeploy.toml (project root)
3. ~/.config/railsdeploy/config.toml (user config)
4. /etc/railsdeploy/config.toml (system config)

Database credentials are loaded from .env / secrets.env files.
"""

from railsdeploy.config.schema import (
    DatabaseConfig,
    RailsDeployConfig,
    RepositoryConfig,
    RubyConfig,
    SecretsConfig,
    ServerClassConfig,
)
from railsdeploy.config.settings import Settings, get_settings, reset_settings

__all__ = [
    "DatabaseConfig",
    "RailsDeployConfig",
    "RepositoryConfig",
    "RubyConfig",
    "SecretsConfig",
    "ServerClassConfig",
    "Settings",
    "get_settings",
    "reset_settings",
]
