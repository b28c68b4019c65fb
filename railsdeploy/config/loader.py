"""Configuration loader for railsdeploy.

Loads configuration from TOML files and database credentials from .env files.
Environment variables can override any configuration value.
"""

import logging
import os
from pathlib import Path
from typing import Any

from dotenv import dotenv_values
from pydantic import ValidationError

from railsdeploy.config.schema import RailsDeployConfig, SecretsConfig, default_servers
from railsdeploy.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Try to import tomllib (Python 3.11+) or fall back to tomli
try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore[import-not-found]


ENV_PREFIX = "RAILSDEPLOY"

# Environment selectors for the deployment target. The unprefixed names are
# accepted for compatibility with `server=qa version=x railsdeploy deploy`.
SERVER_ENV_VARS = (f"{ENV_PREFIX}_SERVER", "server")
VERSION_ENV_VARS = (f"{ENV_PREFIX}_VERSION", "version")


def get_config_search_paths() -> list[Path]:
    """Get the list of paths to search for configuration files.

    Returns paths in priority order (first found wins):
    1. ./railsdeploy.toml (project root)
    2. ~/.config/railsdeploy/config.toml (user config)
    3. /etc/railsdeploy/config.toml (system config)
    """
    return [
        Path.cwd() / "railsdeploy.toml",
        Path.home() / ".config" / "railsdeploy" / "config.toml",
        Path("/etc/railsdeploy/config.toml"),
    ]


def get_secrets_search_paths() -> list[Path]:
    """Get the list of paths to search for secrets files.

    Returns paths in priority order (first found wins):
    1. ./.env (project root)
    2. ./secrets.env (project root)
    3. ~/.config/railsdeploy/secrets.env (user secrets)
    """
    return [
        Path.cwd() / ".env",
        Path.cwd() / "secrets.env",
        Path.home() / ".config" / "railsdeploy" / "secrets.env",
    ]


def find_config_file() -> Path | None:
    """Find the first existing config file from search paths."""
    for path in get_config_search_paths():
        if path.exists() and path.is_file():
            logger.debug("Found config file: %s", path)
            return path
    return None


def find_secrets_file() -> Path | None:
    """Find the first existing secrets file from search paths."""
    for path in get_secrets_search_paths():
        if path.exists() and path.is_file():
            logger.debug("Found secrets file: %s", path)
            return path
    return None


def load_toml_file(path: Path) -> dict[str, Any]:
    """Load a TOML file and return its contents as a dictionary."""
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {path}: {e}") from e


# Env var -> (section or None for top-level, key)
ENV_MAPPINGS: dict[str, tuple[str | None, str]] = {
    f"{ENV_PREFIX}_DEPLOY_ROOT": (None, "deploy_root"),
    f"{ENV_PREFIX}_KEEP_RELEASES": (None, "keep_releases"),
    f"{ENV_PREFIX}_FORWARD_AGENT": (None, "forward_agent"),
    f"{ENV_PREFIX}_APACHE_SITES_DIR": (None, "apache_sites_dir"),
    f"{ENV_PREFIX}_REPOSITORY_URL": ("repository", "url"),
    f"{ENV_PREFIX}_REPOSITORY_BRANCH": ("repository", "branch"),
    f"{ENV_PREFIX}_BRANCH": ("repository", "branch"),  # Shorthand
    f"{ENV_PREFIX}_RVM_PATH": ("ruby", "rvm_path"),
    f"{ENV_PREFIX}_RUBY_VERSION": ("ruby", "version"),
    f"{ENV_PREFIX}_RUBY_GEMSET": ("ruby", "gemset"),
    f"{ENV_PREFIX}_DATABASE_ADAPTER": ("database", "adapter"),
    f"{ENV_PREFIX}_DATABASE_HOST": ("database", "host"),
    f"{ENV_PREFIX}_DATABASE_ADMIN_USER": ("database", "admin_user"),
}

INT_KEYS = ("keep_releases", "timeout")
BOOL_KEYS = ("forward_agent",)


def apply_env_overrides(config_dict: dict[str, Any]) -> None:
    """Apply environment variable overrides to configuration dictionary.

    Environment variables are mapped as follows:
    - RAILSDEPLOY_DEPLOY_ROOT -> config_dict["deploy_root"]
    - RAILSDEPLOY_REPOSITORY_URL -> config_dict["repository"]["url"]
    - etc.

    Note: This modifies config_dict in place.
    """
    for env_var, (section, key) in ENV_MAPPINGS.items():
        value = os.environ.get(env_var)
        if value is None:
            continue

        target = config_dict
        if section is not None:
            target = config_dict.setdefault(section, {})

        if key in INT_KEYS:
            try:
                target[key] = int(value)
            except ValueError as e:
                raise ConfigurationError(f"{env_var} must be an integer, got {value!r}") from e
        elif key in BOOL_KEYS:
            target[key] = value.lower() in ("true", "1", "yes")
        else:
            target[key] = value


def load_secrets(secrets_file: Path | None = None) -> SecretsConfig:
    """Load database credentials from environment variables and a .env file.

    Environment variables take precedence over file values.
    """
    secrets_dict: dict[str, str] = {}

    if secrets_file is None:
        secrets_file = find_secrets_file()

    key_mapping = {
        f"{ENV_PREFIX}_DB_NAME": "db_name",
        f"{ENV_PREFIX}_DB_USERNAME": "db_username",
        f"{ENV_PREFIX}_DB_PASSWORD": "db_password",
    }

    if secrets_file and secrets_file.exists():
        logger.info("Loading secrets from: %s", secrets_file)
        file_values = dotenv_values(secrets_file)
        for file_key, config_key in key_mapping.items():
            value = file_values.get(file_key)
            if value:
                secrets_dict[config_key] = value

    for env_var, config_key in key_mapping.items():
        value = os.environ.get(env_var)
        if value:
            secrets_dict[config_key] = value

    return SecretsConfig(**secrets_dict)


def load_config(config_file: Path | None = None) -> RailsDeployConfig:
    """Load configuration from TOML file with environment variable overrides.

    Server classes declared in the file are merged over the built-in
    ``qa`` and ``prod`` entries.

    Args:
        config_file: Optional path to config file. If not provided,
                     searches default locations.

    Returns:
        RailsDeployConfig instance with all settings loaded.

    Raises:
        ConfigurationError: If the file is unreadable or fails validation.
    """
    config_dict: dict[str, Any] = {}

    if config_file is None:
        config_file = find_config_file()
    elif not config_file.exists():
        raise ConfigurationError(f"Config file not found: {config_file}")

    if config_file and config_file.exists():
        logger.info("Loading config from: %s", config_file)
        config_dict = load_toml_file(config_file)
    else:
        logger.info("No config file found, using defaults with env overrides")

    apply_env_overrides(config_dict)

    if "servers" in config_dict:
        servers: dict[str, Any] = {
            name: server.model_dump() for name, server in default_servers().items()
        }
        for name, values in config_dict["servers"].items():
            servers[name] = {**servers.get(name, {}), **values}
        config_dict["servers"] = servers

    try:
        return RailsDeployConfig(**config_dict)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def get_target_selectors() -> tuple[str | None, str | None]:
    """Read the server class and version label from the environment.

    Returns:
        (server_class, version_label); either may be None when unset.
    """

    def first_set(names: tuple[str, ...]) -> str | None:
        for name in names:
            value = os.environ.get(name)
            if value:
                return value
        return None

    return first_set(SERVER_ENV_VARS), first_set(VERSION_ENV_VARS)
