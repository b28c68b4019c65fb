"""Pydantic models for railsdeploy configuration.

These models define the structure of railsdeploy.toml and the secrets .env file.
"""

from pydantic import BaseModel, Field


class ServerClassConfig(BaseModel):
    """Connection details for one server class (qa, prod, ...)."""

    domain: str
    user: str = "deployer"
    runtime_env: str = "production"
    # Parent domain for per-version virtual hosts (<version>.<main_domain>)
    main_domain: str
    port: int | None = None


def default_servers() -> dict[str, ServerClassConfig]:
    """Built-in server class table."""
    return {
        "qa": ServerClassConfig(
            domain="192.168.10.54",
            user="deployer",
            runtime_env="production",
            main_domain="qa-domain.com",
        ),
        "prod": ServerClassConfig(
            domain="192.168.10.54",
            user="deployer",
            runtime_env="production",
            main_domain="prod-domain.com",
        ),
    }


class RubyConfig(BaseModel):
    """RVM ruby selection on the remote host."""

    rvm_path: str = "/usr/local/rvm/bin/rvm"
    version: str = "ruby-2.1.1"
    gemset: str = "default"


class RepositoryConfig(BaseModel):
    """Application source repository."""

    url: str = "https://github.com/usertestrepo/apache_with_mina"
    branch: str = "master"


class DatabaseConfig(BaseModel):
    """Non-secret parameters written to the remote database.yml."""

    adapter: str = "mysql2"
    encoding: str = "utf8"
    host: str = "localhost"
    timeout: int = 5000
    admin_user: str = "root"


class RailsDeployConfig(BaseModel):
    """Main railsdeploy configuration loaded from railsdeploy.toml."""

    deploy_root: str = "/home/rails/projects"
    # Linked from shared/ into every release
    shared_paths: list[str] = Field(default_factory=lambda: ["config/database.yml", "log"])
    # At least one: the release just linked as current is the newest
    keep_releases: int = Field(default=5, ge=1)
    forward_agent: bool = True
    apache_sites_dir: str = "/etc/apache2/sites-available"
    servers: dict[str, ServerClassConfig] = Field(default_factory=default_servers)
    ruby: RubyConfig = Field(default_factory=RubyConfig)
    repository: RepositoryConfig = Field(default_factory=RepositoryConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)


class SecretsConfig(BaseModel):
    """Database credentials loaded from the secrets .env file.

    These are sensitive values that should not be stored in railsdeploy.toml.
    """

    db_name: str | None = None
    db_username: str | None = None
    db_password: str | None = None
