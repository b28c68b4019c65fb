"""Tests for the railsdeploy configuration system."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from railsdeploy.config.loader import (
    apply_env_overrides,
    find_config_file,
    get_config_search_paths,
    get_secrets_search_paths,
    get_target_selectors,
    load_config,
    load_secrets,
    load_toml_file,
)
from railsdeploy.config.schema import (
    DatabaseConfig,
    RailsDeployConfig,
    RubyConfig,
    SecretsConfig,
)
from railsdeploy.config.settings import Settings, get_settings, reset_settings
from railsdeploy.errors import ConfigurationError


class TestSchemaDefaults:
    """Test default values in schema models."""

    def test_railsdeploy_config_defaults(self):
        """Test RailsDeployConfig has correct defaults."""
        config = RailsDeployConfig()
        assert config.deploy_root == "/home/rails/projects"
        assert config.shared_paths == ["config/database.yml", "log"]
        assert config.forward_agent is True
        assert config.keep_releases == 5
        assert config.apache_sites_dir == "/etc/apache2/sites-available"

    def test_default_server_table(self):
        """Test the built-in qa and prod server classes."""
        config = RailsDeployConfig()
        assert set(config.servers) == {"qa", "prod"}
        assert config.servers["qa"].domain == "192.168.10.54"
        assert config.servers["qa"].user == "deployer"
        assert config.servers["qa"].runtime_env == "production"
        assert config.servers["qa"].main_domain == "qa-domain.com"
        assert config.servers["prod"].main_domain == "prod-domain.com"

    def test_ruby_config_defaults(self):
        """Test RubyConfig has correct defaults."""
        config = RubyConfig()
        assert config.rvm_path == "/usr/local/rvm/bin/rvm"
        assert config.version == "ruby-2.1.1"
        assert config.gemset == "default"

    def test_database_config_defaults(self):
        """Test DatabaseConfig has correct defaults."""
        config = DatabaseConfig()
        assert config.adapter == "mysql2"
        assert config.host == "localhost"
        assert config.timeout == 5000

    def test_secrets_config_defaults(self):
        """Test SecretsConfig has no credentials by default."""
        config = SecretsConfig()
        assert config.db_name is None
        assert config.db_username is None
        assert config.db_password is None


class TestConfigSearchPaths:
    """Test configuration file search paths."""

    def test_config_search_paths_order(self):
        """Test config search paths are in correct priority order."""
        paths = get_config_search_paths()
        assert len(paths) == 3
        assert paths[0] == Path.cwd() / "railsdeploy.toml"
        assert paths[1] == Path.home() / ".config" / "railsdeploy" / "config.toml"
        assert paths[2] == Path("/etc/railsdeploy/config.toml")

    def test_secrets_search_paths_order(self):
        """Test secrets search paths are in correct priority order."""
        paths = get_secrets_search_paths()
        assert paths[0] == Path.cwd() / ".env"
        assert paths[1] == Path.cwd() / "secrets.env"

    def test_find_config_file_in_cwd(self, tmp_path, monkeypatch):
        """Test the project config file is found in the working directory."""
        monkeypatch.chdir(tmp_path)
        (tmp_path / "railsdeploy.toml").write_text('deploy_root = "/srv"\n')

        assert find_config_file() == tmp_path / "railsdeploy.toml"


class TestTomlLoading:
    """Test TOML file loading."""

    def test_load_config_from_file(self, tmp_path):
        """Test load_config with a specific file."""
        config_file = tmp_path / "railsdeploy.toml"
        config_file.write_text(
            """
deploy_root = "/srv/apps"
keep_releases = 3

[repository]
branch = "main"

[servers.qa]
domain = "10.0.0.5"
"""
        )

        config = load_config(config_file)
        assert config.deploy_root == "/srv/apps"
        assert config.keep_releases == 3
        assert config.repository.branch == "main"
        # Partial server entries are merged over the built-in table
        assert config.servers["qa"].domain == "10.0.0.5"
        assert config.servers["qa"].user == "deployer"
        assert config.servers["qa"].main_domain == "qa-domain.com"
        assert config.servers["prod"].domain == "192.168.10.54"

    def test_load_config_adds_server_class(self, tmp_path):
        """Test new server classes can be declared in the file."""
        config_file = tmp_path / "railsdeploy.toml"
        config_file.write_text(
            """
[servers.staging]
domain = "staging.internal"
user = "rails"
runtime_env = "staging"
main_domain = "staging-domain.com"
port = 2222
"""
        )

        config = load_config(config_file)
        assert set(config.servers) == {"qa", "prod", "staging"}
        assert config.servers["staging"].port == 2222

    def test_new_server_class_needs_domain(self, tmp_path):
        """Test an incomplete new server class fails validation."""
        config_file = tmp_path / "railsdeploy.toml"
        config_file.write_text('[servers.staging]\nuser = "rails"\n')

        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            load_config(config_file)

    def test_invalid_toml(self, tmp_path):
        """Test malformed TOML is reported as a configuration error."""
        config_file = tmp_path / "railsdeploy.toml"
        config_file.write_text("deploy_root = \n")

        with pytest.raises(ConfigurationError, match="Invalid TOML"):
            load_toml_file(config_file)

    def test_missing_explicit_config_file(self, tmp_path):
        """Test an explicit path that does not exist is an error."""
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(tmp_path / "nope.toml")

    def test_load_config_without_file(self, tmp_path, monkeypatch):
        """Test defaults are used when no config file exists."""
        monkeypatch.chdir(tmp_path)
        with patch(
            "railsdeploy.config.loader.get_config_search_paths",
            return_value=[tmp_path / "railsdeploy.toml"],
        ):
            config = load_config()

        assert config == RailsDeployConfig()


class TestEnvOverrides:
    """Test environment variable overrides."""

    def test_apply_top_level_overrides(self):
        """Test top-level configuration overrides."""
        config_dict = {}

        with patch.dict(
            os.environ,
            {"RAILSDEPLOY_DEPLOY_ROOT": "/opt/rails", "RAILSDEPLOY_KEEP_RELEASES": "2"},
        ):
            apply_env_overrides(config_dict)

        assert config_dict["deploy_root"] == "/opt/rails"
        assert config_dict["keep_releases"] == 2

    def test_apply_section_overrides(self):
        """Test section configuration overrides."""
        config_dict = {"repository": {"url": "git@example.com:app.git"}}

        with patch.dict(os.environ, {"RAILSDEPLOY_BRANCH": "release"}):
            apply_env_overrides(config_dict)

        assert config_dict["repository"]["branch"] == "release"
        assert config_dict["repository"]["url"] == "git@example.com:app.git"

    def test_apply_boolean_override_false(self):
        """Test boolean overrides with 'false' value."""
        config_dict = {"forward_agent": True}

        with patch.dict(os.environ, {"RAILSDEPLOY_FORWARD_AGENT": "false"}):
            apply_env_overrides(config_dict)

        assert config_dict["forward_agent"] is False

    def test_invalid_integer_override(self):
        """Test a non-numeric integer override is rejected."""
        with patch.dict(os.environ, {"RAILSDEPLOY_KEEP_RELEASES": "many"}):
            with pytest.raises(ConfigurationError, match="RAILSDEPLOY_KEEP_RELEASES"):
                apply_env_overrides({})

    @pytest.mark.parametrize("value", ["0", "-1"])
    def test_keep_releases_must_keep_current(self, tmp_path, value):
        """Test keep_releases below one is rejected before any cleanup runs."""
        config_file = tmp_path / "railsdeploy.toml"
        config_file.write_text("keep_releases = 3\n")

        with patch.dict(os.environ, {"RAILSDEPLOY_KEEP_RELEASES": value}):
            with pytest.raises(ConfigurationError, match="keep_releases"):
                load_config(config_file)

    def test_keep_releases_zero_in_file(self, tmp_path):
        """Test keep_releases = 0 in TOML is rejected."""
        config_file = tmp_path / "railsdeploy.toml"
        config_file.write_text("keep_releases = 0\n")

        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            load_config(config_file)

    def test_env_overrides_file(self, tmp_path):
        """Test environment variables win over the config file."""
        config_file = tmp_path / "railsdeploy.toml"
        config_file.write_text('deploy_root = "/srv/apps"\n')

        with patch.dict(os.environ, {"RAILSDEPLOY_DEPLOY_ROOT": "/env/root"}):
            config = load_config(config_file)

        assert config.deploy_root == "/env/root"


class TestSecretsLoading:
    """Test database credential loading."""

    def test_load_secrets_from_file(self, tmp_path):
        """Test loading credentials from a .env file."""
        secrets_file = tmp_path / ".env"
        secrets_file.write_text(
            'RAILSDEPLOY_DB_NAME=app_db\n'
            'RAILSDEPLOY_DB_USERNAME="app user"\n'
            "# comment\n"
            "RAILSDEPLOY_DB_PASSWORD='pa ss'\n"
        )

        secrets = load_secrets(secrets_file)
        assert secrets.db_name == "app_db"
        assert secrets.db_username == "app user"
        assert secrets.db_password == "pa ss"

    def test_load_secrets_env_override(self, tmp_path):
        """Test environment variables override file secrets."""
        secrets_file = tmp_path / ".env"
        secrets_file.write_text("RAILSDEPLOY_DB_PASSWORD=file-password\n")

        with patch.dict(os.environ, {"RAILSDEPLOY_DB_PASSWORD": "env-password"}):
            secrets = load_secrets(secrets_file)

        assert secrets.db_password == "env-password"

    def test_load_secrets_missing_file(self, tmp_path):
        """Test a missing secrets file yields empty credentials."""
        secrets = load_secrets(tmp_path / "nonexistent.env")
        assert secrets == SecretsConfig()


class TestTargetSelectors:
    """Test reading the server and version selectors."""

    def test_prefixed_selectors(self):
        with patch.dict(os.environ, {"RAILSDEPLOY_SERVER": "qa", "RAILSDEPLOY_VERSION": "v1"}):
            assert get_target_selectors() == ("qa", "v1")

    def test_plain_selectors(self):
        with patch.dict(os.environ, {"server": "prod", "version": "feature-x"}):
            assert get_target_selectors() == ("prod", "feature-x")

    def test_prefixed_selector_wins(self):
        with patch.dict(os.environ, {"RAILSDEPLOY_SERVER": "qa", "server": "prod"}):
            assert get_target_selectors()[0] == "qa"

    def test_unset_selectors(self):
        assert get_target_selectors() == (None, None)


class TestSettings:
    """Test the Settings class."""

    def test_settings_with_explicit_objects(self):
        """Test Settings uses the objects it is given."""
        config = RailsDeployConfig(deploy_root="/srv")
        secrets = SecretsConfig(db_name="x")
        settings = Settings(config=config, secrets=secrets)
        assert settings.config is config
        assert settings.secrets is secrets
        assert "deploy_root='/srv'" in repr(settings)

    def test_get_settings_is_cached(self, tmp_path, monkeypatch):
        """Test get_settings returns the same instance until reset."""
        monkeypatch.chdir(tmp_path)
        config_file = tmp_path / "railsdeploy.toml"
        config_file.write_text('deploy_root = "/cached"\n')

        first = get_settings(config_file)
        assert first is get_settings()
        assert first.config.deploy_root == "/cached"

        reset_settings()
        assert get_settings(config_file) is not first
