"""Pytest configuration and fixtures for railsdeploy tests."""

import pytest

from railsdeploy.commands import Command
from railsdeploy.config.schema import RailsDeployConfig, SecretsConfig
from railsdeploy.config.settings import reset_settings
from railsdeploy.target import Target, resolve


class FakeSession:
    """Executor that records commands instead of running them.

    Args:
        statuses: Exit status to return by command index (default 0)
    """

    def __init__(self, statuses: dict[int, int] | None = None):
        self.statuses = statuses or {}
        self.commands: list[Command] = []
        self.entered = False
        self.exited = False

    def __enter__(self) -> "FakeSession":
        self.entered = True
        return self

    def __exit__(self, *exc_info) -> None:
        self.exited = True

    def run(self, command: Command) -> int:
        index = len(self.commands)
        self.commands.append(command)
        return self.statuses.get(index, 0)

    @property
    def rendered(self) -> list[str]:
        return [c.render() for c in self.commands]


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep selectors and overrides from the developer's shell out of tests."""
    for name in (
        "server",
        "version",
        "RAILSDEPLOY_SERVER",
        "RAILSDEPLOY_VERSION",
        "RAILSDEPLOY_DEPLOY_ROOT",
        "RAILSDEPLOY_KEEP_RELEASES",
        "RAILSDEPLOY_FORWARD_AGENT",
        "RAILSDEPLOY_REPOSITORY_URL",
        "RAILSDEPLOY_REPOSITORY_BRANCH",
        "RAILSDEPLOY_BRANCH",
        "RAILSDEPLOY_DB_NAME",
        "RAILSDEPLOY_DB_USERNAME",
        "RAILSDEPLOY_DB_PASSWORD",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def config() -> RailsDeployConfig:
    return RailsDeployConfig()


@pytest.fixture
def secrets() -> SecretsConfig:
    return SecretsConfig(db_name="app_feature_x", db_username="app", db_password="s3cret'pw")


@pytest.fixture
def qa_target(config) -> Target:
    return resolve("qa", "feature-x", config)


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()
