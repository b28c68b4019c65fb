"""One deployment run: resolve the target, build the command sequence, execute it.

A run moves through IDLE -> RESOLVING -> BUILDING -> EXECUTING and ends in
SUCCEEDED or ABORTED. Resolution and graph errors abort before any SSH
session is opened.
"""

import enum
import logging
from collections.abc import Callable

from railsdeploy.commands import CommandSequence
from railsdeploy.config.schema import RailsDeployConfig, SecretsConfig
from railsdeploy.graph import GraphRunner
from railsdeploy.recipes import create_runner
from railsdeploy.remote import ExecutionResult, Executor, SSHSession, execute
from railsdeploy.target import Target, resolve, validate_version_label

logger = logging.getLogger(__name__)

SessionFactory = Callable[[Target], Executor]


class RunState(enum.Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    BUILDING = "building"
    EXECUTING = "executing"
    SUCCEEDED = "succeeded"
    ABORTED = "aborted"


class Deployment:
    """Runs a single task against a single target."""

    def __init__(
        self,
        config: RailsDeployConfig | None = None,
        secrets: SecretsConfig | None = None,
        runner: GraphRunner | None = None,
        session_factory: SessionFactory | None = None,
        verbose: bool = False,
        validate_labels: bool = False,
    ):
        self.config = config or RailsDeployConfig()
        self.secrets = secrets or SecretsConfig()
        self.runner = runner or create_runner()
        self.session_factory = session_factory or self._ssh_session
        self.verbose = verbose
        self.validate_labels = validate_labels

        self.state = RunState.IDLE
        self.target: Target | None = None
        self.commands: CommandSequence | None = None
        self.result: ExecutionResult | None = None
        self.error: Exception | None = None

    def _ssh_session(self, target: Target) -> Executor:
        return SSHSession(target, forward_agent=self.config.forward_agent)

    def _transition(self, state: RunState) -> None:
        logger.debug("Deployment state: %s -> %s", self.state.value, state.value)
        self.state = state

    def run(
        self,
        task_name: str,
        server_class: str | None,
        version_label: str | None,
        release_name: str | None = None,
    ) -> ExecutionResult:
        """Run ``task_name`` against the target selected by the two selectors.

        Returns:
            The commands issued, in order.

        Raises:
            ConfigurationError: Target could not be resolved (no session opened).
            UnknownTaskError: Task or a dependency is not registered (no session opened).
            TaskCycleError: Task dependencies form a cycle (no session opened).
            RemoteCommandError: A remote command failed; later commands were not run.
        """
        if self.state is not RunState.IDLE:
            raise RuntimeError(f"Deployment already ran (state: {self.state.value})")

        try:
            self._transition(RunState.RESOLVING)
            self.target = resolve(server_class, version_label, self.config)
            if self.validate_labels:
                validate_version_label(version_label)

            self._transition(RunState.BUILDING)
            self.commands = self.runner.build(
                task_name,
                self.target,
                config=self.config,
                secrets=self.secrets,
                release_name=release_name,
            )
            logger.info("Built %d command(s) for task %s", len(self.commands), task_name)

            self._transition(RunState.EXECUTING)
            with self.session_factory(self.target) as session:
                self.result = execute(self.commands.ordered(), session, verbose=self.verbose)
        except Exception as e:
            self.error = e
            self._transition(RunState.ABORTED)
            raise

        self._transition(RunState.SUCCEEDED)
        return self.result
