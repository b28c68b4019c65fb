"""Exceptions raised while resolving, building and executing a deployment."""


class DeployError(Exception):
    """Base class for all railsdeploy errors."""


class ConfigurationError(DeployError):
    """The deployment target or configuration is missing or invalid.

    Raised before any remote connection is opened.
    """


class UnknownTaskError(DeployError):
    """A task name was invoked that is not registered."""

    def __init__(self, name: str, known: list[str] | None = None):
        self.name = name
        self.known = sorted(known or [])
        message = f"Unknown task: {name}"
        if self.known:
            message += f" (known tasks: {', '.join(self.known)})"
        super().__init__(message)


class TaskCycleError(DeployError):
    """A task depends on itself, directly or through other tasks."""

    def __init__(self, chain: list[str]):
        self.chain = list(chain)
        super().__init__(f"Task dependency cycle: {' -> '.join(self.chain)}")


class RemoteCommandError(DeployError):
    """A remote command exited with a non-zero status.

    Attributes:
        index: Position of the failing command in the executed sequence
        command: Rendered command line that failed
        exit_status: Exit status reported by the remote side
        executed: Every command issued, the failing one included
    """

    def __init__(self, index: int, command: str, exit_status: int, executed: list[str]):
        self.index = index
        self.command = command
        self.exit_status = exit_status
        self.executed = list(executed)
        super().__init__(
            f"Command #{index + 1} failed with exit code {exit_status}: {command}"
        )


class SSHConnectionError(DeployError):
    """The SSH connection to the target could not be opened."""
