"""Remote execution of a command sequence over SSH.

All commands of a run share one multiplexed SSH connection: the session
starts an ssh ControlMaster on entry and every command is sent through its
control socket. Commands run strictly in order and the first non-zero exit
status stops the run.
"""

import logging
import shutil
import subprocess
import tempfile
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from railsdeploy.commands import Command
from railsdeploy.errors import RemoteCommandError, SSHConnectionError
from railsdeploy.target import Target

logger = logging.getLogger(__name__)


class Executor(Protocol):
    """Something that can run commands on the target, one at a time."""

    def __enter__(self) -> "Executor": ...

    def __exit__(self, *exc_info) -> None: ...

    def run(self, command: Command) -> int: ...


class SSHSession:
    """One SSH connection to a target, reused for every command."""

    def __init__(self, target: Target, forward_agent: bool = True):
        self.target = target
        self.forward_agent = forward_agent
        self._control_dir: Path | None = None

    @property
    def control_path(self) -> Path | None:
        if self._control_dir is None:
            return None
        return self._control_dir / "master.sock"

    def ssh_args(self) -> list[str]:
        """Common ssh options, without destination or remote command."""
        args = [
            "ssh",
            "-o", "StrictHostKeyChecking=accept-new",
            "-o", "BatchMode=yes",
        ]
        if self.control_path is not None:
            args += ["-o", f"ControlPath={self.control_path}"]
        if self.target.port:
            args += ["-p", str(self.target.port)]
        if self.forward_agent:
            args.append("-A")
        return args

    def __enter__(self) -> "SSHSession":
        self._control_dir = Path(tempfile.mkdtemp(prefix="railsdeploy-"))
        master_cmd = self.ssh_args() + [
            "-o", "ControlMaster=yes",
            "-N", "-f",
            self.target.ssh_destination,
        ]
        logger.info("Opening SSH session to %s", self.target.ssh_destination)
        result = subprocess.run(master_cmd, check=False, capture_output=True, text=True)
        if result.returncode != 0:
            self._cleanup()
            raise SSHConnectionError(
                f"Could not connect to {self.target.ssh_destination}: "
                f"{result.stderr.strip() or f'exit code {result.returncode}'}"
            )
        return self

    def __exit__(self, *exc_info) -> None:
        subprocess.run(
            self.ssh_args() + ["-O", "exit", self.target.ssh_destination],
            check=False,
            capture_output=True,
        )
        logger.info("Closed SSH session to %s", self.target.ssh_destination)
        self._cleanup()

    def _cleanup(self) -> None:
        if self._control_dir is not None:
            shutil.rmtree(self._control_dir, ignore_errors=True)
            self._control_dir = None

    def run(self, command: Command) -> int:
        """Run one command on the target and return its exit status."""
        if self._control_dir is None:
            raise RuntimeError("SSHSession.run() called outside of a with block")
        ssh_cmd = self.ssh_args() + [self.target.ssh_destination, command.render()]
        if command.stdin is None:
            # Remote side reads EOF, never the local terminal
            result = subprocess.run(ssh_cmd, check=False, stdin=subprocess.DEVNULL, text=True)
        else:
            result = subprocess.run(ssh_cmd, check=False, input=command.stdin, text=True)
        return result.returncode


class DryRunSession:
    """Prints commands instead of running them."""

    def __init__(self, target: Target):
        self.target = target

    def __enter__(self) -> "DryRunSession":
        print(f"DRY RUN - commands for {self.target.ssh_destination}:")
        return self

    def __exit__(self, *exc_info) -> None:
        return None

    def run(self, command: Command) -> int:
        line = command.render()
        if command.stdin is not None:
            line += f"  <<< ({len(command.stdin)} bytes on stdin)"
        print(f"  [dry-run] {line}")
        return 0


@dataclass
class ExecutionResult:
    """Commands issued during a run, in order."""

    executed: list[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.executed)


def display(command_line: str, width: int = 80) -> str:
    """Shorten a command line for the terminal."""
    first_line = command_line.splitlines()[0] if command_line else ""
    if len(first_line) > width or first_line != command_line:
        return first_line[:width] + "..."
    return first_line


def execute(commands: Iterable[Command], session: Executor, verbose: bool = False) -> ExecutionResult:
    """Run commands in order on an open session.

    Echoed commands (every command when ``verbose``) are printed before
    they run.

    Raises:
        RemoteCommandError: On the first command with a non-zero exit status.
            The remaining commands are not issued.
    """
    result = ExecutionResult()
    for index, command in enumerate(commands):
        line = command.render()
        if command.echo or verbose:
            print(f"  $ {display(line)}")
        result.executed.append(line)
        logger.debug("Running command #%d: %s", index + 1, line)
        status = session.run(command)
        if status != 0:
            logger.error("Command #%d failed with exit code %d", index + 1, status)
            raise RemoteCommandError(index, line, status, result.executed)
    return result
