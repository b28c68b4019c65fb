"""Structured remote commands.

Commands are built from argument lists and rendered with shell quoting, so
values such as the version label never get concatenated into a command line
unquoted. File contents travel on stdin instead of through ``echo``.
"""

import enum
import shlex
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass


class Phase(enum.Enum):
    """When a command runs relative to the rest of a deploy."""

    MAIN = "main"
    # After the new release has been switched live
    LAUNCH = "launch"


@dataclass(frozen=True)
class Command:
    """A single remote command.

    Exactly one of ``argv`` and ``script`` is set. ``script`` is rendered
    verbatim and is reserved for snippets that need shell features such as
    variable expansion or command substitution.
    """

    argv: tuple[str, ...] | None = None
    script: str | None = None
    stdin: str | None = None
    echo: bool = False
    phase: Phase = Phase.MAIN
    cwd: str | None = None
    description: str | None = None

    def __post_init__(self) -> None:
        if (self.argv is None) == (self.script is None):
            raise ValueError("Command needs exactly one of argv or script")
        if self.argv is not None and not self.argv:
            raise ValueError("Command argv must not be empty")

    def render(self) -> str:
        """Render the command as a shell command line."""
        line = shlex.join(self.argv) if self.argv is not None else self.script.strip()
        if self.cwd:
            line = f"cd {shlex.quote(self.cwd)} && {line}"
        return line

    def __str__(self) -> str:
        return self.render()


def note_command(message: str, phase: Phase = Phase.MAIN) -> Command:
    """Progress line printed by the remote shell."""
    return Command(argv=("echo", f"-----> {message}"), phase=phase)


class CommandSequence:
    """Ordered list of commands accumulated by task bodies."""

    def __init__(self) -> None:
        self._commands: list[Command] = []
        self._phase = Phase.MAIN

    @property
    def phase(self) -> Phase:
        """Phase applied to commands queued right now."""
        return self._phase

    def queue(
        self,
        *argv: str,
        stdin: str | None = None,
        cwd: str | None = None,
        echo: bool = False,
        description: str | None = None,
    ) -> Command:
        """Queue a command without echoing it before it runs."""
        command = Command(
            argv=tuple(str(arg) for arg in argv),
            stdin=stdin,
            echo=echo,
            phase=self._phase,
            cwd=cwd,
            description=description,
        )
        self._commands.append(command)
        return command

    def queue_echo(self, *argv: str, **kwargs) -> Command:
        """Queue a command that is printed before it runs."""
        kwargs["echo"] = True
        return self.queue(*argv, **kwargs)

    def queue_script(
        self,
        script: str,
        cwd: str | None = None,
        echo: bool = False,
        description: str | None = None,
    ) -> Command:
        """Queue a literal shell snippet."""
        command = Command(
            script=script,
            echo=echo,
            phase=self._phase,
            cwd=cwd,
            description=description,
        )
        self._commands.append(command)
        return command

    def note(self, message: str) -> Command:
        """Queue an ``echo "-----> message"`` progress line."""
        command = note_command(message, phase=self._phase)
        self._commands.append(command)
        return command

    def extend(self, commands: Sequence[Command]) -> None:
        self._commands.extend(commands)

    @contextmanager
    def in_phase(self, phase: Phase) -> Iterator["CommandSequence"]:
        """Tag every command queued inside the block with ``phase``."""
        previous = self._phase
        self._phase = phase
        try:
            yield self
        finally:
            self._phase = previous

    def for_phase(self, phase: Phase) -> list[Command]:
        return [c for c in self._commands if c.phase is phase]

    def ordered(self) -> list[Command]:
        """Commands in execution order: main phase first, then launch."""
        return self.for_phase(Phase.MAIN) + self.for_phase(Phase.LAUNCH)

    def rendered(self) -> list[str]:
        return [c.render() for c in self.ordered()]

    def clear(self) -> None:
        self._commands.clear()
        self._phase = Phase.MAIN

    def __iter__(self) -> Iterator[Command]:
        return iter(self.ordered())

    def __len__(self) -> int:
        return len(self._commands)

    def __bool__(self) -> bool:
        return bool(self._commands)
