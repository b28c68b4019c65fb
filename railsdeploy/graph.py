"""Task registry and dependency-ordered invocation.

A task has a hierarchical name (``setup:db:database_yml``), an ordered list of
prerequisite tasks and a body that queues remote commands. Invoking a task
invokes its prerequisites first, in declaration order, and every task runs
at most once per runner.
"""

import logging
import posixpath
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone

from railsdeploy.commands import Command, CommandSequence, Phase
from railsdeploy.config.schema import RailsDeployConfig, SecretsConfig
from railsdeploy.errors import TaskCycleError, UnknownTaskError
from railsdeploy.target import Target

logger = logging.getLogger(__name__)

TaskBody = Callable[["TaskContext"], None]


def new_release_name() -> str:
    """UTC timestamp naming a new release directory."""
    return datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")


@dataclass(frozen=True)
class TaskDefinition:
    """A registered task."""

    name: str
    dependencies: tuple[str, ...] = ()
    body: TaskBody | None = None
    description: str | None = None


@dataclass
class TaskContext:
    """What a task body sees: the target, configuration and the command queue."""

    runner: "GraphRunner"
    target: Target
    config: RailsDeployConfig = field(default_factory=RailsDeployConfig)
    secrets: SecretsConfig = field(default_factory=SecretsConfig)
    release_name: str = field(default_factory=new_release_name)

    @property
    def commands(self) -> CommandSequence:
        return self.runner.commands

    @property
    def release_path(self) -> str:
        """Directory of the release being built by this run."""
        return posixpath.join(self.target.releases_path, self.release_name)

    def invoke(self, name: str) -> None:
        """Invoke another task from inside a body (skipped if it already ran)."""
        self.runner.invoke(name, self)

    def queue(self, *argv: str, **kwargs) -> Command:
        return self.commands.queue(*argv, **kwargs)

    def queue_echo(self, *argv: str, **kwargs) -> Command:
        return self.commands.queue_echo(*argv, **kwargs)

    def queue_script(self, script: str, **kwargs) -> Command:
        return self.commands.queue_script(script, **kwargs)

    def note(self, message: str) -> Command:
        return self.commands.note(message)

    @contextmanager
    def launch(self) -> Iterator["TaskContext"]:
        """Queue commands that run once the new release is live."""
        with self.commands.in_phase(Phase.LAUNCH):
            yield self


class GraphRunner:
    """Owns the task registry, the set of completed tasks and the command queue."""

    def __init__(self) -> None:
        self._tasks: dict[str, TaskDefinition] = {}
        self._completed: set[str] = set()
        self._running: list[str] = []
        self.commands = CommandSequence()

    def register(
        self,
        name: str,
        dependencies: Iterable[str] = (),
        body: TaskBody | None = None,
        description: str | None = None,
    ) -> TaskDefinition:
        """Register a task. An existing task with the same name is replaced."""
        if name in self._tasks:
            logger.debug("Replacing task definition: %s", name)
        # Ordered de-duplication of dependencies
        deps = tuple(dict.fromkeys(dependencies))
        definition = TaskDefinition(name=name, dependencies=deps, body=body, description=description)
        self._tasks[name] = definition
        return definition

    def task(
        self,
        name: str,
        depends: Iterable[str] = (),
        description: str | None = None,
    ) -> Callable[[TaskBody], TaskBody]:
        """Decorator form of :meth:`register`."""

        def decorator(body: TaskBody) -> TaskBody:
            doc = description
            if doc is None and body.__doc__:
                doc = body.__doc__.strip().splitlines()[0]
            self.register(name, depends, body, doc)
            return body

        return decorator

    def get(self, name: str) -> TaskDefinition:
        try:
            return self._tasks[name]
        except KeyError:
            raise UnknownTaskError(name, list(self._tasks)) from None

    def names(self) -> list[str]:
        return sorted(self._tasks)

    def describe(self) -> list[tuple[str, str]]:
        """(name, description) pairs for every registered task, sorted by name."""
        return [(name, self._tasks[name].description or "") for name in self.names()]

    @property
    def completed(self) -> frozenset[str]:
        return frozenset(self._completed)

    def __contains__(self, name: object) -> bool:
        return name in self._tasks

    def invoke(self, name: str, context: TaskContext) -> None:
        """Invoke ``name`` after its dependencies.

        Raises:
            UnknownTaskError: If ``name`` or one of its dependencies is not registered.
            TaskCycleError: If ``name`` is already being invoked further up the stack.
        """
        if name in self._completed:
            logger.debug("Task already ran: %s", name)
            return
        if name in self._running:
            start = self._running.index(name)
            raise TaskCycleError(self._running[start:] + [name])

        definition = self.get(name)
        self._running.append(name)
        try:
            for dependency in definition.dependencies:
                self.invoke(dependency, context)
            logger.debug("Running task: %s", name)
            if definition.body is not None:
                definition.body(context)
        finally:
            self._running.pop()
        self._completed.add(name)

    def build(
        self,
        name: str,
        target: Target,
        config: RailsDeployConfig | None = None,
        secrets: SecretsConfig | None = None,
        release_name: str | None = None,
    ) -> CommandSequence:
        """Walk the graph from ``name`` and return the accumulated commands.

        The runner is reset first. If the walk fails no commands are kept.
        """
        self.reset()
        context = TaskContext(
            runner=self,
            target=target,
            config=config or RailsDeployConfig(),
            secrets=secrets or SecretsConfig(),
            release_name=release_name or new_release_name(),
        )
        # Fail before any body runs if the top-level name is unknown
        self.get(name)
        try:
            self.invoke(name, context)
        except Exception:
            self.reset()
            raise
        return self.commands

    def reset(self) -> None:
        """Forget completed tasks and queued commands; registrations are kept."""
        self._completed.clear()
        self._running.clear()
        self.commands.clear()
