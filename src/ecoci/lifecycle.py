"""Install/build/test lifecycle of a consumer project with pluggable hook stages."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any

from ecoci.agents import Agent, frozen_install_command, run_script_command
from ecoci.context import OrchestrationContext


@dataclass(frozen=True)
class ShellTask:
    """A package.json script name (plus arguments) or a literal command line."""

    command: str


@dataclass(frozen=True)
class CallbackTask:
    """A zero-argument action invoked in-process."""

    action: Callable[[], Any]


Task = ShellTask | CallbackTask
TaskSpec = str | Callable[[], Any] | Task | Iterable[Any] | None


def as_tasks(value: TaskSpec) -> tuple[Task, ...]:
    """Coerce a task, a command string, a callable or a sequence of them into tasks."""
    if value is None:
        return ()
    if isinstance(value, (ShellTask, CallbackTask)):
        return (value,)
    if isinstance(value, str):
        return (ShellTask(value),) if value.strip() else ()
    if callable(value):
        return (CallbackTask(value),)
    if isinstance(value, Iterable):
        tasks: list[Task] = []
        for item in value:
            if isinstance(item, (list, tuple)):
                raise TypeError(f"invalid task, nested sequences are not allowed: {item!r}")
            tasks.extend(as_tasks(item))
        return tuple(tasks)
    raise TypeError(f"invalid task, expected string or callable but got {type(value).__name__}: {value!r}")


class Stage(str, Enum):
    """Hook stages in execution order."""

    BEFORE_INSTALL = "before_install"
    INSTALL = "install"
    AFTER_INSTALL = "after_install"
    BEFORE_BUILD = "before_build"
    BUILD = "build"
    BEFORE_TEST = "before_test"
    TEST = "test"


@dataclass(frozen=True)
class LifecycleHookSet:
    """Tasks per stage; an empty stage is skipped."""

    before_install: tuple[Task, ...] = ()
    install: tuple[Task, ...] = ()
    after_install: tuple[Task, ...] = ()
    before_build: tuple[Task, ...] = ()
    build: tuple[Task, ...] = ()
    before_test: tuple[Task, ...] = ()
    test: tuple[Task, ...] = ()

    @classmethod
    def from_specs(cls, **stages: TaskSpec) -> LifecycleHookSet:
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(stages) - known)
        if unknown:
            raise TypeError(f"unknown lifecycle stage(s): {', '.join(unknown)}")
        return cls(**{name: as_tasks(spec) for name, spec in stages.items()})

    def tasks(self, stage: Stage) -> tuple[Task, ...]:
        return getattr(self, stage.value)


class LifecycleState(str, Enum):
    NOT_STARTED = "not_started"
    INSTALLING = "installing"
    BUILDING = "building"
    TESTING = "testing"
    DONE = "done"
    FAILED = "failed"


def run_tasks(
    ctx: OrchestrationContext,
    tasks: Iterable[Task],
    *,
    agent: Agent,
    scripts: Mapping[str, Any],
) -> None:
    """Run tasks one after another; the first failure propagates unchanged."""
    for task in tasks:
        match task:
            case ShellTask(command=command) if not command.strip():
                continue
            case ShellTask(command=command):
                script = command.split()[0]
                if scripts.get(script) is not None:
                    ctx.sh(run_script_command(agent, command))
                else:
                    ctx.sh(command)
            case CallbackTask(action=action):
                action()


class LifecycleDriver:
    """Runs the hook stages of one suite checkout and tracks where it got to."""

    def __init__(
        self,
        ctx: OrchestrationContext,
        hooks: LifecycleHookSet,
        *,
        agent: Agent,
        scripts: Mapping[str, Any] | None = None,
    ):
        self.ctx = ctx
        self.hooks = hooks
        self.agent = agent
        self.scripts = dict(scripts or {})
        self.state = LifecycleState.NOT_STARTED

    def run_stage(self, stage: Stage) -> None:
        run_tasks(self.ctx, self.hooks.tasks(stage), agent=self.agent, scripts=self.scripts)

    def verify(self) -> None:
        """Self-test of the untouched checkout: frozen install, build, test."""
        self.ctx.sh(frozen_install_command(self.agent))
        self.run_stage(Stage.BEFORE_BUILD)
        self.run_stage(Stage.BUILD)
        self.run_stage(Stage.BEFORE_TEST)
        self.run_stage(Stage.TEST)

    def run(self, install: Callable[[], None], *, verify: bool = False) -> None:
        """Run the lifecycle; install performs override injection and the package install."""
        try:
            if verify and self.hooks.test:
                self.state = LifecycleState.INSTALLING
                self.verify()

            self.state = LifecycleState.INSTALLING
            install()
            self.run_stage(Stage.AFTER_INSTALL)

            self.state = LifecycleState.BUILDING
            self.run_stage(Stage.BEFORE_BUILD)
            self.run_stage(Stage.BUILD)

            if self.hooks.test:
                self.state = LifecycleState.TESTING
                self.run_stage(Stage.BEFORE_TEST)
                self.run_stage(Stage.TEST)
        except Exception:
            self.state = LifecycleState.FAILED
            raise
        self.state = LifecycleState.DONE
