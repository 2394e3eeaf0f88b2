"""Run one downstream suite against the active stack build."""

from __future__ import annotations

import contextlib
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field, replace
from pathlib import Path

from ecoci.agents import Agent, resolve_agent
from ecoci.checkout import RepoRef, ensure_checkout
from ecoci.context import OrchestrationContext
from ecoci.errors import BatchFailure
from ecoci.lifecycle import LifecycleDriver, LifecycleHookSet, Stage, TaskSpec
from ecoci.overrides import apply_package_overrides, read_manifest, resolve_override_map
from ecoci.stacks import install_profile
from ecoci.ui import error, success

WORKSPACE_DECLARATION = "pnpm-workspace.yaml"
PARKED_WORKSPACE_DECLARATION = "_pnpm-workspace.yaml"


@dataclass(frozen=True)
class RunOptions:
    """Per-run settings handed to every suite."""

    ctx: OrchestrationContext
    workspace: Path
    stack_major: int
    release: str | None = None
    verify: bool = True
    skip_git: bool = False
    agent: Agent | None = None
    suite_branch: str | None = None
    suite_tag: str | None = None
    suite_commit: str | None = None

    @property
    def stack_path(self) -> Path:
        return self.ctx.stack_path

    def for_suite(self, name: str) -> RunOptions:
        return replace(self, workspace=self.workspace / name)


@dataclass(frozen=True)
class SuiteSpec:
    """Consumer repository, the ref to test and its lifecycle hooks."""

    repo: str
    branch: str = "main"
    tag: str | None = None
    commit: str | None = None
    dir: str | None = None
    workspace: Path | None = None
    overrides: Mapping[str, str | bool] = field(default_factory=dict)
    hooks: LifecycleHookSet = field(default_factory=LifecycleHookSet)
    agent: Agent | None = None

    @classmethod
    def define(
        cls,
        repo: str,
        *,
        branch: str = "main",
        tag: str | None = None,
        commit: str | None = None,
        dir: str | None = None,
        workspace: Path | None = None,
        overrides: Mapping[str, str | bool] | None = None,
        agent: Agent | None = None,
        **stages: TaskSpec,
    ) -> SuiteSpec:
        return cls(
            repo=repo,
            branch=branch,
            tag=tag,
            commit=commit,
            dir=dir,
            workspace=workspace,
            overrides=dict(overrides or {}),
            hooks=LifecycleHookSet.from_specs(**stages),
            agent=agent,
        )

    @property
    def dir_name(self) -> str:
        return self.dir or self.repo.rstrip("/").rsplit("/", 1)[-1]


@dataclass(frozen=True)
class SuiteRunResult:
    dir: Path
    success: bool
    error: BaseException | None = None


@contextlib.contextmanager
def relocated_workspace_declaration(root: Path) -> Iterator[bool]:
    """Park root/pnpm-workspace.yaml while suites install; it breaks their pnpm installs.

    Yields whether a declaration was parked. It is restored on every exit path.
    """
    source = root / WORKSPACE_DECLARATION
    parked = root / PARKED_WORKSPACE_DECLARATION
    try:
        source.rename(parked)
        relocated = True
    except FileNotFoundError:
        relocated = False

    try:
        yield relocated
    finally:
        if relocated:
            with contextlib.suppress(FileNotFoundError):
                parked.rename(source)


def run_in_repo(options: RunOptions, spec: SuiteSpec) -> SuiteRunResult:
    """Check out spec, link the stack build into it and run its lifecycle.

    Every failure propagates to the caller.
    """
    ctx = options.ctx
    workspace = spec.workspace or options.workspace
    directory = (workspace / spec.dir_name).resolve()

    if not options.skip_git:
        ensure_checkout(
            ctx,
            RepoRef(
                repo=spec.repo,
                branch=options.suite_branch or spec.branch,
                tag=options.suite_tag or spec.tag,
                commit=options.suite_commit or spec.commit,
            ),
            directory,
        )
    else:
        ctx.cd(directory)

    with relocated_workspace_declaration(ctx.root):
        agent = resolve_agent(directory, options.agent or spec.agent)
        manifest = read_manifest(directory)
        driver = LifecycleDriver(ctx, spec.hooks, agent=agent, scripts=manifest.get("scripts") or {})
        profile = install_profile(ctx.stack)

        def install() -> None:
            overrides = resolve_override_map(ctx, release=options.release, manual=spec.overrides)
            apply_package_overrides(
                ctx,
                directory=directory,
                manifest=manifest,
                overrides=overrides,
                agent=agent,
                before_install=lambda: driver.run_stage(Stage.BEFORE_INSTALL),
                install=(lambda: driver.run_stage(Stage.INSTALL)) if spec.hooks.install else None,
                install_args=profile.install_args,
                dev_dependency_strategy=profile.dev_dependency_strategy,
            )

        driver.run(install, verify=options.verify)

    return SuiteRunResult(dir=directory, success=True)


def run_each(items: Sequence[str], action: Callable[[str], object], *, label: str) -> None:
    """Run action for every item, then fail once naming every item that failed."""
    failures: list[tuple[str, Exception]] = []
    for item in items:
        try:
            action(item)
        except Exception as exc:
            failures.append((item, exc))

    for item, exc in failures:
        error(f"{item} test failed: {exc}")

    if failures:
        raise BatchFailure(label, len(items), [item for item, _ in failures])
    success(f"{label} test all passed!")
