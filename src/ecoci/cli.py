"""CLI surface for ecoci: build a stack, run suites against it, bisect regressions."""

from __future__ import annotations

from pathlib import Path

import click
import typer

from ecoci import __version__
from ecoci.bisect import bisect_stack
from ecoci.checkout import setup_stack_repo
from ecoci.context import OrchestrationContext, setup_environment
from ecoci.errors import EcoCIError
from ecoci.results import RunReport, SuiteStatus, write_report
from ecoci.runner import (
    available_suites,
    create_run_options,
    get_suites_to_run,
    make_bisect_step,
    run_suites,
)
from ecoci.stacks import build_stack, parse_major_version, parse_stack_major
from ecoci.types import Stack
from ecoci.ui import error, info, success, warn

cli = typer.Typer(
    name="ecoci",
    help="Ecosystem CI for the rstack build tools",
    no_args_is_help=True,
    add_help_option=False,
)

STACK_CHOICES = "|".join(stack.value for stack in Stack)


def _version_option_callback(value: bool) -> None:
    """Handle eager --version option."""
    if value:
        typer.echo(__version__)
        raise typer.Exit()


def _help_option_callback(ctx: click.Context, value: bool) -> None:
    """Handle eager --help option."""
    if value:
        typer.echo(ctx.get_help())
        raise typer.Exit()


@cli.callback()
def _cli_callback(
    help: bool = typer.Option(
        False,
        "--help",
        "-h",
        help="Show this message and exit.",
        is_eager=True,
        callback=_help_option_callback,
    ),
    version: bool = typer.Option(
        False,
        "--version",
        help="Show ecoci version and exit.",
        is_eager=True,
        callback=_version_option_callback,
    ),
) -> None:
    """Build a stack, run downstream suites against it and bisect regressions."""
    _ = (help, version)


def _fail(exc: Exception) -> typer.Exit:
    error(str(exc))
    return typer.Exit(1)


def _require_stack(stack: Stack | None) -> Stack:
    if stack is None:
        choices = ", ".join(s.value for s in Stack)
        raise EcoCIError(f"missing required --stack option. Available stacks: {choices}")
    return stack


def _finish(report: RunReport, report_path: Path | None) -> None:
    if report_path is not None:
        write_report(report_path, report)
        info(f"report={report_path}")
    status = report.overall_status
    if status is SuiteStatus.FAILURE:
        error(f"failed suites: {', '.join(report.failed)}")
        raise typer.Exit(1)
    if status is SuiteStatus.CANCELLED:
        raise typer.Exit(130)
    success(f"all {len(report.suites)} suite(s) passed")


def _build(
    ctx: OrchestrationContext,
    *,
    repo: str | None,
    branch: str,
    tag: str | None,
    commit: str | None,
    verify: bool,
    shallow: bool = True,
) -> int:
    sha = setup_stack_repo(ctx, repo=repo, branch=branch, tag=tag, commit=commit, shallow=shallow)
    info(f"{ctx.stack.value}@{sha}")
    build_stack(ctx, verify=verify)
    return parse_stack_major(ctx)


@cli.command("version")
def version() -> None:
    """Show ecoci version."""
    typer.echo(__version__)


@cli.command("suites")
def suites_cmd(
    stack: Stack | None = typer.Option(None, "--stack", help=f"Target stack ({STACK_CHOICES})."),
) -> None:
    """List the precoded suites of a stack."""
    try:
        target = _require_stack(stack)
    except EcoCIError as exc:
        raise _fail(exc) from exc
    for name in available_suites(target):
        typer.echo(name)


@cli.command("run")
def run_cmd(
    suites: list[str] | None = typer.Argument(None, help="Suites to run (default: all)."),
    stack: Stack | None = typer.Option(None, "--stack", help=f"Target stack ({STACK_CHOICES})."),
    verify: bool = typer.Option(False, "--verify", help="Verify checkouts by running their own tests."),
    repo: str | None = typer.Option(None, "--repo", help="Stack repository to use."),
    branch: str = typer.Option("main", "--branch", help="Stack branch to use."),
    tag: str | None = typer.Option(None, "--tag", help="Stack tag to use."),
    commit: str | None = typer.Option(None, "--commit", help="Stack commit sha to use."),
    release: str | None = typer.Option(None, "--release", help="Release to use from the npm registry."),
    suite_branch: str | None = typer.Option(None, "--suite-branch", help="Suite branch to use."),
    suite_tag: str | None = typer.Option(None, "--suite-tag", help="Suite tag to use."),
    suite_commit: str | None = typer.Option(None, "--suite-commit", help="Suite commit sha to use."),
    report_path: Path | None = typer.Option(None, "--report", help="Write a JSON run report here."),
    root: Path | None = typer.Option(None, "--root", help="Directory holding the workspace (default: cwd)."),
) -> None:
    """Build the selected stack and run suites against it."""
    try:
        target = _require_stack(stack)
        ctx = setup_environment(target, root=root)
        names = get_suites_to_run(target, suites or [])
        if release is None:
            stack_major = _build(ctx, repo=repo, branch=branch, tag=tag, commit=commit, verify=verify)
        else:
            stack_major = parse_major_version(release)
        options = create_run_options(
            ctx,
            stack_major,
            release=release,
            verify=verify,
            suite_branch=suite_branch,
            suite_tag=suite_tag,
            suite_commit=suite_commit,
        )
        report = run_suites(ctx, names, options)
    except (EcoCIError, ValueError) as exc:
        raise _fail(exc) from exc
    _finish(report, report_path)


@cli.command("run-suites")
def run_suites_cmd(
    suites: list[str] | None = typer.Argument(None, help="Suites to run (default: all)."),
    stack: Stack | None = typer.Option(None, "--stack", help=f"Target stack ({STACK_CHOICES})."),
    verify: bool = typer.Option(False, "--verify", help="Verify checkouts by running their own tests."),
    release: str | None = typer.Option(None, "--release", help="Release to use from the npm registry."),
    suite_branch: str | None = typer.Option(None, "--suite-branch", help="Suite branch to use."),
    suite_tag: str | None = typer.Option(None, "--suite-tag", help="Suite tag to use."),
    suite_commit: str | None = typer.Option(None, "--suite-commit", help="Suite commit sha to use."),
    report_path: Path | None = typer.Option(None, "--report", help="Write a JSON run report here."),
    root: Path | None = typer.Option(None, "--root", help="Directory holding the workspace (default: cwd)."),
) -> None:
    """Run suites against an already built stack checkout (or a release)."""
    try:
        target = _require_stack(stack)
        ctx = setup_environment(target, root=root)
        names = get_suites_to_run(target, suites or [])
        stack_major = parse_major_version(release) if release else parse_stack_major(ctx)
        options = create_run_options(
            ctx,
            stack_major,
            release=release,
            verify=verify,
            suite_branch=suite_branch,
            suite_tag=suite_tag,
            suite_commit=suite_commit,
        )
        report = run_suites(ctx, names, options)
    except (EcoCIError, ValueError) as exc:
        raise _fail(exc) from exc
    _finish(report, report_path)


def _handle_build(
    stack: Stack,
    *,
    repo: str | None,
    branch: str,
    tag: str | None,
    commit: str | None,
    verify: bool,
    root: Path | None,
) -> None:
    try:
        ctx = setup_environment(stack, root=root)
        major = _build(ctx, repo=repo, branch=branch, tag=tag, commit=commit, verify=verify)
    except (EcoCIError, ValueError) as exc:
        raise _fail(exc) from exc
    success(f"built {stack.value} (major {major}) at {ctx.stack_path}")


@cli.command("build")
def build_cmd(
    stack: Stack | None = typer.Option(None, "--stack", help=f"Target stack ({STACK_CHOICES})."),
    verify: bool = typer.Option(False, "--verify", help="Verify checkout by running tests."),
    repo: str | None = typer.Option(None, "--repo", help="Stack repository to use."),
    branch: str = typer.Option("main", "--branch", help="Stack branch to use."),
    tag: str | None = typer.Option(None, "--tag", help="Stack tag to use."),
    commit: str | None = typer.Option(None, "--commit", help="Stack commit sha to use."),
    root: Path | None = typer.Option(None, "--root", help="Directory holding the workspace (default: cwd)."),
) -> None:
    """Build the selected stack only."""
    try:
        target = _require_stack(stack)
    except EcoCIError as exc:
        raise _fail(exc) from exc
    _handle_build(target, repo=repo, branch=branch, tag=tag, commit=commit, verify=verify, root=root)


def register_build_alias(stack: Stack) -> None:
    """Attach a build-<stack> shortcut command."""

    @cli.command(f"build-{stack.value}", help=f"Build {stack.value} only.")
    def build_alias(
        verify: bool = typer.Option(False, "--verify", help=f"Verify {stack.value} checkout by running tests."),
        repo: str | None = typer.Option(None, "--repo", help=f"{stack.value} repository to use."),
        branch: str = typer.Option("main", "--branch", help=f"{stack.value} branch to use."),
        tag: str | None = typer.Option(None, "--tag", help=f"{stack.value} tag to use."),
        commit: str | None = typer.Option(None, "--commit", help=f"{stack.value} commit sha to use."),
        root: Path | None = typer.Option(None, "--root", help="Directory holding the workspace (default: cwd)."),
    ) -> None:
        _handle_build(stack, repo=repo, branch=branch, tag=tag, commit=commit, verify=verify, root=root)


for _stack in Stack:
    register_build_alias(_stack)


@cli.command("bisect")
def bisect_cmd(
    suites: list[str] | None = typer.Argument(None, help="Suites to run (default: all)."),
    good: str | None = typer.Option(None, "--good", help="Last known good ref, e.g. a previous tag. REQUIRED!"),
    stack: Stack | None = typer.Option(None, "--stack", help=f"Target stack ({STACK_CHOICES})."),
    verify: bool = typer.Option(False, "--verify", help="Verify checkouts by running tests."),
    repo: str | None = typer.Option(None, "--repo", help="Stack repository to use."),
    branch: str = typer.Option("main", "--branch", help="Stack branch to use."),
    tag: str | None = typer.Option(None, "--tag", help="Stack tag to use."),
    commit: str | None = typer.Option(None, "--commit", help="Stack commit sha to use."),
    suite_branch: str | None = typer.Option(None, "--suite-branch", help="Suite branch to use."),
    suite_tag: str | None = typer.Option(None, "--suite-tag", help="Suite tag to use."),
    suite_commit: str | None = typer.Option(None, "--suite-commit", help="Suite commit sha to use."),
    root: Path | None = typer.Option(None, "--root", help="Directory holding the workspace (default: cwd)."),
) -> None:
    """Use git bisect to find the stack commit that broke the suites."""
    if not good:
        error("you have to specify a known good version with `--good <commit|tag>`")
        raise typer.Exit(1)

    try:
        target = _require_stack(stack)
        ctx = setup_environment(target, root=root)
        names = get_suites_to_run(target, suites or [])

        def options_factory(stack_major: int, *, verify: bool, skip_git: bool):
            return create_run_options(
                ctx,
                stack_major,
                verify=verify,
                skip_git=skip_git,
                suite_branch=suite_branch,
                suite_tag=suite_tag,
                suite_commit=suite_commit,
            )

        setup_stack_repo(ctx, repo=repo, branch=branch, tag=tag, commit=commit, shallow=False)
        step = make_bisect_step(ctx, names, options_factory, verify=verify)
        if step() is None:
            info("no errors for starting commit, cannot bisect")
            return
        session = bisect_stack(ctx, good, step)
    except (EcoCIError, ValueError) as exc:
        raise _fail(exc) from exc

    if session.culprit is None:
        warn("bisect finished without isolating a single commit")
        raise typer.Exit(1)
    success(f"first bad commit: {session.culprit}")


def main() -> None:
    cli()
