"""Top-level driver: suite discovery, stack builds, suite runs and bisect steps."""

from __future__ import annotations

import importlib
import pkgutil
import time
from collections.abc import Callable, Sequence
from types import ModuleType

from ecoci.bisect import BisectStep
from ecoci.checkout import get_commit_timestamp, get_permanent_ref
from ecoci.context import OrchestrationContext
from ecoci.errors import UnknownSuite
from ecoci.results import RunReport, SuiteReport, SuiteStatus, workflow_log_url
from ecoci.stacks import build_stack, parse_stack_major
from ecoci.suite import RunOptions
from ecoci.types import Stack
from ecoci.ui import error, success

SUITES_PACKAGE = "ecoci.suites"
PRECODED = "precoded"

SuiteEntry = Callable[[RunOptions], object]


def ignore_precoded(value: str | None) -> str | None:
    """`precoded` on the command line means "use the suite's own ref"."""
    return None if value == PRECODED else value


def _stack_package(stack: Stack) -> ModuleType:
    return importlib.import_module(f"{SUITES_PACKAGE}.{stack.value}")


def available_suites(stack: Stack) -> list[str]:
    package = _stack_package(stack)
    names = [
        module.name
        for module in pkgutil.iter_modules(package.__path__)
        if not module.name.startswith("_")
    ]
    return sorted(names)


def get_suites_to_run(stack: Stack, requested: Sequence[str]) -> list[str]:
    """Requested suites in the given order, or every suite of stack when none are named."""
    available = available_suites(stack)
    if not requested:
        return available
    requested = [name.replace("-", "_") for name in requested]
    invalid = [name for name in requested if not name.startswith("_") and name not in available]
    if invalid:
        raise UnknownSuite(
            f"invalid suite(s): {', '.join(invalid)} for stack {stack.value}\n"
            f"available suites: {', '.join(available)}"
        )
    return list(requested)


def load_suite(stack: Stack, name: str) -> SuiteEntry:
    module = importlib.import_module(f"{SUITES_PACKAGE}.{stack.value}.{name}")
    return module.test


def create_run_options(
    ctx: OrchestrationContext,
    stack_major: int,
    *,
    release: str | None = None,
    verify: bool = False,
    skip_git: bool = False,
    suite_branch: str | None = None,
    suite_tag: str | None = None,
    suite_commit: str | None = None,
) -> RunOptions:
    return RunOptions(
        ctx=ctx,
        workspace=ctx.workspace,
        stack_major=stack_major,
        release=release,
        verify=verify,
        skip_git=skip_git,
        suite_branch=ignore_precoded(suite_branch),
        suite_tag=ignore_precoded(suite_tag),
        suite_commit=ignore_precoded(suite_commit),
    )


def run_suite(name: str, options: RunOptions) -> None:
    """Run one precoded suite inside its own workspace directory."""
    entry = load_suite(options.ctx.stack, name)
    entry(options.for_suite(name))


def run_suites(
    ctx: OrchestrationContext,
    suites: Sequence[str],
    options: RunOptions,
    *,
    record_commit: bool = True,
) -> RunReport:
    """Run every suite in order and report each outcome; one failure does not stop the rest."""
    report = RunReport(stack=ctx.stack.value)
    if record_commit and options.release is None:
        report.commit_sha = get_permanent_ref(ctx)
        report.commit_timestamp = get_commit_timestamp(ctx)
    log_url = workflow_log_url()

    pending = list(suites)
    while pending:
        name = pending.pop(0)
        started = time.monotonic()
        try:
            run_suite(name, options)
        except KeyboardInterrupt:
            report.suites.append(SuiteReport(name=name, status=SuiteStatus.CANCELLED, log_url=log_url))
            report.suites.extend(
                SuiteReport(name=rest, status=SuiteStatus.CANCELLED, log_url=log_url) for rest in pending
            )
            error("run cancelled")
            break
        except Exception as exc:
            error(f"suite {name} failed: {exc}")
            report.suites.append(
                SuiteReport(
                    name=name,
                    status=SuiteStatus.FAILURE,
                    duration_ms=int((time.monotonic() - started) * 1000),
                    log_url=log_url,
                    notes=str(exc),
                )
            )
            continue
        success(f"suite {name} passed")
        report.suites.append(
            SuiteReport(
                name=name,
                status=SuiteStatus.SUCCESS,
                duration_ms=int((time.monotonic() - started) * 1000),
                log_url=log_url,
            )
        )
    return report


def make_bisect_step(
    ctx: OrchestrationContext,
    suites: Sequence[str],
    options_factory: Callable[..., RunOptions],
    *,
    verify: bool = False,
) -> BisectStep:
    """Build the per-commit check: rebuild the stack, then run every suite in order.

    Only the first step verifies and checks suites out; later steps reuse the
    checkouts. The first error is returned as the verdict.
    """
    state = {"first_run": True}

    def step() -> BaseException | None:
        first_run = state["first_run"]
        try:
            build_stack(ctx, verify=first_run and verify)
            stack_major = parse_stack_major(ctx)
            options = options_factory(stack_major, verify=first_run and verify, skip_git=not first_run)
            for name in suites:
                run_suite(name, options)
        except Exception as exc:
            error(f"bisect step failed: {exc}")
            return exc
        state["first_run"] = False
        return None

    return step
