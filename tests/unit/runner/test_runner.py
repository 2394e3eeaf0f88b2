"""Tests for suite discovery, batch runs and bisect steps."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from ecoci.checkout import RepoRef
from ecoci.context import OrchestrationContext
from ecoci.errors import UnknownSuite
from ecoci.results import SuiteStatus, workflow_log_url, write_report
from ecoci.runner import (
    available_suites,
    create_run_options,
    get_suites_to_run,
    make_bisect_step,
    run_suite,
    run_suites,
)
from ecoci.types import Stack


def test_available_suites_per_stack() -> None:
    assert available_suites(Stack.RSBUILD) == ["examples", "plugins", "rstest"]
    assert "lynx_stack" in available_suites(Stack.RSPACK)
    assert available_suites(Stack.RSTEST) == ["modernjs", "rspress"]
    assert available_suites(Stack.RSLIB) == []


def test_get_suites_to_run_normalizes_and_validates() -> None:
    assert get_suites_to_run(Stack.RSPACK, ["lynx-stack", "examples"]) == ["lynx_stack", "examples"]
    assert get_suites_to_run(Stack.RSPRESS, []) == available_suites(Stack.RSPRESS)
    with pytest.raises(UnknownSuite, match="invalid suite\\(s\\): nope for stack rsbuild"):
        get_suites_to_run(Stack.RSBUILD, ["examples", "nope"])


def test_create_run_options_ignores_precoded_refs(ctx: OrchestrationContext) -> None:
    options = create_run_options(ctx, 1, suite_branch="precoded", suite_tag="v1", suite_commit=None)

    assert options.suite_branch is None
    assert options.suite_tag == "v1"
    assert options.workspace == ctx.workspace
    assert options.for_suite("examples").workspace == ctx.workspace / "examples"


def test_run_suites_continues_past_failures(ctx: OrchestrationContext, monkeypatch: pytest.MonkeyPatch) -> None:
    ran: list[str] = []

    def fake_load_suite(stack: Stack, name: str):
        def entry(options) -> None:
            ran.append(name)
            if name == "plugins":
                raise RuntimeError("plugin tests failed")

        return entry

    monkeypatch.setattr("ecoci.runner.load_suite", fake_load_suite)
    monkeypatch.delenv("GITHUB_RUN_ID", raising=False)

    options = create_run_options(ctx, 1)
    report = run_suites(ctx, ["plugins", "examples"], options, record_commit=False)

    assert ran == ["plugins", "examples"]
    assert [(s.name, s.status) for s in report.suites] == [
        ("plugins", SuiteStatus.FAILURE),
        ("examples", SuiteStatus.SUCCESS),
    ]
    assert report.overall_status is SuiteStatus.FAILURE
    assert report.failed == ["plugins"]
    assert report.suites[0].notes == "plugin tests failed"


def test_run_suites_cancel_marks_remaining(ctx: OrchestrationContext, monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_load_suite(stack: Stack, name: str):
        def entry(options) -> None:
            raise KeyboardInterrupt

        return entry

    monkeypatch.setattr("ecoci.runner.load_suite", fake_load_suite)

    report = run_suites(ctx, ["a", "b", "c"], create_run_options(ctx, 1), record_commit=False)

    assert [s.status for s in report.suites] == [SuiteStatus.CANCELLED] * 3
    assert report.overall_status is SuiteStatus.CANCELLED


def test_report_is_written_with_camel_case_keys(ctx: OrchestrationContext, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr("ecoci.runner.load_suite", lambda stack, name: (lambda options: None))
    monkeypatch.setenv("GITHUB_SERVER_URL", "https://github.com")
    monkeypatch.setenv("GITHUB_REPOSITORY", "owner/ecosystem-ci")
    monkeypatch.setenv("GITHUB_RUN_ID", "42")

    report = run_suites(ctx, ["examples"], create_run_options(ctx, 1), record_commit=False)
    report.commit_sha = "abc1234"
    path = tmp_path / "out" / "report.json"
    write_report(path, report)

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["overallStatus"] == "success"
    assert payload["commitSha"] == "abc1234"
    suite = payload["suites"][0]
    assert suite["name"] == "examples"
    assert suite["logUrl"] == "https://github.com/owner/ecosystem-ci/actions/runs/42"
    assert "durationMs" in suite


def test_workflow_log_url_requires_all_variables() -> None:
    assert workflow_log_url({"GITHUB_SERVER_URL": "https://github.com"}) is None


def test_rsbuild_examples_suite_end_to_end(
    ctx: OrchestrationContext, commands, monkeypatch: pytest.MonkeyPatch
) -> None:
    (ctx.stack_path / "pnpm-workspace.yaml").write_text(yaml.safe_dump({"packages": ["packages/*"]}), encoding="utf-8")
    core = ctx.stack_path / "packages" / "core"
    core.mkdir(parents=True)
    (core / "package.json").write_text(json.dumps({"name": "@rsbuild/core", "version": "1.4.2"}), encoding="utf-8")
    checkouts: list[RepoRef] = []

    def fake_checkout(ctx: OrchestrationContext, ref: RepoRef, directory: Path) -> str:
        checkouts.append(ref)
        directory.mkdir(parents=True)
        manifest = {"name": "rspack-examples", "scripts": {"build:rsbuild": "pnpm -r build"}}
        (directory / "package.json").write_text(json.dumps(manifest), encoding="utf-8")
        (directory / "pnpm-lock.yaml").write_text("", encoding="utf-8")
        ctx.cd(directory)
        return "f" * 40

    monkeypatch.setattr("ecoci.suite.ensure_checkout", fake_checkout)

    run_suite("examples", create_run_options(ctx, 1))

    assert checkouts[0].repo == "rstackjs/rspack-examples"
    directory = ctx.workspace / "examples" / "rspack-examples"
    manifest = json.loads((directory / "package.json").read_text(encoding="utf-8"))
    assert manifest["pnpm"]["overrides"]["@rsbuild/core"] == f"file:{core.resolve()}"
    assert commands.argvs[-1] == ["pnpm", "run", "build:rsbuild"]


def test_bisect_step_verifies_and_checks_out_only_once(
    ctx: OrchestrationContext, monkeypatch: pytest.MonkeyPatch
) -> None:
    builds: list[bool] = []
    factory_calls: list[tuple[int, bool, bool]] = []
    outcomes = iter([None, RuntimeError("suite broke")])

    def fake_run_suite(name: str, options) -> None:
        outcome = next(outcomes)
        if outcome is not None:
            raise outcome

    def options_factory(stack_major: int, *, verify: bool, skip_git: bool):
        factory_calls.append((stack_major, verify, skip_git))
        return create_run_options(ctx, stack_major, verify=verify, skip_git=skip_git)

    monkeypatch.setattr("ecoci.runner.build_stack", lambda ctx, verify: builds.append(verify))
    monkeypatch.setattr("ecoci.runner.parse_stack_major", lambda ctx: 1)
    monkeypatch.setattr("ecoci.runner.run_suite", fake_run_suite)

    step = make_bisect_step(ctx, ["examples"], options_factory, verify=True)

    assert step() is None
    verdict = step()

    assert isinstance(verdict, RuntimeError)
    assert builds == [True, False]
    assert factory_calls == [(1, True, False), (1, False, True)]
