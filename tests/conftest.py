"""Pytest configuration and fixtures for ecoci tests."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

import pytest

from ecoci.config import EcoConfig
from ecoci.context import OrchestrationContext, setup_environment
from ecoci.shell import CommandFailed, ExecResult, to_argv
from ecoci.types import Stack


def pytest_sessionfinish(session, exitstatus):
    """Check that coverage data was collected if --cov was requested.

    This prevents silent "no data collected" scenarios that produce 0% coverage
    without failing the test run.
    """
    cov_enabled = any("--cov" in str(arg) for arg in session.config.args)
    if not cov_enabled:
        return

    coverage_files = list(Path.cwd().glob(".coverage*"))
    if not coverage_files:
        pytest.exit(
            "Coverage was enabled but no data was collected. "
            "Check that tests import from 'ecoci' (the package) not 'src/ecoci' (filesystem path).",
            returncode=1,
        )


class CommandRecorder:
    """Stand-in for ecoci.shell.run_command that records argv and cwd."""

    def __init__(self) -> None:
        self.calls: list[tuple[tuple[str, ...], Path]] = []
        self._responses: list[tuple[tuple[str, ...], str, int]] = []

    def respond(self, prefix: list[str], stdout: str = "", returncode: int = 0) -> None:
        self._responses.append((tuple(prefix), stdout, returncode))

    def __call__(
        self,
        command: str | list[str],
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
        check: bool = True,
    ) -> ExecResult:
        _ = env
        argv = tuple(to_argv(command))
        self.calls.append((argv, Path(cwd)))
        for prefix, stdout, returncode in self._responses:
            if argv[: len(prefix)] == prefix:
                result = ExecResult(argv=argv, cwd=Path(cwd), returncode=returncode, stdout=stdout)
                if check and returncode != 0:
                    raise CommandFailed(result)
                return result
        return ExecResult(argv=argv, cwd=Path(cwd), returncode=0, stdout="")

    @property
    def argvs(self) -> list[list[str]]:
        return [list(argv) for argv, _ in self.calls]

    def index(self, argv: list[str]) -> int:
        return self.argvs.index(argv)


@pytest.fixture
def ctx(tmp_path: Path) -> OrchestrationContext:
    return setup_environment(Stack.RSBUILD, root=tmp_path, config=EcoConfig())


@pytest.fixture
def rspack_ctx(tmp_path: Path) -> OrchestrationContext:
    return setup_environment(Stack.RSPACK, root=tmp_path, config=EcoConfig())


@pytest.fixture
def commands(monkeypatch: pytest.MonkeyPatch) -> CommandRecorder:
    recorder = CommandRecorder()
    monkeypatch.setattr("ecoci.context.run_command", recorder)
    return recorder


@pytest.fixture
def git_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Deterministic identity for commits made by tests."""
    for key, value in {
        "GIT_AUTHOR_NAME": "Test User",
        "GIT_AUTHOR_EMAIL": "test@example.com",
        "GIT_COMMITTER_NAME": "Test User",
        "GIT_COMMITTER_EMAIL": "test@example.com",
    }.items():
        monkeypatch.setenv(key, value)
    monkeypatch.delenv("GIT_DIR", raising=False)
