"""Explicit orchestration state threaded through every ecoci operation."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from ecoci.config import EcoConfig, load_config
from ecoci.shell import ExecResult, run_command
from ecoci.types import PackageInfo, RspackPackageData, Stack

WORKSPACE_MARKERS: dict[str, str] = {
    ".eslintrc.json": '{"root":true}\n',
    ".editorconfig": "root = true\n",
}


def build_env(config: EcoConfig, base: dict[str, str] | None = None) -> dict[str, str]:
    """Environment for every child process."""
    env = dict(os.environ if base is None else base)
    env.update(
        {
            "CI": "true",
            # ecosystem-ci mutates manifests, cached turbo replays would lie
            "TURBO_FORCE": "true",
            # lockfiles change because of injected overrides
            "YARN_ENABLE_IMMUTABLE_INSTALLS": "false",
            "NODE_OPTIONS": f"--max-old-space-size={config.node_max_old_space_mb}",
            # suites may skip tests that are irrelevant under ecosystem CI
            "ECOSYSTEM_CI": "true",
        }
    )
    env.update(config.env)
    return env


@dataclass
class OrchestrationContext:
    """Stack identity, workspace layout, cwd pointer and package caches for one run."""

    stack: Stack
    root: Path
    workspace: Path
    stack_path: Path
    cwd: Path
    env: dict[str, str]
    monorepo_packages: list[PackageInfo] | None = field(default=None, repr=False)
    rspack_packages: RspackPackageData | None = field(default=None, repr=False)

    def cd(self, directory: str | Path) -> Path:
        self.cwd = (self.cwd / directory).resolve()
        return self.cwd

    def run(self, command: str | list[str], *, check: bool = True) -> ExecResult:
        return run_command(command, cwd=self.cwd, env=self.env, check=check)

    def sh(self, command: str | list[str]) -> str:
        """Run command in the current directory and return stdout without the final newline."""
        return self.run(command).stdout.rstrip("\n")

    def invalidate_packages(self) -> None:
        """Forget cached package lists; required whenever the stack checkout changes."""
        self.monorepo_packages = None
        self.rspack_packages = None


def init_workspace(workspace: Path) -> None:
    """Create the workspace root with markers that stop config lookups from escaping it."""
    workspace.mkdir(parents=True, exist_ok=True)
    for name, content in WORKSPACE_MARKERS.items():
        marker = workspace / name
        if not marker.exists():
            marker.write_text(content, encoding="utf-8")


def setup_environment(
    stack: Stack,
    *,
    root: Path | None = None,
    config: EcoConfig | None = None,
) -> OrchestrationContext:
    """Resolve the workspace for stack and return a fresh context rooted at it."""
    resolved_root = (root or Path.cwd()).resolve()
    resolved_config = config if config is not None else load_config(resolved_root)
    workspace = (resolved_root / resolved_config.workspace).resolve()
    stack_path = workspace / stack.workspace_dir

    init_workspace(workspace)
    stack_path.mkdir(parents=True, exist_ok=True)

    return OrchestrationContext(
        stack=stack,
        root=resolved_root,
        workspace=workspace,
        stack_path=stack_path,
        cwd=Path.cwd().resolve(),
        env=build_env(resolved_config),
    )
