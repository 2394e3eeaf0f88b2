"""Build and test rsbuild plugins one by one, reporting every failing plugin at the end."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path

from ecoci.suite import RunOptions, SuiteSpec, run_each, run_in_repo
from ecoci.ui import warn

PLUGINS: list[str] = [
    "rstackjs/rsbuild-plugin-eslint",
]

# keep rslib's own rsbuild dependency on the published version
RSLIB_PIN = {"@rslib/core>@rsbuild/core": "latest"}


@dataclass(frozen=True)
class PluginTests:
    has_test: bool
    playwright: bool = False


def inspect_plugin(folder: Path) -> PluginTests:
    """Whether the plugin checkout has a test script, and whether it needs playwright."""
    manifest = folder / "package.json"
    if not manifest.exists():
        warn(f"not found package.json in {folder}")
        return PluginTests(has_test=False)

    data = json.loads(manifest.read_text(encoding="utf-8"))
    scripts = data.get("scripts") or {}
    dev_dependencies = data.get("devDependencies") or {}
    test_script = scripts.get("test") or ""
    return PluginTests(
        has_test=bool(test_script),
        playwright=bool(dev_dependencies.get("playwright")) or "playwright" in test_script,
    )


def run_plugin(options: RunOptions, repo: str) -> None:
    ctx = options.ctx
    folder = options.workspace / repo.split("/")[1]
    found = {"tests": PluginTests(has_test=False)}

    def prepare() -> None:
        found["tests"] = inspect_plugin(folder)
        if found["tests"].playwright:
            ctx.sh("pnpm exec playwright install --with-deps")

    def run_tests() -> None:
        if found["tests"].has_test:
            ctx.sh("pnpm run test")
        else:
            warn(f"not found test script in {repo}")

    run_in_repo(
        options,
        SuiteSpec.define(
            repo,
            branch="main",
            overrides=RSLIB_PIN,
            before_test=prepare,
            test=["build", run_tests],
        ),
    )


def test(options: RunOptions) -> None:
    run_each(PLUGINS, lambda repo: run_plugin(options, repo), label="plugins")
