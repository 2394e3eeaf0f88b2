"""Package manager detection and command rendering for consumer projects."""

from __future__ import annotations

import json
import shlex
from enum import Enum
from pathlib import Path

from ecoci.errors import UnsupportedPackageManager


class OverrideDialect(str, Enum):
    """Where a package manager reads dependency overrides from."""

    PNPM = "pnpm"  # pnpm-workspace.yaml overrides or package.json#pnpm.overrides
    YARN = "yarn"  # package.json#resolutions
    NPM = "npm"  # package.json#overrides plus direct dependency rewrite


class Agent(str, Enum):
    """Package managers a consumer project can be driven with."""

    NPM = "npm"
    YARN = "yarn"
    YARN_BERRY = "yarn@berry"
    PNPM = "pnpm"
    BUN = "bun"

    @property
    def package_manager(self) -> str:
        return self.value.split("@", 1)[0]

    @property
    def dialect(self) -> OverrideDialect:
        pm = self.package_manager
        for dialect in OverrideDialect:
            if dialect.value == pm:
                return dialect
        raise UnsupportedPackageManager(f"unsupported package manager detected: {pm}")


LOCKFILES: tuple[tuple[str, Agent], ...] = (
    ("bun.lockb", Agent.BUN),
    ("bun.lock", Agent.BUN),
    ("pnpm-lock.yaml", Agent.PNPM),
    ("yarn.lock", Agent.YARN),
    ("package-lock.json", Agent.NPM),
    ("npm-shrinkwrap.json", Agent.NPM),
)


def _from_package_manager_field(value: str) -> Agent | None:
    name, _, version = value.partition("@")
    name = name.strip()
    if name == "yarn":
        major = version.split(".", 1)[0]
        if major.isdigit() and int(major) > 1:
            return Agent.YARN_BERRY
        return Agent.YARN
    for agent in (Agent.NPM, Agent.PNPM, Agent.BUN):
        if agent.value == name:
            return agent
    return None


def detect_agent(directory: Path) -> Agent | None:
    """Detect the package manager of the project at directory.

    The packageManager field of package.json wins over lockfiles.
    """
    manifest = directory / "package.json"
    if manifest.exists():
        try:
            data = json.loads(manifest.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            data = {}
        field = data.get("packageManager") if isinstance(data, dict) else None
        if isinstance(field, str):
            agent = _from_package_manager_field(field)
            if agent is not None:
                return agent

    for filename, agent in LOCKFILES:
        if (directory / filename).exists():
            if agent is Agent.YARN and (directory / ".yarnrc.yml").exists():
                return Agent.YARN_BERRY
            return agent
    return None


def resolve_agent(directory: Path, explicit: Agent | str | None = None) -> Agent:
    """Return the explicit agent, or detect one; fail when neither is available."""
    if explicit is not None:
        try:
            return Agent(explicit)
        except ValueError as exc:
            allowed = ", ".join(agent.value for agent in Agent)
            raise UnsupportedPackageManager(
                f"Invalid agent {explicit}. Allowed values: {allowed}"
            ) from exc
    detected = detect_agent(directory)
    if detected is None:
        raise UnsupportedPackageManager(f"Failed to detect packagemanager in {directory}")
    return detected


def frozen_install_command(agent: Agent) -> list[str]:
    """Install strictly from the lockfile."""
    if agent is Agent.NPM:
        return ["npm", "ci"]
    if agent is Agent.YARN_BERRY:
        return ["yarn", "install", "--immutable"]
    return [agent.package_manager, "install", "--frozen-lockfile"]


def run_script_command(agent: Agent, task: str) -> list[str]:
    """Run a package.json script (with any trailing arguments) through agent."""
    return [agent.package_manager, "run", *shlex.split(task)]


def install_command(agent: Agent, args: list[str] | tuple[str, ...] = ()) -> list[str]:
    return [agent.package_manager, "install", *args]
