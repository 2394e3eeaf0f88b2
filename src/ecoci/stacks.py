"""Stack catalogue: package discovery, install profiles and stack builds."""

from __future__ import annotations

import fnmatch
import json
import platform
import sys
from dataclasses import dataclass
from importlib.resources import files
from pathlib import Path
from typing import Any

import yaml

from ecoci.agents import Agent, frozen_install_command, run_script_command
from ecoci.context import OrchestrationContext
from ecoci.errors import MissingManifestField, UnsupportedPlatform
from ecoci.types import DevDependencyStrategy, PackageInfo, RspackPackageData, Stack

RSPACK_PACKAGES_RESOURCE = "rspack_packages.json"


@dataclass(frozen=True)
class InstallProfile:
    """How a suite installs after overrides for a given stack."""

    install_args: dict[str, tuple[str, ...]]
    dev_dependency_strategy: DevDependencyStrategy


MONOREPO_PROFILE = InstallProfile(
    install_args={
        "pnpm": ("--prefer-frozen-lockfile", "--prefer-offline", "--strict-peer-dependencies", "false"),
    },
    dev_dependency_strategy="local-only",
)

NATIVE_BINDING_PROFILE = InstallProfile(
    install_args={
        "pnpm": ("--prefer-frozen-lockfile", "--prefer-offline", "--no-strict-peer-dependencies"),
    },
    dev_dependency_strategy="all",
)


def install_profile(stack: Stack) -> InstallProfile:
    return NATIVE_BINDING_PROFILE if stack.has_native_binding else MONOREPO_PROFILE


def _read_json(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise MissingManifestField(f"missing {path.name} at {path.parent}")
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise MissingManifestField(f"{path} does not contain a JSON object")
    return data


def _workspace_globs(root: Path) -> list[str]:
    workspace_file = root / "pnpm-workspace.yaml"
    if workspace_file.exists():
        data = yaml.safe_load(workspace_file.read_text(encoding="utf-8")) or {}
        packages = data.get("packages") if isinstance(data, dict) else None
        return [str(p) for p in packages or []]

    manifest = root / "package.json"
    if manifest.exists():
        workspaces = _read_json(manifest).get("workspaces")
        if isinstance(workspaces, dict):
            workspaces = workspaces.get("packages")
        if isinstance(workspaces, list):
            return [str(p) for p in workspaces]
    return []


def discover_packages(root: Path) -> list[PackageInfo]:
    """List the named packages matched by the workspace globs of the monorepo at root."""
    patterns = _workspace_globs(root)
    includes = [p.rstrip("/") for p in patterns if not p.startswith("!")]
    excludes = [p[1:].rstrip("/") for p in patterns if p.startswith("!")]

    found: list[PackageInfo] = []
    seen: set[Path] = set()
    for pattern in includes:
        for candidate in sorted(root.glob(pattern)):
            if not candidate.is_dir() or candidate in seen:
                continue
            relative = candidate.relative_to(root).as_posix()
            if "node_modules" in relative.split("/"):
                continue
            if any(fnmatch.fnmatch(relative, ex) for ex in excludes):
                continue
            manifest = candidate / "package.json"
            if not manifest.exists():
                continue
            name = _read_json(manifest).get("name")
            if not isinstance(name, str) or not name:
                continue
            seen.add(candidate)
            found.append(PackageInfo(name=name, directory=candidate.resolve()))
    return found


def get_monorepo_packages(ctx: OrchestrationContext) -> list[PackageInfo]:
    if ctx.monorepo_packages is None:
        ctx.monorepo_packages = discover_packages(ctx.stack_path)
    return ctx.monorepo_packages


def platform_key() -> str:
    """<platform>-<arch> in node's naming, e.g. linux-x64 or darwin-arm64."""
    machine = platform.machine().lower()
    arch = {"x86_64": "x64", "amd64": "x64", "aarch64": "arm64", "arm64": "arm64"}.get(machine, machine)
    os_name = "win32" if sys.platform.startswith("win") else sys.platform
    return f"{os_name}-{arch}"


def load_rspack_package_table() -> dict[str, Any]:
    text = files("ecoci").joinpath("data", RSPACK_PACKAGES_RESOURCE).read_text(encoding="utf-8")
    return json.loads(text)


def get_rspack_package_data(ctx: OrchestrationContext, key: str | None = None) -> RspackPackageData:
    if ctx.rspack_packages is not None:
        return ctx.rspack_packages

    table = load_rspack_package_table()
    key = key or platform_key()
    if key not in table["npm"]:
        raise UnsupportedPlatform(f"{key} is not supported")

    def normalize(entries: list[dict[str, str]]) -> tuple[PackageInfo, ...]:
        return tuple(
            PackageInfo(name=entry["name"], directory=ctx.stack_path / entry["directory"])
            for entry in entries
        )

    ctx.rspack_packages = RspackPackageData(
        npm=normalize(table["npm"][key]),
        binding=normalize(table["binding"]),
        packages=normalize(table["packages"]),
    )
    return ctx.rspack_packages


def patch_binding_manifests(bindings: tuple[PackageInfo, ...] | list[PackageInfo]) -> None:
    """Drop optionalDependencies so installs link the local binding instead of prebuilt ones."""
    for binding in bindings:
        manifest_path = binding.directory / "package.json"
        manifest = _read_json(manifest_path)
        manifest.pop("optionalDependencies", None)
        manifest_path.write_text(json.dumps(manifest, indent=2), encoding="utf-8")


def build_stack(ctx: OrchestrationContext, *, verify: bool = False) -> None:
    """Install and build the stack checkout, optionally running its own tests."""
    ctx.invalidate_packages()
    ctx.cd(ctx.stack_path)
    ctx.sh(frozen_install_command(Agent.PNPM))
    if ctx.stack.has_native_binding:
        ctx.sh(["cargo", "codegen"])
        ctx.sh(run_script_command(Agent.PNPM, "build:binding:release"))
        ctx.sh(run_script_command(Agent.PNPM, "--filter @rspack/binding move-binding"))
        ctx.sh(run_script_command(Agent.PNPM, "build:js"))
        if verify:
            ctx.sh(run_script_command(Agent.PNPM, "test:js"))
        return

    ctx.sh(run_script_command(Agent.PNPM, "build"))
    if verify:
        ctx.sh(run_script_command(Agent.PNPM, "test"))


def version_manifest(stack: Stack, project_path: Path) -> Path:
    if stack.has_native_binding:
        return project_path / "packages" / "rspack" / "package.json"
    return project_path / "packages" / "core" / "package.json"


def parse_major_version(version: str) -> int:
    head = version.strip().lstrip("v").split(".", 1)[0]
    try:
        return int(head)
    except ValueError as exc:
        raise ValueError(f"cannot parse major version from {version!r}") from exc


def parse_stack_major(ctx: OrchestrationContext, project_path: Path | None = None) -> int:
    """Major version of the checked out stack, read from its core package manifest."""
    manifest_path = version_manifest(ctx.stack, project_path or ctx.stack_path)
    version = _read_json(manifest_path).get("version")
    if not isinstance(version, str):
        raise MissingManifestField(f"no version field in {manifest_path}")
    return parse_major_version(version)
