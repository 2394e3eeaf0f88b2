"""Inject local stack builds (or a release version) into a consumer project's manifest."""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from ecoci.agents import Agent, OverrideDialect, install_command
from ecoci.context import OrchestrationContext
from ecoci.errors import ConflictingOverrides, MissingManifestField, OverrideConflict
from ecoci.stacks import get_monorepo_packages, get_rspack_package_data, patch_binding_manifests
from ecoci.types import DevDependencyStrategy, PackageInfo

Overrides = dict[str, str | bool]

PNPM_WORKSPACE_FILE = "pnpm-workspace.yaml"
FILE_PROTOCOL = "file:"


def is_local_override(value: str, base: Path | None = None) -> bool:
    """True for a path-like value naming an existing directory; scoped names never are."""
    if "/" not in value or value.startswith("@"):
        return False
    path = Path(value)
    if base is not None and not path.is_absolute():
        path = base / path
    return path.is_dir()


def normalize_overrides(overrides: Mapping[str, object], base: Path | None = None) -> dict[str, str]:
    """Drop non-string values and turn local directories into file: references."""
    normalized: dict[str, str] = {}
    for name, value in overrides.items():
        if not isinstance(value, str):
            continue
        if is_local_override(value, base):
            path = Path(value)
            if base is not None and not path.is_absolute():
                path = base / path
            normalized[name] = f"{FILE_PROTOCOL}{path.resolve()}"
        else:
            normalized[name] = value
    return normalized


def select_dev_overrides(normalized: Mapping[str, str], strategy: DevDependencyStrategy) -> dict[str, str]:
    """Overrides to also pin as devDependencies."""
    if strategy == "all":
        return dict(normalized)
    return {name: value for name, value in normalized.items() if value.startswith(FILE_PROTOCOL)}


@dataclass
class PnpmWorkspace:
    path: Path
    exists: bool
    content: dict[str, Any]


def read_pnpm_workspace(directory: Path) -> PnpmWorkspace:
    path = directory / PNPM_WORKSPACE_FILE
    if not path.exists():
        return PnpmWorkspace(path=path, exists=False, content={})
    content = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    return PnpmWorkspace(path=path, exists=True, content=content)


def write_pnpm_workspace(workspace: PnpmWorkspace) -> None:
    workspace.path.write_text(
        yaml.safe_dump(workspace.content, sort_keys=False, allow_unicode=True),
        encoding="utf-8",
    )


def read_manifest(directory: Path) -> dict[str, Any]:
    path = directory / "package.json"
    if not path.exists():
        raise MissingManifestField(f"no package.json in {directory}")
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise MissingManifestField(f"{path} does not contain a JSON object")
    return data


def write_manifest(directory: Path, manifest: Mapping[str, Any]) -> None:
    (directory / "package.json").write_text(json.dumps(manifest, indent=2) + "\n", encoding="utf-8")


def _merge_dev_dependencies(manifest: dict[str, Any], dev_overrides: Mapping[str, str]) -> None:
    manifest["devDependencies"] = {**(manifest.get("devDependencies") or {}), **dev_overrides}


def _apply_pnpm(
    directory: Path,
    manifest: dict[str, Any],
    normalized: Mapping[str, str],
    dev_overrides: Mapping[str, str],
) -> None:
    _merge_dev_dependencies(manifest, dev_overrides)

    workspace = read_pnpm_workspace(directory)
    has_workspace_overrides = workspace.exists and bool(workspace.content.get("overrides"))
    has_package_overrides = bool((manifest.get("pnpm") or {}).get("overrides"))

    if has_workspace_overrides and has_package_overrides:
        raise ConflictingOverrides(
            "Conflicting overrides detected: both pnpm-workspace.yaml and package.json contain pnpm overrides. "
            "Please use only one location for overrides configuration."
        )

    if has_workspace_overrides:
        workspace.content["overrides"] = {**workspace.content["overrides"], **normalized}
        write_pnpm_workspace(workspace)
        return

    pnpm_section = manifest.setdefault("pnpm", {})
    pnpm_section["overrides"] = {**(pnpm_section.get("overrides") or {}), **normalized}


def _apply_yarn(
    manifest: dict[str, Any],
    normalized: Mapping[str, str],
    dev_overrides: Mapping[str, str],
) -> None:
    _merge_dev_dependencies(manifest, dev_overrides)
    manifest["resolutions"] = {**(manifest.get("resolutions") or {}), **normalized}


def _apply_npm(manifest: dict[str, Any], normalized: Mapping[str, str]) -> None:
    manifest["overrides"] = {**(manifest.get("overrides") or {}), **normalized}
    for name, version in normalized.items():
        for section in ("dependencies", "devDependencies"):
            deps = manifest.get(section)
            if deps and deps.get(name):
                deps[name] = version


def apply_package_overrides(
    ctx: OrchestrationContext,
    *,
    directory: Path,
    manifest: dict[str, Any],
    overrides: Mapping[str, object],
    agent: Agent,
    before_install: Callable[[], None] | None = None,
    install: Callable[[], None] | None = None,
    install_args: Mapping[str, Sequence[str]] | None = None,
    dev_dependency_strategy: DevDependencyStrategy = "local-only",
) -> dict[str, Any]:
    """Write overrides into the project at directory and install.

    install replaces the default `<pm> install <install_args>` when given.
    Returns the manifest as written.
    """
    normalized = normalize_overrides(overrides)
    dev_overrides = select_dev_overrides(normalized, dev_dependency_strategy)
    dialect = agent.dialect

    ctx.cd(directory)
    ctx.sh(["git", "clean", "-fdxq"])

    if dialect is OverrideDialect.PNPM:
        _apply_pnpm(directory, manifest, normalized, dev_overrides)
    elif dialect is OverrideDialect.YARN:
        _apply_yarn(manifest, normalized, dev_overrides)
    elif dialect is OverrideDialect.NPM:
        _apply_npm(manifest, normalized)

    write_manifest(directory, manifest)

    if before_install is not None:
        before_install()

    if install is not None:
        install()
    else:
        args = (install_args or {}).get(agent.package_manager, ())
        ctx.sh(install_command(agent, list(args)))
    return manifest


def stack_packages(ctx: OrchestrationContext, *, release: str | None) -> list[PackageInfo]:
    """Packages of the active stack that suites consume."""
    if not ctx.stack.has_native_binding:
        return list(get_monorepo_packages(ctx))
    data = get_rspack_package_data(ctx)
    prebuilt = () if release else data.npm
    return [*prebuilt, *data.binding, *data.packages]


def resolve_override_map(
    ctx: OrchestrationContext,
    *,
    release: str | None = None,
    manual: Mapping[str, str | bool] | None = None,
) -> Overrides:
    """Map every stack package to the release version, or to its local build directory.

    In release mode a manual override that disagrees with release is an error.
    In local mode a manual override is kept as given.
    """
    overrides: Overrides = dict(manual or {})
    packages = stack_packages(ctx, release=release)

    if release:
        for package in packages:
            existing = overrides.get(package.name)
            if existing and existing != release:
                raise OverrideConflict(package.name, existing, release)
            overrides[package.name] = release
        return overrides

    if ctx.stack.has_native_binding:
        patch_binding_manifests(get_rspack_package_data(ctx).binding)
    for package in packages:
        if not overrides.get(package.name):
            overrides[package.name] = str(package.directory)
    return overrides
