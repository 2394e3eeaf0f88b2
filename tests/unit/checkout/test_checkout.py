"""Tests for clone-or-reuse repository checkouts."""

from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from ecoci.checkout import RepoRef, ensure_checkout, get_permanent_ref, setup_stack_repo
from ecoci.context import OrchestrationContext
from ecoci.errors import CheckoutFailure
from ecoci.types import PackageInfo

URL = "https://github.com/owner/project.git"


def _git(cwd: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout.strip()


def test_repo_ref_resolves_slugs_to_github() -> None:
    assert RepoRef("owner/project").url == URL
    assert RepoRef("git@example.com:owner/project.git").url == "git@example.com:owner/project.git"


def test_repo_ref_tag_wins_over_commit() -> None:
    ref = RepoRef("owner/project", tag="v1.0.0", commit="abc123")
    assert ref.clone_ref == "v1.0.0"
    assert ref.fetch_target() == ["tag", "v1.0.0"]
    assert ref.checkout_target() == "tags/v1.0.0"


def test_shallow_checkout_clones_fetches_and_checks_out(ctx: OrchestrationContext, commands, tmp_path: Path) -> None:
    commands.respond(["git", "log", "-1", "--format=%H"], stdout="deadbeef\n")
    target = tmp_path / "checkout"

    sha = ensure_checkout(ctx, RepoRef("owner/project", commit="abc123"), target)

    assert sha == "deadbeef"
    assert commands.argvs == [
        ["git", "-c", "advice.detachedHead=false", "clone", "--depth=1", "--no-tags", "--branch", "main", URL, str(target.resolve())],
        ["git", "clean", "-fdxq"],
        ["git", "fetch", "--depth=1", "--no-tags", "origin", "abc123"],
        ["git", "-c", "advice.detachedHead=false", "checkout", "abc123"],
        ["git", "log", "-1", "--format=%H"],
    ]
    assert ctx.cwd == target.resolve()


def test_full_checkout_merges_and_resets_to_tag(ctx: OrchestrationContext, commands, tmp_path: Path) -> None:
    target = tmp_path / "checkout"

    ensure_checkout(ctx, RepoRef("owner/project", branch="dev", tag="v2.0.0", shallow=False), target)

    argvs = commands.argvs
    assert argvs[0][3:6] == ["clone", "--branch", "v2.0.0"]
    assert ["git", "fetch", "--tags", "origin", "tag", "v2.0.0"] in argvs
    checkout = commands.index(["git", "checkout", "dev"])
    merge = commands.index(["git", "merge", "FETCH_HEAD"])
    reset = commands.index(["git", "reset", "--hard", "v2.0.0"])
    assert checkout < merge < reset


def test_existing_checkout_with_matching_remote_is_reused(
    ctx: OrchestrationContext, commands, tmp_path: Path
) -> None:
    target = tmp_path / "checkout"
    (target / ".git").mkdir(parents=True)
    (target / "keep.txt").write_text("x", encoding="utf-8")
    commands.respond(["git", "ls-remote", "--get-url"], stdout=f"{URL}\n")

    ensure_checkout(ctx, RepoRef("owner/project"), target)

    assert not any("clone" in argv for argv in commands.argvs)
    assert (target / "keep.txt").exists()


def test_existing_checkout_with_other_remote_is_recloned(
    ctx: OrchestrationContext, commands, tmp_path: Path
) -> None:
    target = tmp_path / "checkout"
    (target / ".git").mkdir(parents=True)
    (target / "stale.txt").write_text("x", encoding="utf-8")
    commands.respond(["git", "ls-remote", "--get-url"], stdout="https://github.com/someone/else.git\n")

    ensure_checkout(ctx, RepoRef("owner/project"), target)

    assert not (target / "stale.txt").exists()
    assert any("clone" in argv for argv in commands.argvs)


def test_directory_without_git_metadata_is_recloned(ctx: OrchestrationContext, commands, tmp_path: Path) -> None:
    target = tmp_path / "checkout"
    target.mkdir()
    (target / "junk.txt").write_text("x", encoding="utf-8")

    ensure_checkout(ctx, RepoRef("owner/project"), target)

    assert not (target / "junk.txt").exists()
    assert not any(argv[:2] == ["git", "ls-remote"] for argv in commands.argvs)


def test_failed_git_command_raises_checkout_failure(ctx: OrchestrationContext, commands, tmp_path: Path) -> None:
    commands.respond(["git", "fetch"], stdout="fatal: couldn't find remote ref nope\n", returncode=128)

    with pytest.raises(CheckoutFailure, match="couldn't find remote ref"):
        ensure_checkout(ctx, RepoRef("owner/project", branch="nope"), tmp_path / "checkout")


def test_setup_stack_repo_uses_default_repository_and_clears_caches(
    ctx: OrchestrationContext, commands
) -> None:
    ctx.monorepo_packages = [PackageInfo(name="stale", directory=ctx.stack_path)]

    setup_stack_repo(ctx)

    clone = commands.argvs[0]
    assert "https://github.com/web-infra-dev/rsbuild.git" in clone
    assert clone[-1] == str(ctx.stack_path.resolve())
    assert ctx.monorepo_packages is None


def test_get_permanent_ref_returns_none_when_git_fails(ctx: OrchestrationContext, commands) -> None:
    commands.respond(["git", "log"], returncode=128)
    assert get_permanent_ref(ctx) is None


def test_ensure_checkout_against_local_remote(ctx: OrchestrationContext, tmp_path: Path, git_env) -> None:
    remote = tmp_path / "origin.git"
    subprocess.run(["git", "init", "--bare", str(remote)], check=True, capture_output=True)

    source = tmp_path / "source"
    source.mkdir()
    _git(source, "init")
    _git(source, "config", "user.email", "test@example.com")
    _git(source, "config", "user.name", "Test User")
    (source / "README.md").write_text("# project\n", encoding="utf-8")
    _git(source, "add", "README.md")
    _git(source, "commit", "-m", "initial")
    _git(source, "branch", "-M", "main")
    _git(source, "remote", "add", "origin", str(remote))
    _git(source, "push", "-u", "origin", "main")
    expected = _git(source, "rev-parse", "HEAD")

    ref = RepoRef(remote.as_uri())
    target = tmp_path / "workspace" / "project"

    assert ensure_checkout(ctx, ref, target) == expected
    assert (target / "README.md").exists()

    (target / "untracked.txt").write_text("x", encoding="utf-8")
    assert ensure_checkout(ctx, ref, target) == expected
    assert not (target / "untracked.txt").exists()
