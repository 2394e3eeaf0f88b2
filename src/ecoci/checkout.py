"""Clone-or-reuse checkouts of stack and suite repositories."""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path

from ecoci.context import OrchestrationContext
from ecoci.errors import CheckoutFailure
from ecoci.shell import CommandFailed
from ecoci.ui import warn

_NO_DETACHED_ADVICE = ["-c", "advice.detachedHead=false"]


@dataclass(frozen=True)
class RepoRef:
    """Repository plus the ref to check out; a tag wins over a commit."""

    repo: str
    branch: str = "main"
    tag: str | None = None
    commit: str | None = None
    shallow: bool = True

    @property
    def url(self) -> str:
        """Full clone URL; bare owner/name slugs resolve to GitHub."""
        if ":" in self.repo:
            return self.repo
        return f"https://github.com/{self.repo}.git"

    @property
    def clone_ref(self) -> str:
        return self.tag or self.branch

    def fetch_target(self) -> list[str]:
        if self.tag:
            return ["tag", self.tag]
        return [self.commit or self.branch]

    def checkout_target(self) -> str:
        if self.tag:
            return f"tags/{self.tag}"
        return self.commit or self.branch


def current_remote_url(ctx: OrchestrationContext, directory: Path) -> str | None:
    """Remote URL of an existing checkout, None when it is not a usable git repo."""
    if not (directory / ".git").exists():
        return None
    previous = ctx.cwd
    ctx.cwd = directory
    try:
        result = ctx.run(["git", "ls-remote", "--get-url"], check=False)
    finally:
        ctx.cwd = previous
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def ensure_checkout(ctx: OrchestrationContext, ref: RepoRef, directory: Path) -> str:
    """Clone or reuse directory at ref and return the checked out commit hash.

    An existing checkout is reused only when its remote matches the requested
    URL; anything else at directory is deleted and cloned again.
    """
    url = ref.url
    directory = directory.resolve()

    need_clone = True
    if directory.exists():
        if current_remote_url(ctx, directory) == url:
            need_clone = False
        else:
            shutil.rmtree(directory)

    try:
        if need_clone:
            directory.parent.mkdir(parents=True, exist_ok=True)
            shallow_flags = ["--depth=1", "--no-tags"] if ref.shallow else []
            ctx.sh(
                [
                    "git",
                    *_NO_DETACHED_ADVICE,
                    "clone",
                    *shallow_flags,
                    "--branch",
                    ref.clone_ref,
                    url,
                    str(directory),
                ]
            )

        ctx.cd(directory)
        ctx.sh(["git", "clean", "-fdxq"])
        fetch_flags = ["--depth=1", "--no-tags"] if ref.shallow else ["--tags"]
        ctx.sh(["git", "fetch", *fetch_flags, "origin", *ref.fetch_target()])

        if ref.shallow:
            ctx.sh(["git", *_NO_DETACHED_ADVICE, "checkout", ref.checkout_target()])
        else:
            ctx.sh(["git", "checkout", ref.branch])
            ctx.sh(["git", "merge", "FETCH_HEAD"])
            if ref.tag or ref.commit:
                ctx.sh(["git", "reset", "--hard", ref.tag or ref.commit])

        return ctx.sh(["git", "log", "-1", "--format=%H"]).strip()
    except CommandFailed as exc:
        raise CheckoutFailure(f"checkout of {url} at {ref.checkout_target()} failed: {exc}") from exc


def setup_stack_repo(
    ctx: OrchestrationContext,
    *,
    repo: str | None = None,
    branch: str | None = None,
    tag: str | None = None,
    commit: str | None = None,
    shallow: bool = True,
) -> str:
    """Check out the active stack into its workspace directory."""
    ref = RepoRef(
        repo=repo or ctx.stack.default_repository,
        branch=branch or "main",
        tag=tag,
        commit=commit,
        shallow=shallow,
    )
    sha = ensure_checkout(ctx, ref, ctx.stack_path)
    ctx.invalidate_packages()
    return sha


def _stack_log(ctx: OrchestrationContext, fmt: str, what: str) -> str | None:
    ctx.cd(ctx.stack_path)
    try:
        return ctx.sh(["git", "log", "-1", f"--pretty=format:{fmt}"]).strip() or None
    except CommandFailed as exc:
        warn(f"Failed to obtain {what}. {exc}")
        return None


def get_permanent_ref(ctx: OrchestrationContext) -> str | None:
    """Short hash of the stack checkout's HEAD."""
    return _stack_log(ctx, "%h", "perm ref")


def get_commit_timestamp(ctx: OrchestrationContext) -> str | None:
    """Committer date (ISO 8601) of the stack checkout's HEAD."""
    return _stack_log(ctx, "%cI", "commit timestamp")
