"""git bisect driver that rebuilds the stack and reruns suites at each step."""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field

from ecoci.context import OrchestrationContext
from ecoci.ui import error

NON_CODE_COMMIT = re.compile(r"^(?:release|docs)[:(]")
STILL_BISECTING = "bisecting:"
FIRST_BAD_COMMIT = re.compile(r"^([0-9a-f]{7,64}) is the first bad commit", re.MULTILINE)

BisectStep = Callable[[], BaseException | None]


@dataclass
class BisectSession:
    """Progress of one bisection; culprit is set once git names the first bad commit."""

    good_ref: str
    current_commit_message: str = ""
    still_bisecting: bool = False
    culprit: str | None = None
    tested: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    def record(self, output: str) -> None:
        """Interpret the output of a bisect verdict command."""
        self.still_bisecting = output[: len(STILL_BISECTING)].lower() == STILL_BISECTING
        if not self.still_bisecting:
            match = FIRST_BAD_COMMIT.search(output)
            if match:
                self.culprit = match.group(1)


def is_non_code_commit(message: str) -> bool:
    return NON_CODE_COMMIT.match(message) is not None


def _reset_changes(ctx: OrchestrationContext) -> None:
    ctx.sh(["git", "reset", "--hard", "HEAD"])


def bisect_stack(ctx: OrchestrationContext, good: str, run_step: BisectStep) -> BisectSession:
    """Bisect the stack checkout between good and HEAD.

    run_step returns the error of a failed step, or None when it passed; an
    exception it raises counts as a failed step.
    Release and docs commits are skipped without running it. Errors from git
    itself end the bisection; `git bisect reset` always runs afterwards.
    """
    session = BisectSession(good_ref=good)
    try:
        ctx.cd(ctx.stack_path)
        _reset_changes(ctx)
        ctx.sh(["git", "bisect", "start"])
        ctx.sh(["git", "bisect", "bad"])
        session.record(ctx.sh(["git", "bisect", "good", good]))

        while session.still_bisecting:
            session.current_commit_message = ctx.sh(["git", "log", "-1", "--format=%s"])
            head = ctx.sh(["git", "rev-parse", "HEAD"]).strip()
            if is_non_code_commit(session.current_commit_message):
                session.skipped.append(head)
                session.record(ctx.sh(["git", "bisect", "skip"]))
                continue

            session.tested.append(head)
            try:
                failure = run_step()
            except Exception as exc:
                error(f"bisect step raised: {exc}")
                failure = exc
            ctx.cd(ctx.stack_path)
            _reset_changes(ctx)
            session.record(ctx.sh(["git", "bisect", "bad" if failure is not None else "good"]))
    except Exception as exc:
        error(f"error while bisecting: {exc}")
    finally:
        try:
            ctx.cd(ctx.stack_path)
            ctx.sh(["git", "bisect", "reset"])
        except Exception as exc:
            error(f"Error while resetting bisect: {exc}")

    return session
