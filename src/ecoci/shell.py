"""Command runner used for every git, package manager and hook invocation."""

from __future__ import annotations

import shlex
import subprocess
import sys
import time
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from ecoci.errors import EcoCIError
from ecoci.ui import command_group

_DETAIL_LINES = 20


@dataclass(frozen=True)
class ExecResult:
    """Result envelope for subprocess execution.

    stderr is never captured; it streams straight to the parent's stderr.
    """

    argv: tuple[str, ...]
    cwd: Path
    returncode: int
    stdout: str
    duration_s: float = 0.0


class CommandFailed(EcoCIError):
    """Raised when a command returns non-zero in check mode."""

    def __init__(self, result: ExecResult):
        rendered = shlex.join(result.argv)
        tail = result.stdout.strip().splitlines()[-_DETAIL_LINES:]
        message = f"command failed ({result.returncode}): {rendered}"
        if tail:
            message += "\n" + "\n".join(tail)
        super().__init__(message)
        self.result = result


def to_argv(command: str | list[str] | tuple[str, ...]) -> list[str]:
    if isinstance(command, str):
        return shlex.split(command)
    return list(command)


def run_command(
    command: str | list[str] | tuple[str, ...],
    *,
    cwd: Path,
    env: Mapping[str, str] | None = None,
    check: bool = True,
) -> ExecResult:
    """Run command, tee its stdout to ours and return structured result."""
    argv = to_argv(command)
    rendered = command if isinstance(command, str) else shlex.join(argv)
    started = time.monotonic()
    chunks: list[str] = []

    with command_group(cwd, rendered):
        try:
            proc = subprocess.Popen(
                argv,
                cwd=cwd,
                env=dict(env) if env is not None else None,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=None,
                text=True,
                errors="replace",
            )
        except FileNotFoundError as exc:
            result = ExecResult(
                argv=tuple(argv),
                cwd=cwd,
                returncode=127,
                stdout=str(exc),
                duration_s=time.monotonic() - started,
            )
            raise CommandFailed(result) from exc

        with proc:
            assert proc.stdout is not None
            for line in proc.stdout:
                sys.stdout.write(line)
                chunks.append(line)
            sys.stdout.flush()
            returncode = proc.wait()

    result = ExecResult(
        argv=tuple(argv),
        cwd=cwd,
        returncode=returncode,
        stdout="".join(chunks),
        duration_s=time.monotonic() - started,
    )
    if check and result.returncode != 0:
        raise CommandFailed(result)
    return result
