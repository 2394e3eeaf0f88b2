"""Console output helpers shared by the runner and the CLI."""

from __future__ import annotations

import math
import os
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from rich.console import Console

console = Console()
err_console = Console(stderr=True)


def github_actions() -> bool:
    return bool(os.getenv("GITHUB_ACTIONS"))


def info(message: str) -> None:
    console.print(message, markup=False, highlight=False)


def success(message: str) -> None:
    console.print(f"[green]{message}[/green]", highlight=False)


def warn(message: str) -> None:
    err_console.print(f"[yellow]{message}[/yellow]", highlight=False)


def error(message: str) -> None:
    err_console.print(f"[bold red]{message}[/bold red]", highlight=False)


@contextmanager
def command_group(cwd: Path, command: str) -> Iterator[None]:
    """Announce a command; under GitHub Actions fold its output into a log group."""
    label = f"{cwd} $> {command}"
    if not github_actions():
        console.print(label, markup=False, highlight=False)
        yield
        return

    started = time.monotonic()
    sys.stdout.write(f"::group::{label}\n")
    sys.stdout.flush()
    try:
        yield
    finally:
        sys.stdout.write("::endgroup::\n")
        sys.stdout.flush()
    cost = math.ceil(time.monotonic() - started)
    console.print(f"Cost for `{command}`: {cost} s", markup=False, highlight=False)
