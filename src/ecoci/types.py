"""Shared value types for ecoci."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Literal


class Stack(str, Enum):
    """Stacks whose builds can be linked into downstream suites."""

    RSBUILD = "rsbuild"
    RSPACK = "rspack"
    RSTEST = "rstest"
    RSLIB = "rslib"
    RSDOCTOR = "rsdoctor"
    RSPRESS = "rspress"

    @property
    def default_repository(self) -> str:
        return f"web-infra-dev/{self.value}"

    @property
    def workspace_dir(self) -> str:
        return self.value

    @property
    def has_native_binding(self) -> bool:
        """rspack ships a native binding plus per-platform npm packages."""
        return self is Stack.RSPACK

    @classmethod
    def parse(cls, value: str) -> Stack:
        normalized = value.strip().lower()
        for stack in cls:
            if stack.value == normalized:
                return stack
        choices = ", ".join(stack.value for stack in cls)
        raise ValueError(f"invalid stack: {value}. Available stacks: {choices}")


@dataclass(frozen=True)
class PackageInfo:
    """A publishable package of a stack and the directory it is built in."""

    name: str
    directory: Path


@dataclass(frozen=True)
class RspackPackageData:
    """rspack packages split by role; npm holds the host platform's prebuilt bindings."""

    npm: tuple[PackageInfo, ...]
    binding: tuple[PackageInfo, ...]
    packages: tuple[PackageInfo, ...]


DevDependencyStrategy = Literal["all", "local-only"]
