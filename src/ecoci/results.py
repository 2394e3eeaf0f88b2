"""Per-suite outcomes and the run report consumed by the history recorder."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


class SuiteStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"


@dataclass
class SuiteReport:
    name: str
    status: SuiteStatus
    duration_ms: int | None = None
    log_url: str | None = None
    notes: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"name": self.name, "status": self.status.value}
        if self.duration_ms is not None:
            payload["durationMs"] = self.duration_ms
        if self.log_url:
            payload["logUrl"] = self.log_url
        if self.notes:
            payload["notes"] = self.notes
        return payload


@dataclass
class RunReport:
    stack: str
    suites: list[SuiteReport] = field(default_factory=list)
    commit_sha: str | None = None
    commit_timestamp: str | None = None

    @property
    def overall_status(self) -> SuiteStatus:
        statuses = {suite.status for suite in self.suites}
        if SuiteStatus.FAILURE in statuses:
            return SuiteStatus.FAILURE
        if SuiteStatus.CANCELLED in statuses:
            return SuiteStatus.CANCELLED
        return SuiteStatus.SUCCESS

    @property
    def failed(self) -> list[str]:
        return [suite.name for suite in self.suites if suite.status is SuiteStatus.FAILURE]

    def to_dict(self) -> dict[str, Any]:
        return {
            "stack": self.stack,
            "overallStatus": self.overall_status.value,
            "commitSha": self.commit_sha,
            "commitTimestamp": self.commit_timestamp,
            "suites": [suite.to_dict() for suite in self.suites],
        }


def workflow_log_url(env: dict[str, str] | None = None) -> str | None:
    """URL of the current GitHub Actions run, when running under one."""
    source = os.environ if env is None else env
    server = source.get("GITHUB_SERVER_URL")
    repository = source.get("GITHUB_REPOSITORY")
    run_id = source.get("GITHUB_RUN_ID")
    if not (server and repository and run_id):
        return None
    return f"{server}/{repository}/actions/runs/{run_id}"


def write_report(path: Path, report: RunReport) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"{json.dumps(report.to_dict(), indent=2, sort_keys=True)}\n", encoding="utf-8")
