"""Error taxonomy for ecosystem CI runs."""

from __future__ import annotations


class EcoCIError(RuntimeError):
    """Base class for every failure raised by the orchestration core."""


class UnsupportedPackageManager(EcoCIError):
    """Raised when a project uses a package manager without an override dialect."""


class ConflictingOverrides(EcoCIError):
    """Raised when overrides are declared in both pnpm-workspace.yaml and package.json."""


class OverrideConflict(EcoCIError):
    """Raised when a manual override disagrees with the requested release version."""

    def __init__(self, name: str, value: object, release: str):
        super().__init__(
            f"conflicting overrides[{name}]={value} and --release={release} config. "
            "Use either one or the other"
        )
        self.name = name
        self.value = value
        self.release = release


class MissingManifestField(EcoCIError):
    """Raised when a manifest file or a required manifest field is absent."""


class CheckoutFailure(EcoCIError):
    """Raised when a repository cannot be checked out at the requested ref."""


class UnsupportedPlatform(EcoCIError):
    """Raised when no prebuilt native binding exists for the host platform."""


class ConfigError(EcoCIError):
    """Raised when the ecoci config file is malformed."""


class BatchFailure(EcoCIError):
    """Raised after a batch finished with one or more failed items."""

    def __init__(self, label: str, total: int, failed: list[str]):
        super().__init__(
            f"{label} succeed {total - len(failed)}, failed {len(failed)} ({','.join(failed)})"
        )
        self.label = label
        self.total = total
        self.failed = failed


class UnknownSuite(EcoCIError):
    """Raised when a requested suite is not defined for the stack."""
