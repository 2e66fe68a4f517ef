"""Custom exceptions for depaudit."""

from __future__ import annotations

from depaudit.technologies import Technology


class AuditError(Exception):
    """Base exception for all audit errors."""


class DetectionError(AuditError):
    """Raised when technologies cannot be detected in a requested directory."""


class ResolverConfigError(AuditError):
    """Raised when a per-technology resolver configuration file is unusable."""


class MissingResolverError(ResolverConfigError):
    """Raised when a valid configuration file declares no resolver repository.

    Callers building a dependency tree treat this as "use the default registry".
    """


class ResolverError(AuditError):
    """Raised when an ecosystem tool fails to produce a dependency tree."""


class UnsupportedTechnologyError(AuditError):
    """Raised when no resolver is registered for a technology."""

    def __init__(self, tech: Technology | str):
        self.tech = tech
        super().__init__(f"{tech} is currently not supported")


class DependencyTreeError(AuditError):
    """Raised when building a technology's dependency tree fails."""


class NoDependenciesError(AuditError):
    """Raised when resolution succeeds but yields no components."""

    def __init__(self) -> None:
        super().__init__(
            "no dependencies were found. "
            "Please try to build your project and re-run the audit command"
        )


class ScanServiceError(AuditError):
    """Raised when the scanning service rejects a request or cannot be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class ScanRequestError(AuditError):
    """Raised when a dependency graph scan request fails for a technology."""


class ScanCancelledError(AuditError):
    """Raised when a scan request is cancelled or times out."""


class WorkingDirectoryError(AuditError):
    """Raised when the process cannot change into a scan's working directory."""


class UnitScanError(AuditError):
    """A single scan unit failure, tagged with where it happened."""

    def __init__(self, technology: Technology, working_directory: str, cause: BaseException):
        self.technology = technology
        self.working_directory = working_directory
        self.cause = cause
        super().__init__(
            f"audit command in '{working_directory}' ({technology}) failed:\n{cause}"
        )
