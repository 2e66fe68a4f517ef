"""Audit parameters shared by the planner, resolvers and scan executor."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from depaudit.core.config import ServerDetails, get_server_details
from depaudit.technologies import Technology

DEFAULT_EXCLUSIONS = ["*.git*", "*node_modules*", "*target*", "*venv*", "*test*"]
DEFAULT_SCAN_TIMEOUT = 30 * 60.0  # seconds


class ApplicabilityAccumulator:
    """Append-only, de-duplicating collection of component ids for reachability scanning."""

    def __init__(self) -> None:
        self._ids: dict[str, None] = {}

    def append(self, component_ids: Iterable[str]) -> None:
        for component_id in component_ids:
            self._ids.setdefault(component_id, None)

    @property
    def dependencies(self) -> list[str]:
        return list(self._ids)

    def __len__(self) -> int:
        return len(self._ids)


@dataclass(frozen=True)
class GraphScanQuery:
    """Scan-graph request flags. Opaque to the orchestration core."""

    project_key: str | None = None
    watches: tuple[str, ...] = ()
    repo_path: str | None = None
    include_licenses: bool = False
    include_vulnerabilities: bool = True

    def as_query_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {}
        if self.project_key:
            params["project"] = self.project_key
        if self.watches:
            params["watch"] = list(self.watches)
        if self.repo_path:
            params["repo_path"] = self.repo_path
        has_policy = bool(self.project_key or self.watches or self.repo_path)
        if self.include_vulnerabilities and not has_policy:
            params["include_vulnerabilities"] = "true"
        if self.include_licenses:
            params["include_licenses"] = "true"
        return params


@dataclass(frozen=True)
class ScanGraphParameters:
    """Immutable configuration for one scan request."""

    server_details: ServerDetails
    graph_scan_query: GraphScanQuery = field(default_factory=GraphScanQuery)
    xray_version: str = ""
    fixable_only: bool = False
    min_severity: str | None = None


@dataclass
class AuditParams:
    """Mutable parameter bundle for one audit run.

    ``server_details`` and ``deps_repo`` may be overwritten by the resolver
    configuration locator right before a technology is resolved.
    """

    working_dirs: list[str] = field(default_factory=list)
    recursive: bool = False
    technologies: list[Technology] = field(default_factory=list)
    exclusions: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUSIONS))
    pip_requirements_file: str = ""
    deps_repo: str = ""
    ignore_config_file: bool = False
    is_curation_cmd: bool = False
    use_wrapper: bool = False
    is_maven_dep_tree_installed: bool = False
    third_party_applicability_scan: bool = False
    xray_version: str = ""
    fixable_only: bool = False
    min_severity: str | None = None
    graph_scan_query: GraphScanQuery = field(default_factory=GraphScanQuery)
    scan_timeout: float | None = DEFAULT_SCAN_TIMEOUT
    server_id: str | None = None
    applicability: ApplicabilityAccumulator = field(default_factory=ApplicabilityAccumulator)
    _server_details: ServerDetails | None = field(default=None, init=False, repr=False)

    def server_details(self) -> ServerDetails:
        if self._server_details is None:
            self._server_details = get_server_details(self.server_id)
        return self._server_details

    def set_server_details(self, details: ServerDetails) -> None:
        self._server_details = details

    def set_deps_repo(self, repo: str) -> None:
        self.deps_repo = repo

    def scan_graph_parameters(self, server_details: ServerDetails) -> ScanGraphParameters:
        return ScanGraphParameters(
            server_details=server_details,
            graph_scan_query=self.graph_scan_query,
            xray_version=self.xray_version,
            fixable_only=self.fixable_only,
            min_severity=self.min_severity,
        )

    def append_dependencies_for_applicability_scan(self, component_ids: Iterable[str]) -> None:
        self.applicability.append(component_ids)

    def dependencies_for_applicability_scan(self) -> list[str]:
        return self.applicability.dependencies
