"""Wire models for the dependency graph scanning service."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ImpactPathNode(BaseModel):
    component_id: str
    full_path: str | None = None


class ComponentDetail(BaseModel):
    """Per-component data attached to an issue (fix versions, impact paths)."""

    model_config = ConfigDict(extra="allow")

    fixed_versions: list[str] = Field(default_factory=list)
    impact_paths: list[list[ImpactPathNode]] = Field(default_factory=list)


class Cve(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str | None = Field(default=None, alias="cve")
    cvss_v2_score: str | None = None
    cvss_v3_score: str | None = None


class Vulnerability(BaseModel):
    model_config = ConfigDict(extra="allow")

    issue_id: str = ""
    summary: str = ""
    severity: str = "Unknown"
    cves: list[Cve] = Field(default_factory=list)
    components: dict[str, ComponentDetail] = Field(default_factory=dict)
    references: list[str] = Field(default_factory=list)


class Violation(Vulnerability):
    type: str = "security"
    watch_name: str | None = None
    license_key: str | None = None


class License(BaseModel):
    model_config = ConfigDict(extra="allow")

    key: str = ""
    name: str = ""
    components: dict[str, ComponentDetail] = Field(default_factory=dict)


class ScanResponse(BaseModel):
    """Result of one graph scan. Opaque beyond component ids and severities."""

    model_config = ConfigDict(extra="allow")

    scan_id: str = ""
    package_type: str | None = None
    vulnerabilities: list[Vulnerability] = Field(default_factory=list)
    violations: list[Violation] = Field(default_factory=list)
    licenses: list[License] = Field(default_factory=list)


class GraphNode(BaseModel):
    """Request payload node: ``{"component_id", "nodes", "types"}``."""

    component_id: str
    nodes: list[GraphNode] = Field(default_factory=list)
    types: list[str] | None = None

    def payload(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)
