"""Core data models for the SCA scan pipeline."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field

from depaudit.engines.scan_graph.models import GraphNode, ScanResponse
from depaudit.exceptions import UnitScanError
from depaudit.technologies import Technology

FLAT_TREE_ROOT_ID = "root"


@dataclass
class DependencyNode:
    """A node in a resolved dependency tree.

    Children are owned by their parent; trees never contain cycles.
    ``types`` is only set on children of a typed flat tree.
    """

    id: str
    children: list[DependencyNode] = field(default_factory=list)
    types: list[str] | None = None

    def walk(self) -> Iterator[DependencyNode]:
        """Depth-first pre-order iteration over this node and its descendants."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def to_graph_node(self) -> GraphNode:
        return GraphNode(
            component_id=self.id,
            nodes=[child.to_graph_node() for child in self.children],
            types=self.types,
        )


@dataclass
class DependencyTreeResult:
    """Resolved trees for one technology plus the derived flat tree."""

    full_trees: list[DependencyNode] = field(default_factory=list)
    flat_tree: DependencyNode | None = None
    download_urls: dict[str, str] = field(default_factory=dict)


@dataclass
class ScanUnit:
    """One planned scan: a technology in a working directory."""

    technology: Technology
    working_directory: str
    descriptors: list[str] = field(default_factory=list)
    is_multiple_root_project: bool | None = None
    results: list[ScanResponse] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "technology": self.technology.value,
            "working_directory": self.working_directory,
            "descriptors": list(self.descriptors),
        }


@dataclass
class ScaReport:
    """Aggregated outcome of an SCA run.

    ``units`` holds only the units that completed; every failed unit is
    kept in ``errors`` so partial results are always reported.
    """

    units: list[ScanUnit] = field(default_factory=list)
    errors: list[UnitScanError] = field(default_factory=list)

    @property
    def error(self) -> ExceptionGroup | None:
        if not self.errors:
            return None
        return ExceptionGroup(f"{len(self.errors)} SCA scan(s) failed", list(self.errors))

    def raise_for_errors(self) -> None:
        error = self.error
        if error is not None:
            raise error

    @property
    def vulnerability_count(self) -> int:
        return sum(len(r.vulnerabilities) for unit in self.units for r in unit.results)
