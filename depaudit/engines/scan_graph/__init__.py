"""Submit flat dependency graphs to the scanning service."""

from depaudit.engines.scan_graph.models import (
    ComponentDetail,
    GraphNode,
    ImpactPathNode,
    License,
    ScanResponse,
    Violation,
    Vulnerability,
)

__all__ = [
    "ComponentDetail",
    "GraphNode",
    "ImpactPathNode",
    "License",
    "ScanResponse",
    "Violation",
    "Vulnerability",
]
