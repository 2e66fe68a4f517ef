"""Submit a flat dependency graph to the scanning service and filter the results."""

from __future__ import annotations

from typing import TypeVar

import structlog

from depaudit.engines.scan_graph.client import XrayGraphClient
from depaudit.engines.scan_graph.models import GraphNode, ScanResponse, Vulnerability
from depaudit.exceptions import ScanServiceError
from depaudit.models import DependencyNode
from depaudit.params import ScanGraphParameters
from depaudit.technologies import Technology

log = structlog.get_logger("depaudit.scan_graph")

GRAPH_SCAN_MIN_XRAY_VERSION = "3.29.0"
MAX_GRAPH_NODES = 5000

SEVERITY_ORDER = {"unknown": 0, "low": 1, "medium": 2, "high": 3, "critical": 4}

V = TypeVar("V", bound=Vulnerability)


async def run_xray_dependencies_tree_scan_graph(
    flat_tree: DependencyNode,
    tech: Technology,
    scan_graph_params: ScanGraphParameters,
    client: XrayGraphClient | None = None,
) -> list[ScanResponse]:
    """Scan *flat_tree* and return one filtered response per submitted batch.

    Graphs larger than ``MAX_GRAPH_NODES`` are split across requests.
    """
    own_client = client is None
    if client is None:
        client = XrayGraphClient(scan_graph_params.server_details)
    try:
        version = scan_graph_params.xray_version or await client.get_version()
        validate_xray_version(version)

        query = scan_graph_params.graph_scan_query.as_query_params()
        responses: list[ScanResponse] = []
        batches = split_flat_tree(flat_tree)
        for index, batch in enumerate(batches, start=1):
            log.info(
                "scan_graph.scanning",
                technology=str(tech),
                batch=index,
                batches=len(batches),
                components=len(batch.nodes),
            )
            scan_id = await client.scan_graph(batch, query)
            response = await client.get_scan_graph_results(scan_id, query)
            if response.package_type is None:
                response.package_type = tech.value
            responses.append(filter_response(response, scan_graph_params))
        return responses
    finally:
        if own_client:
            await client.close()


def split_flat_tree(
    flat_tree: DependencyNode, max_nodes: int = MAX_GRAPH_NODES
) -> list[GraphNode]:
    children = flat_tree.children
    if len(children) <= max_nodes:
        return [flat_tree.to_graph_node()]
    return [
        GraphNode(
            component_id=flat_tree.id,
            nodes=[child.to_graph_node() for child in children[start : start + max_nodes]],
        )
        for start in range(0, len(children), max_nodes)
    ]


def validate_xray_version(version: str) -> None:
    if not version:
        raise ScanServiceError("could not determine the scanning service version")
    if _version_tuple(version) < _version_tuple(GRAPH_SCAN_MIN_XRAY_VERSION):
        raise ScanServiceError(
            f"dependency graph scans require Xray {GRAPH_SCAN_MIN_XRAY_VERSION} "
            f"or later, found {version}"
        )


def _version_tuple(version: str) -> tuple[int, ...]:
    parts = []
    for part in version.split("-", 1)[0].split("."):
        digits = "".join(ch for ch in part if ch.isdigit())
        parts.append(int(digits) if digits else 0)
    return tuple(parts)


# ── result filters ─────────────────────────────────────────────────────────


def filter_response(response: ScanResponse, params: ScanGraphParameters) -> ScanResponse:
    if not params.fixable_only and not params.min_severity:
        return response
    threshold = severity_rank(params.min_severity) if params.min_severity else 0
    response.vulnerabilities = _filter_issues(
        response.vulnerabilities, threshold, params.fixable_only
    )
    response.violations = _filter_issues(response.violations, threshold, params.fixable_only)
    return response


def severity_rank(severity: str) -> int:
    try:
        return SEVERITY_ORDER[severity.strip().lower()]
    except KeyError:
        raise ValueError(f"unknown severity {severity!r}") from None


def _filter_issues(issues: list[V], threshold: int, fixable_only: bool) -> list[V]:
    kept = [issue for issue in issues if _meets_severity(issue, threshold)]
    if fixable_only:
        kept = [_fixable_components_only(issue) for issue in kept]
        kept = [issue for issue in kept if issue.components]
    return kept


def _meets_severity(issue: Vulnerability, threshold: int) -> bool:
    return SEVERITY_ORDER.get(issue.severity.lower(), 0) >= threshold


def _fixable_components_only(issue: V) -> V:
    """Copy of *issue* keeping only components that have a fixed version."""
    components = {
        cid: detail for cid, detail in issue.components.items() if detail.fixed_versions
    }
    return issue.model_copy(update={"components": components})
