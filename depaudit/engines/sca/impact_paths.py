"""Re-attach dependency paths to components reported by the scanner."""

from __future__ import annotations

from collections.abc import Iterable

from depaudit.engines.scan_graph.models import ComponentDetail, ImpactPathNode, ScanResponse
from depaudit.models import DependencyNode


def build_impact_paths_for_scan_responses(
    responses: list[ScanResponse],
    full_trees: list[DependencyNode],
) -> list[ScanResponse]:
    """Attach root-to-component paths to every issue component, in place.

    Paths come from the full trees, never the flat tree. A component missing
    from every tree gets an empty path list.
    """
    wanted: set[str] = set()
    for response in responses:
        for components in _issue_components(response):
            wanted.update(components)
    paths = find_impact_paths(wanted, full_trees)

    for response in responses:
        for components in _issue_components(response):
            for component_id, detail in components.items():
                detail.impact_paths = [
                    [ImpactPathNode(component_id=node_id) for node_id in path]
                    for path in paths.get(component_id, [])
                ]
    return responses


def find_impact_paths(
    component_ids: Iterable[str],
    full_trees: list[DependencyNode],
) -> dict[str, list[list[str]]]:
    """Every distinct path from a tree root to each wanted component id."""
    wanted = set(component_ids)
    found: dict[str, list[list[str]]] = {cid: [] for cid in wanted}
    seen: dict[str, set[tuple[str, ...]]] = {cid: set() for cid in wanted}
    if not wanted:
        return found

    for tree in full_trees:
        stack: list[tuple[DependencyNode, tuple[str, ...]]] = [(tree, (tree.id,))]
        while stack:
            node, path = stack.pop()
            if node.id in wanted and len(path) > 1 and path not in seen[node.id]:
                seen[node.id].add(path)
                found[node.id].append(list(path))
            for child in reversed(node.children):
                stack.append((child, path + (child.id,)))
    return found


def _issue_components(response: ScanResponse) -> Iterable[dict[str, ComponentDetail]]:
    for vuln in response.vulnerabilities:
        yield vuln.components
    for violation in response.violations:
        yield violation.components
    for lic in response.licenses:
        yield lic.components
