"""Select which resolved components are handed to the reachability scanner."""

from __future__ import annotations

from depaudit.models import DependencyNode
from depaudit.params import AuditParams
from depaudit.technologies import Technology


def add_third_party_dependencies_to_params(
    params: AuditParams,
    tech: Technology,
    flat_tree: DependencyNode,
    full_dependency_trees: list[DependencyNode],
) -> None:
    if should_use_all_dependencies(params.third_party_applicability_scan, tech):
        dependencies = get_direct_dependencies_from_tree([flat_tree])
    else:
        dependencies = get_direct_dependencies_from_tree(full_dependency_trees)
    params.append_dependencies_for_applicability_scan(dependencies)


def should_use_all_dependencies(third_party_applicability_scan: bool, tech: Technology) -> bool:
    """pipdeptree reports some direct dependencies as transitive, so pip always
    sends everything. The third-party flag is only honoured for npm.
    """
    return tech is Technology.PIP or (third_party_applicability_scan and tech is Technology.NPM)


def get_direct_dependencies_from_tree(dependency_trees: list[DependencyNode]) -> list[str]:
    """Ids of the roots' direct children, de-duplicated across roots."""
    direct: dict[str, None] = {}
    for tree in dependency_trees:
        for node in tree.children:
            direct.setdefault(node.id, None)
    return list(direct)
