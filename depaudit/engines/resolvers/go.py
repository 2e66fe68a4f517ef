"""Go modules dependency tree (``go mod graph``)."""

from __future__ import annotations

import os

from depaudit.engines.resolvers.base import (
    ResolvedTrees,
    ResolverContext,
    component_id,
    run_tool,
    unique_ids,
)
from depaudit.exceptions import ResolverError
from depaudit.models import DependencyNode
from depaudit.technologies import Technology


def build_go_dependency_tree(ctx: ResolverContext) -> ResolvedTrees:
    env = None
    proxy = ctx.remote_repo_url("api/go/")
    if proxy:
        env = {**os.environ, "GOPROXY": f"{proxy},direct"}
    output = run_tool(["go", "mod", "graph"], ctx.working_dir, env=env)
    tree = parse_go_mod_graph(output)
    return ResolvedTrees(full_trees=[tree], unique_deps=unique_ids([tree]))


def parse_go_mod_graph(output: str) -> DependencyNode:
    """Build a tree from ``go mod graph`` edges (``parent child`` per line).

    The main module is the only vertex without a ``@version``. The module
    graph is a DAG with heavy sharing and may contain cycles. Each module is
    expanded once, at its first occurrence; later occurrences are leaves.
    A module is never repeated on its own path.
    """
    edges: dict[str, list[str]] = {}
    main_module: str | None = None
    for line in output.splitlines():
        parts = line.split()
        if len(parts) != 2:
            continue
        parent, child = parts
        edges.setdefault(parent, []).append(child)
        if "@" not in parent and main_module is None:
            main_module = parent
    if main_module is None:
        raise ResolverError("could not determine the main module from 'go mod graph' output")

    def _id(vertex: str) -> str:
        name, _, version = vertex.partition("@")
        return component_id(Technology.GO, name, version or None)

    expanded: set[str] = set()

    def _build(vertex: str, path: frozenset[str]) -> DependencyNode:
        node = DependencyNode(id=_id(vertex))
        if vertex in expanded:
            return node
        expanded.add(vertex)
        for child in edges.get(vertex, []):
            if child not in path:
                node.children.append(_build(child, path | {child}))
        return node

    return _build(main_module, frozenset({main_module}))
