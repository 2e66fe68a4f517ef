"""NuGet dependency trees from ``packages.lock.json``."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import structlog

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

log = structlog.get_logger("depaudit.resolvers")

LOCK_FILE = "packages.lock.json"


def build_nuget_dependency_tree(ctx: ResolverContext) -> ResolvedTrees:
    lock_files = sorted(ctx.working_dir.rglob(LOCK_FILE))
    if not lock_files:
        cmd = ["dotnet", "restore", "--use-lock-file"]
        source = ctx.remote_repo_url("api/nuget/v3/")
        if source:
            cmd += ["--source", f"{source}/index.json"]
        run_tool(cmd, ctx.working_dir)
        lock_files = sorted(ctx.working_dir.rglob(LOCK_FILE))
    if not lock_files:
        raise ResolverError(f"'dotnet restore' did not produce a {LOCK_FILE} in {ctx.working_dir}")

    trees = [parse_lock_file(_load(path), path.parent.name) for path in lock_files]
    return ResolvedTrees(full_trees=trees, unique_deps=unique_ids(trees))


def _load(path: Path) -> dict[str, Any]:
    try:
        return json.loads(path.read_text(encoding="utf-8-sig"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ResolverError(f"failed reading {path}: {exc}") from exc


def parse_lock_file(lock: dict[str, Any], project_name: str) -> DependencyNode:
    """Build a project tree from a lock file, merging all target frameworks.

    Within a framework each package is expanded once; later occurrences are leaves.
    """
    root = DependencyNode(id=project_name)
    seen_direct: set[str] = set()
    for framework, packages in (lock.get("dependencies") or {}).items():
        lookup = {name.lower(): (name, pkg) for name, pkg in packages.items()}
        expanded: set[str] = set()
        for name, pkg in sorted(packages.items()):
            if pkg.get("type") != "Direct":
                continue
            node = _nuget_node(name, pkg, lookup, frozenset(), expanded)
            if node.id not in seen_direct:
                seen_direct.add(node.id)
                root.children.append(node)
        log.debug("nuget.framework_parsed", project=project_name, framework=framework)
    return root


def _nuget_node(
    name: str,
    pkg: dict[str, Any],
    lookup: dict[str, tuple[str, dict[str, Any]]],
    ancestors: frozenset[str],
    expanded: set[str],
) -> DependencyNode:
    node = DependencyNode(id=component_id(Technology.NUGET, name, pkg.get("resolved")))
    if name.lower() in expanded:
        return node
    expanded.add(name.lower())
    path = ancestors | {name.lower()}
    for dep_name in sorted(pkg.get("dependencies") or {}):
        key = dep_name.lower()
        if key in path or key not in lookup:
            continue
        resolved_name, resolved_pkg = lookup[key]
        node.children.append(_nuget_node(resolved_name, resolved_pkg, lookup, path, expanded))
    return node
