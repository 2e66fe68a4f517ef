"""npm, pnpm and Yarn (classic) dependency trees."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from depaudit.engines.resolvers.base import (
    ResolvedTrees,
    ResolverContext,
    component_id,
    load_json_output,
    run_tool,
    unique_ids,
)
from depaudit.exceptions import ResolverError
from depaudit.models import DependencyNode
from depaudit.technologies import Technology


def build_npm_dependency_tree(ctx: ResolverContext) -> ResolvedTrees:
    cmd = ["npm", "ls", "--all", "--json"]
    registry = ctx.remote_repo_url("api/npm/")
    if registry:
        cmd.append(f"--registry={registry}")
    data = load_json_output(run_tool(cmd, ctx.working_dir, allow_failure=True), "npm ls")
    tree = parse_npm_ls(data, ctx.working_dir)
    return ResolvedTrees(full_trees=[tree], unique_deps=unique_ids([tree]))


def build_pnpm_dependency_tree(ctx: ResolverContext) -> ResolvedTrees:
    cmd = ["pnpm", "ls", "--depth", "Infinity", "--json"]
    data = load_json_output(run_tool(cmd, ctx.working_dir, allow_failure=True), "pnpm ls")
    if isinstance(data, dict):
        data = [data]
    trees = [parse_npm_ls(project, ctx.working_dir) for project in data]
    return ResolvedTrees(full_trees=trees, unique_deps=unique_ids(trees))


def build_yarn_dependency_tree(ctx: ResolverContext) -> ResolvedTrees:
    output = run_tool(["yarn", "list", "--json", "--no-progress"], ctx.working_dir)
    tree = parse_yarn_list(output, _read_package_json(ctx.working_dir))
    return ResolvedTrees(full_trees=[tree], unique_deps=unique_ids([tree]))


def parse_npm_ls(data: dict[str, Any], working_dir: Path) -> DependencyNode:
    """Convert ``npm ls --json`` / ``pnpm ls --json`` output to a tree rooted at the project."""
    name = data.get("name") or working_dir.name
    root = DependencyNode(id=component_id(Technology.NPM, name, data.get("version")))
    sections = [data.get("dependencies") or {}, data.get("devDependencies") or {}]
    for section in sections:
        for dep_name, dep in sorted(section.items()):
            node = _npm_node(dep_name, dep, ancestors=frozenset())
            if node is not None:
                root.children.append(node)
    return root


def _npm_node(name: str, dep: dict[str, Any], ancestors: frozenset[str]) -> DependencyNode | None:
    version = dep.get("version")
    if not version:
        # missing / unmet peer dependency
        return None
    node = DependencyNode(id=component_id(Technology.NPM, name, version))
    if node.id in ancestors:
        return None
    path = ancestors | {node.id}
    for child_name, child in sorted((dep.get("dependencies") or {}).items()):
        child_node = _npm_node(child_name, child, path)
        if child_node is not None:
            node.children.append(child_node)
    return node


def parse_yarn_list(output: str, package_json: dict[str, Any]) -> DependencyNode:
    """Convert ``yarn list --json`` (classic) output to a tree.

    Yarn prints one JSON object per line; the ``tree`` line carries the data.
    Hoisted children marked ``shadow`` are references to top-level entries.
    """
    trees: list[dict[str, Any]] | None = None
    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            event = json.loads(line)
        except json.JSONDecodeError:
            continue
        if event.get("type") == "tree":
            trees = event.get("data", {}).get("trees", [])
    if trees is None:
        raise ResolverError("could not find a dependency tree in yarn list output")

    by_name = {_split_yarn_name(t["name"])[0]: t for t in trees}
    root = DependencyNode(
        id=component_id(
            Technology.NPM, package_json.get("name") or "root", package_json.get("version")
        )
    )
    direct = {**package_json.get("dependencies", {}), **package_json.get("devDependencies", {})}
    for name in sorted(direct):
        entry = by_name.get(name)
        if entry is not None:
            root.children.append(_yarn_node(entry, by_name, frozenset()))
    return root


def _yarn_node(
    entry: dict[str, Any],
    by_name: dict[str, dict],
    ancestors: frozenset[str],
) -> DependencyNode:
    name, version = _split_yarn_name(entry["name"])
    node = DependencyNode(id=component_id(Technology.NPM, name, version))
    path = ancestors | {node.id}
    for child in entry.get("children", []):
        child_name, _ = _split_yarn_name(child["name"])
        resolved = by_name.get(child_name) if child.get("shadow") else child
        if resolved is None:
            continue
        child_id = component_id(Technology.NPM, *_split_yarn_name(resolved["name"]))
        if child_id not in path:
            node.children.append(_yarn_node(resolved, by_name, path))
    return node


def _split_yarn_name(value: str) -> tuple[str, str]:
    """``@scope/pkg@1.2.3`` → (``@scope/pkg``, ``1.2.3``)."""
    name, _, version = value.rpartition("@")
    if not name:
        return value, ""
    return name, version


def _read_package_json(working_dir: Path) -> dict[str, Any]:
    path = working_dir / "package.json"
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ResolverError(f"failed reading {path}: {exc}") from exc
