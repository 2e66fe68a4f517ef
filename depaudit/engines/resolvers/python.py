"""Pip, Pipenv and Poetry dependency trees.

Pip and Poetry projects are installed into an isolated virtualenv and
inspected with ``pipdeptree``; Pipenv ships its own ``pipenv graph``.
Download URLs come from pip's ``--report`` install report.
"""

from __future__ import annotations

import os
import sys
import tempfile
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


def build_python_dependency_tree(ctx: ResolverContext) -> ResolvedTrees:
    if ctx.technology is Technology.PIPENV:
        output = run_tool(["pipenv", "graph", "--json-tree"], ctx.working_dir)
        tree = parse_pipdeptree(load_json_output(output, "pipenv graph"), ctx.working_dir.name)
        return ResolvedTrees(full_trees=[tree], unique_deps=unique_ids([tree]))

    with tempfile.TemporaryDirectory(prefix="depaudit-py-") as tmpdir:
        tmp = Path(tmpdir)
        if ctx.technology is Technology.POETRY:
            requirements = tmp / "requirements.txt"
            run_tool(
                [
                    "poetry", "export", "-f", "requirements.txt",
                    "--without-hashes", "-o", str(requirements),
                ],
                ctx.working_dir,
            )
            install_target = ["-r", str(requirements)]
        else:
            install_target = _pip_install_target(ctx)

        python = _create_venv(tmp / "venv", ctx.working_dir)
        report_path = tmp / "report.json"
        pip_cmd = [python, "-m", "pip", "install", "--report", str(report_path), *install_target]
        index_url = ctx.remote_repo_url("api/pypi/")
        if index_url:
            pip_cmd += ["-i", f"{index_url}/simple"]
        run_tool(pip_cmd, ctx.working_dir)
        run_tool([python, "-m", "pip", "install", "pipdeptree"], ctx.working_dir)
        output = run_tool([python, "-m", "pipdeptree", "--json-tree"], ctx.working_dir)

        tree = parse_pipdeptree(load_json_output(output, "pipdeptree"), ctx.working_dir.name)
        report = load_json_output(report_path.read_text(), "pip report")
    return ResolvedTrees(
        full_trees=[tree],
        unique_deps=unique_ids([tree]),
        download_urls=parse_install_report(report),
    )


def _pip_install_target(ctx: ResolverContext) -> list[str]:
    if ctx.pip_requirements_file:
        return ["-r", ctx.pip_requirements_file]
    if (ctx.working_dir / "setup.py").is_file() or (ctx.working_dir / "pyproject.toml").is_file():
        return ["."]
    requirements = ctx.working_dir / "requirements.txt"
    if requirements.is_file():
        return ["-r", str(requirements)]
    raise ResolverError(
        f"no setup.py, pyproject.toml or requirements.txt found in {ctx.working_dir}"
    )


def _create_venv(venv_dir: Path, cwd: Path) -> str:
    run_tool([sys.executable, "-m", "venv", str(venv_dir)], cwd)
    bin_dir = "Scripts" if os.name == "nt" else "bin"
    return str(venv_dir / bin_dir / "python")


# Packages pipdeptree reports that belong to the tooling, not the project.
_TOOLING_PACKAGES = {"pip", "setuptools", "wheel", "pipdeptree"}


def parse_pipdeptree(data: list[dict[str, Any]], project_name: str) -> DependencyNode:
    """Convert ``pipdeptree --json-tree`` output to a tree rooted at the project.

    Top-level entries are packages nothing else requires; pipdeptree cannot
    tell those apart from real direct dependencies.
    """
    root = DependencyNode(id=project_name)
    for package in data:
        if package.get("key") in _TOOLING_PACKAGES:
            continue
        root.children.append(_pip_node(package, frozenset()))
    return root


def _pip_node(package: dict[str, Any], ancestors: frozenset[str]) -> DependencyNode:
    node = DependencyNode(
        id=component_id(Technology.PIP, package["key"], package.get("installed_version"))
    )
    path = ancestors | {node.id}
    for dep in package.get("dependencies", []):
        dep_id = component_id(Technology.PIP, dep["key"], dep.get("installed_version"))
        if dep_id not in path:
            node.children.append(_pip_node(dep, path))
    return node


def parse_install_report(report: dict[str, Any]) -> dict[str, str]:
    """Map component ids to the artifact URL pip downloaded them from."""
    urls: dict[str, str] = {}
    for item in report.get("install", []):
        metadata = item.get("metadata", {})
        url = item.get("download_info", {}).get("url")
        if metadata.get("name") and url:
            name = metadata["name"].lower().replace("_", "-")
            urls[component_id(Technology.PIP, name, metadata.get("version"))] = url
    return urls
