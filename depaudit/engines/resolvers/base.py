"""Shared resolver types and the external-tool runner."""

from __future__ import annotations

import json
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

import structlog

from depaudit.core.config import ServerDetails
from depaudit.exceptions import ResolverError
from depaudit.models import DependencyNode
from depaudit.technologies import Technology

log = structlog.get_logger("depaudit.resolvers")

DIRECT = "direct"
TRANSITIVE = "transitive"


@dataclass
class ResolverContext:
    """Everything a resolver needs, passed explicitly instead of read from the environment."""

    technology: Technology
    working_dir: Path
    server_details: ServerDetails | None = None
    deps_repo: str = ""
    is_curation_cmd: bool = False
    curation_cache_folder: str = ""
    use_wrapper: bool = False
    is_maven_dep_tree_installed: bool = False
    pip_requirements_file: str = ""
    descriptors: list[str] = field(default_factory=list)

    def remote_repo_url(self, api_path: str = "") -> str | None:
        """URL of the resolver repository, or None to use the ecosystem default registry.

        *api_path* is the repository API prefix, e.g. ``api/npm/``.
        """
        if not self.deps_repo or self.server_details is None:
            return None
        base = self.server_details.get_artifactory_url()
        if not base:
            return None
        return f"{base}{api_path}{self.deps_repo}"


@dataclass
class ResolvedTrees:
    """Raw resolver output: either ``unique_deps`` or ``unique_deps_with_types`` is filled."""

    full_trees: list[DependencyNode] = field(default_factory=list)
    unique_deps: list[str] = field(default_factory=list)
    unique_deps_with_types: dict[str, list[str]] = field(default_factory=dict)
    download_urls: dict[str, str] = field(default_factory=dict)


class Resolver(Protocol):
    def __call__(self, ctx: ResolverContext) -> ResolvedTrees: ...


def component_id(tech: Technology, name: str, version: str | None = None) -> str:
    """Build an ecosystem-qualified component id, e.g. ``npm://lodash:4.17.21``."""
    if version:
        return f"{tech.package_type}://{name}:{version}"
    return f"{tech.package_type}://{name}"


def unique_ids(trees: list[DependencyNode]) -> list[str]:
    """All component ids below the roots, first-seen order, roots excluded."""
    seen: dict[str, None] = {}
    for tree in trees:
        for child in tree.children:
            for node in child.walk():
                seen.setdefault(node.id, None)
    return list(seen)


def typed_unique_ids(trees: list[DependencyNode]) -> dict[str, list[str]]:
    """Unique component ids labelled ``direct`` and/or ``transitive``."""
    types: dict[str, set[str]] = {}
    for tree in trees:
        for child in tree.children:
            types.setdefault(child.id, set()).add(DIRECT)
            for node in child.walk():
                if node is not child:
                    types.setdefault(node.id, set()).add(TRANSITIVE)
    return {dep: sorted(labels) for dep, labels in types.items()}


def run_tool(
    cmd: list[str],
    cwd: Path,
    *,
    allow_failure: bool = False,
    env: dict[str, str] | None = None,
) -> str:
    """Run an ecosystem CLI in *cwd* and return its stdout.

    Raises ResolverError when the executable is missing, or on a non-zero
    exit unless *allow_failure* (some tools exit 1 while still printing a
    usable tree).
    """
    if shutil.which(cmd[0]) is None and not Path(cwd, cmd[0]).is_file():
        raise ResolverError(f"'{cmd[0]}' was not found in PATH")
    log.debug("resolver.exec", cmd=" ".join(cmd), cwd=str(cwd))
    try:
        proc = subprocess.run(cmd, cwd=cwd, capture_output=True, text=True, env=env, check=False)
    except OSError as exc:
        raise ResolverError(f"failed to run '{' '.join(cmd)}': {exc}") from exc
    if proc.returncode != 0:
        if allow_failure and proc.stdout.strip():
            log.warning(
                "resolver.tool_nonzero_exit",
                cmd=cmd[0],
                exit_code=proc.returncode,
                stderr=proc.stderr.strip()[:500],
            )
            return proc.stdout
        raise ResolverError(
            f"'{' '.join(cmd)}' failed (exit {proc.returncode}): {proc.stderr.strip()}"
        )
    return proc.stdout


def load_json_output(output: str, tool: str) -> Any:
    try:
        return json.loads(output)
    except json.JSONDecodeError as exc:
        raise ResolverError(f"could not parse {tool} output as JSON: {exc}") from exc
