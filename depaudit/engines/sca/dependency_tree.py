"""Resolver dispatch, curation cache gate and flat-tree construction."""

from __future__ import annotations

import json
import os
import time
from pathlib import Path

import structlog

from depaudit.core.config import get_curation_cache_dir
from depaudit.core.logging import is_debug_enabled
from depaudit.engines.resolvers import RESOLVERS, ResolvedTrees, ResolverContext
from depaudit.engines.sca.resolution_config import set_resolution_repo_if_exists
from depaudit.exceptions import UnsupportedTechnologyError
from depaudit.models import FLAT_TREE_ROOT_ID, DependencyNode, DependencyTreeResult
from depaudit.params import AuditParams
from depaudit.technologies import Technology

log = structlog.get_logger("depaudit.sca")

CURATION_FIRST_RUN_MSG = (
    ". Quick note: we're running our first scan on the project with curation-audit. "
    "Expect this one to take a bit longer. Subsequent scans will be faster. "
    "Thanks for your patience"
)

# Technologies whose resolver keeps a curation cache between runs.
_CURATION_CACHE_NAMES: dict[Technology, str] = {
    Technology.MAVEN: "maven",
}


def get_curation_cache_by_tech(tech: Technology) -> str:
    name = _CURATION_CACHE_NAMES.get(tech)
    return str(get_curation_cache_dir(name)) if name else ""


def get_curation_cache_folder_and_log_msg(
    params: AuditParams,
    tech: Technology,
) -> tuple[str, str]:
    """Return ``(log_message_suffix, cache_folder)`` for a curation run.

    Both are empty for non-curation runs and for technologies without a
    cache. The advisory message is only returned while the cache directory
    is missing or empty. OSError while inspecting the directory propagates.
    """
    if not params.is_curation_cmd:
        return "", ""
    cache_folder = get_curation_cache_by_tech(tech)
    if not cache_folder:
        return "", ""
    path = Path(cache_folder)
    if path.is_dir():
        with os.scandir(path) as entries:
            if next(entries, None) is not None:
                return "", cache_folder
    return CURATION_FIRST_RUN_MSG, cache_folder


def get_tech_dependency_tree(
    params: AuditParams,
    tech: Technology,
    working_dir: str | Path,
    descriptors: list[str] | None = None,
) -> DependencyTreeResult:
    """Resolve *tech* in *working_dir* and build its flat tree.

    Returns a result whose ``flat_tree`` is None when the resolver found no
    components; the caller decides how to fail.
    """
    log_message = f"Calculating {tech.formal} dependencies"
    curation_log_msg, curation_cache_folder = get_curation_cache_folder_and_log_msg(params, tech)
    log.info(log_message + curation_log_msg + "...")

    set_resolution_repo_if_exists(params, tech, working_dir)

    resolver = RESOLVERS.get(tech)
    if resolver is None:
        raise UnsupportedTechnologyError(tech)

    ctx = ResolverContext(
        technology=tech,
        working_dir=Path(working_dir),
        server_details=params.server_details(),
        deps_repo=params.deps_repo,
        is_curation_cmd=params.is_curation_cmd,
        curation_cache_folder=curation_cache_folder,
        use_wrapper=params.use_wrapper,
        is_maven_dep_tree_installed=params.is_maven_dep_tree_installed,
        pip_requirements_file=params.pip_requirements_file,
        descriptors=list(descriptors or []),
    )
    start = time.monotonic()
    resolved: ResolvedTrees = resolver(ctx)

    result = DependencyTreeResult(
        full_trees=resolved.full_trees,
        download_urls=resolved.download_urls,
    )
    if not resolved.unique_deps and not resolved.unique_deps_with_types:
        return result

    log.debug(
        "sca.dependency_tree_created",
        technology=str(tech),
        nodes=len(resolved.unique_deps_with_types or resolved.unique_deps),
        elapsed_seconds=round(time.monotonic() - start, 1),
    )
    if resolved.unique_deps_with_types:
        result.flat_tree = create_flat_tree_with_types(resolved.unique_deps_with_types)
    else:
        result.flat_tree = create_flat_tree(resolved.unique_deps)
    return result


def create_flat_tree(unique_deps: list[str]) -> DependencyNode:
    """Single-level tree with one child per distinct id (first occurrence wins)."""
    log_deps(unique_deps)
    ids = dict.fromkeys(unique_deps)
    return DependencyNode(
        id=FLAT_TREE_ROOT_ID,
        children=[DependencyNode(id=dep) for dep in ids],
    )


def create_flat_tree_with_types(unique_deps: dict[str, list[str]]) -> DependencyNode:
    """Single-level tree whose children carry their relationship labels."""
    log_deps(unique_deps)
    return DependencyNode(
        id=FLAT_TREE_ROOT_ID,
        children=[
            DependencyNode(id=dep, types=sorted(set(types)))
            for dep, types in unique_deps.items()
        ],
    )


def log_deps(unique_deps: list[str] | dict[str, list[str]]) -> None:
    """Debug-log the unique dependency list; skips serialisation unless DEBUG is on."""
    if not is_debug_enabled():
        return
    log.debug("sca.unique_dependencies", dependencies=json.dumps(unique_deps, indent=2))
