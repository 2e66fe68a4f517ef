"""Maven and Gradle dependency trees, parsed from the build tools' text reports."""

from __future__ import annotations

import re
import tempfile
from pathlib import Path
from xml.sax.saxutils import escape

from depaudit.engines.resolvers.base import (
    ResolvedTrees,
    ResolverContext,
    component_id,
    run_tool,
    typed_unique_ids,
)
from depaudit.exceptions import ResolverError
from depaudit.models import DependencyNode
from depaudit.technologies import Technology

MAVEN_DEPENDENCY_PLUGIN = "org.apache.maven.plugins:maven-dependency-plugin:3.6.1"

_MAVEN_PREFIX_RE = re.compile(r"^\[(INFO|WARNING|DEBUG)\]\s?")
_MAVEN_TREE_GOAL_RE = re.compile(r"^--- (maven-)?dependency(-plugin)?:\S*:tree\b")
_MAVEN_BRANCH_RE = re.compile(r"[+\\]- ")
_GRADLE_BRANCH_RE = re.compile(r"[+\\]--- ")


def build_java_dependency_tree(ctx: ResolverContext) -> ResolvedTrees:
    with tempfile.TemporaryDirectory(prefix="depaudit-java-") as tmpdir:
        if ctx.technology is Technology.MAVEN:
            output = run_tool(_maven_command(ctx, Path(tmpdir)), ctx.working_dir)
            trees = parse_maven_tree(output)
        else:
            output = run_tool(_gradle_command(ctx, Path(tmpdir)), ctx.working_dir)
            trees = [parse_gradle_dependencies(output, ctx.working_dir.name)]
    if not trees:
        raise ResolverError(f"no {ctx.technology.formal} modules found in build output")
    return ResolvedTrees(full_trees=trees, unique_deps_with_types=typed_unique_ids(trees))


# ── Maven ────────────────────────────────────────────────────────────────


def _maven_command(ctx: ResolverContext, tmp: Path) -> list[str]:
    executable = "./mvnw" if ctx.use_wrapper else "mvn"
    goal = "dependency:tree"
    if not ctx.is_maven_dep_tree_installed:
        goal = f"{MAVEN_DEPENDENCY_PLUGIN}:tree"
    cmd = [executable, goal, "-B"]
    mirror = ctx.remote_repo_url()
    if mirror:
        settings = tmp / "settings.xml"
        settings.write_text(_maven_settings(mirror, ctx), encoding="utf-8")
        cmd += ["-s", str(settings)]
    if ctx.is_curation_cmd and ctx.curation_cache_folder:
        cmd.append(f"-Dmaven.repo.local={ctx.curation_cache_folder}")
    return cmd


def _maven_settings(mirror_url: str, ctx: ResolverContext) -> str:
    server = ""
    details = ctx.server_details
    if details is not None and (details.access_token or details.user):
        user = escape(details.user or "")
        password = escape(details.access_token or details.password or "")
        server = (
            f"<servers><server><id>depaudit-resolver</id>"
            f"<username>{user}</username><password>{password}</password></server></servers>"
        )
    return (
        '<settings xmlns="http://maven.apache.org/SETTINGS/1.0.0">'
        f"{server}<mirrors><mirror><id>depaudit-resolver</id><mirrorOf>*</mirrorOf>"
        f"<url>{escape(mirror_url)}</url></mirror></mirrors></settings>\n"
    )


def parse_maven_tree(output: str) -> list[DependencyNode]:
    """Parse ``mvn dependency:tree`` output. One tree per module."""
    trees: list[DependencyNode] = []
    stack: list[DependencyNode] = []
    in_tree = False
    for raw in output.splitlines():
        line = _MAVEN_PREFIX_RE.sub("", raw.rstrip())
        if _MAVEN_TREE_GOAL_RE.match(line):
            in_tree, stack = True, []
            continue
        if not in_tree:
            continue
        if not line.strip() or line.startswith("---"):
            in_tree = False
            continue
        match = _MAVEN_BRANCH_RE.search(line)
        if match is None:
            if stack:
                in_tree = False
                continue
            root = DependencyNode(id=_maven_gav(line.strip(), root=True))
            trees.append(root)
            stack = [root]
            continue
        depth = match.start() // 3 + 1
        node = DependencyNode(id=_maven_gav(line[match.end():].strip()))
        del stack[depth:]
        if not stack:
            raise ResolverError(f"unexpected maven dependency tree line: {raw!r}")
        stack[-1].children.append(node)
        stack.append(node)
    return trees


def _maven_gav(coordinate: str, root: bool = False) -> str:
    coordinate = coordinate.split(" ", 1)[0]
    parts = coordinate.split(":")
    if root and len(parts) >= 4:
        group, artifact, version = parts[0], parts[1], parts[-1]
    elif len(parts) == 5:
        group, artifact, _, version, _ = parts
    elif len(parts) >= 6:
        group, artifact, version = parts[0], parts[1], parts[4]
    elif len(parts) == 4:
        group, artifact, version = parts[0], parts[1], parts[3]
    else:
        raise ResolverError(f"unrecognised maven coordinate: {coordinate!r}")
    return component_id(Technology.MAVEN, f"{group}:{artifact}", version)


# ── Gradle ───────────────────────────────────────────────────────────────


def _gradle_command(ctx: ResolverContext, tmp: Path) -> list[str]:
    executable = "./gradlew" if ctx.use_wrapper else "gradle"
    cmd = [executable, "dependencies", "--configuration", "runtimeClasspath", "-q"]
    repo = ctx.remote_repo_url()
    if repo:
        init_script = tmp / "depaudit.init.gradle"
        init_script.write_text(_gradle_init_script(repo, ctx), encoding="utf-8")
        cmd += ["--init-script", str(init_script)]
    return cmd


def _gradle_init_script(repo_url: str, ctx: ResolverContext) -> str:
    credentials = ""
    details = ctx.server_details
    if details is not None and (details.access_token or details.user):
        user = details.user or ""
        password = details.access_token or details.password or ""
        credentials = (
            f"\n            credentials {{ username = '{user}'; password = '{password}' }}"
        )
    return (
        "allprojects {\n"
        "    repositories {\n"
        "        clear()\n"
        f"        maven {{\n            url '{repo_url}'{credentials}\n        }}\n"
        "    }\n"
        "}\n"
    )


def parse_gradle_dependencies(output: str, project_name: str) -> DependencyNode:
    """Parse ``gradle dependencies`` output for one configuration.

    ``(*)`` marks a subtree printed earlier; it is expanded from that first
    occurrence. ``(c)`` constraints and ``(n)`` unresolved entries are skipped,
    and ``project :x`` lines are transparent.
    """
    root = DependencyNode(id=component_id(Technology.GRADLE, project_name))
    stack: list[tuple[int, DependencyNode]] = [(0, root)]
    first_seen: dict[str, DependencyNode] = {}
    omitted: list[DependencyNode] = []
    for line in output.splitlines():
        match = _GRADLE_BRANCH_RE.search(line)
        if match is None:
            continue
        depth = match.start() // 5 + 1
        entry = line[match.end():].strip()
        while stack[-1][0] >= depth:
            stack.pop()
        parent = stack[-1][1]
        if entry.endswith(("(c)", "(n)")):
            continue
        if entry.startswith("project "):
            stack.append((depth, parent))
            continue
        node = DependencyNode(id=_gradle_id(entry))
        parent.children.append(node)
        stack.append((depth, node))
        if entry.endswith("(*)"):
            omitted.append(node)
        else:
            first_seen.setdefault(node.id, node)
    for node in omitted:
        source = first_seen.get(node.id)
        if source is not None:
            node.children = [_clone(child, frozenset({node.id})) for child in source.children]
    return root


def _gradle_id(entry: str) -> str:
    entry = entry.removesuffix("(*)").strip()
    coordinate, _, resolved = entry.partition(" -> ")
    parts = coordinate.split(":")
    if len(parts) < 2:
        raise ResolverError(f"unrecognised gradle coordinate: {entry!r}")
    version = resolved.split(" ", 1)[0] if resolved else (parts[2] if len(parts) > 2 else "")
    return component_id(Technology.GRADLE, f"{parts[0]}:{parts[1]}", version or None)


def _clone(node: DependencyNode, path: frozenset[str]) -> DependencyNode:
    copy = DependencyNode(id=node.id)
    path = path | {node.id}
    copy.children = [_clone(child, path) for child in node.children if child.id not in path]
    return copy
