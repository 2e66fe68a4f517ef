"""Per-ecosystem dependency-tree resolvers and the technology dispatch table."""

from depaudit.engines.resolvers.base import (
    Resolver,
    ResolvedTrees,
    ResolverContext,
    component_id,
    run_tool,
)
from depaudit.engines.resolvers.go import build_go_dependency_tree
from depaudit.engines.resolvers.java import build_java_dependency_tree
from depaudit.engines.resolvers.npm import (
    build_npm_dependency_tree,
    build_pnpm_dependency_tree,
    build_yarn_dependency_tree,
)
from depaudit.engines.resolvers.nuget import build_nuget_dependency_tree
from depaudit.engines.resolvers.python import build_python_dependency_tree
from depaudit.technologies import Technology

# Adding a technology means one enum member and one entry here.
RESOLVERS: dict[Technology, Resolver] = {
    Technology.MAVEN: build_java_dependency_tree,
    Technology.GRADLE: build_java_dependency_tree,
    Technology.NPM: build_npm_dependency_tree,
    Technology.PNPM: build_pnpm_dependency_tree,
    Technology.YARN: build_yarn_dependency_tree,
    Technology.GO: build_go_dependency_tree,
    Technology.PIP: build_python_dependency_tree,
    Technology.PIPENV: build_python_dependency_tree,
    Technology.POETRY: build_python_dependency_tree,
    Technology.NUGET: build_nuget_dependency_tree,
}

__all__ = [
    "RESOLVERS",
    "ResolvedTrees",
    "Resolver",
    "ResolverContext",
    "component_id",
    "run_tool",
]
