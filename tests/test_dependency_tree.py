"""Tests for resolver dispatch, the curation cache gate and flat-tree building."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from depaudit.core.config import ServerDetails
from depaudit.engines.resolvers import ResolvedTrees
from depaudit.engines.sca.dependency_tree import (
    CURATION_FIRST_RUN_MSG,
    create_flat_tree,
    create_flat_tree_with_types,
    get_curation_cache_folder_and_log_msg,
    get_tech_dependency_tree,
    log_deps,
)
from depaudit.exceptions import UnsupportedTechnologyError
from depaudit.models import DependencyNode
from depaudit.params import AuditParams
from depaudit.technologies import Technology

_RESOLVERS = "depaudit.engines.sca.dependency_tree.RESOLVERS"


def _params(**overrides):
    params = AuditParams(ignore_config_file=True, **overrides)
    params.set_server_details(ServerDetails(url="https://acme.example"))
    return params


# ── Flat trees ────────────────────────────────────────────────────────────


class TestCreateFlatTree:
    def test_dedup_preserves_first_seen_order(self):
        flat = create_flat_tree(["npm://a:1", "npm://b:1", "npm://a:1", "npm://c:1"])
        assert flat.id == "root"
        assert [c.id for c in flat.children] == ["npm://a:1", "npm://b:1", "npm://c:1"]
        assert all(c.children == [] for c in flat.children)

    def test_typed_children_carry_sorted_labels(self):
        flat = create_flat_tree_with_types(
            {
                "gav://g:a:1": ["transitive", "direct", "direct"],
                "gav://g:b:1": ["transitive"],
            }
        )
        assert flat.id == "root"
        assert [(c.id, c.types) for c in flat.children] == [
            ("gav://g:a:1", ["direct", "transitive"]),
            ("gav://g:b:1", ["transitive"]),
        ]


class TestLogDeps:
    def test_no_serialisation_unless_debug(self):
        with patch(
            "depaudit.engines.sca.dependency_tree.is_debug_enabled", return_value=False
        ), patch("depaudit.engines.sca.dependency_tree.json") as mock_json:
            log_deps(["npm://a:1"])
            mock_json.dumps.assert_not_called()

    def test_serialises_when_debug(self):
        with patch(
            "depaudit.engines.sca.dependency_tree.is_debug_enabled", return_value=True
        ), patch("depaudit.engines.sca.dependency_tree.json") as mock_json:
            log_deps(["npm://a:1"])
            mock_json.dumps.assert_called_once_with(["npm://a:1"], indent=2)


# ── Curation cache gate ───────────────────────────────────────────────────


class TestCurationCache:
    def test_not_a_curation_run(self):
        assert get_curation_cache_folder_and_log_msg(AuditParams(), Technology.MAVEN) == ("", "")

    def test_technology_without_cache(self):
        params = AuditParams(is_curation_cmd=True)
        assert get_curation_cache_folder_and_log_msg(params, Technology.NPM) == ("", "")

    def test_first_run_when_cache_missing(self, depaudit_home):
        params = AuditParams(is_curation_cmd=True)
        msg, folder = get_curation_cache_folder_and_log_msg(params, Technology.MAVEN)
        assert msg == CURATION_FIRST_RUN_MSG
        assert folder == str(depaudit_home / "curation" / "maven")

    def test_first_run_when_cache_empty(self, depaudit_home):
        (depaudit_home / "curation" / "maven").mkdir(parents=True)
        params = AuditParams(is_curation_cmd=True)
        msg, _ = get_curation_cache_folder_and_log_msg(params, Technology.MAVEN)
        assert msg == CURATION_FIRST_RUN_MSG

    def test_no_message_once_populated(self, depaudit_home):
        cache = depaudit_home / "curation" / "maven"
        (cache / "org").mkdir(parents=True)
        params = AuditParams(is_curation_cmd=True)
        assert get_curation_cache_folder_and_log_msg(params, Technology.MAVEN) == ("", str(cache))


# ── Resolver dispatch ─────────────────────────────────────────────────────


class TestGetTechDependencyTree:
    def test_builds_flat_tree(self, tmp_path):
        tree = DependencyNode(
            id="npm://app:1.0.0",
            children=[DependencyNode(id="npm://a:1"), DependencyNode(id="npm://b:1")],
        )
        resolver = MagicMock(
            return_value=ResolvedTrees(
                full_trees=[tree], unique_deps=["npm://a:1", "npm://b:1", "npm://a:1"]
            )
        )
        with patch.dict(_RESOLVERS, {Technology.NPM: resolver}):
            result = get_tech_dependency_tree(_params(), Technology.NPM, tmp_path)
        assert result.full_trees == [tree]
        assert [c.id for c in result.flat_tree.children] == ["npm://a:1", "npm://b:1"]

    def test_typed_deps_win(self, tmp_path):
        resolver = MagicMock(
            return_value=ResolvedTrees(
                full_trees=[DependencyNode(id="gav://app")],
                unique_deps_with_types={"gav://g:a:1": ["direct"]},
            )
        )
        with patch.dict(_RESOLVERS, {Technology.MAVEN: resolver}):
            result = get_tech_dependency_tree(_params(), Technology.MAVEN, tmp_path)
        assert result.flat_tree.children[0].types == ["direct"]

    def test_no_components_means_no_flat_tree(self, tmp_path):
        resolver = MagicMock(return_value=ResolvedTrees(full_trees=[DependencyNode(id="app")]))
        with patch.dict(_RESOLVERS, {Technology.GO: resolver}):
            result = get_tech_dependency_tree(_params(), Technology.GO, tmp_path)
        assert result.flat_tree is None

    def test_unsupported_technology(self, tmp_path):
        with patch.dict(_RESOLVERS, {}, clear=True):
            with pytest.raises(UnsupportedTechnologyError, match="currently not supported"):
                get_tech_dependency_tree(_params(), Technology.NPM, tmp_path)

    def test_resolver_context(self, tmp_path, depaudit_home):
        resolver = MagicMock(return_value=ResolvedTrees())
        params = _params(
            deps_repo="maven-remote",
            is_curation_cmd=True,
            use_wrapper=True,
            is_maven_dep_tree_installed=True,
        )
        with patch.dict(_RESOLVERS, {Technology.MAVEN: resolver}):
            get_tech_dependency_tree(params, Technology.MAVEN, tmp_path, ["pom.xml"])
        ctx = resolver.call_args[0][0]
        assert ctx.technology is Technology.MAVEN
        assert ctx.working_dir == tmp_path
        assert ctx.deps_repo == "maven-remote"
        assert ctx.server_details.url == "https://acme.example"
        assert ctx.curation_cache_folder == str(depaudit_home / "curation" / "maven")
        assert ctx.use_wrapper and ctx.is_maven_dep_tree_installed
        assert ctx.descriptors == ["pom.xml"]

    def test_resolver_config_applied_before_dispatch(self, tmp_path):
        resolver = MagicMock(return_value=ResolvedTrees())
        params = _params()
        params.ignore_config_file = False

        def fake_locator(p, tech, working_dir):
            p.set_deps_repo("npm-virtual")

        with patch.dict(_RESOLVERS, {Technology.NPM: resolver}), patch(
            "depaudit.engines.sca.dependency_tree.set_resolution_repo_if_exists",
            side_effect=fake_locator,
        ):
            get_tech_dependency_tree(params, Technology.NPM, tmp_path)
        assert resolver.call_args[0][0].deps_repo == "npm-virtual"
