"""Tests for the SCA scan executor and error aggregation."""

from __future__ import annotations

import asyncio
import os
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from depaudit.core.config import ServerDetails
from depaudit.engines.resolvers import ResolvedTrees
from depaudit.engines.resolvers.base import unique_ids
from depaudit.engines.scan_graph.models import ComponentDetail, ScanResponse, Vulnerability
from depaudit.engines.sca.executor import run_sca_scan, working_directory
from depaudit.exceptions import (
    DependencyTreeError,
    NoDependenciesError,
    ResolverError,
    ScanCancelledError,
    ScanRequestError,
    ScanServiceError,
    UnitScanError,
    WorkingDirectoryError,
)
from depaudit.models import DependencyNode, ScanUnit
from depaudit.params import AuditParams
from depaudit.technologies import Technology

_RESOLVERS = "depaudit.engines.sca.dependency_tree.RESOLVERS"
_SCAN = "depaudit.engines.sca.executor.run_xray_dependencies_tree_scan_graph"
_PLAN = "depaudit.engines.sca.executor.get_sca_scans_to_perform"

APP = "npm://app:1.0.0"
A = "npm://a:1.0.0"
B = "npm://b:1.0.0"
C = "npm://c:1.0.0"


# ── Helpers ──────────────────────────────────────────────────────────────────


def _npm_project(root):
    root.mkdir(parents=True, exist_ok=True)
    (root / "package.json").write_text('{"name": "app", "version": "1.0.0"}')
    return root.resolve()


def _npm_resolver():
    tree = DependencyNode(
        id=APP,
        children=[DependencyNode(id=A, children=[DependencyNode(id=C)]), DependencyNode(id=B)],
    )
    return MagicMock(return_value=ResolvedTrees(full_trees=[tree], unique_deps=unique_ids([tree])))


def _response(component_id=C):
    return ScanResponse(
        scan_id="scan-1",
        vulnerabilities=[
            Vulnerability(
                issue_id="XRAY-1",
                severity="High",
                components={component_id: ComponentDetail(fixed_versions=["[1.0.1]"])},
            )
        ],
    )


def _params(*dirs, **overrides):
    params = AuditParams(working_dirs=[str(d) for d in dirs], ignore_config_file=True, **overrides)
    params.set_server_details(ServerDetails(url="https://acme.example", access_token="tok"))
    return params


# ── Working directory ─────────────────────────────────────────────────────


class TestWorkingDirectory:
    def test_restores_previous_directory(self, tmp_path):
        before = os.getcwd()
        with working_directory(tmp_path):
            assert os.getcwd() == str(tmp_path.resolve())
        assert os.getcwd() == before

    def test_restores_on_error(self, tmp_path):
        before = os.getcwd()
        with pytest.raises(RuntimeError):
            with working_directory(tmp_path):
                raise RuntimeError("boom")
        assert os.getcwd() == before

    def test_missing_directory(self, tmp_path):
        with pytest.raises(WorkingDirectoryError):
            with working_directory(tmp_path / "missing"):
                pass


# ── run_sca_scan ──────────────────────────────────────────────────────────


class TestRunScaScan:
    @pytest.mark.anyio
    async def test_npm_end_to_end(self, tmp_path):
        project = _npm_project(tmp_path / "app")
        before = os.getcwd()
        scan = AsyncMock(return_value=[_response()])
        with patch.dict(_RESOLVERS, {Technology.NPM: _npm_resolver()}), patch(_SCAN, scan):
            params = _params(project)
            report = await run_sca_scan(params)

        assert os.getcwd() == before
        assert report.errors == []
        assert report.error is None
        [unit] = report.units
        assert unit.technology is Technology.NPM
        assert unit.working_directory == str(project)
        assert unit.is_multiple_root_project is False

        flat_tree, tech, scan_params = scan.call_args[0]
        assert flat_tree.id == "root"
        assert sorted(c.id for c in flat_tree.children) == [A, B, C]
        assert tech is Technology.NPM
        assert scan_params.server_details.url == "https://acme.example"

        detail = unit.results[0].vulnerabilities[0].components[C]
        assert [[n.component_id for n in path] for path in detail.impact_paths] == [[APP, A, C]]
        assert report.vulnerability_count == 1
        assert params.dependencies_for_applicability_scan() == [A, B]

    @pytest.mark.anyio
    async def test_empty_plan(self):
        with patch(_PLAN, return_value=[]):
            report = await run_sca_scan(_params("/repo"))
        assert report.units == []
        assert report.errors == []

    @pytest.mark.anyio
    async def test_failed_unit_does_not_stop_others(self, tmp_path):
        web = _npm_project(tmp_path / "web")
        svc = tmp_path / "svc"
        svc.mkdir()
        (svc / "go.mod").write_text("module example.com/svc\n")
        go_resolver = MagicMock(side_effect=ResolverError("'go' was not found in PATH"))
        resolvers = {Technology.NPM: _npm_resolver(), Technology.GO: go_resolver}

        with patch.dict(_RESOLVERS, resolvers), patch(_SCAN, AsyncMock(return_value=[_response()])):
            report = await run_sca_scan(_params(svc, web))

        assert [u.technology for u in report.units] == [Technology.NPM]
        [error] = report.errors
        assert isinstance(error, UnitScanError)
        assert error.technology is Technology.GO
        assert error.working_directory == str(svc.resolve())
        assert isinstance(error.cause, DependencyTreeError)
        assert "failed while building 'go' dependency tree" in str(error)
        assert isinstance(report.error, ExceptionGroup)
        with pytest.raises(ExceptionGroup):
            report.raise_for_errors()

    @pytest.mark.anyio
    async def test_unexpected_error_does_not_stop_others(self, tmp_path):
        web = _npm_project(tmp_path / "web")
        svc = tmp_path / "svc"
        svc.mkdir()
        (svc / "go.mod").write_text("module example.com/svc\n")
        resolvers = {
            Technology.NPM: _npm_resolver(),
            Technology.GO: MagicMock(side_effect=KeyError("key")),
        }

        with patch.dict(_RESOLVERS, resolvers), patch(_SCAN, AsyncMock(return_value=[_response()])):
            report = await run_sca_scan(_params(svc, web))

        assert [u.technology for u in report.units] == [Technology.NPM]
        [error] = report.errors
        assert isinstance(error, UnitScanError)
        assert error.technology is Technology.GO
        assert isinstance(error.cause, KeyError)

    @pytest.mark.anyio
    async def test_unexpected_scan_error_does_not_stop_others(self, tmp_path):
        first = _npm_project(tmp_path / "first")
        second = _npm_project(tmp_path / "second")
        scan = AsyncMock(side_effect=[RuntimeError("boom"), [_response()]])

        with patch.dict(_RESOLVERS, {Technology.NPM: _npm_resolver()}), patch(_SCAN, scan):
            report = await run_sca_scan(_params(first, second))

        assert [u.working_directory for u in report.units] == [str(second)]
        [error] = report.errors
        assert isinstance(error.cause, RuntimeError)

    @pytest.mark.anyio
    async def test_no_dependencies(self, tmp_path):
        project = _npm_project(tmp_path / "app")
        empty = MagicMock(return_value=ResolvedTrees(full_trees=[DependencyNode(id=APP)]))
        scan = AsyncMock()
        with patch.dict(_RESOLVERS, {Technology.NPM: empty}), patch(_SCAN, scan):
            report = await run_sca_scan(_params(project))
        [error] = report.errors
        assert isinstance(error.cause, NoDependenciesError)
        assert "no dependencies were found" in str(error)
        scan.assert_not_called()

    @pytest.mark.anyio
    async def test_scan_request_failure(self, tmp_path):
        project = _npm_project(tmp_path / "app")
        scan = AsyncMock(side_effect=ScanServiceError("rejected", status_code=400))
        with patch.dict(_RESOLVERS, {Technology.NPM: _npm_resolver()}), patch(_SCAN, scan):
            report = await run_sca_scan(_params(project))
        [error] = report.errors
        assert isinstance(error.cause, ScanRequestError)
        assert "'npm' Xray dependency tree scan request failed" in str(error)

    @pytest.mark.anyio
    async def test_scan_timeout(self, tmp_path):
        project = _npm_project(tmp_path / "app")

        async def slow_scan(*args, **kwargs):
            await asyncio.sleep(5)
            return []

        with patch.dict(_RESOLVERS, {Technology.NPM: _npm_resolver()}), patch(_SCAN, slow_scan):
            report = await run_sca_scan(_params(project, scan_timeout=0.01))
        [error] = report.errors
        assert isinstance(error.cause, ScanCancelledError)
        assert report.units == []

    @pytest.mark.anyio
    async def test_working_directory_failure_stops_run(self, tmp_path):
        project = _npm_project(tmp_path / "app")
        before = os.getcwd()
        units = [
            ScanUnit(technology=Technology.NPM, working_directory=str(tmp_path / "gone")),
            ScanUnit(technology=Technology.NPM, working_directory=str(project)),
        ]
        scan = AsyncMock(return_value=[_response()])
        with patch(_PLAN, return_value=units), patch.dict(
            _RESOLVERS, {Technology.NPM: _npm_resolver()}
        ), patch(_SCAN, scan):
            report = await run_sca_scan(_params(project))
        [error] = report.errors
        assert isinstance(error.cause, WorkingDirectoryError)
        assert report.units == []
        scan.assert_not_called()
        assert os.getcwd() == before

    @pytest.mark.anyio
    async def test_multiple_roots(self, tmp_path):
        project = _npm_project(tmp_path / "app")
        trees = [
            DependencyNode(id="npm://web:1", children=[DependencyNode(id=A)]),
            DependencyNode(id="npm://admin:1", children=[DependencyNode(id=B)]),
        ]
        resolver = MagicMock(
            return_value=ResolvedTrees(full_trees=trees, unique_deps=unique_ids(trees))
        )
        with patch.dict(_RESOLVERS, {Technology.NPM: resolver}), patch(
            _SCAN, AsyncMock(return_value=[])
        ):
            report = await run_sca_scan(_params(project))
        assert report.units[0].is_multiple_root_project is True

    @pytest.mark.anyio
    async def test_resolver_repo_is_scoped_to_its_unit(self, tmp_path):
        project = _npm_project(tmp_path / "app")
        params = _params(project)
        seen = []

        def resolver(ctx):
            seen.append(ctx.deps_repo)
            return _npm_resolver()(ctx)

        def fake_locator(p, tech, working_dir):
            p.set_deps_repo("npm-remote")

        with patch.dict(_RESOLVERS, {Technology.NPM: resolver}), patch(
            "depaudit.engines.sca.dependency_tree.set_resolution_repo_if_exists",
            side_effect=fake_locator,
        ), patch(_SCAN, AsyncMock(return_value=[])):
            await run_sca_scan(params)
        assert seen == ["npm-remote"]
        assert params.deps_repo == ""
