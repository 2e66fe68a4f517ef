"""Run every planned unit and aggregate partial failures."""

from __future__ import annotations

import asyncio
import contextlib
import copy
import json
import os
from collections.abc import Iterator
from pathlib import Path

import structlog

from depaudit.core.config import ServerDetails
from depaudit.engines.scan_graph.models import ScanResponse
from depaudit.engines.scan_graph.runner import run_xray_dependencies_tree_scan_graph
from depaudit.engines.sca.applicability import add_third_party_dependencies_to_params
from depaudit.engines.sca.dependency_tree import get_tech_dependency_tree
from depaudit.engines.sca.impact_paths import build_impact_paths_for_scan_responses
from depaudit.engines.sca.planner import get_sca_scans_to_perform
from depaudit.exceptions import (
    AuditError,
    DependencyTreeError,
    NoDependenciesError,
    ScanCancelledError,
    ScanRequestError,
    UnitScanError,
    WorkingDirectoryError,
)
from depaudit.models import DependencyNode, ScaReport, ScanUnit
from depaudit.params import AuditParams, ScanGraphParameters
from depaudit.technologies import Technology

log = structlog.get_logger("depaudit.sca")


@contextlib.contextmanager
def working_directory(path: str | Path) -> Iterator[None]:
    """Temporarily chdir into *path*; the previous directory is always restored."""
    previous = os.getcwd()
    try:
        os.chdir(path)
    except OSError as exc:
        raise WorkingDirectoryError(f"could not change directory to '{path}': {exc}") from exc
    try:
        yield
    finally:
        os.chdir(previous)


async def run_sca_scan(params: AuditParams) -> ScaReport:
    """Plan and execute every SCA scan unit.

    Units run one at a time. A failing unit is recorded in the report and
    the remaining units still run. Failing to enter a working directory
    stops the run.
    """
    report = ScaReport()
    original_dir = os.getcwd()
    try:
        units = get_sca_scans_to_perform(params)
        if not units:
            log.info(
                "sca.no_package_manager",
                msg="Couldn't determine a package manager or build tool used by this project. "
                "Skipping the SCA scan...",
            )
            return report
        log_scans_to_perform(units)

        server_details = params.server_details()
        for unit in units:
            try:
                await execute_sca_scan(params, unit, server_details)
            except WorkingDirectoryError as exc:
                log.error("sca.working_directory_failed", error=str(exc))
                report.errors.append(UnitScanError(unit.technology, unit.working_directory, exc))
                break
            except AuditError as exc:
                log.error(
                    "sca.scan_failed",
                    technology=str(unit.technology),
                    working_directory=unit.working_directory,
                    error=str(exc),
                )
                report.errors.append(UnitScanError(unit.technology, unit.working_directory, exc))
                continue
            except Exception as exc:
                log.error(
                    "sca.scan_crashed",
                    technology=str(unit.technology),
                    working_directory=unit.working_directory,
                    exc_info=True,
                )
                report.errors.append(UnitScanError(unit.technology, unit.working_directory, exc))
                continue
            report.units.append(unit)
    finally:
        os.chdir(original_dir)
    return report


def log_scans_to_perform(units: list[ScanUnit]) -> None:
    log.info(
        "sca.scans_planned",
        count=len(units),
        units=json.dumps([unit.to_dict() for unit in units], indent=2),
    )


async def execute_sca_scan(
    params: AuditParams,
    unit: ScanUnit,
    server_details: ServerDetails,
) -> None:
    """Resolve, scan and enrich a single unit. Results land in ``unit.results``."""
    log.info(
        "sca.unit_started",
        technology=str(unit.technology),
        working_directory=unit.working_directory,
    )
    # Resolver config may rewrite the repository and server for this unit only;
    # the applicability accumulator stays shared.
    unit_params = copy.copy(params)
    with working_directory(unit.working_directory):
        try:
            tree_result = get_tech_dependency_tree(
                unit_params, unit.technology, unit.working_directory, unit.descriptors
            )
        except (AuditError, OSError) as exc:
            raise DependencyTreeError(
                f"failed while building '{unit.technology}' dependency tree:\n{exc}"
            ) from exc
        if tree_result.flat_tree is None or not tree_result.flat_tree.children:
            raise NoDependenciesError()

        results = await run_sca_with_tech(
            unit.technology,
            params,
            server_details,
            tree_result.flat_tree,
            tree_result.full_trees,
        )
        unit.is_multiple_root_project = len(tree_result.full_trees) > 1
        add_third_party_dependencies_to_params(
            params, unit.technology, tree_result.flat_tree, tree_result.full_trees
        )
        unit.results.extend(results)


async def run_sca_with_tech(
    tech: Technology,
    params: AuditParams,
    server_details: ServerDetails,
    flat_tree: DependencyNode,
    full_trees: list[DependencyNode],
) -> list[ScanResponse]:
    """Submit the flat tree and attach impact paths computed from *full_trees*."""
    scan_graph_params: ScanGraphParameters = params.scan_graph_parameters(server_details)
    try:
        responses = await asyncio.wait_for(
            run_xray_dependencies_tree_scan_graph(flat_tree, tech, scan_graph_params),
            timeout=params.scan_timeout,
        )
    except TimeoutError as exc:
        raise ScanCancelledError(
            f"'{tech}' dependency tree scan was cancelled after {params.scan_timeout}s"
        ) from exc
    except (AuditError, ValueError) as exc:
        raise ScanRequestError(
            f"'{tech}' Xray dependency tree scan request failed:\n{exc}"
        ) from exc
    return build_impact_paths_for_scan_responses(responses, full_trees)
