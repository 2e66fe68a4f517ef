"""Turn requested directories into (technology, directory) units."""

from __future__ import annotations

from collections.abc import Callable

import structlog

from depaudit.engines.detection import detect_technologies_descriptors
from depaudit.exceptions import DetectionError
from depaudit.models import ScanUnit
from depaudit.params import AuditParams
from depaudit.technologies import Technology

log = structlog.get_logger("depaudit.sca")

Detector = Callable[..., dict[Technology, dict[str, list[str]]]]


def get_requested_descriptors(params: AuditParams) -> dict[Technology, list[str]]:
    if params.pip_requirements_file:
        return {Technology.PIP: [params.pip_requirements_file]}
    return {}


def get_sca_scans_to_perform(
    params: AuditParams,
    detector: Detector = detect_technologies_descriptors,
) -> list[ScanUnit]:
    """Plan one scan unit per detected (technology, working directory).

    A directory the detector cannot handle is skipped with a warning. A
    technology detected without working directories is scanned at the
    requested directory itself. .NET projects are resolved as NuGet.
    """
    units: list[ScanUnit] = []
    requested_descriptors = get_requested_descriptors(params)
    for requested_dir in params.working_dirs:
        try:
            detected = detector(
                requested_dir,
                params.recursive,
                params.technologies,
                requested_descriptors,
                params.exclusions,
            )
        except (DetectionError, OSError) as exc:
            log.warning("sca.detection_failed", directory=requested_dir, error=str(exc))
            continue

        for tech, working_dirs in detected.items():
            if tech is Technology.DOTNET:
                continue
            if not working_dirs:
                units.append(ScanUnit(technology=tech, working_directory=requested_dir))
                continue
            for working_dir, descriptors in working_dirs.items():
                units.append(
                    ScanUnit(
                        technology=tech,
                        working_directory=working_dir,
                        descriptors=list(descriptors),
                    )
                )
    return units
