"""Map a directory to ecosystems, working dirs and descriptors."""

from __future__ import annotations

import fnmatch
import os
import tomllib
from collections.abc import Iterable
from pathlib import Path

import structlog

from depaudit.exceptions import DetectionError
from depaudit.technologies import Technology

log = structlog.get_logger("depaudit.detection")

# Files whose presence marks a directory as belonging to a technology.
INDICATORS: dict[Technology, list[str]] = {
    Technology.MAVEN: ["pom.xml"],
    Technology.GRADLE: ["build.gradle", "build.gradle.kts"],
    Technology.NPM: ["package.json"],
    Technology.PNPM: ["pnpm-lock.yaml"],
    Technology.YARN: ["yarn.lock", ".yarnrc.yml"],
    Technology.GO: ["go.mod"],
    Technology.PIP: ["setup.py", "requirements*.txt"],
    Technology.PIPENV: ["Pipfile"],
    Technology.POETRY: ["poetry.lock"],
    Technology.NUGET: ["*.sln", "*.csproj", "packages.config"],
    Technology.DOTNET: ["*.sln", "*.csproj", "packages.config"],
}

# Manifest files reported as the technology's descriptors.
DESCRIPTORS: dict[Technology, list[str]] = {
    Technology.MAVEN: ["pom.xml"],
    Technology.GRADLE: ["build.gradle", "build.gradle.kts"],
    Technology.NPM: ["package.json"],
    Technology.PNPM: ["package.json"],
    Technology.YARN: ["package.json"],
    Technology.GO: ["go.mod"],
    Technology.PIP: ["setup.py", "requirements*.txt"],
    Technology.PIPENV: ["Pipfile"],
    Technology.POETRY: ["pyproject.toml"],
    Technology.NUGET: ["*.sln", "*.csproj"],
    Technology.DOTNET: ["*.sln", "*.csproj"],
}

# A technology is not reported in a directory where one of these is also present.
EXCLUDED_BY: dict[Technology, list[Technology]] = {
    Technology.NPM: [Technology.PNPM, Technology.YARN],
    Technology.PIP: [Technology.PIPENV, Technology.POETRY],
}

# Build tools whose sub-modules are resolved from the top-most module directory.
MULTI_MODULE_TECHNOLOGIES = frozenset(
    {Technology.MAVEN, Technology.GRADLE, Technology.NUGET, Technology.DOTNET}
)


def detect_technologies_descriptors(
    directory: str,
    recursive: bool,
    technologies: Iterable[Technology] | None = None,
    requested_descriptors: dict[Technology, list[str]] | None = None,
    exclusions: Iterable[str] | None = None,
) -> dict[Technology, dict[str, list[str]]]:
    """Detect technologies under *directory*.

    Returns ``{technology: {working_dir: [descriptor paths]}}``. A technology
    requested in *technologies* but not found maps to an empty dict.
    *requested_descriptors* replaces marker discovery for its technologies.

    Raises DetectionError if *directory* is not an existing directory or
    cannot be listed.
    """
    root = Path(directory).resolve()
    if not root.is_dir():
        raise DetectionError(f"directory not found: {directory}")
    wanted = set(technologies or [])
    requested_descriptors = requested_descriptors or {}

    found: dict[Technology, dict[str, list[str]]] = {}
    for dirpath, filenames in _walk(root, recursive, list(exclusions or [])):
        for tech in detect_in_directory(dirpath, filenames):
            if (wanted and tech not in wanted) or tech in requested_descriptors:
                continue
            descriptors = [
                str(dirpath / name) for name in filenames if _matches(name, DESCRIPTORS[tech])
            ]
            found.setdefault(tech, {})[str(dirpath)] = sorted(descriptors)

    for tech, paths in requested_descriptors.items():
        if wanted and tech not in wanted:
            continue
        existing = [str(p) for p in (_resolve_under(root, path) for path in paths) if p.is_file()]
        if existing:
            found[tech] = {str(root): existing}
        else:
            log.warning("detection.requested_descriptor_missing", technology=str(tech), paths=paths)

    for tech in MULTI_MODULE_TECHNOLOGIES & found.keys():
        found[tech] = _fold_nested(found[tech])

    for tech in wanted:
        found.setdefault(tech, {})

    log.debug(
        "detection.done",
        directory=str(root),
        technologies={str(t): sorted(dirs) for t, dirs in found.items()},
    )
    return found


def detect_in_directory(dirpath: Path, filenames: list[str]) -> list[Technology]:
    """Return the technologies indicated by *filenames* in a single directory."""
    present = [
        tech
        for tech, patterns in INDICATORS.items()
        if _has_indicator(tech, dirpath, filenames, patterns)
    ]
    return [
        tech for tech in present if not any(other in present for other in EXCLUDED_BY.get(tech, []))
    ]


def _has_indicator(
    tech: Technology, dirpath: Path, filenames: list[str], patterns: list[str]
) -> bool:
    if any(_matches(name, patterns) for name in filenames):
        return True
    if tech is Technology.POETRY and "pyproject.toml" in filenames:
        return _is_poetry_project(dirpath / "pyproject.toml")
    return False


def _is_poetry_project(pyproject: Path) -> bool:
    try:
        data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError):
        return False
    return bool(data.get("tool", {}).get("poetry"))


def _matches(name: str, patterns: list[str]) -> bool:
    return any(fnmatch.fnmatch(name, pattern) for pattern in patterns)


def _walk(root: Path, recursive: bool, exclusions: list[str]):
    """Yield ``(directory, filenames)``, skipping excluded sub-directories."""
    if not recursive:
        try:
            filenames = sorted(f.name for f in root.iterdir() if f.is_file())
        except OSError as exc:
            raise DetectionError(f"could not list {root}: {exc}") from exc
        yield root, filenames
        return
    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)
        dirnames[:] = sorted(
            d for d in dirnames if not _is_excluded((current / d).relative_to(root), exclusions)
        )
        yield current, sorted(filenames)


def _is_excluded(relative: Path, exclusions: list[str]) -> bool:
    rel = relative.as_posix()
    return any(
        fnmatch.fnmatch(rel, pattern) or fnmatch.fnmatch(relative.name, pattern)
        for pattern in exclusions
    )


def _resolve_under(root: Path, path: str) -> Path:
    candidate = Path(path)
    return candidate if candidate.is_absolute() else root / candidate


def _fold_nested(working_dirs: dict[str, list[str]]) -> dict[str, list[str]]:
    """Merge sub-module directories into their top-most detected ancestor."""
    folded: dict[str, list[str]] = {}
    for wd in sorted(working_dirs, key=lambda d: len(Path(d).parts)):
        parent = next((p for p in folded if Path(wd).is_relative_to(p)), None)
        if parent is None:
            folded[wd] = list(working_dirs[wd])
        else:
            folded[parent].extend(working_dirs[wd])
    return folded
