"""Supported package-manager ecosystems."""

from __future__ import annotations

from enum import Enum


class Technology(str, Enum):
    """Closed set of ecosystems the SCA scan knows how to resolve."""

    MAVEN = "maven"
    GRADLE = "gradle"
    NPM = "npm"
    PNPM = "pnpm"
    YARN = "yarn"
    GO = "go"
    PIP = "pip"
    PIPENV = "pipenv"
    POETRY = "poetry"
    NUGET = "nuget"
    DOTNET = "dotnet"

    def __str__(self) -> str:
        return self.value

    @property
    def formal(self) -> str:
        """Human-facing name used in log lines."""
        return _FORMAL_NAMES[self]

    @property
    def package_type(self) -> str:
        """Component id prefix used by the scanning service (``npm://``, ``gav://`` ...)."""
        return _PACKAGE_TYPES[self]


_FORMAL_NAMES: dict[Technology, str] = {
    Technology.MAVEN: "Maven",
    Technology.GRADLE: "Gradle",
    Technology.NPM: "npm",
    Technology.PNPM: "pnpm",
    Technology.YARN: "Yarn",
    Technology.GO: "Go",
    Technology.PIP: "Pip",
    Technology.PIPENV: "Pipenv",
    Technology.POETRY: "Poetry",
    Technology.NUGET: "NuGet",
    Technology.DOTNET: ".NET",
}

_PACKAGE_TYPES: dict[Technology, str] = {
    Technology.MAVEN: "gav",
    Technology.GRADLE: "gav",
    Technology.NPM: "npm",
    Technology.PNPM: "npm",
    Technology.YARN: "npm",
    Technology.GO: "go",
    Technology.PIP: "pypi",
    Technology.PIPENV: "pypi",
    Technology.POETRY: "pypi",
    Technology.NUGET: "nuget",
    Technology.DOTNET: "nuget",
}

PYTHON_TECHNOLOGIES = frozenset({Technology.PIP, Technology.PIPENV, Technology.POETRY})


def parse_technology(value: str) -> Technology:
    """Parse a user-supplied technology name (case-insensitive).

    Raises ValueError for unknown names.
    """
    try:
        return Technology(value.strip().lower())
    except ValueError:
        supported = ", ".join(t.value for t in Technology)
        raise ValueError(f"unsupported technology {value!r} (supported: {supported})") from None
