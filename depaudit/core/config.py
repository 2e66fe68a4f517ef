"""Environment variables, server registry and resolver config files.

Environment variables:
    DEPAUDIT_HOME          — config/cache home (default: ~/.depaudit)
    DEPAUDIT_URL           — platform URL used when no server is configured
    DEPAUDIT_ACCESS_TOKEN  — access token for DEPAUDIT_URL
    DEPAUDIT_SERVER_ID     — server id to use from servers.yaml
"""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from depaudit.exceptions import MissingResolverError, ResolverConfigError

PROJECT_CONFIG_DIR = ".depaudit"
PROJECTS_SUBDIR = "projects"
SERVERS_FILE = "servers.yaml"


def get_home_dir() -> Path:
    return Path(os.environ.get("DEPAUDIT_HOME", Path.home() / ".depaudit")).expanduser()


def get_curation_cache_dir(name: str) -> Path:
    return get_home_dir() / "curation" / name


class ServerDetails(BaseModel):
    """Connection details for the artifact platform and its scanning service."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    server_id: str = Field(default="", alias="serverId")
    url: str = ""
    xray_url: str = Field(default="", alias="xrayUrl")
    artifactory_url: str = Field(default="", alias="artifactoryUrl")
    access_token: str | None = Field(default=None, alias="accessToken")
    user: str | None = None
    password: str | None = None
    is_default: bool = Field(default=False, alias="isDefault")

    def get_xray_url(self) -> str:
        if self.xray_url:
            return _with_trailing_slash(self.xray_url)
        return _with_trailing_slash(self.url) + "xray/" if self.url else ""

    def get_artifactory_url(self) -> str:
        if self.artifactory_url:
            return _with_trailing_slash(self.artifactory_url)
        return _with_trailing_slash(self.url) + "artifactory/" if self.url else ""

    def auth_headers(self) -> dict[str, str]:
        if self.access_token:
            return {"Authorization": f"Bearer {self.access_token}"}
        return {}

    def basic_auth(self) -> tuple[str, str] | None:
        if self.user and self.password:
            return (self.user, self.password)
        return None


def _with_trailing_slash(url: str) -> str:
    return url if url.endswith("/") else url + "/"


class _ServerRegistryFile(BaseModel):
    servers: list[ServerDetails] = Field(default_factory=list)


def load_servers(path: Path | None = None) -> list[ServerDetails]:
    """Load the server registry (``<home>/servers.yaml``). Missing file → []."""
    path = path or get_home_dir() / SERVERS_FILE
    if not path.is_file():
        return []
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return _ServerRegistryFile.model_validate(data).servers
    except (yaml.YAMLError, ValidationError) as exc:
        raise ResolverConfigError(f"invalid server registry {path}: {exc}") from exc


def get_server_details(server_id: str | None = None) -> ServerDetails:
    """Return the server with *server_id*, or the default one.

    Falls back to DEPAUDIT_URL / DEPAUDIT_ACCESS_TOKEN when the registry
    has no default server. Raises ResolverConfigError for an unknown id.
    """
    server_id = server_id or os.environ.get("DEPAUDIT_SERVER_ID")
    servers = load_servers()
    if server_id:
        for server in servers:
            if server.server_id == server_id:
                return server
        raise ResolverConfigError(f"server ID '{server_id}' does not exist")
    for server in servers:
        if server.is_default:
            return server
    if len(servers) == 1:
        return servers[0]
    return ServerDetails(
        url=os.environ.get("DEPAUDIT_URL", ""),
        access_token=os.environ.get("DEPAUDIT_ACCESS_TOKEN"),
    )


# ── per-technology resolver configuration ─────────────────────────────────


class RepositoryConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    repo: str = ""
    server_id: str | None = Field(default=None, alias="serverId")


class ResolverConfig(BaseModel):
    """``.depaudit/projects/<tech>.yaml``, resolution-only view."""

    model_config = ConfigDict(extra="allow")

    version: int = 1
    type: str = ""
    resolver: RepositoryConfig | None = None

    def target_repo(self) -> str:
        return self.resolver.repo if self.resolver else ""

    def server_details(self) -> ServerDetails:
        return get_server_details(self.resolver.server_id if self.resolver else None)


def get_project_conf_file_path(name: str, start_dir: str | Path) -> Path | None:
    """Find ``.depaudit/projects/<name>.yaml`` from *start_dir* up to the filesystem root."""
    current = Path(start_dir).resolve()
    for directory in (current, *current.parents):
        for suffix in (".yaml", ".yml"):
            candidate = directory / PROJECT_CONFIG_DIR / PROJECTS_SUBDIR / f"{name}{suffix}"
            if candidate.is_file():
                return candidate
    return None


def read_resolution_only_configuration(path: Path) -> ResolverConfig:
    """Parse a resolver config file.

    Raises MissingResolverError when the file is valid but declares no
    resolver repository, ResolverConfigError for any other problem.
    """
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        raise ResolverConfigError(f"failed reading {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ResolverConfigError(f"{path} is not a valid configuration file")
    try:
        config = ResolverConfig.model_validate(data)
    except ValidationError as exc:
        raise ResolverConfigError(f"{path} is not a valid configuration file: {exc}") from exc
    if config.resolver is None or not config.resolver.repo:
        raise MissingResolverError(f"resolver repository is missing in {path}")
    return config
