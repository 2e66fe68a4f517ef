"""Pick the repository a technology resolves from."""

from __future__ import annotations

from pathlib import Path

import structlog

from depaudit.core.config import (
    ResolverConfig,
    get_project_conf_file_path,
    read_resolution_only_configuration,
)
from depaudit.exceptions import MissingResolverError, ResolverConfigError
from depaudit.params import AuditParams
from depaudit.technologies import Technology

log = structlog.get_logger("depaudit.sca")


def set_resolution_repo_if_exists(
    params: AuditParams,
    tech: Technology,
    working_dir: str | Path,
) -> None:
    """Point *params* at the resolver repository declared for *tech*, if any.

    Looks for ``.depaudit/projects/<tech>.yaml`` from *working_dir* upwards.
    NuGet and .NET are detected the same way and only NuGet gets a scan unit,
    so NuGet falls back to ``dotnet.yaml``. A config file that declares no
    resolver means "use the ecosystem's default registry".

    Raises ResolverConfigError when a config file exists but cannot be used.
    """
    if params.deps_repo or params.ignore_config_file:
        return

    config_path = get_project_conf_file_path(tech.value, working_dir)
    if config_path is None and tech is Technology.NUGET:
        config_path = get_project_conf_file_path(Technology.DOTNET.value, working_dir)
        if config_path is None:
            log.debug(
                "sca.resolver_config_not_found",
                technology=str(tech),
                searched=[f"{Technology.NUGET}.yaml", f"{Technology.DOTNET}.yaml"],
                msg=f"resolving dependencies from {tech} default registry",
            )
            return
    elif config_path is None:
        log.debug(
            "sca.resolver_config_not_found",
            technology=str(tech),
            searched=[f"{tech}.yaml"],
            msg=f"resolving dependencies from {tech} default registry",
        )
        return

    log.debug("sca.resolver_config_found", technology=str(tech), path=str(config_path))
    try:
        repo_config: ResolverConfig | None = read_resolution_only_configuration(config_path)
    except MissingResolverError:
        repo_config = None
    except ResolverConfigError as exc:
        raise ResolverConfigError(f"failed while reading {tech}.yaml config file: {exc}") from exc

    if repo_config is None:
        return
    try:
        details = repo_config.server_details()
    except ResolverConfigError as exc:
        raise ResolverConfigError(f"failed getting server details: {exc}") from exc
    params.set_server_details(details)
    params.set_deps_repo(repo_config.target_repo())
    log.info(
        "sca.resolver_repo_set",
        technology=str(tech),
        repo=repo_config.target_repo(),
        server_id=details.server_id or None,
    )
