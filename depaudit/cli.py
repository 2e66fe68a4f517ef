"""CLI entry point: depaudit.

Subcommands:
    depaudit audit [DIRS]...     # Resolve dependencies and scan them for vulnerabilities
    depaudit detect DIR          # Print the scan plan without resolving anything
"""

from __future__ import annotations

import asyncio
import json
import os
import sys

import click

from depaudit.core.config import ServerDetails
from depaudit.core.logging import setup_logging
from depaudit.engines.sca import get_sca_scans_to_perform, run_sca_scan
from depaudit.exceptions import AuditError
from depaudit.models import ScaReport
from depaudit.params import DEFAULT_SCAN_TIMEOUT, AuditParams, GraphScanQuery
from depaudit.technologies import Technology, parse_technology

_SEVERITIES = ["Low", "Medium", "High", "Critical"]


def _parse_technologies(values: tuple[str, ...]) -> list[Technology]:
    try:
        return [parse_technology(v) for v in values]
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--tech") from e


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
def main(verbose: bool) -> None:
    """Software composition analysis for multi-ecosystem projects."""
    setup_logging(verbose=verbose)


@main.command()
@click.argument("dirs", nargs=-1, type=click.Path(file_okay=False))
@click.option("-r", "--recursive", is_flag=True, help="Search sub-directories for projects")
@click.option("--tech", "techs", multiple=True, help="Only scan these technologies (repeatable)")
@click.option("--requirements-file", default="", help="Pip requirements file to resolve")
@click.option("--deps-repo", default="", help="Repository to resolve dependencies from")
@click.option("--ignore-config-file", is_flag=True, help="Ignore .depaudit/projects configs")
@click.option("--curation", is_flag=True, help="Run as a curation audit (keeps a resolver cache)")
@click.option("--use-wrapper", is_flag=True, help="Use ./mvnw or ./gradlew")
@click.option("--maven-dep-tree-installed", is_flag=True, help="dependency:tree is installed")
@click.option(
    "--third-party-contextual-analysis",
    is_flag=True,
    help="Send all npm dependencies to the reachability scanner",
)
@click.option("--fixable-only", is_flag=True, help="Only report issues with a fix version")
@click.option(
    "--min-severity",
    type=click.Choice(_SEVERITIES, case_sensitive=False),
    default=None,
    help="Drop issues below this severity",
)
@click.option("--server-id", default=None, help="Server id from servers.yaml")
@click.option("--url", default=None, help="Platform URL (overrides servers.yaml)")
@click.option("--access-token", default=None, help="Platform access token")
@click.option("--project", default=None, help="Project key for policy violations")
@click.option("--watches", default="", help="Comma-separated watch names")
@click.option("--licenses", is_flag=True, help="Include license information")
@click.option("--xray-version", default="", help="Skip the scanning service version lookup")
@click.option("--timeout", default=DEFAULT_SCAN_TIMEOUT, show_default=True, help="Scan timeout (s)")
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON")
def audit(
    dirs: tuple[str, ...],
    recursive: bool,
    techs: tuple[str, ...],
    requirements_file: str,
    deps_repo: str,
    ignore_config_file: bool,
    curation: bool,
    use_wrapper: bool,
    maven_dep_tree_installed: bool,
    third_party_contextual_analysis: bool,
    fixable_only: bool,
    min_severity: str | None,
    server_id: str | None,
    url: str | None,
    access_token: str | None,
    project: str | None,
    watches: str,
    licenses: bool,
    xray_version: str,
    timeout: float,
    as_json: bool,
) -> None:
    """Resolve dependency trees in DIRS (default: current directory) and scan them."""
    params = AuditParams(
        working_dirs=[os.path.abspath(d) for d in dirs] or [os.getcwd()],
        recursive=recursive,
        technologies=_parse_technologies(techs),
        pip_requirements_file=requirements_file,
        deps_repo=deps_repo,
        ignore_config_file=ignore_config_file,
        is_curation_cmd=curation,
        use_wrapper=use_wrapper,
        is_maven_dep_tree_installed=maven_dep_tree_installed,
        third_party_applicability_scan=third_party_contextual_analysis,
        xray_version=xray_version,
        fixable_only=fixable_only,
        min_severity=min_severity,
        graph_scan_query=GraphScanQuery(
            project_key=project,
            watches=tuple(w.strip() for w in watches.split(",") if w.strip()),
            include_licenses=licenses,
        ),
        scan_timeout=timeout,
        server_id=server_id,
    )
    if url:
        params.set_server_details(ServerDetails(url=url, access_token=access_token))

    try:
        report = asyncio.run(run_sca_scan(params))
    except AuditError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(_report_dict(report, params), indent=2))
    else:
        _print_report(report)
    for error in report.errors:
        click.echo(f"Error: {error}", err=True)
    if report.errors:
        sys.exit(1)


@main.command()
@click.argument("directory", type=click.Path(exists=True, file_okay=False))
@click.option("-r", "--recursive", is_flag=True, help="Search sub-directories for projects")
@click.option("--tech", "techs", multiple=True, help="Only detect these technologies")
@click.option("--requirements-file", default="", help="Pip requirements file")
def detect(directory: str, recursive: bool, techs: tuple[str, ...], requirements_file: str) -> None:
    """Print the scan units that `audit` would run for DIRECTORY."""
    params = AuditParams(
        working_dirs=[os.path.abspath(directory)],
        recursive=recursive,
        technologies=_parse_technologies(techs),
        pip_requirements_file=requirements_file,
    )
    units = get_sca_scans_to_perform(params)
    if not units:
        click.echo("No package manager detected")
        return
    click.echo(json.dumps([unit.to_dict() for unit in units], indent=2))


def _report_dict(report: ScaReport, params: AuditParams) -> dict:
    return {
        "units": [
            {
                **unit.to_dict(),
                "is_multiple_root_project": unit.is_multiple_root_project,
                "results": [r.model_dump(mode="json", exclude_none=True) for r in unit.results],
            }
            for unit in report.units
        ],
        "applicability_dependencies": params.dependencies_for_applicability_scan(),
        "errors": [str(e) for e in report.errors],
    }


def _print_report(report: ScaReport) -> None:
    for unit in report.units:
        issues = [v for r in unit.results for v in (*r.vulnerabilities, *r.violations)]
        click.echo(f"\n{unit.technology.formal}: {unit.working_directory}")
        click.echo(f"  Issues: {len(issues)}")
        for issue in issues:
            for component_id, detail in issue.components.items():
                fixed = ", ".join(detail.fixed_versions) or "-"
                click.echo(f"  [{issue.severity}] {issue.issue_id} {component_id} (fixed: {fixed})")
                for path in detail.impact_paths:
                    click.echo("      " + " > ".join(node.component_id for node in path))
    click.echo(f"\nTotal vulnerabilities: {report.vulnerability_count}")


if __name__ == "__main__":
    main()
