"""fleetaudit - fleet audit and remediation pipeline.

Entry point: analyze an inventory snapshot, remediate selected findings
and publish the remediation log to each site's repository.
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import click

from .. import __version__


@click.group()
@click.version_option(__version__, prog_name="fleetaudit")
def cli() -> None:
    """fleetaudit - audit managed sites and apply remediations."""


@cli.command()
@click.option("--project", "-p", type=click.Path(exists=True), required=True)
def init(project: str) -> None:
    """Initialize fleetaudit in a project."""
    from ..core.pipeline import initialize_project

    initialize_project(Path(project))


@cli.command()
@click.option("--project", "-p", type=click.Path(exists=True), required=True, help="Project path")
@click.option("--site", "sites", multiple=True, help="Only evaluate these site ids (repeatable)")
@click.option("--output-format", "-f", type=click.Choice(["markdown", "json", "junit", "csv"]))
@click.option("--ci", is_flag=True, help="CI mode: enable exit codes")
def analyze(project: str, sites: tuple[str, ...], output_format: str | None, ci: bool) -> None:
    """Evaluate the inventory and write the fleet audit report."""
    from ..core.pipeline import run_analysis

    exit_code = run_analysis(
        project_path=Path(project),
        site_ids=list(sites) or None,
        output_format=output_format,
        ci=ci,
    )
    if ci or exit_code >= 10:
        sys.exit(exit_code)


@cli.command()
@click.option("--project", "-p", type=click.Path(exists=True), required=True, help="Project path")
@click.option("--select", "select", type=click.Choice(["all", "critical", "auto-fix"]), default="auto-fix")
@click.option("--finding", "finding_ids", multiple=True, help="Select findings by id (repeatable)")
@click.option("--publish", is_flag=True, help="Publish remediation logs to site repositories")
@click.option("--dry-run", is_flag=True, help="Publish without network access")
@click.option("--strict", is_flag=True, help="Fail items whose fix has no registered handler")
def remediate(
    project: str,
    select: str,
    finding_ids: tuple[str, ...],
    publish: bool,
    dry_run: bool,
    strict: bool,
) -> None:
    """Apply fixes for selected findings."""
    from ..core.pipeline import run_remediation

    exit_code = asyncio.run(
        run_remediation(
            project_path=Path(project),
            select=select,
            finding_ids=list(finding_ids) or None,
            publish=publish,
            dry_run=dry_run,
            strict=strict,
        )
    )
    sys.exit(exit_code)


@cli.command()
@click.option("--project", "-p", type=click.Path(exists=True), required=True, help="Project path")
@click.option("--status", "statuses", multiple=True,
              type=click.Choice(["implemented", "partial", "not-implemented"]))
@click.option("--site", "sites", multiple=True, help="Site id or name (repeatable)")
@click.option("--sort", "sort_by", type=click.Choice(["id", "site", "status", "title"]))
@click.option("--desc", is_flag=True, help="Sort descending")
def matrix(project: str, statuses: tuple[str, ...], sites: tuple[str, ...], sort_by: str | None, desc: bool) -> None:
    """Write the requirement traceability matrix as CSV."""
    from ..core.pipeline import run_matrix

    exit_code = run_matrix(
        project_path=Path(project),
        statuses=list(statuses) or None,
        sites=list(sites) or None,
        sort_by=sort_by,
        descending=desc,
    )
    if exit_code:
        sys.exit(exit_code)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
