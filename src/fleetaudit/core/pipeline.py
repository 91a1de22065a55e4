"""End-to-end pipeline: evaluate, aggregate, remediate, publish.

Returns process exit codes; the CLI decides whether to propagate them.
"""

from __future__ import annotations

import os
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table

from .. import __version__
from ..formatters.junit import export_junit_results
from ..formatters.matrix import build_matrix_rows, export_matrix_csv
from ..inventory.store import InventoryUnavailableError, open_inventory_store
from ..models.finding import Finding
from ..models.remediation import (
    EntityCompleted,
    EntityStarted,
    ItemCompleted,
    ItemStatus,
    PublishCompleted,
    PublishState,
    RunEvent,
)
from ..models.report import GlobalReport, ReportStatus
from ..publishers.base import get_publisher
from .aggregator import aggregate, apply_run_results
from .audit import open_audit_sink
from .config import CONFIG_DIR, get_effective_config
from .handlers import default_registry
from .orchestrator import DEFAULT_COMMIT_MESSAGE, RemediationOrchestrator, new_run_id
from .rules import RuleThresholds, evaluate
from .selection import build_preview, select_findings, selection_from_findings
from .summary import export_report_json, get_exit_code, render_global_report, render_run_summary

console = Console()

STATUS_COLORS = {
    ReportStatus.ALL_GREEN: "green",
    ReportStatus.PARTIAL: "yellow",
    ReportStatus.BLOCKED: "red",
    ReportStatus.PENDING: "dim",
}

ITEM_COLORS = {
    ItemStatus.SUCCESS: "green",
    ItemStatus.FAILED: "red",
    ItemStatus.SKIPPED: "dim",
}

EXAMPLE_INVENTORY = """\
# Example inventory snapshot. Replace with an export from your console.
sites:
  - id: site-a
    name: Example Shop
    color: "#8b5cf6"
    domain: shop.example.com
    health_status: healthy
    ssl_status: valid
    uptime_percentage: 99.95
    response_time_ms: 420
integrations:
  - site_id: site-a
    integration_id: stripe
    status: connected
credentials: []
repositories:
  - site_id: site-a
    owner: example
    name: shop
    branch: main
control_plane:
  integrations:
    - integration_id: auth0
      status: connected
    - integration_id: supabase
      status: connected
    - integration_id: namecheap
      status: connected
    - integration_id: letsencrypt
      status: connected
  sessions: []
  error_logs: []
"""


def initialize_project(project_path: Path) -> None:
    """Initialize the .fleetaudit directory structure in a project."""
    fa_dir = project_path / CONFIG_DIR
    for subdir in ("reports", "audit"):
        (fa_dir / subdir).mkdir(parents=True, exist_ok=True)

    config_path = fa_dir / "config.yaml"
    if not config_path.exists():
        config_path.write_text(
            "# fleetaudit project configuration\n"
            "\n"
            f"fleetaudit_version: \"{__version__}\"\n"
            "\n"
            "project:\n"
            f'  name: "{project_path.name}"\n'
            "\n"
            "inventory:\n"
            "  path: .fleetaudit/inventory.yaml\n"
            "\n"
            "# rules:\n"
            "#   response_time_high_ms: 3000\n"
            "#   uptime_sla_percent: 99.0\n"
            "\n"
            "remediation:\n"
            "  strict_handlers: false\n"
            "\n"
            "publish:\n"
            "  provider: github\n"
            "  github:\n"
            "    token_env: GITHUB_TOKEN\n",
            encoding="utf-8",
        )

    inventory_path = fa_dir / "inventory.yaml"
    if not inventory_path.exists():
        inventory_path.write_text(EXAMPLE_INVENTORY, encoding="utf-8")

    console.print(f"  [green]Initialized[/green] {CONFIG_DIR}/ in {project_path.name}")


def _check_project(project_path: Path) -> Optional[int]:
    if not project_path.exists():
        console.print(f"  [red]ERROR[/red] Project path does not exist: {project_path}")
        return 12
    if not (project_path / CONFIG_DIR).exists():
        console.print("  [red]ERROR[/red] Project not initialized. Run: fleetaudit init -p <path>")
        return 12
    return None


def _banner(title: str, project_name: str, **details: str) -> None:
    console.print()
    console.print(f"  [bold cyan]FLEETAUDIT[/bold cyan] v{__version__} {title}")
    console.print(f"  Project: [white]{project_name}[/white]")
    for label, value in details.items():
        console.print(f"  {label.capitalize() + ':':<9}{value}")
    console.print()


def print_report_table(report: GlobalReport) -> None:
    table = Table(show_header=True, header_style="bold")
    table.add_column("Entity")
    table.add_column("Status")
    table.add_column("Reqs", justify="right")
    table.add_column("Suggestions", justify="right")
    table.add_column("Defects", justify="right")
    table.add_column("Coverage", justify="right")
    for r in report.reports:
        color = STATUS_COLORS[r.status]
        table.add_row(
            r.entity.name,
            f"[{color}]{r.status.value}[/{color}]",
            str(r.coverage.total),
            str(len(r.suggestions)),
            str(len(r.defects)),
            f"{r.coverage.percentage}%",
        )
    console.print(table)


def analyze_inventory(config: dict, site_ids: Optional[list[str]] = None) -> tuple[list[Finding], GlobalReport]:
    """Evaluate the configured inventory and aggregate the findings.

    Raises:
        InventoryUnavailableError: if the inventory cannot be loaded.
    """
    store = open_inventory_store(config)
    store.ensure_available()
    inventory = store.snapshot()

    findings = evaluate(inventory, RuleThresholds.from_config(config), site_ids=site_ids)

    entities = inventory.entities()
    evaluated = [e for e in entities if e.is_control_plane or site_ids is None or e.id in site_ids]
    pending = [e for e in entities if e not in evaluated]

    report = aggregate(
        findings,
        entities=evaluated,
        pending=pending,
        run_id=new_run_id(),
        generated_at=datetime.now(timezone.utc),
    )
    return findings, report


def run_analysis(
    project_path: Path,
    site_ids: Optional[list[str]] = None,
    output_format: Optional[str] = None,
    ci: bool = False,
) -> int:
    """Evaluate and aggregate, write reports. Returns exit code."""
    start_time = time.time()
    project_path = Path(project_path).resolve()

    failed = _check_project(project_path)
    if failed is not None:
        return failed

    config = get_effective_config(project_path)
    output_format = output_format or config.get("output", {}).get("format", "markdown")
    project_name = config.get("project", {}).get("name") or project_path.name

    is_ci = ci or bool(os.environ.get("GITHUB_ACTIONS") or os.environ.get("CI"))

    _banner("analyze", project_name, sites=", ".join(site_ids) if site_ids else "all")

    try:
        findings, report = analyze_inventory(config, site_ids)
    except InventoryUnavailableError as e:
        console.print(f"  [red]ERROR[/red] {e}")
        return 12

    console.print(f"  [green]OK[/green] {len(findings)} findings across {len(report.reports)} entities")
    print_report_table(report)

    duration = time.time() - start_time
    reports_dir = project_path / CONFIG_DIR / "reports"
    reports_dir.mkdir(parents=True, exist_ok=True)

    report_path = reports_dir / "FLEET-AUDIT-REPORT.md"
    report_path.write_text(render_global_report(report, project_name, duration), encoding="utf-8")

    if output_format == "json":
        export_report_json(report, reports_dir / "fleet-audit-report.json")
    if output_format == "csv":
        matrix = export_matrix_csv(build_matrix_rows(report), reports_dir / "requirement-matrix.csv")
        console.print(f"  [green]OK[/green] Matrix: {matrix['rows']} rows")
    if output_format == "junit" or is_ci:
        junit_result = export_junit_results(
            findings, reports_dir / "fleetaudit-results.xml", project_name=project_name, duration=duration
        )
        console.print(
            f"  [green]OK[/green] JUnit XML: {junit_result['total_tests']} tests, "
            f"{junit_result['failures']} failures"
        )

    exit_code = get_exit_code(report.status)
    color = STATUS_COLORS[report.status]
    console.print(f"\n  [{color}]Status: {report.status.value}[/{color}] ({report.coverage.percentage}% coverage)")
    console.print(f"  Results: {reports_dir}")
    console.print()

    if is_ci:
        console.print(f"  CI Mode: Exiting with code {exit_code}")

    return exit_code


def print_event(event: RunEvent) -> None:
    """Console subscriber for orchestrator events."""
    if isinstance(event, EntityStarted):
        console.print(f"\n  [cyan]{event.entity.name}[/cyan] ({event.item_count} items)")
    elif isinstance(event, ItemCompleted):
        color = ITEM_COLORS[event.result.status]
        console.print(
            f"    [{color}]{event.result.status.value}[/{color}] {event.result.title}: "
            f"[dim]{event.result.message}[/dim]"
        )
    elif isinstance(event, EntityCompleted):
        console.print(f"  [dim]{event.entity.name}: {event.phase.value}[/dim]")
    elif isinstance(event, PublishCompleted):
        color = {PublishState.PUBLISHED: "green", PublishState.FAILED: "red"}.get(event.status.state, "dim")
        detail = event.status.commit_url or event.status.message or ""
        console.print(f"  [{color}]{event.status.state.value}[/{color}] {event.entity.name} [dim]{detail}[/dim]")


async def run_remediation(
    project_path: Path,
    select: str = "auto-fix",
    finding_ids: Optional[list[str]] = None,
    publish: bool = False,
    dry_run: bool = False,
    strict: bool = False,
) -> int:
    """Evaluate, select, remediate and optionally publish. Returns exit code."""
    project_path = Path(project_path).resolve()

    failed = _check_project(project_path)
    if failed is not None:
        return failed

    cli_overrides: dict = {}
    if strict:
        cli_overrides.setdefault("remediation", {})["strict_handlers"] = True
    config = get_effective_config(project_path, cli_overrides=cli_overrides or None)
    project_name = config.get("project", {}).get("name") or project_path.name
    publish = publish or bool(config.get("remediation", {}).get("publish", False))

    _banner(
        "remediate",
        project_name,
        select="ids" if finding_ids else select,
        publish=("dry run" if dry_run else "yes") if publish else "no",
    )

    try:
        findings, report = analyze_inventory(config)
    except InventoryUnavailableError as e:
        console.print(f"  [red]ERROR[/red] {e}")
        return 12

    if finding_ids:
        findings = select_findings(findings, "ids", finding_ids)
    else:
        findings = select_findings(findings, select)
    selection = selection_from_findings(findings)

    preview = build_preview(selection)
    console.print(
        f"  [green]OK[/green] Selected {preview.total} items "
        f"({preview.by_action['auto-fix']} auto-fix, {preview.by_action['manual']} manual, "
        f"{preview.by_action['review']} review) across {len(preview.by_entity)} entities"
    )

    publisher = None
    if publish and preview.can_publish:
        try:
            publisher = get_publisher(config, provider_override="dry-run" if dry_run else None)
            console.print(f"  [green]OK[/green] Publisher: {publisher.name}")
        except Exception as e:
            console.print(f"  [red]ERROR[/red] Failed to initialize publisher: {e}")
            return 13

    publish_config = config.get("publish", {})
    orchestrator = RemediationOrchestrator(
        store=open_inventory_store(config),
        handlers=default_registry(config),
        publisher=publisher,
        audit_sink=open_audit_sink(config),
        commit_message=publish_config.get("commit_message", DEFAULT_COMMIT_MESSAGE),
    )
    orchestrator.subscribe(print_event)

    try:
        summary = await orchestrator.run(selection, publish=publisher is not None)
    except InventoryUnavailableError as e:
        console.print(f"  [red]ERROR[/red] {e}")
        return 12

    run = orchestrator.run_state
    updated = apply_run_results(report, run)

    reports_dir = project_path / CONFIG_DIR / "reports"
    reports_dir.mkdir(parents=True, exist_ok=True)
    summary_path = reports_dir / f"remediation-{summary.run_id}.md"
    summary_path.write_text(render_run_summary(run, summary), encoding="utf-8")
    (reports_dir / "FLEET-AUDIT-REPORT.md").write_text(
        render_global_report(updated, project_name), encoding="utf-8"
    )

    items = summary.items
    color = "red" if summary.has_failures else "green"
    console.print(
        f"\n  [{color}]Remediation {summary.run_id}[/{color}]: "
        f"{items.success} success, {items.failed} failed, {items.skipped} skipped"
    )
    if run.publish_requested:
        console.print(
            f"  Publish: {summary.publish.success} published, "
            f"{summary.publish.failed} failed, {summary.publish.skipped} skipped"
        )
    console.print(f"  Coverage: {report.coverage.percentage}% -> {updated.coverage.percentage}%")
    console.print(f"  Results: {summary_path}")
    console.print()

    return 1 if summary.has_failures else 0


def run_matrix(
    project_path: Path,
    statuses: Optional[list[str]] = None,
    sites: Optional[list[str]] = None,
    sort_by: Optional[str] = None,
    descending: bool = False,
) -> int:
    """Write the requirement traceability matrix. Returns exit code."""
    project_path = Path(project_path).resolve()

    failed = _check_project(project_path)
    if failed is not None:
        return failed

    config = get_effective_config(project_path)
    try:
        _, report = analyze_inventory(config)
    except InventoryUnavailableError as e:
        console.print(f"  [red]ERROR[/red] {e}")
        return 12

    rows = build_matrix_rows(report, statuses=statuses, sites=sites, sort_by=sort_by, descending=descending)
    output_path = project_path / CONFIG_DIR / "reports" / "requirement-matrix.csv"
    result = export_matrix_csv(rows, output_path)
    console.print(f"  [green]OK[/green] Matrix: {result['rows']} rows written to {output_path}")
    return 0
