"""Markdown rendering, exit codes and remediation changesets."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Optional

from .. import __version__
from ..models.inventory import Repository
from ..models.publish import Changeset, FileChange
from ..models.remediation import EntityProgress, ItemStatus, RemediationRun, RunSummary
from ..models.report import GlobalReport, ReportStatus

CHANGESET_DIR = ".fleetaudit/remediation"

STATUS_LABELS = {
    ReportStatus.ALL_GREEN: "PASS",
    ReportStatus.PARTIAL: "REVIEW",
    ReportStatus.BLOCKED: "FAIL",
    ReportStatus.PENDING: "PENDING",
}


def get_exit_code(status: ReportStatus) -> int:
    """Map the global report status to an exit code."""
    return {
        ReportStatus.ALL_GREEN: 0,
        ReportStatus.PARTIAL: 2,
        ReportStatus.BLOCKED: 1,
    }.get(status, 0)


def render_global_report(
    report: GlobalReport,
    project_name: str = "",
    duration_seconds: Optional[float] = None,
) -> str:
    """Generate the FLEET-AUDIT-REPORT.md document."""
    timestamp = (report.generated_at or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")

    lines: list[str] = []
    lines.append("# Fleet Audit Report")
    lines.append("")
    if project_name:
        lines.append(f"**Project:** {project_name}")
    if report.run_id:
        lines.append(f"**Run:** {report.run_id}")
    lines.append(f"**Date:** {timestamp}")
    lines.append(f"**Status:** {STATUS_LABELS[report.status]} ({report.status.value})")
    lines.append(
        f"**Coverage:** {report.coverage.percentage}% "
        f"({report.coverage.implemented}/{report.coverage.total} requirements implemented)"
    )
    if duration_seconds is not None:
        lines.append(f"**Duration:** {round(duration_seconds, 1)}s")
    lines.append("")

    lines.append("## Summary")
    lines.append("")
    lines.append("| Entity | Status | Requirements | Partial | Blocked | Suggestions | Defects | Coverage |")
    lines.append("|--------|--------|--------------|---------|---------|-------------|---------|----------|")
    for r in report.reports:
        lines.append(
            f"| {r.entity.name} | {r.status.value} | {r.coverage.total} | {r.coverage.partial} "
            f"| {r.coverage.blocked} | {len(r.suggestions)} | {len(r.defects)} | {r.coverage.percentage}% |"
        )
    lines.append(
        f"| **Total** | **{report.status.value}** | **{report.total_requirements}** | | "
        f"| **{report.total_suggestions}** | **{report.total_defects}** | **{report.coverage.percentage}%** |"
    )
    lines.append("")

    for r in report.reports:
        lines.append(f"## {r.entity.name}")
        lines.append("")
        if r.status == ReportStatus.PENDING:
            lines.append("_Not evaluated in this run._")
            lines.append("")
            continue

        if r.requirements:
            lines.append("### Requirements")
            lines.append("")
            for req in r.requirements:
                lines.append(f"- **{req.id}** {req.title} [{req.severity.value.upper()}] _{req.status.value}_")
                if req.description:
                    lines.append(f"  {req.description}")
                lines.append(f"  Action: {req.action.label} ({req.action.type.value})")
            lines.append("")

        if r.defects:
            lines.append("### Defects")
            lines.append("")
            for d in r.defects:
                lines.append(f"- **{d.id}** {d.title} (cause: {d.cause_category})")
            lines.append("")

        if r.suggestions:
            lines.append("### Suggestions")
            lines.append("")
            for s in r.suggestions:
                lines.append(f"- **{s.id}** {s.title} [{s.priority.value}]: {s.rationale}")
            lines.append("")

    lines.append("---")
    lines.append(f"*Generated by fleetaudit v{__version__} at {timestamp}*")

    return "\n".join(lines)


def render_run_summary(run: RemediationRun, summary: RunSummary) -> str:
    """Generate the markdown summary of one remediation run."""
    lines: list[str] = []
    lines.append(f"# Remediation Run {summary.run_id}")
    lines.append("")
    if summary.started_at:
        lines.append(f"**Started:** {summary.started_at.strftime('%Y-%m-%d %H:%M:%S')}")
    lines.append(f"**Duration:** {round(summary.duration_seconds, 1)}s")
    lines.append(f"**Entities:** {summary.entities_completed}/{summary.entities_total} completed")
    if summary.cancelled:
        lines.append("**Cancelled:** yes")
    lines.append("")

    lines.append("| Outcome | Items | Publishes |")
    lines.append("|---------|-------|-----------|")
    lines.append(f"| Success | {summary.items.success} | {summary.publish.success} |")
    lines.append(f"| Failed  | {summary.items.failed} | {summary.publish.failed} |")
    lines.append(f"| Skipped | {summary.items.skipped} | {summary.publish.skipped} |")
    lines.append(f"| **Total** | **{summary.items.total}** | **{summary.publish.total}** |")
    lines.append("")

    for progress in run.entities.values():
        lines.append(f"## {progress.entity.name} ({progress.phase.value})")
        lines.append("")
        for result in progress.results:
            lines.append(f"- [{result.status.value}] {result.title or result.item_id}: {result.message}")
        if run.publish_requested:
            pub = progress.publish
            line = f"- Publish: {pub.state.value}"
            if pub.commit_url:
                line += f" {pub.commit_url}"
            elif pub.message:
                line += f" ({pub.message})"
            lines.append(line)
        lines.append("")

    return "\n".join(lines)


def build_changeset(
    run_id: str,
    progress: EntityProgress,
    repository: Optional[Repository],
    commit_message: str,
) -> Changeset:
    """Build the remediation log commit for one entity.

    Entities without a successful item get an empty changeset, which
    publishers skip.
    """
    message = commit_message.format(run_id=run_id, entity=progress.entity.name)
    if progress.count(ItemStatus.SUCCESS) == 0:
        return Changeset(run_id=run_id, commit_message=message, repository=repository)

    lines = [f"# Remediation {run_id}", "", f"Entity: {progress.entity.name}", ""]
    for result in progress.results:
        lines.append(f"- [{result.status.value}] {result.title or result.item_id}: {result.message}")
    lines.append("")

    return Changeset(
        run_id=run_id,
        commit_message=message,
        repository=repository,
        changes=[FileChange(path=f"{CHANGESET_DIR}/{run_id}.md", content="\n".join(lines))],
    )


def export_report_json(report: GlobalReport, output_path: Path) -> None:
    """Write the global report as JSON."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(
        json.dumps(report.model_dump(mode="json"), indent=2, ensure_ascii=False),
        encoding="utf-8",
    )
