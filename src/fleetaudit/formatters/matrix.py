"""Requirement traceability matrix (CSV)."""

from __future__ import annotations

import csv
import io
from collections.abc import Iterable
from pathlib import Path
from typing import Optional

from ..models.report import GlobalReport, RequirementStatus

MATRIX_HEADERS = ["Requirement ID", "Site", "Title", "Status", "Implementation Refs", "Test Names"]

SORT_KEYS = ("id", "site", "status", "title")

_STATUS_RANK = {
    RequirementStatus.NOT_IMPLEMENTED.value: 0,
    RequirementStatus.PARTIAL.value: 1,
    RequirementStatus.IMPLEMENTED.value: 2,
}


def build_matrix_rows(
    report: GlobalReport,
    statuses: Optional[Iterable[str]] = None,
    sites: Optional[Iterable[str]] = None,
    sort_by: Optional[str] = None,
    descending: bool = False,
) -> list[dict]:
    """Flatten every requirement into one row.

    ``sites`` matches entity ids or names. Without ``sort_by`` rows keep
    report order.
    """
    status_filter = set(statuses or [])
    site_filter = set(sites or [])

    rows: list[dict] = []
    for site_report in report.reports:
        entity = site_report.entity
        if site_filter and entity.id not in site_filter and entity.name not in site_filter:
            continue
        for req in site_report.requirements:
            if status_filter and req.status.value not in status_filter:
                continue
            rows.append({
                "id": req.id,
                "site": entity.name,
                "title": req.title,
                "status": req.status.value,
                "refs": req.evidence.refs(),
                "tests": list(req.test_names),
            })

    if sort_by:
        if sort_by not in SORT_KEYS:
            raise ValueError(f"Unknown sort key: {sort_by}")
        if sort_by == "status":
            rows.sort(key=lambda r: _STATUS_RANK[r["status"]], reverse=descending)
        else:
            rows.sort(key=lambda r: r[sort_by].lower(), reverse=descending)

    return rows


def render_matrix_csv(rows: list[dict]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(MATRIX_HEADERS)
    for row in rows:
        writer.writerow([
            row["id"],
            row["site"],
            row["title"],
            row["status"],
            "; ".join(row["refs"]),
            "; ".join(row["tests"]),
        ])
    return buffer.getvalue()


def export_matrix_csv(rows: list[dict], output_path: Path) -> dict:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(render_matrix_csv(rows), encoding="utf-8")
    return {"path": str(output_path), "rows": len(rows)}
