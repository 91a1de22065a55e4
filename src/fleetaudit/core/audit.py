"""Append-only audit log of remediation runs (JSON lines)."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from ..models.remediation import RemediationRun, RunSummary
from .config import resolve_project_path


@runtime_checkable
class AuditSink(Protocol):
    def append(self, run: RemediationRun, summary: RunSummary) -> None: ...


def build_audit_record(run: RemediationRun, summary: RunSummary) -> dict:
    """One record per run: ids, timestamps, counts and every item result."""
    return {
        "run_id": run.run_id,
        "started_at": run.started_at.isoformat() if run.started_at else None,
        "completed_at": run.completed_at.isoformat() if run.completed_at else None,
        "publish_requested": run.publish_requested,
        "cancelled": run.cancelled,
        "summary": summary.model_dump(mode="json"),
        "entities": [
            {
                "entity_id": p.entity.id,
                "entity_name": p.entity.name,
                "phase": p.phase.value,
                "results": [r.model_dump(mode="json") for r in p.results],
                "publish": p.publish.model_dump(mode="json"),
            }
            for p in run.entities.values()
        ],
    }


class JsonlAuditSink:
    """Appends one JSON object per line; existing lines are never rewritten."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def append(self, run: RemediationRun, summary: RunSummary) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        line = json.dumps(build_audit_record(run, summary), ensure_ascii=False)
        with self.path.open("a", encoding="utf-8") as fh:
            fh.write(line + "\n")

    def read_records(self, run_id: Optional[str] = None) -> list[dict]:
        if not self.path.exists():
            return []
        records = []
        for line in self.path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            record = json.loads(line)
            if run_id is None or record.get("run_id") == run_id:
                records.append(record)
        return records


def open_audit_sink(config: dict) -> JsonlAuditSink:
    project_path = Path(config.get("_project_path", "."))
    configured = config.get("audit", {}).get("path", ".fleetaudit/audit/remediation-runs.jsonl")
    return JsonlAuditSink(resolve_project_path(project_path, configured))
