"""Selection helpers: which findings go into a remediation run."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Optional

from ..models.finding import Action, ActionType, Finding, Severity
from ..models.remediation import RemediationItem, RemediationPreview
from ..models.report import GlobalReport

SELECT_MODES = ("all", "critical", "auto-fix", "ids", "clear")


def select_findings(
    findings: list[Finding],
    mode: str = "all",
    ids: Optional[Iterable[str]] = None,
) -> list[Finding]:
    """Return copies of ``findings`` with ``selected`` set according to ``mode``.

    Modes:
        all: every finding
        critical: severity critical only
        auto-fix: findings with an auto-fix action only
        ids: findings whose id is in ``ids``
        clear: nothing
    """
    wanted = set(ids or [])

    def picked(f: Finding) -> bool:
        if mode == "all":
            return True
        if mode == "critical":
            return f.severity == Severity.CRITICAL
        if mode == "auto-fix":
            return f.action.type == ActionType.AUTO_FIX
        if mode == "ids":
            return f.id in wanted
        if mode == "clear":
            return False
        raise ValueError(f"Unknown selection mode: {mode}")

    return [f.model_copy(update={"selected": picked(f)}) for f in findings]


def selection_from_findings(findings: list[Finding]) -> list[RemediationItem]:
    """Build run items from the selected findings, preserving their order."""
    return [
        RemediationItem(
            id=f.id,
            entity=f.entity,
            title=f.title,
            action=f.action,
            source="finding",
            finding_id=f.id,
        )
        for f in findings
        if f.selected
    ]


def selection_from_report(report: GlobalReport) -> list[RemediationItem]:
    """Build run items from selected requirements and suggestions.

    Suggestions carry no fix implementation, so they are queued as manual
    items and always end up skipped.
    """
    items: list[RemediationItem] = []
    for site_report in report.reports:
        for req in site_report.requirements:
            if req.selected:
                items.append(RemediationItem(
                    id=req.id,
                    entity=site_report.entity,
                    title=req.title,
                    action=req.action,
                    source="requirement",
                    finding_id=req.finding_id,
                ))
        for sug in site_report.suggestions:
            if sug.selected:
                items.append(RemediationItem(
                    id=sug.id,
                    entity=site_report.entity,
                    title=sug.title,
                    action=Action(type=ActionType.MANUAL, label=sug.fix_plan[0] if sug.fix_plan else sug.title),
                    source="suggestion",
                ))
    return items


def build_preview(selection: list[RemediationItem]) -> RemediationPreview:
    """Summarize a selection without touching anything."""
    by_action = {t.value: 0 for t in ActionType}
    by_entity: dict[str, int] = {}
    for item in selection:
        by_action[item.action.type.value] += 1
        by_entity[item.entity.id] = by_entity.get(item.entity.id, 0) + 1

    return RemediationPreview(
        total=len(selection),
        by_action=by_action,
        by_entity=by_entity,
        can_publish=any(not item.entity.is_control_plane for item in selection),
    )
