"""Report aggregation: flat findings to per-entity and global reports.

Pure transform. Given the same findings it always yields the same
requirement, suggestion and defect ids in the same order.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Optional

from ..models.entity import Entity
from ..models.finding import ActionType, Category, Finding, Severity
from ..models.remediation import ItemStatus, RemediationRun
from ..models.report import (
    Coverage,
    Defect,
    Evidence,
    GlobalCoverage,
    GlobalReport,
    Priority,
    ReportStatus,
    Requirement,
    RequirementStatus,
    SiteAnalysisReport,
    Suggestion,
)

STATUS_ORDER = {
    ReportStatus.BLOCKED: 0,
    ReportStatus.PARTIAL: 1,
    ReportStatus.PENDING: 2,
    ReportStatus.ALL_GREEN: 3,
}

CATEGORY_ROUTES = {
    Category.INTEGRATION: "/integrations",
    Category.SECURITY: "/password-manager",
    Category.BUG: "/",
    Category.FEATURE: "/sites",
    Category.COMPLIANCE: "/audit-logs",
    Category.PERFORMANCE: "/",
}

CAUSE_KEYWORDS: list[tuple[str, str]] = [
    ("auth", r"auth|credential|session|token|login"),
    ("rate-limits", r"rate.?limit|quota|429|throttl"),
    ("autosync", r"sync"),
    ("precision", r"rounding|precision|decimal"),
    ("type-error", r"type ?error|undefined|null"),
    ("ui-binding", r"button|dialog|render|binding"),
    ("state-mgmt", r"health|down|status|error"),
]


def _number(prefix: str, kind: str, n: int) -> str:
    return f"{prefix}-{kind}-{n:03d}"


def _requirement_status(finding: Finding) -> RequirementStatus:
    if finding.action.type == ActionType.AUTO_FIX:
        return RequirementStatus.PARTIAL
    return RequirementStatus.NOT_IMPLEMENTED


def _evidence(finding: Finding) -> Evidence:
    functions = [finding.action.implementation] if finding.action.implementation else []
    files = [f"rules/{finding.module}"] if finding.module else []
    return Evidence(
        files=files,
        functions=functions,
        routes=[CATEGORY_ROUTES[finding.category]],
        ux_location=finding.action.label,
    )


def build_requirements(entity: Entity, findings: list[Finding]) -> list[Requirement]:
    requirements: list[Requirement] = []
    for n, finding in enumerate(findings, start=1):
        requirements.append(Requirement(
            id=_number(entity.id_prefix, "REQ", n),
            finding_id=finding.id,
            title=finding.title,
            description=finding.description,
            category=finding.category,
            severity=finding.severity,
            action=finding.action,
            status=_requirement_status(finding),
            evidence=_evidence(finding),
            test_names=[f"test_{finding.module.replace('-', '_')}"] if finding.module else [],
        ))
    return requirements


def build_suggestions(entity: Entity, findings: list[Finding]) -> list[Suggestion]:
    """Synthesize improvement suggestions from which categories are present.

    - logging: always
    - security key rotation: only when the entity has no security finding
    - performance: only when the entity has a performance finding
    - UX: always
    """
    categories = {f.category for f in findings}
    drafts: list[dict] = [{
        "title": "Add structured logging",
        "category": "observability",
        "priority": Priority.MEDIUM,
        "rationale": f"{entity.name} has no consistent structured log output for incident triage.",
        "fix_plan": [
            "Emit JSON log lines with request id, entity id and severity",
            "Forward logs to the central log store",
            "Add an alert on error-rate spikes",
        ],
        "acceptance_criteria": [
            "Every request produces one structured log line",
            "Errors are searchable by entity id within 5 minutes",
        ],
    }]

    if Category.SECURITY not in categories:
        drafts.append({
            "title": "Schedule API key rotation",
            "category": "security",
            "priority": Priority.HIGH,
            "rationale": "No security issues were detected; keep it that way with periodic key rotation.",
            "fix_plan": [
                "Inventory all API keys and integration secrets",
                "Rotate keys on a 90-day schedule",
                "Record rotations in the audit log",
            ],
            "acceptance_criteria": [
                "No credential older than 90 days",
                "Rotation events visible in audit logs",
            ],
        })

    if Category.PERFORMANCE in categories:
        drafts.append({
            "title": "Introduce response caching",
            "category": "performance",
            "priority": Priority.HIGH,
            "rationale": "Response times exceed targets; cache hot reads and static assets.",
            "fix_plan": [
                "Profile the slowest endpoints",
                "Cache read-heavy responses at the edge",
                "Set latency budgets and alert on regressions",
            ],
            "acceptance_criteria": [
                "p95 response time under 1500ms",
                "Cache hit ratio above 80% for static assets",
            ],
        })

    drafts.append({
        "title": "Improve loading and error states",
        "category": "ux",
        "priority": Priority.LOW,
        "rationale": "Consistent loading indicators and friendly error surfaces reduce support load.",
        "fix_plan": [
            "Add skeleton loaders to data-heavy views",
            "Replace raw error text with actionable messages",
        ],
        "acceptance_criteria": [
            "No blank screens while data loads",
            "All error messages offer a next step",
        ],
    })

    return [
        Suggestion(id=_number(entity.id_prefix, "SUG", n), **draft)
        for n, draft in enumerate(drafts, start=1)
    ]


def classify_root_cause(finding: Finding) -> str:
    text = f"{finding.title} {finding.description}".lower()
    for cause, pattern in CAUSE_KEYWORDS:
        if re.search(pattern, text):
            return cause
    return "missing-impl"


def build_defects(entity: Entity, findings: list[Finding]) -> list[Defect]:
    critical_bugs = [
        f for f in findings
        if f.category == Category.BUG and f.severity == Severity.CRITICAL
    ]
    return [
        Defect(
            id=_number(entity.id_prefix, "DEF", n),
            finding_id=f.id,
            title=f.title,
            cause_category=classify_root_cause(f),
            root_cause=f.description,
            repro_steps=[f"Open {entity.name}", f.action.label],
            logs=[f"[{f.severity.value.upper()}] {f.id}: {f.title}"],
        )
        for n, f in enumerate(critical_bugs, start=1)
    ]


def compute_coverage(requirements: list[Requirement]) -> Coverage:
    implemented = sum(1 for r in requirements if r.status == RequirementStatus.IMPLEMENTED)
    partial = sum(1 for r in requirements if r.status == RequirementStatus.PARTIAL)
    blocked = sum(1 for r in requirements if r.status == RequirementStatus.NOT_IMPLEMENTED)
    total = len(requirements)
    percentage = round(implemented / total * 100) if total > 0 else 100
    return Coverage(
        implemented=implemented,
        partial=partial,
        blocked=blocked,
        total=total,
        percentage=percentage,
    )


def compute_status(requirements: list[Requirement]) -> ReportStatus:
    """Worst requirement status wins."""
    statuses = {r.status for r in requirements}
    if RequirementStatus.NOT_IMPLEMENTED in statuses:
        return ReportStatus.BLOCKED
    if RequirementStatus.PARTIAL in statuses:
        return ReportStatus.PARTIAL
    return ReportStatus.ALL_GREEN


def build_site_report(entity: Entity, findings: list[Finding]) -> SiteAnalysisReport:
    requirements = build_requirements(entity, findings)
    return SiteAnalysisReport(
        entity=entity,
        status=compute_status(requirements),
        requirements=requirements,
        suggestions=build_suggestions(entity, findings),
        defects=build_defects(entity, findings),
        coverage=compute_coverage(requirements),
    )


def sort_reports(reports: list[SiteAnalysisReport]) -> list[SiteAnalysisReport]:
    """Control plane first, then by status severity. ``sorted`` is stable so ties keep input order."""
    return sorted(
        reports,
        key=lambda r: (0 if r.entity.is_control_plane else 1, STATUS_ORDER[r.status]),
    )


def build_global_report(
    reports: list[SiteAnalysisReport],
    run_id: Optional[str] = None,
    generated_at=None,
) -> GlobalReport:
    ordered = sort_reports(reports)
    total_requirements = sum(r.coverage.total for r in ordered)
    implemented = sum(r.coverage.implemented for r in ordered)

    if any(r.status == ReportStatus.BLOCKED for r in ordered):
        status = ReportStatus.BLOCKED
    elif any(r.status == ReportStatus.PARTIAL for r in ordered):
        status = ReportStatus.PARTIAL
    else:
        status = ReportStatus.ALL_GREEN

    return GlobalReport(
        run_id=run_id,
        generated_at=generated_at,
        reports=ordered,
        total_requirements=total_requirements,
        total_suggestions=sum(len(r.suggestions) for r in ordered),
        total_defects=sum(len(r.defects) for r in ordered),
        coverage=GlobalCoverage(
            implemented=implemented,
            total=total_requirements,
            percentage=round(implemented / total_requirements * 100) if total_requirements > 0 else 100,
        ),
        status=status,
    )


def aggregate(
    findings: list[Finding],
    entities: Iterable[Entity] = (),
    pending: Iterable[Entity] = (),
    run_id: Optional[str] = None,
    generated_at=None,
) -> GlobalReport:
    """Aggregate flat findings into a sorted global report.

    Args:
        findings: Evaluator output, in id order.
        entities: Evaluated entities to include even when they have no findings.
        pending: Entities known to the inventory but not evaluated in this run.
    """
    grouped: dict[str, list[Finding]] = {}
    owners: dict[str, Entity] = {}
    for finding in findings:
        if finding.entity_id not in grouped:
            grouped[finding.entity_id] = []
            owners[finding.entity_id] = finding.entity
        grouped[finding.entity_id].append(finding)

    for entity in entities:
        if entity.id not in grouped:
            grouped[entity.id] = []
            owners[entity.id] = entity

    reports = [build_site_report(owners[eid], items) for eid, items in grouped.items()]

    for entity in pending:
        if entity.id not in grouped:
            reports.append(SiteAnalysisReport(entity=entity, status=ReportStatus.PENDING))

    return build_global_report(reports, run_id=run_id, generated_at=generated_at)


def apply_run_results(report: GlobalReport, run: RemediationRun) -> GlobalReport:
    """Fold a finished remediation run back into a report.

    Requirements whose finding was fixed successfully become implemented;
    coverage, status and ordering are recomputed on a copy.
    """
    fixed = {
        r.finding_id
        for r in run.all_results()
        if r.status == ItemStatus.SUCCESS and r.finding_id
    }
    updated: list[SiteAnalysisReport] = []
    for site_report in report.reports:
        copy = site_report.model_copy(deep=True)
        if copy.status != ReportStatus.PENDING:
            for req in copy.requirements:
                if req.finding_id in fixed:
                    req.status = RequirementStatus.IMPLEMENTED
            copy.coverage = compute_coverage(copy.requirements)
            copy.status = compute_status(copy.requirements)
        updated.append(copy)

    return build_global_report(updated, run_id=report.run_id, generated_at=report.generated_at)
