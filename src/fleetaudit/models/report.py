"""Analysis report data models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from .entity import Entity
from .finding import Action, Category, Severity


class RequirementStatus(str, Enum):
    IMPLEMENTED = "implemented"
    PARTIAL = "partial"
    NOT_IMPLEMENTED = "not-implemented"


class ReportStatus(str, Enum):
    ALL_GREEN = "all-green"
    PARTIAL = "partial"
    BLOCKED = "blocked"
    PENDING = "pending"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Evidence(BaseModel):
    files: list[str] = []
    functions: list[str] = []
    routes: list[str] = []
    ux_location: str = ""

    def refs(self) -> list[str]:
        return [r for r in [*self.files, *self.functions, *self.routes] if r]


class Requirement(BaseModel):
    id: str
    finding_id: str
    title: str
    description: str = ""
    category: Category
    severity: Severity
    action: Action
    status: RequirementStatus
    evidence: Evidence = Evidence()
    test_names: list[str] = []
    selected: bool = False


class Suggestion(BaseModel):
    id: str
    title: str
    category: str  # security, reliability, observability, ux, data, performance
    priority: Priority
    rationale: str
    fix_plan: list[str] = []
    acceptance_criteria: list[str] = []
    selected: bool = False


class Defect(BaseModel):
    id: str
    finding_id: str
    title: str
    cause_category: str
    root_cause: str = ""
    repro_steps: list[str] = []
    logs: list[str] = []


class Coverage(BaseModel):
    implemented: int = 0
    partial: int = 0
    blocked: int = 0
    total: int = 0
    percentage: int = 100


class SiteAnalysisReport(BaseModel):
    entity: Entity
    status: ReportStatus
    requirements: list[Requirement] = []
    suggestions: list[Suggestion] = []
    defects: list[Defect] = []
    coverage: Coverage = Coverage()


class GlobalCoverage(BaseModel):
    implemented: int = 0
    total: int = 0
    percentage: int = 100


class GlobalReport(BaseModel):
    run_id: Optional[str] = None
    generated_at: Optional[datetime] = None
    reports: list[SiteAnalysisReport] = []
    total_requirements: int = 0
    total_suggestions: int = 0
    total_defects: int = 0
    coverage: GlobalCoverage = GlobalCoverage()
    status: ReportStatus = ReportStatus.ALL_GREEN

    def report_for(self, entity_id: str) -> Optional[SiteAnalysisReport]:
        return next((r for r in self.reports if r.entity.id == entity_id), None)

    def count_by_status(self, status: ReportStatus) -> int:
        return sum(1 for r in self.reports if r.status == status)
