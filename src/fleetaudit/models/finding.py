"""Finding data models."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from .entity import Entity


class Category(str, Enum):
    INTEGRATION = "integration"
    SECURITY = "security"
    BUG = "bug"
    FEATURE = "feature"
    COMPLIANCE = "compliance"
    PERFORMANCE = "performance"


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ActionType(str, Enum):
    AUTO_FIX = "auto-fix"
    MANUAL = "manual"
    REVIEW = "review"


class Action(BaseModel):
    type: ActionType
    label: str
    implementation: Optional[str] = None
    target: Optional[str] = None

    @model_validator(mode="after")
    def _check_implementation(self) -> Action:
        if self.type == ActionType.AUTO_FIX and not self.implementation:
            raise ValueError("auto-fix actions require an implementation key")
        if self.type != ActionType.AUTO_FIX and self.implementation:
            raise ValueError(f"{self.type.value} actions cannot carry an implementation key")
        return self


class Finding(BaseModel):
    id: str = Field(pattern=r"^finding-\d+$")
    entity: Entity
    category: Category
    severity: Severity
    title: str
    description: str = ""
    action: Action
    module: str = ""
    selected: bool = False

    @property
    def entity_id(self) -> str:
        return self.entity.id

    @property
    def sequence(self) -> int:
        return int(self.id.split("-", 1)[1])


class FindingSummary(BaseModel):
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    total: int = 0

    @classmethod
    def from_findings(cls, findings: list[Finding]) -> FindingSummary:
        counts = {s: 0 for s in Severity}
        for f in findings:
            counts[f.severity] += 1
        return cls(
            critical=counts[Severity.CRITICAL],
            high=counts[Severity.HIGH],
            medium=counts[Severity.MEDIUM],
            low=counts[Severity.LOW],
            total=len(findings),
        )
