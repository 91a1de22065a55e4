"""Remediation run data models and run events."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel

from .entity import Entity
from .finding import Action, ActionType

MANUAL_ACTION_MESSAGE = "Requires manual action"


class RunPhase(str, Enum):
    PREVIEW = "Preview"
    RUNNING = "Running"
    PUBLISHING = "Publishing"
    COMPLETE = "Complete"


class EntityPhase(str, Enum):
    PENDING = "Pending"
    RUNNING = "Running"
    COMPLETE = "Complete"
    ERROR = "Error"


class ItemStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class PublishState(str, Enum):
    PENDING = "Pending"
    PUBLISHING = "Publishing"
    PUBLISHED = "Published"
    FAILED = "Failed"
    SKIPPED = "Skipped"


class RemediationItem(BaseModel):
    """One selected finding, requirement or suggestion queued for a run."""

    id: str
    entity: Entity
    title: str
    action: Action
    source: Literal["finding", "requirement", "suggestion"] = "finding"
    finding_id: Optional[str] = None


class ItemResult(BaseModel):
    item_id: str
    title: str = ""
    finding_id: Optional[str] = None
    status: ItemStatus
    message: str = ""


class PublishStatus(BaseModel):
    state: PublishState = PublishState.PENDING
    commit_id: Optional[str] = None
    commit_url: Optional[str] = None
    message: Optional[str] = None


class EntityProgress(BaseModel):
    entity: Entity
    phase: EntityPhase = EntityPhase.PENDING
    progress: float = 0
    results: list[ItemResult] = []
    publish: PublishStatus = PublishStatus()

    def count(self, status: ItemStatus) -> int:
        return sum(1 for r in self.results if r.status == status)


class OutcomeCounts(BaseModel):
    total: int = 0
    success: int = 0
    failed: int = 0
    skipped: int = 0


class RunSummary(BaseModel):
    run_id: str
    items: OutcomeCounts = OutcomeCounts()
    publish: OutcomeCounts = OutcomeCounts()
    entities_total: int = 0
    entities_completed: int = 0
    cancelled: bool = False
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_seconds: float = 0

    @property
    def has_failures(self) -> bool:
        return self.items.failed > 0 or self.publish.failed > 0


class RemediationPreview(BaseModel):
    total: int = 0
    by_action: dict[str, int] = {t.value: 0 for t in ActionType}
    by_entity: dict[str, int] = {}
    can_publish: bool = False


# ---------------------------------------------------------------------------
# Run events
# ---------------------------------------------------------------------------


class _RunEvent(BaseModel):
    run_id: str
    sequence: int = 0


class PhaseChanged(_RunEvent):
    kind: Literal["phase-changed"] = "phase-changed"
    phase: RunPhase


class EntityStarted(_RunEvent):
    kind: Literal["entity-started"] = "entity-started"
    entity: Entity
    item_count: int = 0


class ItemCompleted(_RunEvent):
    kind: Literal["item-completed"] = "item-completed"
    entity: Entity
    result: ItemResult
    progress: float = 0


class EntityCompleted(_RunEvent):
    kind: Literal["entity-completed"] = "entity-completed"
    entity: Entity
    phase: EntityPhase


class PublishStarted(_RunEvent):
    kind: Literal["publish-started"] = "publish-started"
    entity: Entity


class PublishCompleted(_RunEvent):
    kind: Literal["publish-completed"] = "publish-completed"
    entity: Entity
    status: PublishStatus


class RunCompleted(_RunEvent):
    kind: Literal["run-completed"] = "run-completed"
    summary: RunSummary


RunEvent = Union[
    PhaseChanged,
    EntityStarted,
    ItemCompleted,
    EntityCompleted,
    PublishStarted,
    PublishCompleted,
    RunCompleted,
]


class RemediationRun(BaseModel):
    """Canonical state of one run, owned and mutated by the orchestrator."""

    run_id: str
    phase: RunPhase = RunPhase.PREVIEW
    entities: dict[str, EntityProgress] = {}
    publish_requested: bool = False
    cancelled: bool = False
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    events: list[RunEvent] = []

    def progress_for(self, entity_id: str) -> Optional[EntityProgress]:
        return self.entities.get(entity_id)

    def all_results(self) -> list[ItemResult]:
        return [r for p in self.entities.values() for r in p.results]
