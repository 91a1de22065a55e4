"""Remediation orchestrator.

Drives one run through Preview, Running, Publishing and Complete. Entities
are processed one at a time in the order they first appear in the
selection, and items within an entity strictly in selection order. Every
state change is applied to the canonical ``RemediationRun`` and emitted as
an event to subscribers.
"""

from __future__ import annotations

import inspect
import time
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

from rich.console import Console

from ..inventory.store import InventoryStore
from ..models.finding import ActionType
from ..models.publish import PublishOutcome, PublishResult
from ..models.remediation import (
    MANUAL_ACTION_MESSAGE,
    EntityCompleted,
    EntityPhase,
    EntityProgress,
    EntityStarted,
    ItemCompleted,
    ItemResult,
    ItemStatus,
    OutcomeCounts,
    PhaseChanged,
    PublishCompleted,
    PublishStarted,
    PublishState,
    PublishStatus,
    RemediationItem,
    RemediationRun,
    RunCompleted,
    RunEvent,
    RunPhase,
    RunSummary,
)
from ..publishers.base import PublishAdapter
from ..utils.sanitize import sanitize_error
from .audit import AuditSink
from .handlers import DEFAULT_FIX_MESSAGE, HandlerRegistry
from .summary import build_changeset

console = Console()

DEFAULT_COMMIT_MESSAGE = "fleetaudit: apply remediation run {run_id}"

PUBLISH_STATES = {
    PublishOutcome.SUCCESS: PublishState.PUBLISHED,
    PublishOutcome.FAILED: PublishState.FAILED,
    PublishOutcome.SKIPPED: PublishState.SKIPPED,
}

Subscriber = Callable[[RunEvent], None]


def new_run_id() -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
    return f"run-{stamp}-{uuid.uuid4().hex[:6]}"


def group_by_entity(selection: list[RemediationItem]) -> dict[str, list[RemediationItem]]:
    """Group items by entity id, preserving first-seen entity order."""
    groups: dict[str, list[RemediationItem]] = {}
    for item in selection:
        groups.setdefault(item.entity.id, []).append(item)
    return groups


def _item_result(item: RemediationItem, status: ItemStatus, message: str) -> ItemResult:
    return ItemResult(
        item_id=item.id,
        title=item.title,
        finding_id=item.finding_id,
        status=status,
        message=message,
    )


def _error_message(error: Exception) -> str:
    return sanitize_error(str(error)) or type(error).__name__


def _count(statuses: list[str], success: str, failed: str, skipped: str) -> OutcomeCounts:
    return OutcomeCounts(
        total=len(statuses),
        success=statuses.count(success),
        failed=statuses.count(failed),
        skipped=statuses.count(skipped),
    )


class RemediationOrchestrator:
    """Applies a selection of remediation items and optionally publishes them.

    Item and publish failures are recorded, never raised. The only errors
    that escape ``run`` are setup errors raised before any entity starts:
    an unavailable inventory or a publish request without a publisher.
    """

    def __init__(
        self,
        store: InventoryStore,
        handlers: Optional[HandlerRegistry] = None,
        publisher: Optional[PublishAdapter] = None,
        audit_sink: Optional[AuditSink] = None,
        commit_message: str = DEFAULT_COMMIT_MESSAGE,
        run_id: Optional[str] = None,
    ):
        self.store = store
        self.handlers = handlers or HandlerRegistry()
        self.publisher = publisher
        self.audit_sink = audit_sink
        self.commit_message = commit_message
        self.run_id = run_id
        self.run_state: Optional[RemediationRun] = None
        self._subscribers: list[Subscriber] = []
        self._cancel_requested = False
        self._sequence = 0

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register an event callback. Returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def cancel(self) -> None:
        """Stop before the next entity. The entity in progress still finishes."""
        self._cancel_requested = True

    def _emit(self, event: RunEvent) -> None:
        self._sequence += 1
        event.sequence = self._sequence
        self.run_state.events.append(event)
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception as e:
                console.print(f"  [yellow]WARN[/yellow] Event subscriber failed: {sanitize_error(str(e))}")

    def _set_phase(self, phase: RunPhase) -> None:
        self.run_state.phase = phase
        self._emit(PhaseChanged(run_id=self.run_state.run_id, phase=phase))

    async def run(self, selection: list[RemediationItem], publish: bool = False) -> RunSummary:
        """Execute a remediation run and return its summary."""
        if publish and self.publisher is None:
            raise ValueError("Publishing requested but no publisher is configured")

        self.store.ensure_available()

        start_time = time.time()
        self._sequence = 0
        run = RemediationRun(
            run_id=self.run_id or new_run_id(),
            publish_requested=publish,
            started_at=datetime.now(timezone.utc),
        )
        self.run_state = run

        groups = group_by_entity(selection)
        for entity_id, items in groups.items():
            run.entities[entity_id] = EntityProgress(entity=items[0].entity)

        processed: list[EntityProgress] = []
        if groups:
            self._set_phase(RunPhase.RUNNING)
            for entity_id, items in groups.items():
                if self._cancel_requested:
                    run.cancelled = True
                    break
                progress = run.entities[entity_id]
                try:
                    await self._run_entity(progress, items)
                except Exception as e:
                    message = _error_message(e)
                    for item in items[len(progress.results):]:
                        progress.results.append(_item_result(item, ItemStatus.FAILED, message))
                    progress.phase = EntityPhase.ERROR
                    console.print(f"  [red]ERROR[/red] {progress.entity.name}: {message}")
                    self._emit(EntityCompleted(run_id=run.run_id, entity=progress.entity, phase=progress.phase))
                processed.append(progress)

        published = False
        if publish and any(not p.entity.is_control_plane for p in processed):
            published = True
            self._set_phase(RunPhase.PUBLISHING)
            for progress in processed:
                await self._publish_entity(progress)

        run.completed_at = datetime.now(timezone.utc)
        summary = self._summarize(run, published, time.time() - start_time)
        self._set_phase(RunPhase.COMPLETE)
        self._emit(RunCompleted(run_id=run.run_id, summary=summary))

        if self.audit_sink is not None:
            try:
                self.audit_sink.append(run, summary)
            except OSError as e:
                console.print(f"  [yellow]WARN[/yellow] Could not write audit record: {sanitize_error(str(e))}")

        self._cancel_requested = False
        return summary

    async def _run_entity(self, progress: EntityProgress, items: list[RemediationItem]) -> None:
        run_id = self.run_state.run_id
        progress.phase = EntityPhase.RUNNING
        self._emit(EntityStarted(run_id=run_id, entity=progress.entity, item_count=len(items)))

        total = len(items)
        for index, item in enumerate(items, start=1):
            result = await self._run_item(item)
            progress.results.append(result)
            progress.progress = round(index / total * 100, 2)
            self._emit(ItemCompleted(
                run_id=run_id,
                entity=progress.entity,
                result=result,
                progress=progress.progress,
            ))

        progress.phase = EntityPhase.COMPLETE
        progress.progress = 100
        self._emit(EntityCompleted(run_id=run_id, entity=progress.entity, phase=progress.phase))

    async def _run_item(self, item: RemediationItem) -> ItemResult:
        if item.action.type != ActionType.AUTO_FIX:
            return _item_result(item, ItemStatus.SKIPPED, MANUAL_ACTION_MESSAGE)

        try:
            handler = self.handlers.resolve(item.action.implementation)
            outcome = handler(item.entity, self.store, item.action)
            if inspect.isawaitable(outcome):
                outcome = await outcome
            # handlers may return any value; only its text is recorded
            return _item_result(item, ItemStatus.SUCCESS, str(outcome) if outcome else DEFAULT_FIX_MESSAGE)
        except Exception as e:
            return _item_result(item, ItemStatus.FAILED, _error_message(e))

    async def _publish_entity(self, progress: EntityProgress) -> None:
        run_id = self.run_state.run_id
        entity = progress.entity

        if entity.is_control_plane:
            progress.publish = PublishStatus(
                state=PublishState.SKIPPED,
                message="Control plane changes are not published",
            )
            self._emit(PublishCompleted(run_id=run_id, entity=entity, status=progress.publish))
            return

        progress.publish = PublishStatus(state=PublishState.PUBLISHING)
        self._emit(PublishStarted(run_id=run_id, entity=entity))

        try:
            changeset = build_changeset(
                run_id,
                progress,
                self.store.get_repository(entity.id),
                self.commit_message,
            )
            result: PublishResult = await self.publisher.publish_with_retry(entity, changeset)
            progress.publish = PublishStatus(
                state=PUBLISH_STATES[result.status],
                commit_id=result.commit_id,
                commit_url=result.commit_url,
                message=sanitize_error(result.message) if result.message else None,
            )
        except Exception as e:
            progress.publish = PublishStatus(
                state=PublishState.FAILED,
                message=_error_message(e),
            )

        self._emit(PublishCompleted(run_id=run_id, entity=entity, status=progress.publish))

    def _summarize(self, run: RemediationRun, published: bool, duration: float) -> RunSummary:
        item_statuses = [r.status.value for r in run.all_results()]
        publish_states = [
            p.publish.state.value
            for p in run.entities.values()
            if published and p.publish.state != PublishState.PENDING
        ]
        return RunSummary(
            run_id=run.run_id,
            items=_count(item_statuses, "success", "failed", "skipped"),
            publish=_count(publish_states, "Published", "Failed", "Skipped"),
            entities_total=len(run.entities),
            entities_completed=sum(1 for p in run.entities.values() if p.phase == EntityPhase.COMPLETE),
            cancelled=run.cancelled,
            started_at=run.started_at,
            completed_at=run.completed_at,
            duration_seconds=round(duration, 3),
        )
