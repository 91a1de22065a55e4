"""Publisher that records what would be pushed without any network access."""

from __future__ import annotations

import hashlib

from ..models.entity import Entity
from ..models.publish import Changeset, PublishOutcome, PublishResult
from .base import BasePublisher


class DryRunPublisher(BasePublisher):
    name = "dry-run"

    def __init__(self, publisher_config: dict, common_config: dict):
        super().__init__(publisher_config, common_config)
        self.published: list[tuple[str, Changeset]] = []

    async def publish(self, entity: Entity, changeset: Changeset) -> PublishResult:
        if not changeset.changes:
            return PublishResult(status=PublishOutcome.SKIPPED, message="No changes to push")

        digest = hashlib.sha1()
        for change in changeset.changes:
            digest.update(change.path.encode("utf-8"))
            digest.update(b"\0")
            digest.update(change.content.encode("utf-8"))
        sha = digest.hexdigest()

        self.published.append((entity.id, changeset))
        return PublishResult(
            status=PublishOutcome.SUCCESS,
            commit_id=sha,
            message=f"Dry run: {len(changeset.changes)} file(s) for {entity.name}",
        )
