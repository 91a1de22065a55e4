"""Publish adapter abstraction with retry logic."""

from __future__ import annotations

import asyncio
from typing import Optional, Protocol, runtime_checkable

from ..models.entity import Entity
from ..models.publish import Changeset, PublishOutcome, PublishResult
from ..utils.sanitize import sanitize_error


@runtime_checkable
class PublishAdapter(Protocol):
    """Protocol that all publish adapters must implement.

    The orchestrator only calls ``publish_with_retry``; adapters without a
    retry policy can return ``await self.publish(...)`` from it.
    """

    name: str

    async def publish(self, entity: Entity, changeset: Changeset) -> PublishResult: ...

    async def publish_with_retry(self, entity: Entity, changeset: Changeset) -> PublishResult: ...


class PublisherSetupError(Exception):
    """Raised when a publisher cannot be initialised (missing token etc.)."""


class BasePublisher:
    """Base class with shared retry logic and config handling."""

    name: str = "base"

    def __init__(self, publisher_config: dict, common_config: dict):
        self.config = publisher_config
        self.common = common_config
        self.max_attempts = common_config.get("retry_attempts", 3)
        self.retry_delay = common_config.get("retry_delay_seconds", 2)

    async def publish(self, entity: Entity, changeset: Changeset) -> PublishResult:
        raise NotImplementedError

    async def publish_with_retry(self, entity: Entity, changeset: Changeset) -> PublishResult:
        """Wrap publish() with retry on rate limits, server errors and timeouts."""
        last_result: Optional[PublishResult] = None

        for attempt in range(1, self.max_attempts + 1):
            result = await self.publish(entity, changeset)
            last_result = result

            if result.status != PublishOutcome.FAILED:
                return result

            error_msg = result.message or ""
            is_retryable = any(
                code in error_msg
                for code in ("429", "500", "502", "503", "504", "timeout", "timed out")
            ) and not any(
                code in error_msg
                for code in ("400", "401", "403", "404", "409", "422")
            )

            if not is_retryable or attempt >= self.max_attempts:
                result.message = sanitize_error(error_msg)
                return result

            await asyncio.sleep(self.retry_delay * min(attempt, 3))

        return last_result or PublishResult(status=PublishOutcome.FAILED, message="Max retries exceeded")


def get_publisher(config: dict, provider_override: Optional[str] = None) -> BasePublisher:
    """Factory function to create the configured publisher."""
    publish_config = config.get("publish", {})
    provider_name = provider_override or publish_config.get("provider", "github")

    provider_config = dict(publish_config.get(provider_name, {}))

    # Common config is the publish section minus provider sub-configs
    common_config = {
        k: v
        for k, v in publish_config.items()
        if k not in ("github", "dry-run")
    }

    if provider_name == "github":
        from .github import GitHubPublisher
        return GitHubPublisher(provider_config, common_config)
    elif provider_name == "dry-run":
        from .dry_run import DryRunPublisher
        return DryRunPublisher(provider_config, common_config)
    else:
        raise ValueError(f"Unknown publisher: {provider_name}")
