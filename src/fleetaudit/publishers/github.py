"""GitHub publisher using the git data API.

Commits a changeset in one commit: read the branch ref, read its commit,
create a blob per file, create a tree, create a commit, then move the
branch ref forward (never forced).
"""

from __future__ import annotations

import os
from typing import Any, Optional

import httpx

from ..models.entity import Entity
from ..models.publish import Changeset, PublishOutcome, PublishResult
from ..utils.sanitize import sanitize_error
from .base import BasePublisher, PublisherSetupError


class _StepFailed(Exception):
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class GitHubPublisher(BasePublisher):
    name = "github"
    API_URL = "https://api.github.com"

    def __init__(
        self,
        publisher_config: dict,
        common_config: dict,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(publisher_config, common_config)
        token_env = publisher_config.get("token_env", "GITHUB_TOKEN")
        self.token = publisher_config.get("token") or os.environ.get(token_env)
        if not self.token:
            raise PublisherSetupError(f"GitHub token not found in environment variable: {token_env}")
        self.api_url = publisher_config.get("api_url", self.API_URL).rstrip("/")
        self.default_branch = publisher_config.get("default_branch", "main")
        self.timeout = publisher_config.get("timeout_seconds", 30)
        self._transport = transport

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": "fleetaudit",
        }

    async def _call(
        self,
        client: httpx.AsyncClient,
        step: str,
        method: str,
        url: str,
        body: Optional[dict] = None,
    ) -> Any:
        try:
            response = await client.request(method, url, json=body)
        except httpx.TimeoutException:
            raise _StepFailed(f"Failed to {step}: timeout")
        except httpx.HTTPError as e:
            raise _StepFailed(f"Failed to {step}: {sanitize_error(str(e))}")
        if response.status_code >= 400:
            raise _StepFailed(f"Failed to {step}: {response.status_code}")
        return response.json()

    async def publish(self, entity: Entity, changeset: Changeset) -> PublishResult:
        if not changeset.changes:
            return PublishResult(status=PublishOutcome.SKIPPED, message="No changes to push")

        repo = changeset.repository
        if repo is None or not repo.owner or not repo.name:
            return PublishResult(status=PublishOutcome.SKIPPED, message="Repository information incomplete")

        branch = repo.branch or self.default_branch
        base = f"/repos/{repo.owner}/{repo.name}/git"

        try:
            async with httpx.AsyncClient(
                base_url=self.api_url,
                headers=self._headers(),
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                ref = await self._call(client, "get branch", "GET", f"{base}/refs/heads/{branch}")
                latest_sha = ref["object"]["sha"]

                commit = await self._call(client, "get commit", "GET", f"{base}/commits/{latest_sha}")
                base_tree = commit["tree"]["sha"]

                tree_items = []
                for change in changeset.changes:
                    try:
                        blob = await self._call(
                            client, "create blob", "POST", f"{base}/blobs",
                            {"content": change.content, "encoding": change.encoding},
                        )
                    except _StepFailed:
                        # One unreadable file does not sink the whole commit
                        continue
                    tree_items.append({
                        "path": change.path,
                        "mode": "100644",
                        "type": "blob",
                        "sha": blob["sha"],
                    })

                if not tree_items:
                    return PublishResult(status=PublishOutcome.SKIPPED, message="No files could be processed")

                tree = await self._call(
                    client, "create tree", "POST", f"{base}/trees",
                    {"base_tree": base_tree, "tree": tree_items},
                )
                new_commit = await self._call(
                    client, "create commit", "POST", f"{base}/commits",
                    {"message": changeset.commit_message, "tree": tree["sha"], "parents": [latest_sha]},
                )
                await self._call(
                    client, "update branch", "PATCH", f"{base}/refs/heads/{branch}",
                    {"sha": new_commit["sha"], "force": False},
                )
        except _StepFailed as e:
            return PublishResult(status=PublishOutcome.FAILED, message=e.message)
        except (KeyError, TypeError, ValueError) as e:
            return PublishResult(
                status=PublishOutcome.FAILED,
                message=f"Unexpected response from GitHub: {sanitize_error(str(e))}",
            )

        sha = new_commit["sha"]
        return PublishResult(
            status=PublishOutcome.SUCCESS,
            commit_id=sha,
            commit_url=f"https://github.com/{repo.owner}/{repo.name}/commit/{sha}",
            message=f"Pushed {len(tree_items)} file(s) to {repo.owner}/{repo.name}@{branch}",
        )
