"""Publish adapter data models."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel

from .inventory import Repository


class FileChange(BaseModel):
    path: str
    content: str
    encoding: str = "utf-8"


class Changeset(BaseModel):
    run_id: str
    commit_message: str
    changes: list[FileChange] = []
    repository: Optional[Repository] = None


class PublishOutcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class PublishResult(BaseModel):
    status: PublishOutcome
    commit_id: Optional[str] = None
    commit_url: Optional[str] = None
    message: Optional[str] = None
