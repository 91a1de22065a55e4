"""Inventory snapshot data models.

These mirror the rows the console keeps for each managed site and for the
control plane itself. Only the fields the rule catalog reads, and the
fields the auto-fix handlers are allowed to write, are modelled.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .entity import Entity


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive timestamps from the store as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SiteIntegration(BaseModel):
    site_id: str
    integration_id: str
    status: str = "connected"  # connected, disconnected, error, pending


class Credential(BaseModel):
    id: str
    site_id: str
    service: str = ""
    status: str = "active"  # active, demo, expired, revoked
    expires_at: Optional[datetime] = None

    _utc_expires = field_validator("expires_at")(_as_utc)


class Repository(BaseModel):
    site_id: str
    owner: str = ""
    name: str = ""
    branch: str = "main"


class Site(BaseModel):
    id: str
    name: str = "Unknown Site"
    color: str = "#64748b"
    domain: Optional[str] = None
    domain_verification: str = "verified"  # verified, pending, failed
    status: str = "live"  # live, draft, pending, maintenance
    health_status: str = "healthy"  # healthy, degraded, error, down
    ssl_status: str = "valid"  # valid, expiring, expired, missing
    uptime_percentage: Optional[float] = None
    response_time_ms: Optional[int] = None

    def as_entity(self) -> Entity:
        return Entity.site(self.id, self.name, self.color)


class ControlPlaneIntegration(BaseModel):
    integration_id: str
    status: str = "connected"


class AdminSession(BaseModel):
    id: str
    user_id: str = ""
    privileged: bool = False
    active: bool = True


class ErrorLogEntry(BaseModel):
    id: str = ""
    level: str = "error"
    message: str = ""
    created_at: datetime

    _utc_created = field_validator("created_at")(_as_utc)


class ControlPlaneState(BaseModel):
    integrations: list[ControlPlaneIntegration] = []
    sessions: list[AdminSession] = []
    error_logs: list[ErrorLogEntry] = []
    imported_apps: int = 0


class Inventory(BaseModel):
    """Point-in-time view of the fleet that rules are evaluated against."""

    captured_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    sites: list[Site] = []
    integrations: list[SiteIntegration] = []
    credentials: list[Credential] = []
    repositories: list[Repository] = []
    control_plane: ControlPlaneState = ControlPlaneState()

    _utc_captured = field_validator("captured_at")(_as_utc)

    def integrations_for(self, site_id: str) -> list[SiteIntegration]:
        return [i for i in self.integrations if i.site_id == site_id]

    def credentials_for(self, site_id: str) -> list[Credential]:
        return [c for c in self.credentials if c.site_id == site_id]

    def repository_for(self, site_id: str) -> Optional[Repository]:
        return next((r for r in self.repositories if r.site_id == site_id), None)

    def entities(self) -> list[Entity]:
        """Control plane first, then every managed site in inventory order."""
        return [Entity.control_plane()] + [s.as_entity() for s in self.sites]
