"""Shared fixtures for fleetaudit tests."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest
import yaml

from fleetaudit.models.inventory import (
    ControlPlaneIntegration,
    ControlPlaneState,
    Credential,
    Inventory,
    Repository,
    Site,
    SiteIntegration,
)

CAPTURED_AT = datetime(2026, 1, 1, tzinfo=timezone.utc)

ALL_TRACKED = [
    "auth0", "supabase", "namecheap", "letsencrypt",
    "sendgrid", "gmail-api", "microsoft-graph", "google-analytics",
    "aws-s3", "github", "lovable-cloud", "slack",
]


def write_inventory(path: Path, inventory: Inventory) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        yaml.safe_dump(inventory.model_dump(mode="json"), sort_keys=False),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def healthy_inventory() -> Inventory:
    """Fleet where every rule passes."""
    return Inventory(
        captured_at=CAPTURED_AT,
        sites=[
            Site(
                id="site-ok",
                name="Calm Site",
                domain="calm.example.com",
                uptime_percentage=99.95,
                response_time_ms=300,
            ),
        ],
        integrations=[SiteIntegration(site_id="site-ok", integration_id="stripe")],
        repositories=[Repository(site_id="site-ok", owner="acme", name="calm")],
        control_plane=ControlPlaneState(
            integrations=[ControlPlaneIntegration(integration_id=i) for i in ALL_TRACKED],
            imported_apps=1,
        ),
    )


@pytest.fixture
def problem_inventory() -> Inventory:
    """Fleet with known problems.

    Control plane (6 findings): 4 required integrations missing, readiness 0%,
    no imported projects.
    Alpha Shop (4 auto-fix findings): stripe in error, expired credential,
    expired SSL, site down.
    Beta Blog (4 findings): no integrations, slow, no domain, uptime below SLA.
    """
    return Inventory(
        captured_at=CAPTURED_AT,
        sites=[
            Site(
                id="site-a",
                name="Alpha Shop",
                color="#8b5cf6",
                domain="alpha.example.com",
                health_status="down",
                ssl_status="expired",
                uptime_percentage=99.9,
                response_time_ms=400,
            ),
            Site(
                id="site-b",
                name="Beta Blog",
                uptime_percentage=98.5,
                response_time_ms=2000,
            ),
        ],
        integrations=[SiteIntegration(site_id="site-a", integration_id="stripe", status="error")],
        credentials=[
            Credential(
                id="cred-1",
                site_id="site-a",
                service="stripe",
                expires_at=datetime(2025, 6, 1, tzinfo=timezone.utc),
            ),
        ],
        repositories=[Repository(site_id="site-a", owner="acme", name="alpha-shop")],
    )


@pytest.fixture
def tmp_project(tmp_path: Path) -> Path:
    """Create an empty project directory."""
    project = tmp_path / "test-project"
    project.mkdir()
    return project


@pytest.fixture
def initialized_project(tmp_project: Path, problem_inventory: Inventory) -> Path:
    """Create a project with .fleetaudit initialized and a problem inventory."""
    fa_dir = tmp_project / ".fleetaudit"
    (fa_dir / "reports").mkdir(parents=True)
    (fa_dir / "audit").mkdir()

    (fa_dir / "config.yaml").write_text(
        'project:\n  name: "test-project"\n\npublish:\n  provider: github\n',
        encoding="utf-8",
    )
    write_inventory(fa_dir / "inventory.yaml", problem_inventory)
    return tmp_project
