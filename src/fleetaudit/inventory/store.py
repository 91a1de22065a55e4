"""Inventory store abstraction.

The pipeline reads one snapshot per run and writes back only the fields the
auto-fix handlers are documented to touch. Every write is a single upsert so
that a remediation item is either fully applied or not applied at all.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Callable, Optional, Protocol, runtime_checkable

import yaml
from pydantic import ValidationError

from ..core.config import resolve_project_path
from ..models.inventory import Inventory, Repository, Site


class InventoryError(Exception):
    """Raised when an inventory read or write cannot be completed."""


class InventoryUnavailableError(InventoryError):
    """Raised when the inventory cannot be reached before a run starts."""


def _site(inventory: Inventory, site_id: str) -> Site:
    site = next((s for s in inventory.sites if s.id == site_id), None)
    if site is None:
        raise InventoryError(f"Unknown site: {site_id}")
    return site


@runtime_checkable
class InventoryStore(Protocol):
    """Protocol that all inventory stores must implement."""

    def ensure_available(self) -> None: ...

    def snapshot(self) -> Inventory: ...

    def get_repository(self, site_id: str) -> Optional[Repository]: ...

    def set_site_ssl_status(self, site_id: str, status: str) -> None: ...

    def set_site_health_status(self, site_id: str, status: str) -> None: ...

    def set_credential_status(self, credential_id: str, status: str) -> None: ...

    def set_integration_status(self, site_id: str, integration_id: str, status: str) -> None: ...


class MemoryInventoryStore:
    """Inventory held in process; used by tests and embedded callers.

    Setters apply their change to a copy of the current inventory, persist
    the copy with ``_write`` and only then make it current. A failed write
    leaves the previous state untouched.
    """

    def __init__(self, inventory: Optional[Inventory] = None):
        self._inventory = inventory or Inventory()

    def ensure_available(self) -> None:
        return None

    def snapshot(self) -> Inventory:
        return self._state().model_copy(deep=True)

    def get_repository(self, site_id: str) -> Optional[Repository]:
        repo = self._state().repository_for(site_id)
        return repo.model_copy() if repo else None

    def set_site_ssl_status(self, site_id: str, status: str) -> None:
        def change(draft: Inventory) -> None:
            _site(draft, site_id).ssl_status = status

        self._apply(change)

    def set_site_health_status(self, site_id: str, status: str) -> None:
        def change(draft: Inventory) -> None:
            _site(draft, site_id).health_status = status

        self._apply(change)

    def set_credential_status(self, credential_id: str, status: str) -> None:
        def change(draft: Inventory) -> None:
            cred = next((c for c in draft.credentials if c.id == credential_id), None)
            if cred is None:
                raise InventoryError(f"Unknown credential: {credential_id}")
            cred.status = status

        self._apply(change)

    def set_integration_status(self, site_id: str, integration_id: str, status: str) -> None:
        def change(draft: Inventory) -> None:
            integration = next(
                (
                    i for i in draft.integrations
                    if i.site_id == site_id and i.integration_id == integration_id
                ),
                None,
            )
            if integration is None:
                raise InventoryError(f"Unknown integration {integration_id} for site {site_id}")
            integration.status = status

        self._apply(change)

    def _apply(self, change: Callable[[Inventory], None]) -> None:
        draft = self._state().model_copy(deep=True)
        change(draft)
        self._write(draft)
        self._inventory = draft

    def _state(self) -> Inventory:
        return self._inventory

    def _write(self, inventory: Inventory) -> None:
        return None


class FileInventoryStore(MemoryInventoryStore):
    """Inventory snapshot stored as a YAML or JSON file.

    The file is read by ``ensure_available`` (or lazily on first access) and
    rewritten atomically, temp file then replace, after every write.
    """

    def __init__(self, path: Path):
        super().__init__(None)
        self.path = Path(path)
        self._loaded = False

    def ensure_available(self) -> None:
        if not self.path.exists():
            raise InventoryUnavailableError(f"Inventory file not found: {self.path}")
        self._inventory = self._load()
        self._loaded = True

    def _state(self) -> Inventory:
        if not self._loaded:
            self.ensure_available()
        return self._inventory

    def _load(self) -> Inventory:
        try:
            content = self.path.read_text(encoding="utf-8-sig")
            if self.path.suffix.lower() == ".json":
                data = json.loads(content or "{}")
            else:
                data = yaml.safe_load(content) or {}
            return Inventory.model_validate(data)
        except (OSError, ValueError, yaml.YAMLError, ValidationError) as e:
            raise InventoryUnavailableError(f"Failed to load inventory {self.path}: {e}") from e

    def _write(self, inventory: Inventory) -> None:
        data = inventory.model_dump(mode="json")
        if self.path.suffix.lower() == ".json":
            content = json.dumps(data, indent=2, ensure_ascii=False)
        else:
            content = yaml.dump(
                data,
                default_flow_style=False,
                sort_keys=False,
                allow_unicode=True,
                width=120,
            )

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".inventory-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(content)
            os.replace(tmp_name, self.path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise InventoryError(f"Failed to write inventory {self.path}: {e}") from e


def open_inventory_store(config: dict) -> FileInventoryStore:
    """Create the file-backed store configured for a project."""
    project_path = Path(config.get("_project_path", "."))
    configured = config.get("inventory", {}).get("path", ".fleetaudit/inventory.yaml")
    return FileInventoryStore(resolve_project_path(project_path, configured))
