"""Entity data models."""

from __future__ import annotations

import re
from enum import Enum

from pydantic import BaseModel

CONTROL_PLANE_ID = "control-center"
CONTROL_PLANE_NAME = "Control Center"
CONTROL_PLANE_COLOR = "#06b6d4"


class EntityKind(str, Enum):
    CONTROL_PLANE = "control-plane"
    MANAGED_SITE = "managed-site"


class Entity(BaseModel):
    """The unit of ownership for findings: the control plane or one site."""

    id: str
    name: str
    color: str = "#64748b"
    kind: EntityKind = EntityKind.MANAGED_SITE

    @classmethod
    def control_plane(cls) -> Entity:
        return cls(
            id=CONTROL_PLANE_ID,
            name=CONTROL_PLANE_NAME,
            color=CONTROL_PLANE_COLOR,
            kind=EntityKind.CONTROL_PLANE,
        )

    @classmethod
    def site(cls, id: str, name: str, color: str = "#64748b") -> Entity:
        return cls(id=id, name=name, color=color, kind=EntityKind.MANAGED_SITE)

    @property
    def is_control_plane(self) -> bool:
        return self.kind == EntityKind.CONTROL_PLANE

    @property
    def id_prefix(self) -> str:
        """Namespace for requirement, suggestion and defect ids."""
        if self.is_control_plane:
            return "CC"
        return "SITE-" + re.sub(r"\s+", "-", self.name.strip().upper())
