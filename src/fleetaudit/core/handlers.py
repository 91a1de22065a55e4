"""Auto-fix handler registry.

Each ``auto-fix`` action names an implementation key. The orchestrator
resolves the key here and calls ``handler(entity, store, action)``.
Handlers may be plain functions or coroutines; both are awaited the same
way by the orchestrator. Built-in handlers are single-field upserts, so
running one twice leaves the inventory in the same state.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, Union

from ..inventory.store import InventoryError, InventoryStore
from ..models.entity import Entity
from ..models.finding import Action

HandlerResult = Union[Optional[str], Awaitable[Optional[str]]]
Handler = Callable[[Entity, InventoryStore, Action], HandlerResult]

DEFAULT_FIX_MESSAGE = "Fix applied"


class UnknownHandlerError(LookupError):
    """Raised by a strict registry when no handler is registered for a key."""

    def __init__(self, key: Optional[str]):
        self.key = key
        super().__init__(f"No handler registered for implementation: {key}")


BUILTIN_HANDLERS: dict[str, Handler] = {}


def builtin(key: str) -> Callable[[Handler], Handler]:
    """Register a function as a built-in handler under ``key``."""

    def decorator(fn: Handler) -> Handler:
        BUILTIN_HANDLERS[key] = fn
        return fn

    return decorator


def _require_target(action: Action) -> str:
    if not action.target:
        raise InventoryError(f"Action '{action.label}' has no target")
    return action.target


@builtin("trigger-ssl-renewal")
def trigger_ssl_renewal(entity: Entity, store: InventoryStore, action: Action) -> str:
    store.set_site_ssl_status(entity.id, "valid")
    return "SSL certificate renewed"


@builtin("fix-health-status")
def fix_health_status(entity: Entity, store: InventoryStore, action: Action) -> str:
    store.set_site_health_status(entity.id, "healthy")
    return "Health status reset to healthy"


@builtin("reconnect-integration")
def reconnect_integration(entity: Entity, store: InventoryStore, action: Action) -> str:
    integration_id = _require_target(action)
    store.set_integration_status(entity.id, integration_id, "connected")
    return f"Integration {integration_id} reconnected"


@builtin("revoke-expired-credential")
def revoke_expired_credential(entity: Entity, store: InventoryStore, action: Action) -> str:
    credential_id = _require_target(action)
    store.set_credential_status(credential_id, "revoked")
    return f"Credential {credential_id} revoked"


def _accept_unknown(entity: Entity, store: InventoryStore, action: Action) -> str:
    return DEFAULT_FIX_MESSAGE


class HandlerRegistry:
    """Maps implementation keys to handlers.

    A lenient registry (the default) resolves unknown keys to a handler
    that reports success without touching the inventory. A strict registry
    raises ``UnknownHandlerError`` instead.
    """

    def __init__(self, strict: bool = False, include_builtins: bool = True):
        self.strict = strict
        self._handlers: dict[str, Handler] = dict(BUILTIN_HANDLERS) if include_builtins else {}

    def register(self, key: str, handler: Handler) -> None:
        self._handlers[key] = handler

    def keys(self) -> list[str]:
        return sorted(self._handlers)

    def __contains__(self, key: Any) -> bool:
        return key in self._handlers

    def resolve(self, key: Optional[str]) -> Handler:
        handler = self._handlers.get(key) if key else None
        if handler is not None:
            return handler
        if self.strict:
            raise UnknownHandlerError(key)
        return _accept_unknown


def default_registry(config: Optional[dict] = None) -> HandlerRegistry:
    """Build the registry configured by the ``remediation`` section."""
    strict = bool((config or {}).get("remediation", {}).get("strict_handlers", False))
    return HandlerRegistry(strict=strict)
