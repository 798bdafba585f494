"""Instrumentation hooks — wrap dispatch and publish operations.

Hooks are tracing/metrics adapters with the shape
``async hook(operation, attributes, next_handler)``. They are matched against
the operation name with glob patterns (``listener.dispatch.*``) and run in
priority order, lowest first.
"""

from __future__ import annotations

import fnmatch
import logging
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger("relaybus.instrumentation")


@runtime_checkable
class InstrumentationHook(Protocol):
    """Protocol for instrumentation hooks (tracing, metrics, etc.)."""

    async def __call__(
        self,
        operation: str,
        attributes: dict[str, Any],
        next_handler: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Wrap an operation with instrumentation."""
        ...


@dataclass
class HookRegistration:
    """A registered hook with its filter and priority."""

    hook: InstrumentationHook
    priority: int = 0
    operations: list[str] = field(default_factory=list)
    enabled: bool = True

    def matches(self, operation: str) -> bool:
        if not self.enabled:
            return False
        if not self.operations:
            return True
        return any(fnmatch.fnmatchcase(operation, p) for p in self.operations)


class HookRegistry:
    """Ordered set of instrumentation hooks."""

    def __init__(self) -> None:
        self._registrations: list[HookRegistration] = []

    def register(
        self,
        hook: InstrumentationHook,
        *,
        priority: int = 0,
        operations: list[str] | None = None,
    ) -> HookRegistration:
        """Register *hook*, optionally restricted to glob *operations*."""
        registration = HookRegistration(
            hook=hook, priority=priority, operations=list(operations or [])
        )
        self._registrations.append(registration)
        self._registrations.sort(key=lambda r: r.priority)
        logger.debug("Registered instrumentation hook %r", hook)
        return registration

    async def execute_all(
        self,
        operation: str,
        attributes: dict[str, Any],
        next_handler: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Run *next_handler* wrapped by every matching hook."""
        matching = [r for r in self._registrations if r.matches(operation)]
        if not matching:
            return await next_handler()

        async def run(index: int) -> Any:
            if index == len(matching):
                return await next_handler()
            return await matching[index].hook(
                operation, attributes, lambda: run(index + 1)
            )

        return await run(0)

    def clear(self) -> None:
        """Remove all registrations."""
        self._registrations.clear()


_hook_registry_var: ContextVar[HookRegistry | None] = ContextVar(
    "relaybus_hook_registry", default=None
)


def get_hook_registry() -> HookRegistry:
    """Get the hook registry for the current context.

    Creates a fresh ``HookRegistry`` on first access within each context.
    Listeners and publishers capture the registry when they are constructed.
    """
    registry = _hook_registry_var.get()
    if registry is None:
        registry = HookRegistry()
        _hook_registry_var.set(registry)
    return registry


def set_hook_registry(registry: HookRegistry) -> None:
    """Set a custom hook registry in the current context."""
    _hook_registry_var.set(registry)
