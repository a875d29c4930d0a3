"""Dispatch resource events to the handlers registered for their kind."""

from __future__ import annotations

import logging
from typing import Dict, Tuple

from .events import ResourceAdded, ResourceDeleted, ResourceUpdated
from .handlers import ResourceHandler

LOG = logging.getLogger(__name__)


class HandlerRegistry:
    """Fan resource events out to registered :class:`ResourceHandler` objects."""

    def __init__(self) -> None:
        self._handlers: Dict[str, Tuple[str, ResourceHandler]] = {}

    def register(self, name: str, kind: str, handler: ResourceHandler) -> None:
        if name in self._handlers:
            raise ValueError(f"handler '{name}' already registered")
        self._handlers[name] = (kind, handler)

    def unregister(self, name: str) -> None:
        self._handlers.pop(name, None)

    def kinds(self) -> set[str]:
        return {kind for kind, _ in self._handlers.values()}

    def handle(self, event: ResourceAdded | ResourceUpdated | ResourceDeleted) -> None:
        if isinstance(event, ResourceAdded):
            for handler in self._for_kind(event.kind):
                handler.on_add(event.obj)
        elif isinstance(event, ResourceUpdated):
            for handler in self._for_kind(event.kind):
                handler.on_update(event.old, event.new)
        elif isinstance(event, ResourceDeleted):
            for handler in self._for_kind(event.kind):
                handler.on_delete(event.obj)
        else:
            raise TypeError(f"Unsupported event type: {type(event)!r}")

    def _for_kind(self, kind: str) -> list[ResourceHandler]:
        return [handler for k, handler in self._handlers.values() if k == kind]
