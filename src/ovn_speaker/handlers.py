"""Handler interface for resource events dispatched by the registry."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Optional


class ResourceHandler(ABC):
    """Base class for handlers managed by :class:`HandlerRegistry`."""

    @abstractmethod
    def on_add(self, obj: Any) -> None:
        """React to ``obj`` appearing in the cache."""

    @abstractmethod
    def on_update(self, old: Any, new: Any) -> None:
        """React to ``old`` being replaced by ``new``."""

    @abstractmethod
    def on_delete(self, obj: Any) -> None:
        """React to ``obj`` (or its tombstone) leaving the cache."""


class EventHandlerFuncs(ResourceHandler):
    """Adapt plain callables to :class:`ResourceHandler`; missing ones are no-ops."""

    def __init__(
        self,
        *,
        add: Optional[Callable[[Any], None]] = None,
        update: Optional[Callable[[Any, Any], None]] = None,
        delete: Optional[Callable[[Any], None]] = None,
    ) -> None:
        self._add = add
        self._update = update
        self._delete = delete

    def on_add(self, obj: Any) -> None:
        if self._add is not None:
            self._add(obj)

    def on_update(self, old: Any, new: Any) -> None:
        if self._update is not None:
            self._update(old, new)

    def on_delete(self, obj: Any) -> None:
        if self._delete is not None:
            self._delete(obj)
