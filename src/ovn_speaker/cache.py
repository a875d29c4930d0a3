"""Read-through resource cache consumed by the engine.

The engine never talks to the API server directly.  Watchers keep an
:class:`InMemoryCache` current and the controller only reads from it, which
lets tests drive the whole engine by filling the cache by hand.
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from threading import Event
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .exceptions import NotFoundError
from .models import object_key


def matches_selector(labels: Mapping[str, str], selector: Optional[Mapping[str, str]]) -> bool:
    """Return True if ``labels`` contain every pair of an equality selector."""

    if not selector:
        return True
    return all(labels.get(k) == v for k, v in selector.items())


class ResourceCache(ABC):
    """List/Get/WaitForSync view over cluster objects."""

    @abstractmethod
    def list(
        self,
        kind: str,
        namespace: Optional[str] = None,
        selector: Optional[Mapping[str, str]] = None,
    ) -> List[Any]:
        """Return all cached objects of ``kind`` matching the filters."""

    @abstractmethod
    def get(self, kind: str, name: str, namespace: Optional[str] = None) -> Any:
        """Return one object or raise :class:`NotFoundError`."""

    @abstractmethod
    def has_synced(self) -> bool:
        """True once every watched kind completed its initial list."""

    def wait_for_sync(self, stop_event: Event, timeout: Optional[float] = None) -> bool:
        """Block until synced, ``stop_event`` fires or ``timeout`` expires."""

        deadline = None if timeout is None else time.monotonic() + timeout
        while not self.has_synced():
            if stop_event.is_set():
                return False
            remaining = 0.1
            if deadline is not None:
                remaining = min(remaining, deadline - time.monotonic())
                if remaining <= 0:
                    return self.has_synced()
            stop_event.wait(remaining)
        return True


class InMemoryCache(ResourceCache):
    """Thread-safe store keyed by kind and ``namespace/name``."""

    def __init__(self, kinds: Iterable[str] = ()) -> None:
        self._lock = threading.RLock()
        self._objects: Dict[str, Dict[str, Any]] = {}
        self._pending_sync = set(kinds)
        for kind in self._pending_sync:
            self._objects.setdefault(kind, {})

    # ------------------------------------------------------------------
    # Writers (watchers)
    # ------------------------------------------------------------------
    def upsert(self, kind: str, obj: Any) -> Optional[Any]:
        """Store ``obj`` and return the object it replaced, if any."""

        key = object_key(obj)
        with self._lock:
            bucket = self._objects.setdefault(kind, {})
            previous = bucket.get(key)
            bucket[key] = obj
        return previous

    def delete(self, kind: str, key: str) -> Optional[Any]:
        with self._lock:
            return self._objects.get(kind, {}).pop(key, None)

    def keys(self, kind: str) -> List[str]:
        with self._lock:
            return list(self._objects.get(kind, {}))

    def get_by_key(self, kind: str, key: str) -> Optional[Any]:
        with self._lock:
            return self._objects.get(kind, {}).get(key)

    def mark_synced(self, kind: str) -> None:
        with self._lock:
            self._pending_sync.discard(kind)

    # ------------------------------------------------------------------
    # ResourceCache
    # ------------------------------------------------------------------
    def list(
        self,
        kind: str,
        namespace: Optional[str] = None,
        selector: Optional[Mapping[str, str]] = None,
    ) -> List[Any]:
        with self._lock:
            objects = list(self._objects.get(kind, {}).values())
        return [
            obj
            for obj in objects
            if (namespace is None or getattr(obj, "namespace", None) == namespace)
            and matches_selector(getattr(obj, "labels", {}), selector)
        ]

    def get(self, kind: str, name: str, namespace: Optional[str] = None) -> Any:
        key = f"{namespace}/{name}" if namespace else name
        with self._lock:
            obj = self._objects.get(kind, {}).get(key)
        if obj is None:
            raise NotFoundError(kind, name, namespace)
        return obj

    def has_synced(self) -> bool:
        with self._lock:
            return not self._pending_sync
