"""Event primitives published by watchers and consumed by the registry."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ResourceAdded:
    """An object appeared in the cache (including replays after a relist)."""

    kind: str
    obj: Any


@dataclass(frozen=True)
class ResourceUpdated:
    kind: str
    old: Any
    new: Any


@dataclass(frozen=True)
class ResourceDeleted:
    """An object left the cache.

    ``obj`` is either the last known object or a
    :class:`DeletedFinalStateUnknown` when the delete was only noticed by a
    relist.
    """

    kind: str
    obj: Any


@dataclass(frozen=True)
class DeletedFinalStateUnknown:
    """Tombstone for an object whose delete event was missed."""

    key: str
    obj: Any
