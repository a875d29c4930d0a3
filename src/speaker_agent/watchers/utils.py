from __future__ import annotations

import logging
from typing import Any, Iterable, List, Mapping, Set

from ovn_speaker.cache import InMemoryCache
from ovn_speaker.config import Mode
from ovn_speaker.constants import KIND_IPTABLES_EIP, KIND_POD, KIND_SERVICE, KIND_SUBNET
from ovn_speaker.events import (
    DeletedFinalStateUnknown,
    ResourceAdded,
    ResourceDeleted,
    ResourceUpdated,
)
from ovn_speaker.models import object_key, parse_object
from ovn_speaker.registry import HandlerRegistry

LOG = logging.getLogger(__name__)

WATCHED_KINDS = {
    Mode.SUBNET: (KIND_SUBNET, KIND_SERVICE, KIND_POD),
    Mode.NAT_GW: (KIND_IPTABLES_EIP,),
    Mode.NODE_ROUTE_EIP: (KIND_IPTABLES_EIP, KIND_POD),
}


def watched_kinds(mode: Mode) -> tuple[str, ...]:
    return WATCHED_KINDS[mode]


def parse_objects(kind: str, items: Iterable[Mapping[str, Any]]) -> List[Any]:
    objects = []
    for item in items:
        try:
            objects.append(parse_object(kind, item))
        except (KeyError, TypeError, ValueError) as exc:
            LOG.warning("skipping malformed %s object: %s", kind, exc)
    return objects


def replace_kind(
    store: InMemoryCache,
    registry: HandlerRegistry,
    kind: str,
    objects: Iterable[Any],
    *,
    tombstones: bool = True,
) -> None:
    """Make the cached ``kind`` objects equal ``objects`` and publish the diff.

    Objects missing from ``objects`` are reported as deleted, wrapped in a
    :class:`DeletedFinalStateUnknown` when ``tombstones`` is set since their
    final state was never observed.
    """

    seen: Set[str] = set()
    for obj in objects:
        seen.add(object_key(obj))
        previous = store.upsert(kind, obj)
        if previous is None:
            registry.handle(ResourceAdded(kind, obj))
        elif previous != obj:
            registry.handle(ResourceUpdated(kind, previous, obj))

    for key in set(store.keys(kind)) - seen:
        removed = store.delete(kind, key)
        if removed is None:
            continue
        payload = DeletedFinalStateUnknown(key, removed) if tombstones else removed
        registry.handle(ResourceDeleted(kind, payload))


def apply_event(
    store: InMemoryCache,
    registry: HandlerRegistry,
    kind: str,
    event_type: str,
    obj: Any,
) -> None:
    """Apply one watch event (``ADDED``/``MODIFIED``/``DELETED``)."""

    if event_type == "DELETED":
        removed = store.delete(kind, object_key(obj))
        registry.handle(ResourceDeleted(kind, removed if removed is not None else obj))
        return

    previous = store.upsert(kind, obj)
    if previous is None:
        registry.handle(ResourceAdded(kind, obj))
    else:
        registry.handle(ResourceUpdated(kind, previous, obj))
