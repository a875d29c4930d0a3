"""File-based resource watcher.

Polls a YAML (or JSON) snapshot of cluster objects and publishes the changes
as resource events.  Handy for lab setups without an API server.  Expected
layout::

    iptables-eips: [<IptablesEIP JSON>, ...]
    pods: [<Pod JSON>, ...]
    subnets: [...]
    services: [...]
"""

from __future__ import annotations

import logging
from pathlib import Path
from threading import Event, Thread
from typing import Sequence

import yaml

from ovn_speaker.cache import InMemoryCache
from ovn_speaker.constants import KIND_IPTABLES_EIP, KIND_POD, KIND_SERVICE, KIND_SUBNET
from ovn_speaker.registry import HandlerRegistry

from .utils import parse_objects, replace_kind

LOG = logging.getLogger(__name__)

SECTIONS = {
    KIND_IPTABLES_EIP: "iptables-eips",
    KIND_POD: "pods",
    KIND_SUBNET: "subnets",
    KIND_SERVICE: "services",
}


class FileResourceWatcher(Thread):
    """Poll a resources file and keep the store in sync with it."""

    def __init__(
        self,
        store: InMemoryCache,
        registry: HandlerRegistry,
        path: Path,
        interval: float,
        stop_event: Event,
        kinds: Sequence[str] = tuple(SECTIONS),
    ) -> None:
        super().__init__(daemon=True, name=f"file-watcher-{Path(path).name}")
        self._store = store
        self._registry = registry
        self._path = Path(path)
        self._interval = interval
        self._stop_event = stop_event
        self._kinds = tuple(kinds)

    def run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.poll()
            except Exception:  # pragma: no cover - logged below
                LOG.exception("file watcher encountered an error")
            self._stop_event.wait(self._interval)

    def poll(self) -> None:
        if not self._path.exists():
            LOG.debug("resources file %s does not exist yet", self._path)
            return

        try:
            payload = yaml.safe_load(self._path.read_text()) or {}
        except yaml.YAMLError as exc:
            LOG.warning("failed to parse resources file %s: %s", self._path, exc)
            return

        if not isinstance(payload, dict):
            LOG.warning("invalid resources file %s: top level must be a mapping", self._path)
            return

        for kind in self._kinds:
            items = payload.get(SECTIONS[kind]) or []
            if not isinstance(items, list):
                LOG.warning("section '%s' of %s must be a list", SECTIONS[kind], self._path)
                continue
            objects = parse_objects(kind, items)
            replace_kind(self._store, self._registry, kind, objects, tombstones=False)
            self._store.mark_synced(kind)
