"""Speaker controller: event path, periodic pass and lifecycle.

Two independent paths converge on the same speaker calls:

* per-resource events (node-route EIP mode only) go through a rate limited
  work queue and are handled one key at a time by :meth:`Controller.run_worker`;
* a ticker runs :meth:`Controller.reconcile` every ``reconcile_interval``
  seconds and diffs the full expected set against the speaker.

Both consult :meth:`BGPSpeaker.is_announced` before mutating anything, so a
race between them only costs a redundant check.
"""

from __future__ import annotations

import logging
from threading import Event, Thread
from typing import Any, List, Optional

from .cache import ResourceCache
from .config import Mode, SpeakerConfig
from .constants import KIND_IPTABLES_EIP, KIND_POD
from .events import DeletedFinalStateUnknown
from .exceptions import CacheSyncError, NotFoundError, ReconcileError
from .expected import expected_prefixes
from .handlers import EventHandlerFuncs
from .models import IptablesEIP, Pod
from .placement import PlacementResolver, is_vpc_nat_gw_pod, nat_gw_name_from_pod
from .prefixes import PrefixMap
from .registry import HandlerRegistry
from .routes import announce_routes, reconcile_routes, withdraw_routes
from .speaker import BGPSpeaker
from .workqueue import RateLimitingQueue

LOG = logging.getLogger(__name__)


def _unwrap(obj: Any) -> Any:
    if isinstance(obj, DeletedFinalStateUnknown):
        return obj.obj
    return obj


class Controller:
    """Keep the speaker's announcements in line with the cluster."""

    def __init__(
        self,
        config: SpeakerConfig,
        cache: ResourceCache,
        speaker: BGPSpeaker,
        *,
        queue: Optional[RateLimitingQueue] = None,
        placement: Optional[PlacementResolver] = None,
        drain_timeout: float = 30.0,
    ) -> None:
        self._config = config
        self._cache = cache
        self._speaker = speaker
        self._placement = placement or PlacementResolver(
            cache, config.node_name, config.vpc_nat_gw_namespace
        )
        self._queue: Optional[RateLimitingQueue] = None
        if config.mode is Mode.NODE_ROUTE_EIP:
            self._queue = queue if queue is not None else RateLimitingQueue(name="NodeRouteEIP")
        self._drain_timeout = drain_timeout
        self._threads: List[Thread] = []

    @property
    def config(self) -> SpeakerConfig:
        return self._config

    @property
    def queue(self) -> Optional[RateLimitingQueue]:
        return self._queue

    def register(self, registry: HandlerRegistry) -> None:
        """Hook the event handlers of the configured mode into ``registry``."""

        if self._config.mode is not Mode.NODE_ROUTE_EIP:
            return
        registry.register(
            "node-route-eip",
            KIND_IPTABLES_EIP,
            EventHandlerFuncs(
                add=self.enqueue_add_eip,
                update=self.enqueue_update_eip,
                delete=self.enqueue_delete_eip,
            ),
        )
        registry.register(
            "node-route-eip-gw-pods",
            KIND_POD,
            EventHandlerFuncs(
                add=self.enqueue_gw_pod,
                update=self.enqueue_update_gw_pod,
                delete=self.enqueue_gw_pod,
            ),
        )

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------
    def enqueue_add_eip(self, obj: Any) -> None:
        """Queue ready EIPs; also replays every EIP after a restart."""

        if not isinstance(obj, IptablesEIP):
            LOG.error("expected IptablesEIP but got %s", type(obj).__name__)
            return
        # not-ready EIPs come back through an update once they turn ready
        if not obj.ready:
            return
        LOG.debug("enqueue add iptables-eip %s for BGP route recovery", obj.name)
        self._queue.add(obj.name)

    def enqueue_update_eip(self, old: Any, new: Any) -> None:
        if not isinstance(new, IptablesEIP):
            LOG.error("expected IptablesEIP but got %s", type(new).__name__)
            return
        if new.deletion_timestamp is not None:
            return
        LOG.debug("enqueue update iptables-eip %s", new.name)
        self._queue.add(new.name)

    def enqueue_delete_eip(self, obj: Any) -> None:
        """Withdraw a deleted EIP right away instead of queueing it."""

        eip = _unwrap(obj)
        if not isinstance(eip, IptablesEIP):
            LOG.warning("unexpected object type in delete: %s", type(eip).__name__)
            return
        LOG.debug("withdrawing routes for deleted iptables-eip %s", eip.name)
        try:
            self.withdraw_eip_routes(eip)
        except ReconcileError as exc:
            LOG.error("errors withdrawing BGP routes for EIP %s: %s", eip.name, exc)

    def enqueue_gw_pod(self, obj: Any) -> None:
        """Requeue the EIPs of a NAT gateway whose pod changed."""

        pod = _unwrap(obj)
        if not isinstance(pod, Pod) or not is_vpc_nat_gw_pod(pod):
            return
        self._enqueue_eips_of_gateway(nat_gw_name_from_pod(pod))

    def enqueue_update_gw_pod(self, old: Any, new: Any) -> None:
        if isinstance(old, Pod) and isinstance(new, Pod):
            if (old.node_name, old.phase) == (new.node_name, new.phase):
                return
        self.enqueue_gw_pod(new)

    def _enqueue_eips_of_gateway(self, nat_gw: str) -> None:
        if not nat_gw:
            return
        for eip in self._cache.list(KIND_IPTABLES_EIP):
            if eip.nat_gw_dp == nat_gw:
                LOG.debug("enqueue iptables-eip %s after NAT GW %s pod change", eip.name, nat_gw)
                self._queue.add(eip.name)

    # ------------------------------------------------------------------
    # Route helpers
    # ------------------------------------------------------------------
    def withdraw_eip_routes(self, eip: IptablesEIP) -> List[str]:
        withdrawn = withdraw_routes(self._speaker, eip.addresses)
        if withdrawn:
            LOG.info("withdrawn BGP routes for iptables-eip %s: %s", eip.name, withdrawn)
        return withdrawn

    def announce_eip_routes(self, eip: IptablesEIP) -> List[str]:
        announced = announce_routes(self._speaker, eip.addresses)
        if announced:
            LOG.info("announced BGP routes for iptables-eip %s: %s", eip.name, announced)
        return announced

    # ------------------------------------------------------------------
    # Queue workers
    # ------------------------------------------------------------------
    def handle_add_or_update_eip(self, name: str) -> None:
        """Bring the routes of EIP ``name`` in line with its current state.

        Raises on speaker failures so the caller can requeue the key.
        """

        LOG.debug("handling add/update iptables-eip %s in node route mode", name)
        try:
            eip = self._cache.get(KIND_IPTABLES_EIP, name)
        except NotFoundError:
            LOG.debug("iptables-eip %s not found, may have been deleted", name)
            return

        # stale routes of non-ready EIPs are cleaned up by the periodic pass
        if not eip.ready:
            return

        if not eip.bgp_enabled:
            LOG.debug("iptables-eip %s does not have BGP annotation, withdrawing", name)
            self.withdraw_eip_routes(eip)
            return

        if not self._placement.is_local(eip):
            LOG.debug(
                "NAT GW pod for iptables-eip %s not on local node %s, withdrawing routes",
                name,
                self._config.node_name,
            )
            self.withdraw_eip_routes(eip)
            return

        self.announce_eip_routes(eip)

    def process_next_item(self) -> bool:
        """Handle one key; return False once the queue is shut down."""

        key, shutdown = self._queue.get()
        if shutdown:
            return False
        try:
            self.handle_add_or_update_eip(key)
        except Exception as exc:
            self._queue.add_rate_limited(key)
            LOG.error("error processing EIP %r: %s, requeuing", key, exc)
        else:
            self._queue.forget(key)
        finally:
            self._queue.done(key)
        return True

    def run_worker(self) -> None:
        while self.process_next_item():
            pass

    def enqueue_all_ready_eips(self) -> int:
        """Queue every ready, BGP-enabled EIP; used once at startup."""

        count = 0
        for eip in self._cache.list(KIND_IPTABLES_EIP):
            if not eip.ready or not eip.bgp_enabled:
                continue
            LOG.debug("enqueue ready iptables-eip %s on startup", eip.name)
            self._queue.add(eip.name)
            count += 1
        LOG.info("enqueued %d ready EIPs for startup recovery", count)
        return count

    # ------------------------------------------------------------------
    # Full reconciliation
    # ------------------------------------------------------------------
    def expected(self) -> PrefixMap:
        return expected_prefixes(self._cache, self._config, self._placement)

    def sync(self) -> None:
        """Run one full pass; raises on list or speaker failures."""

        reconcile_routes(self._speaker, self.expected())

    def reconcile(self) -> None:
        """Periodic entry point; failures are logged and retried next tick."""

        try:
            self.sync()
        except Exception as exc:
            LOG.error("failed to reconcile %s routes: %s", self._config.mode.value, exc)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def run(
        self,
        stop_event: Event,
        workers: Optional[int] = None,
        sync_timeout: Optional[float] = None,
    ) -> None:
        """Start workers and the ticker, then block until ``stop_event``."""

        if not self._cache.wait_for_sync(stop_event, sync_timeout):
            if stop_event.is_set():
                LOG.info("stopped before caches synced")
                return
            raise CacheSyncError("failed to wait for caches to sync")

        LOG.info("Started workers")
        if self._queue is not None:
            count = workers or self._config.workers
            LOG.info("starting %d node route EIP workers", count)
            for index in range(count):
                self._start_thread(self.run_worker, f"eip-worker-{index}")
            try:
                self.enqueue_all_ready_eips()
            except Exception as exc:
                LOG.error("failed to enqueue ready EIPs on startup: %s", exc)

        self._start_thread(lambda: self._run_scheduler(stop_event), "reconcile")

        stop_event.wait()
        LOG.info("Shutting down workers")
        if self._queue is not None:
            if not self._queue.shut_down_with_drain(self._drain_timeout):
                LOG.warning("work queue did not drain within %ss", self._drain_timeout)
        for thread in self._threads:
            thread.join(timeout=self._drain_timeout)
        self._threads.clear()

    def _run_scheduler(self, stop_event: Event) -> None:
        while not stop_event.is_set():
            self.reconcile()
            stop_event.wait(self._config.reconcile_interval)

    def _start_thread(self, target, name: str) -> Thread:
        thread = Thread(target=target, name=name, daemon=True)
        thread.start()
        self._threads.append(thread)
        return thread
