"""List-and-watch of cluster objects through the Kubernetes API."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from threading import Event, Thread
from typing import Any, Callable, Dict, List, Mapping, Optional

from kubernetes import client, watch
from kubernetes import config as kube_config
from kubernetes.client import ApiException
from kubernetes.config import ConfigException

from ovn_speaker.cache import InMemoryCache
from ovn_speaker.config import Mode, SpeakerConfig
from ovn_speaker.constants import KIND_IPTABLES_EIP, KIND_POD, KIND_SERVICE, KIND_SUBNET
from ovn_speaker.registry import HandlerRegistry

from .utils import apply_event, parse_objects, replace_kind

LOG = logging.getLogger(__name__)

KUBEOVN_GROUP = "kubeovn.io"
KUBEOVN_VERSION = "v1"


@dataclass(frozen=True)
class WatchTarget:
    """One kind to list and watch, with the API call serving it."""

    kind: str
    list_func: Callable[..., Any]
    list_kwargs: Dict[str, Any] = field(default_factory=dict)


def load_api_client(options: Mapping[str, Any]) -> client.ApiClient:
    """Build an API client from in-cluster credentials or a kubeconfig."""

    if options.get("in_cluster", True):
        try:
            kube_config.load_incluster_config()
            return client.ApiClient()
        except ConfigException:
            LOG.info("not running in a cluster, falling back to kubeconfig")
    kube_config.load_kube_config(config_file=options.get("kubeconfig"))
    return client.ApiClient()


def watch_targets(config: SpeakerConfig, api_client: client.ApiClient) -> List[WatchTarget]:
    core = client.CoreV1Api(api_client)
    custom = client.CustomObjectsApi(api_client)

    def custom_target(kind: str, plural: str) -> WatchTarget:
        return WatchTarget(
            kind,
            custom.list_cluster_custom_object,
            {"group": KUBEOVN_GROUP, "version": KUBEOVN_VERSION, "plural": plural},
        )

    if config.mode is Mode.NODE_ROUTE_EIP:
        return [
            custom_target(KIND_IPTABLES_EIP, "iptables-eips"),
            WatchTarget(
                KIND_POD,
                core.list_namespaced_pod,
                {"namespace": config.vpc_nat_gw_namespace},
            ),
        ]
    if config.mode is Mode.NAT_GW:
        return [custom_target(KIND_IPTABLES_EIP, "iptables-eips")]
    return [
        custom_target(KIND_SUBNET, "subnets"),
        WatchTarget(KIND_SERVICE, core.list_service_for_all_namespaces),
        WatchTarget(
            KIND_POD,
            core.list_pod_for_all_namespaces,
            {"field_selector": "spec.hostNetwork=false"},
        ),
    ]


class KubeResourceWatcher(Thread):
    """Keep one kind of the store in sync with the API server.

    Every (re)list replaces the cached objects and publishes the difference;
    afterwards watch events are applied one by one.  An expired resource
    version makes the watcher relist immediately, any other failure after
    ``retry_interval`` seconds.
    """

    def __init__(
        self,
        target: WatchTarget,
        store: InMemoryCache,
        registry: HandlerRegistry,
        stop_event: Event,
        api_client: client.ApiClient,
        *,
        retry_interval: float = 5.0,
        watch_timeout: int = 300,
        watch_factory: Callable[[], watch.Watch] = watch.Watch,
    ) -> None:
        super().__init__(daemon=True, name=f"kube-watcher-{target.kind}")
        self._target = target
        self._store = store
        self._registry = registry
        self._stop = stop_event
        self._api_client = api_client
        self._retry_interval = retry_interval
        self._watch_timeout = watch_timeout
        self._watch_factory = watch_factory
        self._active: Optional[watch.Watch] = None
        self._lock = threading.Lock()

    @property
    def kind(self) -> str:
        return self._target.kind

    def run(self) -> None:
        LOG.info("Starting %s watcher", self.kind)
        while not self._stop.is_set():
            retry = True
            try:
                resource_version = self.relist()
                self.watch(resource_version)
                retry = False
            except ApiException as exc:
                if exc.status == 410:
                    LOG.info("%s resource version expired, relisting", self.kind)
                    retry = False
                else:
                    LOG.warning("%s watch failed: %s", self.kind, exc)
            except Exception:  # pragma: no cover - logged and retried
                LOG.exception("%s watcher encountered an error", self.kind)
            if retry:
                self._stop.wait(self._retry_interval)
        LOG.info("Stopping %s watcher", self.kind)

    def stop(self) -> None:
        with self._lock:
            active = self._active
        if active is not None:
            active.stop()

    def relist(self) -> str:
        """List the kind, replace the cached objects and return the list RV."""

        result = self._target.list_func(**self._target.list_kwargs)
        payload = self._api_client.sanitize_for_serialization(result) or {}
        objects = parse_objects(self.kind, payload.get("items") or [])
        replace_kind(self._store, self._registry, self.kind, objects)
        self._store.mark_synced(self.kind)
        LOG.debug("listed %d %s objects", len(objects), self.kind)
        return str((payload.get("metadata") or {}).get("resourceVersion") or "")

    def watch(self, resource_version: str) -> None:
        stream = self._watch_factory()
        with self._lock:
            self._active = stream
        try:
            for event in stream.stream(
                self._target.list_func,
                resource_version=resource_version,
                timeout_seconds=self._watch_timeout,
                allow_watch_bookmarks=True,
                **self._target.list_kwargs,
            ):
                if self._stop.is_set():
                    break
                self.handle_event(event)
        finally:
            stream.stop()
            with self._lock:
                self._active = None

    def handle_event(self, event: Mapping[str, Any]) -> None:
        event_type = event.get("type")
        raw = event.get("raw_object")
        if raw is None:
            raw = self._api_client.sanitize_for_serialization(event.get("object"))

        if event_type == "BOOKMARK":
            return
        if event_type == "ERROR":
            code = (raw or {}).get("code")
            raise ApiException(status=code, reason=(raw or {}).get("message"))

        objects = parse_objects(self.kind, [raw])
        if not objects:
            return
        apply_event(self._store, self._registry, self.kind, str(event_type), objects[0])


def build_kube_watchers(
    config: SpeakerConfig,
    store: InMemoryCache,
    registry: HandlerRegistry,
    stop_event: Event,
    options: Mapping[str, Any],
    api_client: Optional[client.ApiClient] = None,
) -> List[KubeResourceWatcher]:
    if api_client is None:
        api_client = load_api_client(options)
    return [
        KubeResourceWatcher(
            target,
            store,
            registry,
            stop_event,
            api_client,
            retry_interval=float(options.get("retry_interval", 5.0)),
            watch_timeout=int(options.get("watch_timeout", 300)),
        )
        for target in watch_targets(config, api_client)
    ]
