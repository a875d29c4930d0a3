"""Read-only views of the cluster objects the speaker reconciles.

The watch layer hands us raw Kubernetes JSON (custom resources from the
``kubeovn.io`` API group as well as core objects serialised by the client).
These dataclasses keep only the fields the engine looks at so the rest of the
package never has to walk nested dictionaries.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

from .constants import (
    BGP_ANNOTATION,
    KIND_IPTABLES_EIP,
    KIND_POD,
    KIND_SERVICE,
    KIND_SUBNET,
    POD_FAILED,
    POD_SUCCEEDED,
)


def _metadata(data: Mapping[str, Any]) -> Mapping[str, Any]:
    return data.get("metadata") or {}


def _str_map(value: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    return {str(k): str(v) for k, v in (value or {}).items()}


@dataclass(frozen=True)
class IptablesEIP:
    """An external IP bound to a VPC NAT gateway."""

    name: str
    v4ip: str = ""
    v6ip: str = ""
    nat_gw_dp: str = ""
    external_subnet: str = ""
    ready: bool = False
    annotations: Dict[str, str] = field(default_factory=dict)
    deletion_timestamp: Optional[str] = None
    resource_version: str = ""

    kind = KIND_IPTABLES_EIP
    namespace = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "IptablesEIP":
        meta = _metadata(data)
        spec = data.get("spec") or {}
        status = data.get("status") or {}
        return cls(
            name=str(meta["name"]),
            v4ip=str(spec.get("v4ip") or ""),
            v6ip=str(spec.get("v6ip") or ""),
            nat_gw_dp=str(spec.get("natGwDp") or ""),
            external_subnet=str(spec.get("externalSubnet") or ""),
            ready=bool(status.get("ready", False)),
            annotations=_str_map(meta.get("annotations")),
            deletion_timestamp=meta.get("deletionTimestamp"),
            resource_version=str(meta.get("resourceVersion") or ""),
        )

    @property
    def bgp_enabled(self) -> bool:
        return self.annotations.get(BGP_ANNOTATION) == "true"

    @property
    def addresses(self) -> Tuple[str, ...]:
        """Non-empty addresses, IPv4 first."""

        return tuple(ip for ip in (self.v4ip, self.v6ip) if ip)


@dataclass(frozen=True)
class Pod:
    name: str
    namespace: str
    node_name: str = ""
    phase: str = ""
    host_network: bool = False
    pod_ips: Tuple[str, ...] = ()
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)
    deletion_timestamp: Optional[str] = None
    resource_version: str = ""

    kind = KIND_POD

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Pod":
        meta = _metadata(data)
        spec = data.get("spec") or {}
        status = data.get("status") or {}
        ips = [entry.get("ip") for entry in status.get("podIPs") or [] if entry.get("ip")]
        if not ips and status.get("podIP"):
            ips = [status["podIP"]]
        return cls(
            name=str(meta["name"]),
            namespace=str(meta.get("namespace") or "default"),
            node_name=str(spec.get("nodeName") or ""),
            phase=str(status.get("phase") or ""),
            host_network=bool(spec.get("hostNetwork", False)),
            pod_ips=tuple(str(ip) for ip in ips),
            labels=_str_map(meta.get("labels")),
            annotations=_str_map(meta.get("annotations")),
            deletion_timestamp=meta.get("deletionTimestamp"),
            resource_version=str(meta.get("resourceVersion") or ""),
        )

    @property
    def alive(self) -> bool:
        if self.deletion_timestamp is not None:
            return False
        return self.phase not in (POD_SUCCEEDED, POD_FAILED)


@dataclass(frozen=True)
class Subnet:
    name: str
    cidr_block: str = ""
    ready: bool = False
    annotations: Dict[str, str] = field(default_factory=dict)
    resource_version: str = ""

    kind = KIND_SUBNET
    namespace = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Subnet":
        meta = _metadata(data)
        spec = data.get("spec") or {}
        status = data.get("status") or {}
        ready = any(
            cond.get("type") == "Ready" and cond.get("status") == "True"
            for cond in status.get("conditions") or []
        )
        return cls(
            name=str(meta["name"]),
            cidr_block=str(spec.get("cidrBlock") or ""),
            ready=ready,
            annotations=_str_map(meta.get("annotations")),
            resource_version=str(meta.get("resourceVersion") or ""),
        )

    @property
    def cidrs(self) -> Tuple[str, ...]:
        return tuple(c.strip() for c in self.cidr_block.split(",") if c.strip())


@dataclass(frozen=True)
class Service:
    name: str
    namespace: str
    type: str = "ClusterIP"
    cluster_ips: Tuple[str, ...] = ()
    annotations: Dict[str, str] = field(default_factory=dict)
    resource_version: str = ""

    kind = KIND_SERVICE

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Service":
        meta = _metadata(data)
        spec = data.get("spec") or {}
        ips = list(spec.get("clusterIPs") or [])
        if not ips and spec.get("clusterIP"):
            ips = [spec["clusterIP"]]
        return cls(
            name=str(meta["name"]),
            namespace=str(meta.get("namespace") or "default"),
            type=str(spec.get("type") or "ClusterIP"),
            cluster_ips=tuple(str(ip) for ip in ips),
            annotations=_str_map(meta.get("annotations")),
            resource_version=str(meta.get("resourceVersion") or ""),
        )

    @property
    def is_cluster_ip(self) -> bool:
        if self.type != "ClusterIP":
            return False
        return any(ip and ip != "None" for ip in self.cluster_ips)


MODELS = {
    KIND_IPTABLES_EIP: IptablesEIP,
    KIND_POD: Pod,
    KIND_SUBNET: Subnet,
    KIND_SERVICE: Service,
}


def parse_object(kind: str, data: Mapping[str, Any]):
    """Build the model registered for ``kind`` from raw JSON."""

    try:
        model = MODELS[kind]
    except KeyError:
        raise ValueError(f"unsupported resource kind '{kind}'") from None
    return model.from_dict(data)


def object_key(obj) -> str:
    """Cache key in ``namespace/name`` form (bare name for cluster objects)."""

    namespace = getattr(obj, "namespace", None)
    return f"{namespace}/{obj.name}" if namespace else obj.name
