"""Configuration data structures for the speaker.

These dataclasses describe the operating mode, the BGP peers and the local
identity of the agent.  They are deliberately free of any loader logic; the
runtime package builds them from YAML and hands them to the controller.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

from .constants import (
    DEFAULT_RECONCILE_INTERVAL,
    DEFAULT_VPC_NAT_GW_NAMESPACE,
    PROTOCOL_IPV4,
    PROTOCOL_IPV6,
)
from .exceptions import ConfigError


class Mode(Enum):
    """Which expected-state computer drives the periodic pass.

    ``SUBNET`` announces subnet CIDRs, pod IPs and service cluster IPs.
    ``NAT_GW`` runs inside a VPC NAT gateway pod and announces that gateway's
    EIPs.  ``NODE_ROUTE_EIP`` runs on the host network of every node and
    announces the EIPs of gateways scheduled on that node.
    """

    SUBNET = "subnet"
    NAT_GW = "nat-gw"
    NODE_ROUTE_EIP = "node-route-eip"

    @classmethod
    def parse(cls, value: str) -> "Mode":
        for mode in cls:
            if mode.value == value.lower():
                return mode
        raise ConfigError(f"unsupported mode '{value}'")


@dataclass(frozen=True)
class Neighbor:
    """BGP neighbour description.

    Attributes
    ----------
    address:
        The neighbour IP address as a string.
    remote_asn:
        The peer Autonomous System Number.
    description:
        Optional human readable label that will be propagated into FRR config
        to aid troubleshooting.
    """

    address: str
    remote_asn: int
    description: Optional[str] = None

    @property
    def is_ipv6(self) -> bool:
        return ipaddress.ip_address(self.address).version == 6


@dataclass
class SpeakerConfig:
    """Runtime settings of one speaker instance."""

    mode: Mode = Mode.SUBNET
    cluster_as: int = 0
    neighbor_as: int = 0
    neighbor_addresses: Sequence[str] = ()
    neighbor_ipv6_addresses: Sequence[str] = ()
    router_id: str = ""
    node_name: str = ""
    vpc_nat_gw_namespace: str = DEFAULT_VPC_NAT_GW_NAMESPACE
    nat_gw_name: str = ""
    announce_cluster_ip: bool = False
    peer_with_local: bool = False
    pod_ips: Dict[str, str] = field(default_factory=dict)
    holdtime: int = 90
    graceful_restart: bool = False
    ebgp_multihop: int = 0
    auth_password: str = ""
    reconcile_interval: float = DEFAULT_RECONCILE_INTERVAL
    workers: int = 1

    def validate(self) -> None:
        """Raise :class:`ConfigError` when required settings are missing."""

        if not self.neighbor_addresses and not self.neighbor_ipv6_addresses:
            raise ConfigError(
                "at least one of neighbor_addresses or neighbor_ipv6_addresses must be specified"
            )
        if not self.cluster_as:
            raise ConfigError("cluster_as must be specified")
        if not self.neighbor_as:
            raise ConfigError("neighbor_as must be specified")
        if self.mode is Mode.NODE_ROUTE_EIP and not self.node_name:
            raise ConfigError("node-route-eip mode requires node_name to be specified")
        if self.mode is Mode.NAT_GW and not self.nat_gw_name:
            raise ConfigError("nat-gw mode requires nat_gw_name to be specified")
        if self.workers < 1:
            raise ConfigError("workers must be at least 1")
        if self.reconcile_interval <= 0:
            raise ConfigError("reconcile_interval must be positive")
        for address in [*self.neighbor_addresses, *self.neighbor_ipv6_addresses]:
            try:
                ipaddress.ip_address(address)
            except ValueError:
                raise ConfigError(f"invalid neighbor address '{address}'") from None

    def bgp_local_address(self, ipv4: bool) -> str:
        """Source address for peering, or ``""`` to let the speaker choose.

        Only set when ``peer_with_local`` is enabled, in which case the pod IP
        of the matching family is used.
        """

        if not self.peer_with_local:
            return ""
        return self.pod_ips.get(PROTOCOL_IPV4 if ipv4 else PROTOCOL_IPV6, "") or ""

    def neighbors(self) -> List[Neighbor]:
        return [
            Neighbor(address=address, remote_asn=self.neighbor_as)
            for address in [*self.neighbor_addresses, *self.neighbor_ipv6_addresses]
        ]
