"""Expected-state computers, one per :class:`~ovn_speaker.config.Mode`.

Each function rebuilds the full prefix map from the cache on every call;
nothing is carried over between passes.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, Optional

from .cache import ResourceCache
from .config import Mode, SpeakerConfig
from .constants import (
    BGP_ANNOTATION,
    KIND_IPTABLES_EIP,
    KIND_POD,
    KIND_SERVICE,
    KIND_SUBNET,
    LOGICAL_SWITCH_ANNOTATION,
    POLICY_CLUSTER,
    POLICY_LOCAL,
)
from .placement import PlacementResolver
from .prefixes import PrefixMap, add_expected_prefix

LOG = logging.getLogger(__name__)

ExpectedState = Callable[[ResourceCache, SpeakerConfig, Optional[PlacementResolver]], PrefixMap]


def _add_all(values: Iterable[str], prefixes: PrefixMap, owner: str) -> None:
    for value in values:
        if not value:
            continue
        try:
            add_expected_prefix(value, prefixes)
        except ValueError as exc:
            LOG.error("skipping invalid address %r of %s: %s", value, owner, exc)


def _cluster_policy(policy: str) -> bool:
    return policy in ("true", POLICY_CLUSTER)


def subnet_routes(
    cache: ResourceCache,
    config: SpeakerConfig,
    placement: Optional[PlacementResolver] = None,
) -> PrefixMap:
    """Subnet CIDRs, pod IPs and service cluster IPs selected by annotation."""

    expected: PrefixMap = {}

    if config.announce_cluster_ip:
        for svc in cache.list(KIND_SERVICE):
            if svc.annotations.get(BGP_ANNOTATION) == "true" and svc.is_cluster_ip:
                _add_all(
                    (ip for ip in svc.cluster_ips if ip != "None"),
                    expected,
                    f"service {svc.namespace}/{svc.name}",
                )

    local_subnets: Dict[str, str] = {}
    for subnet in cache.list(KIND_SUBNET):
        if not subnet.ready:
            continue
        policy = subnet.annotations.get(BGP_ANNOTATION, "")
        if not policy:
            continue
        if _cluster_policy(policy):
            _add_all(subnet.cidrs, expected, f"subnet {subnet.name}")
        elif policy == POLICY_LOCAL:
            local_subnets[subnet.name] = subnet.cidr_block
        else:
            LOG.warning("invalid subnet annotation %s=%s on %s", BGP_ANNOTATION, policy, subnet.name)

    for pod in cache.list(KIND_POD):
        if not pod.alive or pod.host_network or not pod.pod_ips:
            continue
        on_this_node = pod.node_name == config.node_name
        policy = pod.annotations.get(BGP_ANNOTATION, "")
        if not policy:
            subnet_name = pod.annotations.get(LOGICAL_SWITCH_ANNOTATION, "")
            if subnet_name in local_subnets and on_this_node:
                _add_all(pod.pod_ips, expected, f"pod {pod.namespace}/{pod.name}")
            continue
        if _cluster_policy(policy) or (policy == POLICY_LOCAL and on_this_node):
            _add_all(pod.pod_ips, expected, f"pod {pod.namespace}/{pod.name}")

    return expected


def nat_gw_eips(
    cache: ResourceCache,
    config: SpeakerConfig,
    placement: Optional[PlacementResolver] = None,
) -> PrefixMap:
    """EIPs of the NAT gateway this agent runs inside of."""

    expected: PrefixMap = {}
    for eip in cache.list(KIND_IPTABLES_EIP):
        if not eip.ready or not eip.bgp_enabled:
            continue
        if eip.nat_gw_dp != config.nat_gw_name:
            continue
        _add_all(eip.addresses, expected, f"iptables-eip {eip.name}")
    return expected


def node_route_eips(
    cache: ResourceCache,
    config: SpeakerConfig,
    placement: Optional[PlacementResolver] = None,
) -> PrefixMap:
    """EIPs whose NAT gateway pod runs on this node."""

    if placement is None:
        placement = PlacementResolver(cache, config.node_name, config.vpc_nat_gw_namespace)

    expected: PrefixMap = {}
    for eip in cache.list(KIND_IPTABLES_EIP):
        if not eip.bgp_enabled or not eip.ready:
            continue
        if not placement.is_local(eip):
            continue
        _add_all(eip.addresses, expected, f"iptables-eip {eip.name}")
    return expected


EXPECTED_STATE: Dict[Mode, ExpectedState] = {
    Mode.SUBNET: subnet_routes,
    Mode.NAT_GW: nat_gw_eips,
    Mode.NODE_ROUTE_EIP: node_route_eips,
}


def expected_prefixes(
    cache: ResourceCache,
    config: SpeakerConfig,
    placement: Optional[PlacementResolver] = None,
) -> PrefixMap:
    return EXPECTED_STATE[config.mode](cache, config, placement)
