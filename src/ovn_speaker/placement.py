"""Resolve where the NAT gateway owning an EIP is running."""

from __future__ import annotations

import logging

from .cache import ResourceCache
from .constants import KIND_POD, POD_RUNNING, VPC_NAT_GW_LABEL, VPC_NAT_GW_NAME_LABEL
from .exceptions import NotFoundError
from .models import IptablesEIP, Pod

LOG = logging.getLogger(__name__)


def gen_nat_gw_pod_name(nat_gw: str) -> str:
    """Pod name of the single replica backing NAT gateway ``nat_gw``."""

    return f"vpc-nat-gw-{nat_gw}-0"


def is_vpc_nat_gw_pod(pod: Pod) -> bool:
    return pod.labels.get(VPC_NAT_GW_LABEL) == "true"


def nat_gw_name_from_pod(pod: Pod) -> str:
    return pod.labels.get(VPC_NAT_GW_NAME_LABEL, "")


class PlacementResolver:
    """Answer "is this EIP's gateway running on our node?" from the pod cache."""

    def __init__(self, cache: ResourceCache, node_name: str, namespace: str) -> None:
        self._cache = cache
        self._node_name = node_name
        self._namespace = namespace

    def is_local(self, eip: IptablesEIP) -> bool:
        if not eip.nat_gw_dp:
            LOG.error("iptables-eip %s has empty natGwDp field", eip.name)
            return False

        pod_name = gen_nat_gw_pod_name(eip.nat_gw_dp)
        try:
            pod = self._cache.get(KIND_POD, pod_name, self._namespace)
        except NotFoundError as exc:
            LOG.debug("failed to get NAT GW pod %s/%s: %s", self._namespace, pod_name, exc)
            return False

        return pod.node_name == self._node_name and pod.phase == POD_RUNNING
