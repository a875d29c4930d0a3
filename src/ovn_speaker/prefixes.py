"""Prefix normalisation and the expected-prefix map."""

from __future__ import annotations

import ipaddress
from typing import Dict

from .constants import PROTOCOL_IPV4, PROTOCOL_IPV6

# prefix -> address family; set semantics, values are only markers
PrefixMap = Dict[str, str]


def normalize_prefix(value: str) -> str:
    """Return ``value`` as a CIDR, turning bare addresses into host routes."""

    if not value:
        raise ValueError("Prefix value cannot be empty")
    value = value.strip()
    if "/" in value:
        return str(ipaddress.ip_network(value, strict=False))
    ip = ipaddress.ip_address(value)
    if ip.version == 4:
        return f"{ip}/32"
    return f"{ip}/128"


def address_family(prefix: str) -> str:
    network = ipaddress.ip_network(prefix, strict=False)
    return PROTOCOL_IPV4 if network.version == 4 else PROTOCOL_IPV6


def add_expected_prefix(value: str, prefixes: PrefixMap) -> str:
    """Normalise ``value`` and record it in ``prefixes``.

    Raises :class:`ValueError` for anything that is not an address or CIDR.
    """

    prefix = normalize_prefix(value)
    prefixes[prefix] = address_family(prefix)
    return prefix
