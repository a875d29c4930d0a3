"""YAML configuration loader for the speaker agent."""

from __future__ import annotations

import ipaddress
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

import yaml

from ovn_speaker.config import Mode, SpeakerConfig
from ovn_speaker.constants import (
    DEFAULT_RECONCILE_INTERVAL,
    DEFAULT_VPC_NAT_GW_NAMESPACE,
    PROTOCOL_IPV4,
    PROTOCOL_IPV6,
)


@dataclass
class FRRConfig:
    output_dir: Path = Path("/etc/frr")
    include_globals: bool = False
    reload_command: Sequence[str] = ()


@dataclass
class WatcherConfig:
    type: str
    path: Path = Path(".")
    interval: float = 5.0
    options: dict = field(default_factory=dict)


@dataclass
class AgentConfig:
    speaker: SpeakerConfig
    frr: FRRConfig = field(default_factory=FRRConfig)
    watchers: Sequence[WatcherConfig] = field(default_factory=list)


def _str_list(value, name: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    if not isinstance(value, list):
        raise ValueError(f"'{name}' must be a list")
    return [str(v) for v in value]


def parse_pod_ips(value: Optional[Iterable[str] | str]) -> Dict[str, str]:
    """Map each address of ``value`` (list or comma separated) to its family."""

    ips: Dict[str, str] = {}
    for raw in _str_list(value, "pod_ips"):
        ip = ipaddress.ip_address(raw)
        family = PROTOCOL_IPV4 if ip.version == 4 else PROTOCOL_IPV6
        ips.setdefault(family, str(ip))
    return ips


def _parse_speaker(section: Mapping, environ: Mapping[str, str]) -> SpeakerConfig:
    pod_ips = section.get("pod_ips")
    if isinstance(pod_ips, dict):
        pod_ips = list(pod_ips.values())
    if not pod_ips:
        pod_ips = environ.get("POD_IPS")

    return SpeakerConfig(
        mode=Mode.parse(str(section.get("mode", Mode.SUBNET.value))),
        cluster_as=int(section.get("cluster_as", 0)),
        neighbor_as=int(section.get("neighbor_as", 0)),
        neighbor_addresses=_str_list(section.get("neighbor_addresses"), "neighbor_addresses"),
        neighbor_ipv6_addresses=_str_list(
            section.get("neighbor_ipv6_addresses"), "neighbor_ipv6_addresses"
        ),
        router_id=str(section.get("router_id", "")),
        node_name=str(section.get("node_name") or environ.get("NODE_NAME", "")),
        vpc_nat_gw_namespace=str(
            section.get("vpc_nat_gw_namespace", DEFAULT_VPC_NAT_GW_NAMESPACE)
        ),
        nat_gw_name=str(section.get("nat_gw_name") or environ.get("GATEWAY_NAME", "")),
        announce_cluster_ip=bool(section.get("announce_cluster_ip", False)),
        peer_with_local=bool(section.get("peer_with_local", False)),
        pod_ips=parse_pod_ips(pod_ips),
        holdtime=int(section.get("holdtime", 90)),
        graceful_restart=bool(section.get("graceful_restart", False)),
        ebgp_multihop=int(section.get("ebgp_multihop", 0)),
        auth_password=str(section.get("auth_password", "")),
        reconcile_interval=float(section.get("reconcile_interval", DEFAULT_RECONCILE_INTERVAL)),
        workers=int(section.get("workers", 1)),
    )


def _parse_frr(section: Mapping) -> FRRConfig:
    reload_command = section.get("reload_command") or ()
    if isinstance(reload_command, str):
        reload_command = reload_command.split()
    return FRRConfig(
        output_dir=Path(section.get("output_dir", "/etc/frr")),
        include_globals=bool(section.get("include_globals", False)),
        reload_command=tuple(str(part) for part in reload_command),
    )


def _parse_watchers(entries: Iterable[dict]) -> List[WatcherConfig]:
    watchers: List[WatcherConfig] = []
    for entry in entries:
        options = entry.get("options", {})
        if not isinstance(options, dict):
            raise ValueError("watcher 'options' must be a mapping if provided")
        watchers.append(
            WatcherConfig(
                type=str(entry["type"]),
                path=Path(entry.get("path", ".")),
                interval=float(entry.get("interval", entry.get("poll_interval", 5.0))),
                options=options,
            )
        )
    return watchers


def load_config(path: Path, environ: Optional[Mapping[str, str]] = None) -> AgentConfig:
    """Parse and validate the agent configuration at ``path``."""

    if environ is None:
        environ = os.environ

    data = yaml.safe_load(Path(path).read_text())
    if not isinstance(data, dict):
        raise ValueError("Agent configuration must be a mapping")

    speaker_section = data.get("speaker")
    if speaker_section is None:
        raise ValueError("Configuration missing 'speaker' section")
    if not isinstance(speaker_section, dict):
        raise ValueError("'speaker' section must be a mapping")
    speaker = _parse_speaker(speaker_section, environ)
    speaker.validate()

    frr_section = data.get("frr", {})
    if not isinstance(frr_section, dict):
        raise ValueError("'frr' section must be a mapping")

    watchers_section = data.get("watchers", [{"type": "kube"}])
    if not isinstance(watchers_section, list):
        raise ValueError("'watchers' section must be a list")

    return AgentConfig(
        speaker=speaker,
        frr=_parse_frr(frr_section),
        watchers=_parse_watchers(watchers_section),
    )
