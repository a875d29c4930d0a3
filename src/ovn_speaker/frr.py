"""FRR-backed BGP speaker.

The speaker keeps the advertised prefixes in memory and materialises them as
``network`` statements of an FRR ``router bgp`` block.  After every change the
configuration is rewritten and, when a reload command is configured (for
example ``frr-reload.py --reload``), FRR is asked to apply it.
"""

from __future__ import annotations

import logging
import re
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Set

from .config import Neighbor, SpeakerConfig
from .constants import PROTOCOL_IPV4
from .exceptions import SpeakerError
from .prefixes import address_family, normalize_prefix
from .speaker import BGPSpeaker

LOG = logging.getLogger(__name__)

FRR_HEADER = """!
frr version 9.x
frr defaults traditional
service integrated-vtysh-config
!
"""

CONFIG_NAME = "bgpd-speaker.conf"

_NETWORK_RE = re.compile(r"^\s*network\s+(\S+)\s*$")


@dataclass
class RenderResult:
    """Result of an FRR rendering operation."""

    config_text: str
    output_path: Path


class FRRConfigRenderer:
    """Render the speaker's BGP configuration."""

    def __init__(
        self,
        config: SpeakerConfig,
        output_dir: Path,
        *,
        include_globals: bool = False,
    ) -> None:
        self._config = config
        self._output_dir = Path(output_dir)
        self._include_globals = include_globals

    @property
    def output_path(self) -> Path:
        return self._output_dir / CONFIG_NAME

    def render(self, prefixes: Iterable[str]) -> RenderResult:
        ipv4 = sorted(p for p in prefixes if address_family(p) == PROTOCOL_IPV4)
        ipv6 = sorted(p for p in prefixes if address_family(p) != PROTOCOL_IPV4)
        neighbours = self._config.neighbors()

        sections: list[str] = []
        if self._include_globals:
            sections.append(FRR_HEADER)
        sections.append(self._render_router(neighbours))
        sections.append(self._render_family("ipv4", ipv4, [n for n in neighbours if not n.is_ipv6]))
        sections.append(self._render_family("ipv6", ipv6, [n for n in neighbours if n.is_ipv6]))
        sections.append("!")
        if self._include_globals:
            sections.extend(["line vty", "!"])

        body = "\n".join(s for s in sections if s) + "\n"

        self._output_dir.mkdir(parents=True, exist_ok=True)
        tmp_path = self.output_path.with_suffix(".tmp")
        tmp_path.write_text(body)
        tmp_path.replace(self.output_path)

        return RenderResult(config_text=body, output_path=self.output_path)

    def _render_router(self, neighbours: Sequence[Neighbor]) -> str:
        lines = [f"router bgp {self._config.cluster_as}"]
        if self._config.router_id:
            lines.append(f" bgp router-id {self._config.router_id}")
        lines.append(" no bgp default ipv4-unicast")
        lines.append(" no bgp ebgp-requires-policy")
        if self._config.graceful_restart:
            lines.append(" bgp graceful-restart")
        keepalive = max(self._config.holdtime // 3, 1)
        lines.append(f" timers bgp {keepalive} {self._config.holdtime}")
        for neighbour in neighbours:
            lines.extend(self._render_neighbor_block(neighbour))
        return "\n".join(lines)

    def _render_neighbor_block(self, neighbour: Neighbor) -> List[str]:
        lines = [f" neighbor {neighbour.address} remote-as {neighbour.remote_asn}"]
        if neighbour.description:
            lines.append(f" neighbor {neighbour.address} description {neighbour.description}")
        if self._config.auth_password:
            lines.append(f" neighbor {neighbour.address} password {self._config.auth_password}")
        if self._config.ebgp_multihop:
            lines.append(f" neighbor {neighbour.address} ebgp-multihop {self._config.ebgp_multihop}")
        local = self._config.bgp_local_address(ipv4=not neighbour.is_ipv6)
        if local:
            lines.append(f" neighbor {neighbour.address} update-source {local}")
        return lines

    def _render_family(
        self, family: str, prefixes: Sequence[str], neighbours: Sequence[Neighbor]
    ) -> str:
        if not prefixes and not neighbours:
            return ""
        lines = [" !", f" address-family {family} unicast"]
        for prefix in prefixes:
            lines.append(f"  network {prefix}")
        for neighbour in neighbours:
            lines.append(f"  neighbor {neighbour.address} activate")
        lines.append(" exit-address-family")
        return "\n".join(lines)


def load_rendered_prefixes(path: Path) -> Set[str]:
    """Return the ``network`` prefixes of a previously rendered config."""

    if not path.exists():
        return set()
    prefixes: Set[str] = set()
    for line in path.read_text().splitlines():
        match = _NETWORK_RE.match(line)
        if not match:
            continue
        try:
            prefixes.add(normalize_prefix(match.group(1)))
        except ValueError:
            LOG.warning("ignoring malformed network statement %r in %s", line, path)
    return prefixes


def run(cmd: Sequence[str]) -> subprocess.CompletedProcess[str]:
    LOG.debug("Executing: %s", " ".join(cmd))
    return subprocess.run(list(cmd), check=False, text=True, capture_output=True)


class FRRSpeaker(BGPSpeaker):
    """:class:`BGPSpeaker` that drives FRR through its configuration file."""

    def __init__(
        self,
        config: SpeakerConfig,
        output_dir: Path,
        *,
        reload_command: Optional[Sequence[str]] = None,
        include_globals: bool = False,
    ) -> None:
        self._renderer = FRRConfigRenderer(config, output_dir, include_globals=include_globals)
        self._reload_command = list(reload_command) if reload_command else None
        self._lock = threading.Lock()
        self._announced: Set[str] = load_rendered_prefixes(self._renderer.output_path)
        if self._announced:
            LOG.info(
                "loaded %d announced prefixes from %s",
                len(self._announced),
                self._renderer.output_path,
            )

    @property
    def output_path(self) -> Path:
        return self._renderer.output_path

    def announce(self, prefix: str) -> None:
        prefix = normalize_prefix(prefix)
        with self._lock:
            if prefix in self._announced:
                return
            self._announced.add(prefix)
            try:
                self._apply()
            except Exception:
                self._announced.discard(prefix)
                raise
        LOG.debug("FRR speaker announced %s", prefix)

    def withdraw(self, prefix: str) -> None:
        prefix = normalize_prefix(prefix)
        with self._lock:
            if prefix not in self._announced:
                return
            self._announced.discard(prefix)
            try:
                self._apply()
            except Exception:
                self._announced.add(prefix)
                raise
        LOG.debug("FRR speaker withdrew %s", prefix)

    def is_announced(self, prefix: str) -> bool:
        prefix = normalize_prefix(prefix)
        with self._lock:
            return prefix in self._announced

    def announced(self) -> List[str]:
        with self._lock:
            return sorted(self._announced)

    def render(self) -> RenderResult:
        """Rewrite the config without changing the announced set."""

        with self._lock:
            return self._apply()

    def _apply(self) -> RenderResult:
        try:
            result = self._renderer.render(self._announced)
        except OSError as exc:
            raise SpeakerError(f"failed to write FRR config: {exc}") from exc
        if self._reload_command:
            proc = run(self._reload_command)
            if proc.returncode != 0:
                raise SpeakerError(
                    f"FRR reload failed ({proc.returncode}): {proc.stderr.strip()}"
                )
        return result
