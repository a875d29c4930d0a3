from pathlib import Path
from threading import Event

import pytest

from ovn_speaker.cache import InMemoryCache
from ovn_speaker.config import Mode, SpeakerConfig
from ovn_speaker.registry import HandlerRegistry
from speaker_agent import main as agent_main
from speaker_agent.config import AgentConfig, WatcherConfig
from speaker_agent.watchers import FileResourceWatcher


def speaker_config():
    return SpeakerConfig(
        mode=Mode.NAT_GW,
        cluster_as=65001,
        neighbor_as=65002,
        neighbor_addresses=["10.0.0.1"],
        nat_gw_name="gw1",
    )


def test_build_watchers_polls_file_watchers_once(tmp_path: Path):
    resources = tmp_path / "resources.yaml"
    resources.write_text("iptables-eips: []\n")
    config = AgentConfig(
        speaker=speaker_config(),
        watchers=[WatcherConfig(type="file", path=resources, interval=1)],
    )
    store = InMemoryCache(kinds=("IptablesEIP",))

    watchers = agent_main.build_watchers(config, store, HandlerRegistry(), Event())

    assert len(watchers) == 1
    assert isinstance(watchers[0], FileResourceWatcher)
    assert store.has_synced()


def test_build_watchers_rejects_unknown_type():
    config = AgentConfig(speaker=speaker_config(), watchers=[WatcherConfig(type="ovn")])

    with pytest.raises(ValueError, match="unsupported watcher type"):
        agent_main.build_watchers(config, InMemoryCache(), HandlerRegistry(), Event())


def test_main_rejects_invalid_config(tmp_path: Path):
    config_path = tmp_path / "speaker.yaml"
    config_path.write_text("speaker:\n  mode: subnet\n")

    assert agent_main.main(["--config", str(config_path)]) == 2


def test_main_fails_when_caches_never_sync(tmp_path: Path, monkeypatch):
    monkeypatch.setattr(agent_main.signal, "signal", lambda *args: None)
    config_path = tmp_path / "speaker.yaml"
    config_path.write_text(
        f"""
speaker:
  mode: nat-gw
  nat_gw_name: gw1
  cluster_as: 65001
  neighbor_as: 65002
  neighbor_addresses: [10.0.0.1]
frr:
  output_dir: {tmp_path / "frr"}
watchers:
  - type: file
    path: {tmp_path / "missing.yaml"}
    interval: 0.05
"""
    )

    rc = agent_main.main(["--config", str(config_path), "--sync-timeout", "0.1"])

    assert rc == 1
