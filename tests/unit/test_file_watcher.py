from pathlib import Path
from threading import Event

import yaml

from ovn_speaker.cache import InMemoryCache
from ovn_speaker.constants import KIND_IPTABLES_EIP, KIND_POD
from ovn_speaker.registry import HandlerRegistry
from speaker_agent.watchers import FileResourceWatcher

from fakes import RecordingHandler


def eip_doc(name, ready=True, v4ip="172.20.0.10"):
    return {
        "metadata": {"name": name, "annotations": {"ovn.kubernetes.io/bgp": "true"}},
        "spec": {"v4ip": v4ip, "natGwDp": "gw1"},
        "status": {"ready": ready},
    }


def write_resources(path: Path, eips, pods=()):
    path.write_text(yaml.safe_dump({"iptables-eips": list(eips), "pods": list(pods)}))


def build_watcher(tmp_path: Path, stop_event=None):
    store = InMemoryCache(kinds=(KIND_IPTABLES_EIP, KIND_POD))
    registry = HandlerRegistry()
    recorder = RecordingHandler()
    registry.register("recorder", KIND_IPTABLES_EIP, recorder)
    watcher = FileResourceWatcher(
        store=store,
        registry=registry,
        path=tmp_path / "resources.yaml",
        interval=0.1,
        stop_event=stop_event or Event(),
        kinds=(KIND_IPTABLES_EIP, KIND_POD),
    )
    return watcher, store, recorder


def test_file_watcher_publishes_updates(tmp_path: Path):
    watcher, store, recorder = build_watcher(tmp_path)
    resources = tmp_path / "resources.yaml"

    write_resources(resources, [eip_doc("eip-1", ready=False)])
    watcher.poll()

    assert store.has_synced()
    assert [event[0] for event in recorder.events] == ["add"]
    assert recorder.events[0][1].ready is False

    recorder.events.clear()
    write_resources(resources, [eip_doc("eip-1"), eip_doc("eip-2", v4ip="172.20.0.11")])
    watcher.poll()

    kinds = sorted(event[0] for event in recorder.events)
    assert kinds == ["add", "update"]
    update = next(event for event in recorder.events if event[0] == "update")
    assert update[1].ready is False and update[2].ready is True

    recorder.events.clear()
    watcher.poll()
    assert recorder.events == []

    write_resources(resources, [eip_doc("eip-2", v4ip="172.20.0.11")])
    watcher.poll()

    assert len(recorder.events) == 1
    verb, removed = recorder.events[0]
    assert verb == "delete"
    assert removed.name == "eip-1"
    assert store.keys(KIND_IPTABLES_EIP) == ["eip-2"]


def test_file_watcher_waits_for_file(tmp_path: Path):
    watcher, store, recorder = build_watcher(tmp_path)

    watcher.poll()

    assert not store.has_synced()
    assert recorder.events == []


def test_file_watcher_ignores_malformed_documents(tmp_path: Path):
    watcher, store, recorder = build_watcher(tmp_path)
    resources = tmp_path / "resources.yaml"

    resources.write_text("- not\n- a mapping\n")
    watcher.poll()
    assert not store.has_synced()

    resources.write_text(
        yaml.safe_dump({"iptables-eips": [{"spec": {"v4ip": "172.20.0.9"}}, eip_doc("eip-1")]})
    )
    watcher.poll()

    assert store.has_synced()
    assert [event[1].name for event in recorder.events] == ["eip-1"]


def test_file_watcher_thread_stops(tmp_path: Path):
    stop_event = Event()
    watcher, store, _ = build_watcher(tmp_path, stop_event)
    write_resources(tmp_path / "resources.yaml", [eip_doc("eip-1")])

    watcher.start()
    for _ in range(50):
        if store.has_synced():
            break
        stop_event.wait(0.05)
    stop_event.set()
    watcher.join(timeout=2)

    assert store.has_synced()
    assert not watcher.is_alive()
