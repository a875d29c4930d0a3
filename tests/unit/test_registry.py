import pytest

from ovn_speaker.constants import KIND_IPTABLES_EIP, KIND_POD
from ovn_speaker.events import ResourceAdded, ResourceDeleted, ResourceUpdated
from ovn_speaker.handlers import EventHandlerFuncs
from ovn_speaker.registry import HandlerRegistry

from fakes import RecordingHandler, make_eip, make_gw_pod


def test_registry_dispatches_events_by_kind():
    eip_handler = RecordingHandler()
    pod_handler = RecordingHandler()
    registry = HandlerRegistry()
    registry.register("eips", KIND_IPTABLES_EIP, eip_handler)
    registry.register("pods", KIND_POD, pod_handler)
    old, new = make_eip(ready=False), make_eip()

    registry.handle(ResourceAdded(KIND_IPTABLES_EIP, old))
    registry.handle(ResourceUpdated(KIND_IPTABLES_EIP, old, new))
    registry.handle(ResourceDeleted(KIND_IPTABLES_EIP, new))

    assert eip_handler.events == [("add", old), ("update", old, new), ("delete", new)]
    assert pod_handler.events == []
    assert registry.kinds() == {KIND_IPTABLES_EIP, KIND_POD}


def test_registry_rejects_duplicate_registration():
    registry = HandlerRegistry()
    registry.register("eips", KIND_IPTABLES_EIP, RecordingHandler())

    with pytest.raises(ValueError, match="already registered"):
        registry.register("eips", KIND_POD, RecordingHandler())


def test_unregister_stops_dispatch():
    handler = RecordingHandler()
    registry = HandlerRegistry()
    registry.register("pods", KIND_POD, handler)

    registry.unregister("pods")
    registry.handle(ResourceAdded(KIND_POD, make_gw_pod()))

    assert handler.events == []


def test_registry_rejects_unknown_events():
    with pytest.raises(TypeError):
        HandlerRegistry().handle(object())


def test_event_handler_funcs_skip_missing_callbacks():
    added = []
    handler = EventHandlerFuncs(add=added.append)

    handler.on_add("a")
    handler.on_update("a", "b")
    handler.on_delete("b")

    assert added == ["a"]
