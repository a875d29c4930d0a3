"""Test doubles shared by the unit tests."""

import threading
from typing import List, Tuple

from ovn_speaker.constants import BGP_ANNOTATION
from ovn_speaker.exceptions import SpeakerError
from ovn_speaker.models import IptablesEIP, Pod
from ovn_speaker.speaker import BGPSpeaker


class RecordingSpeaker(BGPSpeaker):
    """In-memory speaker that records every mutating call."""

    def __init__(self, announced=(), fail=()):
        self.routes = set(announced)
        self.fail = set(fail)
        self.calls: List[Tuple[str, str]] = []
        self._lock = threading.Lock()

    def announce(self, prefix):
        with self._lock:
            self.calls.append(("announce", prefix))
            if prefix in self.fail:
                raise SpeakerError(f"announce {prefix} failed")
            self.routes.add(prefix)

    def withdraw(self, prefix):
        with self._lock:
            self.calls.append(("withdraw", prefix))
            if prefix in self.fail:
                raise SpeakerError(f"withdraw {prefix} failed")
            self.routes.discard(prefix)

    def is_announced(self, prefix):
        with self._lock:
            return prefix in self.routes

    def announced(self):
        with self._lock:
            return sorted(self.routes)

    def count(self, verb):
        with self._lock:
            return sum(1 for call, _ in self.calls if call == verb)


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class RecordingHandler:
    def __init__(self):
        self.events = []

    def on_add(self, obj):
        self.events.append(("add", obj))

    def on_update(self, old, new):
        self.events.append(("update", old, new))

    def on_delete(self, obj):
        self.events.append(("delete", obj))


def make_eip(name="eip-1", v4ip="172.20.0.10", v6ip="", nat_gw="gw1", ready=True, bgp=True, **kwargs):
    annotations = {BGP_ANNOTATION: "true"} if bgp else {}
    return IptablesEIP(
        name=name,
        v4ip=v4ip,
        v6ip=v6ip,
        nat_gw_dp=nat_gw,
        ready=ready,
        annotations=annotations,
        **kwargs,
    )


def make_gw_pod(nat_gw="gw1", node="node1", phase="Running", namespace="kube-system"):
    return Pod(
        name=f"vpc-nat-gw-{nat_gw}-0",
        namespace=namespace,
        node_name=node,
        phase=phase,
        labels={
            "ovn.kubernetes.io/vpc-nat-gw": "true",
            "ovn.kubernetes.io/vpc-nat-gw-name": nat_gw,
        },
    )
