import pytest

from ovn_speaker.cache import InMemoryCache
from ovn_speaker.config import Mode, SpeakerConfig

from fakes import FakeClock, RecordingSpeaker


@pytest.fixture
def speaker():
    return RecordingSpeaker()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache():
    return InMemoryCache()


@pytest.fixture
def populate(cache):
    def _populate(*objects):
        for obj in objects:
            cache.upsert(obj.kind, obj)
        return cache

    return _populate


@pytest.fixture
def node_route_config():
    return SpeakerConfig(
        mode=Mode.NODE_ROUTE_EIP,
        cluster_as=65001,
        neighbor_as=65002,
        neighbor_addresses=["10.0.0.1"],
        node_name="node1",
        vpc_nat_gw_namespace="kube-system",
        reconcile_interval=0.05,
    )
