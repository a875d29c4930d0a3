import pytest

from ovn_speaker.exceptions import ReconcileError
from ovn_speaker.routes import (
    announce_route,
    announce_routes,
    reconcile_routes,
    withdraw_route,
    withdraw_routes,
)

from fakes import RecordingSpeaker


def test_reconcile_converges_on_expected_set():
    speaker = RecordingSpeaker(announced={"10.0.0.1/32", "10.0.0.2/32"})

    reconcile_routes(speaker, {"10.0.0.2/32": "ipv4", "fd00::5/128": "ipv6"})

    assert speaker.announced() == ["10.0.0.2/32", "fd00::5/128"]
    assert speaker.calls == [("withdraw", "10.0.0.1/32"), ("announce", "fd00::5/128")]


def test_reconcile_is_idempotent():
    speaker = RecordingSpeaker()
    expected = {"10.0.0.1/32": "ipv4", "10.1.0.0/24": "ipv4"}

    reconcile_routes(speaker, expected)
    calls = list(speaker.calls)
    reconcile_routes(speaker, expected)

    assert speaker.calls == calls


def test_reconcile_withdraws_everything_for_empty_expected():
    speaker = RecordingSpeaker(announced={"10.0.0.1/32", "fd00::1/128"})

    reconcile_routes(speaker, {})

    assert speaker.announced() == []
    assert speaker.count("announce") == 0


def test_reconcile_attempts_every_prefix_and_aggregates_failures():
    speaker = RecordingSpeaker(
        announced={"10.0.0.9/32", "10.0.0.8/32"},
        fail={"10.0.0.9/32", "10.0.0.2/32"},
    )

    with pytest.raises(ReconcileError) as excinfo:
        reconcile_routes(speaker, {"10.0.0.1/32": "ipv4", "10.0.0.2/32": "ipv4"})

    assert len(excinfo.value.errors) == 2
    # successful changes are kept
    assert speaker.announced() == ["10.0.0.1/32", "10.0.0.9/32"]


def test_announce_route_skips_announced_prefix():
    speaker = RecordingSpeaker(announced={"10.0.0.1/32"})

    assert announce_route(speaker, "10.0.0.1") is False
    assert announce_route(speaker, "10.0.0.2") is True
    assert speaker.calls == [("announce", "10.0.0.2/32")]


def test_withdraw_route_of_unknown_prefix_is_a_noop():
    speaker = RecordingSpeaker()

    assert withdraw_route(speaker, "fd00::1") is False
    assert speaker.calls == []


def test_announce_routes_normalises_and_skips_empty_addresses():
    speaker = RecordingSpeaker()

    changed = announce_routes(speaker, ["172.20.0.10", "", "fd00::10"])

    assert changed == ["172.20.0.10", "fd00::10"]
    assert speaker.announced() == ["172.20.0.10/32", "fd00::10/128"]


def test_withdraw_routes_continues_after_failure():
    speaker = RecordingSpeaker(
        announced={"172.20.0.10/32", "fd00::10/128"},
        fail={"172.20.0.10/32"},
    )

    with pytest.raises(ReconcileError):
        withdraw_routes(speaker, ["172.20.0.10", "fd00::10"])

    assert speaker.announced() == ["172.20.0.10/32"]
    assert ("withdraw", "fd00::10/128") in speaker.calls
