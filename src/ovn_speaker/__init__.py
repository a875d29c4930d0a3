"""BGP route reconciliation engine for kube-ovn addresses.

The package computes which prefixes a node should advertise (subnet CIDRs,
pod and service IPs, or NAT gateway EIPs depending on the mode), diffs them
against the speaker's live announcements and applies the difference.  Events
for individual EIPs are handled through a rate limited work queue; a periodic
full pass repairs anything the event path missed.

The cluster view is an injected :class:`~ovn_speaker.cache.ResourceCache` and
the BGP side is an injected :class:`~ovn_speaker.speaker.BGPSpeaker`, so the
engine runs unchanged against in-memory fakes in tests.
"""

from .config import Mode, SpeakerConfig  # noqa: F401
from .controller import Controller  # noqa: F401
from .routes import reconcile_routes  # noqa: F401

__all__ = ["Controller", "Mode", "SpeakerConfig", "reconcile_routes"]
