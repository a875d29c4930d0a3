"""Diff/apply engine shared by every operating mode."""

from __future__ import annotations

import logging
from typing import Iterable, List, Mapping

from .exceptions import ReconcileError
from .prefixes import normalize_prefix
from .speaker import BGPSpeaker

LOG = logging.getLogger(__name__)


def announce_route(speaker: BGPSpeaker, address: str) -> bool:
    """Announce ``address`` unless the speaker already advertises it.

    Returns True when the speaker was actually called.
    """

    prefix = normalize_prefix(address)
    if speaker.is_announced(prefix):
        LOG.debug("BGP route %s already announced, skipping", prefix)
        return False
    speaker.announce(prefix)
    return True


def withdraw_route(speaker: BGPSpeaker, address: str) -> bool:
    """Withdraw ``address`` if, and only if, the speaker advertises it."""

    prefix = normalize_prefix(address)
    if not speaker.is_announced(prefix):
        LOG.debug("BGP route %s not announced, skipping withdraw", prefix)
        return False
    speaker.withdraw(prefix)
    return True


def announce_routes(speaker: BGPSpeaker, addresses: Iterable[str]) -> List[str]:
    """Announce every address, collecting failures instead of stopping early.

    Returns the addresses that were newly announced; raises
    :class:`ReconcileError` after the whole batch if any call failed.
    """

    return _apply(speaker, addresses, announce_route, "announce")


def withdraw_routes(speaker: BGPSpeaker, addresses: Iterable[str]) -> List[str]:
    return _apply(speaker, addresses, withdraw_route, "withdraw")


def _apply(speaker, addresses, operation, verb) -> List[str]:
    errors: List[Exception] = []
    changed: List[str] = []
    for address in addresses:
        if not address:
            continue
        try:
            if operation(speaker, address):
                changed.append(address)
        except Exception as exc:
            LOG.error("failed to %s BGP route for %s: %s", verb, address, exc)
            errors.append(exc)
    if errors:
        raise ReconcileError(errors)
    return changed


def reconcile_routes(speaker: BGPSpeaker, expected: Mapping[str, str]) -> None:
    """Make the speaker advertise exactly the prefixes in ``expected``.

    Stale routes are withdrawn first, then missing ones announced.  Every
    prefix is attempted; failures are raised together as one
    :class:`ReconcileError` and successful changes are kept.
    """

    wanted = {normalize_prefix(prefix) for prefix in expected}
    errors: List[Exception] = []

    stale = [prefix for prefix in list(speaker.announced()) if prefix not in wanted]
    for prefix in stale:
        try:
            if withdraw_route(speaker, prefix):
                LOG.info("withdrew stale BGP route %s", prefix)
        except Exception as exc:
            LOG.error("failed to withdraw BGP route %s: %s", prefix, exc)
            errors.append(exc)

    for prefix in sorted(wanted):
        try:
            if announce_route(speaker, prefix):
                LOG.info("announced BGP route %s", prefix)
        except Exception as exc:
            LOG.error("failed to announce BGP route %s: %s", prefix, exc)
            errors.append(exc)

    if errors:
        raise ReconcileError(errors)
