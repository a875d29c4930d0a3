"""Interface of the BGP speaking collaborator."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable


class BGPSpeaker(ABC):
    """A component that owns the BGP sessions and the local RIB.

    Prefixes are CIDR strings (``10.0.0.1/32``).  Implementations must be safe
    to call from several threads; every call is expected to be individually
    idempotent.
    """

    @abstractmethod
    def announce(self, prefix: str) -> None:
        """Start advertising ``prefix`` to all peers."""

    @abstractmethod
    def withdraw(self, prefix: str) -> None:
        """Stop advertising ``prefix``."""

    @abstractmethod
    def is_announced(self, prefix: str) -> bool:
        """Return True if ``prefix`` is currently advertised."""

    @abstractmethod
    def announced(self) -> Iterable[str]:
        """Return a snapshot of every advertised prefix."""
