"""Exceptions raised by the route reconciliation engine."""

from __future__ import annotations

from typing import Iterable, List


class SpeakerError(Exception):
    """Base class for engine errors and speaker call failures."""


class NotFoundError(SpeakerError):
    """A resource is not present in the watch cache."""

    def __init__(self, kind: str, name: str, namespace: str | None = None) -> None:
        self.kind = kind
        self.name = name
        self.namespace = namespace
        key = f"{namespace}/{name}" if namespace else name
        super().__init__(f"{kind} {key} not found")


class CacheSyncError(SpeakerError):
    """The watch cache never reached its initial sync."""


class ConfigError(ValueError):
    """Invalid speaker configuration."""


class ReconcileError(SpeakerError):
    """One or more prefixes failed to converge during a pass."""

    def __init__(self, errors: Iterable[BaseException]) -> None:
        self.errors: List[BaseException] = list(errors)
        super().__init__("; ".join(str(err) for err in self.errors))
