"""Watcher implementations feeding the speaker's resource cache."""

from .file import FileResourceWatcher  # noqa: F401
from .kube import KubeResourceWatcher, build_kube_watchers  # noqa: F401
from .utils import watched_kinds  # noqa: F401

__all__ = [
    "FileResourceWatcher",
    "KubeResourceWatcher",
    "build_kube_watchers",
    "watched_kinds",
]
