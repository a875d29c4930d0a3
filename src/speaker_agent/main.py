"""Entry point for the standalone speaker agent."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from pathlib import Path
from threading import Event, Thread
from typing import List

from ovn_speaker.cache import InMemoryCache
from ovn_speaker.controller import Controller
from ovn_speaker.exceptions import CacheSyncError
from ovn_speaker.frr import FRRSpeaker
from ovn_speaker.registry import HandlerRegistry

from .config import AgentConfig, load_config
from .watchers import FileResourceWatcher, build_kube_watchers, watched_kinds

LOG = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )


def build_watchers(
    config: AgentConfig,
    store: InMemoryCache,
    registry: HandlerRegistry,
    stop_event: Event,
) -> List[Thread]:
    kinds = watched_kinds(config.speaker.mode)
    watchers: List[Thread] = []
    for watcher_cfg in config.watchers:
        if watcher_cfg.type == "file":
            watcher = FileResourceWatcher(
                store=store,
                registry=registry,
                path=watcher_cfg.path,
                interval=watcher_cfg.interval,
                stop_event=stop_event,
                kinds=kinds,
            )
            # Perform an initial poll so the cache syncs immediately
            try:
                watcher.poll()
            except Exception:  # pragma: no cover - logged inside watcher
                LOG.exception("initial poll failed for watcher %s", watcher_cfg.path)
            watchers.append(watcher)
        elif watcher_cfg.type == "kube":
            watchers.extend(
                build_kube_watchers(
                    config.speaker, store, registry, stop_event, watcher_cfg.options
                )
            )
        else:
            raise ValueError(f"unsupported watcher type '{watcher_cfg.type}'")
    return watchers


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run the BGP speaker agent")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("/etc/ovn-speaker/speaker.yaml"),
        help="Path to the agent configuration file",
    )
    parser.add_argument(
        "--sync-timeout",
        type=float,
        default=300.0,
        help="Seconds to wait for the initial cache sync before giving up",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    try:
        config = load_config(args.config)
    except (OSError, ValueError) as exc:
        LOG.error("invalid configuration %s: %s", args.config, exc)
        return 2

    store = InMemoryCache(kinds=watched_kinds(config.speaker.mode))
    registry = HandlerRegistry()
    speaker = FRRSpeaker(
        config.speaker,
        config.frr.output_dir,
        reload_command=config.frr.reload_command,
        include_globals=config.frr.include_globals,
    )
    controller = Controller(config.speaker, store, speaker)
    controller.register(registry)

    stop_event = Event()
    watchers = build_watchers(config, store, registry, stop_event)
    if not watchers:
        LOG.warning("no watchers configured; caches will never sync")
    for watcher in watchers:
        watcher.start()

    def _shutdown(signum, frame):  # pragma: no cover - signal handler
        LOG.info("received signal %s, shutting down", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    rc = 0
    try:
        controller.run(stop_event, sync_timeout=args.sync_timeout)
    except CacheSyncError as exc:
        LOG.error("%s", exc)
        rc = 1
    except KeyboardInterrupt:  # pragma: no cover - fallback if signal not set
        pass
    finally:
        stop_event.set()

    for watcher in watchers:
        stop = getattr(watcher, "stop", None)
        if stop is not None:
            stop()
        watcher.join(timeout=5)

    LOG.info("speaker agent stopped")
    return rc


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
