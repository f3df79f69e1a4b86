#!/usr/bin/env python3
"""
AnyList Notify

Watches shared AnyList shopping lists and publishes a notification to ntfy
for every item that is added, removed, checked, unchecked or edited.

Usage:
    anylist-notify [--config PATH] [--once]

Signals:
    SIGINT/SIGTERM  stop cleanly (an in-flight cycle is cancelled between stages)
    SIGHUP          run a reconciliation cycle now
"""

import argparse
import os
import signal
import sys
import threading
from typing import Optional

from cache.sqlite import SqliteCacheStore
from notify.ntfy import NtfyNotifier
from reconciliation.coordinator import ReconciliationCoordinator
from reconciliation.scheduler import IntervalTrigger, ReconciliationScheduler
from shared.log import create_logger
from shared.logging_config import configure_logging
from shared_lib.snapshot_client import SnapshotClient
from validation.config import AnyListNotifyConfig, get_config
from validation.errors import CacheIOError

__version__ = "0.1.0"

_, log_debug, log_info, log_warn, log_error = create_logger("Main")


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="anylist-notify",
        description="Send ntfy notifications for AnyList shopping list changes.",
    )
    parser.add_argument(
        "--config",
        metavar="PATH",
        help="YAML config file (default: $ANYLIST_NOTIFY_CONFIG or ./config.yml)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single reconciliation cycle and exit",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def get_data_dir(config: AnyListNotifyConfig) -> str:
    """Directory holding the cache database and scheduler state."""
    return os.path.dirname(os.path.abspath(config.database_path))


def build_coordinator(config: AnyListNotifyConfig, store: SqliteCacheStore) -> ReconciliationCoordinator:
    """Wire source, store and sink into a coordinator."""
    source = SnapshotClient(
        config.snapshot_url,
        token=config.snapshot_token,
        timeout=config.snapshot_timeout,
    )
    sink = NtfyNotifier(
        config.ntfy_url,
        config.ntfy_topic,
        priorities=config.ntfy_priorities,
        tags=config.ntfy_tags,
        timeout=config.ntfy_timeout,
        token=config.ntfy_token,
    )
    return ReconciliationCoordinator(
        source,
        store,
        sink,
        own_user_id=config.own_filter_user_id,
        scheduler=ReconciliationScheduler(get_data_dir(config)),
    )


def close_clients(coordinator: ReconciliationCoordinator) -> None:
    for client in (coordinator.source, coordinator.sink):
        try:
            client.close()
        except Exception as e:
            log_debug(f"Error closing client: {e}")


def prime_if_empty(coordinator: ReconciliationCoordinator, store: SqliteCacheStore) -> bool:
    """Seed an empty cache so the first observation sends no notifications.

    Returns:
        False if the cache could not be read or priming failed
    """
    try:
        if store.get_stats().total_lists > 0:
            return True
    except CacheIOError as e:
        log_error(f"Cannot read cache: {e}")
        return False
    log_info("Cache is empty, recording current lists without notifying")
    return coordinator.prime().committed


def run_once(coordinator: ReconciliationCoordinator, store: SqliteCacheStore) -> int:
    """Prime if needed, run one cycle, return the process exit code."""
    try:
        empty = store.get_stats().total_lists == 0
    except CacheIOError as e:
        log_error(f"Cannot read cache: {e}")
        return 1
    if empty:
        return 0 if prime_if_empty(coordinator, store) else 1
    result = coordinator.run_cycle("once")
    return 0 if result.committed else 1


def run_service(
    config: AnyListNotifyConfig,
    coordinator: ReconciliationCoordinator,
    stop_event: Optional[threading.Event] = None,
) -> int:
    """Run until SIGINT/SIGTERM (or stop_event), then shut down cleanly."""
    stop_event = stop_event or threading.Event()
    trigger = IntervalTrigger(coordinator, coordinator.scheduler, config.poll_interval)

    def _handle_stop(signum, frame):
        log_info(f"Received {signal.Signals(signum).name}, shutting down")
        stop_event.set()

    def _handle_hup(signum, frame):
        coordinator.trigger("signal")

    if threading.current_thread() is threading.main_thread():
        signal.signal(signal.SIGINT, _handle_stop)
        signal.signal(signal.SIGTERM, _handle_stop)
        if hasattr(signal, "SIGHUP"):
            signal.signal(signal.SIGHUP, _handle_hup)

    coordinator.start()
    coordinator.trigger("startup")
    trigger.start()
    log_info(f"Watching lists every {config.poll_interval:.0f}s")

    try:
        while not stop_event.is_set():
            stop_event.wait(1.0)
    finally:
        trigger.stop()
        coordinator.stop()

    log_info("Stopped")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    config = get_config(args.config)
    configure_logging(config.log_level, config.log_format)
    log_info(f"AnyList Notify {__version__} starting")
    config.log_config()

    try:
        store = SqliteCacheStore(config.database_path)
    except CacheIOError as e:
        log_error(f"Cannot open cache: {e}")
        return 1

    coordinator = build_coordinator(config, store)
    try:
        if args.once:
            return run_once(coordinator, store)

        if not prime_if_empty(coordinator, store):
            log_warn("Initial priming failed; the first successful cycle will report every item as added")
        return run_service(config, coordinator)
    finally:
        close_clients(coordinator)


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
