"""
Reconciliation scheduling.

Scheduled ticks are one of the trigger sources for the coordinator. The
scheduler keeps the outcome of the last cycle in reconciliation_state.json
so that "is a run due?" survives restarts, and IntervalTrigger turns that
into coordinator.trigger("scheduled") calls from a daemon thread.
"""

import json
import os
import threading
import time
from dataclasses import dataclass, field, asdict
from typing import Optional, TYPE_CHECKING

from shared.log import create_logger

if TYPE_CHECKING:
    from reconciliation.coordinator import CycleResult, ReconciliationCoordinator

_, log_debug, log_info, log_warn, _ = create_logger("Scheduler")


@dataclass
class ReconciliationState:
    """Persisted state for reconciliation scheduling."""
    last_run_time: float = 0.0          # time.time() of last finished cycle
    last_status: str = ""               # committed / failed / cancelled
    last_reason: str = ""               # trigger reason of last cycle
    last_events_found: int = 0          # change events detected
    last_events_by_type: dict = field(default_factory=dict)  # {item_added: N, ...}
    last_delivered: int = 0             # notifications delivered
    last_delivery_failures: int = 0     # notifications that failed
    run_count: int = 0                  # total cycles recorded
    failed_run_count: int = 0           # cycles that ended in failure


class ReconciliationScheduler:
    """Tracks when reconciliation last ran via persisted state.

    NOT a timer/thread. Call is_due() to check whether a scheduled cycle
    should run based on the interval and the last recorded run.
    """

    STATE_FILE = 'reconciliation_state.json'

    def __init__(self, data_dir: str):
        self.data_dir = data_dir
        self.state_path = os.path.join(data_dir, self.STATE_FILE)
        self._lock = threading.Lock()

    def load_state(self) -> ReconciliationState:
        """Load reconciliation state from disk (defaults if missing or corrupt)."""
        try:
            if os.path.exists(self.state_path):
                with open(self.state_path, 'r') as f:
                    data = json.load(f)
                return ReconciliationState(**data)
        except (OSError, json.JSONDecodeError, TypeError, KeyError) as e:
            log_debug(f"Failed to load reconciliation state, using defaults: {e}")
        return ReconciliationState()

    def save_state(self, state: ReconciliationState) -> None:
        """Save reconciliation state to disk atomically."""
        tmp_path = self.state_path + '.tmp'
        try:
            os.makedirs(self.data_dir, exist_ok=True)
            with open(tmp_path, 'w') as f:
                json.dump(asdict(state), f, indent=2)
            os.replace(tmp_path, self.state_path)
        except OSError as e:
            log_debug(f"Failed to save reconciliation state: {e}")

    def is_due(self, interval_seconds: float, now: Optional[float] = None) -> bool:
        """Check if a scheduled cycle is due.

        Args:
            interval_seconds: Minimum seconds between runs; <= 0 means never
            now: Current time (default: time.time()). For testing.

        Returns:
            True if reconciliation should run now.
        """
        return self.seconds_until_due(interval_seconds, now=now) == 0

    def seconds_until_due(self, interval_seconds: float, now: Optional[float] = None) -> float:
        """Seconds until is_due() turns True (0 if already due, inf if never)."""
        if interval_seconds <= 0:
            return float("inf")

        if now is None:
            now = time.time()

        state = self.load_state()
        return max(0.0, state.last_run_time + interval_seconds - now)

    def record_run(self, result: "CycleResult") -> None:
        """Record a finished reconciliation cycle.

        Args:
            result: CycleResult from ReconciliationCoordinator.run_cycle()
        """
        with self._lock:
            state = self.load_state()
            state.last_run_time = result.finished_at or time.time()
            state.last_status = result.status
            state.last_reason = result.reason
            state.last_events_found = result.events_found
            state.last_events_by_type = dict(result.events_by_type)
            state.last_delivered = result.delivered
            state.last_delivery_failures = result.delivery_failures
            state.run_count += 1
            if result.status == "failed":
                state.failed_run_count += 1
            self.save_state(state)


class IntervalTrigger:
    """Daemon thread that triggers a cycle whenever one is due.

    Fires at most once per interval even if the persisted state still says
    "due" (e.g. while the triggered cycle is running or after it failed).

    Args:
        coordinator: ReconciliationCoordinator to trigger
        scheduler: ReconciliationScheduler holding the last run time
        interval: Seconds between scheduled cycles
        check_interval: Seconds between due-checks
    """

    def __init__(
        self,
        coordinator: "ReconciliationCoordinator",
        scheduler: ReconciliationScheduler,
        interval: float,
        check_interval: float = 5.0,
    ):
        self.coordinator = coordinator
        self.scheduler = scheduler
        self.interval = interval
        self.check_interval = check_interval
        self._last_fired = 0.0
        self._next_check = 0.0
        self._stop = threading.Event()
        self.thread: Optional[threading.Thread] = None

    def tick(self, now: Optional[float] = None) -> bool:
        """Trigger the coordinator if a run is due.

        Returns:
            True if a trigger was sent.
        """
        if now is None:
            now = time.time()
        if now - self._last_fired < self.interval:
            return False
        if now < self._next_check:
            return False
        remaining = self.scheduler.seconds_until_due(self.interval, now=now)
        if remaining > 0:
            # state file is not re-read until the recorded run falls due
            self._next_check = now + remaining
            return False
        self._last_fired = now
        self.coordinator.trigger("scheduled")
        return True

    def start(self) -> None:
        if self.thread is not None and self.thread.is_alive():
            return
        self._stop.clear()
        self.thread = threading.Thread(target=self._loop, name="interval-trigger", daemon=True)
        self.thread.start()
        log_info(f"Scheduled reconciliation every {self.interval:.0f}s")

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self.thread is not None:
            self.thread.join(timeout=timeout)
            if self.thread.is_alive():
                log_warn("Interval trigger thread did not stop in time")

    def _loop(self) -> None:
        while not self._stop.is_set():
            self.tick()
            self._stop.wait(self.check_interval)
