"""
Reconciliation coordinator.

Drives one reconciliation cycle at a time:

    Idle -> Fetching -> Diffing -> Dispatching -> Committing -> Idle
                 \\          \\           \\              \\
                  +----------+-----------+--------------+--> Failed -> Idle

Fetch and cache failures end the cycle with the cache untouched. Delivery
failures are logged per event and never stop the commit (at-most-once,
best-effort notifications). Triggers that arrive while a cycle is in flight
collapse into one follow-up cycle.

Collaborators are duck-typed:
    source.fetch_snapshot() -> Snapshot          (raises FetchError)
    store.load() -> Snapshot / store.commit(s)   (raises CacheIOError)
    sink.deliver(event) -> None                  (raises DeliveryError)
"""

import threading
import time
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, TYPE_CHECKING

from reconciliation.diff import count_by_kind, diff, filter_own_changes, list_changes
from shared.log import create_logger
from validation.errors import (
    CacheIOError,
    CycleCancelled,
    FetchError,
    MalformedSnapshotError,
)

if TYPE_CHECKING:
    from cache.models import Snapshot
    from reconciliation.scheduler import ReconciliationScheduler

log_trace, log_debug, log_info, log_warn, log_error = create_logger("Coordinator")


class CoordinatorState(Enum):
    """Reconciliation cycle states."""
    IDLE = "idle"
    FETCHING = "fetching"
    DIFFING = "diffing"
    DISPATCHING = "dispatching"
    COMMITTING = "committing"
    FAILED = "failed"


@dataclass
class CycleResult:
    """Summary of one reconciliation cycle.

    Attributes:
        reason: What triggered the cycle ("scheduled", "signal", "startup", ...)
        status: 'committed', 'failed' or 'cancelled'
        failed_stage: State the cycle was in when it failed or was cancelled
        events_found: Number of change events the diff produced
        events_by_type: Count per event kind (before own-change filtering)
        filtered_own: Events dropped because the authenticated user made them
        delivered: Events the sink accepted
        delivery_failures: Events the sink rejected
        lists_added: Ids of lists that appeared
        lists_removed: Ids of lists that disappeared
        errors: Error messages collected during the cycle
        started_at: time.time() when the cycle began
        finished_at: time.time() when the cycle ended
    """
    reason: str = ""
    status: str = "pending"
    failed_stage: Optional[str] = None
    events_found: int = 0
    events_by_type: dict = field(default_factory=dict)
    filtered_own: int = 0
    delivered: int = 0
    delivery_failures: int = 0
    lists_added: list[str] = field(default_factory=list)
    lists_removed: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    started_at: float = 0.0
    finished_at: float = 0.0

    @property
    def committed(self) -> bool:
        return self.status == "committed"

    @property
    def duration(self) -> float:
        return max(0.0, self.finished_at - self.started_at)


class ReconciliationCoordinator:
    """Orchestrates fetch -> diff -> dispatch -> commit cycles.

    Cycles never overlap: run_cycle() holds a cycle lock for its whole
    duration, and the worker thread started by start() only runs cycles in
    response to trigger(). The cache store's write path is only entered in
    the Committing stage, never while a collaborator call is pending.

    Args:
        source: Snapshot source collaborator (fetch_snapshot)
        store: Cache store (load / commit)
        sink: Notification sink collaborator (deliver)
        own_user_id: If set, events attributed to this user are not delivered
        scheduler: Optional ReconciliationScheduler that records each finished cycle
    """

    def __init__(
        self,
        source,
        store,
        sink,
        own_user_id: Optional[str] = None,
        scheduler: Optional["ReconciliationScheduler"] = None,
    ):
        self.source = source
        self.store = store
        self.sink = sink
        self.own_user_id = own_user_id
        self.scheduler = scheduler

        self._state = CoordinatorState.IDLE
        self._state_lock = threading.Lock()
        self._cycle_lock = threading.Lock()

        # Trigger channel: one pending flag, so triggers coalesce
        self._pending = False
        self._pending_reason = ""
        self._wake = threading.Event()
        self._stop = threading.Event()

        self.running = False
        self.thread: Optional[threading.Thread] = None
        self.last_result: Optional[CycleResult] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> CoordinatorState:
        with self._state_lock:
            return self._state

    def _set_state(self, state: CoordinatorState) -> None:
        with self._state_lock:
            self._state = state
        log_trace(f"State -> {state.value}")

    @property
    def has_pending_trigger(self) -> bool:
        with self._state_lock:
            return self._pending

    def _check_cancelled(self) -> None:
        if self._stop.is_set():
            raise CycleCancelled("Shutdown requested")

    # ------------------------------------------------------------------
    # Trigger channel and worker thread
    # ------------------------------------------------------------------

    def trigger(self, reason: str = "") -> bool:
        """Request a reconciliation cycle.

        Any number of triggers received before the worker picks them up, or
        while a cycle is in flight, result in exactly one more cycle.

        Args:
            reason: Free-text reason, used in logs and the cycle result

        Returns:
            True if this trigger scheduled a new cycle, False if it was
            coalesced into one already pending
        """
        with self._state_lock:
            coalesced = self._pending
            self._pending = True
            if not coalesced:
                self._pending_reason = reason
        if coalesced:
            log_trace(f"Trigger '{reason}' coalesced into pending cycle")
        else:
            log_debug(f"Trigger received: {reason or 'unspecified'}")
        self._wake.set()
        return not coalesced

    def _take_pending(self) -> Optional[str]:
        with self._state_lock:
            if not self._pending:
                return None
            self._pending = False
            reason = self._pending_reason
            self._pending_reason = ""
            return reason

    def start(self):
        """Start the background worker thread."""
        if self.running:
            log_trace("Already running")
            return

        self._stop.clear()
        self.running = True
        self.thread = threading.Thread(
            target=self._worker_loop, name="reconciliation-worker", daemon=True
        )
        self.thread.start()
        log_debug("Coordinator worker started")

    def stop(self, timeout: float = 10.0):
        """Stop the worker thread, cancelling an in-flight cycle between stages."""
        if not self.running:
            self._stop.set()
            return

        log_trace("Stopping coordinator...")
        self.running = False
        self._stop.set()
        self._wake.set()

        if self.thread:
            self.thread.join(timeout=timeout)
            if self.thread.is_alive():
                log_warn(f"Coordinator thread did not stop within {timeout}s")

        log_debug("Coordinator stopped")

    def _worker_loop(self):
        """Wait for triggers and run one cycle per pending flag."""
        while self.running and not self._stop.is_set():
            self._wake.wait(timeout=1.0)
            self._wake.clear()
            if self._stop.is_set():
                break

            reason = self._take_pending()
            if reason is None:
                continue

            try:
                self.run_cycle(reason)
            except Exception as e:
                # run_cycle reports failures in its result; keep the thread alive regardless
                log_error(f"Unexpected error in reconciliation worker: {e}")
                log_debug(traceback.format_exc())

    # ------------------------------------------------------------------
    # Cycles
    # ------------------------------------------------------------------

    def run_cycle(self, reason: str = "") -> CycleResult:
        """Run one full reconciliation cycle synchronously.

        Never raises: every failure is logged, recorded in the returned
        CycleResult, and leaves the cache at its previous value.

        Args:
            reason: What triggered this cycle

        Returns:
            CycleResult describing the outcome
        """
        with self._cycle_lock:
            result = CycleResult(reason=reason, started_at=time.time())
            stage = CoordinatorState.IDLE
            try:
                self._check_cancelled()
                stage = CoordinatorState.FETCHING
                self._set_state(stage)
                new = self._fetch()

                self._check_cancelled()
                stage = CoordinatorState.DIFFING
                self._set_state(stage)
                events = self._diff(new, result)

                self._check_cancelled()
                stage = CoordinatorState.DISPATCHING
                self._set_state(stage)
                self._dispatch(events, result)

                self._check_cancelled()
                stage = CoordinatorState.COMMITTING
                self._set_state(stage)
                self.store.commit(new)
                result.status = "committed"
                log_info(
                    f"Cycle committed: {result.events_found} change(s), "
                    f"{result.delivered} delivered, {result.delivery_failures} failed"
                )

            except CycleCancelled:
                result.status = "cancelled"
                result.failed_stage = stage.value
                log_info(f"Cycle cancelled during {stage.value}; cache left unchanged")

            except FetchError as e:
                self._fail(result, stage, f"Failed to fetch snapshot: {e}")

            except MalformedSnapshotError as e:
                self._fail(result, stage, f"Fetched snapshot is malformed: {e}")

            except CacheIOError as e:
                if stage == CoordinatorState.COMMITTING and result.delivered:
                    # Delivered notifications are not undone; next cycle will re-emit them
                    log_warn(
                        f"Commit failed after {result.delivered} notification(s) were delivered; "
                        f"they may be sent again on the next cycle"
                    )
                self._fail(result, stage, f"Cache error: {e}")

            except Exception as e:
                self._fail(result, stage, f"Unexpected error during {stage.value}: {e}")
                log_debug(traceback.format_exc())

            finally:
                result.finished_at = time.time()
                self._set_state(CoordinatorState.IDLE)

            self.last_result = result
            self._record(result)
            return result

    def prime(self) -> CycleResult:
        """Fetch and commit the current remote state without dispatching.

        Used once at startup when the cache is empty, so the first
        observation does not turn every existing item into ItemAdded.

        Returns:
            CycleResult with status 'committed' or 'failed'
        """
        with self._cycle_lock:
            result = CycleResult(reason="prime", started_at=time.time())
            stage = CoordinatorState.FETCHING
            try:
                self._set_state(stage)
                new = self._fetch()
                new.validate()
                stage = CoordinatorState.COMMITTING
                self._set_state(stage)
                stats = self.store.commit(new)
                result.status = "committed"
                log_info(
                    f"Cache primed with {stats.total_lists} lists "
                    f"({stats.total_items} items), no notifications sent"
                )
            except (FetchError, MalformedSnapshotError, CacheIOError) as e:
                self._fail(result, stage, f"Failed to prime cache: {e}")
            except Exception as e:
                self._fail(result, stage, f"Unexpected error while priming cache: {e}")
                log_debug(traceback.format_exc())
            finally:
                result.finished_at = time.time()
                self._set_state(CoordinatorState.IDLE)

            self.last_result = result
            return result

    def _fetch(self) -> "Snapshot":
        snapshot = self.source.fetch_snapshot()
        log_debug(f"Fetched snapshot: {len(snapshot.lists)} lists, {len(snapshot.items)} items")
        return snapshot

    def _diff(self, new: "Snapshot", result: CycleResult) -> list:
        """Validate the fetched snapshot, load the cache and compute events."""
        new.validate()
        old = self.store.load()

        events = diff(old, new)
        result.events_found = len(events)
        result.events_by_type = count_by_kind(events)

        result.lists_added, result.lists_removed = list_changes(old, new)
        for list_id in result.lists_added:
            log_info(f"List added: {new.list_name(list_id)} ({list_id})")
        for list_id in result.lists_removed:
            log_info(f"List deleted: {old.list_name(list_id)} ({list_id})")

        if self.own_user_id:
            kept = filter_own_changes(events, self.own_user_id)
            result.filtered_own = len(events) - len(kept)
            if result.filtered_own:
                log_debug(f"Filtered out {result.filtered_own} change(s) made by the authenticated user")
            events = kept

        if events:
            log_info(f"Detected {len(events)} change(s) to notify")
        else:
            log_debug("No changes detected")
        return events

    def _dispatch(self, events: list, result: CycleResult) -> None:
        """Deliver events in order; a failed delivery never stops the rest."""
        for event in events:
            log_trace(f"Delivering {event.kind} for item {event.item_id}")
            try:
                self.sink.deliver(event)
                result.delivered += 1
            except Exception as e:
                result.delivery_failures += 1
                result.errors.append(f"Delivery of {event.kind} for item {event.item_id} failed: {e}")
                log_error(f"Failed to send notification for {event.kind} '{event.item.name}': {e}")

    def _fail(self, result: CycleResult, stage: CoordinatorState, message: str) -> None:
        self._set_state(CoordinatorState.FAILED)
        result.status = "failed"
        result.failed_stage = stage.value
        result.errors.append(message)
        log_error(f"{message} (cache left unchanged)")

    def _record(self, result: CycleResult) -> None:
        if self.scheduler is None:
            return
        try:
            self.scheduler.record_run(result)
        except Exception as e:
            log_warn(f"Failed to record reconciliation run: {e}")
