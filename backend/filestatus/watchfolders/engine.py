"""
Reconciliation engine — turns filesystem observations into status transitions.

Coordinates:
1. A single-consumer event queue (one event processed to completion at a time)
2. The shared decision rules (rules.decide) for both push and poll paths
3. The per-file timeout registry
4. The grace window before an inferred publication is committed
5. Upserts into the status store

This is the sole writer of status, last_updated and remarks during normal
operation.
"""

import logging
import threading
from datetime import datetime
from typing import Callable, List, Optional, Set, TYPE_CHECKING

from ..persistence.errors import PersistenceError
from .event_queue import EventQueue, DEFAULT_MAX_SIZE
from .models import (
    EventKind,
    FileEvent,
    FileStatus,
    LocationRole,
    TrackedFile,
    TrackerConfig,
    merge_remarks,
    new_file_id,
    utc_now,
)
from .rules import (
    Observation,
    Transition,
    build_view,
    can_transition,
    decide,
    decide_timeout,
    plan_snapshot,
)
from .scanner import DirectorySnapshotter
from .timers import TimeoutRegistry, TimerFactory, default_timer_factory
from .validation import failure_remark

if TYPE_CHECKING:
    from ..persistence.manager import StatusStore

logger = logging.getLogger(__name__)


DEFAULT_GRACE_SECONDS = 1.0


class ReconciliationEngine:
    """
    Event-driven reconciliation with full-snapshot resynchronization.

    Event sources call submit() (or request_resync()); a worker thread
    started by start() drains the queue. Tests and one-shot CLI runs can
    instead call drain() / resync() synchronously; both take the same
    processing lock as the worker, so at most one mutation is ever in
    flight.
    """

    def __init__(
        self,
        store: "StatusStore",
        snapshotter: Optional[DirectorySnapshotter] = None,
        grace_seconds: float = DEFAULT_GRACE_SECONDS,
        queue: Optional[EventQueue] = None,
        timers: Optional[TimeoutRegistry] = None,
        timer_factory: Optional[TimerFactory] = None,
        clock: Callable[[], datetime] = utc_now,
        queue_size: int = DEFAULT_MAX_SIZE,
    ):
        """
        Initialize the engine.

        Args:
            store: Status store (records + configuration)
            snapshotter: Directory snapshotter (quiet-period aware)
            grace_seconds: Delay between an import unlink and the publish decision
            queue: Event queue (created if omitted)
            timers: Timeout registry (created if omitted)
            timer_factory: Factory for grace-window timers, threading.Timer by default
            clock: Returns "now" as an aware UTC datetime
            queue_size: Bound for the default queue
        """
        self.store = store
        self.snapshotter = snapshotter or DirectorySnapshotter()
        self.grace_seconds = grace_seconds
        self.queue = queue or EventQueue(max_size=queue_size)
        self._timer_factory = timer_factory or default_timer_factory
        self.timers = timers or TimeoutRegistry(timer_factory=self._timer_factory)
        self._clock = clock

        self._config: Optional[TrackerConfig] = None
        # Settled import names seen by the last pass; None until seeded
        self._last_import: Optional[Set[str]] = None

        self._process_lock = threading.Lock()
        self._running = False
        self._thread: Optional[threading.Thread] = None
        self._grace_timers: Set[threading.Timer] = set()
        self._grace_lock = threading.Lock()

    # Configuration checkpoints

    @property
    def config(self) -> TrackerConfig:
        if self._config is None:
            self.reload_config()
        return self._config

    def reload_config(self) -> TrackerConfig:
        self._config = self.store.get_config()
        return self._config

    def timeout_seconds(self) -> float:
        return self.config.cleanup.timeout.to_seconds()

    # Producer side

    def submit(self, event: FileEvent) -> bool:
        """Enqueue an event. False if dropped (duplicate or queue full)."""
        return self.queue.put(event)

    def request_resync(self) -> bool:
        return self.submit(FileEvent(kind=EventKind.RESYNC))

    def notify_added(self, role: LocationRole, name: str, source: Optional[str] = None) -> bool:
        return self.submit(FileEvent(kind=EventKind.ADDED, role=role, name=name, source=source))

    def notify_removed(self, role: LocationRole, name: str) -> bool:
        return self.submit(FileEvent(kind=EventKind.REMOVED, role=role, name=name))

    # Worker lifecycle

    def start(self) -> None:
        """Restore timers for processing records and start the worker thread."""
        if self._running:
            logger.warning("Reconciliation engine already running")
            return

        self.reload_config()
        self.restore_timers()

        self._running = True
        self._thread = threading.Thread(
            target=self._worker_loop,
            name="reconciliation-engine",
            daemon=True,
        )
        self._thread.start()
        logger.info("Reconciliation engine started")

    def stop(self, timeout: float = 5.0) -> None:
        self._running = False
        self.queue.wake()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

        self.timers.cancel_all()
        with self._grace_lock:
            grace_timers = list(self._grace_timers)
            self._grace_timers.clear()
        for timer in grace_timers:
            timer.cancel()
        logger.info("Reconciliation engine stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    def _worker_loop(self) -> None:
        while self._running:
            event = self.queue.get(timeout=0.5)
            if event is None:
                continue
            with self._process_lock:
                self._process_safely(event)

    def drain(self) -> List[Transition]:
        """Process every queued event synchronously. Returns committed transitions."""
        committed = []
        with self._process_lock:
            while True:
                event = self.queue.get_nowait()
                if event is None:
                    break
                committed.extend(self._process_safely(event))
        return committed

    def resync(self) -> List[Transition]:
        """Run one full reconciliation pass synchronously."""
        with self._process_lock:
            return self._process_safely(FileEvent(kind=EventKind.RESYNC))

    def _process_safely(self, event: FileEvent) -> List[Transition]:
        """Warn-and-continue wrapper: a failing event is logged and dropped."""
        try:
            return self._process(event)
        except PersistenceError as e:
            logger.error(f"Store error while handling {event.kind.value} {event.name!r}; event dropped: {e}")
        except Exception as e:
            logger.error(
                f"Unexpected error while handling {event.kind.value} {event.name!r}; event dropped: {e}",
                exc_info=True,
            )
        return []

    # Event handling

    def _process(self, event: FileEvent) -> List[Transition]:
        if event.kind == EventKind.RESYNC:
            return self._handle_resync()
        if event.kind == EventKind.ADDED:
            return self._handle_added(event)
        if event.kind == EventKind.REMOVED:
            return self._handle_removed(event)
        if event.kind == EventKind.CONFIRM_PUBLISH:
            return self._handle_confirm_publish(event)
        if event.kind == EventKind.TIMEOUT:
            return self._handle_timeout(event)
        logger.warning(f"Ignoring unknown event kind: {event.kind}")
        return []

    def _handle_resync(self) -> List[Transition]:
        config = self.reload_config()
        paths = config.monitored_paths
        if not paths.is_configured:
            logger.error("Monitored paths are not configured. Skipping reconciliation pass.")
            return []

        import_snapshots = [self.snapshotter.snapshot(loc) for loc in paths.import_locations]
        failed_snapshot = self.snapshotter.snapshot(paths.failed)
        view = build_view(import_snapshots, failed_snapshot, config)

        records = {record.name: record for record in self.store.list_files()}
        previous_import = self._previous_import(records.values())

        if not view.complete:
            logger.warning("A watched location is unavailable; skipping inferred publication this pass")

        committed = []
        for transition in plan_snapshot(records, view, previous_import):
            if self._commit(transition, records.get(transition.name), config):
                committed.append(transition)

        # Unavailable locations keep their previous belief
        if view.complete:
            self._last_import = set(view.import_settled)
        else:
            self._last_import = previous_import | set(view.import_settled)
        return committed

    def _handle_added(self, event: FileEvent) -> List[Transition]:
        config = self.config
        if event.role == LocationRole.IMPORT:
            previous_import = self._previous_import()
            in_failed = self.snapshotter.contains(config.monitored_paths.failed.path, event.name)
            obs = Observation(
                name=event.name,
                in_import=True,
                import_settled=config.accepts_extension(event.name),
                in_failed=in_failed,
                newly_added=event.name not in previous_import,
                import_source=event.source or self._import_label(event.name),
                failed_source=config.monitored_paths.failed.name,
            )
            if config.accepts_extension(event.name):
                self._last_import.add(event.name)
        else:
            obs = self._probe(event.name, config, newly_added=False)

        return self._decide_and_commit(obs, config)

    def _handle_removed(self, event: FileEvent) -> List[Transition]:
        if event.role == LocationRole.IMPORT:
            self._previous_import().discard(event.name)
            self._schedule_publish_check(event.name)
            return []

        # Left the failed location: re-derive, a retry shows up as an import
        return self._decide_and_commit(
            self._probe(event.name, self.config, newly_added=False), self.config
        )

    def _handle_confirm_publish(self, event: FileEvent) -> List[Transition]:
        config = self.config
        obs = self._probe(event.name, config, newly_added=False)
        return self._decide_and_commit(obs, config)

    def _handle_timeout(self, event: FileEvent) -> List[Transition]:
        if not self.timers.release(event.name, event.token):
            logger.debug(f"Ignoring stale timeout for {event.name}")
            return []

        record = self.store.get_file(event.name)
        config = self.config
        still_in_import = any(
            self.snapshotter.contains(loc.path, event.name)
            for loc in config.monitored_paths.import_locations
        )
        transition = decide_timeout(record, still_in_import)
        if transition is None:
            return []
        return [transition] if self._commit(transition, record, config) else []

    # Helpers

    def _previous_import(self, records=None) -> Set[str]:
        """Last-known import set, seeded from stored belief on first use."""
        if self._last_import is None:
            if records is None:
                records = self.store.list_files()
            self._last_import = {
                r.name for r in records
                if r.status in (FileStatus.PROCESSING, FileStatus.TIMED_OUT)
            }
        return self._last_import

    def _import_label(self, name: str) -> Optional[str]:
        for loc in self.config.monitored_paths.import_locations:
            if self.snapshotter.contains(loc.path, name):
                return loc.name
        return None

    def _probe(self, name: str, config: TrackerConfig, newly_added: bool) -> Observation:
        """Observe one name by probing every location directly."""
        import_source = None
        for loc in config.monitored_paths.import_locations:
            if self.snapshotter.contains(loc.path, name):
                import_source = loc.name
                break
        in_import = import_source is not None
        in_failed = self.snapshotter.contains(config.monitored_paths.failed.path, name)
        # A missing entry only counts as absence when every location is readable
        absence_confirmed = in_import or in_failed or all(
            self.snapshotter.is_available(loc.path)
            for loc in config.monitored_paths.import_locations + [config.monitored_paths.failed]
        )
        return Observation(
            name=name,
            in_import=in_import,
            import_settled=in_import and config.accepts_extension(name),
            in_failed=in_failed,
            newly_added=newly_added,
            absence_confirmed=absence_confirmed,
            import_source=import_source,
            failed_source=config.monitored_paths.failed.name,
        )

    def _decide_and_commit(self, obs: Observation, config: TrackerConfig) -> List[Transition]:
        record = self.store.get_file(obs.name)
        transition = decide(record, obs)
        if transition is None:
            return []
        return [transition] if self._commit(transition, record, config) else []

    def _schedule_publish_check(self, name: str) -> None:
        event = FileEvent(kind=EventKind.CONFIRM_PUBLISH, name=name)
        if self.grace_seconds <= 0:
            self.submit(event)
            return

        timer = None

        def fire():
            with self._grace_lock:
                self._grace_timers.discard(timer)
            self.submit(event)

        timer = self._timer_factory(self.grace_seconds, fire)
        with self._grace_lock:
            self._grace_timers.add(timer)
        timer.start()

    def _commit(
        self,
        transition: Transition,
        record: Optional[TrackedFile],
        config: TrackerConfig,
    ) -> bool:
        """Write one transition. Store errors are logged and the transition dropped."""
        if not can_transition(transition.previous, transition.status):
            logger.error(f"Refusing illegal transition {transition.describe()}")
            return False

        now = self._clock()
        if transition.status == FileStatus.PROCESSING:
            updated = TrackedFile(
                id=record.id if record else new_file_id(),
                name=transition.name,
                status=FileStatus.PROCESSING,
                source=transition.source or (record.source if record else ""),
                last_updated=now,
                remarks="",
            )
        else:
            remarks = record.remarks
            if transition.status == FileStatus.FAILED:
                remarks = merge_remarks(remarks, failure_remark(transition.name, config))
            updated = record.model_copy(update={
                "status": transition.status,
                "source": transition.source or record.source,
                "last_updated": now,
                "remarks": remarks,
            })

        try:
            self.store.upsert_file(updated)
        except PersistenceError as e:
            logger.error(f"Failed to commit {transition.describe()}: {e}")
            return False

        logger.info(transition.describe())

        if transition.status == FileStatus.PROCESSING:
            self._start_timeout(transition.name, config.cleanup.timeout.to_seconds())
        else:
            self.timers.cancel(transition.name)
        return True

    def _start_timeout(self, name: str, seconds: float) -> None:
        if seconds <= 0:
            self.timers.cancel(name)
            return
        self.timers.schedule(name, seconds, self._on_timeout)

    def _on_timeout(self, name: str, token: int) -> None:
        # Timer thread: hand the decision to the queue
        self.submit(FileEvent(kind=EventKind.TIMEOUT, name=name, token=token))

    def cancel_timeout(self, name: str) -> bool:
        return self.timers.cancel(name)

    def restore_timers(self) -> int:
        """Schedule timers for processing records loaded from the store."""
        seconds = self.timeout_seconds()
        if seconds <= 0:
            return 0

        now = self._clock()
        restored = 0
        for record in self.store.list_files(status=FileStatus.PROCESSING):
            elapsed = (now - record.last_updated).total_seconds()
            self.timers.schedule(record.name, max(seconds - elapsed, 0.0), self._on_timeout)
            restored += 1
        if restored:
            logger.info(f"Restored {restored} timeout timer(s)")
        return restored
