"""
Tracker service — wires the background components together.

One reconciliation engine, one event source (poll or push) and the cleanup
sweeper on its own periodic thread. start()/stop() bring all of them up and
down in dependency order.
"""

import logging
import threading
from typing import Optional, Union

from .cleanup.sweeper import CleanupSweeper
from .config import ServiceSettings
from .monitoring.models import HealthResponse
from .periodic import PeriodicTask
from .persistence.manager import StatusStore
from .watchfolders.engine import ReconciliationEngine
from .watchfolders.scanner import DirectorySnapshotter
from .watchfolders.sources import PollingEventSource, WatchdogEventSource
from .watchfolders.stability import FileStabilityChecker

logger = logging.getLogger(__name__)


class TrackerService:
    def __init__(self, store: StatusStore, settings: Optional[ServiceSettings] = None):
        self.store = store
        self.settings = settings or ServiceSettings()

        self.engine = ReconciliationEngine(
            store,
            snapshotter=DirectorySnapshotter(
                stability_checker=FileStabilityChecker(quiet_period=self.settings.quiet_seconds),
            ),
            grace_seconds=self.settings.grace_seconds,
            queue_size=self.settings.queue_size,
        )
        self.sweeper = CleanupSweeper(store, engine=self.engine)
        self.source: Union[PollingEventSource, WatchdogEventSource] = self._build_source()

        self._sweep_task = PeriodicTask(
            "cleanup", self.settings.cleanup_seconds, self.sweeper.run_safely
        )
        self._lock = threading.Lock()
        self._running = False

    def _build_source(self):
        if self.settings.event_mode == "push":
            return WatchdogEventSource(
                self.engine,
                stability_checker=FileStabilityChecker(quiet_period=self.settings.quiet_seconds),
                resync_interval=self.settings.resync_seconds,
            )
        return PollingEventSource(self.engine, interval=self.settings.poll_seconds)

    def start(self) -> None:
        with self._lock:
            if self._running:
                logger.warning("Tracker service already running")
                return
            logger.info(f"Initializing tracker service ({self.settings.event_mode} mode)")
            self.engine.start()
            # First reconciliation pass completes before any sweep
            self.engine.resync()
            self.source.start()
            self._sweep_task.start()
            self._running = True

    def stop(self) -> None:
        with self._lock:
            if not self._running:
                return
            self._sweep_task.stop()
            self.source.stop()
            self.engine.stop()
            self._running = False
            logger.info("Tracker service stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    def request_resync(self) -> bool:
        return self.engine.request_resync()

    def reload_settings(self) -> None:
        """Apply stored tracker configuration; push mode re-subscribes to the new paths."""
        self.engine.reload_config()
        with self._lock:
            if self._running and isinstance(self.source, WatchdogEventSource):
                self.source.stop()
                self.source.start()
        self.engine.request_resync()

    def health(self) -> HealthResponse:
        return HealthResponse(
            status="ok",
            engine_running=self.engine.is_running,
            event_mode=self.settings.event_mode,
            queue_depth=len(self.engine.queue),
            dropped_events=self.engine.queue.dropped,
            tracked_files=self.store.count_files(),
        )
