"""
Event sources feeding the reconciliation engine.

PollingEventSource — requests a full resync every poll interval. This is the
default mode and the safety net for push mode.

WatchdogEventSource — OS push notifications via watchdog, top level only.
Additions are held as candidates until the file settles (quiet period);
removals are forwarded immediately and the engine applies its grace window.
"""

import logging
import os
import threading
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from ..periodic import PeriodicTask
from .engine import ReconciliationEngine
from .errors import WatchFolderError
from .models import LocationRole, WatchedLocation
from .stability import FileStabilityChecker

logger = logging.getLogger(__name__)


DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_RESYNC_INTERVAL = 60.0
DEFAULT_DEBOUNCE_INTERVAL = 0.5


class PollingEventSource:
    """Periodic full-snapshot reconciliation."""

    def __init__(self, engine: ReconciliationEngine, interval: float = DEFAULT_POLL_INTERVAL):
        self.engine = engine
        self.interval = interval
        self._task = PeriodicTask("poller", interval, self.poll)

    def poll(self) -> bool:
        """Queue a resync. A resync already waiting in the queue absorbs this one."""
        queued = self.engine.request_resync()
        if not queued:
            logger.debug("Previous poll still queued. Skipping.")
        return queued

    def start(self) -> None:
        self._task.start()

    def stop(self) -> None:
        self._task.stop()

    @property
    def is_running(self) -> bool:
        return self._task.is_running


def _normalize(path: str) -> str:
    return os.path.normcase(os.path.normpath(os.path.abspath(path)))


class _DirectoryEventHandler(FileSystemEventHandler):
    """Translates watchdog callbacks into source calls; directories are ignored."""

    def __init__(self, source: "WatchdogEventSource"):
        super().__init__()
        self.source = source

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.source.handle_created(os.fsdecode(event.src_path))

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.source.handle_removed(os.fsdecode(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self.source.handle_removed(os.fsdecode(event.src_path))
        self.source.handle_created(os.fsdecode(event.dest_path))


class WatchdogEventSource:
    """
    Push-mode event source.

    Watched locations are read from the engine configuration when start()
    is called; configuration changes take effect on the next start.
    """

    def __init__(
        self,
        engine: ReconciliationEngine,
        stability_checker: Optional[FileStabilityChecker] = None,
        debounce_interval: float = DEFAULT_DEBOUNCE_INTERVAL,
        resync_interval: float = DEFAULT_RESYNC_INTERVAL,
        observer_factory: Callable[[], object] = Observer,
    ):
        self.engine = engine
        self.stability_checker = stability_checker or FileStabilityChecker()
        self.debounce_interval = debounce_interval
        self.resync_interval = resync_interval
        self._observer_factory = observer_factory

        self._observer = None
        self._handler = _DirectoryEventHandler(self)
        self._lock = threading.Lock()
        self._locations: Dict[str, Tuple[LocationRole, WatchedLocation]] = {}
        # (role, name) -> (location, path) awaiting the quiet period
        self._candidates: Dict[Tuple[LocationRole, str], Tuple[WatchedLocation, Path]] = {}

        self._debouncer = PeriodicTask("watch-debounce", debounce_interval, self.check_candidates)
        self._resync = PeriodicTask("resync", resync_interval, self.engine.request_resync)

    def configure(self) -> int:
        """Load watched locations from the engine configuration."""
        paths = self.engine.reload_config().monitored_paths
        locations = {}
        for loc in paths.import_locations:
            if loc.is_configured:
                locations[_normalize(loc.path)] = (LocationRole.IMPORT, loc)
        if paths.failed.is_configured:
            locations[_normalize(paths.failed.path)] = (LocationRole.FAILED, paths.failed)
        with self._lock:
            self._locations = locations
        return len(locations)

    def start(self) -> None:
        if not self.configure():
            logger.error("Import or Failed paths are not configured. Watcher cannot start.")
            return

        self._observer = self._observer_factory()
        with self._lock:
            locations = list(self._locations.values())
        for role, loc in locations:
            try:
                self.engine.snapshotter.require_directory(loc.path)
            except WatchFolderError as e:
                logger.warning(f"Cannot watch {role.value} location: {e}")
                continue
            self._observer.schedule(self._handler, loc.path, recursive=False)
            logger.info(f"Watching {role.value}: {loc.path}")

        self._observer.start()
        self._debouncer.start()
        self._resync.start()

    def stop(self) -> None:
        self._debouncer.stop()
        self._resync.stop()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def is_running(self) -> bool:
        return self._observer is not None

    def _resolve(self, path: str) -> Optional[Tuple[LocationRole, WatchedLocation, str]]:
        """Map an event path to (role, location, name); None outside the top level."""
        p = Path(path)
        if p.name.startswith("."):
            return None
        with self._lock:
            entry = self._locations.get(_normalize(str(p.parent)))
        if entry is None:
            return None
        role, loc = entry
        return role, loc, p.name

    def handle_created(self, path: str) -> None:
        resolved = self._resolve(path)
        if resolved is None:
            return
        role, loc, name = resolved
        with self._lock:
            self._candidates[(role, name)] = (loc, Path(path))
        logger.debug(f"Candidate in {role.value}: {name}")

    def handle_removed(self, path: str) -> None:
        resolved = self._resolve(path)
        if resolved is None:
            return
        role, _, name = resolved
        with self._lock:
            self._candidates.pop((role, name), None)
        self.stability_checker.forget(Path(path))
        logger.debug(f"Removed from {role.value}: {name}")
        self.engine.notify_removed(role, name)

    def check_candidates(self) -> int:
        """Forward candidates that have settled. Returns how many were emitted."""
        with self._lock:
            candidates = list(self._candidates.items())

        emitted = 0
        for (role, name), (loc, path) in candidates:
            check = self.stability_checker.check_stability(path)
            if check.is_stable:
                with self._lock:
                    self._candidates.pop((role, name), None)
                self.stability_checker.forget(path)
                self.engine.notify_added(role, name, source=loc.name)
                emitted += 1
            elif check.size_bytes is None:
                # Gone before settling; the removal event covers it
                with self._lock:
                    self._candidates.pop((role, name), None)
        return emitted

    def pending_candidates(self) -> int:
        with self._lock:
            return len(self._candidates)
