"""
Cleanup sweeper — periodic timeout flagging and retention.

Three independently enabled rules, applied in this order:
1. processing records older than the timeout become timed-out, but only
   while the file still sits in an import location
2. failed-location files of old failed records are deleted from disk
3. records older than the status retention are deleted

Physical deletion runs before record retention so the records that name
the files still exist when it runs.
"""

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, TYPE_CHECKING

from pydantic import BaseModel, Field

from ..persistence.errors import PersistenceError
from ..watchfolders.models import FileStatus, utc_now
from ..watchfolders.rules import decide_timeout
from ..watchfolders.scanner import DirectorySnapshotter

if TYPE_CHECKING:
    from ..persistence.manager import StatusStore
    from ..watchfolders.engine import ReconciliationEngine

logger = logging.getLogger(__name__)


DEFAULT_CLEANUP_INTERVAL = 60.0


class SweepReport(BaseModel):
    """Outcome of one sweep."""

    timed_out: List[str] = Field(default_factory=list, description="Names flagged timed-out")
    files_deleted: List[str] = Field(default_factory=list, description="Failed files removed from disk")
    records_deleted: int = Field(default=0, description="Status records removed by retention")
    file_errors: List[str] = Field(default_factory=list, description="Files that could not be removed")
    skipped: bool = Field(default=False, description="True if another sweep was already running")


class CleanupSweeper:
    """
    Applies the cleanup rules from the tracker configuration.

    Runs never overlap: a call made while another sweep is in progress
    returns immediately with skipped=True.
    """

    def __init__(
        self,
        store: "StatusStore",
        engine: Optional["ReconciliationEngine"] = None,
        clock: Callable[[], datetime] = utc_now,
        snapshotter: Optional[DirectorySnapshotter] = None,
    ):
        """
        Args:
            store: Status store
            engine: Engine whose timeout timers are cancelled for swept names
            clock: Returns "now" as an aware UTC datetime
            snapshotter: Probes import locations (the engine's by default)
        """
        self.store = store
        self.engine = engine
        if snapshotter is None:
            snapshotter = engine.snapshotter if engine is not None else DirectorySnapshotter()
        self.snapshotter = snapshotter
        self._clock = clock
        self._lock = threading.Lock()

    def run_once(self) -> SweepReport:
        if not self._lock.acquire(blocking=False):
            logger.warning("[Cleanup] Previous sweep still running. Skipping.")
            return SweepReport(skipped=True)

        try:
            logger.debug("[Cleanup] Starting cleanup sweep")
            report = SweepReport()
            config = self.store.get_config()
            now = self._clock()

            self._flag_timeouts(config, now, report)
            self._delete_failed_files(config, now, report)
            self._apply_retention(config, now, report)

            if report.timed_out or report.files_deleted or report.records_deleted:
                logger.info(
                    f"[Cleanup] Sweep finished: {len(report.timed_out)} timed out, "
                    f"{len(report.files_deleted)} file(s) deleted, "
                    f"{report.records_deleted} record(s) removed"
                )
            return report
        finally:
            self._lock.release()

    def run_safely(self) -> Optional[SweepReport]:
        """Periodic entry point: store errors are logged, not raised."""
        try:
            return self.run_once()
        except PersistenceError as e:
            logger.error(f"[Cleanup] Sweep failed: {e}")
            return None

    def _flag_timeouts(self, config, now: datetime, report: SweepReport) -> None:
        limit = config.cleanup.timeout.to_timedelta()
        if limit is None:
            return

        import_locations = config.monitored_paths.import_locations
        for record in self.store.list_files_older_than(now - limit, status=FileStatus.PROCESSING):
            still_in_import = any(
                self.snapshotter.contains(loc.path, record.name) for loc in import_locations
            )
            if decide_timeout(record, still_in_import) is None:
                logger.debug(f"[Cleanup] {record.name}: no longer in import, not timing out")
                continue
            # Compare-and-set: the engine may have moved it on meanwhile
            if self.store.update_status_if(record.name, FileStatus.PROCESSING, FileStatus.TIMED_OUT, now):
                logger.info(f"[Cleanup] {record.name}: processing -> timed-out (timeout sweep)")
                report.timed_out.append(record.name)
                if self.engine is not None:
                    self.engine.cancel_timeout(record.name)

    def _delete_failed_files(self, config, now: datetime, report: SweepReport) -> None:
        limit = config.cleanup.files.to_timedelta()
        failed = config.monitored_paths.failed
        if limit is None or not failed.is_configured:
            return

        failed_dir = Path(failed.path)
        for record in self.store.list_files_older_than(now - limit, status=FileStatus.FAILED):
            path = failed_dir / record.name
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.error(f"[Cleanup] Error deleting file {path}: {e}")
                report.file_errors.append(record.name)
                continue
            logger.info(f"[Cleanup] Deleted old file from failed location: {record.name}")
            report.files_deleted.append(record.name)

    def _apply_retention(self, config, now: datetime, report: SweepReport) -> None:
        limit = config.cleanup.status.to_timedelta()
        if limit is None:
            return
        report.records_deleted = self.store.delete_files_older_than(now - limit)
