"""
Tests for the poll and push event sources.

Push-mode tests feed synthetic watchdog events to the handler; no OS
observer is started.
"""

import pytest
from watchdog.events import (
    DirCreatedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileMovedEvent,
)

from conftest import make_file
from filestatus.watchfolders.engine import ReconciliationEngine
from filestatus.watchfolders.models import EventKind, FileStatus, LocationRole
from filestatus.watchfolders.sources import PollingEventSource, WatchdogEventSource
from filestatus.watchfolders.stability import FileStabilityChecker


class FakeObserver:
    def __init__(self):
        self.scheduled = []
        self.started = False
        self.stopped = False

    def schedule(self, handler, path, recursive=False):
        self.scheduled.append((path, recursive))

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def join(self, timeout=None):
        pass


class TestPollingEventSource:

    def test_poll_requests_single_resync(self, engine):
        source = PollingEventSource(engine, interval=5)

        assert source.poll()
        assert not source.poll()
        assert [e.kind for e in engine.queue.snapshot()] == [EventKind.RESYNC]


@pytest.fixture
def source(engine):
    source = WatchdogEventSource(
        engine,
        stability_checker=FileStabilityChecker(quiet_period=3.0),
        observer_factory=FakeObserver,
    )
    source.configure()
    return source


class TestWatchdogEventSource:

    def test_created_file_emitted_once_settled(self, source, engine, import_dir):
        path = make_file(import_dir, "report.pdf")

        source._handler.dispatch(FileCreatedEvent(str(path)))
        assert source.pending_candidates() == 1

        assert source.check_candidates() == 1
        events = engine.queue.snapshot()
        assert [(e.kind, e.role, e.name, e.source) for e in events] == [
            (EventKind.ADDED, LocationRole.IMPORT, "report.pdf", "Import"),
        ]
        assert source.pending_candidates() == 0

    def test_unsettled_file_stays_candidate(self, source, engine, import_dir):
        path = make_file(import_dir, "clip.mov", age=0)

        source.handle_created(str(path))

        assert source.check_candidates() == 0
        assert source.pending_candidates() == 1
        assert len(engine.queue) == 0

    def test_deleted_file_emits_removal(self, source, engine, import_dir):
        source._handler.dispatch(FileDeletedEvent(str(import_dir / "report.pdf")))

        events = engine.queue.snapshot()
        assert [(e.kind, e.role, e.name) for e in events] == [
            (EventKind.REMOVED, LocationRole.IMPORT, "report.pdf"),
        ]

    def test_move_between_locations(self, source, engine, import_dir, failed_dir):
        dest = make_file(failed_dir, "clip.mov")

        source._handler.dispatch(FileMovedEvent(str(import_dir / "clip.mov"), str(dest)))
        source.check_candidates()

        events = engine.queue.snapshot()
        assert [(e.kind, e.role) for e in events] == [
            (EventKind.REMOVED, LocationRole.IMPORT),
            (EventKind.ADDED, LocationRole.FAILED),
        ]

    def test_ignores_directories_hidden_and_nested(self, source, engine, import_dir):
        nested = import_dir / "sub"
        nested.mkdir()
        make_file(nested, "deep.pdf")
        hidden = make_file(import_dir, ".partial")

        source._handler.dispatch(DirCreatedEvent(str(nested)))
        source.handle_created(str(nested / "deep.pdf"))
        source.handle_created(str(hidden))

        assert source.pending_candidates() == 0

    def test_vanished_candidate_dropped(self, source, engine, import_dir):
        path = make_file(import_dir, "tmp.pdf", age=0)
        source.handle_created(str(path))
        path.unlink()

        assert source.check_candidates() == 0
        assert source.pending_candidates() == 0

    def test_events_drive_engine(self, source, engine, configured_store, import_dir):
        path = make_file(import_dir, "report.pdf")
        source.handle_created(str(path))
        source.check_candidates()
        engine.drain()

        assert configured_store.get_file("report.pdf").status == FileStatus.PROCESSING

    def test_start_schedules_every_location(self, engine, import_dir, failed_dir):
        source = WatchdogEventSource(engine, observer_factory=FakeObserver)
        source.start()
        try:
            observer = source._observer
            assert observer.started
            assert sorted(path for path, _ in observer.scheduled) == sorted(
                [str(import_dir), str(failed_dir)]
            )
            assert all(recursive is False for _, recursive in observer.scheduled)
        finally:
            source.stop()

        assert not source.is_running

    def test_start_skips_location_that_is_not_a_directory(self, engine, import_dir, failed_dir):
        failed_dir.rmdir()
        failed_dir.write_text("not a directory")
        source = WatchdogEventSource(engine, observer_factory=FakeObserver)
        source.start()
        try:
            assert [path for path, _ in source._observer.scheduled] == [str(import_dir)]
        finally:
            source.stop()

    def test_start_without_configuration(self, store):
        source = WatchdogEventSource(ReconciliationEngine(store), observer_factory=FakeObserver)
        source.start()

        assert not source.is_running
