"""
Tests for the SQLite status store.

These tests verify:
1. Name-keyed upsert preserves the record id
2. Listing order, filters and limits
3. Compare-and-set and remark merging
4. Tracker configuration defaults and validation
"""

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from filestatus.persistence.errors import LoadError
from filestatus.persistence.manager import StatusStore, format_timestamp, parse_timestamp
from filestatus.watchfolders.models import (
    CleanupRule,
    CleanupSettings,
    FileStatus,
    TrackedFile,
    TrackerConfig,
)


T0 = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def _file(name, status=FileStatus.PROCESSING, at=T0, **kwargs):
    return TrackedFile(name=name, status=status, source="Import", last_updated=at, **kwargs)


class TestTimestamps:

    def test_round_trip_is_utc(self):
        value = datetime(2026, 3, 2, 12, 0, 0, 123456, tzinfo=timezone.utc)

        assert format_timestamp(value) == "2026-03-02T12:00:00.123456Z"
        assert parse_timestamp(format_timestamp(value)) == value

    def test_lexical_order_is_chronological(self):
        earlier = format_timestamp(T0)
        later = format_timestamp(T0 + timedelta(microseconds=1))

        assert earlier < later

    def test_parse_accepts_iso_offsets(self):
        assert parse_timestamp("2026-03-02T13:00:00+01:00") == T0


class TestFileRecords:

    def test_upsert_preserves_id(self, store: StatusStore):
        first = store.upsert_file(_file("a.pdf", id="file-original"))
        second = store.upsert_file(_file("a.pdf", status=FileStatus.PUBLISHED, id="file-other"))

        assert first.id == second.id == "file-original"
        assert second.status == FileStatus.PUBLISHED
        assert store.count_files() == 1

    def test_list_newest_first_with_filters(self, store: StatusStore):
        store.upsert_file(_file("old.pdf", at=T0))
        store.upsert_file(_file("new.pdf", at=T0 + timedelta(minutes=5)))
        store.upsert_file(_file("done.pdf", status=FileStatus.PUBLISHED, at=T0 + timedelta(minutes=1)))

        assert [f.name for f in store.list_files()] == ["new.pdf", "done.pdf", "old.pdf"]
        assert [f.name for f in store.list_files(status=FileStatus.PROCESSING)] == ["new.pdf", "old.pdf"]
        assert [f.name for f in store.list_files(limit=1)] == ["new.pdf"]

    def test_update_status_if(self, store: StatusStore):
        store.upsert_file(_file("a.mov"))
        later = T0 + timedelta(hours=1)

        assert store.update_status_if("a.mov", FileStatus.PROCESSING, FileStatus.TIMED_OUT, later)
        assert not store.update_status_if("a.mov", FileStatus.PROCESSING, FileStatus.TIMED_OUT, later)
        record = store.get_file("a.mov")
        assert record.status == FileStatus.TIMED_OUT
        assert record.last_updated == later

    def test_append_remark_skips_duplicates(self, store: StatusStore):
        store.upsert_file(_file("a.mov"))

        assert store.append_remark("a.mov", "Invalid extension: .mov")
        assert not store.append_remark("a.mov", "Invalid extension: .mov")
        assert store.append_remark("a.mov", "Checked by operator")
        assert not store.append_remark("missing.mov", "x")
        assert store.get_file("a.mov").remarks == "Invalid extension: .mov; Checked by operator"

    def test_delete_operations(self, store: StatusStore):
        store.upsert_file(_file("old.pdf", at=T0 - timedelta(days=10)))
        store.upsert_file(_file("new.pdf", at=T0))

        assert store.delete_files_older_than(T0 - timedelta(days=7)) == 1
        assert store.get_file("old.pdf") is None
        assert store.delete_file("new.pdf")
        assert not store.delete_file("new.pdf")

        store.bulk_upsert_files([_file("x"), _file("y")])
        assert store.delete_all_files() == 2

    def test_list_files_older_than(self, store: StatusStore):
        store.upsert_file(_file("stale.mov", at=T0 - timedelta(hours=30)))
        store.upsert_file(_file("fresh.mov", at=T0))
        store.upsert_file(_file("done.mov", status=FileStatus.PUBLISHED, at=T0 - timedelta(hours=30)))

        cutoff = T0 - timedelta(hours=24)
        stale = store.list_files_older_than(cutoff, status=FileStatus.PROCESSING)

        assert [f.name for f in stale] == ["stale.mov"]

    def test_record_exactly_at_limit_is_kept(self, store: StatusStore):
        cutoff = T0 - timedelta(days=7)
        store.upsert_file(_file("edge.pdf", at=cutoff))
        store.upsert_file(_file("older.pdf", at=cutoff - timedelta(seconds=1)))

        assert [f.name for f in store.list_files_older_than(cutoff)] == ["older.pdf"]
        assert store.delete_files_older_than(cutoff) == 1
        assert store.get_file("edge.pdf") is not None

    def test_records_survive_reopen(self, tmp_path):
        path = str(tmp_path / "persist.db")
        StatusStore(db_path=path).upsert_file(_file("a.pdf", remarks="kept"))

        record = StatusStore(db_path=path).get_file("a.pdf")

        assert record.remarks == "kept"
        assert record.last_updated == T0


class TestConfiguration:

    def test_defaults(self, store: StatusStore):
        config = store.get_config()

        assert [loc.name for loc in config.monitored_paths.import_locations] == ["Import"]
        assert not config.monitored_paths.is_configured
        assert config.monitored_extensions == []
        assert config.cleanup.status == CleanupRule(enabled=True, value=7, unit="days")
        assert config.cleanup.files == CleanupRule(enabled=False, value=30, unit="days")
        assert config.cleanup.timeout == CleanupRule(enabled=True, value=24, unit="hours")
        assert config.failure_remark == "Processing failed."

    def test_update_config_round_trip(self, store: StatusStore):
        config = TrackerConfig(
            monitored_extensions=[".MXF", "mov", "mxf"],
            cleanup=CleanupSettings(timeout=CleanupRule(enabled=True, value=2, unit="hours")),
            failure_remark="Rejected by the publisher.",
            filename_pattern=r"^BV_",
        )

        store.update_config(config)
        loaded = store.get_config()

        assert loaded.monitored_extensions == ["mxf", "mov"]
        assert loaded.cleanup.timeout.to_seconds() == 7200
        assert loaded.failure_remark == "Rejected by the publisher."
        assert loaded.filename_pattern == r"^BV_"

    def test_invalid_stored_config_raises_load_error(self, store: StatusStore):
        with sqlite3.connect(store.db_path) as conn:
            conn.execute(
                "INSERT INTO settings (key, value) VALUES ('cleanup_settings', ?)",
                ('{"timeout": {"enabled": true, "value": -1, "unit": "weeks"}}',),
            )

        with pytest.raises(LoadError):
            store.get_config()

    def test_generic_settings(self, store: StatusStore):
        assert store.get_setting("missing", default=3) == 3
        store.update_setting("theme", {"dark": True})
        assert store.get_setting("theme") == {"dark": True}
