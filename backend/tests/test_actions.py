"""
Tests for operator actions and data transfer.
"""

import csv
import io
import json
import shutil
from datetime import datetime, timezone
from pathlib import Path

import pytest

from conftest import make_file
from filestatus.actions import commands
from filestatus.actions.errors import (
    ActionError,
    FileAlreadyExistsError,
    FileNotFoundInLocationError,
    NotConfiguredError,
)
from filestatus.watchfolders.models import FileStatus, ProcessingSettings, TrackedFile


def _seed(store, name, status, at=None, source="Import", remarks=""):
    store.upsert_file(TrackedFile(
        name=name,
        status=status,
        source=source,
        last_updated=at or datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc),
        remarks=remarks,
    ))


# -----------------------------------------------------------------------------
# File actions
# -----------------------------------------------------------------------------

class TestRetry:

    def test_moves_file_back_to_import(self, configured_store, import_dir, failed_dir):
        make_file(failed_dir, "clip.mov")
        _seed(configured_store, "clip.mov", FileStatus.FAILED)

        result = commands.retry_file(configured_store, "clip.mov")

        assert result.success
        assert (import_dir / "clip.mov").exists()
        assert not (failed_dir / "clip.mov").exists()
        # Status is left for the engine to derive
        assert configured_store.get_file("clip.mov").status == FileStatus.FAILED

    def test_missing_file(self, configured_store):
        with pytest.raises(FileNotFoundInLocationError):
            commands.retry_file(configured_store, "ghost.mov")

    def test_existing_target(self, configured_store, import_dir, failed_dir):
        make_file(failed_dir, "clip.mov")
        make_file(import_dir, "clip.mov")

        with pytest.raises(FileAlreadyExistsError):
            commands.retry_file(configured_store, "clip.mov")

    def test_rejects_path_traversal(self, configured_store):
        with pytest.raises(ActionError):
            commands.retry_file(configured_store, "../etc/passwd")

    def test_unconfigured_paths(self, store):
        with pytest.raises(NotConfiguredError):
            commands.retry_file(store, "clip.mov")


class TestRename:

    def test_renames_and_drops_old_record(self, configured_store, import_dir, failed_dir):
        make_file(failed_dir, "clip.mov")
        _seed(configured_store, "clip.mov", FileStatus.FAILED)

        result = commands.rename_file(configured_store, "clip.mov", "BV_clip.mov")

        assert result.name == "BV_clip.mov"
        assert (import_dir / "BV_clip.mov").exists()
        assert configured_store.get_file("clip.mov") is None

    def test_rename_collision(self, configured_store, import_dir, failed_dir):
        make_file(failed_dir, "clip.mov")
        make_file(import_dir, "BV_clip.mov")

        with pytest.raises(FileAlreadyExistsError) as exc:
            commands.rename_file(configured_store, "clip.mov", "BV_clip.mov")

        assert "BV_clip.mov" in str(exc.value)
        assert (failed_dir / "clip.mov").exists()


class TestDeleteFailed:

    def test_deletes_file_and_record(self, configured_store, failed_dir):
        make_file(failed_dir, "clip.mov")
        _seed(configured_store, "clip.mov", FileStatus.FAILED)

        result = commands.delete_failed_file(configured_store, "clip.mov")

        assert result.message is None
        assert not (failed_dir / "clip.mov").exists()
        assert configured_store.get_file("clip.mov") is None

    def test_missing_file_still_removes_record(self, configured_store):
        _seed(configured_store, "clip.mov", FileStatus.FAILED)

        result = commands.delete_failed_file(configured_store, "clip.mov")

        assert result.success
        assert "not found on disk" in result.message
        assert configured_store.get_file("clip.mov") is None

    def test_clear_all(self, configured_store):
        _seed(configured_store, "a", FileStatus.PUBLISHED)
        _seed(configured_store, "b", FileStatus.FAILED)

        assert commands.clear_all_statuses(configured_store) == 2
        assert configured_store.count_files() == 0


class TestExpandPrefixes:

    @pytest.fixture
    def expanding_store(self, configured_store):
        configured_store.update_processing_settings(ProcessingSettings(auto_expand_prefixes=True))
        return configured_store

    def test_split_prefixes(self):
        assert commands.split_prefixes("PABA_show_ep01_v2.mxf") == ["PA", "BA"]
        assert commands.split_prefixes("PAXXCA_show_ep01_v2.mxf") == ["PA", "CA"]
        assert commands.split_prefixes("PAB_show_ep01_v2.mxf") == []
        assert commands.split_prefixes("PABA_show_ep01.mxf") == []

    def test_expands_into_import(self, expanding_store, import_dir, failed_dir):
        make_file(failed_dir, "PABA_show_ep01_v2.mxf", content="media")
        _seed(expanding_store, "PABA_show_ep01_v2.mxf", FileStatus.FAILED)

        result = commands.expand_file_prefixes(expanding_store, "PABA_show_ep01_v2.mxf")

        assert result.count == 2
        assert result.created == ["PA_show_ep01_v2.mxf", "BA_show_ep01_v2.mxf"]
        assert (import_dir / "PA_show_ep01_v2.mxf").read_text() == "media"
        assert (import_dir / "BA_show_ep01_v2.mxf").read_text() == "media"
        assert not (failed_dir / "PABA_show_ep01_v2.mxf").exists()
        assert expanding_store.get_file("PABA_show_ep01_v2.mxf") is None

    def test_disabled_by_default(self, configured_store, failed_dir):
        make_file(failed_dir, "PABA_show_ep01_v2.mxf")

        with pytest.raises(ActionError, match="disabled"):
            commands.expand_file_prefixes(configured_store, "PABA_show_ep01_v2.mxf")

        assert (failed_dir / "PABA_show_ep01_v2.mxf").exists()

    def test_missing_file(self, expanding_store):
        with pytest.raises(FileNotFoundInLocationError):
            commands.expand_file_prefixes(expanding_store, "PABA_show_ep01_v2.mxf")

    def test_wrong_format(self, expanding_store, failed_dir):
        make_file(failed_dir, "PABA_show.mxf")

        with pytest.raises(ActionError, match="required format"):
            commands.expand_file_prefixes(expanding_store, "PABA_show.mxf")

    def test_single_prefix(self, expanding_store, failed_dir):
        make_file(failed_dir, "PAXX_show_ep01_v2.mxf")

        with pytest.raises(ActionError, match="multiple valid prefixes"):
            commands.expand_file_prefixes(expanding_store, "PAXX_show_ep01_v2.mxf")

    def test_existing_copy_name(self, expanding_store, import_dir, failed_dir):
        make_file(failed_dir, "PABA_show_ep01_v2.mxf")
        make_file(import_dir, "BA_show_ep01_v2.mxf")

        with pytest.raises(FileAlreadyExistsError):
            commands.expand_file_prefixes(expanding_store, "PABA_show_ep01_v2.mxf")

        assert not (import_dir / "PA_show_ep01_v2.mxf").exists()
        assert (failed_dir / "PABA_show_ep01_v2.mxf").exists()

    def test_failed_copy_rolls_back(self, expanding_store, import_dir, failed_dir, monkeypatch):
        make_file(failed_dir, "PABACA_show_ep01_v2.mxf")
        _seed(expanding_store, "PABACA_show_ep01_v2.mxf", FileStatus.FAILED)
        real_copy = shutil.copy2

        def copy_then_fail(src, dst):
            if Path(dst).name.startswith("BA_"):
                raise OSError("disk full")
            return real_copy(src, dst)

        monkeypatch.setattr(commands.shutil, "copy2", copy_then_fail)

        with pytest.raises(ActionError, match="Expansion aborted"):
            commands.expand_file_prefixes(expanding_store, "PABACA_show_ep01_v2.mxf")

        assert list(import_dir.iterdir()) == []
        assert (failed_dir / "PABACA_show_ep01_v2.mxf").exists()
        assert expanding_store.get_file("PABACA_show_ep01_v2.mxf").status == FileStatus.FAILED


# -----------------------------------------------------------------------------
# Diagnostics
# -----------------------------------------------------------------------------

class TestDiagnostics:

    def test_write_access(self, configured_store, import_dir, failed_dir):
        result = commands.check_write_access(configured_store)

        assert result.can_write
        assert list(import_dir.iterdir()) == []
        assert list(failed_dir.iterdir()) == []

    def test_write_access_unconfigured(self, store):
        result = commands.check_write_access(store)

        assert not result.can_write
        assert result.error == "Monitored paths are not configured."

    def test_probe_path(self, tmp_path):
        assert commands.probe_path(str(tmp_path)).success
        missing = commands.probe_path(str(tmp_path / "missing"))
        assert not missing.success
        assert missing.error.startswith("Path does not exist")
        assert not commands.probe_path("").success


# -----------------------------------------------------------------------------
# CSV and settings transfer
# -----------------------------------------------------------------------------

class TestCsvTransfer:

    def test_export_then_import_into_empty_store(self, configured_store, store_factory):
        _seed(configured_store, "a.pdf", FileStatus.PUBLISHED, remarks="ok, done")
        _seed(configured_store, "b.mov", FileStatus.FAILED, remarks="Invalid extension: .mov")

        content = commands.export_statuses_csv(configured_store)
        rows = list(csv.DictReader(io.StringIO(content)))
        assert [r["name"] for r in rows] == ["a.pdf", "b.mov"]
        assert rows[0]["last_updated"] == "2026-03-02T12:00:00Z"

        target = store_factory()
        assert commands.import_statuses_csv(target, content) == 2
        assert target.get_file("a.pdf").remarks == "ok, done"
        assert target.get_file("b.mov").status == FileStatus.FAILED

    def test_import_accepts_camel_case_timestamp(self, store):
        content = (
            "id,name,status,source,lastUpdated,remarks\n"
            "file-1,clip.mov,processing,Import,2026-03-02T12:00:00.000Z,\n"
        )

        assert commands.import_statuses_csv(store, content) == 1
        assert store.get_file("clip.mov").status == FileStatus.PROCESSING

    def test_import_requires_columns(self, store):
        with pytest.raises(ActionError) as exc:
            commands.import_statuses_csv(store, "name,status\nclip.mov,processing\n")

        assert "must contain" in str(exc.value)

    def test_import_rejects_bad_row_without_writing(self, store):
        content = (
            "id,name,status,source,last_updated\n"
            "file-1,a.pdf,published,Import,2026-03-02T12:00:00Z\n"
            "file-2,b.pdf,exploded,Import,2026-03-02T12:00:00Z\n"
        )

        with pytest.raises(ActionError) as exc:
            commands.import_statuses_csv(store, content)

        assert "row 3" in str(exc.value)
        assert store.count_files() == 0


class TestStatisticsReport:

    def test_report_sections(self, store):
        _seed(store, "a.pdf", FileStatus.PUBLISHED, at=datetime(2026, 3, 2, 9, tzinfo=timezone.utc))
        _seed(store, "b.pdf", FileStatus.PUBLISHED, at=datetime(2026, 3, 4, 9, tzinfo=timezone.utc))
        _seed(store, "c.pdf", FileStatus.FAILED)

        report = commands.generate_statistics_report(store)
        summary, raw = report.split("\nRAW PUBLISHED DATA\n")

        assert summary.startswith("STATISTICS SUMMARY\nperiod,date,count\n")
        assert "Daily,2026-03-02,1" in summary
        assert "Daily,2026-03-04,1" in summary
        assert "Weekly,Week of 2026-03-02,2" in summary
        assert "Monthly,Mar 2026,2" in summary
        raw_rows = list(csv.DictReader(io.StringIO(raw)))
        assert [r["fileName"] for r in raw_rows] == ["a.pdf", "b.pdf"]
        assert {r["period"] for r in raw_rows} == {"Raw Data"}

    def test_empty_report_has_headers(self, store):
        report = commands.generate_statistics_report(store)

        assert report == (
            "STATISTICS SUMMARY\nperiod,date,count\n\n"
            "RAW PUBLISHED DATA\nperiod,fileName,publishedDate,source\n"
        )


class TestSettingsTransfer:

    def test_export_import_round_trip(self, configured_store, store_factory):
        configured_store.update_monitored_extensions(["mov", "mxf"])
        configured_store.update_failure_remark("Rejected.")
        configured_store.update_processing_settings(ProcessingSettings(auto_expand_prefixes=True))

        exported = commands.export_settings(configured_store)
        target = store_factory()
        applied = commands.import_settings(target, exported)

        assert set(applied) == set(json.loads(exported))
        assert target.get_config() == configured_store.get_config()

    def test_partial_import_keeps_other_settings(self, configured_store):
        before = configured_store.get_config()

        applied = commands.import_settings(configured_store, {"failure_remark": "Bad file."})

        after = configured_store.get_config()
        assert applied == ["failure_remark"]
        assert after.failure_remark == "Bad file."
        assert after.monitored_paths == before.monitored_paths

    def test_rejects_user_data(self, store):
        with pytest.raises(ActionError):
            commands.import_settings(store, {"users": []})

    def test_rejects_invalid_values_without_writing(self, store):
        with pytest.raises(ActionError):
            commands.import_settings(store, {
                "failure_remark": "Changed",
                "cleanup_settings": {"timeout": {"enabled": True, "value": -5, "unit": "hours"}},
            })

        assert store.get_config().failure_remark == "Processing failed."

    def test_rejects_non_object(self, store):
        with pytest.raises(ActionError):
            commands.import_settings(store, "[1, 2]")
