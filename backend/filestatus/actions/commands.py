"""
Operator actions on tracked files and tracker settings.

File actions only move or delete files on disk (plus the record deletions
noted below). The reconciliation engine observes the result and derives
the new status, so retrying a failed file shows up as an ordinary import.

Also hosts the CSV and JSON transfer helpers used by the dashboard.
"""

import csv
import io
import json
import logging
import os
import shutil
import time
from collections import OrderedDict
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field, ValidationError

from ..persistence.manager import StatusStore, parse_timestamp
from ..watchfolders.models import (
    CleanupSettings,
    FileStatus,
    MonitoredPaths,
    ProcessingSettings,
    TrackedFile,
    TrackerConfig,
)
from .errors import (
    ActionError,
    FileAlreadyExistsError,
    FileNotFoundInLocationError,
    NotConfiguredError,
    PermissionDeniedError,
)

logger = logging.getLogger(__name__)


CSV_COLUMNS = ["id", "name", "status", "source", "last_updated", "remarks"]
REQUIRED_CSV_COLUMNS = ["id", "name", "status", "source", "last_updated"]

# Settings transfer keys; user accounts are never part of a settings file
SETTINGS_KEYS = [
    "monitored_paths",
    "monitored_extensions",
    "cleanup_settings",
    "processing_settings",
    "failure_remark",
    "filename_pattern",
]


class ActionResult(BaseModel):
    """Outcome of a file action."""

    success: bool = True
    name: str = Field(..., description="File name the action ended with")
    message: Optional[str] = Field(None, description="Informational note for the operator")


class ExpandResult(BaseModel):
    """Outcome of a prefix expansion."""

    success: bool = True
    name: str = Field(..., description="The expanded original")
    count: int = 0
    created: List[str] = Field(default_factory=list, description="Copies placed in import")


class WriteAccessResult(BaseModel):
    can_write: bool
    error: Optional[str] = None


class PathTestResult(BaseModel):
    success: bool
    error: Optional[str] = None


def _check_name(name: str) -> str:
    """File actions only address top-level entries of a location."""
    if not name or name in (".", "..") or "/" in name or "\\" in name or os.sep in name:
        raise ActionError(f"Invalid file name: {name!r}")
    return name


def _configured_paths(store: StatusStore):
    paths = store.get_config().monitored_paths
    if not paths.is_configured:
        raise NotConfiguredError()
    return paths.import_locations[0], paths.failed


# File actions

def retry_file(store: StatusStore, name: str) -> ActionResult:
    """
    Move a file from the failed location back to the first import location.

    The engine sees the import addition and moves the record to processing.
    """
    _check_name(name)
    import_loc, failed_loc = _configured_paths(store)
    source = Path(failed_loc.path) / name
    target = Path(import_loc.path) / name

    if not source.is_file():
        raise FileNotFoundInLocationError(name, "failed")
    if target.exists():
        raise FileAlreadyExistsError(name, "import")

    try:
        os.rename(source, target)
    except FileNotFoundError:
        raise FileNotFoundInLocationError(name, "failed")
    except PermissionError as e:
        raise PermissionDeniedError("move files from the failed to the import directory", str(e))
    except OSError as e:
        raise ActionError(f"An unexpected error occurred: {e}")

    logger.info(f"Retry requested: {name} moved to {import_loc.name}")
    return ActionResult(name=name)


def rename_file(store: StatusStore, old_name: str, new_name: str) -> ActionResult:
    """
    Move a failed file back to the first import location under a new name.

    The record for the old name is deleted; the engine creates the record
    for the new name when it observes the import.
    """
    _check_name(old_name)
    _check_name(new_name)
    import_loc, failed_loc = _configured_paths(store)
    source = Path(failed_loc.path) / old_name
    target = Path(import_loc.path) / new_name

    if not source.is_file():
        raise FileNotFoundInLocationError(old_name, "failed")
    if target.exists():
        raise FileAlreadyExistsError(new_name, "import")

    try:
        os.rename(source, target)
    except FileNotFoundError:
        raise FileNotFoundInLocationError(old_name, "failed")
    except PermissionError as e:
        raise PermissionDeniedError("move files from the failed to the import directory", str(e))
    except OSError as e:
        raise ActionError(f"An unexpected error occurred: {e}")

    if old_name != new_name:
        store.delete_file(old_name)
    logger.info(f"Rename requested: {old_name} -> {new_name}, moved to {import_loc.name}")
    return ActionResult(name=new_name)


def delete_failed_file(store: StatusStore, name: str) -> ActionResult:
    """Delete a file from the failed location together with its record."""
    _check_name(name)
    failed_loc = store.get_config().monitored_paths.failed
    if not failed_loc.is_configured:
        raise NotConfiguredError("Failed path")

    path = Path(failed_loc.path) / name
    message = None
    try:
        path.unlink()
    except FileNotFoundError:
        message = "File was not found on disk, but its status entry was removed."
    except PermissionError as e:
        raise PermissionDeniedError("delete files from the failed directory", str(e))
    except OSError as e:
        raise ActionError(f"An unexpected error occurred: {e}")

    store.delete_file(name)
    logger.info(f"Deleted failed file {name}")
    return ActionResult(name=name, message=message)


# Prefix letters that mark a destination in an expandable name
EXPANDABLE_PREFIXES = ("P", "B", "C")


def split_prefixes(name: str) -> List[str]:
    """
    Destination prefixes of an expandable name, empty if it is not one.

    Expandable names have four underscore-separated fields; the first is a
    run of two-character prefixes such as "PABA". Pairs whose first letter
    is not a known destination are skipped.
    """
    fields = Path(name).stem.split("_")
    if len(fields) != 4:
        return []
    run = fields[0]
    if not run or len(run) % 2:
        return []
    pairs = [run[i:i + 2] for i in range(0, len(run), 2)]
    return [pair for pair in pairs if pair[0].upper() in EXPANDABLE_PREFIXES]


def expand_file_prefixes(store: StatusStore, name: str) -> ExpandResult:
    """
    Split a multi-prefix failed file into one copy per prefix in import.

    "PABA_show_ep01_v2.mxf" becomes "PA_show_ep01_v2.mxf" and
    "BA_show_ep01_v2.mxf". Copies made before a failing copy are removed
    again. The original file and its record are deleted once every copy
    exists; the engine tracks the copies as ordinary imports.

    Raises:
        ActionError: If expansion is disabled or the name is not expandable
        FileNotFoundInLocationError: If the file is not in the failed location
        FileAlreadyExistsError: If a copy's name is already taken in import
    """
    _check_name(name)
    config = store.get_config()
    if not config.processing.auto_expand_prefixes:
        raise ActionError("Prefix expansion is disabled in the processing settings.")
    import_loc, failed_loc = _configured_paths(store)
    source = Path(failed_loc.path) / name
    if not source.is_file():
        raise FileNotFoundInLocationError(name, "failed")

    if len(Path(name).stem.split("_")) != 4:
        raise ActionError("Filename does not match the required format for expansion.")
    prefixes = split_prefixes(name)
    if len(prefixes) <= 1:
        raise ActionError("File does not contain multiple valid prefixes to expand.")

    rest = name.split("_", 1)[1]
    targets = [Path(import_loc.path) / f"{prefix}_{rest}" for prefix in prefixes]
    for target in targets:
        if target.exists():
            raise FileAlreadyExistsError(target.name, "import")

    created: List[Path] = []
    for target in targets:
        try:
            shutil.copy2(source, target)
        except OSError as e:
            logger.error(f"Failed to create copy {target.name}: {e}")
            for path in [*created, target]:
                try:
                    path.unlink()
                except FileNotFoundError:
                    continue
                except OSError as cleanup_error:
                    logger.warning(f"Could not remove partial copy {path.name}: {cleanup_error}")
            raise ActionError(f"Failed to create copy: {target.name}. Expansion aborted.")
        created.append(target)

    try:
        source.unlink()
    except OSError as e:
        logger.error(f"Failed to delete original expanded file {name}: {e}")
        raise ActionError("Failed to delete original file after expansion.")

    store.delete_file(name)
    names = [path.name for path in created]
    logger.info(f"Expanded {name} into {', '.join(names)}")
    return ExpandResult(name=name, count=len(names), created=names)


def clear_all_statuses(store: StatusStore) -> int:
    deleted = store.delete_all_files()
    logger.info(f"Cleared {deleted} status record(s)")
    return deleted


# Path diagnostics

def check_write_access(store: StatusStore) -> WriteAccessResult:
    """Write and remove a probe file in the first import and the failed location."""
    paths = store.get_config().monitored_paths
    if not paths.is_configured:
        return WriteAccessResult(can_write=False, error="Monitored paths are not configured.")

    stamp = int(time.time() * 1000)
    for loc in (paths.import_locations[0], paths.failed):
        probe = Path(loc.path) / f".write_test_{stamp}"
        try:
            probe.write_text("test")
            probe.unlink()
        except PermissionError:
            return WriteAccessResult(
                can_write=False,
                error="Permission denied. The application user cannot write to the monitored directories.",
            )
        except OSError as e:
            return WriteAccessResult(can_write=False, error=str(e))
    return WriteAccessResult(can_write=True)


def probe_path(path: str) -> PathTestResult:
    """Check that a path exists and is accessible to the service user."""
    if not path:
        return PathTestResult(success=False, error="Path is empty")
    try:
        os.stat(path)
    except FileNotFoundError:
        return PathTestResult(success=False, error=f"Path does not exist: {path}")
    except PermissionError:
        return PathTestResult(success=False, error=f"Permission denied: {path}")
    except OSError as e:
        return PathTestResult(success=False, error=f"An unexpected error occurred: {e}")
    if not os.access(path, os.R_OK):
        return PathTestResult(success=False, error=f"Permission denied: {path}")
    return PathTestResult(success=True)


# CSV transfer

def _write_csv(fieldnames: List[str], rows: Iterable[Dict[str, Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=fieldnames, lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow(row)
    return buffer.getvalue()


def export_statuses_csv(store: StatusStore) -> str:
    """All records as CSV, newest first. Timestamps are ISO 8601 UTC."""
    return _write_csv(CSV_COLUMNS, (
        {
            "id": f.id,
            "name": f.name,
            "status": f.status.value,
            "source": f.source,
            "last_updated": f.last_updated.isoformat().replace("+00:00", "Z"),
            "remarks": f.remarks,
        }
        for f in store.list_files()
    ))


def import_statuses_csv(store: StatusStore, content: str) -> int:
    """
    Upsert records from CSV.

    The whole file is validated before anything is written. A camelCase
    lastUpdated header is accepted as well.
    """
    reader = csv.DictReader(io.StringIO(content))
    fields = [(f or "").strip() for f in (reader.fieldnames or [])]
    fields = ["last_updated" if f == "lastUpdated" else f for f in fields]
    missing = [f for f in REQUIRED_CSV_COLUMNS if f not in fields]
    if missing:
        raise ActionError(f"CSV must contain the following columns: {', '.join(REQUIRED_CSV_COLUMNS)}")
    reader.fieldnames = fields

    records = []
    try:
        for line, row in enumerate(reader, start=2):
            if not any((value or "").strip() for value in row.values() if isinstance(value, str)):
                continue
            try:
                records.append(TrackedFile(
                    id=row["id"],
                    name=row["name"],
                    status=FileStatus(row["status"]),
                    source=row["source"] or "",
                    last_updated=parse_timestamp(row["last_updated"]),
                    remarks=row.get("remarks") or "",
                ))
            except (ValueError, ValidationError) as e:
                raise ActionError(f"Error parsing CSV on row {line}: {e}")
    except csv.Error as e:
        raise ActionError(f"Error parsing CSV: {e}")

    imported = store.bulk_upsert_files(records)
    logger.info(f"Imported {imported} status record(s) from CSV")
    return imported


def published_counts(files: Iterable[TrackedFile]) -> Dict[str, "OrderedDict[str, int]"]:
    """Published counts per day, per week (starting Monday) and per month."""
    daily: "OrderedDict[str, int]" = OrderedDict()
    weekly: "OrderedDict[str, int]" = OrderedDict()
    monthly: "OrderedDict[str, int]" = OrderedDict()

    published = sorted(
        (f for f in files if f.status == FileStatus.PUBLISHED),
        key=lambda f: f.last_updated,
    )
    for f in published:
        day = f.last_updated.date()
        week_start = day - timedelta(days=day.weekday())
        day_key = day.strftime("%Y-%m-%d")
        week_key = week_start.strftime("%Y-%m-%d")
        month_key = day.strftime("%Y-%m")
        daily[day_key] = daily.get(day_key, 0) + 1
        weekly[week_key] = weekly.get(week_key, 0) + 1
        monthly[month_key] = monthly.get(month_key, 0) + 1

    return {"daily": daily, "weekly": weekly, "monthly": monthly}


def generate_statistics_report(store: StatusStore) -> str:
    """
    Two-section CSV: summary counts, then the raw published rows.

    Sections are separated by a blank line and a title line each.
    """
    files = store.list_files(status=FileStatus.PUBLISHED)
    counts = published_counts(files)

    summary = []
    for key, count in counts["daily"].items():
        summary.append({"period": "Daily", "date": key, "count": count})
    for key, count in counts["weekly"].items():
        summary.append({"period": "Weekly", "date": f"Week of {key}", "count": count})
    for key, count in counts["monthly"].items():
        label = datetime.strptime(f"{key}-01", "%Y-%m-%d").strftime("%b %Y")
        summary.append({"period": "Monthly", "date": label, "count": count})

    raw = [
        {
            "period": "Raw Data",
            "fileName": f.name,
            "publishedDate": f.last_updated.isoformat().replace("+00:00", "Z"),
            "source": f.source,
        }
        for f in sorted(files, key=lambda f: f.last_updated)
    ]

    summary_csv = _write_csv(["period", "date", "count"], summary)
    raw_csv = _write_csv(["period", "fileName", "publishedDate", "source"], raw)
    return f"STATISTICS SUMMARY\n{summary_csv}\nRAW PUBLISHED DATA\n{raw_csv}"


# Settings transfer

def export_settings(store: StatusStore) -> str:
    """Tracker settings as pretty-printed JSON."""
    data = store.get_config().model_dump(mode="json")
    exported = {
        "monitored_paths": data["monitored_paths"],
        "monitored_extensions": data["monitored_extensions"],
        "cleanup_settings": data["cleanup"],
        "processing_settings": data["processing"],
        "failure_remark": data["failure_remark"],
        "filename_pattern": data["filename_pattern"],
    }
    return json.dumps(exported, indent=2)


def import_settings(store: StatusStore, settings: Any) -> List[str]:
    """
    Apply the settings present in an exported settings document.

    Every present key is validated before any is written. Returns the keys
    that were applied.
    """
    if isinstance(settings, (str, bytes)):
        try:
            settings = json.loads(settings)
        except json.JSONDecodeError as e:
            raise ActionError(f"Invalid settings file format: {e}")
    if not isinstance(settings, dict):
        raise ActionError("Invalid settings file format.")
    if "users" in settings:
        raise ActionError(
            "Settings import should not contain user data. Use the dedicated user import instead."
        )

    ignored = [k for k in settings if k not in SETTINGS_KEYS]
    if ignored:
        logger.warning(f"Ignoring unknown settings keys: {', '.join(sorted(ignored))}")

    current = store.get_config()
    update: Dict[str, Any] = {}
    try:
        if "monitored_paths" in settings:
            update["monitored_paths"] = MonitoredPaths.model_validate(settings["monitored_paths"])
        if "monitored_extensions" in settings:
            update["monitored_extensions"] = settings["monitored_extensions"]
        if "cleanup_settings" in settings:
            update["cleanup"] = CleanupSettings.model_validate(settings["cleanup_settings"])
        if "processing_settings" in settings:
            update["processing"] = ProcessingSettings.model_validate(settings["processing_settings"])
        if "failure_remark" in settings:
            update["failure_remark"] = settings["failure_remark"]
        if "filename_pattern" in settings:
            update["filename_pattern"] = settings["filename_pattern"]
        config = TrackerConfig.model_validate({
            **current.model_dump(),
            **{k: (v.model_dump() if isinstance(v, BaseModel) else v) for k, v in update.items()},
        })
    except ValidationError as e:
        raise ActionError(f"Invalid settings: {e}")

    store.update_config(config)
    applied = [k for k in SETTINGS_KEYS if k in settings]
    logger.info(f"Imported settings: {', '.join(applied) or 'none'}")
    return applied

