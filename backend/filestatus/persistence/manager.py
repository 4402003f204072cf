"""
SQLite status store for the file status tracker.

Single-file SQLite database holding:
- file_statuses: one TrackedFile record per name
- settings: tracker configuration as JSON values keyed by name

Every public method is one transaction. A process-wide re-entrant lock
serializes callers, so a reconciliation write and a sweep write can never
interleave inside a read-modify-write.
"""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, List, Optional

from pydantic import ValidationError

from ..watchfolders.models import (
    CleanupSettings,
    FileStatus,
    MonitoredPaths,
    ProcessingSettings,
    TrackedFile,
    TrackerConfig,
    merge_remarks,
)
from .errors import PersistenceError, SchemaError, LoadError, SaveError

logger = logging.getLogger(__name__)


# Database schema version for migrations
SCHEMA_VERSION = 1

DEFAULT_DB_FILENAME = "filestatus.db"

_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

# settings key -> TrackerConfig field
_CONFIG_KEYS = {
    "monitored_paths": "monitored_paths",
    "monitored_extensions": "monitored_extensions",
    "cleanup_settings": "cleanup",
    "processing_settings": "processing",
    "failure_remark": "failure_remark",
    "filename_pattern": "filename_pattern",
}


def format_timestamp(value: datetime) -> str:
    """Fixed-width UTC timestamp; lexical order equals chronological order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(_TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    try:
        return datetime.strptime(value, _TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)


class StatusStore:
    """
    Persisted record + key/value store consumed by the reconciliation engine,
    the cleanup sweeper and the dashboard.
    """

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize the status store.

        Args:
            db_path: Path to SQLite database file (defaults to ./filestatus.db)
        """
        if db_path is None:
            db_path = str(Path.cwd() / DEFAULT_DB_FILENAME)

        self.db_path = db_path
        self._lock = threading.RLock()
        self._ensure_schema()

    @contextmanager
    def _connect(self):
        """Locked connection; commits on success, rolls back on failure."""
        with self._lock:
            try:
                conn = sqlite3.connect(self.db_path, timeout=5.0)
            except sqlite3.Error as e:
                raise PersistenceError(f"Cannot open database {self.db_path}: {e}") from e
            conn.row_factory = sqlite3.Row
            try:
                yield conn
                conn.commit()
            except PersistenceError:
                conn.rollback()
                raise
            except Exception as e:
                conn.rollback()
                raise PersistenceError(f"Database operation failed: {e}") from e
            finally:
                conn.close()

    def _ensure_schema(self):
        """Create schema if it doesn't exist."""
        try:
            with self._connect() as conn:
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute("PRAGMA busy_timeout=5000")
                cursor = conn.cursor()

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS schema_version (
                        version INTEGER PRIMARY KEY,
                        applied_at TEXT NOT NULL
                    )
                """)

                cursor.execute("SELECT version FROM schema_version ORDER BY version DESC LIMIT 1")
                row = cursor.fetchone()
                current_version = row[0] if row else 0

                if current_version < SCHEMA_VERSION:
                    self._migrate_schema(conn, current_version)
        except PersistenceError as e:
            raise SchemaError(f"Failed to initialize schema: {e}") from e

    def _migrate_schema(self, conn, from_version: int):
        cursor = conn.cursor()

        if from_version < 1:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS file_statuses (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL UNIQUE,
                    status TEXT NOT NULL,
                    source TEXT NOT NULL,
                    last_updated TEXT NOT NULL,
                    remarks TEXT
                )
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_file_statuses_status
                ON file_statuses (status)
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_file_statuses_last_updated
                ON file_statuses (last_updated)
            """)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            """)
            cursor.execute(
                "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                (1, format_timestamp(datetime.now(timezone.utc)))
            )

    # Settings

    def get_setting(self, key: str, default: Any = None) -> Any:
        with self._connect() as conn:
            row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        if row is None or row["value"] is None:
            return default
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError as e:
            raise LoadError(f"Setting {key!r} is not valid JSON: {e}") from e

    def update_setting(self, key: str, value: Any) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO settings (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, json.dumps(value)),
            )

    def get_config(self) -> TrackerConfig:
        """Tracker configuration with defaults for every missing setting."""
        with self._connect() as conn:
            rows = conn.execute("SELECT key, value FROM settings").fetchall()

        stored = {}
        for row in rows:
            field = _CONFIG_KEYS.get(row["key"])
            if field is None or row["value"] is None:
                continue
            try:
                stored[field] = json.loads(row["value"])
            except json.JSONDecodeError as e:
                raise LoadError(f"Setting {row['key']!r} is not valid JSON: {e}") from e

        try:
            return TrackerConfig.model_validate(stored)
        except ValidationError as e:
            raise LoadError(f"Stored tracker configuration is invalid: {e}") from e

    def update_config(self, config: TrackerConfig) -> None:
        data = config.model_dump(mode="json")
        with self._connect() as conn:
            for key, field in _CONFIG_KEYS.items():
                conn.execute(
                    "INSERT INTO settings (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                    (key, json.dumps(data[field])),
                )

    def update_monitored_paths(self, paths: MonitoredPaths) -> None:
        self.update_setting("monitored_paths", paths.model_dump(mode="json"))

    def update_monitored_extensions(self, extensions: List[str]) -> None:
        normalized = TrackerConfig(monitored_extensions=extensions).monitored_extensions
        self.update_setting("monitored_extensions", normalized)

    def update_cleanup_settings(self, settings: CleanupSettings) -> None:
        self.update_setting("cleanup_settings", settings.model_dump(mode="json"))

    def update_processing_settings(self, settings: ProcessingSettings) -> None:
        self.update_setting("processing_settings", settings.model_dump(mode="json"))

    def update_failure_remark(self, remark: str) -> None:
        self.update_setting("failure_remark", remark)

    def update_filename_pattern(self, pattern: Optional[str]) -> None:
        self.update_setting("filename_pattern", pattern)

    # File statuses

    @staticmethod
    def _row_to_file(row) -> TrackedFile:
        return TrackedFile(
            id=row["id"],
            name=row["name"],
            status=FileStatus(row["status"]),
            source=row["source"],
            last_updated=parse_timestamp(row["last_updated"]),
            remarks=row["remarks"] or "",
        )

    @staticmethod
    def _file_params(file: TrackedFile):
        return (
            file.id,
            file.name,
            file.status.value,
            file.source,
            format_timestamp(file.last_updated),
            file.remarks or None,
        )

    _UPSERT_SQL = """
        INSERT INTO file_statuses (id, name, status, source, last_updated, remarks)
        VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT(name) DO UPDATE SET
            status = excluded.status,
            source = excluded.source,
            last_updated = excluded.last_updated,
            remarks = excluded.remarks
    """

    def get_file(self, name: str) -> Optional[TrackedFile]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM file_statuses WHERE name = ?", (name,)
            ).fetchone()
        return self._row_to_file(row) if row else None

    def list_files(
        self,
        status: Optional[FileStatus] = None,
        limit: Optional[int] = None,
    ) -> List[TrackedFile]:
        """Records sorted by last_updated, newest first."""
        query = "SELECT * FROM file_statuses"
        params: list = []
        if status is not None:
            query += " WHERE status = ?"
            params.append(FileStatus(status).value)
        query += " ORDER BY last_updated DESC, name ASC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(int(limit))

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_file(row) for row in rows]

    def list_files_older_than(
        self,
        cutoff: datetime,
        status: Optional[FileStatus] = None,
    ) -> List[TrackedFile]:
        query = "SELECT * FROM file_statuses WHERE last_updated < ?"
        params: list = [format_timestamp(cutoff)]
        if status is not None:
            query += " AND status = ?"
            params.append(FileStatus(status).value)
        query += " ORDER BY last_updated ASC"

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_file(row) for row in rows]

    def upsert_file(self, file: TrackedFile) -> TrackedFile:
        """
        Create or update the record for file.name.

        The id of an existing record is preserved. Returns the stored record.
        """
        try:
            with self._connect() as conn:
                conn.execute(self._UPSERT_SQL, self._file_params(file))
                row = conn.execute(
                    "SELECT * FROM file_statuses WHERE name = ?", (file.name,)
                ).fetchone()
        except PersistenceError as e:
            raise SaveError(f"Failed to save status for {file.name!r}: {e}") from e
        return self._row_to_file(row)

    def bulk_upsert_files(self, files: Iterable[TrackedFile]) -> int:
        params = [self._file_params(f) for f in files]
        try:
            with self._connect() as conn:
                conn.executemany(self._UPSERT_SQL, params)
        except PersistenceError as e:
            raise SaveError(f"Failed to save {len(params)} statuses: {e}") from e
        return len(params)

    def update_status_if(
        self,
        name: str,
        expected: FileStatus,
        status: FileStatus,
        at: datetime,
    ) -> bool:
        """
        Compare-and-set the status of one record.

        Returns True only if the record existed with the expected status.
        """
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE file_statuses SET status = ?, last_updated = ? "
                "WHERE name = ? AND status = ?",
                (FileStatus(status).value, format_timestamp(at), name, FileStatus(expected).value),
            )
            return cursor.rowcount > 0

    def append_remark(self, name: str, text: str) -> bool:
        """Append a remark to a record, skipping text already present."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT remarks FROM file_statuses WHERE name = ?", (name,)
            ).fetchone()
            if row is None:
                return False
            existing = row["remarks"] or ""
            merged = merge_remarks(existing, text)
            if merged == existing:
                return False
            conn.execute(
                "UPDATE file_statuses SET remarks = ? WHERE name = ?", (merged, name)
            )
            return True

    def delete_file(self, name: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM file_statuses WHERE name = ?", (name,))
            return cursor.rowcount > 0

    def delete_all_files(self) -> int:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM file_statuses")
            return cursor.rowcount

    def delete_files_older_than(self, cutoff: datetime) -> int:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM file_statuses WHERE last_updated < ?",
                (format_timestamp(cutoff),),
            )
            deleted = cursor.rowcount
        if deleted:
            logger.info(f"Deleted {deleted} status record(s) last updated before {cutoff.isoformat()}")
        return deleted

    def count_files(self) -> int:
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM file_statuses").fetchone()[0]
