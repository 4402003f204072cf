"""
Watch folder data models.

All models use Pydantic. Tracker configuration is stored as JSON in the
status store and validated through these models on every read.
"""

import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_file_id() -> str:
    return f"file-{uuid.uuid4().hex}"


class FileStatus(str, Enum):
    """
    Lifecycle status of a tracked file.

    processing → {published, failed, timed-out}. Any terminal status moves
    back to processing when the same name is re-imported.
    """

    PROCESSING = "processing"
    FAILED = "failed"
    PUBLISHED = "published"
    TIMED_OUT = "timed-out"


def merge_remarks(existing: str, text: str) -> str:
    """
    Append a remark unless it is already contained in the existing text.

    Remarks accumulate; duplicates are detected by substring.
    """
    text = (text or "").strip()
    existing = existing or ""
    if not text or text in existing:
        return existing
    if not existing:
        return text
    return f"{existing}; {text}"


class TrackedFile(BaseModel):
    """
    One record per distinct file name currently or recently observed.

    The name is the natural key: two files with the same name in different
    directories are the same logical entity.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=new_file_id)
    name: str
    status: FileStatus
    source: str = ""
    last_updated: datetime = Field(default_factory=utc_now)
    remarks: str = ""

    @field_validator("last_updated")
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        """Naive timestamps are taken to be UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)


class LocationRole(str, Enum):
    """Role a watched location plays in the lifecycle."""

    IMPORT = "import"
    FAILED = "failed"


class WatchedLocation(BaseModel):
    """
    A watched directory.

    Network locations carry optional share credentials; they are stored for
    the mount layer and never used by the tracker itself.
    """

    model_config = ConfigDict(extra="forbid")

    id: str
    name: str
    path: str = ""
    type: Literal["local", "network"] = "local"
    username: Optional[str] = None
    password: Optional[str] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.path)


class MonitoredPaths(BaseModel):
    """One or more import locations and exactly one failed location."""

    model_config = ConfigDict(extra="forbid")

    import_locations: List[WatchedLocation] = Field(
        default_factory=lambda: [WatchedLocation(id="import-path", name="Import")]
    )
    failed: WatchedLocation = Field(
        default_factory=lambda: WatchedLocation(id="failed-path", name="Failed")
    )

    @field_validator("import_locations")
    @classmethod
    def require_import_location(cls, v: List[WatchedLocation]) -> List[WatchedLocation]:
        if not v:
            raise ValueError("At least one import location is required")
        return v

    @property
    def is_configured(self) -> bool:
        return self.failed.is_configured and all(
            loc.is_configured for loc in self.import_locations
        )


class CleanupRule(BaseModel):
    """A retention or timeout rule. Pure configuration."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = False
    value: int = Field(default=0, ge=0)
    unit: Literal["hours", "days"] = "hours"

    def to_timedelta(self) -> Optional[timedelta]:
        """Rule duration, or None when the rule is disabled or zero."""
        if not self.enabled or self.value == 0:
            return None
        if self.unit == "days":
            return timedelta(days=self.value)
        return timedelta(hours=self.value)

    def to_seconds(self) -> float:
        delta = self.to_timedelta()
        return delta.total_seconds() if delta else 0.0


class CleanupSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: CleanupRule = Field(
        default_factory=lambda: CleanupRule(enabled=True, value=7, unit="days")
    )
    files: CleanupRule = Field(
        default_factory=lambda: CleanupRule(enabled=False, value=30, unit="days")
    )
    timeout: CleanupRule = Field(
        default_factory=lambda: CleanupRule(enabled=True, value=24, unit="hours")
    )


class ProcessingSettings(BaseModel):
    """Switches for operator actions on failed files."""

    model_config = ConfigDict(extra="forbid")

    auto_expand_prefixes: bool = False


DEFAULT_FAILURE_REMARK = "Processing failed."


class TrackerConfig(BaseModel):
    """
    Tracker configuration as returned by the status store.

    Re-read by the engine at its checkpoints (resync start, watcher init).
    """

    model_config = ConfigDict(extra="forbid")

    monitored_paths: MonitoredPaths = Field(default_factory=MonitoredPaths)
    monitored_extensions: List[str] = Field(default_factory=list)
    cleanup: CleanupSettings = Field(default_factory=CleanupSettings)
    processing: ProcessingSettings = Field(default_factory=ProcessingSettings)
    failure_remark: str = DEFAULT_FAILURE_REMARK
    filename_pattern: Optional[str] = None

    @field_validator("monitored_extensions")
    @classmethod
    def normalize_extensions(cls, v: List[str]) -> List[str]:
        normalized = []
        for ext in v:
            ext = ext.strip().lower().lstrip(".")
            if ext and ext not in normalized:
                normalized.append(ext)
        return normalized

    def accepts_extension(self, name: str) -> bool:
        """True when the name's extension is monitored (empty list = all)."""
        if not self.monitored_extensions:
            return True
        _, dot, ext = name.rpartition(".")
        return bool(dot) and ext.lower() in self.monitored_extensions


class FileStabilityCheck(BaseModel):
    """
    Result of a file stability check.

    Files are settled when size and mtime have not changed for the quiet
    period.
    """

    model_config = ConfigDict(extra="forbid")

    path: str = Field(..., description="Absolute path to checked file")
    is_stable: bool = Field(..., description="Whether file is settled")
    size_bytes: Optional[int] = Field(
        None, description="Current file size in bytes (None if file inaccessible)"
    )
    quiet_for: float = Field(
        default=0.0, description="Seconds the file has been unchanged"
    )
    reason: Optional[str] = Field(
        None, description="Human-readable explanation if unstable or inaccessible"
    )


class EventKind(str, Enum):
    """Kinds of work items processed by the reconciliation engine."""

    ADDED = "added"
    REMOVED = "removed"
    CONFIRM_PUBLISH = "confirm_publish"
    TIMEOUT = "timeout"
    RESYNC = "resync"


class FileEvent(BaseModel):
    """
    A unit of work for the engine queue.

    ADDED/REMOVED come from an event source, CONFIRM_PUBLISH from the grace
    window timer, TIMEOUT from the timeout registry and RESYNC from the poller.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: EventKind
    name: str = ""
    role: Optional[LocationRole] = None
    source: Optional[str] = None
    token: int = 0

    @property
    def dedupe_key(self):
        return (self.kind, self.role, self.name, self.token)
