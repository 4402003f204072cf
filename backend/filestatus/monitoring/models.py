"""
Request and response models for the dashboard API.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

from ..watchfolders.models import FileStatus, TrackedFile


class HealthResponse(BaseModel):
    """Response for health check endpoint."""

    model_config = ConfigDict(extra="forbid")

    status: str = "ok"
    engine_running: bool = False
    event_mode: Optional[str] = None
    queue_depth: int = 0
    dropped_events: int = 0
    tracked_files: int = 0


class FileStatusView(BaseModel):
    """One status record as shown on the dashboard."""

    model_config = ConfigDict(extra="forbid")

    id: str
    name: str
    status: FileStatus
    source: str
    last_updated: datetime
    remarks: str = ""

    @classmethod
    def from_record(cls, record: TrackedFile) -> "FileStatusView":
        return cls(**record.model_dump())


class FileListResponse(BaseModel):
    """Status records, newest first."""

    model_config = ConfigDict(extra="forbid")

    count: int
    files: List[FileStatusView]


class RenameRequest(BaseModel):
    """Request body for rename-and-retry."""

    model_config = ConfigDict(extra="forbid")

    new_name: str = Field(..., min_length=1)


class PathTestRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    path: str


class ClearResponse(BaseModel):
    deleted: int


class ImportResponse(BaseModel):
    imported: int


class SettingsImportResponse(BaseModel):
    applied: List[str]


class ResyncResponse(BaseModel):
    queued: bool
