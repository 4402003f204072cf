"""
Process settings for the tracker service.

Tracker configuration (paths, extensions, cleanup rules) lives in the status
store; these are the per-process knobs read from the environment.
"""

import os
from typing import Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


ENV_PREFIX = "FILESTATUS_"

DEFAULT_HOST = "127.0.0.1"  # Localhost only by default
DEFAULT_PORT = 9780


class ServiceSettings(BaseModel):
    """Runtime settings for the background service and the HTTP server."""

    model_config = ConfigDict(extra="forbid")

    db_path: str = Field(default="./filestatus.db", description="SQLite database file")
    event_mode: Literal["poll", "push"] = Field(
        default="poll", description="poll = periodic snapshots, push = OS notifications"
    )
    poll_seconds: float = Field(default=5.0, gt=0, description="Snapshot interval in poll mode")
    resync_seconds: float = Field(default=60.0, gt=0, description="Safety-net resync interval in push mode")
    cleanup_seconds: float = Field(default=60.0, gt=0, description="Cleanup sweep interval")
    grace_seconds: float = Field(default=1.0, ge=0, description="Delay before an inferred publication")
    quiet_seconds: float = Field(default=3.0, ge=0, description="Quiet period before a file counts as present")
    queue_size: int = Field(default=1024, ge=1, description="Event queue bound")
    host: str = DEFAULT_HOST
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServiceSettings":
        """
        Build settings from FILESTATUS_* environment variables.

        Unset variables keep their defaults.

        Raises:
            pydantic.ValidationError: If a variable has an invalid value
        """
        environ = os.environ if environ is None else environ
        values = {}
        for field in cls.model_fields:
            raw = environ.get(f"{ENV_PREFIX}{field.upper()}")
            if raw is not None and raw != "":
                values[field] = raw.strip()
        if "event_mode" in values:
            values["event_mode"] = values["event_mode"].lower()
        if "log_level" in values:
            values["log_level"] = values["log_level"].upper()
        return cls.model_validate(values)
