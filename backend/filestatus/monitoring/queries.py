"""
Query layer for read-only status access.

Wraps StatusStore reads and shapes them into response models, and keeps
share credentials out of what the dashboard receives.
"""

from typing import Optional

from ..persistence.manager import StatusStore
from ..watchfolders.models import FileStatus, TrackerConfig
from .errors import StatusNotFoundError
from .models import FileListResponse, FileStatusView


def list_statuses(
    store: StatusStore,
    status: Optional[FileStatus] = None,
    limit: Optional[int] = None,
) -> FileListResponse:
    records = store.list_files(status=status, limit=limit)
    return FileListResponse(
        count=len(records),
        files=[FileStatusView.from_record(r) for r in records],
    )


def get_status(store: StatusStore, name: str) -> FileStatusView:
    """
    Raises:
        StatusNotFoundError: If no record exists for the name
    """
    record = store.get_file(name)
    if record is None:
        raise StatusNotFoundError(name)
    return FileStatusView.from_record(record)


def public_config(config: TrackerConfig) -> TrackerConfig:
    """Tracker configuration with network share passwords blanked."""
    paths = config.monitored_paths
    masked = paths.model_copy(update={
        "import_locations": [loc.model_copy(update={"password": None}) for loc in paths.import_locations],
        "failed": paths.failed.model_copy(update={"password": None}),
    })
    return config.model_copy(update={"monitored_paths": masked})


def keep_stored_passwords(config: TrackerConfig, stored: TrackerConfig) -> TrackerConfig:
    """
    Fill blank passwords from the stored location with the same id.

    Lets a client send back what public_config() returned without wiping
    the credentials it never saw.
    """
    known = {
        loc.id: loc.password
        for loc in [*stored.monitored_paths.import_locations, stored.monitored_paths.failed]
        if loc.password
    }

    def restore(loc):
        if loc.password is None and loc.id in known:
            return loc.model_copy(update={"password": known[loc.id]})
        return loc

    paths = config.monitored_paths
    merged = paths.model_copy(update={
        "import_locations": [restore(loc) for loc in paths.import_locations],
        "failed": restore(paths.failed),
    })
    return config.model_copy(update={"monitored_paths": merged})
