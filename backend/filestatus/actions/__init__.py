"""
Operator actions: retry, rename, expand, delete, path diagnostics and data
transfer.
"""

from .errors import (
    ActionError,
    NotConfiguredError,
    FileNotFoundInLocationError,
    FileAlreadyExistsError,
    PermissionDeniedError,
)
from .commands import (
    ActionResult,
    ExpandResult,
    WriteAccessResult,
    PathTestResult,
    retry_file,
    rename_file,
    delete_failed_file,
    expand_file_prefixes,
    clear_all_statuses,
    check_write_access,
    probe_path,
    export_statuses_csv,
    import_statuses_csv,
    generate_statistics_report,
    export_settings,
    import_settings,
)

__all__ = [
    # Errors
    "ActionError",
    "NotConfiguredError",
    "FileNotFoundInLocationError",
    "FileAlreadyExistsError",
    "PermissionDeniedError",
    # Results
    "ActionResult",
    "ExpandResult",
    "WriteAccessResult",
    "PathTestResult",
    # Actions
    "retry_file",
    "rename_file",
    "delete_failed_file",
    "expand_file_prefixes",
    "clear_all_statuses",
    "check_write_access",
    "probe_path",
    "export_statuses_csv",
    "import_statuses_csv",
    "generate_statistics_report",
    "export_settings",
    "import_settings",
]
