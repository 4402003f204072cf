"""
Watch folder error hierarchy.

All errors are non-fatal to the application. They indicate operation failure
but the tracker keeps running.
"""


class WatchFolderError(Exception):
    """Base exception for watch folder failures."""

    pass


class LocationUnavailableError(WatchFolderError):
    """Watched location does not exist or is not accessible."""

    pass


class InvalidLocationError(WatchFolderError):
    """Watched location is not a directory or is not configured."""

    pass
