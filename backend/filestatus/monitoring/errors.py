"""
Monitoring-specific errors.

The dashboard never fails silently: missing records and unavailable
services are explicit error responses.
"""


class MonitoringError(Exception):
    """Base exception for monitoring operations."""
    pass


class StatusNotFoundError(MonitoringError):
    """Raised when a requested file name has no status record."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"No status record for file: {name}")
