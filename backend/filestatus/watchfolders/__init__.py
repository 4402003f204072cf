"""
Watch folders — directory observation and status reconciliation.

Observes one or more import locations and a failed location, and keeps
one status record per file name in the status store.

Public API:
    TrackedFile, FileStatus — Status records
    TrackerConfig — Tracker configuration model
    DirectorySnapshotter — Top-level listing with quiet-period settling
    FileStabilityChecker — Size/mtime quiet-period detection
    ReconciliationEngine — Event queue, rules, timers and store writes
    PollingEventSource, WatchdogEventSource — Event producers
"""

from .errors import (
    WatchFolderError,
    LocationUnavailableError,
    InvalidLocationError,
)
from .models import (
    TrackedFile,
    FileStatus,
    LocationRole,
    WatchedLocation,
    MonitoredPaths,
    CleanupRule,
    CleanupSettings,
    ProcessingSettings,
    TrackerConfig,
    FileStabilityCheck,
    FileEvent,
    EventKind,
)
from .stability import FileStabilityChecker
from .scanner import DirectorySnapshot, DirectorySnapshotter
from .rules import Rule, Observation, Transition, decide, plan_snapshot
from .event_queue import EventQueue
from .timers import TimeoutRegistry
from .engine import ReconciliationEngine
from .sources import PollingEventSource, WatchdogEventSource

__all__ = [
    # Errors
    "WatchFolderError",
    "LocationUnavailableError",
    "InvalidLocationError",
    # Models
    "TrackedFile",
    "FileStatus",
    "LocationRole",
    "WatchedLocation",
    "MonitoredPaths",
    "CleanupRule",
    "CleanupSettings",
    "ProcessingSettings",
    "TrackerConfig",
    "FileStabilityCheck",
    "FileEvent",
    "EventKind",
    # Observation
    "FileStabilityChecker",
    "DirectorySnapshot",
    "DirectorySnapshotter",
    # Decisions
    "Rule",
    "Observation",
    "Transition",
    "decide",
    "plan_snapshot",
    # Core
    "EventQueue",
    "TimeoutRegistry",
    "ReconciliationEngine",
    "PollingEventSource",
    "WatchdogEventSource",
]
