"""
Cleanup — timeout flagging and retention of status records and failed files.
"""

from .sweeper import CleanupSweeper, SweepReport, DEFAULT_CLEANUP_INTERVAL

__all__ = [
    "CleanupSweeper",
    "SweepReport",
    "DEFAULT_CLEANUP_INTERVAL",
]
