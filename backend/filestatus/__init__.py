"""
File status tracker.

Watches import and failed directories and keeps one status record per file
name (processing, failed, published, timed-out) in a SQLite store, with a
FastAPI dashboard for operators.
"""

__version__ = "1.0.0"
