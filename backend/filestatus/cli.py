"""
File status tracker CLI - thin entrypoint for operator commands.

Commands:
- serve: dashboard API plus background tracker service
- watch: background tracker service only
- poll:  one reconciliation pass, prints the transitions
- sweep: one cleanup pass
- status: list status records

Exit Codes:
===========
- 0: Success
- 1: Configuration error
- 4: System error (database, permissions, etc.)
"""

import argparse
import logging
import signal
import sys
import threading
from typing import NoReturn, Optional

from pydantic import ValidationError

from .cleanup.sweeper import CleanupSweeper
from .config import ServiceSettings
from .persistence.errors import PersistenceError
from .persistence.manager import StatusStore
from .service import TrackerService
from .watchfolders.engine import ReconciliationEngine
from .watchfolders.models import FileStatus
from .watchfolders.scanner import DirectorySnapshotter
from .watchfolders.stability import FileStabilityChecker

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFIG = 1
EXIT_SYSTEM = 4


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _load_settings(args: argparse.Namespace) -> ServiceSettings:
    settings = ServiceSettings.from_env()
    overrides = {}
    if getattr(args, "db", None):
        overrides["db_path"] = args.db
    if getattr(args, "mode", None):
        overrides["event_mode"] = args.mode
    if getattr(args, "host", None):
        overrides["host"] = args.host
    if getattr(args, "port", None):
        overrides["port"] = args.port
    if overrides:
        settings = ServiceSettings.model_validate({**settings.model_dump(), **overrides})
    return settings


def _require_paths(store: StatusStore) -> None:
    if not store.get_config().monitored_paths.is_configured:
        raise ValueError("Import and Failed paths are not configured")


def cmd_serve(args: argparse.Namespace, settings: ServiceSettings) -> int:
    from .main import run_server

    run_server(settings)
    return EXIT_OK


def cmd_watch(args: argparse.Namespace, settings: ServiceSettings) -> int:
    """Run the tracker service until interrupted."""
    store = StatusStore(db_path=settings.db_path)
    _require_paths(store)
    service = TrackerService(store, settings)

    stop = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: stop.set())

    service.start()
    try:
        while not stop.wait(1.0):
            pass
    except KeyboardInterrupt:
        print("\nTracker stopped by user.", file=sys.stderr)
    finally:
        service.stop()
    return EXIT_OK


def cmd_poll(args: argparse.Namespace, settings: ServiceSettings) -> int:
    """One reconciliation pass. Timers are not started."""
    store = StatusStore(db_path=settings.db_path)
    _require_paths(store)
    engine = ReconciliationEngine(
        store,
        snapshotter=DirectorySnapshotter(
            stability_checker=FileStabilityChecker(quiet_period=settings.quiet_seconds),
        ),
        grace_seconds=0,
    )
    transitions = engine.resync()
    engine.timers.cancel_all()
    for transition in transitions:
        print(transition.describe())
    print(f"{len(transitions)} transition(s)")
    return EXIT_OK


def cmd_sweep(args: argparse.Namespace, settings: ServiceSettings) -> int:
    store = StatusStore(db_path=settings.db_path)
    report = CleanupSweeper(store).run_once()
    print(
        f"timed out: {len(report.timed_out)}, files deleted: {len(report.files_deleted)}, "
        f"records deleted: {report.records_deleted}, file errors: {len(report.file_errors)}"
    )
    return EXIT_OK


def cmd_status(args: argparse.Namespace, settings: ServiceSettings) -> int:
    store = StatusStore(db_path=settings.db_path)
    status: Optional[FileStatus] = FileStatus(args.status) if args.status else None
    records = store.list_files(status=status, limit=args.limit)
    for record in records:
        line = f"{record.last_updated.isoformat()}  {record.status.value:<10}  {record.name}"
        if record.remarks:
            line += f"  ({record.remarks})"
        print(line)
    return EXIT_OK


def main(argv=None) -> NoReturn:
    """
    Main CLI entrypoint.

    Parses arguments and dispatches to subcommands.
    """
    parser = argparse.ArgumentParser(
        prog="filestatus",
        description="File status tracker - watch import and failed folders",
    )
    parser.add_argument("--db", help="SQLite database path (default: FILESTATUS_DB_PATH or ./filestatus.db)")

    subparsers = parser.add_subparsers(dest="command", required=True, help="Command to execute")

    parser_serve = subparsers.add_parser("serve", help="Run the dashboard API and tracker service")
    parser_serve.add_argument("--host", help="Bind host")
    parser_serve.add_argument("--port", type=int, help="Bind port")
    parser_serve.add_argument("--mode", choices=["poll", "push"], help="Event mode")
    parser_serve.set_defaults(func=cmd_serve)

    parser_watch = subparsers.add_parser("watch", help="Run the tracker service without the API")
    parser_watch.add_argument("--mode", choices=["poll", "push"], help="Event mode")
    parser_watch.set_defaults(func=cmd_watch)

    parser_poll = subparsers.add_parser("poll", help="Run one reconciliation pass and exit")
    parser_poll.set_defaults(func=cmd_poll)

    parser_sweep = subparsers.add_parser("sweep", help="Run one cleanup pass and exit")
    parser_sweep.set_defaults(func=cmd_sweep)

    parser_status = subparsers.add_parser("status", help="List status records")
    parser_status.add_argument("--status", choices=[s.value for s in FileStatus], help="Filter by status")
    parser_status.add_argument("--limit", type=int, default=None, help="Maximum number of records")
    parser_status.set_defaults(func=cmd_status)

    args = parser.parse_args(argv)

    try:
        settings = _load_settings(args)
    except ValidationError as e:
        print(f"ERROR: Invalid settings: {e}", file=sys.stderr)
        sys.exit(EXIT_CONFIG)

    configure_logging(settings.log_level)

    try:
        sys.exit(args.func(args, settings))
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(EXIT_CONFIG)
    except PersistenceError as e:
        print(f"FATAL: {e}", file=sys.stderr)
        sys.exit(EXIT_SYSTEM)
    except OSError as e:
        print(f"FATAL: {e}", file=sys.stderr)
        sys.exit(EXIT_SYSTEM)


if __name__ == "__main__":
    main()
