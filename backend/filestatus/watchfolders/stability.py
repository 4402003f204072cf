"""
File stability detection.

A file is only considered present once its size and mtime have stopped
changing for a quiet period. This keeps in-flight copies out of the import
set.
"""

import time
from pathlib import Path
from typing import Callable, Dict, Tuple

from .models import FileStabilityCheck


DEFAULT_QUIET_PERIOD = 3.0


class FileStabilityChecker:
    """
    Quiet-period file stability detector.

    Tracks (size, mtime) per path. A file is settled when:
    - its mtime is already older than the quiet period on first sight, or
    - its (size, mtime) has not changed across observations spanning at
      least the quiet period.

    Any change resets the clock for that path.
    """

    def __init__(
        self,
        quiet_period: float = DEFAULT_QUIET_PERIOD,
        clock: Callable[[], float] = time.time,
    ):
        self.quiet_period = quiet_period
        self._clock = clock

        # {path: (size, mtime_ns, unchanged_since)}
        self._file_state: Dict[str, Tuple[int, int, float]] = {}

    def check_stability(self, path: Path) -> FileStabilityCheck:
        path_str = str(path)
        now = self._clock()

        try:
            stat = path.stat()
        except FileNotFoundError:
            self._file_state.pop(path_str, None)
            return FileStabilityCheck(
                path=path_str,
                is_stable=False,
                reason="File does not exist",
            )
        except OSError as e:
            self._file_state.pop(path_str, None)
            return FileStabilityCheck(
                path=path_str,
                is_stable=False,
                reason=f"File not accessible: {e}",
            )

        size = stat.st_size
        mtime_ns = stat.st_mtime_ns
        age = now - stat.st_mtime

        previous = self._file_state.get(path_str)
        if previous is None or previous[:2] != (size, mtime_ns):
            # First sight or changed since last look
            self._file_state[path_str] = (size, mtime_ns, now)
            if previous is None and age >= self.quiet_period:
                return FileStabilityCheck(
                    path=path_str,
                    is_stable=True,
                    size_bytes=size,
                    quiet_for=age,
                )
            reason = "First observation" if previous is None else (
                f"File changed (size {previous[0]} -> {size})"
            )
            return FileStabilityCheck(
                path=path_str,
                is_stable=False,
                size_bytes=size,
                quiet_for=0.0,
                reason=reason,
            )

        quiet_for = max(now - previous[2], age)
        if quiet_for >= self.quiet_period:
            return FileStabilityCheck(
                path=path_str,
                is_stable=True,
                size_bytes=size,
                quiet_for=quiet_for,
            )

        return FileStabilityCheck(
            path=path_str,
            is_stable=False,
            size_bytes=size,
            quiet_for=quiet_for,
            reason=f"Quiet for {quiet_for:.1f}s of {self.quiet_period}s",
        )

    def forget(self, path: Path) -> None:
        self._file_state.pop(str(path), None)
