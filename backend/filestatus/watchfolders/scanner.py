"""
Directory snapshotter for watched locations.

Lists the top level of a watched directory. Never recurses. Snapshots never
raise: an inaccessible directory yields an empty snapshot flagged as
unavailable. require_directory() is the raising check used by callers that
need to know why.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Set, Tuple

from .errors import InvalidLocationError, LocationUnavailableError, WatchFolderError
from .models import WatchedLocation
from .stability import FileStabilityChecker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DirectorySnapshot:
    """
    Contents of one watched location at one moment.

    names: every top-level regular file present
    settled: subset of names that passed the quiet-period check
    available: False when the directory could not be read
    """

    location: WatchedLocation
    names: FrozenSet[str] = field(default_factory=frozenset)
    settled: FrozenSet[str] = field(default_factory=frozenset)
    available: bool = True


class DirectorySnapshotter:
    """
    Top-level directory lister with stability filtering.

    Skips hidden files, subdirectories and (by default) symlinks.
    """

    def __init__(
        self,
        stability_checker: Optional[FileStabilityChecker] = None,
        skip_hidden: bool = True,
        follow_symlinks: bool = False,
    ):
        self.stability_checker = stability_checker or FileStabilityChecker()
        self.skip_hidden = skip_hidden
        self.follow_symlinks = follow_symlinks

        # Paths currently known to be inaccessible, logged once per occurrence
        self._unavailable: Set[str] = set()
        # Per-directory stability bookkeeping is pruned to what is present
        self._tracked: Dict[str, Set[Path]] = {}

    def list(self, path: str) -> Set[str]:
        """Base names of top-level files in path (empty if inaccessible)."""
        names, _ = self._list_entries(path)
        return set(names)

    def snapshot(self, location: WatchedLocation) -> DirectorySnapshot:
        names, available = self._list_entries(location.path)
        if not available:
            return DirectorySnapshot(location=location, available=False)

        root = Path(location.path)
        settled = set()
        for name in names:
            if self.stability_checker.check_stability(root / name).is_stable:
                settled.add(name)

        present = {root / name for name in names}
        previous = self._tracked.get(location.path, set())
        for gone in previous - present:
            self.stability_checker.forget(gone)
        self._tracked[location.path] = present

        return DirectorySnapshot(
            location=location,
            names=frozenset(names),
            settled=frozenset(settled),
            available=True,
        )

    def contains(self, path: str, name: str) -> bool:
        """Probe a single entry without listing the directory."""
        if not path:
            return False
        candidate = Path(path) / name
        try:
            if candidate.is_symlink() and not self.follow_symlinks:
                return False
            return candidate.is_file()
        except OSError:
            return False

    def require_directory(self, path: str) -> Path:
        """
        Check that path is a readable directory.

        Raises:
            InvalidLocationError: If the path is empty or not a directory
            LocationUnavailableError: If the directory cannot be opened
        """
        if not path:
            raise InvalidLocationError("Watched location is not configured")
        root = Path(path)
        try:
            with os.scandir(root):
                pass
        except NotADirectoryError:
            raise InvalidLocationError(f"Not a directory: {path}")
        except OSError as e:
            raise LocationUnavailableError(f"Watched directory not accessible: {path} ({e})")
        return root

    def is_available(self, path: str) -> bool:
        """True if path can currently be listed."""
        try:
            self.require_directory(path)
        except WatchFolderError:
            return False
        return True

    def _list_entries(self, path: str) -> Tuple[List[str], bool]:
        if not path:
            return [], False

        names = []
        try:
            root = self.require_directory(path)
            for item in root.iterdir():
                if self.skip_hidden and item.name.startswith("."):
                    continue
                if item.is_symlink() and not self.follow_symlinks:
                    continue
                if not item.is_file():
                    continue
                names.append(item.name)
        except WatchFolderError as e:
            self._mark_unavailable(path, str(e))
            return [], False
        except OSError as e:
            self._mark_unavailable(path, f"Watched directory not accessible: {path} ({e})")
            return [], False

        if path in self._unavailable:
            self._unavailable.discard(path)
            logger.info(f"Watched directory accessible again: {path}")

        return sorted(names), True

    def _mark_unavailable(self, path: str, message: str) -> None:
        if path not in self._unavailable:
            self._unavailable.add(path)
            logger.warning(message)
