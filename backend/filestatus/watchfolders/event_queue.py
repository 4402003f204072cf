"""
Bounded, de-duplicating event queue for the reconciliation engine.

FIFO, single consumer. An event whose effective action is already waiting
in the queue is dropped instead of being enqueued twice.
"""

import logging
import threading
from collections import deque
from typing import Deque, List, Optional, Set

from .models import FileEvent

logger = logging.getLogger(__name__)


DEFAULT_MAX_SIZE = 1024


class EventQueue:
    def __init__(self, max_size: int = DEFAULT_MAX_SIZE):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._items: Deque[FileEvent] = deque()
        self._keys: Set[tuple] = set()
        self._cond = threading.Condition()
        self._dropped = 0

    def put(self, event: FileEvent) -> bool:
        """
        Enqueue an event.

        Returns False when the event was dropped as a duplicate or because
        the queue is full.
        """
        key = event.dedupe_key
        with self._cond:
            if key in self._keys:
                logger.debug(f"Dropping duplicate event {event.kind.value} for {event.name!r}")
                return False
            if len(self._items) >= self.max_size:
                self._dropped += 1
                logger.warning(
                    f"Event queue full ({self.max_size}); dropping "
                    f"{event.kind.value} for {event.name!r}"
                )
                return False
            self._items.append(event)
            self._keys.add(key)
            self._cond.notify()
            return True

    def get(self, timeout: Optional[float] = None) -> Optional[FileEvent]:
        """Pop the oldest event, waiting up to timeout seconds. None on timeout."""
        with self._cond:
            if not self._items:
                self._cond.wait(timeout)
            if not self._items:
                return None
            event = self._items.popleft()
            self._keys.discard(event.dedupe_key)
            return event

    def get_nowait(self) -> Optional[FileEvent]:
        with self._cond:
            if not self._items:
                return None
            event = self._items.popleft()
            self._keys.discard(event.dedupe_key)
            return event

    def wake(self) -> None:
        """Wake a blocked consumer (used on shutdown)."""
        with self._cond:
            self._cond.notify_all()

    def snapshot(self) -> List[FileEvent]:
        with self._cond:
            return list(self._items)

    @property
    def dropped(self) -> int:
        with self._cond:
            return self._dropped

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)
