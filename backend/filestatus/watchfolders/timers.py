"""
Per-file timeout registry.

One cancellable timer per processing file, keyed by name. Each schedule()
issues a fresh token; a callback whose token is no longer current belongs to
a cancelled or replaced timer and must be ignored.
"""

import itertools
import logging
import threading
from typing import Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


TimerFactory = Callable[[float, Callable[[], None]], "threading.Timer"]


def default_timer_factory(interval: float, callback: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(interval, callback)
    timer.daemon = True
    return timer


class TimeoutRegistry:
    """
    Registry of per-name timers.

    The registry only decides *whether* a fired timer is still current; the
    callback is expected to hand the work to the engine queue.
    """

    def __init__(self, timer_factory: Optional[TimerFactory] = None):
        self._timer_factory = timer_factory or default_timer_factory
        self._lock = threading.Lock()
        self._timers: Dict[str, Tuple[int, object]] = {}
        self._tokens = itertools.count(1)

    def schedule(
        self,
        name: str,
        delay: float,
        callback: Callable[[str, int], None],
    ) -> int:
        """
        Start (or replace) the timer for name. Returns the new token.

        callback(name, token) runs on the timer thread when it fires.
        """
        with self._lock:
            token = next(self._tokens)
            timer = self._timer_factory(max(delay, 0.0), lambda: callback(name, token))
            previous = self._timers.get(name)
            self._timers[name] = (token, timer)

        if previous is not None:
            previous[1].cancel()
        timer.start()
        logger.debug(f"Timeout scheduled for {name} in {delay:.0f}s (token {token})")
        return token

    def cancel(self, name: str) -> bool:
        with self._lock:
            entry = self._timers.pop(name, None)
        if entry is None:
            return False
        entry[1].cancel()
        logger.debug(f"Timeout cancelled for {name}")
        return True

    def is_current(self, name: str, token: int) -> bool:
        with self._lock:
            entry = self._timers.get(name)
            return entry is not None and entry[0] == token

    def release(self, name: str, token: int) -> bool:
        """Remove the entry for a fired timer if it is still current."""
        with self._lock:
            entry = self._timers.get(name)
            if entry is None or entry[0] != token:
                return False
            del self._timers[name]
            return True

    def pending(self) -> Dict[str, int]:
        with self._lock:
            return {name: entry[0] for name, entry in self._timers.items()}

    def cancel_all(self) -> None:
        with self._lock:
            entries = list(self._timers.values())
            self._timers.clear()
        for _, timer in entries:
            timer.cancel()

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._timers

    def __len__(self) -> int:
        with self._lock:
            return len(self._timers)
