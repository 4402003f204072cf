"""
Background periodic task runner.

Runs a callable on a fixed interval in a daemon thread. A failing run is
logged and the loop continues; one run never overlaps the next.
"""

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    def __init__(
        self,
        name: str,
        interval: float,
        target: Callable[[], object],
        run_immediately: bool = True,
    ):
        """
        Args:
            name: Thread name, also used in log lines
            interval: Seconds between the end of one run and the start of the next
            target: Callable to run
            run_immediately: Run once as soon as the task starts
        """
        self.name = name
        self.interval = interval
        self.target = target
        self.run_immediately = run_immediately

        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self.is_running:
            logger.warning(f"[{self.name}] Already running")
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()
        logger.info(f"[{self.name}] Started. Running every {self.interval:g} seconds.")

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _loop(self) -> None:
        if not self.run_immediately and self._stop.wait(self.interval):
            return
        while not self._stop.is_set():
            try:
                self.target()
            except Exception as e:
                logger.error(f"[{self.name}] Run failed: {e}", exc_info=True)
            if self._stop.wait(self.interval):
                break
