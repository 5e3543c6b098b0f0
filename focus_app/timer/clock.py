"""One-second tick source running on a daemon thread."""
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

LOGGER = logging.getLogger(__name__)


class Clock:
    """Repeating callback; at most one run is active per instance."""

    def __init__(self, interval: float = 1.0) -> None:
        self.interval = interval
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._stop_event is not None and not self._stop_event.is_set()

    def start(self, on_tick: Callable[[], None]) -> bool:
        """Start ticking; returns ``False`` when a run is already active."""
        with self._lock:
            if self.running:
                return False
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run_loop, args=(on_tick, self._stop_event), name="focus-clock", daemon=True
            )
            self._thread.start()
        LOGGER.debug("Clock started")
        return True

    def stop(self, wait: bool = False) -> None:
        with self._lock:
            stop_event, thread = self._stop_event, self._thread
            self._stop_event = None
            self._thread = None
        if stop_event is None:
            return
        stop_event.set()
        if wait and thread and thread is not threading.current_thread() and thread.is_alive():
            thread.join(timeout=self.interval + 1)
        LOGGER.debug("Clock stopped")

    def owns_current_thread(self) -> bool:
        """True when called from the thread of the currently active run."""
        return self._thread is not None and self._thread is threading.current_thread()

    def _run_loop(self, on_tick: Callable[[], None], stop_event: threading.Event) -> None:
        while not stop_event.wait(self.interval):
            try:
                on_tick()
            except Exception:  # noqa: BLE001
                LOGGER.exception("Clock tick failed")
