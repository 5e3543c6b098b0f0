"""Best-effort bridge between phase changes and the Activity Tracking Service.

Tracker calls run on a single worker thread so they never hold up the tick
loop and are executed in submission order. Results are handed back through a
callback; the engine decides whether they are still relevant.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Callable, Optional, Protocol, Set

from .models import Phase, TrackingResult

LOGGER = logging.getLogger(__name__)

UNAVAILABLE = TrackingResult(ok=False, error="Activity tracking not available")


class ActivityTracker(Protocol):
    def start_session(self, session_type: str, task_id: Optional[str] = None) -> TrackingResult: ...

    def end_session(self, session_id: str) -> TrackingResult: ...


def session_type_for(phase: Phase) -> str:
    return "break" if phase.is_break else "focus"


class PendingSwitch:
    """Handle to an in-flight end/start pair."""

    def __init__(self, generation: int) -> None:
        self.generation = generation
        self.future: Optional[Future] = None
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Prevent the pair from starting a new session.

        Ending the previous session still happens; a session started before the
        cancellation is observed gets ended again.
        """
        self._cancelled.set()

    def done(self) -> bool:
        return self.future is not None and self.future.done()


class SessionLinker:
    def __init__(self, tracker: Optional[ActivityTracker] = None, max_workers: int = 1) -> None:
        self.tracker = tracker
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="session-linker")
        self._inflight: Set[Future] = set()
        self._lock = threading.Lock()

    # ----- Tracker calls -----
    def _start(self, session_type: str, task_id: Optional[str]) -> TrackingResult:
        if self.tracker is None:
            return UNAVAILABLE
        try:
            result = self.tracker.start_session(session_type, task_id)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Activity tracker failed to start a %s session", session_type)
            return UNAVAILABLE
        if not result.ok:
            LOGGER.info("Activity tracker declined %s session: %s", session_type, result.error)
        return result

    def _end(self, session_id: str) -> TrackingResult:
        if self.tracker is None:
            return UNAVAILABLE
        try:
            result = self.tracker.end_session(session_id)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Activity tracker failed to end session %s", session_id)
            return UNAVAILABLE
        if not result.ok:
            LOGGER.info("Activity tracker could not end session %s: %s", session_id, result.error)
        return result

    # ----- Scheduling -----
    def _submit(self, fn: Callable, *args) -> Future:
        future = self._executor.submit(fn, *args)
        with self._lock:
            self._inflight.add(future)
        future.add_done_callback(self._forget)
        return future

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._inflight.discard(future)

    def switch(
        self,
        generation: int,
        previous_id: Optional[str],
        session_type: str,
        task_id: Optional[str],
        on_started: Callable[[PendingSwitch, Optional[str]], None],
    ) -> PendingSwitch:
        """End ``previous_id`` (if any) and start a ``session_type`` session.

        ``on_started`` receives the new session id, or ``None`` when the tracker
        was unavailable or the switch was cancelled. It runs on the worker thread.
        """
        handle = PendingSwitch(generation)
        handle.future = self._submit(self._run_switch, handle, previous_id, session_type, task_id, on_started)
        return handle

    def _run_switch(
        self,
        handle: PendingSwitch,
        previous_id: Optional[str],
        session_type: str,
        task_id: Optional[str],
        on_started: Callable[[PendingSwitch, Optional[str]], None],
    ) -> Optional[str]:
        if previous_id:
            self._end(previous_id)
        session_id: Optional[str] = None
        if not handle.cancelled:
            result = self._start(session_type, task_id)
            session_id = result.session_id if result.ok else None
            if session_id and handle.cancelled:
                self._end(session_id)
                session_id = None
        try:
            on_started(handle, session_id)
        except Exception:  # pragma: no cover - defensive
            LOGGER.exception("Session start callback failed")
        return session_id

    def end(self, session_id: Optional[str]) -> Optional[Future]:
        if not session_id:
            return None
        return self._submit(self._end, session_id)

    def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for every submitted call; returns ``False`` on timeout."""
        while True:
            with self._lock:
                pending = set(self._inflight)
            if not pending:
                return True
            _done, not_done = wait(pending, timeout=timeout)
            if not_done:
                return False

    def shutdown(self, wait_for_pending: bool = True) -> None:
        self._executor.shutdown(wait=wait_for_pending)
