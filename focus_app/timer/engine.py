"""Focus timer engine: the single owner of the Pomodoro state machine.

One engine is constructed per process (see ``controllers.build_engine``) and
injected wherever the timer is needed. All state changes go through its
actions or the clock tick and happen under one lock; each change is persisted
and then announced to subscribers once the lock is released.
"""
from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import replace
from typing import Callable, Deque, List, Optional, Tuple

from .clock import Clock
from .models import EngineState, Phase, TaskContext, TimerConfig
from .notifications import NotificationDispatcher
from .persistence import PersistenceGateway
from .scheduler import duration_for, next_phase
from .tracking import PendingSwitch, SessionLinker, session_type_for

LOGGER = logging.getLogger(__name__)

Subscriber = Callable[[EngineState], None]
Announcement = Optional[Tuple[Phase, int]]


class FocusTimerEngine:
    def __init__(
        self,
        gateway: PersistenceGateway,
        linker: Optional[SessionLinker] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        clock: Optional[Clock] = None,
        config: Optional[TimerConfig] = None,
    ) -> None:
        self.gateway = gateway
        self.linker = linker or SessionLinker()
        self.dispatcher = dispatcher or NotificationDispatcher()
        self.clock = clock or Clock()
        self._state = EngineState(config=config or TimerConfig())
        self._lock = threading.RLock()
        self._generation = 0
        self._pending: Optional[PendingSwitch] = None
        self._subscribers: List[Subscriber] = []
        self._outbox: Deque[EngineState] = deque()
        self._delivering = False

    # ----- Read side -----
    def get_state(self) -> EngineState:
        return self._state

    def is_session_active(self) -> bool:
        return self._state.session_active

    @property
    def generation(self) -> int:
        return self._generation

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    # ----- Startup -----
    def restore(self) -> bool:
        """Adopt a persisted active session, resuming the clock if it was ticking."""
        restored = self.gateway.load()
        if restored is None:
            return False
        with self._lock:
            self._generation += 1
            self._state = restored
            if restored.is_running and not restored.is_paused:
                self.clock.start(self._on_clock_tick)
            self._queue_locked()
        LOGGER.info(
            "Restored %s session with %ss remaining", restored.phase.value, restored.remaining_seconds
        )
        self._flush()
        return True

    # ----- Actions -----
    def start(self, **config_override: int) -> None:
        """Begin a new session in focus, replacing any session in progress."""
        self._begin(None, config_override)

    def start_with_task(self, task_context: TaskContext, **config_override: int) -> None:
        self._begin(task_context, config_override)

    def _begin(self, task: Optional[TaskContext], config_override: dict) -> None:
        with self._lock:
            config = self._state.config.merged(**config_override)
            previous_id = self._state.activity_session_id
            total = duration_for(Phase.FOCUS, config)
            self._state = EngineState(
                phase=Phase.FOCUS,
                remaining_seconds=total,
                total_seconds=total,
                is_running=True,
                is_paused=False,
                cycle_count=0,
                config=config,
                session_active=True,
                task_context=task,
            )
            self._link_locked(previous_id)
            self._persist_locked()
            self.clock.start(self._on_clock_tick)
            self._queue_locked()
        LOGGER.info("Focus session started%s", f" for task {task.task_id}" if task else "")
        self.dispatcher.request_permission()
        self._flush()

    def pause(self) -> None:
        with self._lock:
            state = self._state
            if not state.is_running or state.is_paused:
                LOGGER.debug("pause() ignored; timer not running")
                return
            self._state = replace(state, is_paused=True)
            self.clock.stop()
            self._persist_locked()
            self._queue_locked()
        self._flush()

    def resume(self) -> None:
        with self._lock:
            if not self._state.is_paused:
                LOGGER.debug("resume() ignored; timer not paused")
                return
            self._state = replace(self._state, is_paused=False)
            self.clock.start(self._on_clock_tick)
            self._persist_locked()
            self._queue_locked()
        self._flush()

    def skip(self) -> None:
        with self._lock:
            if not self._state.session_active:
                LOGGER.debug("skip() ignored; no active session")
                return
            announcement = self._advance_locked()
        self._announce(announcement)
        self._flush()

    def stop(self) -> None:
        with self._lock:
            self._generation += 1
            if self._pending is not None:
                self._pending.cancel()
                self._pending = None
            self.linker.end(self._state.activity_session_id)
            self._state = EngineState(config=self._state.config)
            self.clock.stop()
            self._persist_locked()
            self._queue_locked()
        LOGGER.info("Focus session stopped")
        self._flush()

    def set_config(self, **changes: int) -> None:
        """Merge ``changes`` into the config; the running phase keeps its length."""
        with self._lock:
            config = self._state.config.merged(**changes)
            self._state = replace(self._state, config=config)
            self._persist_locked()
            self._queue_locked()
        self._flush()

    def set_session_goal(self, goal: Optional[str]) -> None:
        with self._lock:
            if not self._state.session_active:
                LOGGER.debug("set_session_goal() ignored; no active session")
                return
            self._state = replace(self._state, session_goal=goal or None)
            self._persist_locked()
            self._queue_locked()
        self._flush()

    def tick(self) -> bool:
        """Advance one second; returns ``True`` when the phase changed."""
        with self._lock:
            announcement = self._tick_locked()
        self._announce(announcement)
        self._flush()
        return announcement is not None

    def shutdown(self, timeout: Optional[float] = 5.0) -> None:
        """Stop ticking and let outstanding tracker calls finish."""
        self.clock.stop(wait=True)
        if not self.linker.drain(timeout):
            LOGGER.warning("Activity tracker calls still pending at shutdown")
        self.linker.shutdown(wait_for_pending=False)

    # ----- Internals -----
    def _on_clock_tick(self) -> None:
        with self._lock:
            # A run stopped by pause()/stop() may still deliver one late tick.
            if not self.clock.owns_current_thread():
                return
            announcement = self._tick_locked()
        self._announce(announcement)
        self._flush()

    def _tick_locked(self) -> Announcement:
        state = self._state
        if not state.is_running or state.is_paused:
            return None
        remaining = max(state.remaining_seconds - 1, 0)
        self._state = replace(state, remaining_seconds=remaining)
        if remaining == 0:
            return self._advance_locked()
        self._persist_locked()
        self._queue_locked()
        return None

    def _advance_locked(self) -> Announcement:
        state = self._state
        phase = next_phase(state.phase, state.cycle_count, state.config)
        cycle_count = state.cycle_count + 1 if state.phase is Phase.FOCUS else state.cycle_count
        total = duration_for(phase, state.config)
        previous_id = state.activity_session_id
        self._state = replace(
            state,
            phase=phase,
            remaining_seconds=total,
            total_seconds=total,
            cycle_count=cycle_count,
            activity_session_id=None,
        )
        self._link_locked(previous_id)
        self._persist_locked()
        self._queue_locked()
        LOGGER.info("Phase changed %s -> %s (cycle %s)", state.phase.value, phase.value, cycle_count)
        return phase, cycle_count

    def _link_locked(self, previous_id: Optional[str]) -> None:
        self._generation += 1
        if self._pending is not None:
            self._pending.cancel()
        state = self._state
        task_id = state.task_context.task_id if state.task_context and state.phase is Phase.FOCUS else None
        self._pending = self.linker.switch(
            self._generation, previous_id, session_type_for(state.phase), task_id, self._adopt_session
        )

    def _adopt_session(self, handle: PendingSwitch, session_id: Optional[str]) -> None:
        with self._lock:
            if handle is self._pending:
                self._pending = None
            current = handle.generation == self._generation and self._state.session_active
            if not current:
                if session_id:
                    LOGGER.debug("Discarding stale tracked session %s", session_id)
                    self.linker.end(session_id)
                return
            if session_id is None:
                return
            self._state = replace(self._state, activity_session_id=session_id)
            self._persist_locked()
            self._queue_locked()
        self._flush()

    def _persist_locked(self) -> None:
        self.gateway.save(self._state)

    def _queue_locked(self) -> None:
        self._outbox.append(self._state)

    def _announce(self, announcement: Announcement) -> None:
        if announcement is not None:
            self.dispatcher.phase_started(*announcement)

    def _flush(self) -> None:
        """Deliver queued snapshots; nested calls leave delivery to the outer one."""
        with self._lock:
            if self._delivering:
                return
            self._delivering = True
        try:
            while True:
                with self._lock:
                    if not self._outbox:
                        self._delivering = False
                        return
                    snapshot = self._outbox.popleft()
                    subscribers = list(self._subscribers)
                for callback in subscribers:
                    try:
                        callback(snapshot)
                    except Exception:  # noqa: BLE001
                        LOGGER.exception("Focus timer subscriber failed")
        except BaseException:
            with self._lock:
                self._delivering = False
            raise
