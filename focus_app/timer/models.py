"""Data models for the focus timer."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional


class Phase(str, Enum):
    IDLE = "idle"
    FOCUS = "focus"
    SHORT_BREAK = "shortBreak"
    LONG_BREAK = "longBreak"

    @property
    def is_break(self) -> bool:
        return self in (Phase.SHORT_BREAK, Phase.LONG_BREAK)


@dataclass(frozen=True)
class TimerConfig:
    """Phase durations in minutes plus the long-break modulus."""

    focus_minutes: int = 25
    short_break_minutes: int = 5
    long_break_minutes: int = 15
    long_break_every: int = 4

    def __post_init__(self) -> None:
        for name in ("focus_minutes", "short_break_minutes", "long_break_minutes", "long_break_every"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")

    def merged(self, **changes: int) -> "TimerConfig":
        """Return a copy with ``changes`` applied; ``None`` values are ignored."""
        updates = {key: value for key, value in changes.items() if value is not None}
        return replace(self, **updates) if updates else self

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TimerConfig":
        return cls(
            focus_minutes=data["focus_minutes"],
            short_break_minutes=data["short_break_minutes"],
            long_break_minutes=data["long_break_minutes"],
            long_break_every=data["long_break_every"],
        )


@dataclass(frozen=True)
class TaskContext:
    """Descriptive link between a focus session and an external work item."""

    task_id: str
    task_title: str
    project_name: Optional[str] = None
    step_title: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskContext":
        return cls(
            task_id=str(data["task_id"]),
            task_title=str(data["task_title"]),
            project_name=data.get("project_name"),
            step_title=data.get("step_title"),
        )


def _bool_field(data: Dict[str, Any], key: str) -> bool:
    value = data[key]
    if not isinstance(value, bool):
        raise TypeError(f"{key} must be a boolean, got {value!r}")
    return value


def _int_field(data: Dict[str, Any], key: str) -> int:
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{key} must be an integer, got {value!r}")
    return value


@dataclass(frozen=True)
class EngineState:
    """Immutable snapshot of the timer; the engine swaps in a new one per mutation."""

    phase: Phase = Phase.IDLE
    remaining_seconds: int = 0
    total_seconds: int = 0
    is_running: bool = False
    is_paused: bool = False
    cycle_count: int = 0
    config: TimerConfig = field(default_factory=TimerConfig)
    session_active: bool = False
    task_context: Optional[TaskContext] = None
    activity_session_id: Optional[str] = None
    session_goal: Optional[str] = None

    @property
    def formatted_remaining(self) -> str:
        minutes, seconds = divmod(max(self.remaining_seconds, 0), 60)
        return f"{minutes:02d}:{seconds:02d}"

    @property
    def progress(self) -> float:
        if not self.total_seconds:
            return 0.0
        return 1.0 - (self.remaining_seconds / self.total_seconds)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["phase"] = self.phase.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineState":
        """Rebuild a state from its persisted form.

        Raises ``KeyError``, ``TypeError`` or ``ValueError`` on malformed input so
        callers can treat the record as unusable.
        """
        task = data.get("task_context")
        state = cls(
            phase=Phase(data["phase"]),
            remaining_seconds=_int_field(data, "remaining_seconds"),
            total_seconds=_int_field(data, "total_seconds"),
            is_running=_bool_field(data, "is_running"),
            is_paused=_bool_field(data, "is_paused"),
            cycle_count=_int_field(data, "cycle_count"),
            config=TimerConfig.from_dict(data["config"]),
            session_active=_bool_field(data, "session_active"),
            task_context=TaskContext.from_dict(task) if task else None,
            activity_session_id=data.get("activity_session_id"),
            session_goal=data.get("session_goal"),
        )
        if not 0 <= state.remaining_seconds <= state.total_seconds:
            raise ValueError("remaining_seconds out of range")
        if state.session_active == (state.phase is Phase.IDLE):
            raise ValueError("session_active does not match phase")
        if state.is_paused and not state.is_running:
            raise ValueError("paused state must be running")
        # set_config() leaves the running phase's length alone, so a total that
        # differs from the stored config is legitimate; only its bounds are checked.
        if state.phase is Phase.IDLE:
            if state.total_seconds != 0:
                raise ValueError("idle state must have no duration")
        elif state.total_seconds <= 0 or state.cycle_count < 0:
            raise ValueError("active phase needs a positive duration")
        return state


@dataclass(frozen=True)
class TrackingResult:
    """Outcome of an Activity Tracking Service call."""

    ok: bool
    session_id: Optional[str] = None
    error: str = ""
