"""Pure phase scheduling rules."""
from __future__ import annotations

from .models import Phase, TimerConfig


def next_phase(current: Phase, cycle_count: int, config: TimerConfig) -> Phase:
    """Return the phase that follows ``current``.

    A focus phase is followed by a long break every ``long_break_every``
    completed focus phases and by a short break otherwise; breaks (and idle)
    always lead back to focus.
    """
    if current is Phase.FOCUS:
        completed = cycle_count + 1
        if completed % config.long_break_every == 0:
            return Phase.LONG_BREAK
        return Phase.SHORT_BREAK
    return Phase.FOCUS


def duration_for(phase: Phase, config: TimerConfig) -> int:
    if phase is Phase.FOCUS:
        return config.focus_minutes * 60
    if phase is Phase.SHORT_BREAK:
        return config.short_break_minutes * 60
    if phase is Phase.LONG_BREAK:
        return config.long_break_minutes * 60
    return 0
