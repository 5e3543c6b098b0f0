import threading

from focus_app.timer.models import Phase, TaskContext, TimerConfig


def advance(engine, seconds):
    for _ in range(seconds):
        engine.tick()


def test_start_sets_focus_phase(engine):
    engine.start()
    state = engine.get_state()
    assert state.phase is Phase.FOCUS
    assert state.remaining_seconds == state.total_seconds == 1500
    assert state.is_running and not state.is_paused
    assert state.session_active
    assert state.cycle_count == 0
    assert state.task_context is None
    assert engine.clock.running


def test_tick_decrements_remaining(engine):
    engine.start()
    assert engine.tick() is False
    assert engine.get_state().remaining_seconds == 1499


def test_full_focus_phase_moves_to_short_break(engine):
    engine.start()
    advance(engine, 1500)
    state = engine.get_state()
    assert state.phase is Phase.SHORT_BREAK
    assert state.total_seconds == state.remaining_seconds == 5 * 60
    assert state.cycle_count == 1


def test_short_cycle_scenario(make_engine):
    engine = make_engine(TimerConfig(focus_minutes=1, short_break_minutes=1, long_break_minutes=3, long_break_every=2))
    engine.start()

    advance(engine, 60)
    assert engine.get_state().phase is Phase.SHORT_BREAK
    assert engine.get_state().cycle_count == 1

    advance(engine, 60)
    assert engine.get_state().phase is Phase.FOCUS
    assert engine.get_state().cycle_count == 1

    advance(engine, 60)
    state = engine.get_state()
    assert state.phase is Phase.LONG_BREAK
    assert state.cycle_count == 2
    assert state.total_seconds == 180


def test_pause_holds_remaining_until_resume(engine):
    engine.start()
    advance(engine, 10)
    engine.pause()
    assert not engine.clock.running
    advance(engine, 5)
    assert engine.get_state().remaining_seconds == 1490
    assert engine.get_state().is_paused

    engine.resume()
    assert engine.clock.running
    engine.tick()
    assert engine.get_state().remaining_seconds == 1489


def test_pause_twice_equals_once(engine):
    engine.start()
    assert engine.linker.drain(5)
    engine.pause()
    first = engine.get_state()
    engine.pause()
    assert engine.get_state() == first
    assert engine.clock.stops == 1


def test_resume_when_not_paused_is_noop(engine):
    engine.start()
    assert engine.linker.drain(5)
    before = engine.get_state()
    engine.resume()
    assert engine.get_state() == before
    assert engine.clock.starts == 1


def test_pause_while_idle_is_noop(engine):
    engine.pause()
    assert engine.get_state().phase is Phase.IDLE
    assert not engine.get_state().is_paused


def test_skip_forces_transition(engine):
    engine.start()
    advance(engine, 3)
    assert engine.tick() is False
    engine.skip()
    state = engine.get_state()
    assert state.phase is Phase.SHORT_BREAK
    assert state.cycle_count == 1
    engine.skip()
    assert engine.get_state().phase is Phase.FOCUS
    assert engine.get_state().remaining_seconds == 1500


def test_skip_without_session_is_noop(engine):
    engine.skip()
    assert engine.get_state().phase is Phase.IDLE


def test_stop_resets_from_any_phase(engine):
    engine.start_with_task(TaskContext(task_id="t1", task_title="Write"))
    engine.set_session_goal("draft")
    engine.skip()
    engine.linker.drain(5)
    engine.stop()
    state = engine.get_state()
    assert state.phase is Phase.IDLE
    assert not state.session_active
    assert state.task_context is None
    assert state.activity_session_id is None
    assert state.session_goal is None
    assert state.cycle_count == 0
    assert not engine.clock.running


def test_start_overwrites_active_session(engine):
    engine.start_with_task(TaskContext(task_id="t1", task_title="Write"))
    engine.skip()
    engine.start()
    state = engine.get_state()
    assert state.phase is Phase.FOCUS
    assert state.cycle_count == 0
    assert state.task_context is None


def test_start_merges_config_override(engine):
    engine.start(focus_minutes=50)
    state = engine.get_state()
    assert state.config.focus_minutes == 50
    assert state.config.short_break_minutes == 5
    assert state.total_seconds == 3000


def test_set_config_applies_from_next_phase(engine):
    engine.start()
    advance(engine, 100)
    engine.set_config(focus_minutes=10, short_break_minutes=2)
    state = engine.get_state()
    assert state.total_seconds == 1500
    assert state.remaining_seconds == 1400
    engine.skip()
    assert engine.get_state().total_seconds == 120
    engine.skip()
    assert engine.get_state().total_seconds == 600


def test_session_goal_requires_active_session(engine):
    engine.set_session_goal("ignored")
    assert engine.get_state().session_goal is None
    engine.start()
    engine.set_session_goal("ship it")
    assert engine.get_state().session_goal == "ship it"
    engine.set_session_goal(None)
    assert engine.get_state().session_goal is None


def test_subscribers_receive_snapshots_and_unsubscribe(engine):
    seen = []
    unsubscribe = engine.subscribe(seen.append)
    engine.start()
    assert engine.linker.drain(5)
    engine.tick()
    assert seen[0].remaining_seconds == 1500
    assert seen[-1].remaining_seconds == 1499
    unsubscribe()
    count = len(seen)
    engine.tick()
    assert len(seen) == count


def test_subscriber_calling_action_is_queued(engine):
    order = []

    def on_change(state):
        order.append(state.is_paused)
        if not state.is_paused and state.remaining_seconds == 1499:
            engine.pause()

    engine.start()
    assert engine.linker.drain(5)
    engine.subscribe(on_change)
    engine.tick()
    assert order == [False, True]
    assert engine.get_state().is_paused


def test_failing_subscriber_does_not_break_engine(engine):
    def broken(_state):
        raise RuntimeError("boom")

    seen = []
    engine.subscribe(broken)
    engine.subscribe(seen.append)
    engine.start()
    assert seen and seen[-1].phase is Phase.FOCUS


def test_tracked_sessions_follow_phases(engine, tracker):
    engine.start_with_task(TaskContext(task_id="t9", task_title="Review"))
    assert engine.linker.drain(5)
    assert engine.get_state().activity_session_id == "s1"
    assert tracker.started[0] == ("s1", "focus", "t9")

    engine.skip()
    assert engine.linker.drain(5)
    assert tracker.ended == ["s1"]
    assert tracker.started[1] == ("s2", "break", None)
    assert engine.get_state().activity_session_id == "s2"

    engine.stop()
    assert engine.linker.drain(5)
    assert tracker.ended == ["s1", "s2"]


def test_tracker_unavailable_keeps_timer_running(make_engine, offline_tracker):
    engine = make_engine(tracker_override=offline_tracker)
    engine.start()
    assert engine.linker.drain(5)
    engine.tick()
    state = engine.get_state()
    assert state.activity_session_id is None
    assert state.remaining_seconds == 1499


def test_no_tracker_configured(make_engine):
    engine = make_engine(tracker_override=None)
    engine.start()
    assert engine.linker.drain(5)
    assert engine.get_state().activity_session_id is None
    engine.skip()
    assert engine.get_state().phase is Phase.SHORT_BREAK


def test_stop_during_inflight_transition_discards_result(engine, tracker):
    engine.start()
    assert engine.linker.drain(5)
    tracker.gate = threading.Event()
    engine.skip()
    engine.stop()
    tracker.gate.set()
    assert engine.linker.drain(5)
    state = engine.get_state()
    assert state.phase is Phase.IDLE
    assert state.activity_session_id is None
    started_ids = {session_id for session_id, _type, _task in tracker.started}
    assert started_ids <= set(tracker.ended)


def test_superseded_transition_result_is_dropped(engine, tracker):
    engine.start()
    assert engine.linker.drain(5)
    tracker.gate = threading.Event()
    engine.skip()
    engine.skip()
    tracker.gate.set()
    assert engine.linker.drain(5)
    state = engine.get_state()
    assert state.phase is Phase.FOCUS
    latest = tracker.started[-1]
    assert latest[1] == "focus"
    assert state.activity_session_id == latest[0]
    open_ids = {s for s, _t, _k in tracker.started} - set(tracker.ended)
    assert open_ids == {state.activity_session_id}


def test_phase_change_triggers_notification(engine, channel):
    engine.start()
    assert channel.permission_requests == 1
    engine.skip()
    assert channel.shown[-1][0] == "Short Break"
    engine.start()
    assert channel.permission_requests == 1


def test_generation_increases_on_transitions(engine):
    engine.start()
    first = engine.generation
    engine.skip()
    assert engine.generation > first
    second = engine.generation
    engine.stop()
    assert engine.generation > second
