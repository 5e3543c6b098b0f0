from datetime import date

from focus_app.timer.controllers import AppController, ConfigManager, build_engine
from focus_app.timer.models import Phase, TaskContext
from focus_app.timer.storage import ActivityStore

from conftest import ManualClock


class DummyExporter:
    def __init__(self) -> None:
        self.exported = None

    def export(self, sessions):
        self.exported = list(sessions)
        return "sessions.xlsx"


def _controller(tmp_path):
    config_manager = ConfigManager(tmp_path / "cfg")
    config_manager.config.notifications_enabled = False
    db = tmp_path / "data.db"
    store = ActivityStore(db, user_id="me")
    engine = build_engine(config_manager.config, db, activity_store=store, clock=ManualClock())
    return AppController(engine, store, DummyExporter(), config_manager)


def test_start_focus_with_task_and_goal(tmp_path):
    controller = _controller(tmp_path)
    try:
        controller.start_focus(TaskContext(task_id="t1", task_title="Write"), goal="outline")
        assert controller.engine.linker.drain(5)
        state = controller.engine.get_state()
        assert state.phase is Phase.FOCUS
        assert state.task_context.task_id == "t1"
        assert state.session_goal == "outline"
        sessions = controller.activity_summary(date.today(), date.today())
        assert [s.type for s in sessions] == ["focus"]
        assert sessions[0].id == state.activity_session_id
    finally:
        controller.engine.shutdown()


def test_resume_or_start(tmp_path):
    controller = _controller(tmp_path)
    try:
        assert controller.resume_or_start() is False
        controller.engine.tick()
        assert controller.engine.linker.drain(5)
    finally:
        controller.engine.shutdown()

    again = _controller(tmp_path)
    try:
        assert again.resume_or_start() is True
        assert again.engine.get_state().remaining_seconds == 1499
    finally:
        again.engine.shutdown()


def test_save_timer_config_writes_toml(tmp_path):
    controller = _controller(tmp_path)
    try:
        controller.save_timer_config(focus_minutes=45, long_break_every=2)
        assert controller.engine.get_state().config.focus_minutes == 45
        reloaded = ConfigManager(tmp_path / "cfg").config
        assert reloaded.focus_minutes == 45
        assert reloaded.long_break_every == 2
    finally:
        controller.engine.shutdown()


def test_export_and_completion(tmp_path):
    controller = _controller(tmp_path)
    try:
        controller.start_focus()
        assert controller.engine.linker.drain(5)
        controller.engine.skip()
        assert controller.engine.linker.drain(5)
        controller.complete_task("t1", duration=1500)
        assert controller.export_sessions(date.today(), date.today()) == "sessions.xlsx"
        assert [s.type for s in controller.exporter.exported] == ["focus", "break"]
        assert controller.activity_store.count_task_completions("t1") == 1
    finally:
        controller.engine.shutdown()


def test_backup_data_deduplicates_shared_database(tmp_path):
    controller = _controller(tmp_path)
    try:
        backups = controller.backup_data()
        assert len(backups) == 1
        assert backups[0].exists()
    finally:
        controller.engine.shutdown()


def test_forced_start_closes_restored_tracked_session(tmp_path):
    controller = _controller(tmp_path)
    try:
        controller.start_focus()
        assert controller.engine.linker.drain(5)
        first_id = controller.engine.get_state().activity_session_id
        assert first_id
    finally:
        controller.engine.shutdown()

    again = _controller(tmp_path)
    try:
        assert again.resume_or_start(TaskContext(task_id="t2", task_title="Edit"), fresh=True) is False
        assert again.engine.linker.drain(5)
        state = again.engine.get_state()
        assert state.task_context.task_id == "t2"
        assert state.activity_session_id != first_id
        again.engine.stop()
        assert again.engine.linker.drain(5)
        sessions = again.activity_summary(date.today(), date.today())
        assert len(sessions) == 2
        assert all(s.end_time is not None for s in sessions)
    finally:
        again.engine.shutdown()
