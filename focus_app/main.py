"""Application entry point for the Focus Timer."""
from __future__ import annotations

import argparse
import logging
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Sequence

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from focus_app.timer import __version__
from focus_app.timer.controllers import CONFIG_DIR, AppController, ConfigManager, build_engine
from focus_app.timer.models import EngineState, Phase, TaskContext
from focus_app.timer.storage import ActivityStore
from reports.excel_export import SessionExporter

LOG_DIR = CONFIG_DIR / "logs"
LOG_FILE = LOG_DIR / "app.log"
DB_PATH = CONFIG_DIR / "data.db"

LOGGER = logging.getLogger(__name__)


def configure_logging(level: int = logging.INFO) -> None:
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(LOG_FILE, maxBytes=1024 * 1024, backupCount=3)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[handler, logging.StreamHandler()],
    )
    logging.info("Focus Timer v%s starting", __version__)


def build_controller(config_manager: ConfigManager, db_path: Path = DB_PATH) -> AppController:
    config = config_manager.config
    activity_store = ActivityStore(db_path, user_id=config.user_id or "guest")
    engine = build_engine(config, db_path, activity_store=activity_store)
    exporter = SessionExporter(Path(config.export_path))
    return AppController(engine, activity_store, exporter, config_manager)


def _log_state(state: EngineState) -> None:
    if state.remaining_seconds % 60 == 0 or state.phase is Phase.IDLE:
        LOGGER.info("%s %s (cycle %s)", state.phase.value, state.formatted_remaining, state.cycle_count)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a Pomodoro focus session.")
    parser.add_argument("--task-id", help="Attach the session to this task id")
    parser.add_argument("--task-title", default="", help="Title of the attached task")
    parser.add_argument("--goal", help="Free-text goal for the session")
    parser.add_argument("--fresh", action="store_true", help="Ignore any persisted session")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    configure_logging(logging.DEBUG if args.debug else logging.INFO)
    config_manager = ConfigManager()
    controller = build_controller(config_manager)
    engine = controller.engine
    engine.subscribe(_log_state)

    task = TaskContext(task_id=args.task_id, task_title=args.task_title or args.task_id) if args.task_id else None
    if controller.resume_or_start(task, goal=args.goal, fresh=args.fresh):
        LOGGER.info("Resumed the previous focus session")

    done = threading.Event()
    engine.subscribe(lambda state: None if state.session_active else done.set())
    try:
        while not done.wait(1):
            pass
    except KeyboardInterrupt:
        LOGGER.info("Interrupted; session kept for the next launch")
    finally:
        engine.shutdown()


if __name__ == "__main__":
    main()
