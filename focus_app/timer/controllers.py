"""Configuration and wiring for the focus timer."""
from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional

from . import __version__
from .clock import Clock
from .engine import FocusTimerEngine
from .models import TaskContext, TimerConfig
from .notifications import NotificationDispatcher, WxNotificationChannel
from .persistence import PersistenceGateway
from .storage import ActivitySession, ActivityStore, KeyValueStore
from .tracking import SessionLinker

if TYPE_CHECKING:
    from reports.excel_export import SessionExporter

LOGGER = logging.getLogger(__name__)


CONFIG_DIR = Path.home() / ".focus_shell"
CONFIG_FILE_NAME = "config.toml"
DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "default_config.toml"

_DEFAULTS = TimerConfig()

_TOML_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\b": "\\b",
    "\t": "\\t",
    "\n": "\\n",
    "\f": "\\f",
    "\r": "\\r",
}


def _toml_string(value: Optional[str]) -> str:
    """Quote ``value`` as a TOML basic string."""
    chars = []
    for char in value or "":
        if char in _TOML_ESCAPES:
            chars.append(_TOML_ESCAPES[char])
        elif ord(char) < 0x20 or ord(char) == 0x7F:
            chars.append(f"\\u{ord(char):04X}")
        else:
            chars.append(char)
    return '"' + "".join(chars) + '"'


def _positive_int(value, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


@dataclass
class AppConfig:
    focus_minutes: int = _DEFAULTS.focus_minutes
    short_break_minutes: int = _DEFAULTS.short_break_minutes
    long_break_minutes: int = _DEFAULTS.long_break_minutes
    long_break_every: int = _DEFAULTS.long_break_every
    sound_cue_path: Optional[str] = None
    user_id: Optional[str] = None
    export_path: str = "focus_sessions.xlsx"
    notifications_enabled: bool = True

    @classmethod
    def from_toml(cls, data: dict) -> "AppConfig":
        return cls(
            focus_minutes=_positive_int(data.get("focus_minutes"), _DEFAULTS.focus_minutes),
            short_break_minutes=_positive_int(data.get("short_break_minutes"), _DEFAULTS.short_break_minutes),
            long_break_minutes=_positive_int(data.get("long_break_minutes"), _DEFAULTS.long_break_minutes),
            long_break_every=_positive_int(data.get("long_break_every"), _DEFAULTS.long_break_every),
            sound_cue_path=data.get("sound_cue_path") or None,
            user_id=data.get("user_id") or None,
            export_path=data.get("export_path", "focus_sessions.xlsx"),
            notifications_enabled=bool(data.get("notifications_enabled", True)),
        )

    def to_toml(self) -> str:
        lines = [
            f"focus_minutes = {self.focus_minutes}",
            f"short_break_minutes = {self.short_break_minutes}",
            f"long_break_minutes = {self.long_break_minutes}",
            f"long_break_every = {self.long_break_every}",
            f"sound_cue_path = {_toml_string(self.sound_cue_path)}",
            f"user_id = {_toml_string(self.user_id)}",
            f"export_path = {_toml_string(self.export_path)}",
            f"notifications_enabled = {str(bool(self.notifications_enabled)).lower()}",
        ]
        return "\n".join(lines) + "\n"

    def timer_config(self) -> TimerConfig:
        return TimerConfig(
            focus_minutes=self.focus_minutes,
            short_break_minutes=self.short_break_minutes,
            long_break_minutes=self.long_break_minutes,
            long_break_every=self.long_break_every,
        )


class ConfigManager:
    def __init__(self, config_dir: Path = CONFIG_DIR) -> None:
        self.config_dir = Path(config_dir)
        self.config_file = self.config_dir / CONFIG_FILE_NAME
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.config = self._load()

    def _load(self) -> AppConfig:
        if self.config_file.exists():
            try:
                with open(self.config_file, "rb") as fh:
                    return AppConfig.from_toml(tomllib.load(fh))
            except tomllib.TOMLDecodeError:
                # The broken file stays on disk untouched.
                LOGGER.exception("Config file %s is invalid; using defaults", self.config_file)
                return self._defaults()
        config = self._defaults()
        self.save(config)
        return config

    @staticmethod
    def _defaults() -> AppConfig:
        with open(DEFAULT_CONFIG_PATH, "rb") as fh:
            return AppConfig.from_toml(tomllib.load(fh))

    def save(self, config: Optional[AppConfig] = None) -> None:
        cfg = config or self.config
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.config_file.write_text(cfg.to_toml(), encoding="utf-8")
        LOGGER.info("Saved configuration to %s", self.config_file)


def build_engine(
    config: AppConfig,
    db_path: Path,
    activity_store: Optional[ActivityStore] = None,
    clock: Optional[Clock] = None,
) -> FocusTimerEngine:
    """Create the process-wide engine; call once at start-up."""
    gateway = PersistenceGateway(KeyValueStore(db_path), user_id=config.user_id)
    channel = WxNotificationChannel() if config.notifications_enabled else None
    dispatcher = NotificationDispatcher(channel, sound_cue_path=config.sound_cue_path)
    engine = FocusTimerEngine(
        gateway,
        linker=SessionLinker(activity_store),
        dispatcher=dispatcher,
        clock=clock,
        config=config.timer_config(),
    )
    LOGGER.info("Focus timer engine v%s ready", __version__)
    return engine


class AppController:
    def __init__(
        self,
        engine: FocusTimerEngine,
        activity_store: ActivityStore,
        exporter: SessionExporter,
        config_manager: ConfigManager,
    ) -> None:
        self.engine = engine
        self.activity_store = activity_store
        self.exporter = exporter
        self.config_manager = config_manager

    # Timer operations
    def start_focus(self, task: Optional[TaskContext] = None, goal: Optional[str] = None) -> None:
        if task is None:
            self.engine.start()
        else:
            self.engine.start_with_task(task)
        if goal:
            self.engine.set_session_goal(goal)

    def resume_or_start(
        self, task: Optional[TaskContext] = None, goal: Optional[str] = None, fresh: bool = False
    ) -> bool:
        """Restore a persisted session; start a new one when none exists.

        The persisted session is always adopted first, so a forced start
        (``fresh`` or a ``task``) replaces it and closes its tracked activity.
        Returns ``True`` when the restored session is kept.
        """
        restored = self.engine.restore()
        if restored and not fresh and task is None:
            return True
        self.start_focus(task, goal=goal)
        return False

    def save_timer_config(self, **changes: int) -> None:
        self.engine.set_config(**changes)
        timer_config = self.engine.get_state().config
        cfg = self.config_manager.config
        cfg.focus_minutes = timer_config.focus_minutes
        cfg.short_break_minutes = timer_config.short_break_minutes
        cfg.long_break_minutes = timer_config.long_break_minutes
        cfg.long_break_every = timer_config.long_break_every
        self.config_manager.save(cfg)

    def set_sound_cue(self, path: Optional[str]) -> None:
        self.engine.dispatcher.set_sound_cue_path(path)
        cfg = self.config_manager.config
        cfg.sound_cue_path = path or None
        self.config_manager.save(cfg)

    def complete_task(self, task_id: str, duration: Optional[int] = None) -> None:
        self.activity_store.record_task_completion(task_id, duration)

    def clear_activity(self, after: Optional[date] = None) -> int:
        return self.activity_store.clear_sessions(after)

    # Data retrieval
    def activity_summary(self, start_date: date, end_date: date) -> List[ActivitySession]:
        return self.activity_store.get_summary(start_date, end_date)

    def export_sessions(self, start_date: date, end_date: date) -> Path:
        return self.exporter.export(self.activity_summary(start_date, end_date))

    def backup_data(self) -> List[Path]:
        stores = {store.db_path: store for store in (self.engine.gateway.store, self.activity_store)}
        return [store.backup() for store in stores.values()]
