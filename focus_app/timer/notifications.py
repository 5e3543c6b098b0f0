"""Desktop notifications and sound cues for phase changes."""
from __future__ import annotations

import importlib
import importlib.util
import logging
from pathlib import Path
from typing import Optional, Protocol, Tuple

from .models import Phase

LOGGER = logging.getLogger(__name__)


class NotificationChannel(Protocol):
    def request_permission(self) -> bool: ...

    def show(self, title: str, body: str) -> None: ...

    def play_sound(self, path: str) -> None: ...


def _load_wx():
    if importlib.util.find_spec("wx") is None:
        return None
    wx = importlib.import_module("wx")
    importlib.import_module("wx.adv")
    return wx


class WxNotificationChannel:
    """wxPython toasts and sounds, marshalled onto the GUI thread."""

    def __init__(self) -> None:
        self._wx = None

    def request_permission(self) -> bool:
        wx = _load_wx()
        if wx is None:
            LOGGER.info("wxPython not installed; desktop notifications disabled")
            return False
        if wx.GetApp() is None:
            LOGGER.info("No wx.App running; desktop notifications disabled")
            return False
        self._wx = wx
        return True

    def show(self, title: str, body: str) -> None:
        wx = self._wx
        if wx is None:
            return
        wx.CallAfter(lambda: wx.adv.NotificationMessage(title, body).Show())

    def play_sound(self, path: str) -> None:
        wx = self._wx
        if wx is None:
            return

        def _play() -> None:
            sound = wx.adv.Sound(path)
            if not sound.IsOk():
                LOGGER.warning("Sound cue %s could not be loaded", path)
                return
            sound.Play(wx.adv.SOUND_ASYNC)

        wx.CallAfter(_play)


def phase_message(phase: Phase, cycle_count: int) -> Optional[Tuple[str, str]]:
    if phase is Phase.FOCUS:
        return "Focus Time!", "Time to focus. Let's get to work!"
    if phase is Phase.SHORT_BREAK:
        return "Short Break", "Take a quick break. You earned it!"
    if phase is Phase.LONG_BREAK:
        return (
            "Long Break - Well Done!",
            f"You completed {cycle_count} focus sessions. Take a longer break!",
        )
    return None


class NotificationDispatcher:
    """Announces phase changes; every failure is logged and swallowed."""

    def __init__(self, channel: Optional[NotificationChannel] = None, sound_cue_path: Optional[str] = None) -> None:
        self.channel = channel
        self.sound_cue_path = sound_cue_path
        self._permission_requested = False
        self.permission_granted = False

    def set_sound_cue_path(self, path: Optional[str]) -> None:
        self.sound_cue_path = path or None

    def request_permission(self) -> bool:
        """Ask the channel once per process; later calls return the cached answer."""
        if self._permission_requested:
            return self.permission_granted
        self._permission_requested = True
        if self.channel is None:
            return False
        try:
            self.permission_granted = bool(self.channel.request_permission())
        except Exception:  # noqa: BLE001
            LOGGER.exception("Notification permission request failed")
            self.permission_granted = False
        return self.permission_granted

    def phase_started(self, phase: Phase, cycle_count: int) -> None:
        message = phase_message(phase, cycle_count)
        if message is None:
            return
        if self.permission_granted and self.channel is not None:
            try:
                self.channel.show(*message)
            except Exception:  # noqa: BLE001
                LOGGER.exception("Showing %s notification failed", phase.value)
        self._play_cue()

    def _play_cue(self) -> None:
        if not self.sound_cue_path or self.channel is None:
            return
        if not Path(self.sound_cue_path).exists():
            LOGGER.warning("Sound cue %s is missing", self.sound_cue_path)
            return
        try:
            self.channel.play_sound(self.sound_cue_path)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Playing sound cue %s failed", self.sound_cue_path)
