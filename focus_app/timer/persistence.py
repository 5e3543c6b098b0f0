"""Versioned persistence of the focus timer state."""
from __future__ import annotations

import logging
import sqlite3
from typing import Any, Dict, Optional, Protocol

from .models import EngineState

LOGGER = logging.getLogger(__name__)

STORAGE_KEY = "focus-timer"
SCHEMA_VERSION = 1


class RecordStore(Protocol):
    def write(self, key: str, payload: Dict[str, Any]) -> None: ...

    def read(self, key: str) -> Optional[Dict[str, Any]]: ...


def user_storage_key(base_key: str, user_id: Optional[str]) -> str:
    """Scope ``base_key`` to a user, falling back to the guest bucket."""
    return f"{base_key}-{user_id}" if user_id else f"{base_key}-guest"


class PersistenceGateway:
    """Reads and writes ``{schema_version, state}`` records for one user."""

    def __init__(
        self,
        store: RecordStore,
        user_id: Optional[str] = None,
        base_key: str = STORAGE_KEY,
        schema_version: int = SCHEMA_VERSION,
    ) -> None:
        self.store = store
        self.key = user_storage_key(base_key, user_id)
        self.schema_version = schema_version

    def save(self, state: EngineState) -> None:
        # Idle timers leave no resumable record.
        payload = {
            "schema_version": self.schema_version,
            "state": state.to_dict() if state.session_active else None,
        }
        try:
            self.store.write(self.key, payload)
        except (sqlite3.Error, OSError):
            LOGGER.exception("Unable to persist focus timer state")

    def load(self) -> Optional[EngineState]:
        """Return the persisted active session, or ``None`` to start fresh."""
        try:
            payload = self.store.read(self.key)
        except (sqlite3.Error, OSError):
            LOGGER.exception("Unable to read focus timer state")
            return None
        if not payload:
            return None
        if payload.get("schema_version") != self.schema_version:
            LOGGER.warning(
                "Focus timer schema mismatch (%s != %s); ignoring persisted state",
                payload.get("schema_version"),
                self.schema_version,
            )
            return None
        raw_state = payload.get("state")
        if not raw_state:
            return None
        try:
            state = EngineState.from_dict(raw_state)
        except (KeyError, TypeError, ValueError, AttributeError):
            LOGGER.warning("Persisted focus timer state is malformed; starting fresh")
            return None
        return state if state.session_active else None
