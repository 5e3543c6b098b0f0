"""Excel export utilities for tracked focus sessions."""
from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

import pandas as pd

if TYPE_CHECKING:
    from focus_app.timer.storage import ActivitySession

LOGGER = logging.getLogger(__name__)

RAW_COLUMNS = ["SessionId", "Date", "Type", "TaskId", "StartTime", "EndTime", "Minutes"]


class SessionExporter:
    def __init__(self, export_path: Path):
        self.export_path = Path(export_path)
        self.export_path.parent.mkdir(parents=True, exist_ok=True)

    def export(self, sessions: Iterable[ActivitySession]) -> Path:
        """Export sessions to Excel, merging with earlier exports by session id."""
        rows = [
            (
                session.id,
                session.start_time.date(),
                session.type,
                session.task_id or "",
                session.start_time,
                session.end_time,
                round(session.duration_minutes, 2),
            )
            for session in sessions
        ]
        raw_df = pd.DataFrame(rows, columns=RAW_COLUMNS)

        if self.export_path.exists():
            try:
                existing_raw = pd.read_excel(self.export_path, sheet_name="RawData")
            except Exception:  # noqa: BLE001
                LOGGER.warning("Existing Excel file unreadable, recreating: %s", self.export_path)
            else:
                existing_raw["Date"] = pd.to_datetime(existing_raw["Date"]).dt.date
                raw_df = pd.concat([existing_raw, raw_df], ignore_index=True)
                raw_df.drop_duplicates(subset=["SessionId"], keep="last", inplace=True)

        stats_df = (
            raw_df.groupby(["Date", "Type"], as_index=False)["Minutes"]
            .sum()
            .rename(columns={"Minutes": "TotalMinutes"})
        )

        with pd.ExcelWriter(self.export_path, engine="openpyxl", mode="w") as writer:
            raw_df.to_excel(writer, sheet_name="RawData", index=False)
            stats_df.to_excel(writer, sheet_name="Stats", index=False)
            meta_df = pd.DataFrame([[datetime.now(), len(raw_df)]], columns=["ExportedAt", "RowCount"])
            meta_df.to_excel(writer, sheet_name="Meta", index=False)
        LOGGER.info("Exported %s focus sessions to %s", len(raw_df), self.export_path)
        return self.export_path
