"""CSV adapter for feedback events."""

from __future__ import annotations

import csv
from datetime import datetime

from behavior_engine.schema import FeedbackEvent

_REQUIRED_FIELDS = {"action", "category"}


def _parse_row(row: dict, row_number: int) -> FeedbackEvent:
    missing = sorted(field for field in _REQUIRED_FIELDS if not row.get(field))
    if missing:
        raise ValueError(f"Row {row_number}: missing required fields {missing}")

    timestamp = None
    timestamp_raw = (row.get("timestamp") or "").strip()
    if timestamp_raw:
        try:
            timestamp = datetime.fromisoformat(timestamp_raw)
        except ValueError as exc:
            raise ValueError(f"Row {row_number}: malformed timestamp") from exc

    hour_raw = (row.get("hour") or "").strip()
    if hour_raw:
        try:
            hour = int(hour_raw)
        except ValueError as exc:
            raise ValueError(f"Row {row_number}: invalid hour '{hour_raw}'") from exc
    elif timestamp is not None:
        hour = timestamp.hour
    else:
        raise ValueError(f"Row {row_number}: either hour or timestamp is required")

    task_id = (row.get("task_id") or "").strip() or None

    try:
        return FeedbackEvent(
            action=row["action"].strip(),
            task_category=row["category"].strip(),
            hour_of_day=hour,
            task_id=task_id,
            timestamp=timestamp,
        )
    except ValueError as exc:
        raise ValueError(f"Row {row_number}: {exc}") from exc


def parse(file_path: str) -> list[FeedbackEvent]:
    """Parse CSV file into a list of feedback events."""

    with open(file_path, newline="", encoding="utf-8") as handle:
        reader = csv.DictReader(handle)
        if not reader.fieldnames:
            return []

        events: list[FeedbackEvent] = []
        for row_number, row in enumerate(reader, start=2):
            events.append(_parse_row(row, row_number))
        return events
