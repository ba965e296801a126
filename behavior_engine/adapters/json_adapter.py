"""JSON adapters for feedback events and completion patterns."""

from __future__ import annotations

import json
from datetime import datetime

from behavior_engine.schema import FeedbackEvent

_REQUIRED_FIELDS = {"action", "category"}


def _parse_item(item, index: int) -> FeedbackEvent:
    if not isinstance(item, dict):
        raise ValueError(f"Item {index}: expected an object")

    missing = sorted(field for field in _REQUIRED_FIELDS if item.get(field) in (None, ""))
    if missing:
        raise ValueError(f"Item {index}: missing required fields {missing}")

    timestamp = None
    if item.get("timestamp"):
        try:
            timestamp = datetime.fromisoformat(str(item["timestamp"]))
        except ValueError as exc:
            raise ValueError(f"Item {index}: malformed timestamp") from exc

    hour = item.get("hour")
    if hour is None:
        if timestamp is None:
            raise ValueError(f"Item {index}: either hour or timestamp is required")
        hour = timestamp.hour

    category = item["category"]
    task_id = item.get("task_id")

    try:
        return FeedbackEvent(
            action=str(item["action"]).strip(),
            task_category=category.strip() if isinstance(category, str) else category,
            hour_of_day=hour,
            task_id=str(task_id).strip() if task_id is not None else None,
            timestamp=timestamp,
        )
    except ValueError as exc:
        raise ValueError(f"Item {index}: {exc}") from exc


def parse(file_path: str) -> list[FeedbackEvent]:
    """Parse JSON file into feedback events."""

    with open(file_path, encoding="utf-8") as handle:
        payload = json.load(handle)

    if not isinstance(payload, list):
        raise ValueError("JSON payload must be a list of objects")

    return [_parse_item(item, i) for i, item in enumerate(payload, start=1)]


def parse_completion_patterns(file_path: str) -> dict[str, int]:
    """Load a ``{"<category>_<hour>": count}`` object.

    Keys and counts are passed through untouched; signal extraction drops
    whatever it cannot use.
    """

    with open(file_path, encoding="utf-8") as handle:
        payload = json.load(handle)

    if not isinstance(payload, dict):
        raise ValueError("Completion patterns must be a JSON object")
    return payload
