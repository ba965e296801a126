"""Completion counts per (category, hour), keyed ``"<category>_<hour>"``."""

from __future__ import annotations

import numbers
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from behavior_engine.schema import TaskCategory

_KEY_PATTERN = re.compile(r"([A-Za-z]+|\d+)_(\d+)")


def parse_category_hour_key(key) -> Optional[tuple[TaskCategory, int]]:
    """Split a ``"1_9"`` / ``"work_9"`` key; ``None`` for anything malformed."""

    if not isinstance(key, str):
        return None
    match = _KEY_PATTERN.fullmatch(key)
    if match is None:
        return None
    category = TaskCategory.parse(match.group(1))
    hour = int(match.group(2))
    if category is None or not 0 <= hour <= 23:
        return None
    return category, hour


@dataclass
class CompletionPatterns:
    """Read-only input to signal extraction, maintained by task completion."""

    category_time_patterns: dict[str, int] = field(default_factory=dict)

    def record_completion(self, category: TaskCategory, completed_at: Optional[datetime] = None) -> None:
        hour = (completed_at or datetime.now()).hour
        key = f"{int(category)}_{hour}"
        self.category_time_patterns[key] = self.category_time_patterns.get(key, 0) + 1

    def parsed(self) -> list[tuple[TaskCategory, int, int]]:
        """Valid ``(category, hour, count)`` entries; malformed ones are dropped."""

        return parse_patterns(self.category_time_patterns)


def parse_patterns(patterns: Mapping) -> list[tuple[TaskCategory, int, int]]:
    entries = []
    for key, count in patterns.items():
        parsed = parse_category_hour_key(key)
        if parsed is None:
            continue
        if isinstance(count, bool) or not isinstance(count, numbers.Integral):
            continue
        entries.append((parsed[0], parsed[1], int(count)))
    return entries
