"""Aggregate usage patterns learned from completed tasks."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


def weekday_number(moment: datetime) -> int:
    """Day of week counted 1 = Sunday through 7 = Saturday."""

    return moment.isoweekday() % 7 + 1


def _time_of_day(hour: int) -> str:
    if 5 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 21:
        return "evening"
    return "anytime"


@dataclass
class UserPatterns:
    """Category usage and timing, keyed by lowercased category name.

    Day patterns are keyed ``"<category>_<weekday>"`` with 1 = Sunday.
    """

    category_usage: dict[str, int] = field(default_factory=dict)
    category_time_patterns: dict[str, int] = field(default_factory=dict)
    category_day_patterns: dict[str, int] = field(default_factory=dict)
    average_durations: dict[str, int] = field(default_factory=dict)
    category_priority_patterns: dict[str, str] = field(default_factory=dict)
    last_updated: Optional[datetime] = None

    def record_completion(
        self,
        category: str,
        priority: str,
        duration: Optional[int] = None,
        completed_at: Optional[datetime] = None,
    ) -> None:
        completed_at = completed_at or datetime.now()
        key = category.lower()

        self.category_usage[key] = self.category_usage.get(key, 0) + 1
        time_key = f"{key}_{completed_at.hour}"
        self.category_time_patterns[time_key] = self.category_time_patterns.get(time_key, 0) + 1
        day_key = f"{key}_{weekday_number(completed_at)}"
        self.category_day_patterns[day_key] = self.category_day_patterns.get(day_key, 0) + 1
        self.category_priority_patterns[key] = priority

        if duration is not None and duration > 0:
            existing = self.average_durations.get(key, duration)
            self.average_durations[key] = (existing + duration) // 2

        self.last_updated = completed_at

    def preferred_time(self, keyword: str) -> Optional[str]:
        """Time of day most ``keyword`` completions happen in, given at least 3."""

        prefix = f"{keyword.lower()}_"
        by_hour = {}
        for key, count in self.category_time_patterns.items():
            if not key.startswith(prefix):
                continue
            suffix = key[len(prefix):]
            if suffix.isdigit():
                by_hour[int(suffix)] = count

        if not by_hour:
            return None
        hour, count = max(by_hour.items(), key=lambda item: (item[1], -item[0]))
        if count < 3:
            return None
        return _time_of_day(hour)

    def top_categories(self, limit: int = 5) -> list[str]:
        ranked = sorted(self.category_usage.items(), key=lambda item: (-item[1], item[0]))
        return [name for name, _ in ranked[:limit]]

    def average_duration(self, category: str) -> Optional[int]:
        return self.average_durations.get(category.lower())

    def to_dict(self) -> dict:
        return {
            "category_usage": dict(self.category_usage),
            "category_time_patterns": dict(self.category_time_patterns),
            "category_day_patterns": dict(self.category_day_patterns),
            "average_durations": dict(self.average_durations),
            "category_priority_patterns": dict(self.category_priority_patterns),
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }

    @classmethod
    def from_dict(cls, payload: dict) -> "UserPatterns":
        last = payload.get("last_updated")
        return cls(
            category_usage=dict(payload.get("category_usage", {})),
            category_time_patterns=dict(payload.get("category_time_patterns", {})),
            category_day_patterns=dict(payload.get("category_day_patterns", {})),
            average_durations=dict(payload.get("average_durations", {})),
            category_priority_patterns=dict(payload.get("category_priority_patterns", {})),
            last_updated=datetime.fromisoformat(last) if last else None,
        )
