"""Core data schema for suggestion feedback."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum, IntEnum
from typing import Optional


class TaskCategory(IntEnum):
    """Built-in task categories. The integer value is the category identifier."""

    UNCATEGORIZED = 0
    WORK = 1
    PERSONAL = 2
    HEALTH = 3
    FINANCE = 4
    SHOPPING = 5
    ERRANDS = 6
    LEARNING = 7
    HOME = 8

    @property
    def display_name(self) -> str:
        return self.name.capitalize()

    @classmethod
    def parse(cls, token) -> Optional["TaskCategory"]:
        """Resolve a code (``1``, ``"1"``) or a name (``"work"``); ``None`` if unknown."""

        if isinstance(token, cls):
            return token
        if isinstance(token, bool):
            return None
        if isinstance(token, int):
            return cls._value2member_map_.get(token)
        if not isinstance(token, str):
            return None
        text = token.strip()
        if text.isdigit():
            return cls._value2member_map_.get(int(text))
        return cls.__members__.get(text.upper())


class FeedbackAction(str, Enum):
    """What the user did with a presented suggestion."""

    STARTED_IMMEDIATELY = "startedImmediately"
    VIEWED_DETAILS = "viewedDetails"
    SNOOZED_1_HOUR = "snoozed1Hour"
    SNOOZED_EVENING = "snoozedEvening"
    SNOOZED_TOMORROW = "snoozedTomorrow"
    SKIPPED_NOT_RELEVANT = "skippedNotRelevant"
    SKIPPED_WRONG_TIME = "skippedWrongTime"
    SKIPPED_NEEDS_FOCUS = "skippedNeedsFocus"

    @property
    def is_positive(self) -> bool:
        return self in (FeedbackAction.STARTED_IMMEDIATELY, FeedbackAction.VIEWED_DETAILS)

    @property
    def is_snooze(self) -> bool:
        return self in (
            FeedbackAction.SNOOZED_1_HOUR,
            FeedbackAction.SNOOZED_EVENING,
            FeedbackAction.SNOOZED_TOMORROW,
        )

    @property
    def is_skip(self) -> bool:
        return self in (
            FeedbackAction.SKIPPED_NOT_RELEVANT,
            FeedbackAction.SKIPPED_WRONG_TIME,
            FeedbackAction.SKIPPED_NEEDS_FOCUS,
        )

    @property
    def affinity_delta(self) -> int:
        """Net engagement contribution used by category affinity."""

        if self is FeedbackAction.STARTED_IMMEDIATELY:
            return 2
        if self is FeedbackAction.VIEWED_DETAILS:
            return 1
        if self.is_snooze:
            return -1
        return -2

    @property
    def adjustment_delta(self) -> float:
        """Per-task score adjustment applied when this action is recorded."""

        return _ADJUSTMENT_DELTAS[self]

    def snooze_until(self, now: datetime) -> Optional[datetime]:
        """When suppression ends for a snooze action; ``None`` for the rest.

        Evening means 18:00 today, or tomorrow once that has passed. Tomorrow
        means 09:00 on the next day.
        """

        if self is FeedbackAction.SNOOZED_1_HOUR:
            return now + timedelta(hours=1)
        if self is FeedbackAction.SNOOZED_EVENING:
            evening = now.replace(hour=18, minute=0, second=0, microsecond=0)
            if evening > now:
                return evening
            return evening + timedelta(days=1)
        if self is FeedbackAction.SNOOZED_TOMORROW:
            return now.replace(hour=9, minute=0, second=0, microsecond=0) + timedelta(days=1)
        return None


_ADJUSTMENT_DELTAS = {
    FeedbackAction.STARTED_IMMEDIATELY: 5.0,
    FeedbackAction.VIEWED_DETAILS: 1.0,
    FeedbackAction.SNOOZED_1_HOUR: -2.0,
    FeedbackAction.SNOOZED_EVENING: -3.0,
    FeedbackAction.SNOOZED_TOMORROW: -3.0,
    FeedbackAction.SKIPPED_NOT_RELEVANT: -5.0,
    FeedbackAction.SKIPPED_WRONG_TIME: -5.0,
    FeedbackAction.SKIPPED_NEEDS_FOCUS: -5.0,
}


class TimeBucket(str, Enum):
    """Day segment derived from an hour of day."""

    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    NIGHT = "night"

    @classmethod
    def from_hour(cls, hour: int) -> "TimeBucket":
        if 5 <= hour < 12:
            return cls.MORNING
        if 12 <= hour < 17:
            return cls.AFTERNOON
        if 17 <= hour < 21:
            return cls.EVENING
        return cls.NIGHT

    @property
    def index(self) -> int:
        """Position in the canonical morning, afternoon, evening, night order."""

        return _BUCKET_ORDER.index(self)


_BUCKET_ORDER = list(TimeBucket)


@dataclass(frozen=True)
class FeedbackEvent:
    """One interaction with a presented suggestion."""

    action: FeedbackAction
    task_category: TaskCategory
    hour_of_day: int
    task_id: Optional[str] = None
    timestamp: Optional[datetime] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        try:
            action = FeedbackAction(self.action)
        except ValueError as exc:
            raise ValueError(f"invalid action '{self.action}'") from exc

        category = TaskCategory.parse(self.task_category)
        if category is None:
            raise ValueError(f"invalid task category '{self.task_category}'")

        hour = self.hour_of_day
        if isinstance(hour, bool) or not isinstance(hour, int) or not 0 <= hour <= 23:
            raise ValueError(f"hour_of_day must be an integer in 0-23, got {hour!r}")

        object.__setattr__(self, "action", action)
        object.__setattr__(self, "task_category", category)

    def to_dict(self) -> dict:
        payload = {
            "action": self.action.value,
            "task_category": int(self.task_category),
            "hour_of_day": self.hour_of_day,
        }
        if self.task_id is not None:
            payload["task_id"] = self.task_id
        if self.timestamp is not None:
            payload["timestamp"] = self.timestamp.isoformat()
        return payload

    @classmethod
    def from_dict(cls, payload: dict) -> "FeedbackEvent":
        timestamp = payload.get("timestamp")
        return cls(
            action=payload["action"],
            task_category=payload["task_category"],
            hour_of_day=payload["hour_of_day"],
            task_id=payload.get("task_id"),
            timestamp=datetime.fromisoformat(timestamp) if timestamp else None,
        )


def align_tz(moment: datetime, reference: datetime) -> datetime:
    """Return ``moment`` as naive or aware to match ``reference``.

    Naive values are taken as local time, so stored timestamps stay comparable
    after the clock switches between naive and aware datetimes.
    """

    if (moment.tzinfo is None) == (reference.tzinfo is None):
        return moment
    if moment.tzinfo is None:
        return moment.astimezone()
    return moment.astimezone().replace(tzinfo=None)
