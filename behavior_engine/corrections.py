"""Learning from user corrections to suggested task fields.

When the user overrides a suggested category, priority, duration or title,
the pair is recorded along with keywords from the task title. Repeated pairs
and keyword-to-choice associations are summarized for the prompt. Estimated
versus actual durations are tracked per category in the same way.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

from behavior_engine.config import check_limit, load_config, storage_from_config
from behavior_engine.context import extract_keywords
from behavior_engine.schema import align_tz

logger = logging.getLogger(__name__)

CORRECTIONS_KEY = "aiCorrections"
DURATION_ACCURACY_KEY = "durationAccuracyData"
DEFAULT_MAX_CORRECTIONS = 100
DEFAULT_MAX_ACCURACY_RECORDS = 100
DEFAULT_EXPIRY_DAYS = 90
MIN_REPEATS = 2
MAX_PAIR_PATTERNS = 3
MAX_FIELD_PATTERNS = 5
MAX_ACCURACY_LINES = 5


class CorrectionField(str, Enum):
    CATEGORY = "category"
    PRIORITY = "priority"
    DURATION = "duration"
    TITLE = "title"


@dataclass(frozen=True)
class AICorrection:
    field: CorrectionField
    original_suggestion: str
    user_choice: str
    task_keywords: tuple[str, ...]
    timestamp: datetime
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "field": self.field.value,
            "original_suggestion": self.original_suggestion,
            "user_choice": self.user_choice,
            "task_keywords": list(self.task_keywords),
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, payload: dict) -> "AICorrection":
        return cls(
            id=str(payload["id"]),
            field=CorrectionField(payload["field"]),
            original_suggestion=str(payload["original_suggestion"]),
            user_choice=str(payload["user_choice"]),
            task_keywords=tuple(str(keyword) for keyword in payload["task_keywords"]),
            timestamp=datetime.fromisoformat(payload["timestamp"]),
        )


@dataclass(frozen=True)
class DurationAccuracy:
    task_category: str
    estimated_minutes: int
    actual_minutes: int
    timestamp: datetime
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def ratio(self) -> float:
        return self.actual_minutes / self.estimated_minutes

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "task_category": self.task_category,
            "estimated_minutes": self.estimated_minutes,
            "actual_minutes": self.actual_minutes,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, payload: dict) -> "DurationAccuracy":
        estimated = int(payload["estimated_minutes"])
        actual = int(payload["actual_minutes"])
        if estimated <= 0 or actual <= 0:
            raise ValueError("durations must be positive")
        return cls(
            id=str(payload["id"]),
            task_category=str(payload["task_category"]),
            estimated_minutes=estimated,
            actual_minutes=actual,
            timestamp=datetime.fromisoformat(payload["timestamp"]),
        )


def _field_patterns(corrections: list[AICorrection]) -> list[str]:
    patterns = []

    pairs = Counter(f"{item.original_suggestion} -> {item.user_choice}" for item in corrections)
    for pair, count in pairs.most_common(MAX_PAIR_PATTERNS):
        if count >= MIN_REPEATS:
            patterns.append(f"User often changes {pair} (seen {count} times)")

    choices_by_keyword: dict[str, Counter] = {}
    for item in corrections:
        for keyword in item.task_keywords:
            choices_by_keyword.setdefault(keyword, Counter())[item.user_choice] += 1
    for keyword, choices in choices_by_keyword.items():
        choice, count = choices.most_common(1)[0]
        if count >= MIN_REPEATS:
            patterns.append(f"For tasks with '{keyword}', user prefers {choice}")

    return patterns[:MAX_FIELD_PATTERNS]


class CorrectionLog:
    """Corrections and duration accuracy records behind a single lock."""

    def __init__(
        self,
        storage=None,
        max_corrections: int = DEFAULT_MAX_CORRECTIONS,
        max_accuracy_records: int = DEFAULT_MAX_ACCURACY_RECORDS,
        expiry_days: int = DEFAULT_EXPIRY_DAYS,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.storage = storage
        self.max_corrections = check_limit("max_corrections", max_corrections)
        self.max_accuracy_records = check_limit("max_accuracy_records", max_accuracy_records)
        self.expiry_days = check_limit("expiry_days", expiry_days)
        self._clock = clock
        self._lock = threading.RLock()
        self._corrections: list[AICorrection] = []
        self._accuracy: list[DurationAccuracy] = []
        self._load()
        self.cleanup_old_data()

    @classmethod
    def from_config(cls, config: Optional[dict] = None, storage=None) -> "CorrectionLog":
        config = config if config is not None else load_config()
        settings = config["corrections"]
        return cls(
            storage=storage if storage is not None else storage_from_config(config),
            max_corrections=settings["max_corrections"],
            max_accuracy_records=settings["max_accuracy_records"],
            expiry_days=settings["expiry_days"],
        )

    @property
    def corrections(self) -> list[AICorrection]:
        with self._lock:
            return list(self._corrections)

    @property
    def accuracy_records(self) -> list[DurationAccuracy]:
        with self._lock:
            return list(self._accuracy)

    def corrections_for(self, correction_field: CorrectionField | str) -> list[AICorrection]:
        correction_field = CorrectionField(correction_field)
        return [item for item in self.corrections if item.field is correction_field]

    def record_correction(
        self,
        correction_field: CorrectionField | str,
        original_suggestion: str,
        user_choice: str,
        task_title: str,
    ) -> Optional[AICorrection]:
        """Record an override; accepting the suggestion unchanged records nothing."""

        if original_suggestion == user_choice:
            return None
        correction = AICorrection(
            field=CorrectionField(correction_field),
            original_suggestion=original_suggestion,
            user_choice=user_choice,
            task_keywords=tuple(extract_keywords(task_title)),
            timestamp=self._clock(),
        )
        with self._lock:
            self._corrections.append(correction)
            excess = len(self._corrections) - self.max_corrections
            if excess > 0:
                del self._corrections[:excess]
            self._save()
        logger.debug("Correction recorded: %s %r -> %r", correction.field.value, original_suggestion, user_choice)
        return correction

    def record_duration_accuracy(
        self, category: str, estimated_minutes: int, actual_minutes: int
    ) -> Optional[DurationAccuracy]:
        if estimated_minutes <= 0 or actual_minutes <= 0:
            return None
        record = DurationAccuracy(
            task_category=category.lower(),
            estimated_minutes=estimated_minutes,
            actual_minutes=actual_minutes,
            timestamp=self._clock(),
        )
        with self._lock:
            self._accuracy.append(record)
            excess = len(self._accuracy) - self.max_accuracy_records
            if excess > 0:
                del self._accuracy[:excess]
            self._save()
        return record

    def corrections_context(self) -> str:
        """Repeated corrections grouped by field, or ``""`` when nothing repeats."""

        corrections = self.corrections
        sections = []
        for correction_field in CorrectionField:
            patterns = _field_patterns([item for item in corrections if item.field is correction_field])
            if patterns:
                lines = "".join(f"  - {pattern}\n" for pattern in patterns)
                sections.append(f"\n{correction_field.value.capitalize()}:\n{lines}")
        if not sections:
            return ""
        return "User preferences learned from past corrections:\n" + "".join(sections)

    def duration_accuracy_context(self) -> str:
        grouped: dict[str, list[DurationAccuracy]] = {}
        for record in self.accuracy_records:
            grouped.setdefault(record.task_category, []).append(record)

        patterns = []
        for category, records in grouped.items():
            if len(records) < MIN_REPEATS:
                continue
            ratio = sum(record.ratio for record in records) / len(records)
            name = category.title()
            if ratio > 1.1:
                patterns.append(f"{name} tasks: user takes {ratio:.1f}x longer than estimated")
            elif ratio < 0.9:
                patterns.append(f"{name} tasks: user takes {ratio:.1f}x of estimated time")
            else:
                patterns.append(f"{name} tasks: estimates are accurate")

        if not patterns:
            return ""
        return "\nDuration accuracy patterns:\n" + "".join(f"  - {line}\n" for line in patterns[:MAX_ACCURACY_LINES])

    def learning_summary(self) -> str:
        """Text for ``AIContext.corrections_summary``."""

        return self.corrections_context() + self.duration_accuracy_context()

    def suggested_override(
        self, correction_field: CorrectionField | str, task_title: str, ai_suggestion: str
    ) -> Optional[str]:
        """The user's usual replacement for ``ai_suggestion`` on similar tasks, if seen twice."""

        keywords = set(extract_keywords(task_title))
        correction_field = CorrectionField(correction_field)
        choices = Counter(
            item.user_choice
            for item in self.corrections
            if item.field is correction_field
            and item.original_suggestion == ai_suggestion
            and keywords.intersection(item.task_keywords)
        )
        if not choices:
            return None
        choice, count = choices.most_common(1)[0]
        return choice if count >= MIN_REPEATS else None

    def cleanup_old_data(self) -> bool:
        """Evict entries older than ``expiry_days``; the cutoff itself is kept."""

        with self._lock:
            cutoff = self._clock() - timedelta(days=self.expiry_days)
            before = len(self._corrections) + len(self._accuracy)
            self._corrections = [
                item for item in self._corrections if align_tz(item.timestamp, cutoff) >= cutoff
            ]
            self._accuracy = [item for item in self._accuracy if align_tz(item.timestamp, cutoff) >= cutoff]
            removed = before - len(self._corrections) - len(self._accuracy)
            if removed:
                self._save()
        if removed:
            logger.info("Evicted %s stale corrections and accuracy records", removed)
        return removed > 0

    def clear_all(self) -> None:
        with self._lock:
            self._corrections = []
            self._accuracy = []
            if self.storage is not None:
                self.storage.remove(CORRECTIONS_KEY)
                self.storage.remove(DURATION_ACCURACY_KEY)

    def _load(self) -> None:
        if self.storage is None:
            return
        try:
            self._corrections = [AICorrection.from_dict(item) for item in self.storage.get(CORRECTIONS_KEY) or []]
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            logger.warning("Discarding stored corrections: %s", exc)
            self._corrections = []
        try:
            self._accuracy = [
                DurationAccuracy.from_dict(item) for item in self.storage.get(DURATION_ACCURACY_KEY) or []
            ]
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            logger.warning("Discarding stored duration accuracy records: %s", exc)
            self._accuracy = []

    def _save(self) -> None:
        if self.storage is None:
            return
        self.storage.set(CORRECTIONS_KEY, [item.to_dict() for item in self._corrections])
        self.storage.set(DURATION_ACCURACY_KEY, [item.to_dict() for item in self._accuracy])
