"""Suggestion feedback: the capped event log plus per-task score state.

Besides the events that signal extraction reads, each recorded action nudges
a per-task score adjustment (clamped to +/-15) and snooze actions suppress the
task until a computed time. Adjustments fade by 5% per full week.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Callable, Iterable, Optional

from behavior_engine.config import check_limit, load_config, storage_from_config
from behavior_engine.schema import FeedbackAction, FeedbackEvent, TaskCategory, align_tz

logger = logging.getLogger(__name__)

STORAGE_KEY = "suggestion_feedback"
DEFAULT_MAX_EVENTS = 200
MAX_ADJUSTMENT = 15.0
WEEKLY_DECAY = 0.95
MIN_ADJUSTMENT = 0.5
DECAY_INTERVAL_DAYS = 7


class FeedbackLog:
    """Ordered feedback history, trimmed oldest-first to ``max_events``."""

    def __init__(
        self,
        storage=None,
        max_events: int = DEFAULT_MAX_EVENTS,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.storage = storage
        self.max_events = check_limit("max_events", max_events)
        self._clock = clock
        self._lock = threading.RLock()
        self._events: list[FeedbackEvent] = []
        self._adjustments: dict[str, float] = {}
        self._snoozed_until: dict[str, datetime] = {}
        self._last_decay: datetime = clock()
        self._load()

    @classmethod
    def from_config(cls, config: Optional[dict] = None, storage=None) -> "FeedbackLog":
        config = config if config is not None else load_config()
        return cls(
            storage=storage if storage is not None else storage_from_config(config),
            max_events=config["feedback"]["max_events"],
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def __iter__(self):
        return iter(self.events)

    @property
    def events(self) -> tuple[FeedbackEvent, ...]:
        with self._lock:
            return tuple(self._events)

    @property
    def adjustments(self) -> dict[str, float]:
        with self._lock:
            return dict(self._adjustments)

    def record(
        self,
        action: FeedbackAction | str,
        category: TaskCategory | str | int,
        hour: Optional[int] = None,
        task_id: Optional[str] = None,
    ) -> FeedbackEvent:
        """Append one event; ``hour`` defaults to the current clock hour.

        With a ``task_id`` the task's score adjustment moves by the action's
        delta and snooze actions suppress the task.
        """

        now = self._clock()
        event = FeedbackEvent(
            action=action,
            task_category=category,
            hour_of_day=now.hour if hour is None else hour,
            task_id=task_id,
            timestamp=now,
        )
        with self._lock:
            self._events.append(event)
            self._trim()
            if task_id is not None:
                current = self._adjustments.get(task_id, 0.0)
                updated = current + event.action.adjustment_delta
                self._adjustments[task_id] = max(-MAX_ADJUSTMENT, min(MAX_ADJUSTMENT, updated))
                until = event.action.snooze_until(now)
                if until is not None:
                    self._snoozed_until[task_id] = until
            self._save()
        logger.debug(
            "Feedback recorded: action=%s category=%s hour=%s",
            event.action.value, event.task_category.display_name, event.hour_of_day,
        )
        return event

    def extend(self, events: Iterable[FeedbackEvent]) -> None:
        with self._lock:
            self._events.extend(events)
            self._trim()
            self._save()

    def adjustment(self, task_id: str) -> float:
        with self._lock:
            return self._adjustments.get(task_id, 0.0)

    def is_snoozed(self, task_id: str) -> bool:
        with self._lock:
            until = self._snoozed_until.get(task_id)
            if until is None:
                return False
            now = self._clock()
            return align_tz(until, now) > now

    def clean_expired_snoozes(self) -> bool:
        """Drop snoozes that have run out; saves and returns True if any did."""

        with self._lock:
            now = self._clock()
            active = {
                task_id: until for task_id, until in self._snoozed_until.items() if align_tz(until, now) > now
            }
            changed = len(active) < len(self._snoozed_until)
            if changed:
                self._snoozed_until = active
                self._save()
        return changed

    def apply_decay_if_needed(self) -> bool:
        """Fade adjustments by 5% per full week since the last decay.

        Adjustments that fall below 0.5 in magnitude are dropped. Nothing
        happens until a full week has passed.
        """

        with self._lock:
            now = self._clock()
            days = (now - align_tz(self._last_decay, now)).days
            if days < DECAY_INTERVAL_DAYS:
                return False

            factor = WEEKLY_DECAY ** (days // DECAY_INTERVAL_DAYS)
            decayed = {}
            for task_id, value in self._adjustments.items():
                value *= factor
                if abs(value) >= MIN_ADJUSTMENT:
                    decayed[task_id] = value
            pruned = len(self._adjustments) - len(decayed)
            self._adjustments = decayed
            self._last_decay = now
            self._save()
        logger.info("Applied %s-day adjustment decay, pruned %s tasks", days, pruned)
        return True

    def clear(self) -> None:
        with self._lock:
            self._events = []
            self._adjustments = {}
            self._snoozed_until = {}
            self._last_decay = self._clock()
            if self.storage is not None:
                self.storage.remove(STORAGE_KEY)

    def _trim(self) -> None:
        excess = len(self._events) - self.max_events
        if excess > 0:
            del self._events[:excess]

    def _load(self) -> None:
        if self.storage is None:
            return
        payload = self.storage.get(STORAGE_KEY)
        if payload is None:
            return
        if not isinstance(payload, dict):
            logger.warning("Ignoring stored feedback: expected an object, got %s", type(payload).__name__)
            return

        for item in payload.get("events") or []:
            try:
                self._events.append(FeedbackEvent.from_dict(item))
            except (KeyError, TypeError, ValueError, AttributeError):
                logger.warning("Dropping malformed stored feedback event: %r", item)
        self._trim()

        try:
            self._adjustments = {
                str(task_id): float(value) for task_id, value in (payload.get("adjustments") or {}).items()
            }
            self._snoozed_until = {
                str(task_id): datetime.fromisoformat(until)
                for task_id, until in (payload.get("snoozed_until") or {}).items()
            }
            if payload.get("last_decay_date"):
                self._last_decay = datetime.fromisoformat(payload["last_decay_date"])
        except (TypeError, ValueError, AttributeError) as exc:
            logger.warning("Discarding stored score adjustments: %s", exc)
            self._adjustments = {}
            self._snoozed_until = {}

    def _save(self) -> None:
        if self.storage is None:
            return
        self.storage.set(
            STORAGE_KEY,
            {
                "events": [event.to_dict() for event in self._events],
                "adjustments": dict(self._adjustments),
                "snoozed_until": {task_id: until.isoformat() for task_id, until in self._snoozed_until.items()},
                "last_decay_date": self._last_decay.isoformat(),
            },
        )
