"""Learned preferences for turning calendar events into tasks.

Every confirmed planning session records, per calendar event title, whether
the user kept it as a task or skipped it. Counts aggregate per normalized
title and steer the default selection the next time the same title shows up.
Records and preferences older than the retention window are evicted.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from behavior_engine.config import check_limit, load_config, storage_from_config
from behavior_engine.schema import align_tz

logger = logging.getLogger(__name__)

RECORDS_KEY = "eventSelectionRecords"
PREFERENCES_KEY = "eventTitlePreferences"
DEFAULT_MAX_RECORDS = 500
DEFAULT_EXPIRY_DAYS = 180
MIN_INTERACTIONS = 3
FREQUENT_RATE = 0.8


def normalize_title(title: str) -> str:
    """Lowercase and trim surrounding whitespace; inner spacing is kept."""

    return title.strip().lower()


@dataclass(frozen=True)
class EventSelectionRecord:
    normalized_title: str
    was_selected: bool
    is_all_day: bool
    timestamp: datetime
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "normalized_title": self.normalized_title,
            "was_selected": self.was_selected,
            "is_all_day": self.is_all_day,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, payload: dict) -> "EventSelectionRecord":
        return cls(
            id=str(payload["id"]),
            normalized_title=str(payload["normalized_title"]),
            was_selected=bool(payload["was_selected"]),
            is_all_day=bool(payload["is_all_day"]),
            timestamp=datetime.fromisoformat(payload["timestamp"]),
        )


@dataclass
class EventTitlePreference:
    normalized_title: str
    selected_count: int = 0
    skipped_count: int = 0
    last_interaction: Optional[datetime] = None

    @property
    def total_count(self) -> int:
        return self.selected_count + self.skipped_count

    @property
    def skip_rate(self) -> float:
        if self.total_count == 0:
            return 0.0
        return self.skipped_count / self.total_count

    @property
    def selection_rate(self) -> float:
        if self.total_count == 0:
            return 0.0
        return self.selected_count / self.total_count

    @property
    def has_enough_data(self) -> bool:
        return self.total_count >= MIN_INTERACTIONS

    @property
    def is_frequently_skipped(self) -> bool:
        return self.has_enough_data and self.skip_rate >= FREQUENT_RATE

    @property
    def is_frequently_selected(self) -> bool:
        return self.has_enough_data and self.selection_rate >= FREQUENT_RATE

    def to_dict(self) -> dict:
        return {
            "normalized_title": self.normalized_title,
            "selected_count": self.selected_count,
            "skipped_count": self.skipped_count,
            "last_interaction": self.last_interaction.isoformat() if self.last_interaction else None,
        }

    @classmethod
    def from_dict(cls, payload: dict) -> "EventTitlePreference":
        last = payload.get("last_interaction")
        return cls(
            normalized_title=str(payload["normalized_title"]),
            selected_count=int(payload["selected_count"]),
            skipped_count=int(payload["skipped_count"]),
            last_interaction=datetime.fromisoformat(last) if last else None,
        )


@dataclass(frozen=True)
class PlanEventItem:
    """A calendar event offered for conversion into a task."""

    title: str
    is_selected: bool = True
    is_all_day: bool = False
    event_id: Optional[str] = None
    start: Optional[datetime] = None


class TitlePreferenceStore:
    """Selection history and per-title preferences behind a single lock."""

    def __init__(
        self,
        storage=None,
        max_records: int = DEFAULT_MAX_RECORDS,
        expiry_days: int = DEFAULT_EXPIRY_DAYS,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.storage = storage
        self.max_records = check_limit("max_records", max_records)
        self.expiry_days = check_limit("expiry_days", expiry_days)
        self._clock = clock
        self._lock = threading.RLock()
        self._records: list[EventSelectionRecord] = []
        self._preferences: dict[str, EventTitlePreference] = {}
        self._load()
        self.cleanup_old_data()

    @classmethod
    def from_config(cls, config: Optional[dict] = None, storage=None) -> "TitlePreferenceStore":
        config = config if config is not None else load_config()
        settings = config["title_preferences"]
        return cls(
            storage=storage if storage is not None else storage_from_config(config),
            max_records=settings["max_records"],
            expiry_days=settings["expiry_days"],
        )

    @property
    def records(self) -> list[EventSelectionRecord]:
        with self._lock:
            return list(self._records)

    @property
    def preferences(self) -> dict[str, EventTitlePreference]:
        with self._lock:
            return {title: replace(pref) for title, pref in self._preferences.items()}

    def record_selections(self, items: Iterable[PlanEventItem]) -> None:
        """Record the final state of a confirmed batch.

        Only call this when the user confirms the plan. A dismissed session
        says nothing about which events were unwanted.
        """

        with self._lock:
            now = self._clock()
            recorded = 0
            for item in items:
                title = normalize_title(item.title)
                if not title:
                    continue

                self._records.append(
                    EventSelectionRecord(
                        normalized_title=title,
                        was_selected=item.is_selected,
                        is_all_day=item.is_all_day,
                        timestamp=now,
                    )
                )
                pref = self._preferences.get(title) or EventTitlePreference(normalized_title=title)
                if item.is_selected:
                    pref.selected_count += 1
                else:
                    pref.skipped_count += 1
                pref.last_interaction = now
                self._preferences[title] = pref
                recorded += 1

            self._trim_records()
            self._save()
        logger.debug("Recorded %s event selections", recorded)

    def preference(self, title: str) -> Optional[EventTitlePreference]:
        with self._lock:
            pref = self._preferences.get(normalize_title(title))
            return replace(pref) if pref is not None else None

    def is_frequently_skipped(self, title: str) -> bool:
        pref = self.preference(title)
        return pref is not None and pref.is_frequently_skipped

    def is_frequently_selected(self, title: str) -> bool:
        pref = self.preference(title)
        return pref is not None and pref.is_frequently_selected

    def clear_all_learning_data(self) -> None:
        with self._lock:
            self._records = []
            self._preferences = {}
            if self.storage is not None:
                self.storage.remove(RECORDS_KEY)
                self.storage.remove(PREFERENCES_KEY)
        logger.info("Cleared all event preference learning data")

    def cleanup_old_data(self) -> bool:
        """Evict records and preferences older than ``expiry_days``.

        Entries exactly at the cutoff are kept. Saves only when something was
        removed and returns whether it did.
        """

        with self._lock:
            cutoff = self._clock() - timedelta(days=self.expiry_days)
            records_before = len(self._records)
            self._records = [record for record in self._records if align_tz(record.timestamp, cutoff) >= cutoff]
            stale = [
                title
                for title, pref in self._preferences.items()
                if pref.last_interaction is None or align_tz(pref.last_interaction, cutoff) < cutoff
            ]
            for title in stale:
                del self._preferences[title]

            removed_records = records_before - len(self._records)
            changed = removed_records > 0 or bool(stale)
            if changed:
                self._save()
        if changed:
            logger.info("Evicted %s stale records and %s stale preferences", removed_records, len(stale))
        return changed

    def _trim_records(self) -> None:
        excess = len(self._records) - self.max_records
        if excess > 0:
            del self._records[:excess]

    def _load(self) -> None:
        if self.storage is None:
            return
        try:
            records = [EventSelectionRecord.from_dict(item) for item in self.storage.get(RECORDS_KEY) or []]
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            logger.warning("Discarding stored selection records: %s", exc)
            records = []
        try:
            stored = self.storage.get(PREFERENCES_KEY) or {}
            preferences = {title: EventTitlePreference.from_dict(item) for title, item in stored.items()}
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            logger.warning("Discarding stored title preferences: %s", exc)
            preferences = {}
        self._records = records
        self._preferences = preferences

    def _save(self) -> None:
        if self.storage is None:
            return
        self.storage.set(RECORDS_KEY, [record.to_dict() for record in self._records])
        self.storage.set(PREFERENCES_KEY, {title: pref.to_dict() for title, pref in self._preferences.items()})


def apply_learned_preferences(items: Iterable[PlanEventItem], store: TitlePreferenceStore) -> list[PlanEventItem]:
    """Adjust default selection from learned preferences.

    Frequently skipped titles start deselected. Frequently selected titles
    start selected, except all-day events, which are never auto-selected.
    """

    adjusted = []
    for item in items:
        if store.is_frequently_skipped(item.title):
            item = replace(item, is_selected=False)
        elif store.is_frequently_selected(item.title) and not item.is_all_day:
            item = replace(item, is_selected=True)
        adjusted.append(item)
    return adjusted
