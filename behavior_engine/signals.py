"""Behavioral signal extraction and prompt rendering."""

from __future__ import annotations

from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Iterable, Optional, Union

import numpy as np

from behavior_engine.completion_patterns import CompletionPatterns, parse_patterns
from behavior_engine.schema import FeedbackAction, FeedbackEvent, TaskCategory, TimeBucket

MIN_EVENTS = 10
MIN_POSITIVE_EVENTS = 6
MIN_TIME_SHARE = Fraction(40, 100)
MIN_AFFINITY_SUPPORT = 3
MIN_AFFINITY_SCORE = 2
MAX_AFFINITY_ENTRIES = 2
MIN_SNOOZES = 4
MIN_SNOOZE_HOTSPOT = 3
MIN_SKIP_REASON = 3
MIN_COMPLETION_COUNT = 4

CALIBRATION_LINE = "Use these as soft preferences. Keep reordering within 2 positions unless strongly justified."

WRONG_TIME = "wrongTime"
NEEDS_FOCUS = "needsFocus"

_SKIP_REASONS = (
    (WRONG_TIME, FeedbackAction.SKIPPED_WRONG_TIME),
    (NEEDS_FOCUS, FeedbackAction.SKIPPED_NEEDS_FOCUS),
)


@dataclass(frozen=True)
class TimePreference:
    bucket: TimeBucket
    support: int
    share: float


@dataclass(frozen=True)
class CategoryAffinity:
    category: TaskCategory
    score: int
    support: int


@dataclass(frozen=True)
class SnoozeHotspot:
    category: TaskCategory
    bucket: TimeBucket
    count: int


@dataclass(frozen=True)
class SkipReasonHotspot:
    reason: str
    category: TaskCategory
    count: int


@dataclass(frozen=True)
class CompletionPeak:
    category: TaskCategory
    bucket: TimeBucket
    count: int


@dataclass(frozen=True)
class BehavioralSignals:
    """Independently gated findings; an absent field means not enough evidence."""

    total_events: int
    time_preference: Optional[TimePreference] = None
    category_affinity: list[CategoryAffinity] = field(default_factory=list)
    snooze_hotspot: Optional[SnoozeHotspot] = None
    skip_reason_hotspots: list[SkipReasonHotspot] = field(default_factory=list)
    completion_peak: Optional[CompletionPeak] = None

    @property
    def is_cold_start(self) -> bool:
        return self.total_events < MIN_EVENTS and self.completion_peak is None

    def to_prompt_string(self) -> str:
        return render_signals(self)


def _time_preference(events: list[FeedbackEvent]) -> Optional[TimePreference]:
    positive = [event for event in events if event.action.is_positive]
    if len(positive) < MIN_POSITIVE_EVENTS:
        return None

    indices = [TimeBucket.from_hour(event.hour_of_day).index for event in positive]
    counts = np.bincount(indices, minlength=len(TimeBucket))
    # argmax returns the first maximum, so ties go to the earliest bucket
    best = int(np.argmax(counts))
    count = int(counts[best])
    share = Fraction(count, len(positive))
    if share < MIN_TIME_SHARE:
        return None
    return TimePreference(bucket=list(TimeBucket)[best], support=len(positive), share=float(share))


def _category_affinity(events: list[FeedbackEvent]) -> list[CategoryAffinity]:
    support = Counter()
    score = Counter()
    for event in events:
        support[event.task_category] += 1
        score[event.task_category] += event.action.affinity_delta

    qualified = [
        CategoryAffinity(category=category, score=score[category], support=count)
        for category, count in support.items()
        if count >= MIN_AFFINITY_SUPPORT and score[category] >= MIN_AFFINITY_SCORE
    ]
    qualified.sort(key=lambda item: (-item.score, -item.support, str(item.category.value)))
    return qualified[:MAX_AFFINITY_ENTRIES]


def _snooze_hotspot(events: list[FeedbackEvent]) -> Optional[SnoozeHotspot]:
    snoozes = [event for event in events if event.action.is_snooze]
    if len(snoozes) < MIN_SNOOZES:
        return None

    groups: dict[str, tuple[TaskCategory, TimeBucket]] = {}
    counts = Counter()
    for event in snoozes:
        bucket = TimeBucket.from_hour(event.hour_of_day)
        key = f"{event.task_category.value}_{bucket.value}"
        groups[key] = (event.task_category, bucket)
        counts[key] += 1

    # ties go to the lexicographically greatest composite key (DESIGN.md, decision 1)
    key, count = max(counts.items(), key=lambda item: (item[1], item[0]))
    if count < MIN_SNOOZE_HOTSPOT:
        return None
    category, bucket = groups[key]
    return SnoozeHotspot(category=category, bucket=bucket, count=count)


def _skip_reason_hotspots(events: list[FeedbackEvent]) -> list[SkipReasonHotspot]:
    hotspots = []
    for reason, action in _SKIP_REASONS:
        matching = [event for event in events if event.action is action]
        if len(matching) < MIN_SKIP_REASON:
            continue
        counts = Counter(event.task_category for event in matching)
        # ties go to the greatest category code string (DESIGN.md, decision 1)
        category, count = max(counts.items(), key=lambda item: (item[1], str(item[0].value)))
        if count >= MIN_SKIP_REASON:
            hotspots.append(SkipReasonHotspot(reason=reason, category=category, count=count))
    return hotspots


def _completion_peak(patterns) -> Optional[CompletionPeak]:
    if isinstance(patterns, CompletionPatterns):
        entries = patterns.parsed()
    elif isinstance(patterns, Mapping):
        entries = parse_patterns(patterns)
    else:
        return None

    candidates = [
        (count, category, TimeBucket.from_hour(hour))
        for category, hour, count in entries
        if count >= MIN_COMPLETION_COUNT
    ]
    if not candidates:
        return None
    # ties go to the larger category code, then the later bucket (DESIGN.md, decision 1)
    count, category, bucket = max(candidates, key=lambda item: (item[0], item[1].value, item[2].index))
    return CompletionPeak(category=category, bucket=bucket, count=count)


def extract_signals(
    events: Iterable[FeedbackEvent],
    completion_patterns: Union[Mapping, CompletionPatterns, None] = None,
) -> BehavioralSignals:
    """Derive behavioral signals from feedback history and completion counts.

    Signals read from the event log require at least ``MIN_EVENTS`` events.
    The completion peak reads only ``completion_patterns`` and is gated on its
    own, so it can appear on an otherwise empty history.
    """

    events = list(events)
    total = len(events)
    completion_peak = _completion_peak(completion_patterns)

    if total < MIN_EVENTS:
        return BehavioralSignals(total_events=total, completion_peak=completion_peak)

    return BehavioralSignals(
        total_events=total,
        time_preference=_time_preference(events),
        category_affinity=_category_affinity(events),
        snooze_hotspot=_snooze_hotspot(events),
        skip_reason_hotspots=_skip_reason_hotspots(events),
        completion_peak=completion_peak,
    )


def _percent(share: float) -> int:
    # half away from zero, not banker's rounding
    return int(Fraction(share) * 100 + Fraction(1, 2))


def render_signals(signals: BehavioralSignals) -> str:
    """Render signals as prompt lines; empty on cold start or with nothing to say."""

    if signals.is_cold_start:
        return ""

    lines = []
    preference = signals.time_preference
    if preference is not None:
        lines.append(
            f"- Prefers engaging in the {preference.bucket.value} "
            f"({_percent(preference.share)}% of starts, n={preference.support})."
        )

    if signals.category_affinity:
        text = ", ".join(
            f"{item.category.display_name} (+{item.score}, n={item.support})" for item in signals.category_affinity
        )
        lines.append(f"- Strongest categories: {text}.")

    snooze = signals.snooze_hotspot
    if snooze is not None:
        lines.append(f"- Often snoozed: {snooze.category.display_name} in the {snooze.bucket.value} (n={snooze.count}).")

    for hotspot in sorted(signals.skip_reason_hotspots, key=lambda item: item.reason != WRONG_TIME):
        name = hotspot.category.display_name
        if hotspot.reason == WRONG_TIME:
            lines.append(f"- Skips {name} as 'wrong time' (n={hotspot.count}).")
        else:
            lines.append(f"- Skips {name} as 'needs focus' (n={hotspot.count}, weak signal).")

    peak = signals.completion_peak
    if peak is not None:
        lines.append(
            f"- Completes {peak.category.display_name} tasks most in the {peak.bucket.value} (n={peak.count})."
        )

    if not lines:
        return ""
    return "\n".join([f"User behavior from {signals.total_events} interactions:", *lines, CALIBRATION_LINE])
