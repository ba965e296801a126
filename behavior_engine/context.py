"""Prompt context assembly for task suggestions."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from behavior_engine.schema import TimeBucket
from behavior_engine.signals import BehavioralSignals
from behavior_engine.user_patterns import UserPatterns, weekday_number

NO_CORRECTIONS_SENTINEL = "No user preferences learned yet."
MAX_KEYWORDS = 5
MAX_RECENT_TASKS = 3
MAX_TOP_CATEGORIES = 3

STOP_WORDS = frozenset(
    {
        "a", "an", "the", "and", "or", "but", "in", "on", "at", "to", "for",
        "of", "with", "by", "from", "as", "is", "was", "are", "were", "been",
        "be", "have", "has", "had", "do", "does", "did", "will", "would",
        "could", "should", "may", "might", "must", "shall", "can", "need",
        "i", "you", "he", "she", "it", "we", "they", "my", "your", "his",
        "her", "its", "our", "their", "this", "that", "these", "those",
    }
)

_NON_ALNUM = re.compile(r"[\W_]+")


def extract_keywords(text: str) -> list[str]:
    """Up to five distinct meaningful words of ``text``, in first-seen order."""

    keywords: list[str] = []
    for word in _NON_ALNUM.split(text.lower()):
        if len(word) <= 2 or word in STOP_WORDS or word in keywords:
            continue
        keywords.append(word)
        if len(keywords) == MAX_KEYWORDS:
            break
    return keywords


@dataclass(frozen=True)
class RecentTaskContext:
    title: str
    category: str
    priority: str = "none"
    duration: Optional[int] = None
    completed_at: Optional[datetime] = None


@dataclass(frozen=True)
class TimeContext:
    current_hour: int
    day_of_week: int  # 1 = Sunday
    is_weekend: bool
    time_of_day: str

    @classmethod
    def from_datetime(cls, moment: Optional[datetime] = None) -> "TimeContext":
        moment = moment or datetime.now()
        weekday = moment.weekday()
        return cls(
            current_hour=moment.hour,
            day_of_week=weekday_number(moment),
            is_weekend=weekday >= 5,
            time_of_day=TimeBucket.from_hour(moment.hour).value,
        )


@dataclass(frozen=True)
class TaskSpecificContext:
    title: str
    notes: Optional[str] = None
    due_date: Optional[datetime] = None
    current_priority: str = "none"


@dataclass
class AIContext:
    """Everything known about the user for one suggestion request."""

    recent_tasks: list[RecentTaskContext] = field(default_factory=list)
    user_patterns: UserPatterns = field(default_factory=UserPatterns)
    corrections_summary: str = ""
    custom_categories: list[str] = field(default_factory=list)
    time_context: Optional[TimeContext] = None
    task_context: Optional[TaskSpecificContext] = None

    @classmethod
    def empty(cls, moment: Optional[datetime] = None) -> "AIContext":
        return cls(time_context=TimeContext.from_datetime(moment))

    def to_prompt_string(self) -> str:
        parts: list[str] = []

        if self.time_context is not None:
            line = f"Current time: {self.time_context.time_of_day}"
            if self.time_context.is_weekend:
                line += " (weekend)"
            parts.append(line + "\n")

        top = self.user_patterns.top_categories(limit=MAX_TOP_CATEGORIES)
        if top:
            parts.append(f"Most used categories: {', '.join(top)}\n")

        # only the first keyword with a known time is mentioned
        if self.task_context is not None:
            for keyword in extract_keywords(self.task_context.title):
                preferred = self.user_patterns.preferred_time(keyword)
                if preferred is not None:
                    parts.append(f"Tasks with '{keyword}' usually done in: {preferred}\n")
                    break

        if self.recent_tasks:
            parts.append("\nRecent tasks for consistency:\n")
            for task in self.recent_tasks[:MAX_RECENT_TASKS]:
                line = f'- "{task.title}" -> {task.category}'
                if task.duration is not None:
                    line += f", {task.duration} min"
                parts.append(line + "\n")

        summary = self.corrections_summary
        if summary and summary.strip() and summary.strip() != NO_CORRECTIONS_SENTINEL:
            parts.append(f"\n{summary}")

        if self.custom_categories:
            parts.append(f"\nUser's custom categories: {', '.join(self.custom_categories)}\n")

        return "".join(parts).strip()


def assemble_context(context: Optional[AIContext], signals: Optional[BehavioralSignals] = None) -> str:
    """Combine request context and behavioral signals into one prompt block."""

    sections = []
    if context is not None:
        sections.append(context.to_prompt_string())
    if signals is not None:
        sections.append(signals.to_prompt_string())
    return "\n\n".join(section for section in sections if section)
