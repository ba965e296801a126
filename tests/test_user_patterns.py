from datetime import datetime

from behavior_engine.user_patterns import UserPatterns

MONDAY_9 = datetime(2025, 1, 6, 9, 0)


def test_record_completion_updates_all_aggregates():
    patterns = UserPatterns()
    patterns.record_completion("Work", "High", 30, completed_at=MONDAY_9)

    assert patterns.category_usage == {"work": 1}
    assert patterns.category_time_patterns == {"work_9": 1}
    assert patterns.category_day_patterns == {"work_2": 1}
    assert patterns.category_priority_patterns == {"work": "High"}
    assert patterns.average_durations == {"work": 30}
    assert patterns.last_updated == MONDAY_9


def test_duration_is_running_average():
    patterns = UserPatterns()
    patterns.record_completion("work", "low", 30, completed_at=MONDAY_9)
    patterns.record_completion("work", "low", 61, completed_at=MONDAY_9)
    assert patterns.average_duration("Work") == 45
    patterns.record_completion("work", "low", None, completed_at=MONDAY_9)
    patterns.record_completion("work", "low", 0, completed_at=MONDAY_9)
    assert patterns.average_duration("work") == 45
    assert patterns.average_duration("home") is None


def test_preferred_time_needs_three_completions():
    patterns = UserPatterns()
    for _ in range(2):
        patterns.record_completion("gym", "none", completed_at=datetime(2025, 1, 6, 18))
    assert patterns.preferred_time("gym") is None
    patterns.record_completion("gym", "none", completed_at=datetime(2025, 1, 7, 18))
    assert patterns.preferred_time("Gym") == "evening"
    assert patterns.preferred_time("unknown") is None


def test_preferred_time_prefers_earlier_hour_on_tie():
    patterns = UserPatterns(category_time_patterns={"work_14": 3, "work_8": 3, "workshop_7": 9})
    assert patterns.preferred_time("work") == "morning"


def test_late_hours_map_to_anytime():
    patterns = UserPatterns(category_time_patterns={"reading_23": 4})
    assert patterns.preferred_time("reading") == "anytime"


def test_top_categories_order():
    patterns = UserPatterns(category_usage={"home": 2, "work": 5, "errands": 2, "health": 1})
    assert patterns.top_categories() == ["work", "errands", "home", "health"]
    assert patterns.top_categories(limit=2) == ["work", "errands"]
    assert UserPatterns().top_categories() == []


def test_dict_round_trip():
    patterns = UserPatterns()
    patterns.record_completion("Finance", "Medium", 20, completed_at=MONDAY_9)
    restored = UserPatterns.from_dict(patterns.to_dict())
    assert restored == patterns
    assert UserPatterns.from_dict({}) == UserPatterns()


def test_day_patterns_count_from_sunday():
    patterns = UserPatterns()
    patterns.record_completion("home", "none", completed_at=datetime(2025, 1, 5, 10))
    patterns.record_completion("home", "none", completed_at=datetime(2025, 1, 4, 10))
    assert patterns.category_day_patterns == {"home_1": 1, "home_7": 1}
