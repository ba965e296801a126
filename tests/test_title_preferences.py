import threading
from datetime import datetime, timedelta, timezone

import pytest

from behavior_engine.storage import MemoryStorage, SqliteStorage
from behavior_engine.title_preferences import (
    PREFERENCES_KEY,
    RECORDS_KEY,
    EventTitlePreference,
    PlanEventItem,
    TitlePreferenceStore,
    apply_learned_preferences,
    normalize_title,
)

BASE = datetime(2025, 6, 1, 8, 0, 0)


class FakeClock:
    def __init__(self, now=BASE):
        self.now = now

    def __call__(self):
        return self.now


class CountingStorage(MemoryStorage):
    def __init__(self):
        super().__init__()
        self.writes = 0

    def set(self, key, value):
        self.writes += 1
        super().set(key, value)


def skip(title, all_day=False):
    return PlanEventItem(title, is_selected=False, is_all_day=all_day)


def keep(title, all_day=False):
    return PlanEventItem(title, is_selected=True, is_all_day=all_day)


def test_normalize_title():
    assert normalize_title("  Team   Sync ") == "team   sync"
    assert normalize_title("STANDUP\n") == "standup"
    for title in ("  Team   Sync ", "Gym", "\tLunch  "):
        assert normalize_title(normalize_title(title)) == normalize_title(title)


def test_record_selections_creates_records_and_preferences():
    store = TitlePreferenceStore(clock=FakeClock())
    store.record_selections([keep("Standup"), skip("Lunch")])

    assert [record.normalized_title for record in store.records] == ["standup", "lunch"]
    assert store.records[0].was_selected is True
    assert store.records[0].timestamp == BASE
    assert store.preference("standup").selected_count == 1
    assert store.preference("lunch").skipped_count == 1


def test_record_selections_ignores_empty_titles():
    store = TitlePreferenceStore()
    store.record_selections([keep(""), skip("   ")])
    assert store.records == []
    assert store.preferences == {}


def test_preferences_accumulate_across_sessions():
    store = TitlePreferenceStore()
    store.record_selections([keep("Standup")])
    store.record_selections([skip("standup ")])
    store.record_selections([keep("STANDUP")])

    pref = store.preference("Standup")
    assert pref.selected_count == 2
    assert pref.skipped_count == 1
    assert pref.total_count == 3


def test_lookup_is_case_and_whitespace_insensitive():
    store = TitlePreferenceStore()
    store.record_selections([skip("Team Sync")] * 3)
    assert store.is_frequently_skipped("  TEAM SYNC ")
    assert store.preference("team sync") is not None


def test_frequently_skipped_requires_three_interactions():
    store = TitlePreferenceStore()
    store.record_selections([skip("Lunch")])
    store.record_selections([skip("Lunch")])
    assert not store.is_frequently_skipped("Lunch")
    store.record_selections([skip("Lunch")])
    assert store.is_frequently_skipped("Lunch")


def test_skip_rate_thresholds():
    assert not EventTitlePreference("a", selected_count=1, skipped_count=3).is_frequently_skipped
    assert EventTitlePreference("a", selected_count=1, skipped_count=3).skip_rate == 0.75
    assert EventTitlePreference("a", selected_count=0, skipped_count=4).is_frequently_skipped
    assert EventTitlePreference("a", selected_count=1, skipped_count=4).is_frequently_skipped
    assert EventTitlePreference("a", selected_count=4, skipped_count=1).is_frequently_selected
    assert not EventTitlePreference("a", selected_count=2, skipped_count=0).is_frequently_selected
    assert EventTitlePreference("a").skip_rate == 0.0
    assert EventTitlePreference("a").selection_rate == 0.0


def test_unknown_title_is_neither_skipped_nor_selected():
    store = TitlePreferenceStore()
    assert store.preference("nothing") is None
    assert not store.is_frequently_skipped("nothing")
    assert not store.is_frequently_selected("nothing")


def test_trim_keeps_most_recent_records_in_order():
    store = TitlePreferenceStore()
    store.record_selections([keep(f"Event {i}") for i in range(300)])
    store.record_selections([keep(f"Event {i}") for i in range(300, 520)])

    titles = [record.normalized_title for record in store.records]
    assert len(titles) == 500
    assert titles == [f"event {i}" for i in range(20, 520)]


def test_trim_is_positional_not_chronological():
    clock = FakeClock(BASE)
    store = TitlePreferenceStore(max_records=2, clock=clock)
    store.record_selections([keep("first")])
    clock.now = BASE - timedelta(days=2)
    store.record_selections([keep("second"), keep("third")])
    assert [record.normalized_title for record in store.records] == ["second", "third"]


def test_cleanup_removes_strictly_older_entries():
    clock = FakeClock(BASE - timedelta(days=181))
    store = TitlePreferenceStore(clock=clock)
    store.record_selections([keep("stale")])
    clock.now = BASE - timedelta(days=180)
    store.record_selections([keep("edge")])
    clock.now = BASE
    store.record_selections([keep("fresh")])

    assert store.cleanup_old_data() is True
    assert [record.normalized_title for record in store.records] == ["edge", "fresh"]
    assert set(store.preferences) == {"edge", "fresh"}
    assert store.cleanup_old_data() is False


def test_cleanup_evicts_preference_by_last_interaction():
    clock = FakeClock(BASE - timedelta(days=200))
    store = TitlePreferenceStore(clock=clock)
    store.record_selections([keep("standup"), keep("gym")])
    clock.now = BASE - timedelta(days=10)
    store.record_selections([keep("gym")])
    clock.now = BASE

    store.cleanup_old_data()
    assert store.preference("standup") is None
    assert store.preference("gym").selected_count == 2
    assert [record.normalized_title for record in store.records] == ["gym"]


def test_cleanup_runs_on_construction():
    storage = MemoryStorage()
    clock = FakeClock(BASE - timedelta(days=365))
    TitlePreferenceStore(storage=storage, clock=clock).record_selections([skip("old meeting")])

    clock.now = BASE
    store = TitlePreferenceStore(storage=storage, clock=clock)
    assert store.records == []
    assert store.preferences == {}
    assert storage.get(RECORDS_KEY) == []
    assert storage.get(PREFERENCES_KEY) == {}


def test_cleanup_does_not_save_when_nothing_changed():
    storage = CountingStorage()
    store = TitlePreferenceStore(storage=storage)
    assert storage.writes == 0
    store.record_selections([keep("standup")])
    writes = storage.writes
    assert store.cleanup_old_data() is False
    assert storage.writes == writes


def test_persistence_survives_reload():
    storage = MemoryStorage()
    store = TitlePreferenceStore(storage=storage)
    store.record_selections([skip("Lunch")] * 3 + [keep("Standup")])

    reloaded = TitlePreferenceStore(storage=storage)
    assert len(reloaded.records) == 4
    assert reloaded.is_frequently_skipped("lunch")
    assert reloaded.preference("standup").selected_count == 1


def test_sqlite_persistence(tmp_path):
    path = tmp_path / "learning" / "state.db"
    TitlePreferenceStore(storage=SqliteStorage(path)).record_selections([keep("Gym")] * 3)

    reloaded = TitlePreferenceStore(storage=SqliteStorage(path))
    assert reloaded.is_frequently_selected("gym")


def test_corrupt_file_loads_empty(tmp_path):
    path = tmp_path / "state.db"
    path.write_text("this is not a database\n" * 64, encoding="utf-8")
    store = TitlePreferenceStore(storage=SqliteStorage(path))
    assert store.records == []
    assert store.preferences == {}


def test_malformed_stored_entries_load_empty():
    storage = MemoryStorage()
    storage.set(RECORDS_KEY, [{"bogus": 1}])
    storage.set(PREFERENCES_KEY, ["not", "a", "mapping"])
    store = TitlePreferenceStore(storage=storage)
    assert store.records == []
    assert store.preferences == {}


def test_clear_all_learning_data():
    storage = MemoryStorage()
    store = TitlePreferenceStore(storage=storage)
    store.record_selections([skip("Lunch")] * 3)

    store.clear_all_learning_data()
    assert store.records == []
    assert store.preferences == {}
    assert storage.get(RECORDS_KEY) is None
    assert storage.get(PREFERENCES_KEY) is None
    assert TitlePreferenceStore(storage=storage).preferences == {}


def test_returned_preferences_are_copies():
    store = TitlePreferenceStore()
    store.record_selections([keep("Gym")])
    store.preference("gym").selected_count = 99
    assert store.preference("gym").selected_count == 1


def test_concurrent_recording_does_not_lose_updates():
    store = TitlePreferenceStore(max_records=10_000)

    def worker():
        for _ in range(50):
            store.record_selections([keep("standup")])

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert store.preference("standup").selected_count == 400
    assert len(store.records) == 400


def test_apply_learned_preferences():
    store = TitlePreferenceStore()
    store.record_selections([skip("Lunch"), keep("Gym"), keep("Holiday", all_day=True), skip("Birthday", all_day=True)] * 3)

    candidates = [keep("lunch"), skip("GYM"), skip("Holiday", all_day=True), keep("Birthday", all_day=True), skip("New thing")]
    adjusted = apply_learned_preferences(candidates, store)

    assert [item.is_selected for item in adjusted] == [False, True, False, False, False]
    assert [item.title for item in adjusted] == [item.title for item in candidates]
    assert candidates[0].is_selected is True


def test_zero_record_cap_keeps_no_records():
    store = TitlePreferenceStore(max_records=0)
    store.record_selections([keep(f"Event {i}") for i in range(5)])
    assert store.records == []
    assert store.preference("event 1").selected_count == 1


def test_negative_caps_are_rejected():
    with pytest.raises(ValueError):
        TitlePreferenceStore(max_records=-1)
    with pytest.raises(ValueError):
        TitlePreferenceStore(expiry_days=-5)


def test_reload_with_aware_clock_keeps_naive_history():
    storage = MemoryStorage()
    TitlePreferenceStore(storage=storage, clock=FakeClock(BASE)).record_selections([keep("Gym")])

    aware = FakeClock(BASE.replace(tzinfo=timezone.utc))
    store = TitlePreferenceStore(storage=storage, clock=aware)
    assert store.preference("gym").selected_count == 1
    assert store.cleanup_old_data() is False

    aware.now = aware.now + timedelta(days=365)
    assert store.cleanup_old_data() is True
    assert store.records == []


def test_reload_with_naive_clock_reads_aware_history():
    storage = MemoryStorage()
    aware_base = BASE.replace(tzinfo=timezone.utc)
    TitlePreferenceStore(storage=storage, clock=FakeClock(aware_base)).record_selections([skip("Lunch")])

    store = TitlePreferenceStore(storage=storage, clock=FakeClock(BASE + timedelta(days=365)))
    assert store.records == []
    assert store.preferences == {}
