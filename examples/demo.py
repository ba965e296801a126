"""Demo script for behavior-engine."""

import sys
from datetime import datetime
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from behavior_engine.adapters.csv_adapter import parse
from behavior_engine.context import AIContext, RecentTaskContext, TimeContext, assemble_context
from behavior_engine.corrections import CorrectionLog
from behavior_engine.signals import extract_signals
from behavior_engine.title_preferences import PlanEventItem, TitlePreferenceStore, apply_learned_preferences


def main() -> None:
    events = parse(str(Path(__file__).parent / "sample_feedback.csv"))
    signals = extract_signals(events, {"1_9": 6, "2_18": 4})

    corrections = CorrectionLog()
    for title in ("Gym with Sam", "Gym before work"):
        corrections.record_correction("category", "Personal", "Health", title)

    context = AIContext(
        recent_tasks=[RecentTaskContext("Write quarterly report", "Work", duration=90)],
        corrections_summary=corrections.learning_summary(),
        custom_categories=["Side project"],
        time_context=TimeContext.from_datetime(datetime(2025, 1, 6, 9)),
    )
    print(assemble_context(context, signals))
    print()

    store = TitlePreferenceStore()
    for _ in range(3):
        store.record_selections([PlanEventItem("Team Sync", is_selected=False), PlanEventItem("Gym", is_selected=True)])
    candidates = [PlanEventItem("team sync"), PlanEventItem("Gym", is_selected=False)]
    for item in apply_learned_preferences(candidates, store):
        print(f"{item.title}: {'selected' if item.is_selected else 'skipped'}")


if __name__ == "__main__":
    main()
