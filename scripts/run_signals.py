"""Extract behavioral signals from a CSV/JSON feedback file."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from behavior_engine.adapters import csv_adapter, json_adapter
from behavior_engine.signals import extract_signals


def _load_events(path: Path):
    suffix = path.suffix.lower()
    if suffix == ".csv":
        return csv_adapter.parse(str(path))
    if suffix == ".json":
        return json_adapter.parse(str(path))
    raise ValueError("Unsupported input format, expected .csv or .json")


def _to_jsonable(value):
    if isinstance(value, dict):
        return {key: _to_jsonable(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_to_jsonable(item) for item in value]
    if hasattr(value, "display_name"):
        return value.display_name
    if hasattr(value, "value"):
        return value.value
    return value


def main() -> None:
    parser = argparse.ArgumentParser(description="Extract behavioral signals from suggestion feedback")
    parser.add_argument("--data", required=True, help="Path to CSV/JSON feedback events file")
    parser.add_argument("--patterns", help="Path to JSON completion patterns ({\"<category>_<hour>\": count})")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")
    args = parser.parse_args()

    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    events = _load_events(Path(args.data))
    patterns = json_adapter.parse_completion_patterns(args.patterns) if args.patterns else {}
    signals = extract_signals(events, patterns)

    report = _to_jsonable(asdict(signals))
    report["is_cold_start"] = signals.is_cold_start
    report["prompt"] = signals.to_prompt_string()
    print(json.dumps(report, indent=2))


if __name__ == "__main__":
    main()
