"""Print or export a rollout report for all (or one guild's) adjustments."""

from __future__ import annotations

import argparse
from pathlib import Path

from self_adjustment_engine.analytics import rollout_report, summarize_by_status
from self_adjustment_engine.config import EngineConfig, load_config
from self_adjustment_engine.storage.sqlite import SQLiteAdjustmentRepository


def main() -> None:
    parser = argparse.ArgumentParser(description="Adjustment rollout report.")
    parser.add_argument("--config", default=None, help="YAML engine config path.")
    parser.add_argument("--guild", default=None, help="Restrict to one guild id.")
    parser.add_argument("--output-csv", default=None, help="Optional CSV export path.")
    args = parser.parse_args()

    config = load_config(Path(args.config)) if args.config else EngineConfig()
    repository = SQLiteAdjustmentRepository(config.storage.database_path)
    report = rollout_report(repository.find(guild_id=args.guild))

    if report.empty:
        print("No adjustments found.")
        return
    print(report.to_string(index=False))
    print()
    print(summarize_by_status(report).to_string())

    if args.output_csv:
        path = Path(args.output_csv)
        path.parent.mkdir(parents=True, exist_ok=True)
        report.to_csv(path, index=False)
        print(f"Saved report to {path}")


if __name__ == "__main__":
    main()
