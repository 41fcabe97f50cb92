"""Run the hourly adjustment monitoring loop (single tick or bounded loop)."""

from __future__ import annotations

import argparse
from pathlib import Path

from self_adjustment_engine.bootstrap import build_monitoring_loop, build_sqlite_engine
from self_adjustment_engine.config import EngineConfig, load_config
from self_adjustment_engine.log import configure_logging


def main() -> None:
    parser = argparse.ArgumentParser(description="Run hourly adjustment monitoring.")
    parser.add_argument("--config", default=None, help="YAML engine config path.")
    parser.add_argument("--once", action="store_true", help="Run a single tick and exit.")
    parser.add_argument("--max-cycles", type=int, default=None, help="Max ticks for loop mode.")
    parser.add_argument("--purge", action="store_true", help="Purge expired records before monitoring.")
    args = parser.parse_args()

    config = load_config(Path(args.config)) if args.config else EngineConfig()
    if args.max_cycles is not None:
        config.scheduler.max_cycles = max(args.max_cycles, 1)
    configure_logging(config.log_level, config.storage.log_file)

    engine = build_sqlite_engine(config)
    if args.purge:
        print(f"Purged {engine.purge_expired()} expired adjustments")

    loop = build_monitoring_loop(engine)
    if args.once:
        result = loop.scheduler.trigger_manual()
        print("Single-tick result:", result)
        return

    results = loop.run_forever()
    print(f"Completed ticks: {len(results)}")
    for row in results:
        print(row)


if __name__ == "__main__":
    main()
