"""Hourly monitoring loop with a skip-on-overlap reentrancy guard."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable
import logging
import threading
import time

import pandas as pd

from self_adjustment_engine.config import SchedulerConfig
from self_adjustment_engine.engine import MonitoringSummary, SelfAdjustmentEngine
from self_adjustment_engine.time_utils import floor_to_hour, next_hour, to_utc_timestamp

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class MonitoringRunResult:
    started: bool
    message: str
    summary: MonitoringSummary | None = None


class MonitoringScheduler:
    """
    Runs `monitor_adjustments` with at most one tick in flight per process.

    The guard is a class-level lock shared by every scheduler instance, taken with a
    non-blocking acquire: an overlapping tick (scheduled or manual, from any
    scheduler) is skipped, never queued. The lock is released on every exit path.
    """

    _guard = threading.Lock()

    def __init__(self, engine: SelfAdjustmentEngine) -> None:
        self.engine = engine
        self.last_summary: MonitoringSummary | None = None
        self.last_run_at: pd.Timestamp | None = None
        self.skipped_ticks = 0

    @property
    def is_running(self) -> bool:
        return self._guard.locked()

    def run_tick(self) -> MonitoringRunResult:
        if not self._guard.acquire(blocking=False):
            self.skipped_ticks += 1
            logger.info("Previous monitoring still running, skipping")
            return MonitoringRunResult(started=False, message="Monitoring already running")
        try:
            logger.info("Starting adjustment monitoring")
            summary = self.engine.monitor_adjustments()
            self.last_summary = summary
            self.last_run_at = to_utc_timestamp(summary.started_at)
            return MonitoringRunResult(started=True, message="Monitoring completed", summary=summary)
        finally:
            self._guard.release()

    def trigger_manual(self) -> MonitoringRunResult:
        logger.info("Manual monitoring trigger requested")
        return self.run_tick()

    def status(self) -> dict[str, object]:
        return {
            "is_running": self.is_running,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at is not None else None,
            "skipped_ticks": self.skipped_ticks,
            "schedule": "Every hour on the hour (UTC)",
        }


class HourlyMonitoringLoop:
    """Fires one scheduler tick per UTC hour."""

    def __init__(
        self,
        scheduler: MonitoringScheduler,
        config: SchedulerConfig | None = None,
        clock: Callable[[], pd.Timestamp] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.scheduler = scheduler
        self.config = config or SchedulerConfig()
        self._clock = clock or (lambda: to_utc_timestamp(pd.Timestamp.now(tz="UTC")))
        self._sleep = sleep
        self._last_executed_hour: pd.Timestamp | None = None
        self._stop = threading.Event()

    def stop(self) -> None:
        self._stop.set()

    def _should_run(self, current_utc: pd.Timestamp) -> bool:
        hour = floor_to_hour(current_utc)
        return self._last_executed_hour is None or hour > self._last_executed_hour

    def run_once(self, current_utc: pd.Timestamp | None = None) -> MonitoringRunResult:
        hour = floor_to_hour(current_utc if current_utc is not None else self._clock())
        result = self.scheduler.run_tick()
        self._last_executed_hour = hour
        return result

    def seconds_until_next_tick(self, current_utc: pd.Timestamp | None = None) -> float:
        now = to_utc_timestamp(current_utc if current_utc is not None else self._clock())
        return max((next_hour(now) - now).total_seconds(), 0.0)

    def run_forever(self) -> list[MonitoringRunResult]:
        results: list[MonitoringRunResult] = []
        cycles = 0
        while not self._stop.is_set():
            now = self._clock()
            if self._should_run(now):
                try:
                    results.append(self.run_once(now))
                    cycles += 1
                except Exception:
                    logger.exception("Monitoring tick failed")
                    if self.config.stop_on_exception:
                        raise
                    self._last_executed_hour = floor_to_hour(now)
            if self.config.max_cycles is not None and cycles >= self.config.max_cycles:
                break
            wait = min(self.seconds_until_next_tick(now), float(max(self.config.sleep_check_seconds, 1)))
            self._sleep(max(wait, 1.0))
        return results
