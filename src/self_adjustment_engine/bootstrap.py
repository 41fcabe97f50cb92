"""Wiring helpers for SQLite-backed deployments."""

from __future__ import annotations

from self_adjustment_engine.alerting import AlertRouter
from self_adjustment_engine.config import EngineConfig
from self_adjustment_engine.config_store import ConfigStore
from self_adjustment_engine.engine import SelfAdjustmentEngine
from self_adjustment_engine.orchestration.monitoring_loop import HourlyMonitoringLoop, MonitoringScheduler
from self_adjustment_engine.storage.sqlite import (
    SQLiteAdjustmentRepository,
    SQLiteOutcomeLog,
    SQLitePatternStore,
)


def build_sqlite_engine(
    config: EngineConfig | None = None,
    alert_router: AlertRouter | None = None,
    config_store: ConfigStore | None = None,
) -> SelfAdjustmentEngine:
    cfg = config or EngineConfig()
    db_path = cfg.storage.database_path
    return SelfAdjustmentEngine(
        repository=SQLiteAdjustmentRepository(db_path),
        patterns=SQLitePatternStore(db_path),
        outcome_log=SQLiteOutcomeLog(db_path),
        config=cfg,
        alert_router=alert_router or AlertRouter.with_console_and_file(cfg.storage.alerts_path),
        config_store=config_store,
    )


def build_monitoring_loop(engine: SelfAdjustmentEngine) -> HourlyMonitoringLoop:
    return HourlyMonitoringLoop(MonitoringScheduler(engine), config=engine.config.scheduler)
