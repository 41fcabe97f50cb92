from __future__ import annotations

import json
import logging

from self_adjustment_engine.alerting import AlertRouter, CollectingAlertSink, FileAlertSink
from self_adjustment_engine.config_store import InMemoryConfigStore, reconcile
from self_adjustment_engine.contracts import (
    Adjustment,
    AdjustmentStatus,
    AdjustmentType,
    AlertSeverity,
    PatternType,
)
from self_adjustment_engine.log import configure_logging


def test_router_fans_out_by_severity(tmp_path) -> None:
    everything = CollectingAlertSink()
    pager = CollectingAlertSink()
    audit = tmp_path / "alerts" / "events.jsonl"
    router = AlertRouter(
        default_sinks=[everything, FileAlertSink(audit)],
        severity_sinks={AlertSeverity.CRITICAL: [pager]},
    )
    router.info("engine", "Canary stage advanced", {"stage": "canary_25"})
    router.critical("rollback_manager", "Automatic rollback triggered")

    assert everything.messages() == ["Canary stage advanced", "Automatic rollback triggered"]
    assert pager.messages() == ["Automatic rollback triggered"]
    lines = [json.loads(line) for line in audit.read_text(encoding="utf-8").splitlines()]
    assert [line["severity"] for line in lines] == ["info", "critical"]
    assert lines[0]["details"] == {"stage": "canary_25"}


def test_configure_logging_writes_package_logs(tmp_path) -> None:
    log_file = tmp_path / "logs" / "engine.log"
    logger = configure_logging("debug", log_file)
    try:
        logging.getLogger("self_adjustment_engine.engine").info("tick finished")
        for handler in logger.handlers:
            handler.flush()
        assert logger.level == logging.DEBUG
        assert "tick finished" in log_file.read_text(encoding="utf-8")
    finally:
        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)
        logger.propagate = True


def test_reconcile_maps_status_to_store_action() -> None:
    store = InMemoryConfigStore()
    adjustment = Adjustment(
        guild_id="guild-1",
        pattern_id="pattern-1",
        pattern_type=PatternType.MODEL_ACCURACY,
        adjustment_type=AdjustmentType.MODEL_PREFERENCE,
        description="prefer model a",
        previous_configuration={"model_weights": "baseline"},
        new_configuration={"model": "a"},
    )
    assert reconcile(adjustment, store) is None

    adjustment.status = AdjustmentStatus.ACTIVE
    adjustment.rollout_progress = 50
    assert reconcile(adjustment, store) == "apply"
    assert store.live["guild-1"].traffic_share == 0.5

    adjustment.status = AdjustmentStatus.FAILED
    assert reconcile(adjustment, store) == "revert"
    assert store.live["guild-1"].configuration == {"model_weights": "baseline"}
    assert [action for action, _, _ in store.history] == ["apply", "revert"]
