from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from self_adjustment_engine.analytics import REPORT_COLUMNS, rollout_report, summarize_by_status
from self_adjustment_engine.config import EngineConfig, load_config, save_config
from self_adjustment_engine.contracts import (
    Adjustment,
    AdjustmentStatus,
    AdjustmentType,
    GroupStats,
    OutcomeGroup,
    PatternType,
    RolloutStage,
)
from self_adjustment_engine.governance import assign_group

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _adjustment(guild_id: str, status: AdjustmentStatus, progress: int = 0, **overrides) -> Adjustment:
    values = dict(
        guild_id=guild_id,
        pattern_id=f"p-{guild_id}-{status}",
        pattern_type=PatternType.MODEL_ACCURACY,
        adjustment_type=AdjustmentType.MODEL_PREFERENCE,
        description="prefer model a",
        previous_configuration={},
        new_configuration={"model": "a"},
        status=status,
        rollout_progress=progress,
    )
    values.update(overrides)
    return Adjustment(**values)


def test_yaml_round_trip(tmp_path) -> None:
    config = EngineConfig()
    config.rollout.min_samples_per_stage = 250
    config.scheduler.max_cycles = 4
    path = tmp_path / "engine.yaml"
    save_config(config, path)
    loaded = load_config(path)
    assert loaded == config
    assert loaded.rollout.stall_sample_limit == 750


def test_partial_config_keeps_defaults() -> None:
    config = EngineConfig.from_dict({"proposals": {"cooldown_days": 3}, "log_level": "DEBUG"})
    assert config.proposals.cooldown_days == 3
    assert config.proposals.min_outcomes_for_adjustment == 1000
    assert config.rollout.rollback_threshold == pytest.approx(0.10)
    assert config.retention.completed_retention_days == 365
    assert config.log_level == "DEBUG"


def test_rollout_report_columns_and_order() -> None:
    older = _adjustment("g1", AdjustmentStatus.ROLLED_BACK, timestamp=NOW - timedelta(days=3))
    newer = _adjustment(
        "g1",
        AdjustmentStatus.ACTIVE,
        progress=25,
        rollout_stage=RolloutStage.CANARY_25,
        timestamp=NOW - timedelta(days=1),
        control_group=GroupStats.from_counts(100, 80),
        treatment_group=GroupStats.from_counts(100, 90),
    )
    report = rollout_report([older, newer], now=NOW)
    assert list(report.columns) == REPORT_COLUMNS
    assert list(report["adjustment_id"]) == [newer.adjustment_id, older.adjustment_id]
    assert report.loc[0, "improvement_pct"] == pytest.approx(12.5)
    assert report.loc[0, "status"] == "active"

    empty = rollout_report([], now=NOW)
    assert empty.empty
    assert list(empty.columns) == REPORT_COLUMNS


def test_summarize_by_status() -> None:
    rows = [
        _adjustment("g1", AdjustmentStatus.ACTIVE),
        _adjustment("g1", AdjustmentStatus.COMPLETED),
        _adjustment("g2", AdjustmentStatus.COMPLETED),
    ]
    matrix = summarize_by_status(rollout_report(rows, now=NOW))
    assert matrix.loc["g1", "active"] == 1
    assert matrix.loc["g1", "completed"] == 1
    assert matrix.loc["g2", "active"] == 0
    assert matrix.loc["g2", "completed"] == 1


def test_pending_adjustment_routes_everything_to_control() -> None:
    pending = _adjustment("g1", AdjustmentStatus.PENDING_APPROVAL)
    assert {assign_group(pending, f"user-{i}") for i in range(200)} == {OutcomeGroup.CONTROL}


def test_completed_adjustment_routes_everything_to_treatment() -> None:
    completed = _adjustment("g1", AdjustmentStatus.COMPLETED, progress=100)
    assert {assign_group(completed, f"user-{i}") for i in range(200)} == {OutcomeGroup.TREATMENT}


def test_canary_share_tracks_rollout_progress_and_is_stable() -> None:
    active = _adjustment("g1", AdjustmentStatus.ACTIVE, progress=25)
    groups = [assign_group(active, f"user-{i}") for i in range(10_000)]
    share = groups.count(OutcomeGroup.TREATMENT) / len(groups)
    assert share == pytest.approx(0.25, abs=0.02)
    assert [assign_group(active, f"user-{i}") for i in range(100)] == groups[:100]
