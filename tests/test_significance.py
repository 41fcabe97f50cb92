from __future__ import annotations

import pytest

from self_adjustment_engine.analytics import (
    evaluate,
    normal_upper_tail,
    two_proportion_z_score,
    two_tailed_p_value,
)
from self_adjustment_engine.config import RolloutConfig
from self_adjustment_engine.contracts import GroupStats


def test_p_value_matches_reference_at_1_96() -> None:
    assert two_tailed_p_value(1.96) == pytest.approx(0.05, abs=1e-3)
    assert two_tailed_p_value(-1.96) == pytest.approx(0.05, abs=1e-3)
    assert normal_upper_tail(1.96) == pytest.approx(0.025, abs=1e-3)


def test_p_value_is_bounded_at_zero_z() -> None:
    p = two_tailed_p_value(0.0)
    assert 0.0 <= p <= 1.0
    assert p == pytest.approx(1.0, abs=1e-6)


def test_significant_improvement_metrics() -> None:
    control = GroupStats.from_counts(samples=100, success_count=80)
    treatment = GroupStats.from_counts(samples=100, success_count=95)
    result = evaluate(control, treatment)
    assert result.effect_size == pytest.approx(0.1875)
    assert result.performance_drop == pytest.approx(-0.15)
    assert result.success_rate_drop == pytest.approx(-0.1875)
    assert result.z_score > 3.0
    assert result.p_value < 0.05
    assert result.rollback_reason is None


def test_hard_safety_threshold_triggers_rollback_reason() -> None:
    control = GroupStats.from_counts(samples=100, success_count=90)
    treatment = GroupStats.from_counts(samples=100, success_count=75)
    result = evaluate(control, treatment)
    assert result.performance_drop == pytest.approx(0.15)
    assert result.rollback_reason is not None
    assert "dropped" in result.rollback_reason


def test_stalled_experiment_triggers_rollback_after_stall_limit() -> None:
    control = GroupStats.from_counts(samples=200, success_count=100)
    treatment = GroupStats.from_counts(samples=200, success_count=102)
    result = evaluate(control, treatment)
    assert result.p_value > 0.05
    assert result.rollback_reason is not None
    assert "Not statistically significant after 400 samples" in result.rollback_reason


def test_not_significant_below_stall_limit_is_not_a_rollback() -> None:
    control = GroupStats.from_counts(samples=100, success_count=50)
    treatment = GroupStats.from_counts(samples=100, success_count=51)
    result = evaluate(control, treatment)
    assert result.p_value > 0.05
    assert result.rollback_reason is None


def test_significant_negative_effect_triggers_rollback_reason() -> None:
    control = GroupStats.from_counts(samples=1000, success_count=800)
    treatment = GroupStats.from_counts(samples=1000, success_count=740)
    result = evaluate(control, treatment)
    assert result.performance_drop < 0.10
    assert result.effect_size < -0.05
    assert result.p_value < 0.05
    assert result.rollback_reason is not None
    assert "negative effect" in result.rollback_reason


def test_empty_groups_yield_zero_z_and_no_effect() -> None:
    assert two_proportion_z_score(GroupStats(), GroupStats.from_counts(50, 40)) == 0.0
    result = evaluate(GroupStats(), GroupStats())
    assert result.z_score == 0.0
    assert result.effect_size == 0.0
    assert result.success_rate_drop == 0.0


def test_thresholds_come_from_config() -> None:
    control = GroupStats.from_counts(samples=100, success_count=90)
    treatment = GroupStats.from_counts(samples=100, success_count=75)
    lenient = RolloutConfig(rollback_threshold=0.20)
    result = evaluate(control, treatment, lenient)
    assert result.rollback_reason is not None
    assert "dropped" not in result.rollback_reason
    assert "negative effect" in result.rollback_reason
