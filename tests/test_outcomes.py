from __future__ import annotations

import pytest

from self_adjustment_engine.contracts import (
    Adjustment,
    AdjustmentType,
    GroupStats,
    InteractionOutcome,
    OutcomeGroup,
    PatternType,
)
from self_adjustment_engine.errors import StaleWriteError
from self_adjustment_engine.outcomes import OutcomeAggregator, apply_outcome
from self_adjustment_engine.storage import InMemoryAdjustmentRepository, InMemoryOutcomeLog


class FlakyRepository(InMemoryAdjustmentRepository):
    """Rejects the first `failures` saves as stale."""

    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures

    def save(self, adjustment: Adjustment) -> Adjustment:
        if self.failures > 0:
            self.failures -= 1
            raise StaleWriteError(adjustment.adjustment_id, adjustment.version)
        return super().save(adjustment)


def _adjustment() -> Adjustment:
    return Adjustment(
        guild_id="guild-1",
        pattern_id="pattern-1",
        pattern_type=PatternType.TOOL_RELIABILITY,
        adjustment_type=AdjustmentType.TOOL_USAGE,
        description="avoid flaky tool",
        previous_configuration={},
        new_configuration={"deprecated_tool": "x"},
    )


def test_incremental_mean_of_iterations() -> None:
    stats = GroupStats()
    for iterations in [2, 4, 6]:
        stats = apply_outcome(stats, InteractionOutcome(success=True, iterations=iterations))
    assert stats.samples == 3
    assert stats.avg_iterations == pytest.approx(4.0)
    assert stats.avg_satisfaction == 0.0


def test_zero_satisfaction_is_no_signal() -> None:
    stats = GroupStats()
    stats = apply_outcome(stats, InteractionOutcome(success=True, iterations=1, user_satisfaction=1))
    assert stats.avg_satisfaction == pytest.approx(1.0)
    stats = apply_outcome(stats, InteractionOutcome(success=True, iterations=1, user_satisfaction=0))
    assert stats.avg_satisfaction == pytest.approx(1.0)
    stats = apply_outcome(stats, InteractionOutcome(success=False, iterations=1, user_satisfaction=-1))
    assert stats.avg_satisfaction == pytest.approx(1.0 / 3.0)


def test_success_and_error_counts() -> None:
    stats = GroupStats()
    stats = apply_outcome(stats, InteractionOutcome(success=True, iterations=1))
    stats = apply_outcome(stats, InteractionOutcome(success=False, error=True, iterations=3))
    stats = apply_outcome(stats, InteractionOutcome(success=True, iterations=2))
    stats = apply_outcome(stats, InteractionOutcome(success=True, iterations=2))
    assert stats.success_count == 3
    assert stats.error_count == 1
    assert stats.success_rate == pytest.approx(0.75)


def test_aggregator_updates_group_and_outcome_log() -> None:
    repository = InMemoryAdjustmentRepository()
    log = InMemoryOutcomeLog()
    adjustment = repository.add(_adjustment())
    aggregator = OutcomeAggregator(repository, log)

    aggregator.record_outcome(adjustment.adjustment_id, "control", InteractionOutcome(success=True, iterations=2))
    saved = aggregator.record_outcome(
        adjustment.adjustment_id,
        OutcomeGroup.TREATMENT,
        InteractionOutcome(success=False, error=True, iterations=5),
    )
    assert saved.control_group.samples == 1
    assert saved.treatment_group.samples == 1
    assert saved.treatment_group.error_count == 1
    assert saved.version == 2
    assert log.count("guild-1") == 2

    aggregator.record_interaction("guild-1", InteractionOutcome(success=True))
    assert log.count("guild-1") == 3


def test_aggregator_retries_stale_writes() -> None:
    repository = FlakyRepository(failures=2)
    adjustment = repository.add(_adjustment())
    aggregator = OutcomeAggregator(repository, InMemoryOutcomeLog(), max_write_retries=3)
    saved = aggregator.record_outcome(
        adjustment.adjustment_id, OutcomeGroup.CONTROL, InteractionOutcome(success=True, iterations=1)
    )
    assert saved.control_group.samples == 1


def test_aggregator_gives_up_after_retry_limit() -> None:
    repository = FlakyRepository(failures=5)
    adjustment = repository.add(_adjustment())
    log = InMemoryOutcomeLog()
    aggregator = OutcomeAggregator(repository, log, max_write_retries=2)
    with pytest.raises(StaleWriteError):
        aggregator.record_outcome(
            adjustment.adjustment_id, OutcomeGroup.CONTROL, InteractionOutcome(success=True, iterations=1)
        )
    assert log.count("guild-1") == 0
    assert repository.get(adjustment.adjustment_id).control_group.samples == 0


def test_unknown_group_is_rejected() -> None:
    repository = InMemoryAdjustmentRepository()
    adjustment = repository.add(_adjustment())
    aggregator = OutcomeAggregator(repository, InMemoryOutcomeLog())
    with pytest.raises(ValueError):
        aggregator.record_outcome(adjustment.adjustment_id, "holdout", InteractionOutcome(success=True))
