"""Rolling control/treatment aggregation of classified interaction outcomes."""

from __future__ import annotations

from dataclasses import replace
import logging

from self_adjustment_engine.contracts import (
    Adjustment,
    GroupStats,
    InteractionOutcome,
    OutcomeGroup,
    now_utc,
)
from self_adjustment_engine.errors import StaleWriteError
from self_adjustment_engine.storage.base import AdjustmentRepository, OutcomeLog

logger = logging.getLogger(__name__)


def apply_outcome(stats: GroupStats, outcome: InteractionOutcome) -> GroupStats:
    """
    Fold one outcome into a group aggregate using incremental means.

    A zero satisfaction score means "no feedback" and leaves avg_satisfaction unchanged.
    The satisfaction mean is divided by the full sample count, not by the number of
    rated interactions.
    """
    n = stats.samples + 1
    success_count = stats.success_count + (1 if outcome.success else 0)
    error_count = stats.error_count + (1 if outcome.error else 0)
    avg_iterations = (stats.avg_iterations * (n - 1) + outcome.iterations) / n
    avg_satisfaction = stats.avg_satisfaction
    if outcome.user_satisfaction:
        avg_satisfaction = (stats.avg_satisfaction * (n - 1) + outcome.user_satisfaction) / n
    return GroupStats(
        samples=n,
        success_count=success_count,
        success_rate=success_count / n,
        avg_iterations=avg_iterations,
        avg_satisfaction=avg_satisfaction,
        error_count=error_count,
    )


class OutcomeAggregator:
    """Write side of the A/B experiment: appends to the outcome log and updates group stats."""

    def __init__(
        self,
        repository: AdjustmentRepository,
        outcome_log: OutcomeLog,
        max_write_retries: int = 3,
    ) -> None:
        self.repository = repository
        self.outcome_log = outcome_log
        self.max_write_retries = max(1, int(max_write_retries))

    def record_interaction(self, guild_id: str, outcome: InteractionOutcome) -> None:
        """Record an outcome that is not attributed to any experiment (baseline data)."""
        self.outcome_log.append(guild_id, outcome)

    def record_outcome(
        self,
        adjustment_id: str,
        group: OutcomeGroup | str,
        outcome: InteractionOutcome,
    ) -> Adjustment:
        group = OutcomeGroup(group)
        attempt = 0
        while True:
            attempt += 1
            adjustment = self.repository.get(adjustment_id)
            updated = apply_outcome(adjustment.group(group), outcome)
            if group == OutcomeGroup.CONTROL:
                candidate = replace(adjustment, control_group=updated, updated_at=now_utc())
            else:
                candidate = replace(adjustment, treatment_group=updated, updated_at=now_utc())
            try:
                saved = self.repository.save(candidate)
                break
            except StaleWriteError:
                if attempt >= self.max_write_retries:
                    raise
                logger.debug("Stale write on %s (attempt %d), retrying", adjustment_id, attempt)
        self.outcome_log.append(adjustment.guild_id, outcome, adjustment_id=adjustment_id, group=group)
        return saved
