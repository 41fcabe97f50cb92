"""Canary progression and rollback decision logic."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import StrEnum

from self_adjustment_engine.analytics.significance import StatisticalEvaluation, evaluate
from self_adjustment_engine.config import RolloutConfig
from self_adjustment_engine.contracts import Adjustment, now_utc


class RolloutAction(StrEnum):
    HOLD = "hold"
    PROGRESS = "progress"
    ROLLBACK = "rollback"


@dataclass(slots=True)
class RolloutDecision:
    action: RolloutAction
    evaluation: StatisticalEvaluation | None
    reason: str = ""
    stats: dict[str, float] = field(default_factory=dict)


@dataclass(slots=True)
class RolloutPolicy:
    """Decision thresholds for canary rollout governance."""

    config: RolloutConfig = field(default_factory=RolloutConfig)

    def has_enough_samples(self, adjustment: Adjustment) -> bool:
        return adjustment.total_samples >= self.config.min_samples_per_stage

    def can_progress(self, evaluation: StatisticalEvaluation) -> bool:
        return evaluation.p_value < self.config.significance_level and evaluation.effect_size > 0

    def decide(self, adjustment: Adjustment) -> RolloutDecision:
        """Return one of: hold, progress, rollback."""
        samples = float(adjustment.total_samples)
        if not self.has_enough_samples(adjustment):
            return RolloutDecision(
                action=RolloutAction.HOLD,
                evaluation=None,
                reason=f"Waiting for more samples ({adjustment.total_samples}/{self.config.min_samples_per_stage})",
                stats={"samples": samples},
            )

        evaluation = evaluate(adjustment.control_group, adjustment.treatment_group, self.config)
        stats = {
            "samples": samples,
            "p_value": evaluation.p_value,
            "effect_size": evaluation.effect_size,
            "performance_drop": evaluation.performance_drop,
        }
        if evaluation.rollback_reason:
            return RolloutDecision(RolloutAction.ROLLBACK, evaluation, evaluation.rollback_reason, stats)
        if self.can_progress(evaluation):
            return RolloutDecision(RolloutAction.PROGRESS, evaluation, "significant improvement", stats)
        return RolloutDecision(
            RolloutAction.HOLD,
            evaluation,
            f"Not ready to progress (p={evaluation.p_value:.4f}, effect={evaluation.effect_size:.4f})",
            stats,
        )

    def with_metrics(self, adjustment: Adjustment, evaluation: StatisticalEvaluation) -> Adjustment:
        """Copy of the adjustment carrying the refreshed statistics."""
        return replace(
            adjustment,
            p_value=evaluation.p_value,
            effect_size=evaluation.effect_size,
            is_significant=evaluation.is_significant(self.config.significance_level),
            performance_drop=evaluation.performance_drop,
            success_rate_drop=evaluation.success_rate_drop,
            confidence_level=self.config.confidence_level,
            updated_at=now_utc(),
        )
