"""Typed builders that turn approved patterns into bounded adjustment proposals."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from self_adjustment_engine.config import ProposalConfig
from self_adjustment_engine.contracts import Adjustment, AdjustmentType, Pattern, PatternType


class MalformedPatternError(ValueError):
    """Raised when a pattern's data block lacks the fields its builder needs."""


def capped_weight_change(improvement: float, max_weight_change: float) -> float:
    return min(float(improvement), float(max_weight_change))


def _field(data: dict[str, Any], key: str) -> Any:
    if key not in data or data[key] is None:
        raise MalformedPatternError(f"pattern data missing '{key}'")
    return data[key]


class ProposalBuilder(ABC):
    """Builds one Adjustment (status pending_approval) from one approved pattern."""

    pattern_type: PatternType
    adjustment_type: AdjustmentType
    baseline_key: str

    def build(self, pattern: Pattern, config: ProposalConfig, previous: dict[str, Any] | None = None) -> Adjustment:
        description, new_configuration = self.describe(pattern, config)
        new_configuration["reason"] = pattern.description
        return Adjustment(
            guild_id=pattern.guild_id,
            pattern_id=pattern.pattern_id,
            pattern_type=pattern.pattern_type,
            adjustment_type=self.adjustment_type,
            description=description[:1000],
            previous_configuration=previous if previous is not None else {self.baseline_key: "baseline"},
            new_configuration=new_configuration,
        )

    @abstractmethod
    def describe(self, pattern: Pattern, config: ProposalConfig) -> tuple[str, dict[str, Any]]:
        """Return (description, new_configuration)."""


class ModelAccuracyBuilder(ProposalBuilder):
    pattern_type = PatternType.MODEL_ACCURACY
    adjustment_type = AdjustmentType.MODEL_PREFERENCE
    baseline_key = "model_weights"

    def describe(self, pattern: Pattern, config: ProposalConfig) -> tuple[str, dict[str, Any]]:
        best = _field(pattern.data, "best_model")
        worst = _field(pattern.data, "worst_model")
        improvement = float(_field(best, "success_rate")) - float(_field(worst, "success_rate"))
        weight_change = capped_weight_change(improvement, config.max_weight_change)
        name = _field(best, "name")
        description = (
            f"Increase {name} usage by {weight_change * 100:.1f}% "
            f"based on {improvement * 100:.1f}% higher success rate"
        )
        return description, {"model": name, "weight_change": weight_change}


class ToolReliabilityBuilder(ProposalBuilder):
    pattern_type = PatternType.TOOL_RELIABILITY
    adjustment_type = AdjustmentType.TOOL_USAGE
    baseline_key = "tool_preferences"

    def describe(self, pattern: Pattern, config: ProposalConfig) -> tuple[str, dict[str, Any]]:
        tool = _field(pattern.data, "tool_name")
        success_rate = float(_field(pattern.data, "success_rate"))
        breakdown: dict[str, int] = pattern.data.get("error_breakdown") or {}
        primary_error = max(breakdown, key=breakdown.get) if breakdown else None
        description = (
            f'Reduce usage of "{tool}" tool ({success_rate * 100:.1f}% success rate) in favor of alternatives'
        )
        return description, {
            "deprecated_tool": tool,
            "success_rate": success_rate,
            "primary_error": primary_error,
        }


class ComplexityCorrelationBuilder(ProposalBuilder):
    pattern_type = PatternType.COMPLEXITY_CORRELATION
    adjustment_type = AdjustmentType.COMPLEXITY_THRESHOLD
    baseline_key = "complexity_thresholds"

    def describe(self, pattern: Pattern, config: ProposalConfig) -> tuple[str, dict[str, Any]]:
        correlation = float(_field(pattern.data, "correlation"))
        direction = "positive" if correlation > 0 else "negative"
        description = f"Adjust complexity thresholds based on {direction} correlation (r={correlation:.3f})"
        return description, {
            "correlation": correlation,
            "avg_iterations": pattern.data.get("avg_iterations"),
            "avg_tool_count": pattern.data.get("avg_tool_count"),
            "adjustment": "increase_threshold" if correlation > 0 else "decrease_threshold",
        }


class SatisfactionPatternBuilder(ProposalBuilder):
    pattern_type = PatternType.SATISFACTION_PATTERN
    adjustment_type = AdjustmentType.MODEL_PREFERENCE
    baseline_key = "model_weights"

    def describe(self, pattern: Pattern, config: ProposalConfig) -> tuple[str, dict[str, Any]]:
        model = _field(pattern.data, "best_model")
        positive_rate = float(_field(pattern.data, "positive_rate"))
        weight_change = capped_weight_change(positive_rate - 0.5, config.max_weight_change)
        description = f"Increase {model} usage based on {positive_rate * 100:.1f}% positive feedback rate"
        return description, {
            "model": model,
            "weight_change": weight_change,
            "satisfaction_rate": positive_rate,
        }


PROPOSAL_BUILDERS: dict[PatternType, ProposalBuilder] = {
    builder.pattern_type: builder
    for builder in (
        ModelAccuracyBuilder(),
        ToolReliabilityBuilder(),
        ComplexityCorrelationBuilder(),
        SatisfactionPatternBuilder(),
    )
}

_unhandled = set(PatternType) - set(PROPOSAL_BUILDERS)
if _unhandled:
    raise RuntimeError(f"No proposal builder registered for: {sorted(_unhandled)}")


def builder_for(pattern_type: PatternType) -> ProposalBuilder:
    return PROPOSAL_BUILDERS[PatternType(pattern_type)]
