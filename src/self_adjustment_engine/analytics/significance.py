"""Two-proportion significance testing for control/treatment comparisons."""

from __future__ import annotations

from dataclasses import asdict, dataclass

import numpy as np

from self_adjustment_engine.config import RolloutConfig
from self_adjustment_engine.contracts import GroupStats

# Abramowitz & Stegun 26.2.17 coefficients.
_AS_P = 0.2316419
_AS_B = (0.319381530, -0.356563782, 1.781477937, -1.821255978, 1.330274429)
_INV_SQRT_2PI = 0.3989422804014327


@dataclass(slots=True)
class StatisticalEvaluation:
    p_value: float
    effect_size: float
    performance_drop: float
    success_rate_drop: float
    z_score: float
    rollback_reason: str | None = None

    def is_significant(self, significance_level: float = 0.05) -> bool:
        return self.p_value < significance_level

    def to_dict(self) -> dict[str, float | str | None]:
        return asdict(self)


def normal_upper_tail(z: float) -> float:
    """Upper-tail probability 1 - Phi(z) for z >= 0 (rational approximation)."""
    z = abs(float(z))
    t = 1.0 / (1.0 + _AS_P * z)
    density = _INV_SQRT_2PI * float(np.exp(-z * z / 2.0))
    poly = 0.0
    for coefficient in reversed(_AS_B):
        poly = t * (coefficient + poly)
    return density * poly


def two_tailed_p_value(z: float) -> float:
    return float(min(1.0, max(0.0, 2.0 * normal_upper_tail(z))))


def two_proportion_z_score(control: GroupStats, treatment: GroupStats) -> float:
    """Pooled two-proportion z statistic; 0 when either group is empty or variance vanishes."""
    n1 = control.samples
    n2 = treatment.samples
    if n1 <= 0 or n2 <= 0:
        return 0.0
    pooled = (control.success_count + treatment.success_count) / (n1 + n2)
    se = float(np.sqrt(pooled * (1.0 - pooled) * (1.0 / n1 + 1.0 / n2)))
    if se <= 0:
        return 0.0
    return (treatment.success_rate - control.success_rate) / se


def evaluate(
    control: GroupStats,
    treatment: GroupStats,
    config: RolloutConfig | None = None,
) -> StatisticalEvaluation:
    """
    Compare treatment against control and decide whether a rollback is warranted.

    performance_drop is positive when the treatment is worse. rollback_reason is set when:
      - the drop exceeds the hard safety threshold,
      - the result is still not significant after the stall sample limit, or
      - the treatment is significantly worse beyond the negative effect threshold.
    """
    cfg = config or RolloutConfig()
    p1 = control.success_rate
    p2 = treatment.success_rate

    effect_size = (p2 - p1) / p1 if p1 > 0 else 0.0
    performance_drop = p1 - p2
    success_rate_drop = performance_drop / p1 if p1 > 0 else 0.0

    z = two_proportion_z_score(control, treatment)
    p_value = two_tailed_p_value(z)
    total = control.samples + treatment.samples

    rollback_reason: str | None = None
    if performance_drop > cfg.rollback_threshold:
        rollback_reason = (
            f"Success rate dropped {performance_drop * 100:.1f}% "
            f"(threshold: {cfg.rollback_threshold * 100:.0f}%)"
        )
    elif p_value > cfg.significance_level and total >= cfg.stall_sample_limit:
        rollback_reason = f"Not statistically significant after {total} samples (p={p_value:.4f})"
    elif effect_size < cfg.negative_effect_threshold and p_value < cfg.significance_level:
        rollback_reason = f"Significant negative effect {effect_size * 100:.1f}% (p={p_value:.4f})"

    return StatisticalEvaluation(
        p_value=p_value,
        effect_size=effect_size,
        performance_drop=performance_drop,
        success_rate_drop=success_rate_drop,
        z_score=z,
        rollback_reason=rollback_reason,
    )
