"""Contracts for adjustments, patterns, outcomes and alerts."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any
from uuid import uuid4


def now_utc() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


class AlertSeverity(StrEnum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class AdjustmentStatus(StrEnum):
    PENDING_APPROVAL = "pending_approval"
    ACTIVE = "active"
    COMPLETED = "completed"
    ROLLED_BACK = "rolled_back"
    REJECTED = "rejected"
    FAILED = "failed"


class RolloutStage(StrEnum):
    PENDING_APPROVAL = "pending_approval"
    CANARY_5 = "canary_5"
    CANARY_25 = "canary_25"
    CANARY_50 = "canary_50"
    CANARY_75 = "canary_75"
    FULL_100 = "full_100"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"


class AdjustmentType(StrEnum):
    MODEL_PREFERENCE = "model_preference"
    TOOL_USAGE = "tool_usage"
    COMPLEXITY_THRESHOLD = "complexity_threshold"
    RESPONSE_STRATEGY = "response_strategy"


class PatternType(StrEnum):
    MODEL_ACCURACY = "model_accuracy"
    TOOL_RELIABILITY = "tool_reliability"
    COMPLEXITY_CORRELATION = "complexity_correlation"
    SATISFACTION_PATTERN = "satisfaction_pattern"


class OutcomeGroup(StrEnum):
    CONTROL = "control"
    TREATMENT = "treatment"


# Canary stages in rollout order with the traffic share each one exposes.
CANARY_PROGRESS: dict[RolloutStage, int] = {
    RolloutStage.CANARY_5: 5,
    RolloutStage.CANARY_25: 25,
    RolloutStage.CANARY_50: 50,
    RolloutStage.CANARY_75: 75,
    RolloutStage.FULL_100: 100,
}

MONITORED_STAGES: tuple[RolloutStage, ...] = (
    RolloutStage.CANARY_5,
    RolloutStage.CANARY_25,
    RolloutStage.CANARY_50,
    RolloutStage.CANARY_75,
)

TERMINAL_STATUSES: frozenset[AdjustmentStatus] = frozenset(
    {
        AdjustmentStatus.COMPLETED,
        AdjustmentStatus.ROLLED_BACK,
        AdjustmentStatus.REJECTED,
        AdjustmentStatus.FAILED,
    }
)


@dataclass(slots=True)
class GroupStats:
    """Rolling aggregate for one side of an A/B comparison."""

    samples: int = 0
    success_count: int = 0
    success_rate: float = 0.0
    avg_iterations: float = 0.0
    avg_satisfaction: float = 0.0
    error_count: int = 0

    @staticmethod
    def from_counts(samples: int, success_count: int, error_count: int = 0) -> "GroupStats":
        rate = success_count / samples if samples > 0 else 0.0
        return GroupStats(
            samples=samples,
            success_count=success_count,
            success_rate=rate,
            error_count=error_count,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(payload: dict[str, Any] | None) -> "GroupStats":
        return GroupStats(**(payload or {}))


@dataclass(slots=True)
class InteractionOutcome:
    """Classified result of one interaction."""

    success: bool
    error: bool = False
    iterations: int = 0
    user_satisfaction: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class Pattern:
    """Human-reviewed insight produced by the external pattern miner."""

    guild_id: str
    pattern_type: PatternType
    confidence: str
    description: str
    data: dict[str, Any] = field(default_factory=dict)
    approved: bool = False
    pattern_id: str = field(default_factory=lambda: uuid4().hex)
    timestamp: datetime = field(default_factory=now_utc)
    reviewed_by: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["pattern_type"] = str(self.pattern_type)
        out["timestamp"] = self.timestamp.isoformat()
        return out

    @staticmethod
    def from_dict(payload: dict[str, Any]) -> "Pattern":
        data = payload.copy()
        data["pattern_type"] = PatternType(data["pattern_type"])
        data["timestamp"] = _parse(data["timestamp"])
        return Pattern(**data)


@dataclass(slots=True)
class Adjustment:
    """One proposed-and-tracked behavioral change and its rollout state."""

    guild_id: str
    pattern_id: str
    pattern_type: PatternType
    adjustment_type: AdjustmentType
    description: str
    previous_configuration: dict[str, Any]
    new_configuration: dict[str, Any]
    adjustment_id: str = field(default_factory=lambda: uuid4().hex)
    timestamp: datetime = field(default_factory=now_utc)
    status: AdjustmentStatus = AdjustmentStatus.PENDING_APPROVAL
    rollout_stage: RolloutStage = RolloutStage.PENDING_APPROVAL
    rollout_progress: int = 0
    stage_timestamps: dict[str, datetime] = field(default_factory=dict)
    control_group: GroupStats = field(default_factory=GroupStats)
    treatment_group: GroupStats = field(default_factory=GroupStats)
    p_value: float | None = None
    effect_size: float | None = None
    confidence_level: float = 0.95
    is_significant: bool = False
    performance_drop: float = 0.0
    success_rate_drop: float = 0.0
    approved_by: str | None = None
    approved_at: datetime | None = None
    rejected_by: str | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None
    rolled_back_at: datetime | None = None
    rollback_reason: str | None = None
    auto_rollback_triggered: bool = False
    completed_at: datetime | None = None
    updated_at: datetime | None = None
    version: int = 0

    @property
    def total_samples(self) -> int:
        return self.control_group.samples + self.treatment_group.samples

    @property
    def improvement_percentage(self) -> float:
        control_rate = self.control_group.success_rate
        if control_rate == 0:
            return 0.0
        return round((self.treatment_group.success_rate - control_rate) / control_rate * 100, 2)

    def age_in_days(self, now: datetime | None = None) -> int:
        return int(((now or now_utc()) - self.timestamp).total_seconds() // 86_400)

    def group(self, group: OutcomeGroup) -> GroupStats:
        if group == OutcomeGroup.CONTROL:
            return self.control_group
        return self.treatment_group

    def to_dict(self) -> dict[str, Any]:
        return {
            "adjustment_id": self.adjustment_id,
            "guild_id": self.guild_id,
            "pattern_id": self.pattern_id,
            "pattern_type": str(self.pattern_type),
            "adjustment_type": str(self.adjustment_type),
            "description": self.description,
            "previous_configuration": self.previous_configuration,
            "new_configuration": self.new_configuration,
            "timestamp": self.timestamp.isoformat(),
            "status": str(self.status),
            "rollout_stage": str(self.rollout_stage),
            "rollout_progress": self.rollout_progress,
            "stage_timestamps": {k: v.isoformat() for k, v in self.stage_timestamps.items()},
            "control_group": self.control_group.to_dict(),
            "treatment_group": self.treatment_group.to_dict(),
            "p_value": self.p_value,
            "effect_size": self.effect_size,
            "confidence_level": self.confidence_level,
            "is_significant": self.is_significant,
            "performance_drop": self.performance_drop,
            "success_rate_drop": self.success_rate_drop,
            "approved_by": self.approved_by,
            "approved_at": _iso(self.approved_at),
            "rejected_by": self.rejected_by,
            "rejected_at": _iso(self.rejected_at),
            "rejection_reason": self.rejection_reason,
            "rolled_back_at": _iso(self.rolled_back_at),
            "rollback_reason": self.rollback_reason,
            "auto_rollback_triggered": self.auto_rollback_triggered,
            "completed_at": _iso(self.completed_at),
            "updated_at": _iso(self.updated_at),
            "version": self.version,
        }

    @staticmethod
    def from_dict(payload: dict[str, Any]) -> "Adjustment":
        data = payload.copy()
        data["pattern_type"] = PatternType(data["pattern_type"])
        data["adjustment_type"] = AdjustmentType(data["adjustment_type"])
        data["status"] = AdjustmentStatus(data["status"])
        data["rollout_stage"] = RolloutStage(data["rollout_stage"])
        data["timestamp"] = _parse(data["timestamp"])
        data["stage_timestamps"] = {
            k: _parse(v) for k, v in (data.get("stage_timestamps") or {}).items()
        }
        data["control_group"] = GroupStats.from_dict(data.get("control_group"))
        data["treatment_group"] = GroupStats.from_dict(data.get("treatment_group"))
        for key in ("approved_at", "rejected_at", "rolled_back_at", "completed_at", "updated_at"):
            data[key] = _parse(data.get(key))
        return Adjustment(**data)


@dataclass(slots=True)
class ActionResult:
    """Outcome of an operator- or scheduler-initiated action on one adjustment."""

    success: bool
    message: str = ""
    error: str | None = None
    adjustment: Adjustment | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "error": self.error,
            "adjustment": self.adjustment.to_dict() if self.adjustment else None,
        }


@dataclass(slots=True)
class AlertEvent:
    """Structured alert event for routing to channels."""

    severity: AlertSeverity
    source: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=now_utc)

    def to_dict(self) -> dict[str, Any]:
        return {
            "severity": str(self.severity),
            "source": self.source,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }
