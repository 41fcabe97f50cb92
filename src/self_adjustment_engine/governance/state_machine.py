"""Rollout lifecycle transitions over plain Adjustment values.

Every transition returns a new Adjustment; the input is left untouched and
persistence is the caller's responsibility.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime

from self_adjustment_engine.contracts import (
    CANARY_PROGRESS,
    MONITORED_STAGES,
    Adjustment,
    AdjustmentStatus,
    RolloutStage,
    now_utc,
)
from self_adjustment_engine.errors import InvalidTransitionError

NEXT_STAGE: dict[RolloutStage, RolloutStage] = {
    RolloutStage.CANARY_5: RolloutStage.CANARY_25,
    RolloutStage.CANARY_25: RolloutStage.CANARY_50,
    RolloutStage.CANARY_50: RolloutStage.CANARY_75,
    RolloutStage.CANARY_75: RolloutStage.FULL_100,
}


def _copy(adjustment: Adjustment, **changes) -> Adjustment:
    stamps = dict(adjustment.stage_timestamps)
    return replace(
        adjustment,
        stage_timestamps=stamps,
        control_group=replace(adjustment.control_group),
        treatment_group=replace(adjustment.treatment_group),
        **changes,
    )


def _require_pending(adjustment: Adjustment, action: str) -> None:
    if adjustment.status != AdjustmentStatus.PENDING_APPROVAL:
        raise InvalidTransitionError(
            f"Cannot {action} adjustment {adjustment.adjustment_id} in status {adjustment.status}"
        )


def _require_active(adjustment: Adjustment, action: str) -> None:
    if adjustment.status != AdjustmentStatus.ACTIVE or adjustment.rollout_stage not in MONITORED_STAGES:
        raise InvalidTransitionError(
            f"Cannot {action} adjustment {adjustment.adjustment_id} "
            f"(status={adjustment.status}, stage={adjustment.rollout_stage})"
        )


def approve(adjustment: Adjustment, user_id: str, at: datetime | None = None) -> Adjustment:
    """pending_approval -> active/canary_5."""
    _require_pending(adjustment, "approve")
    ts = at or now_utc()
    out = _copy(
        adjustment,
        status=AdjustmentStatus.ACTIVE,
        rollout_stage=RolloutStage.CANARY_5,
        rollout_progress=CANARY_PROGRESS[RolloutStage.CANARY_5],
        approved_by=user_id,
        approved_at=ts,
    )
    out.stage_timestamps[str(RolloutStage.CANARY_5)] = ts
    return out


def reject(adjustment: Adjustment, user_id: str, reason: str, at: datetime | None = None) -> Adjustment:
    """pending_approval -> rejected (terminal)."""
    _require_pending(adjustment, "reject")
    return _copy(
        adjustment,
        status=AdjustmentStatus.REJECTED,
        rejected_by=user_id,
        rejected_at=at or now_utc(),
        rejection_reason=reason,
    )


def progress(
    adjustment: Adjustment,
    expected_stage: RolloutStage,
    at: datetime | None = None,
) -> Adjustment:
    """
    Advance exactly one canary stage.

    `expected_stage` is the stage the caller observed when it made the decision; if the
    record has moved since, the call raises instead of advancing a second time.
    """
    _require_active(adjustment, "progress")
    if adjustment.rollout_stage != expected_stage:
        raise InvalidTransitionError(
            f"Adjustment {adjustment.adjustment_id} is at {adjustment.rollout_stage}, "
            f"expected {expected_stage}"
        )
    ts = at or now_utc()
    next_stage = NEXT_STAGE[adjustment.rollout_stage]
    changes = {
        "rollout_stage": next_stage,
        "rollout_progress": CANARY_PROGRESS[next_stage],
    }
    if next_stage == RolloutStage.FULL_100:
        changes["status"] = AdjustmentStatus.COMPLETED
        changes["completed_at"] = ts
    out = _copy(adjustment, **changes)
    out.stage_timestamps[str(next_stage)] = ts
    return out


def rollback(
    adjustment: Adjustment,
    reason: str,
    is_automatic: bool = False,
    at: datetime | None = None,
) -> Adjustment:
    """Any active canary stage -> rolled_back (terminal)."""
    _require_active(adjustment, "roll back")
    ts = at or now_utc()
    out = _copy(
        adjustment,
        status=AdjustmentStatus.ROLLED_BACK,
        rollout_stage=RolloutStage.ROLLED_BACK,
        rolled_back_at=ts,
        rollback_reason=reason,
        auto_rollback_triggered=is_automatic,
    )
    out.stage_timestamps[str(RolloutStage.ROLLED_BACK)] = ts
    return out


def fail(adjustment: Adjustment, reason: str, at: datetime | None = None) -> Adjustment:
    """Any active canary stage -> failed (terminal)."""
    _require_active(adjustment, "fail")
    ts = at or now_utc()
    out = _copy(
        adjustment,
        status=AdjustmentStatus.FAILED,
        rollout_stage=RolloutStage.FAILED,
        rollback_reason=reason,
    )
    out.stage_timestamps[str(RolloutStage.FAILED)] = ts
    return out
