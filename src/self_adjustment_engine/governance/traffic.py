"""Deterministic control/treatment bucketing for in-flight adjustments."""

from __future__ import annotations

import hashlib

from self_adjustment_engine.contracts import Adjustment, AdjustmentStatus, OutcomeGroup

_BUCKETS = 10_000


def traffic_bucket(key: str) -> float:
    """Map a key onto [0, 1) via SHA-256; stable across services and processes."""
    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
    return (int(digest[:16], 16) % _BUCKETS) / _BUCKETS


def deterministic_canary_assignment(key: str, canary_allocation: float) -> bool:
    if canary_allocation <= 0:
        return False
    if canary_allocation >= 1:
        return True
    return traffic_bucket(key) < canary_allocation


def assign_group(adjustment: Adjustment, interaction_key: str) -> OutcomeGroup:
    """
    Route one interaction to control or treatment.

    The key is salted with the adjustment id so that consecutive experiments in a guild
    do not reuse the same treatment population.
    """
    if adjustment.status not in {AdjustmentStatus.ACTIVE, AdjustmentStatus.COMPLETED}:
        return OutcomeGroup.CONTROL
    allocation = adjustment.rollout_progress / 100.0
    if deterministic_canary_assignment(f"{adjustment.adjustment_id}:{interaction_key}", allocation):
        return OutcomeGroup.TREATMENT
    return OutcomeGroup.CONTROL
