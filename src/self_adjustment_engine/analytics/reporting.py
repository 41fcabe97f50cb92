"""Tabular rollout reporting for operators and dashboards."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

import pandas as pd

from self_adjustment_engine.contracts import Adjustment, now_utc

REPORT_COLUMNS = [
    "adjustment_id",
    "guild_id",
    "adjustment_type",
    "status",
    "rollout_stage",
    "rollout_progress",
    "control_samples",
    "treatment_samples",
    "control_success_rate",
    "treatment_success_rate",
    "improvement_pct",
    "p_value",
    "effect_size",
    "is_significant",
    "age_days",
]


def rollout_report(adjustments: Iterable[Adjustment], now: datetime | None = None) -> pd.DataFrame:
    """One row per adjustment, newest first."""
    reference = now or now_utc()
    rows = []
    for adj in adjustments:
        rows.append(
            {
                "adjustment_id": adj.adjustment_id,
                "guild_id": adj.guild_id,
                "adjustment_type": str(adj.adjustment_type),
                "status": str(adj.status),
                "rollout_stage": str(adj.rollout_stage),
                "rollout_progress": adj.rollout_progress,
                "control_samples": adj.control_group.samples,
                "treatment_samples": adj.treatment_group.samples,
                "control_success_rate": adj.control_group.success_rate,
                "treatment_success_rate": adj.treatment_group.success_rate,
                "improvement_pct": adj.improvement_percentage,
                "p_value": adj.p_value,
                "effect_size": adj.effect_size,
                "is_significant": adj.is_significant,
                "age_days": adj.age_in_days(reference),
                "_timestamp": adj.timestamp,
            }
        )
    if not rows:
        return pd.DataFrame(columns=REPORT_COLUMNS)
    frame = pd.DataFrame(rows).sort_values("_timestamp", ascending=False)
    return frame[REPORT_COLUMNS].reset_index(drop=True)


def summarize_by_status(report: pd.DataFrame) -> pd.DataFrame:
    """Guild x status count matrix."""
    if report.empty:
        return pd.DataFrame()
    return (
        report.groupby(["guild_id", "status"])
        .size()
        .unstack(fill_value=0)
        .sort_index()
    )
