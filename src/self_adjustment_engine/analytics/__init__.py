"""Statistics and reporting for adjustment experiments."""

from .reporting import REPORT_COLUMNS, rollout_report, summarize_by_status
from .significance import (
    StatisticalEvaluation,
    evaluate,
    normal_upper_tail,
    two_proportion_z_score,
    two_tailed_p_value,
)

__all__ = [
    "REPORT_COLUMNS",
    "StatisticalEvaluation",
    "evaluate",
    "normal_upper_tail",
    "rollout_report",
    "summarize_by_status",
    "two_proportion_z_score",
    "two_tailed_p_value",
]
