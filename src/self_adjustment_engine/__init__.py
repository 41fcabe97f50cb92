"""Self-adjustment engine package."""

from .config import (
    EngineConfig,
    ProposalConfig,
    RetentionConfig,
    RolloutConfig,
    SchedulerConfig,
    StorageConfig,
    load_config,
    save_config,
)
from .contracts import (
    ActionResult,
    Adjustment,
    AdjustmentStatus,
    AdjustmentType,
    GroupStats,
    InteractionOutcome,
    OutcomeGroup,
    Pattern,
    PatternType,
    RolloutStage,
)
from .engine import AdjustmentStatusReport, MonitoringSummary, SelfAdjustmentEngine

__all__ = [
    "ActionResult",
    "Adjustment",
    "AdjustmentStatus",
    "AdjustmentStatusReport",
    "AdjustmentType",
    "EngineConfig",
    "GroupStats",
    "InteractionOutcome",
    "MonitoringSummary",
    "OutcomeGroup",
    "Pattern",
    "PatternType",
    "ProposalConfig",
    "RetentionConfig",
    "RolloutConfig",
    "RolloutStage",
    "SchedulerConfig",
    "SelfAdjustmentEngine",
    "StorageConfig",
    "load_config",
    "save_config",
]
