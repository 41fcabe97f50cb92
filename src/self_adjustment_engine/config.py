"""Engine configuration objects and helpers."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml


@dataclass(slots=True)
class ProposalConfig:
    min_outcomes_for_adjustment: int = 1000
    max_weight_change: float = 0.20
    cooldown_days: int = 7


@dataclass(slots=True)
class RolloutConfig:
    min_samples_per_stage: int = 100
    significance_level: float = 0.05
    rollback_threshold: float = 0.10
    stall_sample_multiplier: int = 3
    negative_effect_threshold: float = -0.05
    confidence_level: float = 0.95

    @property
    def stall_sample_limit(self) -> int:
        return self.min_samples_per_stage * self.stall_sample_multiplier


@dataclass(slots=True)
class SchedulerConfig:
    interval_seconds: int = 3600
    sleep_check_seconds: int = 20
    max_cycles: int | None = None
    stop_on_exception: bool = False
    max_write_retries: int = 3


@dataclass(slots=True)
class RetentionConfig:
    terminal_retention_days: int = 30
    completed_retention_days: int = 365


@dataclass(slots=True)
class StorageConfig:
    database_path: str = "outputs/adjustments.db"
    alerts_path: str = "outputs/adjustment_alerts.jsonl"
    log_file: str | None = None


@dataclass(slots=True)
class EngineConfig:
    log_level: str = "INFO"
    proposals: ProposalConfig = field(default_factory=ProposalConfig)
    rollout: RolloutConfig = field(default_factory=RolloutConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    retention: RetentionConfig = field(default_factory=RetentionConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(payload: dict[str, Any]) -> "EngineConfig":
        return EngineConfig(
            log_level=str(payload.get("log_level", "INFO")),
            proposals=ProposalConfig(**payload.get("proposals", {})),
            rollout=RolloutConfig(**payload.get("rollout", {})),
            scheduler=SchedulerConfig(**payload.get("scheduler", {})),
            retention=RetentionConfig(**payload.get("retention", {})),
            storage=StorageConfig(**payload.get("storage", {})),
        )


def load_config(path: str | Path) -> EngineConfig:
    """Load engine configuration from YAML."""
    file_path = Path(path)
    with file_path.open("r", encoding="utf-8") as handle:
        payload = yaml.safe_load(handle) or {}
    return EngineConfig.from_dict(payload)


def save_config(config: EngineConfig, path: str | Path) -> None:
    """Persist engine configuration to YAML."""
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    with file_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(config.to_dict(), handle, sort_keys=False)
