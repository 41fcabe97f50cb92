"""External live-configuration contract.

The engine never applies configuration itself. Whoever drives the engine observes
the adjustment state and calls the store; `reconcile` is the standard way to do that.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any
import logging

from self_adjustment_engine.contracts import Adjustment, AdjustmentStatus

logger = logging.getLogger(__name__)


class ConfigStore(ABC):
    """Live configuration target for adjustment rollouts."""

    @abstractmethod
    def apply(self, guild_id: str, adjustment_id: str, configuration: dict[str, Any], traffic_share: float) -> None:
        """Expose `configuration` to `traffic_share` (0..1) of the guild's traffic."""

    @abstractmethod
    def revert(self, guild_id: str, adjustment_id: str, previous_configuration: dict[str, Any]) -> None:
        """Restore the configuration that was live before the adjustment."""


@dataclass(slots=True)
class AppliedConfiguration:
    adjustment_id: str
    configuration: dict[str, Any]
    traffic_share: float


@dataclass(slots=True)
class InMemoryConfigStore(ConfigStore):
    """Keeps the last applied configuration per guild; records every call for audit."""

    live: dict[str, AppliedConfiguration] = field(default_factory=dict)
    history: list[tuple[str, str, str]] = field(default_factory=list)

    def apply(self, guild_id: str, adjustment_id: str, configuration: dict[str, Any], traffic_share: float) -> None:
        self.live[guild_id] = AppliedConfiguration(adjustment_id, dict(configuration), traffic_share)
        self.history.append(("apply", guild_id, adjustment_id))

    def revert(self, guild_id: str, adjustment_id: str, previous_configuration: dict[str, Any]) -> None:
        self.live[guild_id] = AppliedConfiguration(adjustment_id, dict(previous_configuration), 1.0)
        self.history.append(("revert", guild_id, adjustment_id))


def reconcile(adjustment: Adjustment, store: ConfigStore) -> str | None:
    """Push the adjustment's current state to the store; return the action taken."""
    if adjustment.status in {AdjustmentStatus.ROLLED_BACK, AdjustmentStatus.FAILED}:
        store.revert(adjustment.guild_id, adjustment.adjustment_id, adjustment.previous_configuration)
        logger.info("Reverted configuration for adjustment %s", adjustment.adjustment_id)
        return "revert"
    if adjustment.status in {AdjustmentStatus.ACTIVE, AdjustmentStatus.COMPLETED}:
        store.apply(
            adjustment.guild_id,
            adjustment.adjustment_id,
            adjustment.new_configuration,
            adjustment.rollout_progress / 100.0,
        )
        return "apply"
    return None
