"""Atomic, auditable reversal of an active adjustment record."""

from __future__ import annotations

import logging

from self_adjustment_engine.alerting import AlertRouter
from self_adjustment_engine.contracts import ActionResult
from self_adjustment_engine.errors import AdjustmentEngineError
from self_adjustment_engine.storage.base import AdjustmentRepository

from . import state_machine

logger = logging.getLogger(__name__)


class RollbackManager:
    """
    Marks adjustments rolled back inside the repository's atomic-update boundary.

    Status, stage, rolled_back_at, rollback_reason and auto_rollback_triggered land in
    one write or not at all. Reverting live configuration is the caller's job
    (see `config_store.reconcile`).
    """

    def __init__(self, repository: AdjustmentRepository, alert_router: AlertRouter | None = None) -> None:
        self.repository = repository
        self.alert_router = alert_router or AlertRouter()

    def rollback(self, adjustment_id: str, reason: str, is_automatic: bool = False) -> ActionResult:
        logger.info("Rolling back adjustment %s: %s", adjustment_id, reason)
        try:
            adjustment = self.repository.update_atomically(
                adjustment_id,
                lambda current: state_machine.rollback(current, reason=reason, is_automatic=is_automatic),
            )
        except AdjustmentEngineError as exc:
            logger.error("Rollback of %s failed: %s", adjustment_id, exc)
            return ActionResult(success=False, error=str(exc))

        details = {
            "adjustment_id": adjustment.adjustment_id,
            "guild_id": adjustment.guild_id,
            "reason": reason,
            "automatic": is_automatic,
        }
        if is_automatic:
            self.alert_router.critical("rollback_manager", "Automatic rollback triggered", details)
        else:
            self.alert_router.warning("rollback_manager", "Manual rollback", details)
        logger.info("Rollback complete for %s", adjustment_id)
        return ActionResult(
            success=True,
            message="Adjustment rolled back successfully",
            adjustment=adjustment,
        )
