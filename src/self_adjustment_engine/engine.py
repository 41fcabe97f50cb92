"""Self-adjustment engine: proposal, approval, monitoring and rollback of adjustments."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import logging
import time

from self_adjustment_engine.alerting import AlertRouter
from self_adjustment_engine.analytics.significance import StatisticalEvaluation, evaluate
from self_adjustment_engine.config import EngineConfig
from self_adjustment_engine.config_store import ConfigStore, reconcile
from self_adjustment_engine.contracts import (
    MONITORED_STAGES,
    ActionResult,
    Adjustment,
    AdjustmentStatus,
    InteractionOutcome,
    OutcomeGroup,
    now_utc,
)
from self_adjustment_engine.errors import (
    AdjustmentNotFoundError,
    ConcurrentAdjustmentError,
    InvalidTransitionError,
)
from self_adjustment_engine.governance import state_machine
from self_adjustment_engine.governance.rollback_manager import RollbackManager
from self_adjustment_engine.governance.rollout_policy import RolloutAction, RolloutDecision, RolloutPolicy
from self_adjustment_engine.outcomes import OutcomeAggregator
from self_adjustment_engine.proposals import ProposalGenerator, ProposalResult
from self_adjustment_engine.proposals.generator import BaselineProvider
from self_adjustment_engine.storage.base import AdjustmentRepository, OutcomeLog, PatternStore
from self_adjustment_engine.time_utils import days_before

logger = logging.getLogger(__name__)

SOURCE = "self_adjustment"


@dataclass(slots=True)
class MonitoringSummary:
    """Result of one pass over the active adjustment set."""

    monitored: int = 0
    progressed: int = 0
    completed: int = 0
    held: int = 0
    insufficient_data: int = 0
    rolled_back: int = 0
    failed: int = 0
    errors: dict[str, str] = field(default_factory=dict)
    started_at: datetime = field(default_factory=now_utc)
    duration_seconds: float = 0.0


@dataclass(slots=True)
class AdjustmentStatusReport:
    success: bool
    adjustment: Adjustment | None = None
    evaluation: StatisticalEvaluation | None = None
    can_progress: bool = False
    should_rollback: bool = False
    error: str | None = None


class SelfAdjustmentEngine:
    """Production orchestrator for guild adjustments with human approval and canary rollout."""

    def __init__(
        self,
        repository: AdjustmentRepository,
        patterns: PatternStore,
        outcome_log: OutcomeLog,
        config: EngineConfig | None = None,
        alert_router: AlertRouter | None = None,
        config_store: ConfigStore | None = None,
        baseline_provider: BaselineProvider | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.repository = repository
        self.alert_router = alert_router or AlertRouter()
        self.config_store = config_store
        self.policy = RolloutPolicy(self.config.rollout)
        self.proposal_generator = ProposalGenerator(
            repository=repository,
            patterns=patterns,
            outcome_log=outcome_log,
            config=self.config.proposals,
            baseline_provider=baseline_provider,
        )
        self.rollback_manager = RollbackManager(repository, self.alert_router)
        self.outcomes = OutcomeAggregator(
            repository,
            outcome_log,
            max_write_retries=self.config.scheduler.max_write_retries,
        )

    def _reconcile(self, adjustment: Adjustment) -> Adjustment:
        """Push the state to the config store; an active rollout it cannot take is marked failed."""
        if self.config_store is None:
            return adjustment
        try:
            reconcile(adjustment, self.config_store)
        except Exception as exc:
            if adjustment.status != AdjustmentStatus.ACTIVE:
                raise
            logger.exception("Config store rejected adjustment %s", adjustment.adjustment_id)
            reason = f"Configuration apply failed: {exc}"
            failed = self.repository.update_atomically(
                adjustment.adjustment_id,
                lambda current: state_machine.fail(current, reason),
            )
            self.alert_router.critical(
                SOURCE,
                "Adjustment failed",
                {"adjustment_id": failed.adjustment_id, "guild_id": failed.guild_id, "reason": reason},
            )
            reconcile(failed, self.config_store)
            return failed
        return adjustment

    def propose_adjustments(self, guild_id: str, now: datetime | None = None) -> ProposalResult:
        return self.proposal_generator.propose(guild_id, now=now)

    def apply_adjustment(self, adjustment_id: str, user_id: str) -> ActionResult:
        """Approve a pending adjustment and start its canary rollout at 5%."""
        logger.info("Applying adjustment %s by user %s", adjustment_id, user_id)

        def _approve(current: Adjustment) -> Adjustment:
            if current.status != AdjustmentStatus.PENDING_APPROVAL:
                raise InvalidTransitionError(f"Adjustment is {current.status}, cannot apply")
            if self.repository.active_for_guild(current.guild_id):
                raise ConcurrentAdjustmentError(
                    "Another adjustment is already active. Please wait for it to complete."
                )
            return state_machine.approve(current, user_id)

        try:
            adjustment = self.repository.update_atomically(adjustment_id, _approve)
        except AdjustmentNotFoundError:
            return ActionResult(success=False, error="Adjustment not found")
        except (InvalidTransitionError, ConcurrentAdjustmentError) as exc:
            logger.info("Apply of %s refused: %s", adjustment_id, exc)
            return ActionResult(success=False, error=str(exc))

        adjustment = self._reconcile(adjustment)
        if adjustment.status == AdjustmentStatus.FAILED:
            return ActionResult(success=False, error=adjustment.rollback_reason, adjustment=adjustment)
        self.alert_router.info(
            SOURCE,
            "Canary rollout started at 5%",
            {"adjustment_id": adjustment_id, "guild_id": adjustment.guild_id, "approved_by": user_id},
        )
        return ActionResult(
            success=True,
            message="Canary rollout started at 5%. Monitoring A/B metrics...",
            adjustment=adjustment,
        )

    def reject_adjustment(self, adjustment_id: str, user_id: str, reason: str) -> ActionResult:
        try:
            adjustment = self.repository.update_atomically(
                adjustment_id,
                lambda current: state_machine.reject(current, user_id, reason),
            )
        except AdjustmentNotFoundError:
            return ActionResult(success=False, error="Adjustment not found")
        except InvalidTransitionError as exc:
            return ActionResult(success=False, error=str(exc))
        self.alert_router.warning(
            SOURCE,
            "Adjustment rejected",
            {"adjustment_id": adjustment_id, "rejected_by": user_id, "reason": reason},
        )
        return ActionResult(success=True, message="Adjustment rejected", adjustment=adjustment)

    def rollback_adjustment(self, adjustment_id: str, reason: str, is_automatic: bool = False) -> ActionResult:
        result = self.rollback_manager.rollback(adjustment_id, reason, is_automatic)
        if result.success and result.adjustment is not None:
            self._reconcile(result.adjustment)
        return result

    def _monitor_one(self, adjustment_id: str, summary: MonitoringSummary) -> None:
        adjustment = self.repository.get(adjustment_id)
        if adjustment.status != AdjustmentStatus.ACTIVE or adjustment.rollout_stage not in MONITORED_STAGES:
            logger.info("%s left the active set since the scan, skipping", adjustment_id)
            summary.held += 1
            return
        if not self.policy.has_enough_samples(adjustment):
            logger.info("%s: %s", adjustment_id, self.policy.decide(adjustment).reason)
            summary.insufficient_data += 1
            return

        decisions: list[RolloutDecision] = []

        # Decided and written against the version held inside the atomic update.
        def _evaluate(current: Adjustment) -> Adjustment:
            if current.status != AdjustmentStatus.ACTIVE or current.rollout_stage not in MONITORED_STAGES:
                raise InvalidTransitionError(f"Adjustment is {current.status}, no longer monitored")
            decision = self.policy.decide(current)
            decisions.append(decision)
            if decision.evaluation is None:
                return current
            updated = self.policy.with_metrics(current, decision.evaluation)
            if decision.action == RolloutAction.PROGRESS:
                return state_machine.progress(updated, expected_stage=current.rollout_stage)
            return updated

        try:
            adjustment = self.repository.update_atomically(adjustment_id, _evaluate)
        except InvalidTransitionError as exc:
            logger.info("%s: %s", adjustment_id, exc)
            summary.held += 1
            return
        decision = decisions[-1]

        if decision.action == RolloutAction.ROLLBACK:
            result = self.rollback_adjustment(adjustment_id, decision.reason, is_automatic=True)
            if result.success:
                summary.rolled_back += 1
            else:
                summary.failed += 1
                summary.errors[adjustment_id] = result.error or "rollback failed"
            return

        if decision.action == RolloutAction.PROGRESS:
            advanced = self._reconcile(adjustment)
            if advanced.status == AdjustmentStatus.FAILED:
                summary.failed += 1
                summary.errors[adjustment_id] = advanced.rollback_reason or "configuration apply failed"
                return
            logger.info("%s progressed to %s", adjustment_id, advanced.rollout_stage)
            details = {
                "adjustment_id": adjustment_id,
                "guild_id": advanced.guild_id,
                "stage": str(advanced.rollout_stage),
                **decision.stats,
            }
            if advanced.status == AdjustmentStatus.COMPLETED:
                summary.completed += 1
                self.alert_router.info(SOURCE, "Rollout completed at 100%", details)
            else:
                summary.progressed += 1
                self.alert_router.info(SOURCE, "Canary stage advanced", details)
            return

        if decision.evaluation is None:
            summary.insufficient_data += 1
        else:
            summary.held += 1
        logger.info("%s: %s", adjustment_id, decision.reason)

    def monitor_adjustments(self) -> MonitoringSummary:
        """
        Evaluate every active canary and progress, hold or roll it back.

        Failures are isolated per adjustment; the pass always visits the whole set.
        """
        summary = MonitoringSummary()
        start = time.perf_counter()
        active = self.repository.active_for_monitoring()
        logger.info("Monitoring %d active adjustments", len(active))
        for adjustment in active:
            summary.monitored += 1
            try:
                self._monitor_one(adjustment.adjustment_id, summary)
            except Exception as exc:
                logger.exception("Error monitoring adjustment %s", adjustment.adjustment_id)
                summary.failed += 1
                summary.errors[adjustment.adjustment_id] = str(exc)
                self.alert_router.warning(
                    SOURCE,
                    "Monitoring failed for adjustment",
                    {"adjustment_id": adjustment.adjustment_id, "error": str(exc)},
                )
        summary.duration_seconds = time.perf_counter() - start
        logger.info(
            "Monitoring complete in %.2fs: progressed=%d completed=%d held=%d waiting=%d rolled_back=%d failed=%d",
            summary.duration_seconds,
            summary.progressed,
            summary.completed,
            summary.held,
            summary.insufficient_data,
            summary.rolled_back,
            summary.failed,
        )
        return summary

    def get_adjustment_status(self, adjustment_id: str) -> AdjustmentStatusReport:
        try:
            adjustment = self.repository.get(adjustment_id)
        except AdjustmentNotFoundError:
            return AdjustmentStatusReport(success=False, error="Adjustment not found")
        evaluation = evaluate(adjustment.control_group, adjustment.treatment_group, self.config.rollout)
        return AdjustmentStatusReport(
            success=True,
            adjustment=adjustment,
            evaluation=evaluation,
            can_progress=self.policy.can_progress(evaluation),
            should_rollback=evaluation.rollback_reason is not None,
        )

    def list_pending_approval(self, guild_id: str) -> list[Adjustment]:
        return self.repository.pending_for_guild(guild_id)

    def list_active(self, guild_id: str) -> list[Adjustment]:
        return self.repository.active_for_guild(guild_id)

    def record_outcome(
        self,
        adjustment_id: str,
        group: OutcomeGroup | str,
        outcome: InteractionOutcome,
    ) -> Adjustment:
        return self.outcomes.record_outcome(adjustment_id, group, outcome)

    def purge_expired(self, now: datetime | None = None) -> int:
        reference = now or now_utc()
        return self.repository.purge_expired(
            terminal_before=days_before(reference, self.config.retention.terminal_retention_days),
            completed_before=days_before(reference, self.config.retention.completed_retention_days),
        )
