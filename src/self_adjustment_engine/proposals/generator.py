"""Gate checks and proposal creation for a guild."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable
import logging

from self_adjustment_engine.config import ProposalConfig
from self_adjustment_engine.contracts import Adjustment, AdjustmentType, Pattern, now_utc
from self_adjustment_engine.storage.base import AdjustmentRepository, OutcomeLog, PatternStore
from self_adjustment_engine.time_utils import days_before, to_utc_datetime

from .builders import builder_for

logger = logging.getLogger(__name__)

BaselineProvider = Callable[[str, AdjustmentType], dict[str, Any]]


@dataclass(slots=True)
class ProposalResult:
    success: bool
    proposals: list[Adjustment] = field(default_factory=list)
    message: str = ""
    skipped: dict[str, str] = field(default_factory=dict)

    @property
    def count(self) -> int:
        return len(self.proposals)


class ProposalGenerator:
    """Turns approved, unconsumed patterns into pending adjustments."""

    def __init__(
        self,
        repository: AdjustmentRepository,
        patterns: PatternStore,
        outcome_log: OutcomeLog,
        config: ProposalConfig | None = None,
        baseline_provider: BaselineProvider | None = None,
    ) -> None:
        self.repository = repository
        self.patterns = patterns
        self.outcome_log = outcome_log
        self.config = config or ProposalConfig()
        self.baseline_provider = baseline_provider

    def check_gates(self, guild_id: str, now: datetime | None = None) -> str | None:
        """Return the first failing gate message, or None if proposals may be created."""
        total = self.outcome_log.count(guild_id)
        if total < self.config.min_outcomes_for_adjustment:
            logger.info(
                "Insufficient outcomes for %s (%d/%d)",
                guild_id,
                total,
                self.config.min_outcomes_for_adjustment,
            )
            return f"Need {self.config.min_outcomes_for_adjustment}+ outcomes before proposing adjustments"

        latest = self.repository.latest_timestamp(guild_id)
        cutoff = days_before(now or now_utc(), self.config.cooldown_days)
        if latest is not None and latest >= cutoff:
            logger.info("Guild %s still in cooldown (last adjustment %s)", guild_id, latest.isoformat())
            return f"Must wait {self.config.cooldown_days} days between adjustments"
        return None

    def propose(self, guild_id: str, now: datetime | None = None) -> ProposalResult:
        logger.info("Proposing adjustments for guild %s", guild_id)
        reference = to_utc_datetime(now) if now is not None else now_utc()
        blocked = self.check_gates(guild_id, reference)
        if blocked:
            return ProposalResult(success=False, message=blocked)

        approved = self.patterns.list_approved(guild_id)
        if not approved:
            return ProposalResult(success=False, message="No approved patterns to implement")

        skipped: dict[str, str] = {}
        eligible: list[Pattern] = []
        for pattern in approved:
            existing = self.repository.open_for_pattern(guild_id, pattern.pattern_id)
            if existing:
                skipped[pattern.pattern_id] = f"already has adjustment in {existing[0].status}"
            elif all(p.pattern_id != pattern.pattern_id for p in eligible):
                eligible.append(pattern)
        if not eligible:
            logger.info("Every approved pattern for %s already has an open adjustment", guild_id)
            return ProposalResult(
                success=False,
                message="All approved patterns already have pending or active adjustments",
                skipped=skipped,
            )

        proposals: list[Adjustment] = []
        for pattern in eligible:
            builder = builder_for(pattern.pattern_type)
            previous = self.baseline_provider(guild_id, builder.adjustment_type) if self.baseline_provider else None
            try:
                candidate = builder.build(pattern, self.config, previous)
            except (TypeError, ValueError) as exc:
                logger.warning("Skipping malformed pattern %s: %s", pattern.pattern_id, exc)
                skipped[pattern.pattern_id] = f"malformed: {exc}"
                continue
            candidate.timestamp = reference
            proposals.append(self.repository.add(candidate))
            logger.info("Proposed %s adjustment %s", candidate.adjustment_type, candidate.adjustment_id)

        logger.info("Created %d adjustment proposals for %s", len(proposals), guild_id)
        return ProposalResult(
            success=True,
            proposals=proposals,
            message=f"Created {len(proposals)} adjustment proposals",
            skipped=skipped,
        )
