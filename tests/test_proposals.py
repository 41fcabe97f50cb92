from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from self_adjustment_engine.config import ProposalConfig
from self_adjustment_engine.contracts import (
    Adjustment,
    AdjustmentStatus,
    AdjustmentType,
    Pattern,
    PatternType,
)
from self_adjustment_engine.proposals import PROPOSAL_BUILDERS, ProposalGenerator, builder_for
from self_adjustment_engine.storage import (
    InMemoryAdjustmentRepository,
    InMemoryOutcomeLog,
    InMemoryPatternStore,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
GUILD = "guild-1"


def _model_pattern(best: float = 0.85, worst: float = 0.80, confidence: str = "high") -> Pattern:
    return Pattern(
        guild_id=GUILD,
        pattern_type=PatternType.MODEL_ACCURACY,
        confidence=confidence,
        description="model a beats model b",
        data={
            "best_model": {"name": "model-a", "success_rate": best},
            "worst_model": {"name": "model-b", "success_rate": worst},
        },
        approved=True,
        timestamp=NOW - timedelta(days=1),
    )


def _generator(patterns: list[Pattern], outcomes: int = 1000):
    repository = InMemoryAdjustmentRepository()
    log = InMemoryOutcomeLog()
    log.seed(GUILD, outcomes)
    generator = ProposalGenerator(repository, InMemoryPatternStore(patterns), log, ProposalConfig())
    return generator, repository


def _prior_adjustment(timestamp: datetime) -> Adjustment:
    return Adjustment(
        guild_id=GUILD,
        pattern_id="old-pattern",
        pattern_type=PatternType.MODEL_ACCURACY,
        adjustment_type=AdjustmentType.MODEL_PREFERENCE,
        description="older change",
        previous_configuration={},
        new_configuration={},
        status=AdjustmentStatus.REJECTED,
        timestamp=timestamp,
    )


def test_baseline_gate_blocks_proposals() -> None:
    generator, repository = _generator([_model_pattern()], outcomes=999)
    result = generator.propose(GUILD, now=NOW)
    assert not result.success
    assert "1000" in result.message
    assert repository.find() == []


def test_cooldown_blocks_proposals_within_seven_days() -> None:
    generator, repository = _generator([_model_pattern()])
    repository.add(_prior_adjustment(NOW - timedelta(days=2)))
    result = generator.propose(GUILD, now=NOW)
    assert not result.success
    assert "7 days" in result.message
    assert len(repository.find(guild_id=GUILD)) == 1


def test_cooldown_expires_after_seven_days() -> None:
    generator, repository = _generator([_model_pattern()])
    repository.add(_prior_adjustment(NOW - timedelta(days=8)))
    result = generator.propose(GUILD, now=NOW)
    assert result.success
    assert result.count == 1


def test_no_approved_patterns() -> None:
    unapproved = _model_pattern()
    unapproved.approved = False
    generator, repository = _generator([unapproved])
    result = generator.propose(GUILD, now=NOW)
    assert not result.success
    assert result.message == "No approved patterns to implement"
    assert repository.find() == []


def test_weight_change_is_capped_at_twenty_percent() -> None:
    generator, _ = _generator([_model_pattern(best=0.90, worst=0.60)])
    result = generator.propose(GUILD, now=NOW)
    proposal = result.proposals[0]
    assert proposal.new_configuration["weight_change"] == pytest.approx(0.20)
    assert proposal.status == AdjustmentStatus.PENDING_APPROVAL
    assert proposal.previous_configuration == {"model_weights": "baseline"}


def test_weight_change_below_cap_uses_measured_improvement() -> None:
    generator, _ = _generator([_model_pattern(best=0.85, worst=0.80)])
    result = generator.propose(GUILD, now=NOW)
    assert result.proposals[0].new_configuration["weight_change"] == pytest.approx(0.05)


def test_pattern_is_never_proposed_twice() -> None:
    pattern = _model_pattern()
    generator, repository = _generator([pattern])
    first = generator.propose(GUILD, now=NOW)
    assert first.count == 1

    later = generator.propose(GUILD, now=NOW + timedelta(days=8))
    assert not later.success
    assert later.count == 0
    assert "already have pending or active adjustments" in later.message
    assert "pending_approval" in later.skipped[pattern.pattern_id]
    assert len(repository.find(pattern_id=pattern.pattern_id)) == 1


def test_naive_reference_time_is_treated_as_utc() -> None:
    generator, repository = _generator([_model_pattern()])
    naive = datetime(2026, 3, 1, 12, 0)
    result = generator.propose(GUILD, now=naive)
    assert result.success
    assert result.proposals[0].timestamp == NOW
    assert result.proposals[0].timestamp.tzinfo is not None

    blocked = generator.propose(GUILD, now=naive + timedelta(days=2))
    assert not blocked.success
    assert "7 days" in blocked.message
    assert len(repository.find()) == 1


def test_every_pattern_type_maps_to_a_typed_proposal() -> None:
    patterns = [
        _model_pattern(),
        Pattern(
            guild_id=GUILD,
            pattern_type=PatternType.TOOL_RELIABILITY,
            confidence="medium",
            description="search tool fails often",
            data={"tool_name": "search", "success_rate": 0.42, "error_breakdown": {"timeout": 7, "auth": 2}},
            approved=True,
        ),
        Pattern(
            guild_id=GUILD,
            pattern_type=PatternType.COMPLEXITY_CORRELATION,
            confidence="medium",
            description="longer prompts need more iterations",
            data={"correlation": -0.41, "avg_iterations": 3.2, "avg_tool_count": 1.4},
            approved=True,
        ),
        Pattern(
            guild_id=GUILD,
            pattern_type=PatternType.SATISFACTION_PATTERN,
            confidence="low",
            description="users like model a",
            data={"best_model": "model-a", "positive_rate": 0.8},
            approved=True,
        ),
    ]
    generator, _ = _generator(patterns)
    result = generator.propose(GUILD, now=NOW)
    assert result.count == 4
    by_pattern = {p.pattern_type: p for p in result.proposals}

    tool = by_pattern[PatternType.TOOL_RELIABILITY]
    assert tool.adjustment_type == AdjustmentType.TOOL_USAGE
    assert tool.new_configuration["primary_error"] == "timeout"

    complexity = by_pattern[PatternType.COMPLEXITY_CORRELATION]
    assert complexity.adjustment_type == AdjustmentType.COMPLEXITY_THRESHOLD
    assert complexity.new_configuration["adjustment"] == "decrease_threshold"

    satisfaction = by_pattern[PatternType.SATISFACTION_PATTERN]
    assert satisfaction.adjustment_type == AdjustmentType.MODEL_PREFERENCE
    assert satisfaction.new_configuration["weight_change"] == pytest.approx(0.20)
    assert len({p.pattern_id for p in result.proposals}) == 4


def test_malformed_pattern_is_skipped() -> None:
    broken = Pattern(
        guild_id=GUILD,
        pattern_type=PatternType.MODEL_ACCURACY,
        confidence="high",
        description="missing worst model",
        data={"best_model": {"name": "model-a", "success_rate": 0.9}},
        approved=True,
    )
    generator, repository = _generator([broken, _model_pattern()])
    result = generator.propose(GUILD, now=NOW)
    assert result.success
    assert result.count == 1
    assert "malformed" in result.skipped[broken.pattern_id]
    assert len(repository.find()) == 1


def test_builder_registry_covers_every_pattern_type() -> None:
    assert set(PROPOSAL_BUILDERS) == set(PatternType)
    assert builder_for(PatternType.TOOL_RELIABILITY).adjustment_type == AdjustmentType.TOOL_USAGE
