"""Repository abstractions for adjustments, patterns and outcome logs."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Iterable

from self_adjustment_engine.contracts import (
    MONITORED_STAGES,
    Adjustment,
    AdjustmentStatus,
    InteractionOutcome,
    OutcomeGroup,
    Pattern,
    RolloutStage,
)

CONFIDENCE_RANK = {"high": 0, "medium": 1, "low": 2}

OPEN_STATUSES: tuple[AdjustmentStatus, ...] = (
    AdjustmentStatus.PENDING_APPROVAL,
    AdjustmentStatus.ACTIVE,
)

TERMINAL_FAILURE_STATUSES: tuple[AdjustmentStatus, ...] = (
    AdjustmentStatus.FAILED,
    AdjustmentStatus.ROLLED_BACK,
    AdjustmentStatus.REJECTED,
)


def pattern_sort_key(pattern: Pattern) -> tuple[int, float]:
    """Highest confidence first, then newest first."""
    return (CONFIDENCE_RANK.get(pattern.confidence, len(CONFIDENCE_RANK)), -pattern.timestamp.timestamp())


class AdjustmentRepository(ABC):
    """
    Persistence contract for Adjustment records.

    Writes are optimistic: `save` succeeds only if the stored version equals the version
    carried by the value, and returns the value with its version bumped.
    """

    @abstractmethod
    def add(self, adjustment: Adjustment) -> Adjustment:
        """Insert a new record."""

    @abstractmethod
    def get(self, adjustment_id: str) -> Adjustment:
        """Load by id; raise AdjustmentNotFoundError if missing."""

    @abstractmethod
    def save(self, adjustment: Adjustment) -> Adjustment:
        """Write back a loaded record; raise StaleWriteError on version mismatch."""

    @abstractmethod
    def update_atomically(
        self,
        adjustment_id: str,
        mutate: Callable[[Adjustment], Adjustment],
    ) -> Adjustment:
        """Load, mutate and write one record inside a single transaction."""

    @abstractmethod
    def find(
        self,
        guild_id: str | None = None,
        statuses: Iterable[AdjustmentStatus] | None = None,
        stages: Iterable[RolloutStage] | None = None,
        pattern_id: str | None = None,
    ) -> list[Adjustment]:
        """Query records, newest first."""

    @abstractmethod
    def latest_timestamp(self, guild_id: str) -> datetime | None:
        """Creation time of the guild's most recent adjustment."""

    @abstractmethod
    def purge_expired(
        self,
        terminal_before: datetime,
        completed_before: datetime,
    ) -> int:
        """Delete expired terminal records; return the number removed."""

    def active_for_monitoring(self) -> list[Adjustment]:
        return self.find(statuses=[AdjustmentStatus.ACTIVE], stages=MONITORED_STAGES)

    def active_for_guild(self, guild_id: str) -> list[Adjustment]:
        return self.find(guild_id=guild_id, statuses=[AdjustmentStatus.ACTIVE])

    def pending_for_guild(self, guild_id: str) -> list[Adjustment]:
        return self.find(
            guild_id=guild_id,
            statuses=[AdjustmentStatus.PENDING_APPROVAL],
            stages=[RolloutStage.PENDING_APPROVAL],
        )

    def open_for_pattern(self, guild_id: str, pattern_id: str) -> list[Adjustment]:
        return self.find(guild_id=guild_id, statuses=OPEN_STATUSES, pattern_id=pattern_id)


class PatternStore(ABC):
    """Read side of the external pattern store."""

    @abstractmethod
    def add(self, pattern: Pattern) -> Pattern:
        """Insert or replace a pattern."""

    @abstractmethod
    def get(self, pattern_id: str) -> Pattern | None:
        """Load by id."""

    @abstractmethod
    def list_approved(self, guild_id: str) -> list[Pattern]:
        """Approved patterns for a guild, highest confidence then newest first."""


class OutcomeLog(ABC):
    """Append-only record of classified interaction outcomes."""

    @abstractmethod
    def append(
        self,
        guild_id: str,
        outcome: InteractionOutcome,
        adjustment_id: str | None = None,
        group: OutcomeGroup | None = None,
        at: datetime | None = None,
    ) -> None:
        """Append one outcome."""

    @abstractmethod
    def count(self, guild_id: str) -> int:
        """Total outcomes recorded for a guild."""
