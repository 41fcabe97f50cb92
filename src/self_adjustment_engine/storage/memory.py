"""In-process repositories suitable for tests and single-process deployments."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import replace
from datetime import datetime
from typing import Callable, Iterable
import threading

from self_adjustment_engine.contracts import (
    Adjustment,
    AdjustmentStatus,
    InteractionOutcome,
    OutcomeGroup,
    Pattern,
    RolloutStage,
    now_utc,
)
from self_adjustment_engine.errors import AdjustmentNotFoundError, RepositoryError, StaleWriteError

from .base import (
    TERMINAL_FAILURE_STATUSES,
    AdjustmentRepository,
    OutcomeLog,
    PatternStore,
    pattern_sort_key,
)


def _clone(adjustment: Adjustment) -> Adjustment:
    return Adjustment.from_dict(adjustment.to_dict())


class InMemoryAdjustmentRepository(AdjustmentRepository):
    """Dictionary-backed repository; values are copied in and out so callers never share state."""

    def __init__(self) -> None:
        self._records: dict[str, Adjustment] = {}
        self._lock = threading.RLock()

    def add(self, adjustment: Adjustment) -> Adjustment:
        with self._lock:
            if adjustment.adjustment_id in self._records:
                raise RepositoryError(f"Adjustment '{adjustment.adjustment_id}' already exists")
            stored = replace(_clone(adjustment), version=0, updated_at=now_utc())
            self._records[stored.adjustment_id] = stored
            return _clone(stored)

    def get(self, adjustment_id: str) -> Adjustment:
        with self._lock:
            record = self._records.get(adjustment_id)
            if record is None:
                raise AdjustmentNotFoundError(adjustment_id)
            return _clone(record)

    def save(self, adjustment: Adjustment) -> Adjustment:
        with self._lock:
            current = self._records.get(adjustment.adjustment_id)
            if current is None:
                raise AdjustmentNotFoundError(adjustment.adjustment_id)
            if current.version != adjustment.version:
                raise StaleWriteError(adjustment.adjustment_id, adjustment.version)
            stored = replace(_clone(adjustment), version=adjustment.version + 1, updated_at=now_utc())
            self._records[stored.adjustment_id] = stored
            return _clone(stored)

    def update_atomically(
        self,
        adjustment_id: str,
        mutate: Callable[[Adjustment], Adjustment],
    ) -> Adjustment:
        with self._lock:
            return self.save(mutate(self.get(adjustment_id)))

    def find(
        self,
        guild_id: str | None = None,
        statuses: Iterable[AdjustmentStatus] | None = None,
        stages: Iterable[RolloutStage] | None = None,
        pattern_id: str | None = None,
    ) -> list[Adjustment]:
        status_set = set(statuses) if statuses is not None else None
        stage_set = set(stages) if stages is not None else None
        with self._lock:
            rows = [
                record
                for record in self._records.values()
                if (guild_id is None or record.guild_id == guild_id)
                and (status_set is None or record.status in status_set)
                and (stage_set is None or record.rollout_stage in stage_set)
                and (pattern_id is None or record.pattern_id == pattern_id)
            ]
            rows.sort(key=lambda r: r.timestamp, reverse=True)
            return [_clone(r) for r in rows]

    def latest_timestamp(self, guild_id: str) -> datetime | None:
        with self._lock:
            stamps = [r.timestamp for r in self._records.values() if r.guild_id == guild_id]
        return max(stamps) if stamps else None

    def purge_expired(self, terminal_before: datetime, completed_before: datetime) -> int:
        with self._lock:
            expired = [
                key
                for key, record in self._records.items()
                if (record.status in TERMINAL_FAILURE_STATUSES and record.timestamp < terminal_before)
                or (
                    record.status == AdjustmentStatus.COMPLETED
                    and record.completed_at is not None
                    and record.completed_at < completed_before
                )
            ]
            for key in expired:
                del self._records[key]
        return len(expired)


class InMemoryPatternStore(PatternStore):
    def __init__(self, patterns: Iterable[Pattern] | None = None) -> None:
        self._patterns: dict[str, Pattern] = {}
        for pattern in patterns or []:
            self.add(pattern)

    def add(self, pattern: Pattern) -> Pattern:
        self._patterns[pattern.pattern_id] = pattern
        return pattern

    def get(self, pattern_id: str) -> Pattern | None:
        return self._patterns.get(pattern_id)

    def list_approved(self, guild_id: str) -> list[Pattern]:
        rows = [p for p in self._patterns.values() if p.guild_id == guild_id and p.approved]
        return sorted(rows, key=pattern_sort_key)


class InMemoryOutcomeLog(OutcomeLog):
    def __init__(self) -> None:
        self._counts: dict[str, int] = defaultdict(int)
        self._lock = threading.Lock()

    def append(
        self,
        guild_id: str,
        outcome: InteractionOutcome,
        adjustment_id: str | None = None,
        group: OutcomeGroup | None = None,
        at: datetime | None = None,
    ) -> None:
        with self._lock:
            self._counts[guild_id] += 1

    def seed(self, guild_id: str, count: int) -> None:
        """Pre-load a baseline count without materializing outcomes."""
        with self._lock:
            self._counts[guild_id] += int(count)

    def count(self, guild_id: str) -> int:
        return self._counts[guild_id]
