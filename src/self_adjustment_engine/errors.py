"""Exception hierarchy for operational failures."""

from __future__ import annotations


class AdjustmentEngineError(Exception):
    """Base class for engine errors."""


class AdjustmentNotFoundError(AdjustmentEngineError, KeyError):
    """Raised when an adjustment id does not resolve to a record."""

    def __init__(self, adjustment_id: str) -> None:
        super().__init__(f"Unknown adjustment_id '{adjustment_id}'")
        self.adjustment_id = adjustment_id

    def __str__(self) -> str:
        return str(self.args[0])


class InvalidTransitionError(AdjustmentEngineError, ValueError):
    """Raised when a rollout transition is not legal from the current state."""


class ConcurrentAdjustmentError(AdjustmentEngineError):
    """Raised when a guild already has an active adjustment."""


class StaleWriteError(AdjustmentEngineError):
    """Raised when a write carries a version older than the stored record."""

    def __init__(self, adjustment_id: str, expected_version: int) -> None:
        super().__init__(
            f"Stale write for adjustment '{adjustment_id}' (expected version {expected_version})"
        )
        self.adjustment_id = adjustment_id
        self.expected_version = expected_version


class RepositoryError(AdjustmentEngineError):
    """Raised when the backing store is unavailable or returns malformed data."""
