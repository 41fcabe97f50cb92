"""Persistence backends for adjustments, patterns and outcomes."""

from .base import AdjustmentRepository, OutcomeLog, PatternStore
from .memory import InMemoryAdjustmentRepository, InMemoryOutcomeLog, InMemoryPatternStore
from .sqlite import SQLiteAdjustmentRepository, SQLiteOutcomeLog, SQLitePatternStore

__all__ = [
    "AdjustmentRepository",
    "InMemoryAdjustmentRepository",
    "InMemoryOutcomeLog",
    "InMemoryPatternStore",
    "OutcomeLog",
    "PatternStore",
    "SQLiteAdjustmentRepository",
    "SQLiteOutcomeLog",
    "SQLitePatternStore",
]
