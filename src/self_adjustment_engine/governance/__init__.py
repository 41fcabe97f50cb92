"""Governance modules for adjustment lifecycle and rollout safety."""

from . import state_machine
from .rollback_manager import RollbackManager
from .rollout_policy import RolloutAction, RolloutDecision, RolloutPolicy
from .traffic import assign_group, deterministic_canary_assignment, traffic_bucket

__all__ = [
    "RollbackManager",
    "RolloutAction",
    "RolloutDecision",
    "RolloutPolicy",
    "assign_group",
    "deterministic_canary_assignment",
    "state_machine",
    "traffic_bucket",
]
