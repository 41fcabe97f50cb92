"""Proposal generation from approved patterns."""

from .builders import (
    PROPOSAL_BUILDERS,
    MalformedPatternError,
    ProposalBuilder,
    builder_for,
    capped_weight_change,
)
from .generator import ProposalGenerator, ProposalResult

__all__ = [
    "MalformedPatternError",
    "PROPOSAL_BUILDERS",
    "ProposalBuilder",
    "ProposalGenerator",
    "ProposalResult",
    "builder_for",
    "capped_weight_change",
]
