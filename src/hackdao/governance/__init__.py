"""Governance — proposals and weighted voting."""

from hackdao.governance.proposals import (
    ApprovalStatus,
    ExecutionResult,
    ProposalLifecycle,
    ProposalStats,
    QuorumStatus,
)
from hackdao.governance.voting import (
    MemberVotingStats,
    VoteDetail,
    VotingEngine,
    VotingPowerBreakdown,
)

__all__ = [
    "ApprovalStatus",
    "ExecutionResult",
    "MemberVotingStats",
    "ProposalLifecycle",
    "ProposalStats",
    "QuorumStatus",
    "VoteDetail",
    "VotingEngine",
    "VotingPowerBreakdown",
]
