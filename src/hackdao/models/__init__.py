"""Core data models for the Hackathon DAO."""

from hackdao.models.directory import (
    Contribution,
    ContributionType,
    Member,
    MemberRole,
    Milestone,
    MilestoneStatus,
    Team,
)
from hackdao.models.governance import (
    Ballot,
    Proposal,
    ProposalStatus,
    ProposalType,
    VoteChoice,
)
from hackdao.models.royalty import (
    DistributionModel,
    DistributionRecord,
    PayoutLine,
    PoolStatus,
    RoyaltyPool,
    SettlementReport,
)

__all__ = [
    "Contribution",
    "ContributionType",
    "Member",
    "MemberRole",
    "Milestone",
    "MilestoneStatus",
    "Team",
    "Ballot",
    "Proposal",
    "ProposalStatus",
    "ProposalType",
    "VoteChoice",
    "DistributionModel",
    "DistributionRecord",
    "PayoutLine",
    "PoolStatus",
    "RoyaltyPool",
    "SettlementReport",
]
