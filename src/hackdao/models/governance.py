"""Proposal and ballot models.

Proposal lifecycle:
    ACTIVE -> PASSED
    ACTIVE -> REJECTED
    ACTIVE -> EXPIRED

ACTIVE is the only non-terminal state. Nothing leaves a terminal state.
Tallies are weighted Decimal sums; the ballots that produced them are
stored separately and are immutable once cast.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from hackdao.errors import InvalidStateError
from hackdao.models.common import from_iso, to_decimal, to_iso


class ProposalType(str, enum.Enum):
    """Kinds of governance action a proposal can carry."""
    CONTRIBUTION_VERIFICATION = "contribution_verification"
    ROYALTY_DISTRIBUTION = "royalty_distribution"
    TEAM_DECISION = "team_decision"
    MEMBER_REMOVAL = "member_removal"
    MILESTONE_APPROVAL = "milestone_approval"
    RULE_CHANGE = "rule_change"


class ProposalStatus(str, enum.Enum):
    ACTIVE = "active"
    PASSED = "passed"
    REJECTED = "rejected"
    EXPIRED = "expired"


class VoteChoice(str, enum.Enum):
    FOR = "for"
    AGAINST = "against"
    ABSTAIN = "abstain"


PROPOSAL_TRANSITIONS: dict[ProposalStatus, frozenset] = {
    ProposalStatus.ACTIVE: frozenset({
        ProposalStatus.PASSED,
        ProposalStatus.REJECTED,
        ProposalStatus.EXPIRED,
    }),
    ProposalStatus.PASSED: frozenset(),
    ProposalStatus.REJECTED: frozenset(),
    ProposalStatus.EXPIRED: frozenset(),
}


@dataclass
class Proposal:
    """A governance proposal scoped to one team.

    Mutable: the voting engine updates the tallies and voter list, the
    lifecycle updates status and timestamps.
    """
    proposal_id: str
    proposal_type: ProposalType
    title: str
    description: str
    proposed_by: str
    team_id: str
    created_utc: datetime
    expires_utc: datetime
    status: ProposalStatus = ProposalStatus.ACTIVE
    votes_for: Decimal = Decimal("0")
    votes_against: Decimal = Decimal("0")
    votes_abstain: Decimal = Decimal("0")
    voters: list[str] = field(default_factory=list)
    quorum_required: Decimal = Decimal("0.5")
    approval_threshold: Decimal = Decimal("0.66")
    executed_utc: Optional[datetime] = None
    actions_applied_utc: Optional[datetime] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def total_votes(self) -> Decimal:
        return self.votes_for + self.votes_against + self.votes_abstain

    @property
    def is_terminal(self) -> bool:
        return not PROPOSAL_TRANSITIONS[self.status]

    def transition_to(self, new_status: ProposalStatus) -> None:
        """Move to a new status, rejecting anything the lifecycle forbids."""
        allowed = PROPOSAL_TRANSITIONS.get(self.status, frozenset())
        if new_status not in allowed:
            raise InvalidStateError(
                f"Invalid proposal transition: {self.status.value} -> {new_status.value}"
            )
        self.status = new_status

    def add_weight(self, choice: VoteChoice, weight: Decimal) -> None:
        if choice == VoteChoice.FOR:
            self.votes_for += weight
        elif choice == VoteChoice.AGAINST:
            self.votes_against += weight
        else:
            self.votes_abstain += weight

    def to_record(self) -> dict[str, Any]:
        return {
            "proposal_id": self.proposal_id,
            "proposal_type": self.proposal_type.value,
            "title": self.title,
            "description": self.description,
            "proposed_by": self.proposed_by,
            "team_id": self.team_id,
            "status": self.status.value,
            "votes_for": str(self.votes_for),
            "votes_against": str(self.votes_against),
            "votes_abstain": str(self.votes_abstain),
            "voters": list(self.voters),
            "created_utc": to_iso(self.created_utc),
            "expires_utc": to_iso(self.expires_utc),
            "executed_utc": to_iso(self.executed_utc),
            "actions_applied_utc": to_iso(self.actions_applied_utc),
            "quorum_required": str(self.quorum_required),
            "approval_threshold": str(self.approval_threshold),
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> Proposal:
        return cls(
            proposal_id=data["proposal_id"],
            proposal_type=ProposalType(data["proposal_type"]),
            title=data["title"],
            description=data.get("description", ""),
            proposed_by=data["proposed_by"],
            team_id=data["team_id"],
            status=ProposalStatus(data.get("status", "active")),
            votes_for=to_decimal(data.get("votes_for", "0")),
            votes_against=to_decimal(data.get("votes_against", "0")),
            votes_abstain=to_decimal(data.get("votes_abstain", "0")),
            voters=list(data.get("voters", [])),
            created_utc=from_iso(data["created_utc"]),
            expires_utc=from_iso(data["expires_utc"]),
            executed_utc=from_iso(data.get("executed_utc")),
            actions_applied_utc=from_iso(data.get("actions_applied_utc")),
            quorum_required=to_decimal(data.get("quorum_required", "0.5")),
            approval_threshold=to_decimal(data.get("approval_threshold", "0.66")),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass(frozen=True)
class Ballot:
    """A single cast vote. Frozen: weight never changes after casting."""
    ballot_id: str
    proposal_id: str
    voter_id: str
    choice: VoteChoice
    weight: Decimal
    cast_utc: datetime
    reason: str = ""

    def to_record(self) -> dict[str, Any]:
        return {
            "ballot_id": self.ballot_id,
            "proposal_id": self.proposal_id,
            "voter_id": self.voter_id,
            "choice": self.choice.value,
            "weight": str(self.weight),
            "cast_utc": to_iso(self.cast_utc),
            "reason": self.reason,
        }

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> Ballot:
        return cls(
            ballot_id=data["ballot_id"],
            proposal_id=data["proposal_id"],
            voter_id=data["voter_id"],
            choice=VoteChoice(data["choice"]),
            weight=to_decimal(data["weight"]),
            cast_utc=from_iso(data["cast_utc"]),
            reason=data.get("reason", ""),
        )
