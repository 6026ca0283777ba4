"""Voting engine — ballot validation, vote weight, tallies.

A ballot's weight is computed once at cast time and frozen:

    weight = base
           + clamp(0, rep_cap, (reputation - baseline) / divisor)
           + min(contrib_cap, verified_contributions_on_team * per_verified)
           + role_bonus[role]

rounded half-up to 2 decimals. Later reputation or role changes never
touch an existing ballot or tally.

Casting a vote is the only write path to a proposal's tallies. Each
cast holds the proposal's entity lock so that the duplicate check, the
ballot insert and the tally update happen as one step.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

import structlog

from hackdao.errors import (
    DuplicateVoteError,
    ExpiredError,
    InvalidArgumentError,
    InvalidStateError,
    NotEligibleError,
)
from hackdao.governance.proposals import ProposalLifecycle
from hackdao.models.governance import Ballot, Proposal, ProposalStatus, VoteChoice
from hackdao.persistence.store import LedgerStore
from hackdao.policy.resolver import PolicyResolver
from hackdao.teams.directory import Directory

logger = structlog.get_logger()

WEIGHT_QUANTUM = Decimal("0.01")


@dataclass(frozen=True)
class VoteDetail:
    ballot: Ballot
    voter_name: str
    voter_role: str


@dataclass(frozen=True)
class MemberVotingStats:
    member_id: str
    total_votes: int
    votes_for: int
    votes_against: int
    votes_abstain: int
    average_weight: Decimal
    participation_rate: Decimal  # % of proposals across the member's teams


@dataclass
class ChoicePower:
    power: Decimal = Decimal("0")
    voters: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class VotingPowerBreakdown:
    proposal_id: str
    total_power: Decimal
    by_choice: dict[VoteChoice, ChoicePower]


class VotingEngine:
    """Validates and records weighted ballots.

    Shares its entity locks with the proposal lifecycle so that casting
    and finalizing the same proposal never interleave.

    Usage:
        voting = VotingEngine(store, directory, lifecycle, resolver)
        ballot = voting.cast_vote(proposal_id, "m2", "for", reason="ship it")
    """

    def __init__(
        self,
        store: LedgerStore,
        directory: Directory,
        proposals: ProposalLifecycle,
        resolver: PolicyResolver,
    ) -> None:
        self._store = store
        self._directory = directory
        self._proposals = proposals
        self._locks = proposals.locks
        self._params = resolver.voting_params()
        self._logger = logger.bind(system="governance.voting")

    # ------------------------------------------------------------------
    # Weight
    # ------------------------------------------------------------------

    def compute_vote_weight(self, voter_id: str, team_id: str) -> Decimal:
        p = self._params
        member = self._directory.get_member(voter_id)
        if member is None:
            return p["base_weight"].quantize(WEIGHT_QUANTUM, rounding=ROUND_HALF_UP)

        reputation_bonus = (
            Decimal(member.reputation) - p["reputation_baseline"]
        ) / p["reputation_divisor"]
        reputation_bonus = max(Decimal("0"), min(p["reputation_bonus_cap"], reputation_bonus))

        verified = self._directory.verified_contribution_count(voter_id, team_id)
        contribution_bonus = min(
            p["contribution_bonus_cap"],
            Decimal(verified) * p["contribution_bonus_per_verified"],
        )

        role_bonus = p["role_bonus"].get(member.role, Decimal("0"))

        weight = p["base_weight"] + reputation_bonus + contribution_bonus + role_bonus
        return weight.quantize(WEIGHT_QUANTUM, rounding=ROUND_HALF_UP)

    # ------------------------------------------------------------------
    # Casting
    # ------------------------------------------------------------------

    def cast_vote(
        self,
        proposal_id: str,
        voter_id: str,
        choice: VoteChoice | str,
        reason: str = "",
        now: Optional[datetime] = None,
    ) -> Ballot:
        """Record one weighted ballot.

        Raises, in check order:
            NotFoundError: unknown proposal.
            InvalidStateError: proposal not ACTIVE.
            ExpiredError: deadline has passed.
            NotEligibleError: voter is not on the proposal's team.
            DuplicateVoteError: voter already voted on this proposal.
            InvalidArgumentError: unrecognized choice.
        """
        if now is None:
            now = datetime.now(timezone.utc)

        with self._locks.hold("proposals", proposal_id):
            proposal = self._proposals.require_proposal(proposal_id)
            if proposal.status != ProposalStatus.ACTIVE:
                raise InvalidStateError(
                    f"Proposal {proposal_id} is not active (status: {proposal.status.value})"
                )
            if now > proposal.expires_utc:
                raise ExpiredError(f"Voting on proposal {proposal_id} has closed")
            if not self.check_voter_eligibility(proposal, voter_id):
                raise NotEligibleError(
                    f"Member {voter_id} is not on team {proposal.team_id}"
                )
            if voter_id in proposal.voters:
                raise DuplicateVoteError(
                    f"Member {voter_id} already voted on proposal {proposal_id}"
                )
            try:
                vote_choice = VoteChoice(choice)
            except ValueError:
                raise InvalidArgumentError(f"Invalid vote option: {choice!r}") from None

            weight = self.compute_vote_weight(voter_id, proposal.team_id)
            ballot = Ballot(
                ballot_id=f"vote_{uuid.uuid4().hex[:12]}",
                proposal_id=proposal_id,
                voter_id=voter_id,
                choice=vote_choice,
                weight=weight,
                cast_utc=now,
                reason=reason,
            )
            self._store.insert("votes", ballot.ballot_id, ballot.to_record())
            proposal.voters.append(voter_id)
            proposal.add_weight(vote_choice, weight)
            self._proposals.save(proposal)

        self._logger.info(
            "vote_cast",
            proposal_id=proposal_id,
            voter_id=voter_id,
            choice=vote_choice.value,
            weight=str(weight),
        )
        return ballot

    def check_voter_eligibility(self, proposal: Proposal, voter_id: str) -> bool:
        team = self._directory.get_team(proposal.team_id)
        if team is None:
            return False
        return voter_id in team.members

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def proposal_votes(self, proposal_id: str) -> list[Ballot]:
        return [
            Ballot.from_record(d)
            for d in self._store.find("votes", proposal_id=proposal_id)
        ]

    def proposal_votes_with_details(self, proposal_id: str) -> list[VoteDetail]:
        details = []
        for ballot in self.proposal_votes(proposal_id):
            member = self._directory.get_member(ballot.voter_id)
            details.append(VoteDetail(
                ballot=ballot,
                voter_name=member.name if member else "Unknown",
                voter_role=member.role if member else "Unknown",
            ))
        return details

    def member_voting_history(self, member_id: str) -> list[Ballot]:
        return [
            Ballot.from_record(d)
            for d in self._store.find("votes", voter_id=member_id)
        ]

    def member_voting_stats(self, member_id: str) -> MemberVotingStats:
        history = self.member_voting_history(member_id)
        counts = {choice: 0 for choice in VoteChoice}
        for ballot in history:
            counts[ballot.choice] += 1

        average = Decimal("0")
        if history:
            average = sum((b.weight for b in history), Decimal("0")) / len(history)

        participation = Decimal("0")
        member = self._directory.get_member(member_id)
        if member is not None:
            available = sum(
                len(self._store.find("proposals", team_id=team_id))
                for team_id in member.teams
            )
            if available:
                participation = Decimal(len(history)) / Decimal(available) * 100

        return MemberVotingStats(
            member_id=member_id,
            total_votes=len(history),
            votes_for=counts[VoteChoice.FOR],
            votes_against=counts[VoteChoice.AGAINST],
            votes_abstain=counts[VoteChoice.ABSTAIN],
            average_weight=average,
            participation_rate=participation,
        )

    def voting_power_breakdown(self, proposal_id: str) -> VotingPowerBreakdown:
        self._proposals.require_proposal(proposal_id)
        by_choice = {choice: ChoicePower() for choice in VoteChoice}
        total = Decimal("0")
        for detail in self.proposal_votes_with_details(proposal_id):
            bucket = by_choice[detail.ballot.choice]
            bucket.power += detail.ballot.weight
            bucket.voters.append({
                "voter_id": detail.ballot.voter_id,
                "name": detail.voter_name,
                "weight": detail.ballot.weight,
            })
            total += detail.ballot.weight
        return VotingPowerBreakdown(
            proposal_id=proposal_id,
            total_power=total,
            by_choice=by_choice,
        )

    # ------------------------------------------------------------------
    # Extension
    # ------------------------------------------------------------------

    def extend_voting(
        self,
        proposal_id: str,
        requested_by: str,
        reason: str = "",
        extension_days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Proposal:
        """Push an ACTIVE proposal's deadline forward. Tallies are untouched.

        Raises:
            NotEligibleError: requester lacks an extension role.
            InvalidStateError: proposal not ACTIVE.
            InvalidArgumentError: non-positive extension.
        """
        if extension_days is None:
            extension_days = self._params["extension_default_days"]
        if extension_days <= 0:
            raise InvalidArgumentError(
                f"extension_days must be positive, got {extension_days}"
            )
        requester = self._directory.get_member(requested_by)
        if requester is None or requester.role not in self._params["extension_roles"]:
            raise NotEligibleError(
                f"Member {requested_by} may not extend voting periods"
            )

        with self._locks.hold("proposals", proposal_id):
            proposal = self._proposals.require_proposal(proposal_id)
            if proposal.status != ProposalStatus.ACTIVE:
                raise InvalidStateError("Can only extend active proposals")
            before = proposal.expires_utc
            proposal.expires_utc = before + timedelta(days=extension_days)
            extensions = proposal.metadata.setdefault("extensions", [])
            extensions.append({
                "requested_by": requested_by,
                "reason": reason,
                "days": extension_days,
                "previous_expiry": before.isoformat(),
                "requested_utc": (now or datetime.now(timezone.utc)).isoformat(),
            })
            self._proposals.save(proposal)

        self._logger.info(
            "voting_extended",
            proposal_id=proposal_id,
            requested_by=requested_by,
            days=extension_days,
            expires_utc=proposal.expires_utc.isoformat(),
        )
        return proposal
