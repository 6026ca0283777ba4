"""Proposal lifecycle — creation, quorum/approval evaluation, finalization, execution.

State machine:
    ACTIVE -> PASSED     quorum reached and approval threshold met
    ACTIVE -> EXPIRED    deadline passed without passing
    ACTIVE -> REJECTED   quorum reached, approval failed, deadline not passed

Finalization is pull-based: nothing moves a proposal on its own when
``expires_utc`` passes. ``finalize_proposal`` commits a terminal
transition and refuses to run when neither exit condition holds, so it
is not a polling call; ``proposal_stats`` is the side-effect-free probe.

Quorum is weighted participation against team size:
    required = team_member_count * quorum_required
    reached  = votes_for + votes_against + votes_abstain >= required

Approval ignores abstentions:
    passed = votes_for / (votes_for + votes_against) >= approval_threshold
    (no for/against weight at all means not passed)

Execution runs a passed proposal's side effect exactly once;
``actions_applied_utc`` marks it done.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional

import structlog

from hackdao.errors import (
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
)
from hackdao.models.common import to_decimal
from hackdao.models.governance import Proposal, ProposalStatus, ProposalType
from hackdao.models.royalty import RoyaltyPool
from hackdao.persistence.locks import EntityLocks
from hackdao.persistence.store import LedgerStore
from hackdao.policy.resolver import PolicyResolver
from hackdao.teams.directory import Directory

logger = structlog.get_logger()


@dataclass(frozen=True)
class QuorumStatus:
    reached: bool
    current: Decimal
    required: Decimal
    percentage: Decimal  # weighted participation as % of team size


@dataclass(frozen=True)
class ApprovalStatus:
    passed: bool
    percentage: Decimal
    votes_for: Decimal
    votes_against: Decimal
    votes_abstain: Decimal


@dataclass(frozen=True)
class ProposalStats:
    """Read-only snapshot used to decide whether to finalize."""
    proposal_id: str
    title: str
    status: ProposalStatus
    quorum: QuorumStatus
    approval: ApprovalStatus
    total_votes: Decimal
    time_remaining_seconds: float
    can_execute: bool


@dataclass(frozen=True)
class ExecutionResult:
    proposal: Proposal
    action: str
    target_id: Optional[str] = None


class ProposalLifecycle:
    """Owns proposal status and timestamps.

    Tallies are written only by the voting engine; this class reads them.

    Usage:
        lifecycle = ProposalLifecycle(store, directory, resolver)
        proposal = lifecycle.create_proposal(
            ProposalType.TEAM_DECISION, "Adopt Rust", "...", "m1", "t1",
        )
        stats = lifecycle.proposal_stats(proposal.proposal_id)
        if stats.can_execute:
            lifecycle.finalize_proposal(proposal.proposal_id)
    """

    def __init__(
        self,
        store: LedgerStore,
        directory: Directory,
        resolver: PolicyResolver,
        locks: Optional[EntityLocks] = None,
    ) -> None:
        self._store = store
        self._directory = directory
        self._params = resolver.proposal_params()
        self.locks = locks or EntityLocks()
        self._logger = logger.bind(system="governance.proposals")

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_proposal(
        self,
        proposal_type: ProposalType | str,
        title: str,
        description: str,
        proposed_by: str,
        team_id: str,
        expires_utc: Optional[datetime] = None,
        quorum_required: Any = None,
        approval_threshold: Any = None,
        metadata: Optional[dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> Proposal:
        """Create an ACTIVE proposal for a team.

        Raises:
            InvalidArgumentError: unknown type, empty title, fractions
                outside (0, 1], or a deadline not after creation.
            NotFoundError: the team does not exist.
        """
        try:
            kind = ProposalType(proposal_type)
        except ValueError:
            raise InvalidArgumentError(f"Unknown proposal type: {proposal_type!r}") from None
        if not title or not title.strip():
            raise InvalidArgumentError("Proposal title must not be empty")
        if not proposed_by:
            raise InvalidArgumentError("Proposal must name a proposer")
        self._directory.require_team(team_id)

        quorum = (
            self._params["default_quorum_required"] if quorum_required is None
            else to_decimal(quorum_required)
        )
        threshold = (
            self._params["default_approval_threshold"] if approval_threshold is None
            else to_decimal(approval_threshold)
        )
        for label, value in (("quorum_required", quorum), ("approval_threshold", threshold)):
            if not Decimal("0") < value <= Decimal("1"):
                raise InvalidArgumentError(f"{label} must be in (0, 1], got {value}")

        if now is None:
            now = datetime.now(timezone.utc)
        if expires_utc is None:
            expires_utc = now + timedelta(days=self._params["default_duration_days"])
        if expires_utc <= now:
            raise InvalidArgumentError("Proposal deadline must be after its creation time")

        proposal = Proposal(
            proposal_id=f"prop_{uuid.uuid4().hex[:12]}",
            proposal_type=kind,
            title=title.strip(),
            description=description.strip() if description else "",
            proposed_by=proposed_by,
            team_id=team_id,
            created_utc=now,
            expires_utc=expires_utc,
            quorum_required=quorum,
            approval_threshold=threshold,
            # Stored documents must stay JSON-serializable.
            metadata=json.loads(json.dumps(metadata or {}, default=str)),
        )
        self._store.insert("proposals", proposal.proposal_id, proposal.to_record())
        self._logger.info(
            "proposal_created",
            proposal_id=proposal.proposal_id, proposal_type=kind.value, team_id=team_id,
        )
        return proposal

    def create_contribution_verification_proposal(
        self,
        contribution_id: str,
        proposed_by: str,
        team_id: str,
        now: Optional[datetime] = None,
    ) -> Proposal:
        contribution = self._directory.require_contribution(contribution_id)
        return self.create_proposal(
            ProposalType.CONTRIBUTION_VERIFICATION,
            title=(
                f"Verify contribution: {contribution.contribution_type} "
                f"by {contribution.member_id}"
            ),
            description=f"Vote to verify contribution (Score: {contribution.score})",
            proposed_by=proposed_by,
            team_id=team_id,
            metadata={
                "contribution_id": contribution_id,
                "contribution_type": contribution.contribution_type,
                "score": str(contribution.score),
            },
            now=now,
        )

    def create_royalty_distribution_proposal(
        self,
        pool_id: str,
        proposed_by: str,
        team_id: str,
        now: Optional[datetime] = None,
    ) -> Proposal:
        data = self._store.get("royalties", pool_id)
        if data is None:
            raise NotFoundError(f"Royalty pool {pool_id} not found")
        pool = RoyaltyPool.from_record(data)
        return self.create_proposal(
            ProposalType.ROYALTY_DISTRIBUTION,
            title=f"Approve royalty distribution: {pool.name}",
            description=(
                f"Vote to approve distribution of {pool.total_amount} {pool.currency}"
            ),
            proposed_by=proposed_by,
            team_id=team_id,
            metadata={
                "pool_id": pool_id,
                "amount": str(pool.total_amount),
                "currency": pool.currency,
                "recipient_count": len(pool.distributions),
            },
            now=now,
        )

    def create_milestone_approval_proposal(
        self,
        team_id: str,
        milestone_id: str,
        proposed_by: str,
        now: Optional[datetime] = None,
    ) -> Proposal:
        milestone = self._directory.get_milestone(team_id, milestone_id)
        return self.create_proposal(
            ProposalType.MILESTONE_APPROVAL,
            title=f"Approve milestone completion: {milestone.title}",
            description=(
                f"Vote to approve completion of milestone: {milestone.description}"
            ),
            proposed_by=proposed_by,
            team_id=team_id,
            metadata={
                "milestone_id": milestone_id,
                "milestone_title": milestone.title,
            },
            now=now,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_proposal(self, proposal_id: str) -> Optional[Proposal]:
        data = self._store.get("proposals", proposal_id)
        return Proposal.from_record(data) if data is not None else None

    def require_proposal(self, proposal_id: str) -> Proposal:
        proposal = self.get_proposal(proposal_id)
        if proposal is None:
            raise NotFoundError(f"Proposal {proposal_id} not found")
        return proposal

    def save(self, proposal: Proposal) -> None:
        self._store.update("proposals", proposal.proposal_id, proposal.to_record())

    def team_proposals(
        self,
        team_id: str,
        status: Optional[ProposalStatus] = None,
    ) -> list[Proposal]:
        proposals = [
            Proposal.from_record(d) for d in self._store.find("proposals", team_id=team_id)
        ]
        if status is not None:
            proposals = [p for p in proposals if p.status == status]
        return proposals

    def member_proposals(self, member_id: str) -> list[Proposal]:
        return [
            Proposal.from_record(d)
            for d in self._store.find("proposals", proposed_by=member_id)
        ]

    def active_proposals(self, now: Optional[datetime] = None) -> list[Proposal]:
        """ACTIVE proposals whose deadline has not passed."""
        if now is None:
            now = datetime.now(timezone.utc)
        return [
            p for p in (
                Proposal.from_record(d)
                for d in self._store.find("proposals", status=ProposalStatus.ACTIVE.value)
            )
            if p.expires_utc > now
        ]

    def pool_approvals(self, pool_id: str) -> list[Proposal]:
        """royalty_distribution proposals that wrap the given pool."""
        return [
            p for p in (
                Proposal.from_record(d)
                for d in self._store.find(
                    "proposals", proposal_type=ProposalType.ROYALTY_DISTRIBUTION.value,
                )
            )
            if p.metadata.get("pool_id") == pool_id
        ]

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def evaluate_quorum(self, proposal: Proposal) -> QuorumStatus:
        team = self._directory.require_team(proposal.team_id)
        eligible = Decimal(len(team.members))
        current = proposal.total_votes
        required = eligible * proposal.quorum_required
        percentage = (current / eligible * 100) if eligible > 0 else Decimal("0")
        return QuorumStatus(
            reached=current >= required,
            current=current,
            required=required,
            percentage=percentage,
        )

    @staticmethod
    def evaluate_approval(proposal: Proposal) -> ApprovalStatus:
        decisive = proposal.votes_for + proposal.votes_against
        if decisive == 0:
            return ApprovalStatus(
                passed=False,
                percentage=Decimal("0"),
                votes_for=proposal.votes_for,
                votes_against=proposal.votes_against,
                votes_abstain=proposal.votes_abstain,
            )
        ratio = proposal.votes_for / decisive
        return ApprovalStatus(
            passed=ratio >= proposal.approval_threshold,
            percentage=ratio * 100,
            votes_for=proposal.votes_for,
            votes_against=proposal.votes_against,
            votes_abstain=proposal.votes_abstain,
        )

    def check_quorum(self, proposal_id: str) -> QuorumStatus:
        return self.evaluate_quorum(self.require_proposal(proposal_id))

    def check_approval(self, proposal_id: str) -> ApprovalStatus:
        return self.evaluate_approval(self.require_proposal(proposal_id))

    def proposal_stats(
        self,
        proposal_id: str,
        now: Optional[datetime] = None,
    ) -> ProposalStats:
        if now is None:
            now = datetime.now(timezone.utc)
        proposal = self.require_proposal(proposal_id)
        quorum = self.evaluate_quorum(proposal)
        approval = self.evaluate_approval(proposal)
        return ProposalStats(
            proposal_id=proposal.proposal_id,
            title=proposal.title,
            status=proposal.status,
            quorum=quorum,
            approval=approval,
            total_votes=proposal.total_votes,
            time_remaining_seconds=max(0.0, (proposal.expires_utc - now).total_seconds()),
            can_execute=quorum.reached and approval.passed,
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def finalize_proposal(
        self,
        proposal_id: str,
        now: Optional[datetime] = None,
    ) -> Proposal:
        """Commit the proposal's terminal status.

        Raises:
            NotFoundError: unknown proposal.
            InvalidStateError: proposal is not ACTIVE, or it is still
                undecided (quorum not reached) before its deadline.
        """
        if now is None:
            now = datetime.now(timezone.utc)

        with self.locks.hold("proposals", proposal_id):
            proposal = self.require_proposal(proposal_id)
            if proposal.is_terminal:
                raise InvalidStateError(
                    f"Proposal {proposal_id} is not active (status: {proposal.status.value})"
                )

            quorum = self.evaluate_quorum(proposal)
            approval = self.evaluate_approval(proposal)

            if quorum.reached and approval.passed:
                proposal.transition_to(ProposalStatus.PASSED)
                proposal.executed_utc = now
            elif now > proposal.expires_utc:
                proposal.transition_to(ProposalStatus.EXPIRED)
            elif quorum.reached:
                proposal.transition_to(ProposalStatus.REJECTED)
            else:
                raise InvalidStateError(
                    f"Proposal {proposal_id} is undecided: quorum "
                    f"{quorum.current}/{quorum.required} and voting open until "
                    f"{proposal.expires_utc.isoformat()}"
                )

            self.save(proposal)

        self._logger.info(
            "proposal_finalized",
            proposal_id=proposal_id,
            status=proposal.status.value,
            quorum_current=str(quorum.current),
            approval_pct=str(approval.percentage),
        )
        return proposal

    def execute_proposal(
        self,
        proposal_id: str,
        now: Optional[datetime] = None,
    ) -> ExecutionResult:
        """Apply a PASSED proposal's side effect, once.

        Raises:
            InvalidStateError: not PASSED, or already executed.
            NotFoundError: the referenced contribution or milestone is gone.
        """
        if now is None:
            now = datetime.now(timezone.utc)

        with self.locks.hold("proposals", proposal_id):
            proposal = self.require_proposal(proposal_id)
            if proposal.status != ProposalStatus.PASSED:
                raise InvalidStateError("Only passed proposals can be executed")
            if proposal.actions_applied_utc is not None:
                raise InvalidStateError(
                    f"Proposal {proposal_id} was already executed at "
                    f"{proposal.actions_applied_utc.isoformat()}"
                )

            action, target_id = self._dispatch(proposal, now)
            proposal.actions_applied_utc = now
            self.save(proposal)

        self._logger.info(
            "proposal_executed",
            proposal_id=proposal_id, action=action, target_id=target_id,
        )
        return ExecutionResult(proposal=proposal, action=action, target_id=target_id)

    def _dispatch(self, proposal: Proposal, now: datetime) -> tuple[str, Optional[str]]:
        meta = proposal.metadata
        if proposal.proposal_type == ProposalType.CONTRIBUTION_VERIFICATION:
            contribution_id = meta.get("contribution_id")
            if not contribution_id:
                raise InvalidArgumentError("Proposal metadata lacks contribution_id")
            self._directory.verify_contribution(contribution_id, "dao_vote", now=now)
            return "contribution_verified", contribution_id

        if proposal.proposal_type == ProposalType.ROYALTY_DISTRIBUTION:
            # Approval only; settlement is invoked separately on the royalty engine.
            return "royalty_distribution_approved", meta.get("pool_id")

        if proposal.proposal_type == ProposalType.MILESTONE_APPROVAL:
            milestone_id = meta.get("milestone_id")
            if not milestone_id:
                raise InvalidArgumentError("Proposal metadata lacks milestone_id")
            self._directory.complete_milestone(proposal.team_id, milestone_id, now=now)
            return "milestone_completed", milestone_id

        return "none", None
