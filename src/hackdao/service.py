"""HackDAO service — unified facade over the governance and royalty engines.

This is the primary interface for programmatic access. It orchestrates:
- Directory bookkeeping (teams, members, milestones, contributions)
- Proposal lifecycle (create, vote, extend, finalize, execute)
- Royalty pools (create + calculate, approval proposal or settlement)
- Audit trail (every state change appended to the event log)

All operations return a ServiceResult. Engine failures (``DAOError``)
become ``success=False`` results carrying the error's ``kind``; anything
else (a broken store, a programming error) propagates.

All engines share one EntityLocks instance, so a service can be used
from several threads at once.
"""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import structlog

from hackdao import __version__
from hackdao.errors import DAOError, InvalidStateError, NoContributionsError
from hackdao.governance.proposals import ProposalLifecycle, ProposalStats
from hackdao.governance.voting import VotingEngine
from hackdao.models.governance import ProposalStatus
from hackdao.models.royalty import PoolStatus, RoyaltyPool, SettlementReport
from hackdao.persistence.event_log import EventKind, EventLog, EventRecord
from hackdao.persistence.locks import EntityLocks
from hackdao.persistence.seed import seed_sample_data
from hackdao.persistence.store import InMemoryLedgerStore, LedgerStore
from hackdao.policy.resolver import PolicyResolver
from hackdao.royalty.engine import RoyaltyEngine
from hackdao.teams.directory import Directory

logger = structlog.get_logger()


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)
    error_kind: Optional[str] = None


def _failure(exc: DAOError) -> ServiceResult:
    return ServiceResult(success=False, errors=[str(exc)], error_kind=exc.kind)


def _stats_data(stats: ProposalStats) -> dict[str, Any]:
    data = asdict(stats)
    data["status"] = stats.status.value
    return data


def _settlement_data(report: SettlementReport) -> dict[str, Any]:
    return {
        "pool_id": report.pool_id,
        "currency": report.currency,
        "distributed_utc": report.distributed_utc.isoformat(),
        "total_paid": report.total_paid,
        "paid": [asdict(line) for line in report.paid],
        "skipped_member_ids": list(report.skipped_member_ids),
    }


def _pool_data(pool: RoyaltyPool) -> dict[str, Any]:
    return pool.to_record()


class HackathonDAOService:
    """Unified DAO facade.

    Usage:
        resolver = PolicyResolver.from_config_dir(config_dir)
        service = HackathonDAOService(resolver)

        team = service.create_team("Rocket", created_by="admin").data
        result = service.create_proposal(
            "team_decision", "Adopt Rust", "...", proposed_by=lead, team_id=team_id,
        )
        service.vote(result.data["proposal_id"], voter_id, "for")

        service.distribute_royalties(team_id, "1000.00", require_approval=False)

    Persistence (optional):
        store = JsonFileLedgerStore(Path("data/ledger.json"))
        log = EventLog(Path("data/events.jsonl"))
        service = HackathonDAOService(resolver, store=store, event_log=log)
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        store: Optional[LedgerStore] = None,
        event_log: Optional[EventLog] = None,
    ) -> None:
        self._resolver = resolver
        self._store = store if store is not None else InMemoryLedgerStore()
        self._event_log = event_log
        self._locks = EntityLocks()

        self.directory = Directory(self._store, resolver, self._locks)
        self.proposals = ProposalLifecycle(self._store, self.directory, resolver, self._locks)
        self.voting = VotingEngine(self._store, self.directory, self.proposals, resolver)
        self.royalty = RoyaltyEngine(self._store, self.directory, resolver, self._locks)

        # Continue numbering from a reloaded log so ids never collide.
        self._event_counter = event_log.count if event_log is not None else 0
        self._event_guard = threading.Lock()
        self._logger = logger.bind(system="service")

    @property
    def store(self) -> LedgerStore:
        return self._store

    @property
    def event_log(self) -> Optional[EventLog]:
        return self._event_log

    # ------------------------------------------------------------------
    # Directory
    # ------------------------------------------------------------------

    def create_team(
        self,
        name: str,
        created_by: str,
        description: str = "",
        max_members: Optional[int] = None,
    ) -> ServiceResult:
        try:
            team = self.directory.create_team(
                name, created_by, description=description, max_members=max_members,
            )
        except DAOError as e:
            return _failure(e)
        return self._ok(
            {"team_id": team.team_id, "name": team.name},
            EventKind.TEAM_CREATED, created_by,
        )

    def register_member(
        self,
        name: str,
        email: str = "",
        wallet: Optional[str] = None,
        role: str = "member",
        reputation: Optional[int] = None,
    ) -> ServiceResult:
        try:
            member = self.directory.register_member(
                name, email=email, wallet=wallet, role=role, reputation=reputation,
            )
        except DAOError as e:
            return _failure(e)
        return self._ok(
            {"member_id": member.member_id, "role": member.role},
            EventKind.MEMBER_REGISTERED, member.member_id,
        )

    def add_member_to_team(self, team_id: str, member_id: str) -> ServiceResult:
        try:
            team = self.directory.add_member_to_team(team_id, member_id)
        except DAOError as e:
            return _failure(e)
        return self._ok(
            {"team_id": team_id, "member_id": member_id, "team_size": len(team.members)},
            EventKind.MEMBER_JOINED_TEAM, member_id,
        )

    def remove_member_from_team(self, team_id: str, member_id: str) -> ServiceResult:
        try:
            team = self.directory.remove_member_from_team(team_id, member_id)
        except DAOError as e:
            return _failure(e)
        return self._ok(
            {"team_id": team_id, "member_id": member_id, "team_size": len(team.members)},
            EventKind.MEMBER_LEFT_TEAM, member_id,
        )

    def record_contribution(
        self,
        team_id: str,
        member_id: str,
        contribution_type: str,
        score: Any = None,
        description: str = "",
        milestone_id: Optional[str] = None,
        data: Optional[dict[str, Any]] = None,
    ) -> ServiceResult:
        """Record a contribution; without ``score`` it is computed from ``data``."""
        try:
            contribution = self.directory.record_contribution(
                team_id, member_id, contribution_type, score,
                description=description, milestone_id=milestone_id, data=data,
            )
        except DAOError as e:
            return _failure(e)
        return self._ok(
            {
                "contribution_id": contribution.contribution_id,
                "score": contribution.score,
            },
            EventKind.CONTRIBUTION_RECORDED, member_id,
        )

    def verify_contribution(self, contribution_id: str, verified_by: str) -> ServiceResult:
        try:
            self.directory.verify_contribution(contribution_id, verified_by)
        except DAOError as e:
            return _failure(e)
        return self._ok(
            {"contribution_id": contribution_id, "verified_by": verified_by},
            EventKind.CONTRIBUTION_VERIFIED, verified_by,
        )

    def add_milestone(
        self,
        team_id: str,
        title: str,
        description: str = "",
        due_utc: Optional[datetime] = None,
    ) -> ServiceResult:
        try:
            milestone = self.directory.add_milestone(
                team_id, title, description=description, due_utc=due_utc,
            )
        except DAOError as e:
            return _failure(e)
        return ServiceResult(
            success=True,
            data={"team_id": team_id, "milestone_id": milestone.milestone_id},
        )

    def complete_milestone(self, team_id: str, milestone_id: str) -> ServiceResult:
        try:
            self.directory.complete_milestone(team_id, milestone_id)
        except DAOError as e:
            return _failure(e)
        return self._ok(
            {"team_id": team_id, "milestone_id": milestone_id},
            EventKind.MILESTONE_COMPLETED, "system",
        )

    def team_stats(self, team_id: str) -> ServiceResult:
        try:
            stats = self.directory.team_stats(team_id)
        except DAOError as e:
            return _failure(e)
        return ServiceResult(success=True, data=asdict(stats))

    def member_stats(self, member_id: str) -> ServiceResult:
        try:
            stats = self.directory.member_stats(member_id)
        except DAOError as e:
            return _failure(e)
        return ServiceResult(success=True, data=asdict(stats))

    def leaderboard(self, limit: int = 10) -> ServiceResult:
        """Top teams and members by total contribution score."""
        return ServiceResult(
            success=True,
            data={
                "teams": [asdict(s) for s in self.directory.team_leaderboard(limit)],
                "members": self.directory.member_leaderboard(limit),
            },
        )

    def contribution_stats(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> ServiceResult:
        return ServiceResult(
            success=True,
            data=asdict(self.directory.contribution_stats(start, end)),
        )

    # ------------------------------------------------------------------
    # Governance
    # ------------------------------------------------------------------

    def create_proposal(
        self,
        proposal_type: str,
        title: str,
        description: str,
        proposed_by: str,
        team_id: str,
        duration_days: Optional[int] = None,
        quorum_required: Any = None,
        approval_threshold: Any = None,
        metadata: Optional[dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        if now is None:
            now = datetime.now(timezone.utc)
        expires = now + timedelta(days=duration_days) if duration_days is not None else None
        try:
            proposal = self.proposals.create_proposal(
                proposal_type, title, description, proposed_by, team_id,
                expires_utc=expires,
                quorum_required=quorum_required,
                approval_threshold=approval_threshold,
                metadata=metadata,
                now=now,
            )
        except DAOError as e:
            return _failure(e)
        return self._ok(
            {
                "proposal_id": proposal.proposal_id,
                "proposal_type": proposal.proposal_type.value,
                "expires_utc": proposal.expires_utc.isoformat(),
            },
            EventKind.PROPOSAL_CREATED, proposed_by,
        )

    def vote(
        self,
        proposal_id: str,
        voter_id: str,
        choice: str,
        reason: str = "",
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Cast a ballot, then finalize if the outcome is already decided.

        The implicit finalize runs when the proposal can pass or its
        deadline has gone by; an undecided proposal stays ACTIVE.
        """
        if now is None:
            now = datetime.now(timezone.utc)
        try:
            ballot = self.voting.cast_vote(proposal_id, voter_id, choice, reason=reason, now=now)
        except DAOError as e:
            return _failure(e)

        data: dict[str, Any] = {
            "ballot_id": ballot.ballot_id,
            "proposal_id": proposal_id,
            "choice": ballot.choice.value,
            "weight": ballot.weight,
        }
        warning = self._record_event(EventKind.VOTE_CAST, voter_id, data)

        stats = self.proposals.proposal_stats(proposal_id, now=now)
        if stats.can_execute or stats.time_remaining_seconds <= 0:
            try:
                proposal = self.proposals.finalize_proposal(proposal_id, now=now)
            except DAOError as e:
                # Finalized concurrently, or undecided exactly at the deadline.
                self._logger.info("implicit_finalize_skipped", proposal_id=proposal_id, reason=str(e))
            else:
                data["finalized_status"] = proposal.status.value
                finalize_warning = self._record_event(
                    EventKind.PROPOSAL_FINALIZED, "system",
                    {"proposal_id": proposal_id, "status": proposal.status.value},
                )
                warning = warning or finalize_warning
        if warning:
            data["warning"] = warning
        return ServiceResult(success=True, data=data)

    def extend_voting(
        self,
        proposal_id: str,
        requested_by: str,
        reason: str = "",
        extension_days: Optional[int] = None,
    ) -> ServiceResult:
        try:
            proposal = self.voting.extend_voting(
                proposal_id, requested_by, reason=reason, extension_days=extension_days,
            )
        except DAOError as e:
            return _failure(e)
        return self._ok(
            {"proposal_id": proposal_id, "expires_utc": proposal.expires_utc.isoformat()},
            EventKind.VOTING_EXTENDED, requested_by,
        )

    def finalize_proposal(
        self,
        proposal_id: str,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        try:
            proposal = self.proposals.finalize_proposal(proposal_id, now=now)
        except DAOError as e:
            return _failure(e)
        return self._ok(
            {"proposal_id": proposal_id, "status": proposal.status.value},
            EventKind.PROPOSAL_FINALIZED, "system",
        )

    def execute_proposal(
        self,
        proposal_id: str,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        try:
            result = self.proposals.execute_proposal(proposal_id, now=now)
        except DAOError as e:
            return _failure(e)
        return self._ok(
            {
                "proposal_id": proposal_id,
                "action": result.action,
                "target_id": result.target_id,
            },
            EventKind.PROPOSAL_EXECUTED, "system",
        )

    def proposal_stats(
        self,
        proposal_id: str,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        try:
            stats = self.proposals.proposal_stats(proposal_id, now=now)
        except DAOError as e:
            return _failure(e)
        return ServiceResult(success=True, data=_stats_data(stats))

    # ------------------------------------------------------------------
    # Royalties
    # ------------------------------------------------------------------

    def distribute_royalties(
        self,
        team_id: str,
        amount: Any,
        name: Optional[str] = None,
        currency: Optional[str] = None,
        model: Optional[str] = None,
        period_start: Optional[datetime] = None,
        period_end: Optional[datetime] = None,
        source: str = "hackathon_prize",
        description: str = "",
        require_approval: bool = True,
        proposed_by: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Create a pool, calculate it, then gate or settle it.

        With ``require_approval`` a royalty_distribution proposal wraps
        the pool (proposed by the team creator unless ``proposed_by`` is
        given). ``execute_distribution`` then refuses to settle it until
        that proposal has passed and been executed. Otherwise the pool is
        settled immediately.

        A pool whose calculation finds no eligible contributions is
        discarded, so a failed call leaves nothing behind.
        """
        if now is None:
            now = datetime.now(timezone.utc)
        try:
            pool = self.royalty.create_pool(
                name or f"Royalty Pool - {now.isoformat()}",
                team_id,
                amount,
                currency=currency,
                distribution_model=model,
                period_start=period_start,
                period_end=period_end,
                source=source,
                description=description,
                now=now,
            )
            try:
                rows = self.royalty.calculate_distribution(pool.pool_id, now=now)
            except NoContributionsError:
                self.royalty.discard_pool(pool.pool_id)
                raise
        except DAOError as e:
            return _failure(e)

        warnings = [
            self._record_event(
                EventKind.POOL_CREATED, proposed_by or "system",
                {"pool_id": pool.pool_id, "team_id": team_id, "amount": pool.total_amount},
            ),
            self._record_event(
                EventKind.DISTRIBUTION_CALCULATED, "system",
                {"pool_id": pool.pool_id, "recipients": len(rows)},
            ),
        ]
        data: dict[str, Any] = {"pool_id": pool.pool_id}
        try:
            if require_approval:
                team = self.directory.require_team(team_id)
                proposer = proposed_by or team.created_by
                proposal = self.proposals.create_royalty_distribution_proposal(
                    pool.pool_id, proposer, team_id, now=now,
                )
                warnings.append(self._record_event(
                    EventKind.PROPOSAL_CREATED, proposer,
                    {"proposal_id": proposal.proposal_id, "pool_id": pool.pool_id},
                ))
                data["proposal_id"] = proposal.proposal_id
            else:
                report = self.royalty.execute_distribution(pool.pool_id, now=now)
                warnings.append(self._record_settlement(report))
                data["settlement"] = _settlement_data(report)
        except DAOError as e:
            # The calculated pool stays; it can be gated or settled later.
            return _failure(e)

        data["pool"] = _pool_data(self.royalty.require_pool(pool.pool_id))
        warning = next((w for w in warnings if w), None)
        if warning:
            data["warning"] = warning
        return ServiceResult(success=True, data=data)

    def execute_distribution(
        self,
        pool_id: str,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Settle a calculated pool.

        A pool wrapped by a royalty_distribution proposal settles only
        once one such proposal has passed and been executed.
        """
        try:
            approvals = self.proposals.pool_approvals(pool_id)
            if approvals and not any(
                p.status == ProposalStatus.PASSED and p.actions_applied_utc is not None
                for p in approvals
            ):
                raise InvalidStateError(
                    f"Pool {pool_id} awaits approval by proposal {approvals[-1].proposal_id} "
                    f"(status: {approvals[-1].status.value})"
                )
            report = self.royalty.execute_distribution(pool_id, now=now)
        except DAOError as e:
            return _failure(e)
        warning = self._record_settlement(report)
        data = _settlement_data(report)
        if warning:
            data["warning"] = warning
        return ServiceResult(success=True, data=data)

    def pool_report(self, pool_id: str) -> ServiceResult:
        try:
            report = self.royalty.distribution_report(pool_id)
        except DAOError as e:
            return _failure(e)
        return ServiceResult(success=True, data=report)

    def member_royalties(self, member_id: str) -> ServiceResult:
        try:
            self.directory.require_member(member_id)
        except DAOError as e:
            return _failure(e)
        return ServiceResult(success=True, data=self.royalty.member_total_royalties(member_id))

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def seed_sample_data(self, now: Optional[datetime] = None) -> ServiceResult:
        created = seed_sample_data(self._store, self.directory, now=now)
        if created is None:
            return ServiceResult(success=True, data={"seeded": False})
        data = {"seeded": True, **created}
        warning = self._record_event(EventKind.SAMPLE_DATA_SEEDED, "system", created)
        if warning:
            data["warning"] = warning
        return ServiceResult(success=True, data=data)

    def status(self, now: Optional[datetime] = None) -> dict[str, Any]:
        """Return system-wide status summary."""
        contributions = self._store.list("contributions")
        proposals = self._store.list("proposals")
        pools = self._store.list("royalties")
        return {
            "version": __version__,
            "teams": {"total": len(self.directory.list_teams())},
            "members": {"total": len(self._store.list("members"))},
            "contributions": {
                "total": len(contributions),
                "verified": sum(1 for c in contributions if c.get("verified")),
            },
            "proposals": {
                "total": len(proposals),
                "open": len(self.proposals.active_proposals(now=now)),
                "by_status": {
                    s.value: sum(1 for p in proposals if p.get("status") == s.value)
                    for s in ProposalStatus
                },
            },
            "royalty_pools": {
                s.value: sum(1 for p in pools if p.get("status") == s.value)
                for s in PoolStatus
            },
            "events": self._event_log.count if self._event_log is not None else 0,
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ok(
        self,
        data: dict[str, Any],
        kind: EventKind,
        actor_id: str,
    ) -> ServiceResult:
        warning = self._record_event(kind, actor_id, data)
        if warning:
            data = {**data, "warning": warning}
        return ServiceResult(success=True, data=data)

    def _record_settlement(self, report: SettlementReport) -> Optional[str]:
        warnings = [
            self._record_event(
                EventKind.PAYOUT_SKIPPED, member_id, {"pool_id": report.pool_id},
            )
            for member_id in report.skipped_member_ids
        ]
        warnings.append(self._record_event(
            EventKind.DISTRIBUTION_EXECUTED, "system",
            {
                "pool_id": report.pool_id,
                "paid": len(report.paid),
                "skipped": len(report.skipped_member_ids),
                "total_paid": report.total_paid,
            },
        ))
        return next((w for w in warnings if w), None)

    def _next_event_id(self) -> str:
        """Generate a monotonically increasing unique event ID."""
        with self._event_guard:
            self._event_counter += 1
            return f"EVT-{self._event_counter:08d}"

    def _record_event(
        self,
        kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
    ) -> Optional[str]:
        """Append an audit event. Returns a warning string or None.

        The engine change is already committed when this runs, so a log
        failure is reported alongside the result instead of undoing it.
        """
        if self._event_log is None:
            return None
        try:
            self._event_log.append(EventRecord.create(
                event_id=self._next_event_id(),
                event_kind=kind,
                actor_id=actor_id,
                payload=payload,
            ))
        except (ValueError, OSError) as e:
            self._logger.error("event_log_append_failed", kind=kind.value, error=str(e))
            return f"Event log failure: {e}"
        return None
