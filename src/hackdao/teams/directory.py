"""Directory — members, teams, milestones and contributions.

The governance and royalty engines consume this data (roles and
reputation feed vote weight, team rosters decide eligibility and quorum,
verified contributions form the royalty basis) but do not own it. The
directory is the single writer for these collections, apart from the
two execution side effects a passed proposal can trigger: verifying a
contribution and completing a milestone.
"""

from __future__ import annotations

import json
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

import structlog

from hackdao.errors import InvalidArgumentError, InvalidStateError, NotFoundError
from hackdao.models.common import to_decimal
from hackdao.models.directory import (
    Contribution,
    Member,
    MemberRole,
    Milestone,
    MilestoneStatus,
    Team,
)
from hackdao.persistence.locks import EntityLocks
from hackdao.persistence.store import LedgerStore
from hackdao.policy.resolver import PolicyResolver
from hackdao.teams.scoring import score_contribution

logger = structlog.get_logger()


@dataclass
class TypeTally:
    count: int = 0
    total_score: Decimal = Decimal("0")

    def add(self, score: Decimal) -> None:
        self.count += 1
        self.total_score += score


@dataclass(frozen=True)
class TeamStats:
    team_id: str
    team_name: str
    member_count: int
    total_contributions: int
    contributions_by_type: dict[str, int]
    total_score: Decimal
    average_score: Decimal


@dataclass(frozen=True)
class MemberStats:
    member_id: str
    member_name: str
    reputation: int
    teams_count: int
    total_contributions: int
    total_score: Decimal
    average_score: Decimal
    contributions_by_type: dict[str, TypeTally]
    recent_activity: list[dict[str, Any]]  # newest first


@dataclass(frozen=True)
class ContributionStats:
    total: int
    total_score: Decimal
    verified: int
    unverified: int
    by_type: dict[str, TypeTally] = field(default_factory=dict)
    by_team: dict[str, TypeTally] = field(default_factory=dict)
    by_member: dict[str, TypeTally] = field(default_factory=dict)


def _average(total: Decimal, count: int) -> Decimal:
    if count == 0:
        return Decimal("0")
    return (total / count).quantize(Decimal("0.01"))


class Directory:
    """Member/team/contribution bookkeeping on top of a LedgerStore.

    Usage:
        directory = Directory(store, resolver)
        lead = directory.register_member("Ada", role="team_lead", wallet="0x...")
        team = directory.create_team("Rocket", created_by=lead.member_id)
        directory.add_member_to_team(team.team_id, lead.member_id)
        directory.record_contribution(team.team_id, lead.member_id, "code", 120)

    Read-modify-write on a team or member document runs under that
    entity's lock. Locks are taken teams before members, and callers
    holding a proposal lock may enter either.
    """

    def __init__(
        self,
        store: LedgerStore,
        resolver: PolicyResolver,
        locks: Optional[EntityLocks] = None,
    ) -> None:
        self._store = store
        self._params = resolver.directory_params()
        self.locks = locks or EntityLocks()
        self._logger = logger.bind(system="teams.directory")

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    def register_member(
        self,
        name: str,
        email: str = "",
        wallet: Optional[str] = None,
        role: str = MemberRole.MEMBER.value,
        reputation: Optional[int] = None,
        member_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Member:
        if not name or not name.strip():
            raise InvalidArgumentError("Member name must not be empty")
        valid_roles = {r.value for r in MemberRole}
        if role not in valid_roles:
            raise InvalidArgumentError(
                f"Unknown role {role!r}; expected one of {sorted(valid_roles)}"
            )
        if now is None:
            now = datetime.now(timezone.utc)
        if reputation is None:
            reputation = self._params["starting_reputation"]

        member = Member(
            member_id=member_id or f"member_{uuid.uuid4().hex[:12]}",
            name=name.strip(),
            email=email,
            wallet=wallet,
            role=role,
            reputation=self._clamp_reputation(reputation),
            created_utc=now,
        )
        self._store.insert("members", member.member_id, member.to_record())
        self._logger.info("member_registered", member_id=member.member_id, role=role)
        return member

    def get_member(self, member_id: str) -> Optional[Member]:
        data = self._store.get("members", member_id)
        return Member.from_record(data) if data is not None else None

    def require_member(self, member_id: str) -> Member:
        member = self.get_member(member_id)
        if member is None:
            raise NotFoundError(f"Member {member_id} not found")
        return member

    def list_members(self) -> list[Member]:
        return [Member.from_record(d) for d in self._store.list("members")]

    def update_reputation(self, member_id: str, change: int, reason: str = "") -> Member:
        """Adjust reputation, clamped to the configured floor and ceiling."""
        with self.locks.hold("members", member_id):
            member = self.require_member(member_id)
            before = member.reputation
            member.reputation = self._clamp_reputation(before + change)
            self._store.update("members", member_id, member.to_record())
        self._logger.info(
            "reputation_updated",
            member_id=member_id, before=before, after=member.reputation, reason=reason,
        )
        return member

    def _clamp_reputation(self, value: int) -> int:
        return max(
            self._params["reputation_floor"],
            min(self._params["reputation_ceiling"], int(value)),
        )

    # ------------------------------------------------------------------
    # Teams and milestones
    # ------------------------------------------------------------------

    def create_team(
        self,
        name: str,
        created_by: str,
        description: str = "",
        max_members: Optional[int] = None,
        team_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Team:
        if not name or not name.strip():
            raise InvalidArgumentError("Team name must not be empty")
        if max_members is None:
            max_members = self._params["default_team_size"]
        if max_members <= 0:
            raise InvalidArgumentError(f"max_members must be positive, got {max_members}")
        if now is None:
            now = datetime.now(timezone.utc)

        team = Team(
            team_id=team_id or f"team_{uuid.uuid4().hex[:12]}",
            name=name.strip(),
            created_by=created_by,
            description=description,
            max_members=max_members,
            created_utc=now,
        )
        self._store.insert("teams", team.team_id, team.to_record())
        self._logger.info("team_created", team_id=team.team_id, name=team.name)
        return team

    def get_team(self, team_id: str) -> Optional[Team]:
        data = self._store.get("teams", team_id)
        return Team.from_record(data) if data is not None else None

    def require_team(self, team_id: str) -> Team:
        team = self.get_team(team_id)
        if team is None:
            raise NotFoundError(f"Team {team_id} not found")
        return team

    def list_teams(self) -> list[Team]:
        return [Team.from_record(d) for d in self._store.list("teams")]

    def add_member_to_team(self, team_id: str, member_id: str) -> Team:
        """Put a member on a team's roster and record the team on the member."""
        with self.locks.hold("teams", team_id), self.locks.hold("members", member_id):
            team = self.require_team(team_id)
            member = self.require_member(member_id)
            if member_id in team.members:
                raise InvalidStateError(f"Member {member_id} already in team {team_id}")
            if len(team.members) >= team.max_members:
                raise InvalidStateError(
                    f"Team {team_id} is full ({team.max_members} members)"
                )

            team.members.append(member_id)
            self._store.update("teams", team_id, team.to_record())
            if team_id not in member.teams:
                member.teams.append(team_id)
                self._store.update("members", member_id, member.to_record())
        self._logger.info("member_joined_team", team_id=team_id, member_id=member_id)
        return team

    def remove_member_from_team(self, team_id: str, member_id: str) -> Team:
        """Take a member off a roster.

        Open proposals are not touched: quorum reads the roster when it is
        evaluated, so it follows the smaller team from here on. Ballots
        already cast keep their weight.
        """
        with self.locks.hold("teams", team_id), self.locks.hold("members", member_id):
            team = self.require_team(team_id)
            if member_id not in team.members:
                raise InvalidStateError(f"Member {member_id} not in team {team_id}")
            team.members.remove(member_id)
            self._store.update("teams", team_id, team.to_record())
            member = self.get_member(member_id)
            if member is not None and team_id in member.teams:
                member.teams.remove(team_id)
                self._store.update("members", member_id, member.to_record())
        self._logger.info("member_left_team", team_id=team_id, member_id=member_id)
        return team

    def leave_team(self, member_id: str, team_id: str) -> Team:
        """Member-initiated removal; same effect as remove_member_from_team."""
        member = self.require_member(member_id)
        if team_id not in member.teams:
            raise InvalidStateError(f"Member {member_id} not in team {team_id}")
        return self.remove_member_from_team(team_id, member_id)

    def add_milestone(
        self,
        team_id: str,
        title: str,
        description: str = "",
        due_utc: Optional[datetime] = None,
        milestone_id: Optional[str] = None,
    ) -> Milestone:
        if not title or not title.strip():
            raise InvalidArgumentError("Milestone title must not be empty")
        milestone = Milestone(
            milestone_id=milestone_id or f"ms_{uuid.uuid4().hex[:12]}",
            title=title.strip(),
            description=description,
            due_utc=due_utc,
        )
        with self.locks.hold("teams", team_id):
            team = self.require_team(team_id)
            if team.milestone(milestone.milestone_id) is not None:
                raise InvalidStateError(
                    f"Milestone {milestone.milestone_id} already exists in team {team_id}"
                )
            team.milestones.append(milestone)
            self._store.update("teams", team_id, team.to_record())
        return milestone

    def get_milestone(self, team_id: str, milestone_id: str) -> Milestone:
        milestone = self.require_team(team_id).milestone(milestone_id)
        if milestone is None:
            raise NotFoundError(f"Milestone {milestone_id} not found")
        return milestone

    def complete_milestone(
        self,
        team_id: str,
        milestone_id: str,
        now: Optional[datetime] = None,
    ) -> Milestone:
        if now is None:
            now = datetime.now(timezone.utc)
        with self.locks.hold("teams", team_id):
            team = self.require_team(team_id)
            milestone = team.milestone(milestone_id)
            if milestone is None:
                raise NotFoundError(f"Milestone {milestone_id} not found")
            if milestone.status == MilestoneStatus.COMPLETED:
                raise InvalidStateError(f"Milestone {milestone_id} already completed")

            milestone.status = MilestoneStatus.COMPLETED
            milestone.completed_utc = now
            self._store.update("teams", team_id, team.to_record())
        self._logger.info("milestone_completed", team_id=team_id, milestone_id=milestone_id)
        return milestone

    # ------------------------------------------------------------------
    # Contributions
    # ------------------------------------------------------------------

    def record_contribution(
        self,
        team_id: str,
        member_id: str,
        contribution_type: str,
        score: Any = None,
        description: str = "",
        milestone_id: Optional[str] = None,
        verified: bool = False,
        contribution_id: Optional[str] = None,
        timestamp: Optional[datetime] = None,
        data: Optional[dict[str, Any]] = None,
    ) -> Contribution:
        """Record a contribution.

        An explicit ``score`` wins. Without one the score is computed from
        the ``data`` metrics by the per-type heuristic in
        :mod:`hackdao.teams.scoring`. The metrics are kept on the record.
        """
        self.require_team(team_id)
        self.require_member(member_id)
        data = json.loads(json.dumps(data or {}, default=str))
        if score is None:
            score_value = score_contribution(contribution_type, data)
        else:
            score_value = to_decimal(score)
        if score_value < Decimal("0"):
            raise InvalidArgumentError(f"Contribution score must be >= 0, got {score_value}")
        if timestamp is None:
            timestamp = datetime.now(timezone.utc)

        contribution = Contribution(
            contribution_id=contribution_id or f"contrib_{uuid.uuid4().hex[:12]}",
            team_id=team_id,
            member_id=member_id,
            contribution_type=contribution_type,
            score=score_value,
            timestamp_utc=timestamp,
            verified=verified,
            verified_by="recorded_verified" if verified else None,
            verified_utc=timestamp if verified else None,
            milestone_id=milestone_id,
            description=description,
            data=data,
        )
        self._store.insert("contributions", contribution.contribution_id, contribution.to_record())
        return contribution

    def get_contribution(self, contribution_id: str) -> Optional[Contribution]:
        data = self._store.get("contributions", contribution_id)
        return Contribution.from_record(data) if data is not None else None

    def require_contribution(self, contribution_id: str) -> Contribution:
        contribution = self.get_contribution(contribution_id)
        if contribution is None:
            raise NotFoundError(f"Contribution {contribution_id} not found")
        return contribution

    def verify_contribution(
        self,
        contribution_id: str,
        verified_by: str,
        now: Optional[datetime] = None,
    ) -> Contribution:
        if now is None:
            now = datetime.now(timezone.utc)
        with self.locks.hold("contributions", contribution_id):
            contribution = self.require_contribution(contribution_id)
            contribution.verified = True
            contribution.verified_by = verified_by
            contribution.verified_utc = now
            self._store.update("contributions", contribution_id, contribution.to_record())
        self._logger.info(
            "contribution_verified",
            contribution_id=contribution_id, verified_by=verified_by,
        )
        return contribution

    def contributions_for_team(self, team_id: str) -> list[Contribution]:
        """All contributions for a team (O(n) scan of the collection)."""
        return [
            Contribution.from_record(d)
            for d in self._store.find("contributions", team_id=team_id)
        ]

    def contributions_for_member(self, member_id: str) -> list[Contribution]:
        return [
            Contribution.from_record(d)
            for d in self._store.find("contributions", member_id=member_id)
        ]

    def verified_contribution_count(self, member_id: str, team_id: str) -> int:
        return sum(
            1 for d in self._store.find("contributions", member_id=member_id, team_id=team_id)
            if d.get("verified")
        )

    # ------------------------------------------------------------------
    # Statistics and leaderboards
    # ------------------------------------------------------------------

    def team_stats(self, team_id: str) -> TeamStats:
        team = self.require_team(team_id)
        contributions = self.contributions_for_team(team_id)
        total_score = sum((c.score for c in contributions), Decimal("0"))
        return TeamStats(
            team_id=team.team_id,
            team_name=team.name,
            member_count=len(team.members),
            total_contributions=len(contributions),
            contributions_by_type=dict(Counter(c.contribution_type for c in contributions)),
            total_score=total_score,
            average_score=_average(total_score, len(contributions)),
        )

    def member_stats(self, member_id: str, recent: int = 10) -> MemberStats:
        member = self.require_member(member_id)
        contributions = self.contributions_for_member(member_id)
        by_type: dict[str, TypeTally] = {}
        for c in contributions:
            by_type.setdefault(c.contribution_type, TypeTally()).add(c.score)
        total_score = sum((c.score for c in contributions), Decimal("0"))
        latest = sorted(contributions, key=lambda c: c.timestamp_utc, reverse=True)[:recent]
        return MemberStats(
            member_id=member.member_id,
            member_name=member.name,
            reputation=member.reputation,
            teams_count=len(member.teams),
            total_contributions=len(contributions),
            total_score=total_score,
            average_score=_average(total_score, len(contributions)),
            contributions_by_type=by_type,
            recent_activity=[
                {
                    "contribution_id": c.contribution_id,
                    "type": c.contribution_type,
                    "score": c.score,
                    "timestamp_utc": c.timestamp_utc,
                    "description": c.description,
                }
                for c in latest
            ],
        )

    def team_leaderboard(self, limit: int = 10) -> list[TeamStats]:
        """Teams ranked by total contribution score, highest first."""
        stats = [self.team_stats(t.team_id) for t in self.list_teams()]
        stats.sort(key=lambda s: s.total_score, reverse=True)
        return stats[:limit]

    def member_leaderboard(self, limit: int = 10) -> list[dict[str, Any]]:
        stats = [self.member_stats(m.member_id, recent=0) for m in self.list_members()]
        stats.sort(key=lambda s: s.total_score, reverse=True)
        return [
            {
                "rank": rank,
                "member_id": s.member_id,
                "name": s.member_name,
                "total_score": s.total_score,
                "reputation": s.reputation,
                "contributions_count": s.total_contributions,
                "teams_count": s.teams_count,
            }
            for rank, s in enumerate(stats[:limit], start=1)
        ]

    def contribution_stats(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> ContributionStats:
        """Aggregate contributions timestamped within [start, end]."""
        contributions = [
            Contribution.from_record(d) for d in self._store.list("contributions")
        ]
        if start is not None:
            contributions = [c for c in contributions if c.timestamp_utc >= start]
        if end is not None:
            contributions = [c for c in contributions if c.timestamp_utc <= end]

        by_type: dict[str, TypeTally] = {}
        by_team: dict[str, TypeTally] = {}
        by_member: dict[str, TypeTally] = {}
        for c in contributions:
            by_type.setdefault(c.contribution_type, TypeTally()).add(c.score)
            by_team.setdefault(c.team_id, TypeTally()).add(c.score)
            by_member.setdefault(c.member_id, TypeTally()).add(c.score)
        verified = sum(1 for c in contributions if c.verified)
        return ContributionStats(
            total=len(contributions),
            total_score=sum((c.score for c in contributions), Decimal("0")),
            verified=verified,
            unverified=len(contributions) - verified,
            by_type=by_type,
            by_team=by_team,
            by_member=by_member,
        )
