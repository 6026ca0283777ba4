"""Member, team, milestone and contribution models.

These entities are owned by the directory; the governance and royalty
engines only read them (and, on proposal execution, flip a
contribution's ``verified`` flag or a milestone's status).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from hackdao.models.common import from_iso, to_decimal, to_iso


class MemberRole(str, enum.Enum):
    TEAM_LEAD = "team_lead"
    SENIOR = "senior"
    MEMBER = "member"
    JUNIOR = "junior"
    ADMIN = "admin"


class ContributionType(str, enum.Enum):
    CODE = "code"
    REVIEW = "review"
    DOCUMENTATION = "documentation"
    DESIGN = "design"
    TESTING = "testing"
    RESEARCH = "research"
    IDEATION = "ideation"
    PRESENTATION = "presentation"


class MilestoneStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"


@dataclass
class Member:
    member_id: str
    name: str
    email: str = ""
    wallet: Optional[str] = None  # payout address
    role: str = MemberRole.MEMBER.value
    reputation: int = 100
    teams: list[str] = field(default_factory=list)
    status: str = "active"
    created_utc: Optional[datetime] = None

    def to_record(self) -> dict[str, Any]:
        return {
            "member_id": self.member_id,
            "name": self.name,
            "email": self.email,
            "wallet": self.wallet,
            "role": self.role,
            "reputation": self.reputation,
            "teams": list(self.teams),
            "status": self.status,
            "created_utc": to_iso(self.created_utc),
        }

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> Member:
        return cls(
            member_id=data["member_id"],
            name=data.get("name", ""),
            email=data.get("email", ""),
            wallet=data.get("wallet"),
            role=data.get("role", MemberRole.MEMBER.value),
            reputation=int(data.get("reputation", 100)),
            teams=list(data.get("teams", [])),
            status=data.get("status", "active"),
            created_utc=from_iso(data.get("created_utc")),
        )


@dataclass
class Milestone:
    milestone_id: str
    title: str
    description: str = ""
    status: MilestoneStatus = MilestoneStatus.PENDING
    due_utc: Optional[datetime] = None
    completed_utc: Optional[datetime] = None

    def to_record(self) -> dict[str, Any]:
        return {
            "milestone_id": self.milestone_id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "due_utc": to_iso(self.due_utc),
            "completed_utc": to_iso(self.completed_utc),
        }

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> Milestone:
        return cls(
            milestone_id=data["milestone_id"],
            title=data["title"],
            description=data.get("description", ""),
            status=MilestoneStatus(data.get("status", "pending")),
            due_utc=from_iso(data.get("due_utc")),
            completed_utc=from_iso(data.get("completed_utc")),
        )


@dataclass
class Team:
    team_id: str
    name: str
    created_by: str
    description: str = ""
    members: list[str] = field(default_factory=list)
    max_members: int = 10
    milestones: list[Milestone] = field(default_factory=list)
    status: str = "active"
    created_utc: Optional[datetime] = None

    def milestone(self, milestone_id: str) -> Optional[Milestone]:
        for m in self.milestones:
            if m.milestone_id == milestone_id:
                return m
        return None

    def to_record(self) -> dict[str, Any]:
        return {
            "team_id": self.team_id,
            "name": self.name,
            "created_by": self.created_by,
            "description": self.description,
            "members": list(self.members),
            "max_members": self.max_members,
            "milestones": [m.to_record() for m in self.milestones],
            "status": self.status,
            "created_utc": to_iso(self.created_utc),
        }

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> Team:
        return cls(
            team_id=data["team_id"],
            name=data["name"],
            created_by=data.get("created_by", ""),
            description=data.get("description", ""),
            members=list(data.get("members", [])),
            max_members=int(data.get("max_members", 10)),
            milestones=[Milestone.from_record(m) for m in data.get("milestones", [])],
            status=data.get("status", "active"),
            created_utc=from_iso(data.get("created_utc")),
        )


@dataclass
class Contribution:
    """A scored piece of work. Only verified ones count toward royalties."""
    contribution_id: str
    team_id: str
    member_id: str
    contribution_type: str
    score: Decimal
    timestamp_utc: datetime
    verified: bool = False
    verified_by: Optional[str] = None
    verified_utc: Optional[datetime] = None
    milestone_id: Optional[str] = None
    description: str = ""
    data: dict[str, Any] = field(default_factory=dict)  # raw metrics the score came from

    def to_record(self) -> dict[str, Any]:
        return {
            "contribution_id": self.contribution_id,
            "team_id": self.team_id,
            "member_id": self.member_id,
            "contribution_type": self.contribution_type,
            "score": str(self.score),
            "timestamp_utc": to_iso(self.timestamp_utc),
            "verified": self.verified,
            "verified_by": self.verified_by,
            "verified_utc": to_iso(self.verified_utc),
            "milestone_id": self.milestone_id,
            "description": self.description,
            "data": dict(self.data),
        }

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> Contribution:
        return cls(
            contribution_id=data["contribution_id"],
            team_id=data["team_id"],
            member_id=data["member_id"],
            contribution_type=data.get("contribution_type", ContributionType.CODE.value),
            score=to_decimal(data.get("score", "0")),
            timestamp_utc=from_iso(data["timestamp_utc"]),
            verified=bool(data.get("verified", False)),
            verified_by=data.get("verified_by"),
            verified_utc=from_iso(data.get("verified_utc")),
            milestone_id=data.get("milestone_id"),
            description=data.get("description", ""),
            data=dict(data.get("data", {})),
        )
