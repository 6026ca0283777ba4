"""Royalty pool and distribution models.

All monetary values use Decimal held at the currency quantum. A pool's
distribution rows always sum to its total_amount exactly.

State machine:
    PENDING -> CALCULATED -> DISTRIBUTED
    CALCULATED -> CALCULATED   (recompute before settlement)
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from hackdao.errors import InvalidStateError
from hackdao.models.common import from_iso, to_decimal, to_iso


class DistributionModel(str, enum.Enum):
    """Algebra used to turn contribution scores into currency shares."""
    LINEAR = "linear"
    WEIGHTED = "weighted"
    MILESTONE = "milestone"
    HYBRID = "hybrid"


class PoolStatus(str, enum.Enum):
    PENDING = "pending"
    CALCULATED = "calculated"
    DISTRIBUTED = "distributed"


POOL_TRANSITIONS: dict[PoolStatus, frozenset] = {
    PoolStatus.PENDING: frozenset({PoolStatus.CALCULATED}),
    PoolStatus.CALCULATED: frozenset({
        PoolStatus.CALCULATED,
        PoolStatus.DISTRIBUTED,
    }),
    PoolStatus.DISTRIBUTED: frozenset(),
}


def _opt_decimal(value: Any) -> Optional[Decimal]:
    return to_decimal(value) if value is not None else None


def _opt_str(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


@dataclass(frozen=True)
class DistributionRecord:
    """One member's allocation within a pool.

    Model-specific fields are None when the model does not produce them.
    """
    member_id: str
    amount: Decimal
    percentage: Decimal
    contribution_count: int
    contribution_ids: tuple[str, ...] = ()
    contribution_score: Optional[Decimal] = None
    weighted_score: Optional[Decimal] = None
    weighted_amount: Optional[Decimal] = None
    equal_share: Optional[Decimal] = None
    milestone_ids: tuple[str, ...] = ()

    def to_record(self) -> dict[str, Any]:
        return {
            "member_id": self.member_id,
            "amount": str(self.amount),
            "percentage": str(self.percentage),
            "contribution_count": self.contribution_count,
            "contribution_ids": list(self.contribution_ids),
            "contribution_score": _opt_str(self.contribution_score),
            "weighted_score": _opt_str(self.weighted_score),
            "weighted_amount": _opt_str(self.weighted_amount),
            "equal_share": _opt_str(self.equal_share),
            "milestone_ids": list(self.milestone_ids),
        }

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> DistributionRecord:
        return cls(
            member_id=data["member_id"],
            amount=to_decimal(data["amount"]),
            percentage=to_decimal(data["percentage"]),
            contribution_count=int(data.get("contribution_count", 0)),
            contribution_ids=tuple(data.get("contribution_ids", [])),
            contribution_score=_opt_decimal(data.get("contribution_score")),
            weighted_score=_opt_decimal(data.get("weighted_score")),
            weighted_amount=_opt_decimal(data.get("weighted_amount")),
            equal_share=_opt_decimal(data.get("equal_share")),
            milestone_ids=tuple(data.get("milestone_ids", [])),
        )


@dataclass
class RoyaltyPool:
    """A bounded amount of currency earmarked for one team.

    Mutable: calculation replaces ``distributions``; settlement stamps
    ``distributed_utc``. Transitions are validated against POOL_TRANSITIONS.
    """
    pool_id: str
    name: str
    team_id: str
    total_amount: Decimal
    currency: str
    distribution_model: DistributionModel
    period_start: datetime
    period_end: datetime
    created_utc: datetime
    status: PoolStatus = PoolStatus.PENDING
    distributions: list[DistributionRecord] = field(default_factory=list)
    source: str = "hackathon_prize"
    description: str = ""
    calculated_utc: Optional[datetime] = None
    distributed_utc: Optional[datetime] = None
    skipped_member_ids: list[str] = field(default_factory=list)

    def transition_to(self, new_status: PoolStatus) -> None:
        allowed = POOL_TRANSITIONS.get(self.status, frozenset())
        if new_status not in allowed:
            raise InvalidStateError(
                f"Invalid pool transition: {self.status.value} -> {new_status.value}"
            )
        self.status = new_status

    def distribution_for(self, member_id: str) -> Optional[DistributionRecord]:
        for row in self.distributions:
            if row.member_id == member_id:
                return row
        return None

    def to_record(self) -> dict[str, Any]:
        return {
            "pool_id": self.pool_id,
            "name": self.name,
            "team_id": self.team_id,
            "total_amount": str(self.total_amount),
            "currency": self.currency,
            "distribution_model": self.distribution_model.value,
            "status": self.status.value,
            "distributions": [d.to_record() for d in self.distributions],
            "period_start": to_iso(self.period_start),
            "period_end": to_iso(self.period_end),
            "created_utc": to_iso(self.created_utc),
            "calculated_utc": to_iso(self.calculated_utc),
            "distributed_utc": to_iso(self.distributed_utc),
            "source": self.source,
            "description": self.description,
            "skipped_member_ids": list(self.skipped_member_ids),
        }

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> RoyaltyPool:
        return cls(
            pool_id=data["pool_id"],
            name=data["name"],
            team_id=data["team_id"],
            total_amount=to_decimal(data["total_amount"]),
            currency=data.get("currency", "USD"),
            distribution_model=DistributionModel(data["distribution_model"]),
            status=PoolStatus(data.get("status", "pending")),
            distributions=[
                DistributionRecord.from_record(d)
                for d in data.get("distributions", [])
            ],
            period_start=from_iso(data["period_start"]),
            period_end=from_iso(data["period_end"]),
            created_utc=from_iso(data["created_utc"]),
            calculated_utc=from_iso(data.get("calculated_utc")),
            distributed_utc=from_iso(data.get("distributed_utc")),
            source=data.get("source", "hackathon_prize"),
            description=data.get("description", ""),
            skipped_member_ids=list(data.get("skipped_member_ids", [])),
        )


@dataclass(frozen=True)
class PayoutLine:
    """A settled row: who gets how much, at which normalized address."""
    member_id: str
    member_name: str
    wallet: str
    amount: Decimal
    percentage: Decimal


@dataclass(frozen=True)
class SettlementReport:
    """Outcome of executing a pool's distribution.

    The engine never moves funds. Callers hand ``paid`` to a payment
    gateway or chain client.
    """
    pool_id: str
    currency: str
    distributed_utc: datetime
    paid: tuple[PayoutLine, ...]
    skipped_member_ids: tuple[str, ...]

    @property
    def total_paid(self) -> Decimal:
        return sum((line.amount for line in self.paid), Decimal("0"))
