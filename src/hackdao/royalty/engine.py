"""Royalty engine — turns verified contributions into currency shares.

Eligible contributions for a pool are the team's verified contributions
timestamped inside the pool period (inclusive both ends). Four models
turn them into per-member shares:

    linear     share_i = score_i / Σ score
    weighted   share_i = Σ(score × role_weight × type_weight)_i / Σ(...)
    milestone  each completed in-period milestone with tagged contributions
               gets an equal slice; a slice is split linearly among that
               milestone's contributors. No tagged contributions falls
               back to linear.
    hybrid     share_i = h × weighted_share_i + (1 - h) / N

A zero score basis splits equally among contributors.

Amounts are allocated with largest remainder at the currency quantum,
so Σ amount == total_amount exactly. Percentages are the exact share
× 100, unrounded.

State machine:
    PENDING -> CALCULATED -> DISTRIBUTED
    CALCULATED -> CALCULATED (recalculation before settlement)

Settlement never moves funds. It normalizes payout wallets, applies the
missing-wallet policy and returns a SettlementReport for a payment rail.
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

import structlog

from hackdao.errors import (
    InvalidArgumentError,
    InvalidStateError,
    NoContributionsError,
    NotFoundError,
)
from hackdao.models.common import to_decimal
from hackdao.models.directory import Contribution, MemberRole, MilestoneStatus
from hackdao.models.royalty import (
    DistributionModel,
    DistributionRecord,
    PayoutLine,
    PoolStatus,
    RoyaltyPool,
    SettlementReport,
)
from hackdao.persistence.locks import EntityLocks
from hackdao.persistence.store import LedgerStore
from hackdao.policy.resolver import PolicyResolver
from hackdao.royalty.allocation import allocate, equal_weights
from hackdao.royalty.wallets import normalize_wallet
from hackdao.teams.directory import Directory

logger = structlog.get_logger()


@dataclass
class _MemberTally:
    """Per-member aggregation of eligible contributions."""
    member_id: str
    contribution_ids: list[str] = field(default_factory=list)
    raw_score: Decimal = Decimal("0")
    weighted_score: Decimal = Decimal("0")


def _shares(weights: dict[str, Decimal]) -> dict[str, Decimal]:
    """Exact fractional shares; equal when the basis is zero."""
    basis = sum(weights.values(), Decimal("0"))
    if basis == 0:
        n = Decimal(len(weights))
        return {k: Decimal("1") / n for k in weights}
    return {k: w / basis for k, w in weights.items()}


class RoyaltyEngine:
    """Pool creation, distribution calculation and settlement.

    Usage:
        engine = RoyaltyEngine(store, directory, resolver)
        pool = engine.create_pool("Prize", team_id, Decimal("1000.00"),
                                  period_start=start, period_end=end)
        engine.calculate_distribution(pool.pool_id)
        report = engine.execute_distribution(pool.pool_id)
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
        self._params = resolver.royalty_params()
        self.locks = locks or EntityLocks()
        self._logger = logger.bind(system="royalty.engine")

    # ------------------------------------------------------------------
    # Pools
    # ------------------------------------------------------------------

    def create_pool(
        self,
        name: str,
        team_id: str,
        total_amount: Any,
        currency: Optional[str] = None,
        distribution_model: DistributionModel | str | None = None,
        period_start: Optional[datetime] = None,
        period_end: Optional[datetime] = None,
        source: str = "hackathon_prize",
        description: str = "",
        now: Optional[datetime] = None,
    ) -> RoyaltyPool:
        """Create a PENDING pool.

        The period defaults to the team's creation time through ``now``.

        Raises:
            NotFoundError: the team does not exist.
            InvalidArgumentError: negative or sub-quantum amount, unknown
                model, or a period that ends before it starts.
        """
        if not name or not name.strip():
            raise InvalidArgumentError("Pool name must not be empty")
        team = self._directory.require_team(team_id)

        quantum = self._params["currency_quantum"]
        amount = to_decimal(total_amount)
        if amount < 0:
            raise InvalidArgumentError(f"Pool amount must be >= 0, got {amount}")
        if amount != amount.quantize(quantum):
            raise InvalidArgumentError(
                f"Pool amount {amount} is finer than the currency quantum {quantum}"
            )

        try:
            model = DistributionModel(distribution_model or self._params["default_model"])
        except ValueError:
            raise InvalidArgumentError(
                f"Unknown distribution model: {distribution_model!r}"
            ) from None

        if now is None:
            now = datetime.now(timezone.utc)
        if period_start is None:
            period_start = team.created_utc or now
        if period_end is None:
            period_end = now
        if period_start > period_end:
            raise InvalidArgumentError("Pool period must not end before it starts")

        pool = RoyaltyPool(
            pool_id=f"pool_{uuid.uuid4().hex[:12]}",
            name=name.strip(),
            team_id=team_id,
            total_amount=amount.quantize(quantum),
            currency=currency or self._params["default_currency"],
            distribution_model=model,
            period_start=period_start,
            period_end=period_end,
            created_utc=now,
            source=source,
            description=description,
        )
        self._store.insert("royalties", pool.pool_id, pool.to_record())
        self._logger.info(
            "pool_created",
            pool_id=pool.pool_id,
            team_id=team_id,
            amount=str(pool.total_amount),
            currency=pool.currency,
            model=model.value,
        )
        return pool

    def get_pool(self, pool_id: str) -> Optional[RoyaltyPool]:
        data = self._store.get("royalties", pool_id)
        return RoyaltyPool.from_record(data) if data is not None else None

    def require_pool(self, pool_id: str) -> RoyaltyPool:
        pool = self.get_pool(pool_id)
        if pool is None:
            raise NotFoundError(f"Royalty pool {pool_id} not found")
        return pool

    def discard_pool(self, pool_id: str) -> None:
        """Delete a pool that never got past PENDING."""
        with self.locks.hold("royalties", pool_id):
            pool = self.require_pool(pool_id)
            if pool.status != PoolStatus.PENDING:
                raise InvalidStateError(
                    f"Only pending pools can be discarded (status: {pool.status.value})"
                )
            self._store.delete("royalties", pool_id)
        self._logger.info("pool_discarded", pool_id=pool_id, team_id=pool.team_id)

    def team_pools(self, team_id: str) -> list[RoyaltyPool]:
        return [
            RoyaltyPool.from_record(d)
            for d in self._store.find("royalties", team_id=team_id)
        ]

    def eligible_contributions(self, pool: RoyaltyPool) -> list[Contribution]:
        return [
            c for c in self._directory.contributions_for_team(pool.team_id)
            if c.verified and pool.period_start <= c.timestamp_utc <= pool.period_end
        ]

    # ------------------------------------------------------------------
    # Calculation
    # ------------------------------------------------------------------

    def calculate_distribution(
        self,
        pool_id: str,
        now: Optional[datetime] = None,
    ) -> list[DistributionRecord]:
        """Compute and store the pool's distribution rows.

        Raises:
            NotFoundError: unknown pool.
            InvalidStateError: the pool has already been distributed.
            NoContributionsError: no eligible contributions in the period.
        """
        if now is None:
            now = datetime.now(timezone.utc)

        with self.locks.hold("royalties", pool_id):
            pool = self.require_pool(pool_id)
            if pool.status == PoolStatus.DISTRIBUTED:
                raise InvalidStateError(
                    f"Pool {pool_id} has already been distributed"
                )
            contributions = self.eligible_contributions(pool)
            if not contributions:
                raise NoContributionsError(
                    f"No verified contributions for team {pool.team_id} in the pool period"
                )

            if pool.distribution_model == DistributionModel.WEIGHTED:
                rows = self._weighted(pool, contributions)
            elif pool.distribution_model == DistributionModel.MILESTONE:
                rows = self._milestone(pool, contributions)
            elif pool.distribution_model == DistributionModel.HYBRID:
                rows = self._hybrid(pool, contributions)
            else:
                rows = self._linear(pool, contributions)

            rows.sort(key=lambda r: (-r.amount, r.member_id))
            pool.transition_to(PoolStatus.CALCULATED)
            pool.distributions = rows
            pool.calculated_utc = now
            self._store.update("royalties", pool_id, pool.to_record())

        self._logger.info(
            "distribution_calculated",
            pool_id=pool_id,
            model=pool.distribution_model.value,
            recipients=len(rows),
            contributions=len(contributions),
        )
        return rows

    def _tally(
        self,
        contributions: list[Contribution],
        weighted: bool = False,
    ) -> dict[str, _MemberTally]:
        tallies: dict[str, _MemberTally] = {}
        roles: dict[str, str] = {}
        for c in contributions:
            tally = tallies.setdefault(c.member_id, _MemberTally(c.member_id))
            tally.contribution_ids.append(c.contribution_id)
            tally.raw_score += c.score
            if weighted:
                if c.member_id not in roles:
                    roles[c.member_id] = self._member_role(c.member_id)
                tally.weighted_score += (
                    c.score
                    * self._params["role_weights"].get(roles[c.member_id], Decimal("1"))
                    * self._params["type_weights"].get(c.contribution_type, Decimal("1"))
                )
        return tallies

    def _member_role(self, member_id: str) -> str:
        member = self._directory.get_member(member_id)
        if member is None:
            self._logger.warning(
                "member_missing_for_weighting",
                member_id=member_id, assumed_role=MemberRole.MEMBER.value,
            )
            return MemberRole.MEMBER.value
        return member.role

    def _quantum(self) -> Decimal:
        return self._params["currency_quantum"]

    def _linear(
        self,
        pool: RoyaltyPool,
        contributions: list[Contribution],
    ) -> list[DistributionRecord]:
        tallies = self._tally(contributions)
        weights = {m: t.raw_score for m, t in tallies.items()}
        amounts = allocate(pool.total_amount, weights, self._quantum())
        shares = _shares(weights)
        return [
            DistributionRecord(
                member_id=m,
                amount=amounts[m],
                percentage=shares[m] * 100,
                contribution_count=len(t.contribution_ids),
                contribution_ids=tuple(t.contribution_ids),
                contribution_score=t.raw_score,
            )
            for m, t in tallies.items()
        ]

    def _weighted(
        self,
        pool: RoyaltyPool,
        contributions: list[Contribution],
    ) -> list[DistributionRecord]:
        tallies = self._tally(contributions, weighted=True)
        weights = {m: t.weighted_score for m, t in tallies.items()}
        amounts = allocate(pool.total_amount, weights, self._quantum())
        shares = _shares(weights)
        return [
            DistributionRecord(
                member_id=m,
                amount=amounts[m],
                percentage=shares[m] * 100,
                contribution_count=len(t.contribution_ids),
                contribution_ids=tuple(t.contribution_ids),
                weighted_score=t.weighted_score,
            )
            for m, t in tallies.items()
        ]

    def _milestone(
        self,
        pool: RoyaltyPool,
        contributions: list[Contribution],
    ) -> list[DistributionRecord]:
        team = self._directory.require_team(pool.team_id)
        completed = {
            m.milestone_id for m in team.milestones
            if m.status == MilestoneStatus.COMPLETED
            and m.completed_utc is not None
            and pool.period_start <= m.completed_utc <= pool.period_end
        }
        by_milestone: dict[str, list[Contribution]] = defaultdict(list)
        for c in contributions:
            if c.milestone_id in completed:
                by_milestone[c.milestone_id].append(c)
        if not by_milestone:
            self._logger.info(
                "milestone_model_linear_fallback",
                pool_id=pool.pool_id, completed_milestones=len(completed),
            )
            return self._linear(pool, contributions)

        quantum = self._quantum()
        milestone_ids = sorted(by_milestone)
        slices = allocate(pool.total_amount, equal_weights(milestone_ids), quantum)
        slice_share = Decimal("1") / Decimal(len(milestone_ids))

        amounts: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
        shares: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
        touched: dict[str, list[str]] = defaultdict(list)
        tagged: list[Contribution] = []
        for milestone_id in milestone_ids:
            group = by_milestone[milestone_id]
            tagged.extend(group)
            tallies = self._tally(group)
            weights = {m: t.raw_score for m, t in tallies.items()}
            for member_id, amount in allocate(slices[milestone_id], weights, quantum).items():
                amounts[member_id] += amount
            for member_id, share in _shares(weights).items():
                shares[member_id] += slice_share * share
            for member_id in tallies:
                touched[member_id].append(milestone_id)

        tallies = self._tally(tagged)
        return [
            DistributionRecord(
                member_id=m,
                amount=amounts[m],
                percentage=shares[m] * 100,
                contribution_count=len(t.contribution_ids),
                contribution_ids=tuple(t.contribution_ids),
                contribution_score=t.raw_score,
                milestone_ids=tuple(touched[m]),
            )
            for m, t in tallies.items()
        ]

    def _hybrid(
        self,
        pool: RoyaltyPool,
        contributions: list[Contribution],
    ) -> list[DistributionRecord]:
        quantum = self._quantum()
        h = self._params["hybrid_weighted_share"]
        tallies = self._tally(contributions, weighted=True)
        weights = {m: t.weighted_score for m, t in tallies.items()}

        weighted_pot = (pool.total_amount * h).quantize(quantum, rounding=ROUND_HALF_UP)
        equal_pot = pool.total_amount - weighted_pot
        weighted_amounts = allocate(weighted_pot, weights, quantum)
        equal_amounts = allocate(equal_pot, equal_weights(tallies), quantum)

        weighted_shares = _shares(weights)
        n = Decimal(len(tallies))
        return [
            DistributionRecord(
                member_id=m,
                amount=weighted_amounts[m] + equal_amounts[m],
                percentage=(h * weighted_shares[m] + (1 - h) / n) * 100,
                contribution_count=len(t.contribution_ids),
                contribution_ids=tuple(t.contribution_ids),
                weighted_score=t.weighted_score,
                weighted_amount=weighted_amounts[m],
                equal_share=equal_amounts[m],
            )
            for m, t in tallies.items()
        ]

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    def execute_distribution(
        self,
        pool_id: str,
        now: Optional[datetime] = None,
    ) -> SettlementReport:
        """Settle a CALCULATED pool once.

        Raises:
            NotFoundError: unknown pool.
            InvalidStateError: pool not CALCULATED, already settled, or a
                payout wallet is unusable under the ``fail`` policy.
        """
        if now is None:
            now = datetime.now(timezone.utc)
        policy = self._params["missing_wallet_policy"]

        with self.locks.hold("royalties", pool_id):
            pool = self.require_pool(pool_id)
            if pool.status != PoolStatus.CALCULATED:
                raise InvalidStateError(
                    "Distribution must be calculated before execution "
                    f"(status: {pool.status.value})"
                )
            if pool.distributed_utc is not None:
                raise InvalidStateError(f"Pool {pool_id} has already been distributed")

            paid: list[PayoutLine] = []
            skipped: list[str] = []
            for row in pool.distributions:
                member = self._directory.get_member(row.member_id)
                wallet = normalize_wallet(member.wallet if member else None)
                if wallet is None:
                    if policy == "fail":
                        raise InvalidStateError(
                            f"Member {row.member_id} has no valid payout wallet"
                        )
                    self._logger.warning(
                        "payout_skipped",
                        pool_id=pool_id,
                        member_id=row.member_id,
                        amount=str(row.amount),
                        reason="missing_or_invalid_wallet",
                    )
                    skipped.append(row.member_id)
                    continue
                paid.append(PayoutLine(
                    member_id=row.member_id,
                    member_name=member.name,
                    wallet=wallet,
                    amount=row.amount,
                    percentage=row.percentage,
                ))

            pool.transition_to(PoolStatus.DISTRIBUTED)
            pool.distributed_utc = now
            pool.skipped_member_ids = skipped
            self._store.update("royalties", pool_id, pool.to_record())

        report = SettlementReport(
            pool_id=pool_id,
            currency=pool.currency,
            distributed_utc=now,
            paid=tuple(paid),
            skipped_member_ids=tuple(skipped),
        )
        self._logger.info(
            "distribution_executed",
            pool_id=pool_id,
            paid=len(paid),
            skipped=len(skipped),
            total_paid=str(report.total_paid),
            currency=pool.currency,
        )
        return report

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def distribution_report(self, pool_id: str) -> dict[str, Any]:
        pool = self.require_pool(pool_id)
        rows = []
        for row in pool.distributions:
            member = self._directory.get_member(row.member_id)
            entry = row.to_record()
            entry["member_name"] = member.name if member else "Unknown"
            entry["member_wallet"] = member.wallet if member else None
            rows.append(entry)
        return {
            "pool_id": pool.pool_id,
            "pool_name": pool.name,
            "team_id": pool.team_id,
            "total_amount": str(pool.total_amount),
            "currency": pool.currency,
            "status": pool.status.value,
            "distribution_model": pool.distribution_model.value,
            "recipient_count": len(pool.distributions),
            "skipped_member_ids": list(pool.skipped_member_ids),
            "distributions": rows,
        }

    def member_total_royalties(self, member_id: str) -> dict[str, Any]:
        """Sum a member's rows across every pool (full scan).

        ``total_earned`` adds amounts regardless of currency; use
        ``by_currency`` when pools mix currencies.
        """
        total = Decimal("0")
        by_currency: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
        pools = []
        for data in self._store.list("royalties"):
            pool = RoyaltyPool.from_record(data)
            row = pool.distribution_for(member_id)
            if row is None:
                continue
            total += row.amount
            by_currency[pool.currency] += row.amount
            pools.append({
                "pool_id": pool.pool_id,
                "pool_name": pool.name,
                "amount": row.amount,
                "currency": pool.currency,
                "status": pool.status.value,
                "distributed_utc": pool.distributed_utc,
            })
        return {
            "member_id": member_id,
            "total_earned": total,
            "by_currency": dict(by_currency),
            "pool_count": len(pools),
            "pools": pools,
        }
