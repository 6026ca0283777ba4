"""Tests for the royalty engine — proves exact conservation, model algebra and one-shot settlement."""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

from web3 import Web3

from hackdao.errors import (
    InvalidArgumentError,
    InvalidStateError,
    NoContributionsError,
    NotFoundError,
)
from hackdao.models.royalty import DistributionModel, PoolStatus
from hackdao.persistence.store import InMemoryLedgerStore
from hackdao.policy.resolver import PolicyResolver
from hackdao.royalty.engine import RoyaltyEngine
from hackdao.royalty.wallets import is_valid_wallet, normalize_wallet
from hackdao.teams.directory import Directory


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"

WALLET_A = "0x" + "ab" * 20
WALLET_B = "0x1234567890abcdef1234567890abcdef12345678"


def _now() -> datetime:
    return datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class _World:
    def __init__(self, resolver: PolicyResolver = None) -> None:
        resolver = resolver or PolicyResolver.from_config_dir(CONFIG_DIR)
        self.store = InMemoryLedgerStore()
        self.directory = Directory(self.store, resolver)
        self.engine = RoyaltyEngine(self.store, self.directory, resolver)
        self.directory.create_team(
            "Rocket", created_by="a", team_id="t1", now=_now() - timedelta(days=30),
        )
        self.directory.register_member("Ada", role="team_lead", wallet=WALLET_A, member_id="a")
        self.directory.register_member("Bob", wallet=WALLET_B, member_id="b")
        self.directory.register_member("Cy", member_id="c")
        for m in ("a", "b", "c"):
            self.directory.add_member_to_team("t1", m)

    def contribute(
        self,
        member_id: str,
        score,
        contribution_type: str = "code",
        verified: bool = True,
        milestone_id: str = None,
        when: datetime = None,
    ) -> str:
        c = self.directory.record_contribution(
            "t1", member_id, contribution_type, score,
            verified=verified,
            milestone_id=milestone_id,
            timestamp=when or _now() - timedelta(days=1),
        )
        return c.contribution_id

    def pool(self, model: str = "linear", amount: str = "1000.00", **kwargs) -> str:
        kwargs.setdefault("now", _now())
        return self.engine.create_pool(
            "Prize", "t1", amount, distribution_model=model, **kwargs,
        ).pool_id

    def amounts(self, pool_id: str) -> dict:
        rows = self.engine.calculate_distribution(pool_id, now=_now())
        return {r.member_id: r.amount for r in rows}


class TestCreatePool:
    def test_defaults(self) -> None:
        w = _World()
        pool = w.engine.create_pool("Prize", "t1", "250.50", now=_now())
        assert pool.status == PoolStatus.PENDING
        assert pool.currency == "USD"
        assert pool.distribution_model == DistributionModel.LINEAR
        assert pool.total_amount == Decimal("250.50")
        assert pool.period_start == _now() - timedelta(days=30)
        assert pool.period_end == _now()

    def test_missing_team(self) -> None:
        w = _World()
        with pytest.raises(NotFoundError):
            w.engine.create_pool("Prize", "ghost", "10.00")

    @pytest.mark.parametrize("amount", ["-1.00", "10.001", "NaN"])
    def test_bad_amount(self, amount: str) -> None:
        w = _World()
        with pytest.raises(InvalidArgumentError):
            w.engine.create_pool("Prize", "t1", amount)

    def test_unknown_model(self) -> None:
        w = _World()
        with pytest.raises(InvalidArgumentError, match="Unknown distribution model"):
            w.pool(model="lottery")

    def test_inverted_period(self) -> None:
        w = _World()
        with pytest.raises(InvalidArgumentError, match="period"):
            w.pool(period_start=_now(), period_end=_now() - timedelta(days=1))

    def test_empty_name(self) -> None:
        w = _World()
        with pytest.raises(InvalidArgumentError):
            w.engine.create_pool(" ", "t1", "10.00")

    def test_team_pools(self) -> None:
        w = _World()
        w.pool()
        w.pool(model="hybrid")
        assert len(w.engine.team_pools("t1")) == 2

    def test_discard_pending_pool(self) -> None:
        w = _World()
        pid = w.pool()
        w.engine.discard_pool(pid)
        assert w.engine.get_pool(pid) is None
        assert w.engine.team_pools("t1") == []

    def test_discard_calculated_pool_refused(self) -> None:
        w = _World()
        w.contribute("a", 10)
        pid = w.pool()
        w.engine.calculate_distribution(pid, now=_now())
        with pytest.raises(InvalidStateError, match="pending"):
            w.engine.discard_pool(pid)
        assert w.engine.require_pool(pid).status == PoolStatus.CALCULATED


class TestModels:
    def test_linear(self) -> None:
        w = _World()
        w.contribute("a", 30)
        w.contribute("b", 70)
        pid = w.pool("linear")
        rows = w.engine.calculate_distribution(pid, now=_now())
        assert [(r.member_id, r.amount) for r in rows] == [
            ("b", Decimal("700.00")),
            ("a", Decimal("300.00")),
        ]
        assert rows[0].percentage == Decimal("70")
        assert rows[0].contribution_score == Decimal("70")

    def test_weighted(self) -> None:
        w = _World()
        w.contribute("a", 100, "code")           # 100 * 1.5 * 1.2 = 180
        w.contribute("b", 100, "documentation")  # 100 * 1.0 * 0.9 = 90
        pid = w.pool("weighted")
        rows = w.engine.calculate_distribution(pid, now=_now())
        by_member = {r.member_id: r for r in rows}
        assert by_member["a"].amount == Decimal("666.67")
        assert by_member["b"].amount == Decimal("333.33")
        assert by_member["a"].weighted_score == Decimal("180")
        assert by_member["b"].weighted_score == Decimal("90")

    def test_hybrid(self) -> None:
        w = _World()
        w.contribute("a", 100, "code")
        w.contribute("b", 100, "documentation")
        pid = w.pool("hybrid")
        rows = {r.member_id: r for r in w.engine.calculate_distribution(pid, now=_now())}
        assert rows["a"].weighted_amount == Decimal("466.67")
        assert rows["b"].weighted_amount == Decimal("233.33")
        assert rows["a"].equal_share == Decimal("150.00")
        assert rows["b"].equal_share == Decimal("150.00")
        assert rows["a"].amount == Decimal("616.67")
        assert rows["b"].amount == Decimal("383.33")

    def test_milestone_splits_per_completed_milestone(self) -> None:
        w = _World()
        w.directory.add_milestone("t1", "MVP", milestone_id="ms1")
        w.directory.add_milestone("t1", "Demo", milestone_id="ms2")
        w.directory.complete_milestone("t1", "ms1", now=_now() - timedelta(days=2))
        w.directory.complete_milestone("t1", "ms2", now=_now() - timedelta(days=1))
        w.contribute("a", 10, milestone_id="ms1")
        w.contribute("b", 30, milestone_id="ms1")
        w.contribute("a", 5, milestone_id="ms2")

        pid = w.pool("milestone")
        rows = {r.member_id: r for r in w.engine.calculate_distribution(pid, now=_now())}
        assert rows["a"].amount == Decimal("625.00")
        assert rows["b"].amount == Decimal("375.00")
        assert rows["a"].milestone_ids == ("ms1", "ms2")
        assert rows["b"].milestone_ids == ("ms1",)
        assert rows["a"].percentage == Decimal("62.5")

    def test_milestone_ignores_pending_milestones(self) -> None:
        w = _World()
        w.directory.add_milestone("t1", "MVP", milestone_id="ms1")
        w.directory.add_milestone("t1", "Later", milestone_id="ms2")
        w.directory.complete_milestone("t1", "ms1", now=_now() - timedelta(days=2))
        w.contribute("a", 10, milestone_id="ms1")
        w.contribute("b", 90, milestone_id="ms2")

        pid = w.pool("milestone")
        assert w.amounts(pid) == {"a": Decimal("1000.00")}

    def test_milestone_without_tags_falls_back_to_linear(self) -> None:
        w = _World()
        w.contribute("a", 30)
        w.contribute("b", 70)
        pid = w.pool("milestone")
        assert w.amounts(pid) == {"a": Decimal("300.00"), "b": Decimal("700.00")}


class TestConservation:
    @pytest.mark.parametrize("model", [m.value for m in DistributionModel])
    def test_three_way_split_sums_exactly(self, model: str) -> None:
        w = _World()
        w.contribute("a", 1)
        w.contribute("b", 1, "review")
        w.contribute("c", 1, "design")
        pid = w.pool(model, amount="100.00")
        amounts = w.amounts(pid)
        assert sum(amounts.values()) == Decimal("100.00")
        assert all(a == a.quantize(Decimal("0.01")) and a >= 0 for a in amounts.values())

    @pytest.mark.parametrize("model", [m.value for m in DistributionModel])
    def test_single_contributor_takes_all(self, model: str) -> None:
        w = _World()
        w.contribute("b", 42, "testing")
        pid = w.pool(model, amount="77.77")
        rows = w.engine.calculate_distribution(pid, now=_now())
        assert len(rows) == 1
        assert rows[0].amount == Decimal("77.77")
        assert rows[0].percentage == Decimal("100")

    def test_zero_scores_split_equally(self) -> None:
        w = _World()
        w.contribute("a", 0)
        w.contribute("b", 0)
        pid = w.pool("linear", amount="100.00")
        assert w.amounts(pid) == {"a": Decimal("50.00"), "b": Decimal("50.00")}

    def test_zero_amount_pool(self) -> None:
        w = _World()
        w.contribute("a", 10)
        pid = w.pool("linear", amount="0.00")
        assert w.amounts(pid) == {"a": Decimal("0.00")}


class TestEligibility:
    def test_unverified_and_out_of_period_excluded(self) -> None:
        w = _World()
        w.contribute("a", 10)
        w.contribute("b", 50, verified=False)
        w.contribute("c", 50, when=_now() - timedelta(days=60))
        pid = w.pool("linear")
        assert w.amounts(pid) == {"a": Decimal("1000.00")}

    def test_period_bounds_are_inclusive(self) -> None:
        w = _World()
        start = _now() - timedelta(days=5)
        w.contribute("a", 10, when=start)
        w.contribute("b", 10, when=_now())
        pid = w.pool("linear", period_start=start, period_end=_now())
        assert set(w.amounts(pid)) == {"a", "b"}

    def test_no_contributions(self) -> None:
        w = _World()
        w.contribute("a", 10, verified=False)
        pid = w.pool()
        with pytest.raises(NoContributionsError):
            w.engine.calculate_distribution(pid, now=_now())
        assert w.engine.require_pool(pid).status == PoolStatus.PENDING

    def test_missing_member_weighted_as_plain_member(self) -> None:
        w = _World()
        w.contribute("a", 100, "review")  # 100 * 1.5 * 1.0 = 150
        w.contribute("b", 100, "review")
        w.store.delete("members", "b")     # assumed role member: 100
        pid = w.pool("weighted")
        assert w.amounts(pid) == {"a": Decimal("600.00"), "b": Decimal("400.00")}


class TestRecalculation:
    def test_recalculate_before_settlement(self) -> None:
        w = _World()
        w.contribute("a", 10)
        pid = w.pool()
        assert w.amounts(pid) == {"a": Decimal("1000.00")}

        w.contribute("b", 10)
        assert w.amounts(pid) == {"a": Decimal("500.00"), "b": Decimal("500.00")}
        pool = w.engine.require_pool(pid)
        assert pool.status == PoolStatus.CALCULATED
        assert pool.calculated_utc == _now()

    def test_recalculate_after_settlement_refused(self) -> None:
        w = _World()
        w.contribute("a", 10)
        pid = w.pool()
        w.engine.calculate_distribution(pid, now=_now())
        w.engine.execute_distribution(pid, now=_now())
        with pytest.raises(InvalidStateError, match="already been distributed"):
            w.engine.calculate_distribution(pid, now=_now())


class TestSettlement:
    def test_skip_policy(self) -> None:
        w = _World()
        w.contribute("a", 50)
        w.contribute("b", 30)
        w.contribute("c", 20)
        pid = w.pool()
        w.engine.calculate_distribution(pid, now=_now())

        report = w.engine.execute_distribution(pid, now=_now())
        assert report.skipped_member_ids == ("c",)
        assert [line.member_id for line in report.paid] == ["a", "b"]
        assert report.total_paid == Decimal("800.00")
        assert report.paid[0].wallet == Web3.to_checksum_address(WALLET_A)

        pool = w.engine.require_pool(pid)
        assert pool.status == PoolStatus.DISTRIBUTED
        assert pool.distributed_utc == _now()
        assert pool.skipped_member_ids == ["c"]

    def test_fail_policy(self) -> None:
        resolver = PolicyResolver.from_config_dir(CONFIG_DIR).with_overrides(
            "royalty", missing_wallet_policy="fail",
        )
        w = _World(resolver)
        w.contribute("a", 50)
        w.contribute("c", 50)
        pid = w.pool()
        w.engine.calculate_distribution(pid, now=_now())

        with pytest.raises(InvalidStateError, match="no valid payout wallet"):
            w.engine.execute_distribution(pid, now=_now())
        assert w.engine.require_pool(pid).status == PoolStatus.CALCULATED

    def test_malformed_wallet_skipped(self) -> None:
        w = _World()
        w.directory.register_member("Dee", wallet="0xnothex", member_id="d")
        w.directory.add_member_to_team("t1", "d")
        w.contribute("d", 10)
        pid = w.pool()
        w.engine.calculate_distribution(pid, now=_now())
        assert w.engine.execute_distribution(pid, now=_now()).skipped_member_ids == ("d",)

    def test_requires_calculation(self) -> None:
        w = _World()
        pid = w.pool()
        with pytest.raises(InvalidStateError, match="calculated before execution"):
            w.engine.execute_distribution(pid, now=_now())

    def test_second_execution_refused(self) -> None:
        w = _World()
        w.contribute("a", 10)
        pid = w.pool()
        w.engine.calculate_distribution(pid, now=_now())
        w.engine.execute_distribution(pid, now=_now())
        with pytest.raises(InvalidStateError):
            w.engine.execute_distribution(pid, now=_now())


class TestWallets:
    def test_checksums_lowercase_address(self) -> None:
        assert normalize_wallet(WALLET_B) == Web3.to_checksum_address(WALLET_B)

    def test_rejects_missing_and_garbage(self) -> None:
        assert normalize_wallet(None) is None
        assert normalize_wallet("   ") is None
        assert is_valid_wallet("not-a-wallet") is False
        assert is_valid_wallet(WALLET_A) is True


class TestReports:
    def test_distribution_report(self) -> None:
        w = _World()
        w.contribute("a", 60)
        w.contribute("b", 40)
        pid = w.pool()
        w.engine.calculate_distribution(pid, now=_now())
        w.store.delete("members", "b")

        report = w.engine.distribution_report(pid)
        assert report["status"] == "calculated"
        assert report["recipient_count"] == 2
        rows = {r["member_id"]: r for r in report["distributions"]}
        assert rows["a"]["member_name"] == "Ada"
        assert rows["a"]["member_wallet"] == WALLET_A
        assert rows["a"]["amount"] == "600.00"
        assert rows["b"]["member_name"] == "Unknown"

    def test_member_totals_across_pools(self) -> None:
        w = _World()
        w.contribute("a", 10)
        p1 = w.pool(amount="100.00")
        p2 = w.engine.create_pool("Bounty", "t1", "50.00", currency="EUR", now=_now()).pool_id
        w.engine.calculate_distribution(p1, now=_now())
        w.engine.calculate_distribution(p2, now=_now())

        totals = w.engine.member_total_royalties("a")
        assert totals["total_earned"] == Decimal("150.00")
        assert totals["by_currency"] == {"USD": Decimal("100.00"), "EUR": Decimal("50.00")}
        assert totals["pool_count"] == 2

    def test_member_without_rows(self) -> None:
        w = _World()
        totals = w.engine.member_total_royalties("c")
        assert totals["total_earned"] == Decimal("0")
        assert totals["pools"] == []
