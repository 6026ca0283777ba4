"""Tests for the policy resolver — proves the parameter file loads as exact Decimals."""

import json

import pytest
from decimal import Decimal
from pathlib import Path

from hackdao.policy.invariants import check_config_dir, check_params
from hackdao.policy.resolver import PolicyResolver


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"


@pytest.fixture
def resolver() -> PolicyResolver:
    return PolicyResolver.from_config_dir(CONFIG_DIR)


def _raw_params() -> dict:
    with (CONFIG_DIR / "governance_params.json").open("r", encoding="utf-8") as f:
        return json.load(f, parse_float=Decimal)


class TestProposalParams:
    def test_defaults(self, resolver: PolicyResolver) -> None:
        p = resolver.proposal_params()
        assert p["default_duration_days"] == 7
        assert p["default_quorum_required"] == Decimal("0.5")
        assert p["default_approval_threshold"] == Decimal("0.66")


class TestVotingParams:
    def test_weight_constants(self, resolver: PolicyResolver) -> None:
        v = resolver.voting_params()
        assert v["base_weight"] == Decimal("1")
        assert v["reputation_baseline"] == Decimal("100")
        assert v["reputation_divisor"] == Decimal("1000")
        assert v["reputation_bonus_cap"] == Decimal("0.5")
        assert v["contribution_bonus_per_verified"] == Decimal("0.02")
        assert v["contribution_bonus_cap"] == Decimal("0.3")

    def test_role_bonus_is_exact_decimal(self, resolver: PolicyResolver) -> None:
        bonus = resolver.voting_params()["role_bonus"]
        assert bonus["team_lead"] == Decimal("0.2")
        assert bonus["senior"] == Decimal("0.1")
        assert isinstance(bonus["team_lead"], Decimal)

    def test_extension_settings(self, resolver: PolicyResolver) -> None:
        v = resolver.voting_params()
        assert v["extension_default_days"] == 3
        assert v["extension_roles"] == ("team_lead",)


class TestRoyaltyParams:
    def test_weights(self, resolver: PolicyResolver) -> None:
        r = resolver.royalty_params()
        assert r["role_weights"]["team_lead"] == Decimal("1.5")
        assert r["role_weights"]["junior"] == Decimal("0.8")
        assert r["type_weights"]["code"] == Decimal("1.2")
        assert r["type_weights"]["ideation"] == Decimal("0.8")

    def test_money_settings(self, resolver: PolicyResolver) -> None:
        r = resolver.royalty_params()
        assert r["currency_quantum"] == Decimal("0.01")
        assert r["default_currency"] == "USD"
        assert r["hybrid_weighted_share"] == Decimal("0.7")
        assert r["missing_wallet_policy"] == "skip"


class TestResolverValidation:
    def test_missing_section_rejected(self) -> None:
        params = _raw_params()
        del params["voting"]
        with pytest.raises(ValueError, match="missing section: voting"):
            PolicyResolver(params)

    def test_bad_wallet_policy_rejected(self) -> None:
        params = _raw_params()
        params["royalty"]["missing_wallet_policy"] = "ignore"
        with pytest.raises(ValueError, match="missing_wallet_policy"):
            PolicyResolver(params)

    def test_with_overrides_returns_new_resolver(self, resolver: PolicyResolver) -> None:
        strict = resolver.with_overrides("royalty", missing_wallet_policy="fail")
        assert strict.royalty_params()["missing_wallet_policy"] == "fail"
        assert resolver.royalty_params()["missing_wallet_policy"] == "skip"


class TestInvariants:
    def test_shipped_config_passes(self) -> None:
        assert check_config_dir(CONFIG_DIR) == []

    def test_quorum_out_of_range(self) -> None:
        params = _raw_params()
        params["proposals"]["default_quorum_required"] = Decimal("1.5")
        errors = check_params(params)
        assert any("default_quorum_required" in e for e in errors)

    def test_hybrid_share_out_of_range(self) -> None:
        params = _raw_params()
        params["royalty"]["hybrid_weighted_share"] = Decimal("1.2")
        errors = check_params(params)
        assert any("hybrid_weighted_share" in e for e in errors)

    def test_non_positive_weight(self) -> None:
        params = _raw_params()
        params["royalty"]["role_weights"]["junior"] = 0
        errors = check_params(params)
        assert any("role_weights[junior]" in e for e in errors)

    def test_missing_type_weight(self) -> None:
        params = _raw_params()
        del params["royalty"]["type_weights"]["presentation"]
        errors = check_params(params)
        assert any("missing type: presentation" in e for e in errors)

    def test_unknown_extension_role(self) -> None:
        params = _raw_params()
        params["voting"]["extension_roles"] = ["wizard"]
        errors = check_params(params)
        assert any("unknown role: wizard" in e for e in errors)

    def test_missing_section_reported(self) -> None:
        params = _raw_params()
        del params["directory"]
        assert check_params(params) == ["missing section: directory"]
