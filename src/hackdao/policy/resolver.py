"""Policy resolver — typed access to the governance parameter file.

All tunable numbers (default quorum, vote-weight bonuses, royalty role
and type weights, currency quantum) live in
``config/governance_params.json``. JSON floats are parsed straight to
Decimal so no binary rounding leaks into vote weights or payouts.

Usage:
    resolver = PolicyResolver.from_config_dir(Path("config"))
    params = resolver.voting_params()
    params["role_bonus"]["team_lead"]   # Decimal("0.2")
"""

from __future__ import annotations

import copy
import json
from decimal import Decimal
from pathlib import Path
from typing import Any


PARAMS_FILE = "governance_params.json"

MISSING_WALLET_POLICIES = ("skip", "fail")


class PolicyResolver:
    """Read-only view over the parsed parameter document."""

    def __init__(self, params: dict[str, Any]) -> None:
        for section in ("proposals", "voting", "royalty", "directory"):
            if section not in params:
                raise ValueError(f"Policy is missing section: {section}")
        policy = params["royalty"].get("missing_wallet_policy", "skip")
        if policy not in MISSING_WALLET_POLICIES:
            raise ValueError(
                f"missing_wallet_policy must be one of {MISSING_WALLET_POLICIES}, got {policy!r}"
            )
        self._params = params

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> PolicyResolver:
        path = config_dir / PARAMS_FILE
        with path.open("r", encoding="utf-8") as f:
            return cls(json.load(f, parse_float=Decimal))

    def with_overrides(self, section: str, **overrides: Any) -> PolicyResolver:
        """Return a new resolver with some keys of one section replaced."""
        params = copy.deepcopy(self._params)
        params[section].update(overrides)
        return PolicyResolver(params)

    def proposal_params(self) -> dict[str, Any]:
        p = self._params["proposals"]
        return {
            "default_duration_days": int(p["default_duration_days"]),
            "default_quorum_required": Decimal(str(p["default_quorum_required"])),
            "default_approval_threshold": Decimal(str(p["default_approval_threshold"])),
        }

    def voting_params(self) -> dict[str, Any]:
        v = self._params["voting"]
        return {
            "base_weight": Decimal(str(v["base_weight"])),
            "reputation_baseline": Decimal(str(v["reputation_baseline"])),
            "reputation_divisor": Decimal(str(v["reputation_divisor"])),
            "reputation_bonus_cap": Decimal(str(v["reputation_bonus_cap"])),
            "contribution_bonus_per_verified": Decimal(
                str(v["contribution_bonus_per_verified"])
            ),
            "contribution_bonus_cap": Decimal(str(v["contribution_bonus_cap"])),
            "role_bonus": {
                role: Decimal(str(bonus)) for role, bonus in v["role_bonus"].items()
            },
            "extension_default_days": int(v["extension_default_days"]),
            "extension_roles": tuple(v.get("extension_roles", ["team_lead"])),
        }

    def royalty_params(self) -> dict[str, Any]:
        r = self._params["royalty"]
        return {
            "default_currency": r["default_currency"],
            "currency_quantum": Decimal(str(r["currency_quantum"])),
            "default_model": r["default_model"],
            "hybrid_weighted_share": Decimal(str(r["hybrid_weighted_share"])),
            "missing_wallet_policy": r.get("missing_wallet_policy", "skip"),
            "role_weights": {
                role: Decimal(str(w)) for role, w in r["role_weights"].items()
            },
            "type_weights": {
                kind: Decimal(str(w)) for kind, w in r["type_weights"].items()
            },
        }

    def directory_params(self) -> dict[str, Any]:
        d = self._params["directory"]
        return {
            "starting_reputation": int(d["starting_reputation"]),
            "reputation_floor": int(d["reputation_floor"]),
            "reputation_ceiling": int(d["reputation_ceiling"]),
            "default_team_size": int(d["default_team_size"]),
        }
