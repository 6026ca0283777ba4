"""Structural checks on the governance parameter file.

The engines trust the numbers they are given; these checks catch a bad
edit to ``governance_params.json`` before it reaches a vote or a payout.
"""

from __future__ import annotations

import json
from decimal import Decimal
from pathlib import Path
from typing import Any

from hackdao.models.directory import ContributionType, MemberRole
from hackdao.models.royalty import DistributionModel
from hackdao.policy.resolver import MISSING_WALLET_POLICIES, PARAMS_FILE


def _dec(value: Any) -> Decimal:
    return Decimal(str(value))


def _check_fraction(section: dict, key: str, label: str, errors: list[str]) -> None:
    value = _dec(section[key])
    if not Decimal("0") < value <= Decimal("1"):
        errors.append(f"{label}.{key} must be in (0, 1], got {value}")


def check_params(params: dict[str, Any]) -> list[str]:
    """Return a list of violations; empty means the file is sound."""
    errors: list[str] = []
    for section in ("proposals", "voting", "royalty", "directory"):
        if section not in params:
            errors.append(f"missing section: {section}")
    if errors:
        return errors

    # --- Proposal defaults ---
    proposals = params["proposals"]
    if int(proposals["default_duration_days"]) <= 0:
        errors.append("proposals.default_duration_days must be > 0")
    _check_fraction(proposals, "default_quorum_required", "proposals", errors)
    _check_fraction(proposals, "default_approval_threshold", "proposals", errors)

    # --- Vote weight ---
    voting = params["voting"]
    if _dec(voting["base_weight"]) <= 0:
        errors.append("voting.base_weight must be > 0")
    if _dec(voting["reputation_divisor"]) <= 0:
        errors.append("voting.reputation_divisor must be > 0")
    for key in ("reputation_bonus_cap", "contribution_bonus_per_verified", "contribution_bonus_cap"):
        if _dec(voting[key]) < 0:
            errors.append(f"voting.{key} must be >= 0")
    for role, bonus in voting["role_bonus"].items():
        if _dec(bonus) < 0:
            errors.append(f"voting.role_bonus[{role}] must be >= 0")
    if int(voting["extension_default_days"]) <= 0:
        errors.append("voting.extension_default_days must be > 0")
    known_roles = {r.value for r in MemberRole}
    for role in voting.get("extension_roles", []):
        if role not in known_roles:
            errors.append(f"voting.extension_roles has unknown role: {role}")

    # --- Royalty ---
    royalty = params["royalty"]
    if _dec(royalty["currency_quantum"]) <= 0:
        errors.append("royalty.currency_quantum must be > 0")
    if royalty["default_model"] not in {m.value for m in DistributionModel}:
        errors.append(f"royalty.default_model unknown: {royalty['default_model']}")
    share = _dec(royalty["hybrid_weighted_share"])
    if not Decimal("0") <= share <= Decimal("1"):
        errors.append(f"royalty.hybrid_weighted_share must be in [0, 1], got {share}")
    if royalty.get("missing_wallet_policy", "skip") not in MISSING_WALLET_POLICIES:
        errors.append("royalty.missing_wallet_policy must be 'skip' or 'fail'")
    for role, weight in royalty["role_weights"].items():
        if _dec(weight) <= 0:
            errors.append(f"royalty.role_weights[{role}] must be > 0")
    for kind, weight in royalty["type_weights"].items():
        if _dec(weight) <= 0:
            errors.append(f"royalty.type_weights[{kind}] must be > 0")
    for kind in ContributionType:
        if kind.value not in royalty["type_weights"]:
            errors.append(f"royalty.type_weights missing type: {kind.value}")

    # --- Directory ---
    directory = params["directory"]
    floor = int(directory["reputation_floor"])
    ceiling = int(directory["reputation_ceiling"])
    if floor > ceiling:
        errors.append("directory.reputation_floor must not exceed reputation_ceiling")
    if not floor <= int(directory["starting_reputation"]) <= ceiling:
        errors.append("directory.starting_reputation must lie within floor..ceiling")
    if int(directory["default_team_size"]) <= 0:
        errors.append("directory.default_team_size must be > 0")

    return errors


def check_config_dir(config_dir: Path) -> list[str]:
    with (config_dir / PARAMS_FILE).open("r", encoding="utf-8") as handle:
        return check_params(json.load(handle, parse_float=Decimal))
