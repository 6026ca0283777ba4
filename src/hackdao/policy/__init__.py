"""Governance policy configuration."""

from hackdao.policy.invariants import check_config_dir, check_params
from hackdao.policy.resolver import PolicyResolver

__all__ = ["PolicyResolver", "check_config_dir", "check_params"]
