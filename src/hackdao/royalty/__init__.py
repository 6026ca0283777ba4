"""Royalty pools, distribution models and settlement."""

from hackdao.royalty.allocation import allocate
from hackdao.royalty.engine import RoyaltyEngine
from hackdao.royalty.wallets import is_valid_wallet, normalize_wallet

__all__ = [
    "RoyaltyEngine",
    "allocate",
    "is_valid_wallet",
    "normalize_wallet",
]
