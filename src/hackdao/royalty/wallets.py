"""Payout address handling.

Members register an Ethereum-style wallet. Before a distribution is
settled every address is validated and rewritten in EIP-55 checksum
form, so the paid rows carry exactly one canonical spelling per wallet.
Malformed checksums (mixed case that does not match) are rejected, not
silently lower-cased.
"""

from __future__ import annotations

from typing import Optional


def normalize_wallet(address: Optional[str]) -> Optional[str]:
    """Return the checksummed address, or None if it is missing or invalid."""
    if not address or not address.strip():
        return None
    from web3 import Web3

    candidate = address.strip()
    if not Web3.is_address(candidate):
        return None
    return Web3.to_checksum_address(candidate)


def is_valid_wallet(address: Optional[str]) -> bool:
    return normalize_wallet(address) is not None
