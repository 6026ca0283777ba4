"""Largest-remainder allocation of a currency amount.

    floor_i   = floor_to_quantum(total × w_i / Σw)
    leftover  = total - Σ floor_i               (a whole number of quanta)
    one quantum each to the rows with the largest truncated remainder,
    ties broken by key order

Invariants:
- Σ result == total exactly
- every result is a non-negative multiple of the quantum
- zero Σw means an equal split
"""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal
from typing import Mapping


def allocate(
    total: Decimal,
    weights: Mapping[str, Decimal],
    quantum: Decimal = Decimal("0.01"),
) -> dict[str, Decimal]:
    """Split ``total`` across ``weights`` keys in proportion to their values."""
    if not weights:
        return {}
    if total < 0:
        raise ValueError(f"Cannot allocate a negative amount: {total}")
    if any(w < 0 for w in weights.values()):
        raise ValueError("Allocation weights must be non-negative")

    keys = sorted(weights)
    weight_sum = sum(weights.values(), Decimal("0"))
    if weight_sum == 0:
        weights = {k: Decimal("1") for k in keys}
        weight_sum = Decimal(len(keys))

    floors: dict[str, Decimal] = {}
    remainders: dict[str, Decimal] = {}
    for key in keys:
        exact = total * weights[key] / weight_sum
        floored = exact.quantize(quantum, rounding=ROUND_DOWN)
        floors[key] = floored
        remainders[key] = exact - floored

    leftover_units = int(((total - sum(floors.values(), Decimal("0"))) / quantum).to_integral_value())
    # Stable sort keeps key order among equal remainders.
    for key in sorted(keys, key=lambda k: remainders[k], reverse=True)[:leftover_units]:
        floors[key] += quantum
    return floors


def equal_weights(keys) -> dict[str, Decimal]:
    return {k: Decimal("1") for k in keys}
