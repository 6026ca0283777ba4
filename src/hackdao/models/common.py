"""Shared conversion helpers for model records.

Records are stored as plain JSON-compatible dicts: datetimes as ISO-8601
strings, Decimals as strings.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from hackdao.errors import InvalidArgumentError


def to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def from_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_decimal(value: Any) -> Decimal:
    """Convert a stored or user-supplied number to Decimal.

    Floats go through ``str`` so 0.1 becomes Decimal("0.1"), not its
    binary expansion.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        value = str(value)
    try:
        result = Decimal(value)
    except (InvalidOperation, TypeError) as exc:
        raise InvalidArgumentError(f"Not a decimal number: {value!r}") from exc
    if not result.is_finite():
        raise InvalidArgumentError(f"Not a finite number: {value!r}")
    return result
