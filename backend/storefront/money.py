from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

CENT = Decimal("0.01")


def to_decimal(value: Any) -> Decimal:
    """
    Convert a JSON number/string into a 2-place Decimal.

    Floats go through str() first so 19.99 stays 19.99.
    Raises ValueError for anything that is not a finite number.
    """
    if isinstance(value, bool):
        raise ValueError("boolean is not a number")
    if isinstance(value, float):
        value = str(value)
    try:
        dec = Decimal(value) if not isinstance(value, Decimal) else value
    except (InvalidOperation, TypeError):
        raise ValueError(f"invalid amount: {value!r}")
    if not dec.is_finite():
        raise ValueError(f"invalid amount: {value!r}")
    return dec.quantize(CENT, rounding=ROUND_HALF_UP)


def money_str(value: Optional[Decimal]) -> Optional[str]:
    """Serialize a money column as a fixed 2-place string ("1999.00")."""
    if value is None:
        return None
    return str(to_decimal(value))


def to_minor_units(amount: Decimal) -> int:
    # Convert decimal currency to integer minor units (e.g., cents)
    return int((to_decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
