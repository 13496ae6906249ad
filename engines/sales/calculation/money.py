"""
SBO Sales Calculation — Decimal helpers
=========================================
All amounts are Decimal. Floats are converted through str() so that
0.1 stays 0.1.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional, Type

from core.config.rules import DEFAULT_MINOR_UNITS
from engines.sales.calculation.errors import SalesCalculationError

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")


def quantum_for(minor_units: int = DEFAULT_MINOR_UNITS) -> Decimal:
    """2 → Decimal('0.01'), 0 → Decimal('1')."""
    return Decimal(1).scaleb(-minor_units)


def round_money(amount: Decimal, quantum: Decimal) -> Decimal:
    return amount.quantize(quantum, rounding=ROUND_HALF_UP)


def to_decimal(
    value: Any,
    *,
    field: str,
    index: Optional[int] = None,
    error_cls: Type[SalesCalculationError] = SalesCalculationError,
) -> Optional[Decimal]:
    """
    Convert a numeric input to Decimal. None and "" stay None.

    Raises error_cls for booleans, non-numeric strings, NaN and infinity.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise error_cls(
            f"{field} must be numeric, got bool.", index=index, field=field
        )
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        if isinstance(value, str) and not value.strip():
            return None
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise error_cls(
                f"{field} must be numeric, got {value!r}.",
                index=index,
                field=field,
            ) from None
    else:
        raise error_cls(
            f"{field} must be numeric, got {type(value).__name__}.",
            index=index,
            field=field,
        )
    if not result.is_finite():
        raise error_cls(
            f"{field} must be a finite number.", index=index, field=field
        )
    return result


def money_str(amount: Optional[Decimal]) -> Optional[str]:
    """Decimal → str for JSON payloads and snapshots."""
    if amount is None:
        return None
    return str(amount)
