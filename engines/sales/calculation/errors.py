"""
SBO Sales Calculation — Errors
================================
Calculation errors are ValueErrors carrying a machine code.

They are terminal for the request: the calculation is pure, so a
retry with the same input fails the same way.
"""

from __future__ import annotations

from typing import Optional


class SalesCalculationError(ValueError):
    """Base error for the totals calculation."""

    code = "SALES_CALCULATION_ERROR"

    def __init__(
        self,
        message: str,
        *,
        index: Optional[int] = None,
        field: Optional[str] = None,
    ):
        self.message = message
        self.index = index
        self.field = field
        super().__init__(f"[{self.code}] {message}")

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "index": self.index,
            "field": self.field,
        }


class InvalidLineInput(SalesCalculationError):
    """A line cannot be resolved to consistent net/gross/tax amounts."""

    code = "INVALID_LINE_INPUT"


class InvalidAdjustmentInput(SalesCalculationError):
    """An adjustment carries an unknown kind or an unusable amount."""

    code = "INVALID_ADJUSTMENT_INPUT"


class UnsupportedScope(SalesCalculationError):
    """Line-scoped adjustments are not implemented."""

    code = "UNSUPPORTED_SCOPE"
