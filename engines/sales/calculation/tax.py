"""
SBO Sales Calculation — Tax Rates
===================================
Tax rates are configured per organization. Rates are fractions
(0.20 = 20%).

Effective rate of several rates on one line:
    (1 + Σ simple) × Π(1 + compound) − 1

Compound rates are applied in priority order; simple rates are added
to the base first.

At most one rate per organization is the default. Lines without an
explicit rate or rate ids use the default when one exists.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, Mapping, Optional

from engines.sales.calculation.drafts import LineDraft
from engines.sales.calculation.errors import InvalidLineInput
from engines.sales.calculation.money import ONE, ZERO, to_decimal


@dataclass(frozen=True)
class TaxRate:
    tax_rate_id: str
    organization_id: Optional[str]
    name: str
    code: str
    rate: Decimal
    is_compound: bool = False
    is_default: bool = False
    priority: int = 0
    country_code: Optional[str] = None
    channel_id: Optional[str] = None
    metadata: dict = field(default_factory=dict)

    def __post_init__(self):
        if not self.tax_rate_id:
            raise ValueError("tax_rate_id must be non-empty.")
        rate = to_decimal(self.rate, field="rate")
        if rate is None or rate < ZERO:
            raise ValueError(f"rate must be a non-negative number, got {self.rate!r}.")
        object.__setattr__(self, "rate", rate)

    @classmethod
    def from_dict(cls, data: dict) -> "TaxRate":
        return cls(
            tax_rate_id=data["tax_rate_id"],
            organization_id=data.get("organization_id"),
            name=data.get("name") or "",
            code=data.get("code") or "",
            rate=data["rate"],
            is_compound=bool(data.get("is_compound", False)),
            is_default=bool(data.get("is_default", False)),
            priority=int(data.get("priority") or 0),
            country_code=data.get("country_code"),
            channel_id=data.get("channel_id"),
            metadata=dict(data.get("metadata") or {}),
        )

    def to_dict(self) -> dict:
        return {
            "tax_rate_id": self.tax_rate_id,
            "organization_id": self.organization_id,
            "name": self.name,
            "code": self.code,
            "rate": str(self.rate),
            "is_compound": self.is_compound,
            "is_default": self.is_default,
            "priority": self.priority,
            "country_code": self.country_code,
            "channel_id": self.channel_id,
            "metadata": dict(self.metadata),
        }


def effective_tax_rate(rates: Iterable[TaxRate]) -> Decimal:
    ordered = sorted(rates, key=lambda r: (r.priority, r.tax_rate_id))
    simple = sum((r.rate for r in ordered if not r.is_compound), ZERO)
    factor = ONE + simple
    for rate in ordered:
        if rate.is_compound:
            factor *= ONE + rate.rate
    return factor - ONE


def default_tax_rate(
    rates: Iterable[TaxRate], organization_id: Optional[str]
) -> Optional[TaxRate]:
    for rate in rates:
        if rate.is_default and rate.organization_id == organization_id:
            return rate
    return None


def resolve_line_tax_rate(
    draft: LineDraft,
    *,
    rates_by_id: Mapping[str, TaxRate],
    default_rate: Optional[TaxRate] = None,
    index: Optional[int] = None,
) -> Optional[Decimal]:
    """
    Rate to use for a line, or None to let the line's own tax_rate stand.

    Precedence: tax_rate_ids → explicit tax_rate → organization default.
    """
    if draft.tax_rate_ids:
        selected = []
        for tax_rate_id in draft.tax_rate_ids:
            rate = rates_by_id.get(tax_rate_id)
            if rate is None:
                raise InvalidLineInput(
                    f"Unknown tax rate '{tax_rate_id}'.",
                    index=index,
                    field="tax_rate_ids",
                )
            selected.append(rate)
        return effective_tax_rate(selected)

    if draft.tax_rate is not None and draft.tax_rate != "":
        return None

    if default_rate is not None:
        return default_rate.rate
    return None


def with_default_exclusivity(
    rates: Mapping[str, TaxRate], updated: TaxRate
) -> Dict[str, TaxRate]:
    """
    Insert or replace a rate. A new default clears the flag on every
    other rate of the same organization.
    """
    result = dict(rates)
    if updated.is_default:
        for tax_rate_id, rate in rates.items():
            if (
                tax_rate_id != updated.tax_rate_id
                and rate.is_default
                and rate.organization_id == updated.organization_id
            ):
                result[tax_rate_id] = TaxRate.from_dict(
                    {**rate.to_dict(), "is_default": False}
                )
    result[updated.tax_rate_id] = updated
    return result
