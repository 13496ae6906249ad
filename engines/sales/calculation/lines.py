"""
SBO Sales Calculation — Line Evaluator
========================================
Resolves one LineDraft into net/gross unit prices, discount, tax and
line totals. Lines are independent of each other.

Unit price resolution (r = tax rate):
    net only    → gross = net × (1 + r)
    gross only  → net = gross / (1 + r)
    both        → trusted as given (manual pricing)
    neither     → 0

Discount: discount_amount wins over discount_percent. The percentage
(0–100) applies to the pre-discount line net. Tax is computed on the
discounted net.

Pinned totals (total_net_amount + total_gross_amount) bypass the
derivation. Their reported discount is whatever the pinned net sits
below the base net, whatever discount fields the draft carries. A
pinned tax_amount must agree with gross − net within one minor unit.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from engines.sales.calculation.drafts import (
    VALID_LINE_KINDS,
    LineCalculationResult,
    LineDraft,
)
from engines.sales.calculation.errors import InvalidLineInput
from engines.sales.calculation.money import (
    HUNDRED,
    ONE,
    ZERO,
    quantum_for,
    round_money,
    to_decimal,
)


def _num(value, field: str, index: Optional[int]) -> Optional[Decimal]:
    return to_decimal(value, field=field, index=index, error_cls=InvalidLineInput)


def _require_non_negative(
    value: Optional[Decimal], field: str, index: Optional[int]
) -> None:
    if value is not None and value < ZERO:
        raise InvalidLineInput(
            f"{field} cannot be negative, got {value}.",
            index=index,
            field=field,
        )


def evaluate_line(
    draft: LineDraft,
    *,
    currency_code: str,
    quantum: Optional[Decimal] = None,
    index: Optional[int] = None,
    tax_rate: Optional[Decimal] = None,
) -> LineCalculationResult:
    """
    Evaluate a single line.

    Args:
        draft:         the line to resolve
        currency_code: document currency, used when the line has none
        quantum:       rounding step (Decimal('0.01') for 2 minor units)
        index:         position of the line in the document, for errors
        tax_rate:      effective rate resolved from tax rate ids or the
                       organization default; overrides draft.tax_rate

    Raises:
        InvalidLineInput
    """
    if quantum is None:
        quantum = quantum_for()

    if draft.kind not in VALID_LINE_KINDS:
        raise InvalidLineInput(
            f"kind '{draft.kind}' not valid. "
            f"Must be one of: {sorted(VALID_LINE_KINDS)}",
            index=index,
            field="kind",
        )

    quantity = _num(draft.quantity, "quantity", index)
    if quantity is None or quantity <= ZERO:
        raise InvalidLineInput(
            f"quantity must be greater than zero, got {draft.quantity!r}.",
            index=index,
            field="quantity",
        )

    rate = tax_rate if tax_rate is not None else _num(
        draft.tax_rate, "tax_rate", index
    )
    if rate is None:
        rate = ZERO
    _require_non_negative(rate, "tax_rate", index)

    unit_net = _num(draft.unit_price_net, "unit_price_net", index)
    unit_gross = _num(draft.unit_price_gross, "unit_price_gross", index)
    _require_non_negative(unit_net, "unit_price_net", index)
    _require_non_negative(unit_gross, "unit_price_gross", index)

    discount_amount = _num(draft.discount_amount, "discount_amount", index)
    discount_percent = _num(draft.discount_percent, "discount_percent", index)
    _require_non_negative(discount_amount, "discount_amount", index)
    if discount_percent is not None and not ZERO <= discount_percent <= HUNDRED:
        raise InvalidLineInput(
            f"discount_percent must be between 0 and 100, "
            f"got {discount_percent}.",
            index=index,
            field="discount_percent",
        )

    pinned_net = _num(draft.total_net_amount, "total_net_amount", index)
    pinned_gross = _num(draft.total_gross_amount, "total_gross_amount", index)
    pinned_tax = _num(draft.tax_amount, "tax_amount", index)
    _require_non_negative(pinned_net, "total_net_amount", index)
    _require_non_negative(pinned_gross, "total_gross_amount", index)
    _require_non_negative(pinned_tax, "tax_amount", index)

    both_explicit = unit_net is not None and unit_gross is not None
    if both_explicit and unit_gross < unit_net:
        raise InvalidLineInput(
            f"unit_price_gross ({unit_gross}) is below "
            f"unit_price_net ({unit_net}).",
            index=index,
            field="unit_price_gross",
        )

    gross_only = unit_net is None and unit_gross is not None
    multiplier = ONE + rate
    if unit_net is None and unit_gross is None:
        unit_net = unit_gross = ZERO
    elif unit_gross is None:
        unit_gross = unit_net * multiplier
    elif unit_net is None:
        unit_net = unit_gross / multiplier

    base_net = unit_net * quantity
    base_gross = unit_gross * quantity
    base_net_rounded = round_money(base_net, quantum)

    if discount_amount is not None:
        discount = round_money(discount_amount, quantum)
    elif discount_percent is not None:
        discount = round_money(base_net * discount_percent / HUNDRED, quantum)
    else:
        discount = ZERO

    if pinned_net is not None or pinned_gross is not None:
        net_total, tax_total, gross_total = _resolve_pinned(
            pinned_net, pinned_gross, pinned_tax, multiplier, quantum, index
        )
        # Only the discount already inside the pinned net is reported.
        discount = max(base_net_rounded - net_total, ZERO)
    else:
        net_total = base_net_rounded - discount
        if net_total < ZERO:
            raise InvalidLineInput(
                f"discount ({discount}) exceeds line net ({base_net_rounded}).",
                index=index,
                field="discount_amount",
            )

        if both_explicit:
            # Manual pricing: gross follows the given prices, discount
            # shrinks it by the same gross/net proportion.
            ratio = base_gross / base_net if base_net else ONE
            gross_total = round_money(base_gross - discount * ratio, quantum)
            tax_total = gross_total - net_total
        elif gross_only:
            gross_total = round_money(
                base_gross - discount * multiplier, quantum
            )
            tax_total = gross_total - net_total
        else:
            tax_total = round_money(net_total * rate, quantum)
            gross_total = net_total + tax_total

        if pinned_tax is not None:
            pinned_tax = round_money(pinned_tax, quantum)
            if abs(pinned_tax - tax_total) > quantum:
                raise InvalidLineInput(
                    f"tax_amount ({pinned_tax}) contradicts the computed "
                    f"tax ({tax_total}).",
                    index=index,
                    field="tax_amount",
                )
            tax_total = pinned_tax
            gross_total = net_total + tax_total

        if gross_total < ZERO or tax_total < ZERO:
            raise InvalidLineInput(
                "line resolves to a negative gross or tax total.",
                index=index,
                field="total_gross_amount",
            )

    return LineCalculationResult(
        index=index if index is not None else 0,
        line_id=draft.line_id,
        kind=draft.kind,
        currency_code=draft.currency_code or currency_code,
        quantity=quantity,
        unit_price_net=round_money(unit_net, quantum),
        unit_price_gross=round_money(unit_gross, quantum),
        tax_rate=rate,
        base_net_amount=base_net_rounded,
        discount_amount=discount,
        net_amount=net_total,
        tax_amount=tax_total,
        gross_amount=gross_total,
    )


def _resolve_pinned(
    pinned_net: Optional[Decimal],
    pinned_gross: Optional[Decimal],
    pinned_tax: Optional[Decimal],
    multiplier: Decimal,
    quantum: Decimal,
    index: Optional[int],
):
    if pinned_net is not None and pinned_gross is not None:
        net_total = round_money(pinned_net, quantum)
        gross_total = round_money(pinned_gross, quantum)
        if gross_total < net_total:
            raise InvalidLineInput(
                f"total_gross_amount ({gross_total}) is below "
                f"total_net_amount ({net_total}).",
                index=index,
                field="total_gross_amount",
            )
    elif pinned_net is not None:
        net_total = round_money(pinned_net, quantum)
        if pinned_tax is not None:
            gross_total = net_total + round_money(pinned_tax, quantum)
        else:
            gross_total = round_money(net_total * multiplier, quantum)
    else:
        gross_total = round_money(pinned_gross, quantum)
        if pinned_tax is not None:
            net_total = gross_total - round_money(pinned_tax, quantum)
        else:
            net_total = round_money(gross_total / multiplier, quantum)
        if net_total < ZERO:
            raise InvalidLineInput(
                f"tax_amount exceeds total_gross_amount ({gross_total}).",
                index=index,
                field="tax_amount",
            )

    tax_total = gross_total - net_total
    if pinned_tax is not None:
        if abs(round_money(pinned_tax, quantum) - tax_total) > quantum:
            raise InvalidLineInput(
                f"tax_amount ({pinned_tax}) contradicts pinned totals "
                f"(gross − net = {tax_total}).",
                index=index,
                field="tax_amount",
            )
    return net_total, tax_total, gross_total
