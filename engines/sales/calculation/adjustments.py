"""
SBO Sales Calculation — Adjustment Evaluator
==============================================
Resolves order-level adjustments into absolute net/gross amounts.

Rules:
- scope 'line' is rejected with UnsupportedScope, never dropped
- rate adjustments apply to the line subtotal; they do not compound
  on each other
- a flat adjustment with one side missing derives it through the
  document's blended tax rate (line tax / line net)
- tax-kind adjustments carry a tax amount only
- output order is ascending position; ties keep submission order
"""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
from typing import Iterable, Optional, Sequence, Tuple

from engines.sales.calculation.drafts import (
    ADJUSTMENT_KIND_CUSTOM,
    ADJUSTMENT_KIND_TAX,
    ADJUSTMENT_SCOPE_LINE,
    ADJUSTMENT_SCOPE_ORDER,
    VALID_ADJUSTMENT_KINDS,
    AdjustmentDraft,
)
from engines.sales.calculation.errors import (
    InvalidAdjustmentInput,
    UnsupportedScope,
)
from engines.sales.calculation.money import ONE, ZERO, round_money, to_decimal


def _num(value, field: str, index: int) -> Optional[Decimal]:
    return to_decimal(
        value, field=field, index=index, error_cls=InvalidAdjustmentInput
    )


def check_adjustment_scopes(drafts: Iterable[AdjustmentDraft]) -> None:
    """Raise UnsupportedScope for the first line-scoped adjustment."""
    for index, draft in enumerate(drafts):
        if draft.scope == ADJUSTMENT_SCOPE_LINE:
            raise UnsupportedScope(
                "Line-scoped adjustments are not supported.",
                index=index,
                field="scope",
            )
        if draft.scope != ADJUSTMENT_SCOPE_ORDER:
            raise InvalidAdjustmentInput(
                f"scope '{draft.scope}' not valid.",
                index=index,
                field="scope",
            )


def order_adjustments(
    drafts: Sequence[AdjustmentDraft],
) -> Tuple[Tuple[int, AdjustmentDraft], ...]:
    """Stable sort by position. Returns (submission index, draft) pairs."""
    return tuple(
        sorted(enumerate(drafts), key=lambda pair: (pair[1].position, pair[0]))
    )


def blended_tax_rate(subtotal_net: Decimal, tax_total: Decimal) -> Decimal:
    if not subtotal_net:
        return ZERO
    return tax_total / subtotal_net


def resolve_adjustment(
    draft: AdjustmentDraft,
    *,
    index: int,
    subtotal_net: Decimal,
    subtotal_gross: Decimal,
    tax_rate: Decimal,
    quantum: Decimal,
) -> AdjustmentDraft:
    if draft.kind not in VALID_ADJUSTMENT_KINDS:
        raise InvalidAdjustmentInput(
            f"kind '{draft.kind}' not valid. "
            f"Must be one of: {sorted(VALID_ADJUSTMENT_KINDS)}",
            index=index,
            field="kind",
        )

    rate = _num(draft.rate, "rate", index)
    amount_net = _num(draft.amount_net, "amount_net", index)
    amount_gross = _num(draft.amount_gross, "amount_gross", index)

    if draft.kind != ADJUSTMENT_KIND_CUSTOM:
        for field_name, value in (
            ("rate", rate),
            ("amount_net", amount_net),
            ("amount_gross", amount_gross),
        ):
            if value is not None and value < ZERO:
                raise InvalidAdjustmentInput(
                    f"{field_name} cannot be negative for "
                    f"'{draft.kind}' adjustments.",
                    index=index,
                    field=field_name,
                )

    if amount_net is None and amount_gross is None and rate is None:
        raise InvalidAdjustmentInput(
            "Adjustment requires a rate or an amount.",
            index=index,
            field="rate",
        )

    if draft.kind == ADJUSTMENT_KIND_TAX:
        if amount_net is not None:
            tax = amount_net
        elif amount_gross is not None:
            tax = amount_gross
        else:
            tax = rate * subtotal_net
        tax = round_money(tax, quantum)
        return replace(draft, rate=rate, amount_net=tax, amount_gross=tax)

    if amount_net is None and amount_gross is None:
        amount_net = rate * subtotal_net
        amount_gross = rate * subtotal_gross
    elif amount_gross is None:
        amount_gross = amount_net * (ONE + tax_rate)
    elif amount_net is None:
        amount_net = amount_gross / (ONE + tax_rate)

    return replace(
        draft,
        rate=rate,
        amount_net=round_money(amount_net, quantum),
        amount_gross=round_money(amount_gross, quantum),
    )


def evaluate_adjustments(
    drafts: Sequence[AdjustmentDraft],
    *,
    subtotal_net: Decimal,
    subtotal_gross: Decimal,
    tax_rate: Decimal,
    quantum: Decimal,
) -> Tuple[AdjustmentDraft, ...]:
    """
    Resolve adjustments against the line subtotal.

    Args:
        drafts:         adjustments in submission order
        subtotal_net:   sum of line net totals
        subtotal_gross: sum of line gross totals
        tax_rate:       blended document tax rate for one-sided amounts
        quantum:        rounding step

    Returns:
        Resolved drafts (amounts filled in) in application order.

    Raises:
        UnsupportedScope, InvalidAdjustmentInput
    """
    check_adjustment_scopes(drafts)
    return tuple(
        resolve_adjustment(
            draft,
            index=index,
            subtotal_net=subtotal_net,
            subtotal_gross=subtotal_gross,
            tax_rate=tax_rate,
            quantum=quantum,
        )
        for index, draft in order_adjustments(drafts)
    )


# ══════════════════════════════════════════════════════════════
# USER EDITS OF PROVIDER-MANAGED ADJUSTMENTS
# ══════════════════════════════════════════════════════════════

def mark_manual_override(
    existing: Optional[AdjustmentDraft],
    edited: AdjustmentDraft,
) -> AdjustmentDraft:
    """
    Flag a user edit of a provider-managed adjustment.

    Provider refreshes leave flagged adjustments alone, so a changed
    shipping or payment method does not clobber the user's amount.
    """
    if existing is None:
        return edited
    calculator_key = edited.calculator_key or existing.calculator_key
    candidate = replace(edited, calculator_key=calculator_key)
    if not candidate.is_provider_managed:
        return edited
    metadata = dict(edited.metadata)
    metadata["manualOverride"] = True
    return replace(edited, calculator_key=calculator_key, metadata=metadata)


def merge_adjustment_edit(
    existing: AdjustmentDraft, changes: dict
) -> AdjustmentDraft:
    """
    Apply a partial edit. Keys missing from changes (or None) keep the
    existing value, except for the amounts: sending only one of
    amount_net / amount_gross clears the other, which is then derived
    again from the blended tax rate.
    """
    merged = existing.to_dict()
    new_net = changes.get("amount_net")
    new_gross = changes.get("amount_gross")
    if new_gross is not None and new_net is None:
        merged["amount_net"] = None
    elif new_net is not None and new_gross is None:
        merged["amount_gross"] = None

    for key, value in changes.items():
        if value is not None and key in merged:
            merged[key] = value
    merged["adjustment_id"] = existing.adjustment_id
    edited = AdjustmentDraft.from_dict(merged)
    return mark_manual_override(existing, edited)
