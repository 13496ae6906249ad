"""
SBO Sales Calculation — Drafts, Context and Results
=====================================================
Inputs (LineDraft, AdjustmentDraft, CalculationContext) are built fresh
from command payloads or stored document state. Outputs
(LineCalculationResult, DocumentTotals, CalculationResult) are frozen
and never mutated; every recalculation is a full re-run.

Numeric fields accept Decimal, int, float or numeric strings. The
evaluators convert them through to_decimal().
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple, Union

from engines.sales.calculation.money import ZERO, money_str

Numeric = Union[Decimal, int, float, str]

DOCUMENT_KIND_QUOTE = "quote"
DOCUMENT_KIND_ORDER = "order"
VALID_DOCUMENT_KINDS = frozenset({DOCUMENT_KIND_QUOTE, DOCUMENT_KIND_ORDER})

VALID_LINE_KINDS = frozenset({"product", "custom"})

ADJUSTMENT_SCOPE_ORDER = "order"
ADJUSTMENT_SCOPE_LINE = "line"

ADJUSTMENT_KIND_DISCOUNT = "discount"
ADJUSTMENT_KIND_SURCHARGE = "surcharge"
ADJUSTMENT_KIND_SHIPPING = "shipping"
ADJUSTMENT_KIND_TAX = "tax"
ADJUSTMENT_KIND_CUSTOM = "custom"
VALID_ADJUSTMENT_KINDS = frozenset({
    ADJUSTMENT_KIND_DISCOUNT,
    ADJUSTMENT_KIND_SURCHARGE,
    ADJUSTMENT_KIND_SHIPPING,
    ADJUSTMENT_KIND_TAX,
    ADJUSTMENT_KIND_CUSTOM,
})

SHIPPING_PROVIDER_PREFIX = "shipping-provider:"
PAYMENT_PROVIDER_PREFIX = "payment-provider:"
PROVIDER_KEY_PREFIXES = (SHIPPING_PROVIDER_PREFIX, PAYMENT_PROVIDER_PREFIX)


def _clone(value: Optional[dict]) -> dict:
    return copy.deepcopy(value) if isinstance(value, dict) else {}


def _str_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return str(value)
    return value


# ══════════════════════════════════════════════════════════════
# LINE DRAFT
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class LineDraft:
    quantity: Numeric
    kind: str = "product"
    line_id: Optional[str] = None
    name: Optional[str] = None
    product_id: Optional[str] = None
    currency_code: Optional[str] = None
    unit_price_net: Optional[Numeric] = None
    unit_price_gross: Optional[Numeric] = None
    discount_amount: Optional[Numeric] = None
    discount_percent: Optional[Numeric] = None
    tax_rate: Optional[Numeric] = None
    tax_rate_ids: Tuple[str, ...] = ()
    total_net_amount: Optional[Numeric] = None
    total_gross_amount: Optional[Numeric] = None
    tax_amount: Optional[Numeric] = None
    metadata: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "LineDraft":
        return cls(
            quantity=data.get("quantity"),
            kind=data.get("kind") or "product",
            line_id=data.get("line_id"),
            name=data.get("name"),
            product_id=data.get("product_id"),
            currency_code=data.get("currency_code"),
            unit_price_net=data.get("unit_price_net"),
            unit_price_gross=data.get("unit_price_gross"),
            discount_amount=data.get("discount_amount"),
            discount_percent=data.get("discount_percent"),
            tax_rate=data.get("tax_rate"),
            tax_rate_ids=tuple(data.get("tax_rate_ids") or ()),
            total_net_amount=data.get("total_net_amount"),
            total_gross_amount=data.get("total_gross_amount"),
            tax_amount=data.get("tax_amount"),
            metadata=_clone(data.get("metadata")),
        )

    def to_dict(self) -> dict:
        return {
            "line_id": self.line_id,
            "kind": self.kind,
            "name": self.name,
            "product_id": self.product_id,
            "quantity": _str_or_none(self.quantity),
            "currency_code": self.currency_code,
            "unit_price_net": _str_or_none(self.unit_price_net),
            "unit_price_gross": _str_or_none(self.unit_price_gross),
            "discount_amount": _str_or_none(self.discount_amount),
            "discount_percent": _str_or_none(self.discount_percent),
            "tax_rate": _str_or_none(self.tax_rate),
            "tax_rate_ids": list(self.tax_rate_ids),
            "total_net_amount": _str_or_none(self.total_net_amount),
            "total_gross_amount": _str_or_none(self.total_gross_amount),
            "tax_amount": _str_or_none(self.tax_amount),
            "metadata": _clone(self.metadata),
        }


# ══════════════════════════════════════════════════════════════
# ADJUSTMENT DRAFT
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class AdjustmentDraft:
    """
    Order-level charge or discount.

    rate is a fraction of the line subtotal (0.10 = 10%).
    calculator_key names the origin: None for manual entries,
    'shipping-provider:<key>' / 'payment-provider:<key>' for
    provider-managed ones.
    """

    kind: str
    scope: str = ADJUSTMENT_SCOPE_ORDER
    adjustment_id: Optional[str] = None
    code: Optional[str] = None
    label: Optional[str] = None
    calculator_key: Optional[str] = None
    rate: Optional[Numeric] = None
    amount_net: Optional[Numeric] = None
    amount_gross: Optional[Numeric] = None
    currency_code: Optional[str] = None
    position: int = 0
    metadata: dict = field(default_factory=dict)

    @property
    def is_provider_managed(self) -> bool:
        return bool(self.calculator_key) and self.calculator_key.startswith(
            PROVIDER_KEY_PREFIXES
        )

    @property
    def is_manual_override(self) -> bool:
        return bool(self.metadata.get("manualOverride"))

    @classmethod
    def from_dict(cls, data: dict) -> "AdjustmentDraft":
        return cls(
            kind=data.get("kind") or ADJUSTMENT_KIND_CUSTOM,
            scope=data.get("scope") or ADJUSTMENT_SCOPE_ORDER,
            adjustment_id=data.get("adjustment_id"),
            code=data.get("code"),
            label=data.get("label"),
            calculator_key=data.get("calculator_key"),
            rate=data.get("rate"),
            amount_net=data.get("amount_net"),
            amount_gross=data.get("amount_gross"),
            currency_code=data.get("currency_code"),
            position=int(data.get("position") or 0),
            metadata=_clone(data.get("metadata")),
        )

    def to_dict(self) -> dict:
        return {
            "adjustment_id": self.adjustment_id,
            "kind": self.kind,
            "scope": self.scope,
            "code": self.code,
            "label": self.label,
            "calculator_key": self.calculator_key,
            "rate": _str_or_none(self.rate),
            "amount_net": _str_or_none(self.amount_net),
            "amount_gross": _str_or_none(self.amount_gross),
            "currency_code": self.currency_code,
            "position": self.position,
            "metadata": _clone(self.metadata),
        }


# ══════════════════════════════════════════════════════════════
# CALCULATION CONTEXT
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ShippingMethodContext:
    id: Optional[str] = None
    code: Optional[str] = None
    name: Optional[str] = None
    provider_key: Optional[str] = None
    currency_code: Optional[str] = None
    base_rate_net: Optional[Numeric] = None
    base_rate_gross: Optional[Numeric] = None
    provider_settings: dict = field(default_factory=dict)
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "provider_key": self.provider_key,
            "currency_code": self.currency_code,
            "base_rate_net": _str_or_none(self.base_rate_net),
            "base_rate_gross": _str_or_none(self.base_rate_gross),
            "provider_settings": _clone(self.provider_settings),
            "metadata": _clone(self.metadata),
        }


@dataclass(frozen=True)
class PaymentMethodContext:
    id: Optional[str] = None
    code: Optional[str] = None
    name: Optional[str] = None
    provider_key: Optional[str] = None
    terms: Optional[str] = None
    provider_settings: dict = field(default_factory=dict)
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "provider_key": self.provider_key,
            "terms": self.terms,
            "provider_settings": _clone(self.provider_settings),
            "metadata": _clone(self.metadata),
        }


@dataclass(frozen=True)
class CalculationContext:
    tenant_id: Any
    organization_id: Any
    currency_code: str
    shipping_method: Optional[ShippingMethodContext] = None
    payment_method: Optional[PaymentMethodContext] = None


@dataclass(frozen=True)
class ExistingTotals:
    """Payment figures already recorded against an order."""

    paid_total_amount: Numeric = ZERO
    refunded_total_amount: Numeric = ZERO


# ══════════════════════════════════════════════════════════════
# RESULTS
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class LineCalculationResult:
    index: int
    line_id: Optional[str]
    kind: str
    currency_code: str
    quantity: Decimal
    unit_price_net: Decimal
    unit_price_gross: Decimal
    tax_rate: Decimal
    base_net_amount: Decimal
    discount_amount: Decimal
    net_amount: Decimal
    tax_amount: Decimal
    gross_amount: Decimal

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "line_id": self.line_id,
            "kind": self.kind,
            "currency_code": self.currency_code,
            "quantity": money_str(self.quantity),
            "unit_price_net": money_str(self.unit_price_net),
            "unit_price_gross": money_str(self.unit_price_gross),
            "tax_rate": money_str(self.tax_rate),
            "base_net_amount": money_str(self.base_net_amount),
            "discount_amount": money_str(self.discount_amount),
            "net_amount": money_str(self.net_amount),
            "tax_amount": money_str(self.tax_amount),
            "gross_amount": money_str(self.gross_amount),
        }


@dataclass(frozen=True)
class DocumentTotals:
    currency_code: str
    subtotal_net_amount: Decimal
    subtotal_gross_amount: Decimal
    discount_total_amount: Decimal
    tax_total_amount: Decimal
    shipping_net_amount: Decimal
    shipping_gross_amount: Decimal
    surcharge_total_amount: Decimal
    grand_total_net_amount: Decimal
    grand_total_gross_amount: Decimal
    line_item_count: int
    paid_total_amount: Optional[Decimal] = None
    refunded_total_amount: Optional[Decimal] = None
    outstanding_amount: Optional[Decimal] = None

    def to_dict(self) -> dict:
        return {
            "currency_code": self.currency_code,
            "subtotal_net_amount": money_str(self.subtotal_net_amount),
            "subtotal_gross_amount": money_str(self.subtotal_gross_amount),
            "discount_total_amount": money_str(self.discount_total_amount),
            "tax_total_amount": money_str(self.tax_total_amount),
            "shipping_net_amount": money_str(self.shipping_net_amount),
            "shipping_gross_amount": money_str(self.shipping_gross_amount),
            "surcharge_total_amount": money_str(self.surcharge_total_amount),
            "grand_total_net_amount": money_str(self.grand_total_net_amount),
            "grand_total_gross_amount": money_str(self.grand_total_gross_amount),
            "line_item_count": self.line_item_count,
            "paid_total_amount": money_str(self.paid_total_amount),
            "refunded_total_amount": money_str(self.refunded_total_amount),
            "outstanding_amount": money_str(self.outstanding_amount),
        }


@dataclass(frozen=True)
class CalculationResult:
    document_kind: str
    lines: Tuple[LineCalculationResult, ...]
    adjustments: Tuple[AdjustmentDraft, ...]
    totals: DocumentTotals

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document_kind": self.document_kind,
            "lines": [line.to_dict() for line in self.lines],
            "adjustments": [adj.to_dict() for adj in self.adjustments],
            "totals": self.totals.to_dict(),
        }
