"""
SBO Sales Calculation — Public API
====================================
Document totals: lines, order-level adjustments, provider-derived
shipping and payment charges, tax rates and outstanding balance.
"""

from engines.sales.calculation.adjustments import (
    evaluate_adjustments,
    mark_manual_override,
    merge_adjustment_edit,
)
from engines.sales.calculation.drafts import (
    AdjustmentDraft,
    CalculationContext,
    CalculationResult,
    DocumentTotals,
    ExistingTotals,
    LineCalculationResult,
    LineDraft,
    PaymentMethodContext,
    ShippingMethodContext,
)
from engines.sales.calculation.errors import (
    InvalidAdjustmentInput,
    InvalidLineInput,
    SalesCalculationError,
    UnsupportedScope,
)
from engines.sales.calculation.lines import evaluate_line
from engines.sales.calculation.providers import (
    ProviderCalculatorRegistry,
    build_calculation_context,
    build_default_provider_registry,
    flat_rate_shipping,
    normalize_payment_method_context,
    normalize_shipping_method_context,
    payment_fee,
    refresh_provider_adjustments,
)
from engines.sales.calculation.service import SalesCalculationService
from engines.sales.calculation.tax import (
    TaxRate,
    default_tax_rate,
    effective_tax_rate,
    resolve_line_tax_rate,
    with_default_exclusivity,
)

__all__ = [
    # ── Drafts & results ──────────────────────────────────────
    "LineDraft",
    "AdjustmentDraft",
    "CalculationContext",
    "ShippingMethodContext",
    "PaymentMethodContext",
    "ExistingTotals",
    "LineCalculationResult",
    "DocumentTotals",
    "CalculationResult",
    # ── Errors ────────────────────────────────────────────────
    "SalesCalculationError",
    "InvalidLineInput",
    "InvalidAdjustmentInput",
    "UnsupportedScope",
    # ── Evaluators ────────────────────────────────────────────
    "evaluate_line",
    "evaluate_adjustments",
    "mark_manual_override",
    "merge_adjustment_edit",
    "SalesCalculationService",
    # ── Providers ─────────────────────────────────────────────
    "ProviderCalculatorRegistry",
    "build_default_provider_registry",
    "build_calculation_context",
    "normalize_shipping_method_context",
    "normalize_payment_method_context",
    "flat_rate_shipping",
    "payment_fee",
    "refresh_provider_adjustments",
    # ── Tax ───────────────────────────────────────────────────
    "TaxRate",
    "effective_tax_rate",
    "default_tax_rate",
    "resolve_line_tax_rate",
    "with_default_exclusivity",
]
