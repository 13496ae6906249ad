"""
SBO Sales Calculation — Totals Aggregator
===========================================
SalesCalculationService.calculate_document_totals() turns line drafts,
adjustment drafts and a calculation context into a CalculationResult.

Flow:
    1. Evaluate every line (input order, independent)
    2. Sum line net/gross/tax/discount into subtotals
    3. Refresh provider adjustments from the shipping/payment method
    4. Evaluate adjustments in position order against the line subtotal
    5. Fold adjustments into shipping/surcharge/discount/tax totals
    6. Reject negative grand net, grand gross or tax totals
    7. Orders: outstanding = max(grand gross − paid + refunded, 0)

The service holds configuration only (currency rules, provider
calculators). Identical input gives equal results.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Mapping, Optional, Sequence

from core.config.rules import InMemoryConfigStore
from engines.sales.calculation.adjustments import (
    blended_tax_rate,
    check_adjustment_scopes,
    evaluate_adjustments,
)
from engines.sales.calculation.drafts import (
    ADJUSTMENT_KIND_CUSTOM,
    ADJUSTMENT_KIND_DISCOUNT,
    ADJUSTMENT_KIND_SHIPPING,
    ADJUSTMENT_KIND_SURCHARGE,
    ADJUSTMENT_KIND_TAX,
    DOCUMENT_KIND_ORDER,
    VALID_DOCUMENT_KINDS,
    AdjustmentDraft,
    CalculationContext,
    CalculationResult,
    DocumentTotals,
    ExistingTotals,
    LineDraft,
)
from engines.sales.calculation.errors import (
    InvalidAdjustmentInput,
    SalesCalculationError,
)
from engines.sales.calculation.lines import evaluate_line
from engines.sales.calculation.money import ZERO, round_money, to_decimal
from engines.sales.calculation.providers import (
    ProviderCalculatorRegistry,
    refresh_provider_adjustments,
)
from engines.sales.calculation.tax import TaxRate, resolve_line_tax_rate

logger = logging.getLogger("sbo.sales")


class SalesCalculationService:
    """
    Usage:
        service = SalesCalculationService(
            config_store=currency_rules_from_settings(),
            provider_registry=build_default_provider_registry(),
        )
        result = service.calculate_document_totals(
            document_kind="order",
            lines=[LineDraft(quantity=2, unit_price_net="100", tax_rate="0.2")],
            adjustments=[],
            context=CalculationContext(tenant_id=t, organization_id=o,
                                       currency_code="EUR"),
        )
    """

    def __init__(
        self,
        *,
        config_store: Optional[InMemoryConfigStore] = None,
        provider_registry: Optional[ProviderCalculatorRegistry] = None,
    ):
        self._config_store = config_store or InMemoryConfigStore()
        self._provider_registry = provider_registry

    def quantum_for(self, currency_code: str) -> Decimal:
        return self._config_store.resolve_currency_rule(currency_code).quantum

    def calculate_document_totals(
        self,
        *,
        document_kind: str,
        lines: Sequence[LineDraft],
        adjustments: Sequence[AdjustmentDraft],
        context: CalculationContext,
        existing_totals: Optional[ExistingTotals] = None,
        tax_rates: Optional[Mapping[str, TaxRate]] = None,
        default_tax_rate: Optional[TaxRate] = None,
    ) -> CalculationResult:
        if document_kind not in VALID_DOCUMENT_KINDS:
            raise SalesCalculationError(
                f"document_kind '{document_kind}' not valid. "
                f"Must be one of: {sorted(VALID_DOCUMENT_KINDS)}",
                field="document_kind",
            )

        currency_code = context.currency_code
        quantum = self.quantum_for(currency_code)
        rates_by_id = tax_rates or {}

        # Line-scope rejection happens before anything else is computed.
        check_adjustment_scopes(adjustments)

        line_results = tuple(
            evaluate_line(
                draft,
                currency_code=currency_code,
                quantum=quantum,
                index=index,
                tax_rate=resolve_line_tax_rate(
                    draft,
                    rates_by_id=rates_by_id,
                    default_rate=default_tax_rate,
                    index=index,
                ),
            )
            for index, draft in enumerate(lines)
        )

        subtotal_net = sum((r.net_amount for r in line_results), ZERO)
        subtotal_gross = sum((r.gross_amount for r in line_results), ZERO)
        line_tax = sum((r.tax_amount for r in line_results), ZERO)
        line_discount = sum((r.discount_amount for r in line_results), ZERO)

        refreshed = refresh_provider_adjustments(
            adjustments,
            context,
            self._provider_registry,
            subtotal_net=subtotal_net,
            subtotal_gross=subtotal_gross,
            quantum=quantum,
        )
        resolved = evaluate_adjustments(
            refreshed,
            subtotal_net=subtotal_net,
            subtotal_gross=subtotal_gross,
            tax_rate=blended_tax_rate(subtotal_net, line_tax),
            quantum=quantum,
        )

        discount_net = discount_gross = ZERO
        shipping_net = shipping_gross = ZERO
        surcharge_net = surcharge_gross = ZERO
        custom_net = custom_gross = ZERO
        adjustment_tax = ZERO
        for adjustment in resolved:
            net = adjustment.amount_net
            gross = adjustment.amount_gross
            if adjustment.kind == ADJUSTMENT_KIND_DISCOUNT:
                discount_net += net
                discount_gross += gross
            elif adjustment.kind == ADJUSTMENT_KIND_SHIPPING:
                shipping_net += net
                shipping_gross += gross
            elif adjustment.kind == ADJUSTMENT_KIND_SURCHARGE:
                surcharge_net += net
                surcharge_gross += gross
            elif adjustment.kind == ADJUSTMENT_KIND_TAX:
                adjustment_tax += net
            elif adjustment.kind == ADJUSTMENT_KIND_CUSTOM:
                custom_net += net
                custom_gross += gross

        grand_net = (
            subtotal_net - discount_net + shipping_net + surcharge_net + custom_net
        )
        grand_gross = (
            subtotal_gross
            - discount_gross
            + shipping_gross
            + surcharge_gross
            + custom_gross
            + adjustment_tax
        )

        if grand_net < ZERO or grand_gross < ZERO or grand_gross < grand_net:
            raise InvalidAdjustmentInput(
                f"Adjustments take the document below zero "
                f"(net {round_money(grand_net, quantum)}, "
                f"gross {round_money(grand_gross, quantum)}).",
                field="adjustments",
            )

        paid = refunded = outstanding = None
        if document_kind == DOCUMENT_KIND_ORDER:
            existing = existing_totals or ExistingTotals()
            paid = round_money(
                to_decimal(existing.paid_total_amount, field="paid_total_amount")
                or ZERO,
                quantum,
            )
            refunded = round_money(
                to_decimal(
                    existing.refunded_total_amount, field="refunded_total_amount"
                ) or ZERO,
                quantum,
            )
            outstanding = round_money(
                max(grand_gross - paid + refunded, ZERO), quantum
            )

        def q(amount: Decimal) -> Decimal:
            return round_money(amount, quantum)

        totals = DocumentTotals(
            currency_code=currency_code,
            subtotal_net_amount=q(subtotal_net),
            subtotal_gross_amount=q(subtotal_gross),
            discount_total_amount=q(line_discount + discount_net),
            tax_total_amount=q(grand_gross - grand_net),
            shipping_net_amount=q(shipping_net),
            shipping_gross_amount=q(shipping_gross),
            surcharge_total_amount=q(surcharge_net),
            grand_total_net_amount=q(grand_net),
            grand_total_gross_amount=q(grand_gross),
            line_item_count=len(line_results),
            paid_total_amount=paid,
            refunded_total_amount=refunded,
            outstanding_amount=outstanding,
        )

        logger.debug(
            f"Totals calculated ({document_kind}, {currency_code}): "
            f"{len(line_results)} lines, {len(resolved)} adjustments, "
            f"grand gross {grand_gross}"
        )

        return CalculationResult(
            document_kind=document_kind,
            lines=line_results,
            adjustments=resolved,
            totals=totals,
        )
