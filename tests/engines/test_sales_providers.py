"""SBO Sales provider adjustments: shipping/payment calculators and refresh."""

import uuid
from decimal import Decimal

import pytest

from engines.sales.calculation import (
    AdjustmentDraft,
    InvalidAdjustmentInput,
    LineDraft,
    PaymentMethodContext,
    ProviderCalculatorRegistry,
    SalesCalculationService,
    ShippingMethodContext,
    build_calculation_context,
    build_default_provider_registry,
    flat_rate_shipping,
    normalize_payment_method_context,
    normalize_shipping_method_context,
    payment_fee,
    refresh_provider_adjustments,
)

D = Decimal
Q = D("0.01")
TENANT = uuid.uuid4()
ORG = uuid.uuid4()

SHIPPING_KEY = "shipping-provider:flat-rate"
PAYMENT_KEY = "payment-provider:fee"


def shipping(**settings):
    return ShippingMethodContext(
        id="ship-1",
        code="std",
        name="Standard",
        provider_key="flat-rate",
        base_rate_net="10",
        base_rate_gross="12",
        provider_settings=settings,
    )


def payment(**settings):
    return PaymentMethodContext(
        id="pay-1", code="card", name="Card", provider_key="fee",
        provider_settings=settings,
    )


def kw(subtotal_gross="240"):
    return dict(
        subtotal_net=D("200"),
        subtotal_gross=D(subtotal_gross),
        currency_code="EUR",
        quantum=Q,
    )


class TestFlatRateShipping:
    def test_base_rates(self):
        adjustment = flat_rate_shipping(shipping(), **kw())
        assert adjustment.kind == "shipping"
        assert adjustment.calculator_key == SHIPPING_KEY
        assert adjustment.amount_net == D("10")
        assert adjustment.amount_gross == D("12")
        assert adjustment.metadata["shippingMethodId"] == "ship-1"

    def test_highest_matching_rate_table_row(self):
        table = [
            {"minSubtotal": "100", "amountNet": "5", "amountGross": "6"},
            {"minSubtotal": "0", "amountNet": "8", "amountGross": "9.6"},
            {"minSubtotal": "500", "amountNet": "0", "amountGross": "0"},
        ]
        adjustment = flat_rate_shipping(shipping(rateTable=table), **kw())
        assert adjustment.amount_net == D("5")
        assert adjustment.amount_gross == D("6")

    def test_free_shipping_threshold(self):
        adjustment = flat_rate_shipping(
            shipping(freeShippingThreshold="200"), **kw()
        )
        assert adjustment.amount_net == D("0")
        assert adjustment.amount_gross == D("0")

    def test_below_free_threshold_charges(self):
        adjustment = flat_rate_shipping(
            shipping(freeShippingThreshold="300"), **kw()
        )
        assert adjustment.amount_gross == D("12")


class TestPaymentFee:
    def test_percent_plus_fixed(self):
        adjustment = payment_fee(payment(feePercent="2", feeFixed="0.30"), **kw())
        assert adjustment.kind == "surcharge"
        assert adjustment.calculator_key == PAYMENT_KEY
        assert adjustment.amount_gross == D("5.10")
        assert adjustment.amount_net is None

    def test_zero_fee_contributes_nothing(self):
        assert payment_fee(payment(), **kw()) is None

    def test_percent_out_of_range(self):
        with pytest.raises(InvalidAdjustmentInput, match="feePercent"):
            payment_fee(payment(feePercent="150"), **kw())

    def test_negative_fixed_fee(self):
        with pytest.raises(InvalidAdjustmentInput, match="feeFixed"):
            payment_fee(payment(feeFixed="-1"), **kw())


class TestProviderRegistry:
    def test_default_registry(self):
        registry = build_default_provider_registry()
        assert registry.keys() == frozenset({SHIPPING_KEY, PAYMENT_KEY})
        assert registry.get(SHIPPING_KEY) is flat_rate_shipping

    def test_duplicate_key_rejected(self):
        registry = ProviderCalculatorRegistry()
        registry.register(SHIPPING_KEY, flat_rate_shipping)
        with pytest.raises(ValueError, match="already registered"):
            registry.register(SHIPPING_KEY, flat_rate_shipping)

    @pytest.mark.parametrize("key", ["flat-rate", "shipping-provider:", "custom:x"])
    def test_key_needs_provider_prefix(self, key):
        with pytest.raises(ValueError):
            ProviderCalculatorRegistry().register(key, flat_rate_shipping)

    def test_calculator_must_be_callable(self):
        with pytest.raises(TypeError):
            ProviderCalculatorRegistry().register(SHIPPING_KEY, "nope")


class TestRefresh:
    def _context(self, **kwargs):
        return build_calculation_context(
            tenant_id=TENANT,
            organization_id=ORG,
            currency_code="EUR",
            **kwargs,
        )

    def _refresh(self, adjustments, context):
        return refresh_provider_adjustments(
            adjustments,
            context,
            build_default_provider_registry(),
            subtotal_net=D("200"),
            subtotal_gross=D("240"),
            quantum=Q,
        )

    def test_stale_provider_adjustment_rederived(self):
        stale = AdjustmentDraft(
            kind="shipping", adjustment_id=SHIPPING_KEY,
            calculator_key=SHIPPING_KEY, amount_net="99", amount_gross="99",
        )
        manual = AdjustmentDraft(kind="discount", amount_net="5", position=4)
        context = self._context(
            shipping_snapshot={"providerKey": "flat-rate", "baseRateNet": "10"}
        )

        refreshed = self._refresh([stale, manual], context)

        assert [a.adjustment_id for a in refreshed] == [None, SHIPPING_KEY]
        assert refreshed[1].amount_net == D("10")
        assert refreshed[1].position == 5

    def test_manual_override_blocks_family(self):
        edited = AdjustmentDraft(
            kind="shipping", adjustment_id=SHIPPING_KEY,
            calculator_key=SHIPPING_KEY, amount_net="3", amount_gross="3.6",
            metadata={"manualOverride": True},
        )
        context = self._context(
            shipping_snapshot={"providerKey": "flat-rate", "baseRateNet": "10"},
            payment_snapshot={"providerKey": "fee", "providerSettings": {"feeFixed": "1"}},
        )

        refreshed = self._refresh([edited], context)

        assert refreshed[0] is edited
        assert [a.calculator_key for a in refreshed] == [SHIPPING_KEY, PAYMENT_KEY]
        assert refreshed[1].position == 1

    def test_missing_method_keeps_supplied_adjustment(self):
        supplied = AdjustmentDraft(
            kind="surcharge", adjustment_id=PAYMENT_KEY,
            calculator_key=PAYMENT_KEY, amount_gross="5",
        )
        assert self._refresh([supplied], self._context()) == (supplied,)

    def test_unknown_provider_keeps_supplied_adjustment(self):
        supplied = AdjustmentDraft(
            kind="shipping", adjustment_id="shipping-provider:dhl",
            calculator_key="shipping-provider:dhl",
            amount_net="10", amount_gross="12",
        )
        context = self._context(shipping_snapshot={"providerKey": "courier"})
        assert self._refresh([supplied], context) == (supplied,)

    def test_unknown_provider_derives_nothing(self):
        context = self._context(shipping_snapshot={"providerKey": "courier"})
        assert self._refresh([], context) == ()

    def test_without_registry_keeps_supplied_adjustment(self):
        supplied = AdjustmentDraft(
            kind="shipping", calculator_key=SHIPPING_KEY, amount_net="1"
        )
        context = self._context(shipping_snapshot={"providerKey": "flat-rate"})
        result = refresh_provider_adjustments(
            [supplied], context, None,
            subtotal_net=D("0"), subtotal_gross=D("0"), quantum=Q,
        )
        assert result == (supplied,)

    def test_zero_fee_replaces_stale_fee(self):
        stale = AdjustmentDraft(
            kind="surcharge", adjustment_id=PAYMENT_KEY,
            calculator_key=PAYMENT_KEY, amount_gross="5",
        )
        context = self._context(payment_snapshot={"providerKey": "fee"})
        assert self._refresh([stale], context) == ()

    def test_method_change_replaces_other_provider(self):
        stale = AdjustmentDraft(
            kind="shipping", adjustment_id="shipping-provider:dhl",
            calculator_key="shipping-provider:dhl", amount_net="30",
        )
        context = self._context(
            shipping_snapshot={"providerKey": "flat-rate", "baseRateNet": "10"}
        )

        refreshed = self._refresh([stale], context)

        assert [a.calculator_key for a in refreshed] == [SHIPPING_KEY]
        assert refreshed[0].amount_net == D("10")
        assert refreshed[0].position == 0

    def test_only_rederived_family_is_replaced(self):
        payment_charge = AdjustmentDraft(
            kind="surcharge", adjustment_id="payment-provider:invoice",
            calculator_key="payment-provider:invoice", amount_gross="2",
            position=3,
        )
        context = self._context(
            shipping_snapshot={"providerKey": "flat-rate", "baseRateNet": "10"},
            payment_snapshot={"providerKey": "invoice"},
        )

        refreshed = self._refresh([payment_charge], context)

        assert refreshed[0] is payment_charge
        assert refreshed[1].calculator_key == SHIPPING_KEY
        assert refreshed[1].position == 4


class TestContextNormalization:
    def test_camel_case_snapshot(self):
        method = normalize_shipping_method_context(
            {
                "providerKey": "flat-rate",
                "baseRateNet": "5",
                "baseRateGross": "6",
                "metadata": {"providerSettings": {"freeShippingThreshold": "100"}},
            },
            method_id="ship-9",
            code="exp",
            currency_code="EUR",
        )
        assert method.id == "ship-9"
        assert method.code == "exp"
        assert method.provider_key == "flat-rate"
        assert method.base_rate_gross == "6"
        assert method.currency_code == "EUR"
        assert method.provider_settings == {"freeShippingThreshold": "100"}

    def test_snake_case_snapshot(self):
        method = normalize_payment_method_context(
            {"id": "p-1", "provider_key": "fee", "provider_settings": {"feePercent": 1}}
        )
        assert method.provider_key == "fee"
        assert method.provider_settings == {"feePercent": 1}

    def test_missing_snapshot(self):
        assert normalize_shipping_method_context(None) is None
        assert normalize_payment_method_context("card") is None


class TestServiceWithProviders:
    def test_shipping_and_payment_fee_in_totals(self):
        service = SalesCalculationService(
            provider_registry=build_default_provider_registry()
        )
        context = build_calculation_context(
            tenant_id=TENANT,
            organization_id=ORG,
            currency_code="EUR",
            shipping_snapshot={
                "providerKey": "flat-rate", "baseRateNet": "10", "baseRateGross": "12",
            },
            payment_snapshot={
                "providerKey": "fee",
                "providerSettings": {"feePercent": "2", "feeFixed": "0.30"},
            },
        )

        result = service.calculate_document_totals(
            document_kind="order",
            lines=[LineDraft(quantity=2, unit_price_net="100", tax_rate="0.2")],
            adjustments=[],
            context=context,
        )
        totals = result.totals

        assert [a.adjustment_id for a in result.adjustments] == [
            SHIPPING_KEY, PAYMENT_KEY,
        ]
        assert totals.shipping_net_amount == D("10.00")
        assert totals.shipping_gross_amount == D("12.00")
        assert totals.surcharge_total_amount == D("4.25")
        assert totals.grand_total_net_amount == D("214.25")
        assert totals.grand_total_gross_amount == D("257.10")
        assert totals.tax_total_amount == D("42.85")

    @pytest.mark.parametrize("registry", [None, build_default_provider_registry()])
    def test_supplied_unknown_provider_charge_counted(self, registry):
        service = SalesCalculationService(provider_registry=registry)
        context = build_calculation_context(
            tenant_id=TENANT, organization_id=ORG, currency_code="EUR",
        )

        result = service.calculate_document_totals(
            document_kind="order",
            lines=[LineDraft(quantity=2, unit_price_net="100", tax_rate="0.2")],
            adjustments=[AdjustmentDraft(
                kind="shipping", adjustment_id="shipping-provider:dhl",
                calculator_key="shipping-provider:dhl",
                amount_net="10", amount_gross="12",
            )],
            context=context,
        )

        assert [a.adjustment_id for a in result.adjustments] == [
            "shipping-provider:dhl",
        ]
        assert result.totals.shipping_gross_amount == D("12.00")
        assert result.totals.grand_total_gross_amount == D("252.00")
