"""
SBO Sales Calculation — Provider Adjustment Calculators
=========================================================
Shipping and payment providers contribute adjustments derived from the
document's shipping/payment method.

Calculators are registered explicitly on a ProviderCalculatorRegistry
when the service is built:

    registry = ProviderCalculatorRegistry()
    registry.register("shipping-provider:flat-rate", flat_rate_shipping)
    registry.register("payment-provider:fee", payment_fee)

Refresh rule: when a family's method has a registered calculator, its
result replaces the family's provider adjustments on every calculation.
Without one (no registry, no method, unknown provider key) the supplied
adjustments are kept as they are. A user-edited adjustment
(metadata.manualOverride) is kept verbatim and blocks re-derivation for
its provider family.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import replace
from decimal import Decimal
from threading import Lock
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

from engines.sales.calculation.drafts import (
    ADJUSTMENT_KIND_SHIPPING,
    ADJUSTMENT_KIND_SURCHARGE,
    PAYMENT_PROVIDER_PREFIX,
    PROVIDER_KEY_PREFIXES,
    SHIPPING_PROVIDER_PREFIX,
    AdjustmentDraft,
    CalculationContext,
    PaymentMethodContext,
    ShippingMethodContext,
)
from engines.sales.calculation.errors import InvalidAdjustmentInput
from engines.sales.calculation.money import HUNDRED, ZERO, round_money, to_decimal

logger = logging.getLogger("sbo.sales")

ProviderCalculator = Callable[..., Optional[AdjustmentDraft]]


def _setting(settings: dict, key: str) -> Optional[Decimal]:
    return to_decimal(
        settings.get(key),
        field=f"providerSettings.{key}",
        error_cls=InvalidAdjustmentInput,
    )


# ══════════════════════════════════════════════════════════════
# CONTEXT NORMALIZATION
# ══════════════════════════════════════════════════════════════

def _pick(snapshot: dict, *keys: str) -> Any:
    for key in keys:
        if snapshot.get(key) is not None:
            return snapshot[key]
    return None


def _provider_settings(snapshot: dict) -> dict:
    settings = _pick(snapshot, "providerSettings", "provider_settings")
    if settings is None:
        metadata = snapshot.get("metadata")
        if isinstance(metadata, dict):
            settings = metadata.get("providerSettings")
    return copy.deepcopy(settings) if isinstance(settings, dict) else {}


def _metadata(snapshot: dict) -> dict:
    metadata = snapshot.get("metadata")
    return copy.deepcopy(metadata) if isinstance(metadata, dict) else {}


def normalize_shipping_method_context(
    snapshot: Optional[dict],
    *,
    method_id: Optional[str] = None,
    code: Optional[str] = None,
    currency_code: Optional[str] = None,
) -> Optional[ShippingMethodContext]:
    """Shipping method snapshot (camelCase or snake_case) → context."""
    if not isinstance(snapshot, dict):
        return None
    return ShippingMethodContext(
        id=snapshot.get("id") or method_id,
        code=snapshot.get("code") if isinstance(snapshot.get("code"), str) else code,
        name=snapshot.get("name") if isinstance(snapshot.get("name"), str) else None,
        provider_key=_pick(snapshot, "providerKey", "provider_key"),
        currency_code=_pick(snapshot, "currencyCode", "currency_code") or currency_code,
        base_rate_net=_pick(snapshot, "baseRateNet", "base_rate_net"),
        base_rate_gross=_pick(snapshot, "baseRateGross", "base_rate_gross"),
        provider_settings=_provider_settings(snapshot),
        metadata=_metadata(snapshot),
    )


def normalize_payment_method_context(
    snapshot: Optional[dict],
    *,
    method_id: Optional[str] = None,
    code: Optional[str] = None,
) -> Optional[PaymentMethodContext]:
    """Payment method snapshot (camelCase or snake_case) → context."""
    if not isinstance(snapshot, dict):
        return None
    return PaymentMethodContext(
        id=snapshot.get("id") or method_id,
        code=snapshot.get("code") if isinstance(snapshot.get("code"), str) else code,
        name=snapshot.get("name") if isinstance(snapshot.get("name"), str) else None,
        provider_key=_pick(snapshot, "providerKey", "provider_key"),
        terms=snapshot.get("terms") if isinstance(snapshot.get("terms"), str) else None,
        provider_settings=_provider_settings(snapshot),
        metadata=_metadata(snapshot),
    )


def build_calculation_context(
    *,
    tenant_id: Any,
    organization_id: Any,
    currency_code: str,
    shipping_snapshot: Optional[dict] = None,
    payment_snapshot: Optional[dict] = None,
    shipping_method_id: Optional[str] = None,
    payment_method_id: Optional[str] = None,
    shipping_method_code: Optional[str] = None,
    payment_method_code: Optional[str] = None,
) -> CalculationContext:
    return CalculationContext(
        tenant_id=tenant_id,
        organization_id=organization_id,
        currency_code=currency_code,
        shipping_method=normalize_shipping_method_context(
            shipping_snapshot,
            method_id=shipping_method_id,
            code=shipping_method_code,
            currency_code=currency_code,
        ),
        payment_method=normalize_payment_method_context(
            payment_snapshot,
            method_id=payment_method_id,
            code=payment_method_code,
        ),
    )


# ══════════════════════════════════════════════════════════════
# BUILT-IN CALCULATORS
# ══════════════════════════════════════════════════════════════

def flat_rate_shipping(
    method: ShippingMethodContext,
    *,
    subtotal_net: Decimal,
    subtotal_gross: Decimal,
    currency_code: str,
    quantum: Decimal,
) -> Optional[AdjustmentDraft]:
    """
    Base rate of the method, replaced by the highest matching rateTable
    row, and zeroed at or above freeShippingThreshold (gross subtotal).
    """
    settings = method.provider_settings or {}
    amount_net = to_decimal(
        method.base_rate_net, field="base_rate_net", error_cls=InvalidAdjustmentInput
    )
    amount_gross = to_decimal(
        method.base_rate_gross, field="base_rate_gross", error_cls=InvalidAdjustmentInput
    )

    best_threshold: Optional[Decimal] = None
    for row in settings.get("rateTable") or ():
        if not isinstance(row, dict):
            continue
        threshold = to_decimal(
            row.get("minSubtotal"),
            field="rateTable.minSubtotal",
            error_cls=InvalidAdjustmentInput,
        ) or ZERO
        if subtotal_gross < threshold:
            continue
        if best_threshold is not None and threshold < best_threshold:
            continue
        best_threshold = threshold
        amount_net = to_decimal(
            row.get("amountNet"), field="rateTable.amountNet",
            error_cls=InvalidAdjustmentInput,
        )
        amount_gross = to_decimal(
            row.get("amountGross"), field="rateTable.amountGross",
            error_cls=InvalidAdjustmentInput,
        )

    free_threshold = _setting(settings, "freeShippingThreshold")
    if free_threshold is not None and subtotal_gross >= free_threshold:
        amount_net = amount_gross = ZERO

    if amount_net is None and amount_gross is None:
        amount_net = amount_gross = ZERO

    return AdjustmentDraft(
        kind=ADJUSTMENT_KIND_SHIPPING,
        calculator_key=f"{SHIPPING_PROVIDER_PREFIX}{method.provider_key}",
        code=method.code,
        label=method.name,
        amount_net=amount_net,
        amount_gross=amount_gross,
        currency_code=method.currency_code or currency_code,
        metadata={
            "providerKey": method.provider_key,
            "shippingMethodId": method.id,
        },
    )


def payment_fee(
    method: PaymentMethodContext,
    *,
    subtotal_net: Decimal,
    subtotal_gross: Decimal,
    currency_code: str,
    quantum: Decimal,
) -> Optional[AdjustmentDraft]:
    """feePercent (0–100) of the gross subtotal plus feeFixed, as a surcharge."""
    settings = method.provider_settings or {}
    fee_percent = _setting(settings, "feePercent") or ZERO
    fee_fixed = _setting(settings, "feeFixed") or ZERO
    if not ZERO <= fee_percent <= HUNDRED:
        raise InvalidAdjustmentInput(
            f"providerSettings.feePercent must be between 0 and 100, "
            f"got {fee_percent}.",
            field="providerSettings.feePercent",
        )
    if fee_fixed < ZERO:
        raise InvalidAdjustmentInput(
            "providerSettings.feeFixed cannot be negative.",
            field="providerSettings.feeFixed",
        )

    fee = round_money(subtotal_gross * fee_percent / HUNDRED + fee_fixed, quantum)
    if fee == ZERO:
        return None

    return AdjustmentDraft(
        kind=ADJUSTMENT_KIND_SURCHARGE,
        calculator_key=f"{PAYMENT_PROVIDER_PREFIX}{method.provider_key}",
        code=method.code,
        label=method.name,
        amount_gross=fee,
        currency_code=currency_code,
        metadata={
            "providerKey": method.provider_key,
            "paymentMethodId": method.id,
        },
    )


# ══════════════════════════════════════════════════════════════
# REGISTRY
# ══════════════════════════════════════════════════════════════

class ProviderCalculatorRegistry:
    """Calculator key → calculator. Thread-safe."""

    def __init__(self):
        self._calculators: Dict[str, ProviderCalculator] = {}
        self._lock = Lock()

    def register(self, calculator_key: str, calculator: ProviderCalculator) -> None:
        if not isinstance(calculator_key, str) or not calculator_key.startswith(
            PROVIDER_KEY_PREFIXES
        ):
            raise ValueError(
                f"calculator_key '{calculator_key}' must start with one of "
                f"{list(PROVIDER_KEY_PREFIXES)}."
            )
        if calculator_key in PROVIDER_KEY_PREFIXES:
            raise ValueError("calculator_key must name a provider.")
        if not callable(calculator):
            raise TypeError("calculator must be callable.")

        with self._lock:
            if calculator_key in self._calculators:
                raise ValueError(
                    f"Calculator '{calculator_key}' already registered."
                )
            self._calculators[calculator_key] = calculator

        logger.debug(f"Provider calculator registered: {calculator_key}")

    def get(self, calculator_key: str) -> Optional[ProviderCalculator]:
        with self._lock:
            return self._calculators.get(calculator_key)

    def is_registered(self, calculator_key: str) -> bool:
        with self._lock:
            return calculator_key in self._calculators

    def keys(self) -> frozenset:
        with self._lock:
            return frozenset(self._calculators)


def build_default_provider_registry() -> ProviderCalculatorRegistry:
    registry = ProviderCalculatorRegistry()
    registry.register(f"{SHIPPING_PROVIDER_PREFIX}flat-rate", flat_rate_shipping)
    registry.register(f"{PAYMENT_PROVIDER_PREFIX}fee", payment_fee)
    return registry


# ══════════════════════════════════════════════════════════════
# REFRESH
# ══════════════════════════════════════════════════════════════

def _family(calculator_key: str) -> Optional[str]:
    for prefix in PROVIDER_KEY_PREFIXES:
        if calculator_key.startswith(prefix):
            return prefix
    return None


def refresh_provider_adjustments(
    adjustments: Sequence[AdjustmentDraft],
    context: CalculationContext,
    registry: Optional[ProviderCalculatorRegistry],
    *,
    subtotal_net: Decimal,
    subtotal_gross: Decimal,
    quantum: Decimal,
) -> Tuple[AdjustmentDraft, ...]:
    """
    Re-derive provider adjustments from the current shipping/payment
    method.

    A family is re-derived only when the registry has a calculator for
    the method's provider key. The calculator's answer then replaces
    every non-overridden adjustment of that family; None means no
    charge. Families without a method or a registered calculator keep
    the adjustments they were given.

    Derived adjustments are appended after the highest surviving
    position, shipping before payment.
    """
    overridden = {
        _family(a.calculator_key)
        for a in adjustments
        if a.is_provider_managed and a.is_manual_override
    }

    derived_by_family: Dict[str, Optional[AdjustmentDraft]] = {}
    methods = (
        (SHIPPING_PROVIDER_PREFIX, context.shipping_method),
        (PAYMENT_PROVIDER_PREFIX, context.payment_method),
    )
    for family, method in methods:
        if registry is None or family in overridden:
            continue
        if method is None or not method.provider_key:
            continue
        calculator_key = f"{family}{method.provider_key}"
        calculator = registry.get(calculator_key)
        if calculator is None:
            logger.debug(f"No provider calculator for {calculator_key}")
            continue
        derived = calculator(
            method,
            subtotal_net=subtotal_net,
            subtotal_gross=subtotal_gross,
            currency_code=context.currency_code,
            quantum=quantum,
        )
        if derived is not None:
            derived = replace(
                derived,
                adjustment_id=derived.adjustment_id or calculator_key,
                calculator_key=derived.calculator_key or calculator_key,
            )
        derived_by_family[family] = derived

    kept = [
        a for a in adjustments
        if not a.is_provider_managed
        or a.is_manual_override
        or _family(a.calculator_key) not in derived_by_family
    ]

    next_position = max((a.position for a in kept), default=-1) + 1
    for family, _ in methods:
        derived = derived_by_family.get(family)
        if derived is None:
            continue
        kept.append(replace(derived, position=next_position))
        next_position += 1

    return tuple(kept)
