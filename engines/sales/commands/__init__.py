"""
SBO Sales Engine — Request Commands
======================================
Typed sales requests that convert into canonical Command objects.

Every sales command is organization-scoped: organization_id names the
organization inside the tenant (tenant_id).

Amounts travel as decimal strings in command payloads.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple

from core.commands.base import ACTOR_REQUIRED, Command
from core.context.scope import SCOPE_ORGANIZATION_REQUIRED


# ══════════════════════════════════════════════════════════════
# COMMAND TYPE CONSTANTS
# ══════════════════════════════════════════════════════════════

SALES_DOCUMENT_CREATE_REQUEST = "sales.document.create.request"
SALES_DOCUMENT_UPDATE_REQUEST = "sales.document.update.request"
SALES_DOCUMENT_DELETE_REQUEST = "sales.document.delete.request"
SALES_LINE_UPSERT_REQUEST = "sales.line.upsert.request"
SALES_LINE_DELETE_REQUEST = "sales.line.delete.request"
SALES_ADJUSTMENT_UPSERT_REQUEST = "sales.adjustment.upsert.request"
SALES_ADJUSTMENT_DELETE_REQUEST = "sales.adjustment.delete.request"
SALES_QUOTE_CONVERT_REQUEST = "sales.quote.convert.request"
SALES_PAYMENT_RECORD_REQUEST = "sales.payment.record.request"
SALES_PAYMENT_UPDATE_REQUEST = "sales.payment.update.request"
SALES_PAYMENT_DELETE_REQUEST = "sales.payment.delete.request"
SALES_SHIPMENT_RECORD_REQUEST = "sales.shipment.record.request"
SALES_SHIPMENT_DELETE_REQUEST = "sales.shipment.delete.request"
SALES_NOTE_ADD_REQUEST = "sales.note.add.request"
SALES_NOTE_DELETE_REQUEST = "sales.note.delete.request"
SALES_TAGS_SET_REQUEST = "sales.tags.set.request"
SALES_TAX_RATE_CONFIGURE_REQUEST = "sales.tax_rate.configure.request"
SALES_TAX_RATE_DELETE_REQUEST = "sales.tax_rate.delete.request"
SALES_CHANNEL_CONFIGURE_REQUEST = "sales.channel.configure.request"
SALES_ACTION_UNDO_REQUEST = "sales.action.undo.request"
SALES_ACTION_REDO_REQUEST = "sales.action.redo.request"

SALES_COMMAND_TYPES = frozenset({
    SALES_DOCUMENT_CREATE_REQUEST,
    SALES_DOCUMENT_UPDATE_REQUEST,
    SALES_DOCUMENT_DELETE_REQUEST,
    SALES_LINE_UPSERT_REQUEST,
    SALES_LINE_DELETE_REQUEST,
    SALES_ADJUSTMENT_UPSERT_REQUEST,
    SALES_ADJUSTMENT_DELETE_REQUEST,
    SALES_QUOTE_CONVERT_REQUEST,
    SALES_PAYMENT_RECORD_REQUEST,
    SALES_PAYMENT_UPDATE_REQUEST,
    SALES_PAYMENT_DELETE_REQUEST,
    SALES_SHIPMENT_RECORD_REQUEST,
    SALES_SHIPMENT_DELETE_REQUEST,
    SALES_NOTE_ADD_REQUEST,
    SALES_NOTE_DELETE_REQUEST,
    SALES_TAGS_SET_REQUEST,
    SALES_TAX_RATE_CONFIGURE_REQUEST,
    SALES_TAX_RATE_DELETE_REQUEST,
    SALES_CHANNEL_CONFIGURE_REQUEST,
    SALES_ACTION_UNDO_REQUEST,
    SALES_ACTION_REDO_REQUEST,
})

VALID_DOCUMENT_KINDS = frozenset({"quote", "order"})
VALID_PAYMENT_STATUSES = frozenset({
    "PENDING", "AUTHORIZED", "CAPTURED", "REFUNDED", "FAILED",
})


def _cmd(command_type: str, payload: dict, *, tenant_id, organization_id,
         actor_type, actor_id, command_id, correlation_id,
         issued_at) -> Command:
    return Command(
        command_id=command_id,
        command_type=command_type,
        tenant_id=tenant_id,
        organization_id=organization_id,
        actor_type=actor_type,
        actor_id=actor_id,
        payload=payload,
        issued_at=issued_at,
        correlation_id=correlation_id,
        source_engine="sales",
        scope_requirement=SCOPE_ORGANIZATION_REQUIRED,
        actor_requirement=ACTOR_REQUIRED,
    )


def _amount(value, name: str, *, allow_none: bool = False) -> Optional[str]:
    """Validate a non-negative amount and return it as a decimal string."""
    if value is None:
        if allow_none:
            return None
        raise ValueError(f"{name} is required.")
    if isinstance(value, bool):
        raise ValueError(f"{name} must be numeric.")
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"{name} must be numeric, got {value!r}.") from None
    if not amount.is_finite() or amount < 0:
        raise ValueError(f"{name} must be a non-negative number.")
    return str(amount)


def _require_id(value, name: str) -> None:
    if not value or not isinstance(value, str) or not value.strip():
        raise ValueError(f"{name} must be non-empty.")


def _require_currency(value, name: str = "currency_code") -> None:
    if not value or not isinstance(value, str) or len(value) != 3:
        raise ValueError(f"{name} must be 3-letter ISO 4217 code.")


def _require_line(line) -> None:
    if not isinstance(line, dict):
        raise ValueError("line must be a dict.")
    _require_id(line.get("line_id"), "line.line_id")
    if line.get("quantity") is None:
        raise ValueError("line.quantity is required.")


def _require_adjustment(adjustment) -> None:
    if not isinstance(adjustment, dict):
        raise ValueError("adjustment must be a dict.")
    _require_id(adjustment.get("adjustment_id"), "adjustment.adjustment_id")


# ══════════════════════════════════════════════════════════════
# DOCUMENTS
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class DocumentCreateRequest:
    """Create a quote or order with its lines and adjustments."""
    document_id: str
    document_kind: str
    currency_code: str
    organization_id: Optional[uuid.UUID] = None
    document_number: Optional[str] = None
    customer_id: Optional[str] = None
    channel_id: Optional[str] = None
    comment: Optional[str] = None
    lines: Tuple[dict, ...] = ()
    adjustments: Tuple[dict, ...] = ()
    shipping_method: Optional[dict] = None
    payment_method: Optional[dict] = None
    tags: Tuple[str, ...] = ()

    def __post_init__(self):
        _require_id(self.document_id, "document_id")
        if self.document_kind not in VALID_DOCUMENT_KINDS:
            raise ValueError(
                f"document_kind '{self.document_kind}' not valid. "
                f"Must be one of: {sorted(VALID_DOCUMENT_KINDS)}"
            )
        _require_currency(self.currency_code)
        for line in self.lines:
            _require_line(line)
        for adjustment in self.adjustments:
            _require_adjustment(adjustment)
        line_ids = [line["line_id"] for line in self.lines]
        if len(set(line_ids)) != len(line_ids):
            raise ValueError("line_id values must be unique.")

    def to_command(self, *, tenant_id: uuid.UUID, actor_type: str,
                   actor_id: str, command_id: uuid.UUID,
                   correlation_id: uuid.UUID, issued_at: datetime) -> Command:
        return _cmd(
            SALES_DOCUMENT_CREATE_REQUEST,
            {
                "document_id": self.document_id,
                "document_kind": self.document_kind,
                "currency_code": self.currency_code.upper(),
                "document_number": self.document_number,
                "customer_id": self.customer_id,
                "channel_id": self.channel_id,
                "comment": self.comment,
                "lines": [dict(line) for line in self.lines],
                "adjustments": [dict(adj) for adj in self.adjustments],
                "shipping_method": self.shipping_method,
                "payment_method": self.payment_method,
                "tags": list(self.tags),
            },
            tenant_id=tenant_id, organization_id=self.organization_id,
            actor_type=actor_type, actor_id=actor_id,
            command_id=command_id, correlation_id=correlation_id,
            issued_at=issued_at,
        )


@dataclass(frozen=True)
class DocumentUpdateRequest:
    """
    Update header fields. A changed currency, shipping method or
    payment method triggers a recalculation.
    """
    document_id: str
    organization_id: Optional[uuid.UUID] = None
    currency_code: Optional[str] = None
    customer_id: Optional[str] = None
    channel_id: Optional[str] = None
    comment: Optional[str] = None
    status: Optional[str] = None
    shipping_method: Optional[dict] = None
    payment_method: Optional[dict] = None
    clear_shipping_method: bool = False
    clear_payment_method: bool = False

    def __post_init__(self):
        _require_id(self.document_id, "document_id")
        if self.currency_code is not None:
            _require_currency(self.currency_code)
        if self.shipping_method is not None and self.clear_shipping_method:
            raise ValueError(
                "shipping_method and clear_shipping_method are exclusive."
            )
        if self.payment_method is not None and self.clear_payment_method:
            raise ValueError(
                "payment_method and clear_payment_method are exclusive."
            )

    def to_command(self, *, tenant_id: uuid.UUID, actor_type: str,
                   actor_id: str, command_id: uuid.UUID,
                   correlation_id: uuid.UUID, issued_at: datetime) -> Command:
        return _cmd(
            SALES_DOCUMENT_UPDATE_REQUEST,
            {
                "document_id": self.document_id,
                "currency_code": self.currency_code.upper()
                if self.currency_code else None,
                "customer_id": self.customer_id,
                "channel_id": self.channel_id,
                "comment": self.comment,
                "status": self.status,
                "shipping_method": self.shipping_method,
                "payment_method": self.payment_method,
                "clear_shipping_method": self.clear_shipping_method,
                "clear_payment_method": self.clear_payment_method,
            },
            tenant_id=tenant_id, organization_id=self.organization_id,
            actor_type=actor_type, actor_id=actor_id,
            command_id=command_id, correlation_id=correlation_id,
            issued_at=issued_at,
        )


@dataclass(frozen=True)
class DocumentDeleteRequest:
    document_id: str
    organization_id: Optional[uuid.UUID] = None

    def __post_init__(self):
        _require_id(self.document_id, "document_id")

    def to_command(self, *, tenant_id: uuid.UUID, actor_type: str,
                   actor_id: str, command_id: uuid.UUID,
                   correlation_id: uuid.UUID, issued_at: datetime) -> Command:
        return _cmd(
            SALES_DOCUMENT_DELETE_REQUEST,
            {"document_id": self.document_id},
            tenant_id=tenant_id, organization_id=self.organization_id,
            actor_type=actor_type, actor_id=actor_id,
            command_id=command_id, correlation_id=correlation_id,
            issued_at=issued_at,
        )


# ══════════════════════════════════════════════════════════════
# LINES & ADJUSTMENTS
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class LineUpsertRequest:
    """Add a line, or replace the line with the same line_id."""
    document_id: str
    line: dict
    organization_id: Optional[uuid.UUID] = None

    def __post_init__(self):
        _require_id(self.document_id, "document_id")
        _require_line(self.line)

    def to_command(self, *, tenant_id: uuid.UUID, actor_type: str,
                   actor_id: str, command_id: uuid.UUID,
                   correlation_id: uuid.UUID, issued_at: datetime) -> Command:
        return _cmd(
            SALES_LINE_UPSERT_REQUEST,
            {"document_id": self.document_id, "line": dict(self.line)},
            tenant_id=tenant_id, organization_id=self.organization_id,
            actor_type=actor_type, actor_id=actor_id,
            command_id=command_id, correlation_id=correlation_id,
            issued_at=issued_at,
        )


@dataclass(frozen=True)
class LineDeleteRequest:
    document_id: str
    line_id: str
    organization_id: Optional[uuid.UUID] = None

    def __post_init__(self):
        _require_id(self.document_id, "document_id")
        _require_id(self.line_id, "line_id")

    def to_command(self, *, tenant_id: uuid.UUID, actor_type: str,
                   actor_id: str, command_id: uuid.UUID,
                   correlation_id: uuid.UUID, issued_at: datetime) -> Command:
        return _cmd(
            SALES_LINE_DELETE_REQUEST,
            {"document_id": self.document_id, "line_id": self.line_id},
            tenant_id=tenant_id, organization_id=self.organization_id,
            actor_type=actor_type, actor_id=actor_id,
            command_id=command_id, correlation_id=correlation_id,
            issued_at=issued_at,
        )


@dataclass(frozen=True)
class AdjustmentUpsertRequest:
    """
    Add an adjustment, or edit the one with the same adjustment_id.

    Editing a provider-managed adjustment marks it as a manual override.
    """
    document_id: str
    adjustment: dict
    organization_id: Optional[uuid.UUID] = None

    def __post_init__(self):
        _require_id(self.document_id, "document_id")
        _require_adjustment(self.adjustment)

    def to_command(self, *, tenant_id: uuid.UUID, actor_type: str,
                   actor_id: str, command_id: uuid.UUID,
                   correlation_id: uuid.UUID, issued_at: datetime) -> Command:
        return _cmd(
            SALES_ADJUSTMENT_UPSERT_REQUEST,
            {
                "document_id": self.document_id,
                "adjustment": dict(self.adjustment),
            },
            tenant_id=tenant_id, organization_id=self.organization_id,
            actor_type=actor_type, actor_id=actor_id,
            command_id=command_id, correlation_id=correlation_id,
            issued_at=issued_at,
        )


@dataclass(frozen=True)
class AdjustmentDeleteRequest:
    document_id: str
    adjustment_id: str
    organization_id: Optional[uuid.UUID] = None

    def __post_init__(self):
        _require_id(self.document_id, "document_id")
        _require_id(self.adjustment_id, "adjustment_id")

    def to_command(self, *, tenant_id: uuid.UUID, actor_type: str,
                   actor_id: str, command_id: uuid.UUID,
                   correlation_id: uuid.UUID, issued_at: datetime) -> Command:
        return _cmd(
            SALES_ADJUSTMENT_DELETE_REQUEST,
            {
                "document_id": self.document_id,
                "adjustment_id": self.adjustment_id,
            },
            tenant_id=tenant_id, organization_id=self.organization_id,
            actor_type=actor_type, actor_id=actor_id,
            command_id=command_id, correlation_id=correlation_id,
            issued_at=issued_at,
        )


@dataclass(frozen=True)
class QuoteConvertRequest:
    """Turn a quote into a new order, recalculated as an order."""
    document_id: str
    order_id: str
    organization_id: Optional[uuid.UUID] = None
    order_number: Optional[str] = None

    def __post_init__(self):
        _require_id(self.document_id, "document_id")
        _require_id(self.order_id, "order_id")
        if self.order_id == self.document_id:
            raise ValueError("order_id must differ from the quote id.")

    def to_command(self, *, tenant_id: uuid.UUID, actor_type: str,
                   actor_id: str, command_id: uuid.UUID,
                   correlation_id: uuid.UUID, issued_at: datetime) -> Command:
        return _cmd(
            SALES_QUOTE_CONVERT_REQUEST,
            {
                "document_id": self.document_id,
                "order_id": self.order_id,
                "order_number": self.order_number,
            },
            tenant_id=tenant_id, organization_id=self.organization_id,
            actor_type=actor_type, actor_id=actor_id,
            command_id=command_id, correlation_id=correlation_id,
            issued_at=issued_at,
        )


# ══════════════════════════════════════════════════════════════
# PAYMENTS
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class PaymentRecordRequest:
    document_id: str
    payment_id: str
    amount: object
    currency_code: str
    organization_id: Optional[uuid.UUID] = None
    captured_amount: object = None
    refunded_amount: object = None
    status: str = "CAPTURED"
    payment_method_id: Optional[str] = None
    reference: Optional[str] = None

    def __post_init__(self):
        _require_id(self.document_id, "document_id")
        _require_id(self.payment_id, "payment_id")
        _require_currency(self.currency_code)
        _amount(self.amount, "amount")
        _amount(self.captured_amount, "captured_amount", allow_none=True)
        _amount(self.refunded_amount, "refunded_amount", allow_none=True)
        if self.status not in VALID_PAYMENT_STATUSES:
            raise ValueError(
                f"status '{self.status}' not valid. "
                f"Must be one of: {sorted(VALID_PAYMENT_STATUSES)}"
            )

    def to_command(self, *, tenant_id: uuid.UUID, actor_type: str,
                   actor_id: str, command_id: uuid.UUID,
                   correlation_id: uuid.UUID, issued_at: datetime) -> Command:
        return _cmd(
            SALES_PAYMENT_RECORD_REQUEST,
            {
                "document_id": self.document_id,
                "payment_id": self.payment_id,
                "amount": _amount(self.amount, "amount"),
                "currency_code": self.currency_code.upper(),
                "captured_amount": _amount(
                    self.captured_amount, "captured_amount", allow_none=True
                ),
                "refunded_amount": _amount(
                    self.refunded_amount, "refunded_amount", allow_none=True
                ),
                "status": self.status,
                "payment_method_id": self.payment_method_id,
                "reference": self.reference,
            },
            tenant_id=tenant_id, organization_id=self.organization_id,
            actor_type=actor_type, actor_id=actor_id,
            command_id=command_id, correlation_id=correlation_id,
            issued_at=issued_at,
        )


@dataclass(frozen=True)
class PaymentUpdateRequest:
    """Partial payment update; None keeps the recorded value."""
    document_id: str
    payment_id: str
    organization_id: Optional[uuid.UUID] = None
    amount: object = None
    captured_amount: object = None
    refunded_amount: object = None
    status: Optional[str] = None
    reference: Optional[str] = None

    def __post_init__(self):
        _require_id(self.document_id, "document_id")
        _require_id(self.payment_id, "payment_id")
        _amount(self.amount, "amount", allow_none=True)
        _amount(self.captured_amount, "captured_amount", allow_none=True)
        _amount(self.refunded_amount, "refunded_amount", allow_none=True)
        if self.status is not None and self.status not in VALID_PAYMENT_STATUSES:
            raise ValueError(
                f"status '{self.status}' not valid. "
                f"Must be one of: {sorted(VALID_PAYMENT_STATUSES)}"
            )

    def to_command(self, *, tenant_id: uuid.UUID, actor_type: str,
                   actor_id: str, command_id: uuid.UUID,
                   correlation_id: uuid.UUID, issued_at: datetime) -> Command:
        return _cmd(
            SALES_PAYMENT_UPDATE_REQUEST,
            {
                "document_id": self.document_id,
                "payment_id": self.payment_id,
                "amount": _amount(self.amount, "amount", allow_none=True),
                "captured_amount": _amount(
                    self.captured_amount, "captured_amount", allow_none=True
                ),
                "refunded_amount": _amount(
                    self.refunded_amount, "refunded_amount", allow_none=True
                ),
                "status": self.status,
                "reference": self.reference,
            },
            tenant_id=tenant_id, organization_id=self.organization_id,
            actor_type=actor_type, actor_id=actor_id,
            command_id=command_id, correlation_id=correlation_id,
            issued_at=issued_at,
        )


@dataclass(frozen=True)
class PaymentDeleteRequest:
    document_id: str
    payment_id: str
    organization_id: Optional[uuid.UUID] = None

    def __post_init__(self):
        _require_id(self.document_id, "document_id")
        _require_id(self.payment_id, "payment_id")

    def to_command(self, *, tenant_id: uuid.UUID, actor_type: str,
                   actor_id: str, command_id: uuid.UUID,
                   correlation_id: uuid.UUID, issued_at: datetime) -> Command:
        return _cmd(
            SALES_PAYMENT_DELETE_REQUEST,
            {"document_id": self.document_id, "payment_id": self.payment_id},
            tenant_id=tenant_id, organization_id=self.organization_id,
            actor_type=actor_type, actor_id=actor_id,
            command_id=command_id, correlation_id=correlation_id,
            issued_at=issued_at,
        )


# ══════════════════════════════════════════════════════════════
# SHIPMENTS
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ShipmentRecordRequest:
    """items: ({"line_id": ..., "quantity": ...}, ...)"""
    document_id: str
    shipment_id: str
    items: Tuple[dict, ...]
    organization_id: Optional[uuid.UUID] = None
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None

    def __post_init__(self):
        _require_id(self.document_id, "document_id")
        _require_id(self.shipment_id, "shipment_id")
        if not self.items:
            raise ValueError("items must not be empty.")
        for item in self.items:
            if not isinstance(item, dict):
                raise ValueError("each item must be a dict.")
            _require_id(item.get("line_id"), "item.line_id")
            quantity = _amount(item.get("quantity"), "item.quantity")
            if Decimal(quantity) <= 0:
                raise ValueError("item.quantity must be greater than zero.")

    def to_command(self, *, tenant_id: uuid.UUID, actor_type: str,
                   actor_id: str, command_id: uuid.UUID,
                   correlation_id: uuid.UUID, issued_at: datetime) -> Command:
        return _cmd(
            SALES_SHIPMENT_RECORD_REQUEST,
            {
                "document_id": self.document_id,
                "shipment_id": self.shipment_id,
                "items": [
                    {
                        "line_id": item["line_id"],
                        "quantity": _amount(item["quantity"], "item.quantity"),
                    }
                    for item in self.items
                ],
                "carrier": self.carrier,
                "tracking_number": self.tracking_number,
            },
            tenant_id=tenant_id, organization_id=self.organization_id,
            actor_type=actor_type, actor_id=actor_id,
            command_id=command_id, correlation_id=correlation_id,
            issued_at=issued_at,
        )


@dataclass(frozen=True)
class ShipmentDeleteRequest:
    document_id: str
    shipment_id: str
    organization_id: Optional[uuid.UUID] = None

    def __post_init__(self):
        _require_id(self.document_id, "document_id")
        _require_id(self.shipment_id, "shipment_id")

    def to_command(self, *, tenant_id: uuid.UUID, actor_type: str,
                   actor_id: str, command_id: uuid.UUID,
                   correlation_id: uuid.UUID, issued_at: datetime) -> Command:
        return _cmd(
            SALES_SHIPMENT_DELETE_REQUEST,
            {"document_id": self.document_id, "shipment_id": self.shipment_id},
            tenant_id=tenant_id, organization_id=self.organization_id,
            actor_type=actor_type, actor_id=actor_id,
            command_id=command_id, correlation_id=correlation_id,
            issued_at=issued_at,
        )


# ══════════════════════════════════════════════════════════════
# NOTES & TAGS
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class NoteAddRequest:
    document_id: str
    note_id: str
    body: str
    organization_id: Optional[uuid.UUID] = None

    def __post_init__(self):
        _require_id(self.document_id, "document_id")
        _require_id(self.note_id, "note_id")
        if not self.body or not self.body.strip():
            raise ValueError("body must be non-empty.")

    def to_command(self, *, tenant_id: uuid.UUID, actor_type: str,
                   actor_id: str, command_id: uuid.UUID,
                   correlation_id: uuid.UUID, issued_at: datetime) -> Command:
        return _cmd(
            SALES_NOTE_ADD_REQUEST,
            {
                "document_id": self.document_id,
                "note_id": self.note_id,
                "body": self.body.strip(),
            },
            tenant_id=tenant_id, organization_id=self.organization_id,
            actor_type=actor_type, actor_id=actor_id,
            command_id=command_id, correlation_id=correlation_id,
            issued_at=issued_at,
        )


@dataclass(frozen=True)
class NoteDeleteRequest:
    document_id: str
    note_id: str
    organization_id: Optional[uuid.UUID] = None

    def __post_init__(self):
        _require_id(self.document_id, "document_id")
        _require_id(self.note_id, "note_id")

    def to_command(self, *, tenant_id: uuid.UUID, actor_type: str,
                   actor_id: str, command_id: uuid.UUID,
                   correlation_id: uuid.UUID, issued_at: datetime) -> Command:
        return _cmd(
            SALES_NOTE_DELETE_REQUEST,
            {"document_id": self.document_id, "note_id": self.note_id},
            tenant_id=tenant_id, organization_id=self.organization_id,
            actor_type=actor_type, actor_id=actor_id,
            command_id=command_id, correlation_id=correlation_id,
            issued_at=issued_at,
        )


@dataclass(frozen=True)
class TagsSetRequest:
    """Replace the document's tag set. Blank and duplicate tags are dropped."""
    document_id: str
    tags: Tuple[str, ...]
    organization_id: Optional[uuid.UUID] = None

    def __post_init__(self):
        _require_id(self.document_id, "document_id")
        for tag in self.tags:
            if not isinstance(tag, str):
                raise ValueError("tags must be strings.")

    def to_command(self, *, tenant_id: uuid.UUID, actor_type: str,
                   actor_id: str, command_id: uuid.UUID,
                   correlation_id: uuid.UUID, issued_at: datetime) -> Command:
        tags = sorted({tag.strip() for tag in self.tags if tag.strip()})
        return _cmd(
            SALES_TAGS_SET_REQUEST,
            {"document_id": self.document_id, "tags": tags},
            tenant_id=tenant_id, organization_id=self.organization_id,
            actor_type=actor_type, actor_id=actor_id,
            command_id=command_id, correlation_id=correlation_id,
            issued_at=issued_at,
        )


# ══════════════════════════════════════════════════════════════
# CONFIGURATION
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class TaxRateConfigureRequest:
    """Create or replace a tax rate. rate is a fraction (0.20 = 20%)."""
    tax_rate_id: str
    name: str
    code: str
    rate: object
    organization_id: Optional[uuid.UUID] = None
    is_compound: bool = False
    is_default: bool = False
    priority: int = 0
    country_code: Optional[str] = None
    channel_id: Optional[str] = None

    def __post_init__(self):
        _require_id(self.tax_rate_id, "tax_rate_id")
        _require_id(self.name, "name")
        _require_id(self.code, "code")
        _amount(self.rate, "rate")
        if not isinstance(self.priority, int) or isinstance(self.priority, bool):
            raise ValueError("priority must be an integer.")

    def to_command(self, *, tenant_id: uuid.UUID, actor_type: str,
                   actor_id: str, command_id: uuid.UUID,
                   correlation_id: uuid.UUID, issued_at: datetime) -> Command:
        return _cmd(
            SALES_TAX_RATE_CONFIGURE_REQUEST,
            {
                "tax_rate_id": self.tax_rate_id,
                "name": self.name,
                "code": self.code,
                "rate": _amount(self.rate, "rate"),
                "is_compound": self.is_compound,
                "is_default": self.is_default,
                "priority": self.priority,
                "country_code": self.country_code,
                "channel_id": self.channel_id,
            },
            tenant_id=tenant_id, organization_id=self.organization_id,
            actor_type=actor_type, actor_id=actor_id,
            command_id=command_id, correlation_id=correlation_id,
            issued_at=issued_at,
        )


@dataclass(frozen=True)
class TaxRateDeleteRequest:
    tax_rate_id: str
    organization_id: Optional[uuid.UUID] = None

    def __post_init__(self):
        _require_id(self.tax_rate_id, "tax_rate_id")

    def to_command(self, *, tenant_id: uuid.UUID, actor_type: str,
                   actor_id: str, command_id: uuid.UUID,
                   correlation_id: uuid.UUID, issued_at: datetime) -> Command:
        return _cmd(
            SALES_TAX_RATE_DELETE_REQUEST,
            {"tax_rate_id": self.tax_rate_id},
            tenant_id=tenant_id, organization_id=self.organization_id,
            actor_type=actor_type, actor_id=actor_id,
            command_id=command_id, correlation_id=correlation_id,
            issued_at=issued_at,
        )


@dataclass(frozen=True)
class ChannelConfigureRequest:
    channel_id: str
    name: str
    organization_id: Optional[uuid.UUID] = None
    code: Optional[str] = None
    description: Optional[str] = None
    is_active: bool = True
    metadata: dict = field(default_factory=dict)

    def __post_init__(self):
        _require_id(self.channel_id, "channel_id")
        _require_id(self.name, "name")
        if not isinstance(self.metadata, dict):
            raise ValueError("metadata must be a dict.")

    def to_command(self, *, tenant_id: uuid.UUID, actor_type: str,
                   actor_id: str, command_id: uuid.UUID,
                   correlation_id: uuid.UUID, issued_at: datetime) -> Command:
        return _cmd(
            SALES_CHANNEL_CONFIGURE_REQUEST,
            {
                "channel_id": self.channel_id,
                "name": self.name,
                "code": self.code,
                "description": self.description,
                "is_active": self.is_active,
                "metadata": dict(self.metadata),
            },
            tenant_id=tenant_id, organization_id=self.organization_id,
            actor_type=actor_type, actor_id=actor_id,
            command_id=command_id, correlation_id=correlation_id,
            issued_at=issued_at,
        )


# ══════════════════════════════════════════════════════════════
# UNDO / REDO
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ActionUndoRequest:
    undo_token: str
    organization_id: Optional[uuid.UUID] = None

    def __post_init__(self):
        _require_id(self.undo_token, "undo_token")

    def to_command(self, *, tenant_id: uuid.UUID, actor_type: str,
                   actor_id: str, command_id: uuid.UUID,
                   correlation_id: uuid.UUID, issued_at: datetime) -> Command:
        return _cmd(
            SALES_ACTION_UNDO_REQUEST,
            {"undo_token": self.undo_token},
            tenant_id=tenant_id, organization_id=self.organization_id,
            actor_type=actor_type, actor_id=actor_id,
            command_id=command_id, correlation_id=correlation_id,
            issued_at=issued_at,
        )


@dataclass(frozen=True)
class ActionRedoRequest:
    undo_token: str
    organization_id: Optional[uuid.UUID] = None

    def __post_init__(self):
        _require_id(self.undo_token, "undo_token")

    def to_command(self, *, tenant_id: uuid.UUID, actor_type: str,
                   actor_id: str, command_id: uuid.UUID,
                   correlation_id: uuid.UUID, issued_at: datetime) -> Command:
        return _cmd(
            SALES_ACTION_REDO_REQUEST,
            {"undo_token": self.undo_token},
            tenant_id=tenant_id, organization_id=self.organization_id,
            actor_type=actor_type, actor_id=actor_id,
            command_id=command_id, correlation_id=correlation_id,
            issued_at=issued_at,
        )
