"""SBO Sales Engine - policies."""

from __future__ import annotations

from decimal import Decimal
from typing import Callable, Optional

from core.commands.base import Command
from core.commands.rejection import ReasonCode, RejectionReason
from engines.sales.commands import (
    SALES_ACTION_REDO_REQUEST,
    SALES_ACTION_UNDO_REQUEST,
    SALES_ADJUSTMENT_DELETE_REQUEST,
    SALES_ADJUSTMENT_UPSERT_REQUEST,
    SALES_DOCUMENT_CREATE_REQUEST,
    SALES_DOCUMENT_DELETE_REQUEST,
    SALES_DOCUMENT_UPDATE_REQUEST,
    SALES_LINE_DELETE_REQUEST,
    SALES_LINE_UPSERT_REQUEST,
    SALES_NOTE_ADD_REQUEST,
    SALES_NOTE_DELETE_REQUEST,
    SALES_PAYMENT_DELETE_REQUEST,
    SALES_PAYMENT_RECORD_REQUEST,
    SALES_PAYMENT_UPDATE_REQUEST,
    SALES_QUOTE_CONVERT_REQUEST,
    SALES_SHIPMENT_DELETE_REQUEST,
    SALES_SHIPMENT_RECORD_REQUEST,
    SALES_TAGS_SET_REQUEST,
    SALES_TAX_RATE_DELETE_REQUEST,
)

DOCUMENT_COMMAND_TYPES = frozenset({
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
})

ORDER_ONLY_COMMAND_TYPES = frozenset({
    SALES_PAYMENT_RECORD_REQUEST,
    SALES_PAYMENT_UPDATE_REQUEST,
    SALES_PAYMENT_DELETE_REQUEST,
    SALES_SHIPMENT_RECORD_REQUEST,
    SALES_SHIPMENT_DELETE_REQUEST,
})

# command type → (document collection, id key, missing code, duplicate code)
_CHILD_RULES = {
    SALES_LINE_DELETE_REQUEST: ("lines", "line_id", ReasonCode.LINE_NOT_FOUND, None),
    SALES_ADJUSTMENT_DELETE_REQUEST: (
        "adjustments", "adjustment_id", ReasonCode.ADJUSTMENT_NOT_FOUND, None,
    ),
    SALES_PAYMENT_RECORD_REQUEST: (
        "payments", "payment_id", None, ReasonCode.PAYMENT_ALREADY_EXISTS,
    ),
    SALES_PAYMENT_UPDATE_REQUEST: (
        "payments", "payment_id", ReasonCode.PAYMENT_NOT_FOUND, None,
    ),
    SALES_PAYMENT_DELETE_REQUEST: (
        "payments", "payment_id", ReasonCode.PAYMENT_NOT_FOUND, None,
    ),
    SALES_SHIPMENT_RECORD_REQUEST: (
        "shipments", "shipment_id", None, ReasonCode.SHIPMENT_ALREADY_EXISTS,
    ),
    SALES_SHIPMENT_DELETE_REQUEST: (
        "shipments", "shipment_id", ReasonCode.SHIPMENT_NOT_FOUND, None,
    ),
    SALES_NOTE_ADD_REQUEST: ("notes", "note_id", None, ReasonCode.NOTE_ALREADY_EXISTS),
    SALES_NOTE_DELETE_REQUEST: ("notes", "note_id", ReasonCode.NOTE_NOT_FOUND, None),
}

DocumentLookup = Callable[[str], Optional[dict]]


def document_must_exist_policy(
    command: Command, document_lookup: DocumentLookup
) -> RejectionReason | None:
    if command.command_type not in DOCUMENT_COMMAND_TYPES:
        return None
    document_id = command.payload.get("document_id", "")
    if document_id and document_lookup(document_id) is None:
        return RejectionReason(
            code=ReasonCode.DOCUMENT_NOT_FOUND,
            message=f"Document '{document_id}' not found.",
            policy_name="document_must_exist_policy",
        )
    return None


def document_must_not_exist_policy(
    command: Command, document_lookup: DocumentLookup
) -> RejectionReason | None:
    if command.command_type == SALES_DOCUMENT_CREATE_REQUEST:
        document_id = command.payload.get("document_id", "")
    elif command.command_type == SALES_QUOTE_CONVERT_REQUEST:
        document_id = command.payload.get("order_id", "")
    else:
        return None
    if document_id and document_lookup(document_id) is not None:
        return RejectionReason(
            code=ReasonCode.DOCUMENT_ALREADY_EXISTS,
            message=f"Document '{document_id}' already exists.",
            policy_name="document_must_not_exist_policy",
        )
    return None


def document_kind_must_match_policy(
    command: Command, document_lookup: DocumentLookup
) -> RejectionReason | None:
    """Conversion applies to quotes; payments and shipments to orders."""
    if command.command_type == SALES_QUOTE_CONVERT_REQUEST:
        required_kind = "quote"
    elif command.command_type in ORDER_ONLY_COMMAND_TYPES:
        required_kind = "order"
    else:
        return None

    document = document_lookup(command.payload.get("document_id", ""))
    if document is None:
        return None
    if document["document_kind"] != required_kind:
        return RejectionReason(
            code=ReasonCode.DOCUMENT_KIND_MISMATCH,
            message=(
                f"{command.command_type} applies to {required_kind}s only; "
                f"document '{document['document_id']}' is a "
                f"{document['document_kind']}."
            ),
            policy_name="document_kind_must_match_policy",
        )
    return None


def quote_must_not_be_converted_policy(
    command: Command, document_lookup: DocumentLookup
) -> RejectionReason | None:
    if command.command_type != SALES_QUOTE_CONVERT_REQUEST:
        return None
    document = document_lookup(command.payload.get("document_id", ""))
    if document is None or not document.get("converted_to_order_id"):
        return None
    return RejectionReason(
        code=ReasonCode.QUOTE_ALREADY_CONVERTED,
        message=(
            f"Quote '{document['document_id']}' already converted to "
            f"order '{document['converted_to_order_id']}'."
        ),
        policy_name="quote_must_not_be_converted_policy",
    )


def payment_currency_must_match_policy(
    command: Command, document_lookup: DocumentLookup
) -> RejectionReason | None:
    if command.command_type != SALES_PAYMENT_RECORD_REQUEST:
        return None
    document = document_lookup(command.payload.get("document_id", ""))
    if document is None:
        return None
    currency_code = command.payload.get("currency_code")
    if currency_code != document["currency_code"]:
        return RejectionReason(
            code=ReasonCode.CURRENCY_MISMATCH,
            message=(
                f"Payment currency {currency_code} does not match "
                f"document currency {document['currency_code']}."
            ),
            policy_name="payment_currency_must_match_policy",
        )
    return None


def document_entry_policy(
    command: Command, document_lookup: DocumentLookup
) -> RejectionReason | None:
    """Entries (lines, payments, shipments, notes) must exist for edits and be new for inserts."""
    rule = _CHILD_RULES.get(command.command_type)
    if rule is None:
        return None
    collection, id_key, missing_code, duplicate_code = rule
    document = document_lookup(command.payload.get("document_id", ""))
    if document is None:
        return None

    entry_id = command.payload.get(id_key)
    exists = any(
        entry.get(id_key) == entry_id for entry in document.get(collection, ())
    )
    if missing_code is not None and not exists:
        return RejectionReason(
            code=missing_code,
            message=f"{id_key} '{entry_id}' not found on document.",
            policy_name="document_entry_policy",
        )
    if duplicate_code is not None and exists:
        return RejectionReason(
            code=duplicate_code,
            message=f"{id_key} '{entry_id}' already exists on document.",
            policy_name="document_entry_policy",
        )
    return None


def shipment_must_not_exceed_ordered_policy(
    command: Command, document_lookup: DocumentLookup
) -> RejectionReason | None:
    if command.command_type != SALES_SHIPMENT_RECORD_REQUEST:
        return None
    document = document_lookup(command.payload.get("document_id", ""))
    if document is None:
        return None

    ordered = {
        line["line_id"]: Decimal(str(line["quantity"]))
        for line in document.get("lines", ())
    }
    fulfilled = document.get("fulfilled_quantities") or {}
    requested: dict = {}
    for item in command.payload.get("items", ()):
        line_id = item["line_id"]
        requested[line_id] = requested.get(line_id, Decimal("0")) + Decimal(
            str(item["quantity"])
        )

    for line_id, quantity in sorted(requested.items()):
        if line_id not in ordered:
            return RejectionReason(
                code=ReasonCode.LINE_NOT_FOUND,
                message=f"line_id '{line_id}' not found on document.",
                policy_name="shipment_must_not_exceed_ordered_policy",
            )
        remaining = ordered[line_id] - Decimal(str(fulfilled.get(line_id, "0")))
        if quantity > remaining:
            return RejectionReason(
                code=ReasonCode.SHIPMENT_EXCEEDS_ORDERED,
                message=(
                    f"Shipping {quantity} of line '{line_id}' exceeds "
                    f"remaining quantity {remaining}."
                ),
                policy_name="shipment_must_not_exceed_ordered_policy",
            )
    return None


def tax_rate_must_exist_policy(
    command: Command, tax_rate_lookup: Callable[[str], Optional[dict]]
) -> RejectionReason | None:
    if command.command_type != SALES_TAX_RATE_DELETE_REQUEST:
        return None
    tax_rate_id = command.payload.get("tax_rate_id", "")
    if tax_rate_id and tax_rate_lookup(tax_rate_id) is None:
        return RejectionReason(
            code=ReasonCode.TAX_RATE_NOT_FOUND,
            message=f"Tax rate '{tax_rate_id}' not found.",
            policy_name="tax_rate_must_exist_policy",
        )
    return None


def undo_token_policy(
    command: Command, action_lookup
) -> RejectionReason | None:
    """
    Undo needs a live entry of the same tenant; redo needs an undone one.
    """
    if command.command_type not in (SALES_ACTION_UNDO_REQUEST, SALES_ACTION_REDO_REQUEST):
        return None
    undo_token = command.payload.get("undo_token", "")
    entry = action_lookup(undo_token)
    if entry is None or entry.tenant_id != command.tenant_id:
        return RejectionReason(
            code=ReasonCode.UNDO_TOKEN_UNKNOWN,
            message=f"Undo token '{undo_token}' not found.",
            policy_name="undo_token_policy",
        )
    if command.command_type == SALES_ACTION_UNDO_REQUEST and entry.is_undone:
        return RejectionReason(
            code=ReasonCode.ALREADY_UNDONE,
            message=f"Action '{undo_token}' is already undone.",
            policy_name="undo_token_policy",
        )
    if command.command_type == SALES_ACTION_REDO_REQUEST and not entry.is_undone:
        return RejectionReason(
            code=ReasonCode.NOT_UNDONE,
            message=f"Action '{undo_token}' has not been undone.",
            policy_name="undo_token_policy",
        )
    return None


DOCUMENT_POLICIES = (
    document_must_exist_policy,
    document_must_not_exist_policy,
    document_kind_must_match_policy,
    quote_must_not_be_converted_policy,
    payment_currency_must_match_policy,
    document_entry_policy,
    shipment_must_not_exceed_ordered_policy,
)


def evaluate_sales_policies(
    command: Command,
    *,
    document_lookup: DocumentLookup,
    tax_rate_lookup: Callable[[str], Optional[dict]],
    action_lookup,
) -> RejectionReason | None:
    """Run every sales policy in order. First rejection wins."""
    for policy in DOCUMENT_POLICIES:
        rejection = policy(command, document_lookup)
        if rejection is not None:
            return rejection

    rejection = tax_rate_must_exist_policy(command, tax_rate_lookup)
    if rejection is not None:
        return rejection

    return undo_token_policy(command, action_lookup)
