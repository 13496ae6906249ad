"""SBO Sales Engine - event types and payload builders."""

from __future__ import annotations

from typing import Optional

from core.commands.base import Command

SALES_DOCUMENT_CREATED_V1 = "sales.document.created.v1"
SALES_DOCUMENT_UPDATED_V1 = "sales.document.updated.v1"
SALES_DOCUMENT_DELETED_V1 = "sales.document.deleted.v1"
SALES_LINE_UPSERTED_V1 = "sales.line.upserted.v1"
SALES_LINE_DELETED_V1 = "sales.line.deleted.v1"
SALES_ADJUSTMENT_UPSERTED_V1 = "sales.adjustment.upserted.v1"
SALES_ADJUSTMENT_DELETED_V1 = "sales.adjustment.deleted.v1"
SALES_QUOTE_CONVERTED_V1 = "sales.quote.converted.v1"
SALES_PAYMENT_RECORDED_V1 = "sales.payment.recorded.v1"
SALES_PAYMENT_UPDATED_V1 = "sales.payment.updated.v1"
SALES_PAYMENT_DELETED_V1 = "sales.payment.deleted.v1"
SALES_SHIPMENT_RECORDED_V1 = "sales.shipment.recorded.v1"
SALES_SHIPMENT_DELETED_V1 = "sales.shipment.deleted.v1"
SALES_NOTE_ADDED_V1 = "sales.note.added.v1"
SALES_NOTE_DELETED_V1 = "sales.note.deleted.v1"
SALES_TAGS_SET_V1 = "sales.tags.set.v1"
SALES_TAX_RATE_CONFIGURED_V1 = "sales.tax_rate.configured.v1"
SALES_TAX_RATE_DELETED_V1 = "sales.tax_rate.deleted.v1"
SALES_CHANNEL_CONFIGURED_V1 = "sales.channel.configured.v1"
SALES_ACTION_UNDONE_V1 = "sales.action.undone.v1"
SALES_ACTION_REDONE_V1 = "sales.action.redone.v1"
SALES_DOCUMENT_TOTALS_CALCULATED_V1 = "sales.document.totals_calculated.v1"

SALES_EVENT_TYPES = (
    SALES_DOCUMENT_CREATED_V1,
    SALES_DOCUMENT_UPDATED_V1,
    SALES_DOCUMENT_DELETED_V1,
    SALES_LINE_UPSERTED_V1,
    SALES_LINE_DELETED_V1,
    SALES_ADJUSTMENT_UPSERTED_V1,
    SALES_ADJUSTMENT_DELETED_V1,
    SALES_QUOTE_CONVERTED_V1,
    SALES_PAYMENT_RECORDED_V1,
    SALES_PAYMENT_UPDATED_V1,
    SALES_PAYMENT_DELETED_V1,
    SALES_SHIPMENT_RECORDED_V1,
    SALES_SHIPMENT_DELETED_V1,
    SALES_NOTE_ADDED_V1,
    SALES_NOTE_DELETED_V1,
    SALES_TAGS_SET_V1,
    SALES_TAX_RATE_CONFIGURED_V1,
    SALES_TAX_RATE_DELETED_V1,
    SALES_CHANNEL_CONFIGURED_V1,
    SALES_ACTION_UNDONE_V1,
    SALES_ACTION_REDONE_V1,
    SALES_DOCUMENT_TOTALS_CALCULATED_V1,
)

COMMAND_TO_EVENT_TYPE = {
    "sales.document.create.request": SALES_DOCUMENT_CREATED_V1,
    "sales.document.update.request": SALES_DOCUMENT_UPDATED_V1,
    "sales.document.delete.request": SALES_DOCUMENT_DELETED_V1,
    "sales.line.upsert.request": SALES_LINE_UPSERTED_V1,
    "sales.line.delete.request": SALES_LINE_DELETED_V1,
    "sales.adjustment.upsert.request": SALES_ADJUSTMENT_UPSERTED_V1,
    "sales.adjustment.delete.request": SALES_ADJUSTMENT_DELETED_V1,
    "sales.quote.convert.request": SALES_QUOTE_CONVERTED_V1,
    "sales.payment.record.request": SALES_PAYMENT_RECORDED_V1,
    "sales.payment.update.request": SALES_PAYMENT_UPDATED_V1,
    "sales.payment.delete.request": SALES_PAYMENT_DELETED_V1,
    "sales.shipment.record.request": SALES_SHIPMENT_RECORDED_V1,
    "sales.shipment.delete.request": SALES_SHIPMENT_DELETED_V1,
    "sales.note.add.request": SALES_NOTE_ADDED_V1,
    "sales.note.delete.request": SALES_NOTE_DELETED_V1,
    "sales.tags.set.request": SALES_TAGS_SET_V1,
    "sales.tax_rate.configure.request": SALES_TAX_RATE_CONFIGURED_V1,
    "sales.tax_rate.delete.request": SALES_TAX_RATE_DELETED_V1,
    "sales.channel.configure.request": SALES_CHANNEL_CONFIGURED_V1,
    "sales.action.undo.request": SALES_ACTION_UNDONE_V1,
    "sales.action.redo.request": SALES_ACTION_REDONE_V1,
}


def resolve_sales_event_type(command_type: str) -> str | None:
    return COMMAND_TO_EVENT_TYPE.get(command_type)


def register_sales_event_types(event_type_registry) -> None:
    for et in sorted(SALES_EVENT_TYPES):
        event_type_registry.register(et)


def _base_payload(command: Command) -> dict:
    return {
        "tenant_id": command.tenant_id,
        "organization_id": command.organization_id,
        "actor_id": command.actor_id,
        "actor_type": command.actor_type,
        "correlation_id": command.correlation_id,
        "command_id": command.command_id,
    }


def build_state_changed_payload(
    command: Command,
    *,
    resource_kind: str,
    resource_id: str,
    state: Optional[dict],
) -> dict:
    """
    Payload of every state-changing sales event. state is the full
    resulting resource state (None after a deletion).
    """
    payload = _base_payload(command)
    payload.update({
        "resource_kind": resource_kind,
        "resource_id": resource_id,
        "state": state,
        "occurred_at": command.issued_at,
    })
    return payload


def build_action_replayed_payload(
    command: Command,
    *,
    undo_token: str,
    target_command_type: str,
    resource_kind: str,
    resource_id: str,
    state: Optional[dict],
) -> dict:
    payload = build_state_changed_payload(
        command,
        resource_kind=resource_kind,
        resource_id=resource_id,
        state=state,
    )
    payload.update({
        "undo_token": undo_token,
        "target_command_type": target_command_type,
    })
    return payload


def build_totals_calculated_payload(command: Command, document: dict) -> dict:
    payload = _base_payload(command)
    payload.update({
        "document_id": document["document_id"],
        "document_kind": document["document_kind"],
        "currency_code": document["currency_code"],
        "totals": dict(document["totals"]),
        "calculated_at": command.issued_at,
    })
    return payload
