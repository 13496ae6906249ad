"""
SBO Command Layer — Rejections
================================
Why a command was refused. The reason travels inside the
`...rejected` event, so code and message must be deterministic.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class RejectionReason:
    code: str
    message: str
    policy_name: str

    def __post_init__(self):
        for name in ("code", "message", "policy_name"):
            value = getattr(self, name)
            if not value or not isinstance(value, str):
                raise ValueError(f"{name} must be a non-empty string.")

    def to_dict(self) -> dict:
        return asdict(self)


class ReasonCode:
    # tenant and scope
    TENANT_SUSPENDED = "TENANT_SUSPENDED"
    TENANT_CLOSED = "TENANT_CLOSED"
    TENANT_MISMATCH = "TENANT_MISMATCH"
    NO_ACTIVE_CONTEXT = "NO_ACTIVE_CONTEXT"
    INVALID_CONTEXT = "INVALID_CONTEXT"
    ORGANIZATION_REQUIRED_MISSING = "ORGANIZATION_REQUIRED_MISSING"
    ORGANIZATION_NOT_IN_TENANT = "ORGANIZATION_NOT_IN_TENANT"

    # command shape and actor
    INVALID_COMMAND_STRUCTURE = "INVALID_COMMAND_STRUCTURE"
    INVALID_COMMAND_TYPE = "INVALID_COMMAND_TYPE"
    INVALID_NAMESPACE = "INVALID_NAMESPACE"
    INVALID_ACTOR = "INVALID_ACTOR"
    SYSTEM_ACTOR_FORBIDDEN = "SYSTEM_ACTOR_FORBIDDEN"

    # documents
    DOCUMENT_NOT_FOUND = "DOCUMENT_NOT_FOUND"
    DOCUMENT_ALREADY_EXISTS = "DOCUMENT_ALREADY_EXISTS"
    DOCUMENT_KIND_MISMATCH = "DOCUMENT_KIND_MISMATCH"
    QUOTE_ALREADY_CONVERTED = "QUOTE_ALREADY_CONVERTED"
    LINE_NOT_FOUND = "LINE_NOT_FOUND"
    ADJUSTMENT_NOT_FOUND = "ADJUSTMENT_NOT_FOUND"
    NOTE_NOT_FOUND = "NOTE_NOT_FOUND"
    NOTE_ALREADY_EXISTS = "NOTE_ALREADY_EXISTS"

    # payments and fulfilment
    CURRENCY_MISMATCH = "CURRENCY_MISMATCH"
    PAYMENT_NOT_FOUND = "PAYMENT_NOT_FOUND"
    PAYMENT_ALREADY_EXISTS = "PAYMENT_ALREADY_EXISTS"
    SHIPMENT_NOT_FOUND = "SHIPMENT_NOT_FOUND"
    SHIPMENT_ALREADY_EXISTS = "SHIPMENT_ALREADY_EXISTS"
    SHIPMENT_EXCEEDS_ORDERED = "SHIPMENT_EXCEEDS_ORDERED"

    # configuration
    TAX_RATE_NOT_FOUND = "TAX_RATE_NOT_FOUND"

    # undo / redo
    UNDO_TOKEN_UNKNOWN = "UNDO_TOKEN_UNKNOWN"
    ALREADY_UNDONE = "ALREADY_UNDONE"
    NOT_UNDONE = "NOT_UNDONE"
