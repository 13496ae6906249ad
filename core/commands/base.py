"""
SBO Command Layer — Command
=============================
Every change to a quote, order, payment, tax rate or channel starts
life as a Command: a frozen request naming the tenant, organization,
actor and payload. A Command never reads storage and never computes
totals.

    sales.document.create.request
    sales.payment.record.request
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from core.context.scope import SCOPE_TENANT_ALLOWED, VALID_SCOPE_REQUIREMENTS

REQUEST_SUFFIX = ".request"
REJECTED_SUFFIX = ".rejected"

VALID_ACTOR_TYPES = frozenset({"HUMAN", "SYSTEM", "DEVICE"})

# Who may issue a command. Background recalculation jobs act as SYSTEM.
ACTOR_REQUIRED = "ACTOR_REQUIRED"
SYSTEM_ALLOWED = "SYSTEM_ALLOWED"

VALID_ACTOR_REQUIREMENTS = frozenset({ACTOR_REQUIRED, SYSTEM_ALLOWED})


def command_engine(command_type: str) -> str:
    """
    Engine namespace of a command type.

    Raises ValueError unless the type reads engine.domain.action.request.
    """
    if not command_type or not isinstance(command_type, str):
        raise ValueError("command_type must be a non-empty string.")

    if not command_type.endswith(REQUEST_SUFFIX):
        raise ValueError(
            f"command_type '{command_type}' must end with '.request' "
            f"(e.g. 'sales.document.create.request')."
        )

    parts = command_type.split(".")
    if len(parts) < 4 or not all(parts):
        raise ValueError(
            f"command_type '{command_type}' must follow "
            f"engine.domain.action.request format."
        )
    return parts[0]


@dataclass(frozen=True)
class Command:
    """
    Example:
        Command(
            command_id=uuid.uuid4(),
            command_type="sales.line.upsert.request",
            tenant_id=tenant_id,
            organization_id=organization_id,
            actor_type="HUMAN",
            actor_id="user-123",
            payload={"document_id": "q-1", "line": {...}},
            issued_at=datetime.now(timezone.utc),
            correlation_id=uuid.uuid4(),
            source_engine="sales",
        )
    """

    command_id: uuid.UUID
    command_type: str
    tenant_id: uuid.UUID
    organization_id: Optional[uuid.UUID]
    actor_type: str
    actor_id: str
    payload: dict
    issued_at: datetime
    correlation_id: uuid.UUID
    source_engine: str
    scope_requirement: str = SCOPE_TENANT_ALLOWED
    actor_requirement: str = ACTOR_REQUIRED

    def __post_init__(self):
        for name in ("command_id", "tenant_id", "correlation_id"):
            value = getattr(self, name)
            if not isinstance(value, uuid.UUID):
                raise ValueError(
                    f"{name} must be UUID, got {type(value).__name__}."
                )

        if self.organization_id is not None and not isinstance(
            self.organization_id, uuid.UUID
        ):
            raise ValueError("organization_id must be UUID or None.")

        engine = command_engine(self.command_type)
        if engine != self.source_engine:
            raise ValueError(
                f"command_type namespace '{engine}' does not match "
                f"source_engine '{self.source_engine}'."
            )

        if self.scope_requirement not in VALID_SCOPE_REQUIREMENTS:
            raise ValueError(
                f"scope_requirement '{self.scope_requirement}' not valid. "
                f"Must be one of: {sorted(VALID_SCOPE_REQUIREMENTS)}"
            )

        if self.actor_requirement not in VALID_ACTOR_REQUIREMENTS:
            raise ValueError(
                f"actor_requirement '{self.actor_requirement}' not valid. "
                f"Must be one of: {sorted(VALID_ACTOR_REQUIREMENTS)}"
            )

        if self.actor_type not in VALID_ACTOR_TYPES:
            raise ValueError(
                f"actor_type '{self.actor_type}' not valid. "
                f"Must be one of: {sorted(VALID_ACTOR_TYPES)}"
            )

        if not self.actor_id or not isinstance(self.actor_id, str):
            raise ValueError("actor_id must be a non-empty string.")

        if not isinstance(self.payload, dict):
            raise TypeError("payload must be a dict.")

    @property
    def action_type(self) -> str:
        """sales.payment.record.request → sales.payment.record"""
        return self.command_type[: -len(REQUEST_SUFFIX)]


def derive_rejection_event_type(command_type: str) -> str:
    """sales.payment.record.request → sales.payment.record.rejected"""
    command_engine(command_type)
    return command_type[: -len(REQUEST_SUFFIX)] + REJECTED_SUFFIX


def derive_source_engine(command_type: str) -> str:
    return command_engine(command_type)
