"""
SBO Event Bus — In-Memory Event Journal
==========================================
The single write path for events in a running SBO process.

    persist_event(event_data, context, registry, scope_requirement=...)

Write flow:
    1. Required fields present
    2. Event type registered
    3. Tenant context matches (tenant_id, organization ownership)
    4. Duplicate event_id rejected
    5. Append
    6. Dispatch to subscribers (after append only)

Any failing step returns a rejected PersistResult. Nothing is raised
for rejections and nothing is appended.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Dict, List, Optional

from core.commands.base import Command
from core.context.scope import SCOPE_ORGANIZATION_REQUIRED, SCOPE_TENANT_ALLOWED
from core.events.dispatcher import DispatchReport, dispatch
from core.events.errors import PersistRejectionCode
from core.events.registry import SubscriberRegistry

logger = logging.getLogger("sbo.events")

REQUIRED_EVENT_FIELDS = (
    "event_id",
    "event_type",
    "tenant_id",
    "actor_type",
    "actor_id",
    "payload",
)


@dataclass(frozen=True)
class EventRejection:
    code: str
    message: str


@dataclass(frozen=True)
class PersistResult:
    """
    accepted=True  → event appended (and dispatched)
    accepted=False → rejection explains why
    """

    accepted: bool
    event_id: Optional[Any] = None
    rejection: Optional[EventRejection] = None
    dispatch_result: Optional[DispatchReport] = None


def _reject(code: str, message: str, event_id: Any = None) -> PersistResult:
    logger.info(f"Event rejected [{code}]: {message}")
    return PersistResult(
        accepted=False,
        event_id=event_id,
        rejection=EventRejection(code=code, message=message),
    )


class InMemoryEventJournal:
    """
    Append-only journal of persisted events. Thread-safe.

    Instances are callable with the persist_event signature used by
    CommandBus and the engine services.
    """

    def __init__(self, subscriber_registry: SubscriberRegistry | None = None):
        self._subscriber_registry = subscriber_registry or SubscriberRegistry()
        self._events: List[dict] = []
        self._event_ids: set = set()
        self._lock = Lock()

    @property
    def subscriber_registry(self) -> SubscriberRegistry:
        return self._subscriber_registry

    def __call__(
        self,
        event_data: dict,
        context: Any,
        registry: Any,
        scope_requirement: str = SCOPE_TENANT_ALLOWED,
        **kwargs: Any,
    ) -> PersistResult:
        return self.persist_event(
            event_data=event_data,
            context=context,
            registry=registry,
            scope_requirement=scope_requirement,
        )

    def persist_event(
        self,
        *,
        event_data: dict,
        context: Any,
        registry: Any,
        scope_requirement: str = SCOPE_TENANT_ALLOWED,
    ) -> PersistResult:
        event_id = event_data.get("event_id")

        for field_name in REQUIRED_EVENT_FIELDS:
            if event_data.get(field_name) is None:
                return _reject(
                    PersistRejectionCode.MISSING_FIELD,
                    f"Required field '{field_name}' is missing.",
                    event_id,
                )

        event_type = event_data["event_type"]
        if registry is not None and not registry.is_registered(event_type):
            return _reject(
                PersistRejectionCode.EVENT_TYPE_UNKNOWN,
                f"Event type '{event_type}' is not registered.",
                event_id,
            )

        if context is None or not context.has_active_context():
            return _reject(
                PersistRejectionCode.NO_ACTIVE_CONTEXT,
                "No active tenant context.",
                event_id,
            )

        tenant_id = event_data["tenant_id"]
        if tenant_id != context.get_active_tenant_id():
            return _reject(
                PersistRejectionCode.TENANT_MISMATCH,
                f"Event tenant_id ({tenant_id}) does not match "
                f"active context ({context.get_active_tenant_id()}).",
                event_id,
            )

        organization_id = event_data.get("organization_id")
        if scope_requirement == SCOPE_ORGANIZATION_REQUIRED and organization_id is None:
            return _reject(
                PersistRejectionCode.ORGANIZATION_REQUIRED_MISSING,
                "Organization-scoped event requires organization_id.",
                event_id,
            )
        if organization_id is not None and not context.is_organization_in_tenant(
            organization_id, tenant_id
        ):
            return _reject(
                PersistRejectionCode.ORGANIZATION_NOT_IN_TENANT,
                f"organization_id ({organization_id}) does not belong to "
                f"tenant_id ({tenant_id}).",
                event_id,
            )

        with self._lock:
            if event_id in self._event_ids:
                return _reject(
                    PersistRejectionCode.DUPLICATE_EVENT,
                    f"Event '{event_id}' already persisted.",
                    event_id,
                )
            self._event_ids.add(event_id)
            self._events.append(dict(event_data))

        logger.info(f"Event persisted: {event_type} (event_id: {event_id})")

        dispatch_result = dispatch(event_data, self._subscriber_registry)
        return PersistResult(
            accepted=True,
            event_id=event_id,
            dispatch_result=dispatch_result,
        )

    # ── Read side ─────────────────────────────────────────────

    def events(self) -> List[dict]:
        with self._lock:
            return list(self._events)

    def events_of_type(self, event_type: str) -> List[dict]:
        with self._lock:
            return [e for e in self._events if e["event_type"] == event_type]

    def for_tenant(self, tenant_id: uuid.UUID) -> List[dict]:
        with self._lock:
            return [e for e in self._events if e["tenant_id"] == tenant_id]

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)


def build_event_factory() -> Callable[..., Dict[str, Any]]:
    """
    Event factory used by engine services.

    The first event of a command reuses command_id as event_id; follow-up
    events emitted by the same command get fresh ids and point back to
    the command through causation_id.
    """
    issued: set = set()
    lock = Lock()

    def _event_factory(*, command: Command, event_type: str, payload: dict) -> dict:
        with lock:
            if command.command_id in issued:
                event_id = uuid.uuid4()
                causation_id = command.command_id
            else:
                issued.add(command.command_id)
                event_id = command.command_id
                causation_id = None
        return {
            "event_id": event_id,
            "event_type": event_type,
            "event_version": 1,
            "tenant_id": command.tenant_id,
            "organization_id": command.organization_id,
            "source_engine": command.source_engine,
            "actor_type": command.actor_type,
            "actor_id": command.actor_id,
            "correlation_id": command.correlation_id,
            "causation_id": causation_id,
            "payload": dict(payload),
            "created_at": command.issued_at,
        }

    return _event_factory
