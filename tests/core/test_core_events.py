"""
SBO Event Bus — Tests
=======================
Type registry, subscriber registry, dispatch isolation and the
in-memory journal's persist checks.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import pytest

from core.commands.base import Command
from core.context import TenantContext
from core.context.scope import SCOPE_ORGANIZATION_REQUIRED
from core.events import (
    DuplicateSubscriberError,
    EventTypeRegistry,
    InMemoryEventJournal,
    InvalidEventType,
    PersistRejectionCode,
    SelfSubscriptionError,
    SubscriberRegistry,
    build_event_factory,
    dispatch,
)

BIZ = uuid.uuid4()
ORG = uuid.uuid4()
NOW = datetime(2026, 3, 2, 10, 0, 0, tzinfo=timezone.utc)
EVENT_TYPE = "sales.document.created.v1"


def make_event(**overrides) -> dict:
    event = {
        "event_id": uuid.uuid4(),
        "event_type": EVENT_TYPE,
        "event_version": 1,
        "tenant_id": BIZ,
        "organization_id": ORG,
        "source_engine": "sales",
        "actor_type": "HUMAN",
        "actor_id": "user-1",
        "correlation_id": uuid.uuid4(),
        "causation_id": None,
        "payload": {"document_id": "q-1"},
        "created_at": NOW,
    }
    event.update(overrides)
    return event


@pytest.fixture
def registry():
    reg = EventTypeRegistry()
    reg.register(EVENT_TYPE)
    return reg


@pytest.fixture
def context():
    return TenantContext.with_organizations(BIZ, {ORG})


class TestEventTypeRegistry:
    def test_register_and_lookup(self, registry):
        assert registry.is_registered(EVENT_TYPE)
        assert not registry.is_registered("sales.document.deleted.v1")
        assert registry.count() == 1

    def test_rejects_short_names(self):
        with pytest.raises(ValueError, match="engine.domain.action"):
            EventTypeRegistry().register("sales.created")

    def test_rejects_empty(self):
        with pytest.raises(ValueError):
            EventTypeRegistry().register("")


class TestSubscriberRegistry:
    def test_register_and_count(self):
        reg = SubscriberRegistry()
        reg.subscribe(EVENT_TYPE, lambda e: None, engine="reporting")
        assert reg.has_subscribers(EVENT_TYPE)
        assert reg.subscriber_count(EVENT_TYPE) == 1

    def test_duplicate_handler_rejected(self):
        reg = SubscriberRegistry()

        def handler(event):
            return None

        reg.subscribe(EVENT_TYPE, handler, engine="reporting")
        with pytest.raises(DuplicateSubscriberError):
            reg.subscribe(EVENT_TYPE, handler, engine="reporting")

    def test_self_subscription_blocked(self):
        with pytest.raises(SelfSubscriptionError):
            SubscriberRegistry().subscribe(EVENT_TYPE, lambda e: None, engine="sales")

    def test_self_subscription_explicit(self):
        reg = SubscriberRegistry()
        reg.subscribe(EVENT_TYPE, lambda e: None, engine="sales", allow_self=True)
        assert reg.subscriber_count(EVENT_TYPE) == 1

    def test_invalid_format(self):
        with pytest.raises(InvalidEventType):
            SubscriberRegistry().subscribe("bad", lambda e: None, engine="x")


class TestDispatch:
    def test_failing_subscriber_does_not_stop_others(self):
        reg = SubscriberRegistry()
        received = []

        def broken(event):
            raise RuntimeError("boom")

        reg.subscribe(EVENT_TYPE, broken, engine="reporting")
        reg.subscribe(EVENT_TYPE, received.append, engine="notifications")

        result = dispatch(make_event(), reg)

        assert result.notified == 1
        assert result.failed == 1
        assert result.failures[0].error_type == "RuntimeError"
        assert result.failures[0].engine == "reporting"
        assert len(received) == 1

    def test_no_subscribers(self):
        result = dispatch(make_event(), SubscriberRegistry())
        assert result.notified == 0
        assert result.failures == []


class TestEventJournal:
    def test_persist_and_dispatch(self, registry, context):
        received = []
        subscribers = SubscriberRegistry()
        subscribers.subscribe(EVENT_TYPE, received.append, engine="reporting")
        journal = InMemoryEventJournal(subscribers)

        result = journal(make_event(), context, registry)

        assert result.accepted
        assert len(journal) == 1
        assert len(received) == 1
        assert result.dispatch_result.notified == 1

    def test_unregistered_type_rejected(self, registry, context):
        journal = InMemoryEventJournal()
        result = journal.persist_event(
            event_data=make_event(event_type="sales.document.deleted.v1"),
            context=context,
            registry=registry,
        )
        assert not result.accepted
        assert result.rejection.code == PersistRejectionCode.EVENT_TYPE_UNKNOWN
        assert len(journal) == 0

    def test_missing_field_rejected(self, registry, context):
        result = InMemoryEventJournal()(make_event(actor_id=None), context, registry)
        assert result.rejection.code == PersistRejectionCode.MISSING_FIELD

    def test_tenant_mismatch_rejected(self, registry, context):
        result = InMemoryEventJournal()(
            make_event(tenant_id=uuid.uuid4()), context, registry
        )
        assert result.rejection.code == PersistRejectionCode.TENANT_MISMATCH

    def test_foreign_organization_rejected(self, registry, context):
        result = InMemoryEventJournal()(
            make_event(organization_id=uuid.uuid4()), context, registry
        )
        assert result.rejection.code == PersistRejectionCode.ORGANIZATION_NOT_IN_TENANT

    def test_organization_required(self, registry, context):
        result = InMemoryEventJournal()(
            make_event(organization_id=None),
            context,
            registry,
            scope_requirement=SCOPE_ORGANIZATION_REQUIRED,
        )
        assert result.rejection.code == PersistRejectionCode.ORGANIZATION_REQUIRED_MISSING

    def test_inactive_context_rejected(self, registry):
        ctx = TenantContext(tenant_id=BIZ, active=False)
        result = InMemoryEventJournal()(make_event(), ctx, registry)
        assert result.rejection.code == PersistRejectionCode.NO_ACTIVE_CONTEXT

    def test_duplicate_event_rejected(self, registry, context):
        journal = InMemoryEventJournal()
        event = make_event()
        assert journal(event, context, registry).accepted
        result = journal(event, context, registry)
        assert result.rejection.code == PersistRejectionCode.DUPLICATE_EVENT
        assert len(journal) == 1

    def test_read_side(self, registry, context):
        registry.register("sales.document.deleted.v1")
        journal = InMemoryEventJournal()
        journal(make_event(), context, registry)
        journal(make_event(event_type="sales.document.deleted.v1"), context, registry)

        assert len(journal.events_of_type(EVENT_TYPE)) == 1
        assert len(journal.for_tenant(BIZ)) == 2
        assert journal.for_tenant(uuid.uuid4()) == []


class TestEventFactory:
    def _command(self):
        return Command(
            command_id=uuid.uuid4(),
            command_type="sales.document.create.request",
            tenant_id=BIZ,
            organization_id=ORG,
            actor_type="HUMAN",
            actor_id="user-1",
            payload={},
            issued_at=NOW,
            correlation_id=uuid.uuid4(),
            source_engine="sales",
        )

    def test_first_event_reuses_command_id(self):
        factory = build_event_factory()
        cmd = self._command()
        event = factory(command=cmd, event_type=EVENT_TYPE, payload={"a": 1})

        assert event["event_id"] == cmd.command_id
        assert event["causation_id"] is None
        assert event["tenant_id"] == BIZ
        assert event["organization_id"] == ORG
        assert event["created_at"] == NOW

    def test_follow_up_events_point_to_command(self):
        factory = build_event_factory()
        cmd = self._command()
        factory(command=cmd, event_type=EVENT_TYPE, payload={})
        second = factory(
            command=cmd, event_type="sales.document.totals_calculated.v1", payload={}
        )

        assert second["event_id"] != cmd.command_id
        assert second["causation_id"] == cmd.command_id
