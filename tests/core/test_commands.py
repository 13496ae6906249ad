"""
SBO Command Layer — Tests
===========================
Command shape, tenant validation, dispatcher policies, the bus and
the rejection events it writes.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

import pytest

from core.commands.base import (
    SYSTEM_ALLOWED,
    Command,
    command_engine,
    derive_rejection_event_type,
    derive_source_engine,
)
from core.commands.outcomes import CommandOutcome, CommandStatus
from core.commands.rejection import RejectionReason, ReasonCode
from core.commands.validator import CommandValidationError, validate_command
from core.commands.dispatcher import CommandDispatcher, system_actor_guard
from core.commands.bus import (
    CommandBus,
    NoHandlerRegistered,
    is_persist_accepted,
)
from core.context import TenantContext
from core.context.scope import (
    SCOPE_ORGANIZATION_REQUIRED,
    ScopeViolation,
    enforce_scope_guard,
)


# ══════════════════════════════════════════════════════════════
# TEST INFRASTRUCTURE — STUBS
# ══════════════════════════════════════════════════════════════

class StubContext:
    def __init__(
        self,
        active: bool = True,
        tenant_id: Optional[uuid.UUID] = None,
        organizations: Optional[set] = None,
        state: str = "ACTIVE",
    ):
        self._active = active
        self._tenant_id = tenant_id or uuid.uuid4()
        self._organizations = organizations or set()
        self._state = state

    def has_active_context(self) -> bool:
        return self._active

    def get_active_tenant_id(self):
        return self._tenant_id

    def is_organization_in_tenant(self, organization_id, tenant_id) -> bool:
        return organization_id in self._organizations

    def get_tenant_lifecycle_state(self) -> str:
        return self._state


class StubEngineService:
    def __init__(self, return_value: Any = "executed"):
        self.executed_commands = []
        self.return_value = return_value

    def execute(self, command: Command) -> Any:
        self.executed_commands.append(command)
        return self.return_value


class StubPersistEvent:
    def __init__(self):
        self.persisted_events = []

    def __call__(self, event_data: dict, context: Any, registry: Any, **kwargs) -> Any:
        self.persisted_events.append(event_data)
        return {"accepted": True}


class StubEventTypeRegistry:
    def __init__(self):
        self._registered = set()

    def register(self, event_type: str) -> None:
        self._registered.add(event_type)

    def is_registered(self, event_type: str) -> bool:
        return event_type in self._registered


TENANT_ID = uuid.uuid4()
ORGANIZATION_ID = uuid.uuid4()


def make_command(**overrides) -> Command:
    fields = dict(
        command_id=uuid.uuid4(),
        command_type="sales.line.upsert.request",
        tenant_id=TENANT_ID,
        organization_id=ORGANIZATION_ID,
        actor_type="HUMAN",
        actor_id="user-123",
        payload={"document_id": "q-1", "line": {"line_id": "l-1", "quantity": 1}},
        issued_at=datetime.now(timezone.utc),
        correlation_id=uuid.uuid4(),
        source_engine="sales",
    )
    fields.update(overrides)
    return Command(**fields)


@pytest.fixture
def context():
    return StubContext(tenant_id=TENANT_ID, organizations={ORGANIZATION_ID})


@pytest.fixture
def dispatcher(context):
    d = CommandDispatcher(context=context)
    d.register_policy(system_actor_guard)
    return d


@pytest.fixture
def persist_event_stub():
    return StubPersistEvent()


@pytest.fixture
def event_type_registry():
    return StubEventTypeRegistry()


@pytest.fixture
def command_bus(dispatcher, persist_event_stub, context, event_type_registry):
    return CommandBus(
        dispatcher=dispatcher,
        persist_event=persist_event_stub,
        context=context,
        event_type_registry=event_type_registry,
    )


# ══════════════════════════════════════════════════════════════
# COMMAND SHAPE
# ══════════════════════════════════════════════════════════════

class TestCommandStructure:
    def test_command_type_without_request_suffix(self):
        with pytest.raises(ValueError, match=".request"):
            make_command(command_type="sales.line.upserted")

    def test_command_type_too_few_segments(self):
        with pytest.raises(ValueError, match="engine.domain.action.request"):
            make_command(command_type="sales.upsert.request")

    def test_namespace_must_match_source_engine(self):
        with pytest.raises(ValueError, match="namespace.*does not match"):
            make_command(source_engine="billing")

    def test_invalid_actor_type(self):
        with pytest.raises(ValueError, match="actor_type"):
            make_command(actor_type="ROBOT")

    def test_payload_not_dict(self):
        with pytest.raises(TypeError, match="payload"):
            make_command(payload="not a dict")

    def test_tenant_id_must_be_uuid(self):
        with pytest.raises(ValueError, match="tenant_id"):
            make_command(tenant_id="tenant-1")

    def test_organization_id_must_be_uuid(self):
        with pytest.raises(ValueError, match="organization_id"):
            make_command(organization_id="org-1")

    def test_command_is_frozen(self):
        cmd = make_command()
        with pytest.raises(AttributeError):
            cmd.command_type = "hacked"

    def test_action_type(self):
        assert make_command().action_type == "sales.line.upsert"


class TestEventNaming:
    def test_rejection_event_derivation(self):
        assert (
            derive_rejection_event_type("sales.payment.record.request")
            == "sales.payment.record.rejected"
        )

    def test_source_engine_derivation(self):
        assert derive_source_engine("sales.document.create.request") == "sales"
        assert command_engine("sales.tax_rate.configure.request") == "sales"

    def test_rejection_derivation_requires_request_suffix(self):
        with pytest.raises(ValueError):
            derive_rejection_event_type("sales.payment.recorded")


class TestOutcome:
    def test_rejected_needs_reason(self):
        with pytest.raises(ValueError, match="needs"):
            CommandOutcome(uuid.uuid4(), CommandStatus.REJECTED, None,
                           datetime.now(timezone.utc))

    def test_accepted_carries_no_reason(self):
        reason = RejectionReason(code="X", message="x", policy_name="p")
        with pytest.raises(ValueError, match="must not carry"):
            CommandOutcome(uuid.uuid4(), CommandStatus.ACCEPTED, reason,
                           datetime.now(timezone.utc))

    def test_reason_fields_required(self):
        with pytest.raises(ValueError, match="policy_name"):
            RejectionReason(code="X", message="x", policy_name="")


# ══════════════════════════════════════════════════════════════
# TENANT CONTEXT & SCOPE
# ══════════════════════════════════════════════════════════════

class TestTenantContext:
    def test_listed_organizations_only(self):
        ctx = TenantContext.with_organizations(TENANT_ID, {ORGANIZATION_ID})
        assert ctx.is_organization_in_tenant(ORGANIZATION_ID, TENANT_ID)
        assert not ctx.is_organization_in_tenant(uuid.uuid4(), TENANT_ID)

    def test_other_tenant_never_owns_organization(self):
        ctx = TenantContext(tenant_id=TENANT_ID)
        assert ctx.is_organization_in_tenant(uuid.uuid4(), TENANT_ID)
        assert not ctx.is_organization_in_tenant(ORGANIZATION_ID, uuid.uuid4())

    def test_inactive_context_has_no_tenant(self):
        ctx = TenantContext(tenant_id=TENANT_ID, active=False)
        assert ctx.get_active_tenant_id() is None

    def test_unknown_state(self):
        with pytest.raises(ValueError, match="state"):
            TenantContext(tenant_id=TENANT_ID, state="ARCHIVED")

    def test_real_context_passes_validation(self):
        ctx = TenantContext.with_organizations(TENANT_ID, {ORGANIZATION_ID})
        validate_command(make_command(), ctx)


class TestScopeGuard:
    def test_organization_required(self):
        cmd = make_command(
            organization_id=None, scope_requirement=SCOPE_ORGANIZATION_REQUIRED
        )
        with pytest.raises(ScopeViolation, match="Scope violation"):
            enforce_scope_guard(cmd)

    def test_tenant_scope_without_organization(self):
        enforce_scope_guard(make_command(organization_id=None))


# ══════════════════════════════════════════════════════════════
# VALIDATION
# ══════════════════════════════════════════════════════════════

class TestValidation:
    def test_valid_command_passes(self, context):
        validate_command(make_command(), context)

    def test_no_active_context(self):
        with pytest.raises(CommandValidationError) as exc:
            validate_command(make_command(), StubContext(active=False))
        assert exc.value.code == ReasonCode.NO_ACTIVE_CONTEXT

    def test_invalid_context_object(self):
        with pytest.raises(CommandValidationError) as exc:
            validate_command(make_command(), None)
        assert exc.value.code == ReasonCode.INVALID_CONTEXT

    @pytest.mark.parametrize("state, code", [
        ("SUSPENDED", ReasonCode.TENANT_SUSPENDED),
        ("CLOSED", ReasonCode.TENANT_CLOSED),
    ])
    def test_inactive_tenant_rejected(self, state, code):
        ctx = StubContext(
            tenant_id=TENANT_ID, organizations={ORGANIZATION_ID}, state=state
        )
        with pytest.raises(CommandValidationError) as exc:
            validate_command(make_command(), ctx)
        assert exc.value.code == code

    def test_tenant_mismatch(self):
        ctx = StubContext(tenant_id=uuid.uuid4(), organizations={ORGANIZATION_ID})
        with pytest.raises(CommandValidationError) as exc:
            validate_command(make_command(), ctx)
        assert exc.value.code == ReasonCode.TENANT_MISMATCH

    def test_organization_required(self, context):
        cmd = make_command(
            organization_id=None, scope_requirement=SCOPE_ORGANIZATION_REQUIRED
        )
        with pytest.raises(CommandValidationError) as exc:
            validate_command(cmd, context)
        assert exc.value.code == ReasonCode.ORGANIZATION_REQUIRED_MISSING

    def test_foreign_organization_rejected(self, context):
        with pytest.raises(CommandValidationError) as exc:
            validate_command(make_command(organization_id=uuid.uuid4()), context)
        assert exc.value.code == ReasonCode.ORGANIZATION_NOT_IN_TENANT


# ══════════════════════════════════════════════════════════════
# DISPATCHER
# ══════════════════════════════════════════════════════════════

class TestDispatcher:
    def test_valid_command_accepted(self, dispatcher):
        cmd = make_command()
        outcome = dispatcher.dispatch(cmd)
        assert outcome.status == CommandStatus.ACCEPTED
        assert outcome.reason is None
        assert outcome.command_id == cmd.command_id

    def test_system_actor_rejected_for_actor_required(self, dispatcher):
        outcome = dispatcher.dispatch(
            make_command(actor_type="SYSTEM", actor_id="recalc-job")
        )
        assert outcome.is_rejected
        assert outcome.reason.code == ReasonCode.SYSTEM_ACTOR_FORBIDDEN
        assert outcome.reason.policy_name == "system_actor_guard"

    def test_system_actor_allowed_when_declared(self, dispatcher):
        outcome = dispatcher.dispatch(make_command(
            actor_type="SYSTEM", actor_id="recalc-job",
            actor_requirement=SYSTEM_ALLOWED,
        ))
        assert outcome.is_accepted

    def test_first_rejection_wins(self, context):
        def policy_a(cmd, ctx):
            return RejectionReason(code="POLICY_A", message="A", policy_name="a")

        def policy_b(cmd, ctx):
            return RejectionReason(code="POLICY_B", message="B", policy_name="b")

        dispatcher = CommandDispatcher(context=context)
        dispatcher.register_policies([policy_a, policy_b])
        assert dispatcher.dispatch(make_command()).reason.code == "POLICY_A"

    def test_validation_failure_becomes_rejection(self):
        dispatcher = CommandDispatcher(context=StubContext(active=False))
        outcome = dispatcher.dispatch(make_command())
        assert outcome.is_rejected
        assert outcome.reason.policy_name == "command_validator"

    def test_validation_runs_before_policies(self):
        called = []
        dispatcher = CommandDispatcher(context=StubContext(active=False))
        dispatcher.register_policy(lambda cmd, ctx: called.append(cmd))
        dispatcher.dispatch(make_command())
        assert called == []

    def test_non_callable_policy_rejected(self, context):
        with pytest.raises(TypeError, match="callable"):
            CommandDispatcher(context=context).register_policy("nope")

    def test_policy_must_return_rejection_reason(self, context):
        dispatcher = CommandDispatcher(context=context)
        dispatcher.register_policy(lambda cmd, ctx: "denied")
        with pytest.raises(TypeError, match="RejectionReason"):
            dispatcher.dispatch(make_command())


# ══════════════════════════════════════════════════════════════
# BUS
# ══════════════════════════════════════════════════════════════

class TestCommandBus:
    def test_accepted_calls_handler(self, command_bus):
        service = StubEngineService(return_value={"persisted": True})
        command_bus.register_handler("sales.line.upsert.request", service)
        cmd = make_command()

        result = command_bus.handle(cmd)

        assert result.is_accepted
        assert service.executed_commands == [cmd]
        assert result.execution_result == {"persisted": True}
        assert command_bus.has_handler("sales.line.upsert.request")

    def test_no_handler_raises(self, command_bus):
        with pytest.raises(NoHandlerRegistered):
            command_bus.handle(make_command())

    def test_handler_type_must_end_with_request(self, command_bus):
        with pytest.raises(ValueError, match=".request"):
            command_bus.register_handler("sales.line.upserted", StubEngineService())

    def test_handler_needs_execute(self, command_bus):
        with pytest.raises(TypeError, match="execute"):
            command_bus.register_handler("sales.line.upsert.request", object())

    def test_rejection_event_persisted(
        self, command_bus, persist_event_stub, event_type_registry
    ):
        service = StubEngineService()
        command_bus.register_handler("sales.line.upsert.request", service)
        cmd = make_command(actor_type="SYSTEM", actor_id="recalc-job")

        result = command_bus.handle(cmd)

        assert result.is_rejected
        assert result.rejection_event_persisted
        assert service.executed_commands == []
        event = persist_event_stub.persisted_events[0]
        assert event["event_type"] == "sales.line.upsert.rejected"
        assert event["payload"]["rejection"]["code"] == ReasonCode.SYSTEM_ACTOR_FORBIDDEN
        assert event["payload"]["original_payload"] == cmd.payload
        assert event["tenant_id"] == TENANT_ID
        assert event["causation_id"] == cmd.command_id
        assert event_type_registry.is_registered("sales.line.upsert.rejected")


class TestIsPersistAccepted:
    def test_attribute_result(self):
        class Result:
            accepted = True

        assert is_persist_accepted(Result())

    def test_dict_result(self):
        assert is_persist_accepted({"accepted": True})
        assert not is_persist_accepted({"accepted": False})

    def test_truthiness_fallback(self):
        assert not is_persist_accepted(None)
