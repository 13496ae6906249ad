"""
SBO Command Layer — Command Validator
========================================
Tenant and shape checks that every command must pass before any
sales policy looks at it. Business rules (document exists, currency
matches, shipment fits the order) are policies, not validation.

Checks run in order and the first failure raises
CommandValidationError.
"""

from __future__ import annotations

from typing import Callable, Protocol, runtime_checkable

from core.commands.base import VALID_ACTOR_TYPES, Command
from core.commands.rejection import ReasonCode
from core.context.scope import SCOPE_ORGANIZATION_REQUIRED
from core.context.tenant import TENANT_CLOSED, TENANT_SUSPENDED


@runtime_checkable
class CommandContextProtocol(Protocol):
    def has_active_context(self) -> bool:
        ...

    def get_active_tenant_id(self):
        ...

    def is_organization_in_tenant(self, organization_id, tenant_id) -> bool:
        ...

    def get_tenant_lifecycle_state(self) -> str:
        ...


class CommandValidationError(Exception):
    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(f"[{code}] {message}")


_BLOCKED_STATES = {
    TENANT_SUSPENDED: ReasonCode.TENANT_SUSPENDED,
    TENANT_CLOSED: ReasonCode.TENANT_CLOSED,
}


def _check_active(command: Command, context) -> None:
    if not context.has_active_context():
        raise CommandValidationError(
            ReasonCode.NO_ACTIVE_CONTEXT,
            "No active tenant context. Commands require context.",
        )


def _check_lifecycle(command: Command, context) -> None:
    state = context.get_tenant_lifecycle_state()
    if state in _BLOCKED_STATES:
        raise CommandValidationError(
            _BLOCKED_STATES[state],
            f"Tenant is {state}. Sales operations not permitted.",
        )


def _check_tenant(command: Command, context) -> None:
    active_tenant_id = context.get_active_tenant_id()
    if command.tenant_id != active_tenant_id:
        raise CommandValidationError(
            ReasonCode.TENANT_MISMATCH,
            f"Command tenant_id ({command.tenant_id}) does not match "
            f"active context ({active_tenant_id}).",
        )


def _check_organization(command: Command, context) -> None:
    if command.organization_id is None:
        if command.scope_requirement == SCOPE_ORGANIZATION_REQUIRED:
            raise CommandValidationError(
                ReasonCode.ORGANIZATION_REQUIRED_MISSING,
                f"'{command.command_type}' must name an organization.",
            )
        return

    if not context.is_organization_in_tenant(
        command.organization_id, command.tenant_id
    ):
        raise CommandValidationError(
            ReasonCode.ORGANIZATION_NOT_IN_TENANT,
            f"Organization {command.organization_id} does not belong "
            f"to tenant {command.tenant_id}.",
        )


def _check_actor(command: Command, context) -> None:
    if command.actor_type not in VALID_ACTOR_TYPES:
        raise CommandValidationError(
            ReasonCode.INVALID_ACTOR,
            f"actor_type '{command.actor_type}' not valid. "
            f"Must be one of: {sorted(VALID_ACTOR_TYPES)}",
        )


def _check_command_type(command: Command, context) -> None:
    parts = command.command_type.split(".")
    if not command.command_type.endswith(".request") or len(parts) < 4:
        raise CommandValidationError(
            ReasonCode.INVALID_COMMAND_TYPE,
            f"command_type '{command.command_type}' must follow "
            f"engine.domain.action.request format.",
        )
    if parts[0] != command.source_engine:
        raise CommandValidationError(
            ReasonCode.INVALID_NAMESPACE,
            f"command_type namespace '{parts[0]}' does not match "
            f"source_engine '{command.source_engine}'.",
        )


_CHECKS: tuple[Callable[[Command, CommandContextProtocol], None], ...] = (
    _check_active,
    _check_lifecycle,
    _check_tenant,
    _check_organization,
    _check_actor,
    _check_command_type,
)


def validate_command(command: Command, context: CommandContextProtocol) -> None:
    if not isinstance(command, Command):
        raise CommandValidationError(
            ReasonCode.INVALID_COMMAND_STRUCTURE,
            f"Expected Command, got {type(command).__name__}.",
        )

    if context is None or not isinstance(context, CommandContextProtocol):
        raise CommandValidationError(
            ReasonCode.INVALID_CONTEXT,
            "Commands need a TenantContext-compatible context.",
        )

    for check in _CHECKS:
        check(command, context)
