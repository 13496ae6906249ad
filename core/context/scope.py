"""
SBO Context — Scope
=====================
A command declares how far it reaches inside its tenant.

SCOPE_TENANT_ALLOWED        → organization optional
SCOPE_ORGANIZATION_REQUIRED → organization_id must be present; every
                              sales document, tax rate and channel
                              lives under one organization
"""

from __future__ import annotations

SCOPE_TENANT_ALLOWED = "TENANT"
SCOPE_ORGANIZATION_REQUIRED = "ORGANIZATION"

VALID_SCOPE_REQUIREMENTS = frozenset(
    {SCOPE_TENANT_ALLOWED, SCOPE_ORGANIZATION_REQUIRED}
)


class ScopeViolation(ValueError):
    def __init__(self, command_type: str):
        self.command_type = command_type
        super().__init__(
            f"Scope violation: command '{command_type}' needs an "
            f"organization_id."
        )


def enforce_scope_guard(command) -> None:
    """Runs before the sales engine loads any state for the command."""
    if (
        command.scope_requirement == SCOPE_ORGANIZATION_REQUIRED
        and command.organization_id is None
    ):
        raise ScopeViolation(command.command_type)
