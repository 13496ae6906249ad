"""SBO Context — tenant context and command scope."""

from core.context.scope import (
    SCOPE_ORGANIZATION_REQUIRED,
    SCOPE_TENANT_ALLOWED,
    ScopeViolation,
)
from core.context.tenant import (
    TENANT_ACTIVE,
    TENANT_CLOSED,
    TENANT_SUSPENDED,
    TenantContext,
)

__all__ = [
    "TenantContext",
    "TENANT_ACTIVE",
    "TENANT_SUSPENDED",
    "TENANT_CLOSED",
    "SCOPE_TENANT_ALLOWED",
    "SCOPE_ORGANIZATION_REQUIRED",
    "ScopeViolation",
]
