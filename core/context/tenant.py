"""
SBO Context — Tenant Context
==============================
The tenant a process acts for and the organizations it owns.

The command validator and the event journal both ask this object
whether a tenant_id / organization_id pair lines up before anything
is accepted or appended.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional

TENANT_ACTIVE = "ACTIVE"
TENANT_SUSPENDED = "SUSPENDED"
TENANT_CLOSED = "CLOSED"

TENANT_STATES = frozenset({TENANT_ACTIVE, TENANT_SUSPENDED, TENANT_CLOSED})


@dataclass(frozen=True)
class TenantContext:
    """
    organizations=None trusts any organization id of this tenant;
    a set restricts the tenant to exactly those organizations.
    """

    tenant_id: uuid.UUID
    organization_id: Optional[uuid.UUID] = None
    state: str = TENANT_ACTIVE
    active: bool = True
    organizations: Optional[FrozenSet[uuid.UUID]] = field(
        default=None, compare=False
    )

    def __post_init__(self):
        if not isinstance(self.tenant_id, uuid.UUID):
            raise ValueError("tenant_id must be UUID.")

        if self.organization_id is not None and not isinstance(
            self.organization_id, uuid.UUID
        ):
            raise ValueError("organization_id must be UUID or None.")

        if self.state not in TENANT_STATES:
            raise ValueError(
                f"state '{self.state}' not valid. "
                f"Must be one of: {sorted(TENANT_STATES)}"
            )

        if self.organizations is not None:
            object.__setattr__(
                self, "organizations", frozenset(self.organizations)
            )

    @classmethod
    def with_organizations(
        cls,
        tenant_id: uuid.UUID,
        organization_ids: Iterable[uuid.UUID],
        organization_id: Optional[uuid.UUID] = None,
    ) -> "TenantContext":
        return cls(
            tenant_id=tenant_id,
            organization_id=organization_id,
            organizations=frozenset(organization_ids),
        )

    def has_active_context(self) -> bool:
        return self.active

    def get_active_tenant_id(self) -> Optional[uuid.UUID]:
        return self.tenant_id if self.active else None

    def get_active_organization_id(self) -> Optional[uuid.UUID]:
        return self.organization_id if self.active else None

    def is_organization_in_tenant(
        self, organization_id: uuid.UUID, tenant_id: uuid.UUID
    ) -> bool:
        if tenant_id != self.tenant_id:
            return False
        if self.organizations is None:
            return True
        return organization_id in self.organizations

    def get_tenant_lifecycle_state(self) -> str:
        return self.state
