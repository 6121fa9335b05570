"""Authorization policy — a pure decision over (identity, action, tenant).

Learn: No clock, no randomness, no store access. Same inputs always give
the same Decision, which makes the policy trivially unit-testable and safe
to call from anywhere.

Rules:
- super_admin: everything, on every tenant
- school_admin: `view` inside its own tenant only. A view with no tenant
  requested is narrowed to the admin's tenant (returned as tenant_filter)
  instead of being rejected. Mutations are denied unless the
  school_admin_full_access escape hatch is on, and even then only inside
  the admin's own tenant.
- anything else: denied

A denial carries the reason so callers can pick 401 vs 403 without the
policy knowing about HTTP.
"""

import enum
import uuid
from dataclasses import dataclass
from typing import Optional, Protocol

from schoolgate.db.models import ROLE_SCHOOL_ADMIN, ROLE_SUPER_ADMIN


class Action(str, enum.Enum):
    VIEW = "view"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"

    @property
    def is_mutation(self) -> bool:
        return self is not Action.VIEW


class DenyReason(str, enum.Enum):
    NO_IDENTITY = "no_identity"
    WRONG_TENANT = "wrong_tenant"
    ROLE_INSUFFICIENT = "role_insufficient"


class Principal(Protocol):
    """What the policy needs to know about an identity."""

    role: str
    tenant_id: Optional[uuid.UUID]


@dataclass(frozen=True)
class Decision:
    allowed: bool
    tenant_filter: Optional[uuid.UUID] = None
    reason: Optional[DenyReason] = None

    @classmethod
    def allow(cls, tenant_filter: Optional[uuid.UUID] = None) -> "Decision":
        return cls(allowed=True, tenant_filter=tenant_filter)

    @classmethod
    def deny(cls, reason: DenyReason) -> "Decision":
        return cls(allowed=False, reason=reason)


def authorize(
    identity: Optional[Principal],
    action: Action,
    resource_tenant_id: Optional[uuid.UUID] = None,
    school_admin_full_access: bool = False,
) -> Decision:
    """Decide whether `identity` may perform `action` on a tenant's data.

    For allowed requests, tenant_filter is the tenant the caller must scope
    its query to (None = unbounded, super admins only).
    """
    if identity is None:
        return Decision.deny(DenyReason.NO_IDENTITY)

    action = Action(action)

    if identity.role == ROLE_SUPER_ADMIN:
        return Decision.allow(resource_tenant_id)

    if identity.role != ROLE_SCHOOL_ADMIN:
        return Decision.deny(DenyReason.ROLE_INSUFFICIENT)

    if action.is_mutation and not school_admin_full_access:
        return Decision.deny(DenyReason.ROLE_INSUFFICIENT)

    # Not onboarded yet: there is no scope to read from.
    if identity.tenant_id is None:
        return Decision.deny(DenyReason.WRONG_TENANT)

    if resource_tenant_id is not None and resource_tenant_id != identity.tenant_id:
        return Decision.deny(DenyReason.WRONG_TENANT)

    return Decision.allow(identity.tenant_id)
