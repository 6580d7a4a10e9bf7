"""Authorization decisions and the per-request evaluation context."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from farmgate.types import DenyReason

if TYPE_CHECKING:
    from farmgate.authz.principal import OrganizationSnapshot, Principal
    from farmgate.authz.requirements import PolicyRequirement


@dataclass(frozen=True, slots=True)
class ScopingFilter:
    """Which organization's data a request may touch."""

    organization_id: str
    is_impersonation: bool = False


@dataclass(frozen=True, slots=True)
class Allow:
    scoping_filter: ScopingFilter | None = None
    impersonated_organization: OrganizationSnapshot | None = None


@dataclass(frozen=True, slots=True)
class Deny:
    reason: DenyReason
    message: str

    @property
    def status_code(self) -> int:
        return DENY_STATUS.get(self.reason, 403)


Decision = Allow | Deny


# Stable user-facing messages; never carry internal detail
DENY_MESSAGES: dict[DenyReason, str] = {
    DenyReason.UNAUTHENTICATED: "Authentication required",
    DenyReason.NO_ORGANIZATION: "User must belong to an organization",
    DenyReason.ORGANIZATION_SUSPENDED: (
        "Your organization has been suspended. Please contact support."
    ),
    DenyReason.IMPERSONATION_NOT_ALLOWED: (
        "Only platform administrators can impersonate organizations"
    ),
    DenyReason.INVALID_ORGANIZATION: "Invalid organization selected",
    DenyReason.FEATURE_NOT_AVAILABLE_FOR_ORG_TYPE: (
        "This feature is not available for your organization type"
    ),
    DenyReason.FEATURE_NOT_ENABLED_FOR_ORGANIZATION: (
        "This feature is not enabled for your organization"
    ),
    DenyReason.FEATURE_NOT_IN_PLAN: (
        "This feature is not included in your current plan. "
        "Please upgrade to access this feature."
    ),
    DenyReason.MISSING_CAPABILITY: "Your organization does not have the required capability",
    DenyReason.MISSING_PERMISSION: "You do not have permission to perform this action",
    DenyReason.MISSING_ROLE: "You do not have the role required to access this resource",
    DenyReason.INSUFFICIENT_ROLE_LEVEL: "Your role level is insufficient to access this resource",
    DenyReason.PLATFORM_ADMIN_REQUIRED: (
        "This resource requires platform administrator privileges"
    ),
    DenyReason.ORG_TYPE_NOT_ALLOWED: "This resource is not available to your organization type",
    DenyReason.LOOKUP_UNAVAILABLE: "Authorization data is temporarily unavailable",
}

DENY_STATUS: dict[DenyReason, int] = {
    DenyReason.UNAUTHENTICATED: 401,
    DenyReason.LOOKUP_UNAVAILABLE: 503,
}


def deny(reason: DenyReason, message: str | None = None) -> Deny:
    """Build a denial, using the stable message for the reason by default."""
    return Deny(reason=reason, message=message or DENY_MESSAGES[reason])


@dataclass(frozen=True, slots=True)
class EvaluationContext:
    """Everything a check may read while evaluating one request.

    ``organization`` is the principal's own organization snapshot (None for
    principals without one). ``scoping_filter`` is only populated once the
    tenancy stage has finished.
    """

    principal: Principal
    requirement: PolicyRequirement
    organization: OrganizationSnapshot | None = None
    scoping_filter: ScopingFilter | None = None
    farm_id: str | None = None
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def request_organization_id(self) -> str | None:
        """Organization the request operates within."""
        if self.scoping_filter is not None:
            return self.scoping_filter.organization_id
        return self.principal.organization_id
