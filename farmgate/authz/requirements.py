"""Declarative requirement metadata for protected routes.

Handlers declare what they need by composing small builders::

    routes.register(
        "activities.list",
        require_feature("activities"),
        require_permission("activities", "read"),
    )

Requirements are resolved once, when the route is registered, and read on
every request. The pipeline never writes to them.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace

import structlog

from farmgate.types import OrganizationType

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class PermissionRequirement:
    resource: str
    action: str

    def __str__(self) -> str:
        return f"{self.resource}:{self.action}"


@dataclass(frozen=True, slots=True)
class RoleRequirement:
    name: str
    allow_platform_admin_bypass: bool = True


@dataclass(frozen=True, slots=True)
class PolicyRequirement:
    required_feature: str | None = None
    required_capability: str | None = None
    required_org_types: frozenset[str] = field(default_factory=frozenset)
    required_permission: PermissionRequirement | None = None
    required_role: RoleRequirement | None = None
    required_role_level: int | None = None
    require_platform_admin: bool = False
    is_public: bool = False
    bypass_tenancy_isolation: bool = False

    @property
    def needs_access_checks(self) -> bool:
        """True when any check past the feature gate is declared."""
        return bool(
            self.require_platform_admin
            or self.required_capability
            or self.required_org_types
            or self.required_permission is not None
            or self.required_role is not None
            or self.required_role_level is not None
        )


NO_REQUIREMENT = PolicyRequirement()


def requirement(*parts: PolicyRequirement) -> PolicyRequirement:
    """Merge builder outputs into one requirement.

    Later parts win for single-valued fields; org type sets are unioned.
    """
    merged = NO_REQUIREMENT
    for part in parts:
        updates = {}
        for f in fields(PolicyRequirement):
            value = getattr(part, f.name)
            if value == getattr(NO_REQUIREMENT, f.name):
                continue
            if f.name == "required_org_types":
                value = merged.required_org_types | value
            updates[f.name] = value
        merged = replace(merged, **updates)
    return merged


def public() -> PolicyRequirement:
    return PolicyRequirement(is_public=True)


def bypass_tenancy_isolation() -> PolicyRequirement:
    return PolicyRequirement(bypass_tenancy_isolation=True)


def require_feature(feature: str) -> PolicyRequirement:
    return PolicyRequirement(required_feature=feature)


def require_capability(capability: str) -> PolicyRequirement:
    return PolicyRequirement(required_capability=capability)


def require_org_type(*org_types: OrganizationType | str) -> PolicyRequirement:
    return PolicyRequirement(required_org_types=frozenset(str(t) for t in org_types))


def require_permission(resource: str, action: str) -> PolicyRequirement:
    return PolicyRequirement(required_permission=PermissionRequirement(resource, action))


def require_role(name: str, allow_platform_admin_bypass: bool = True) -> PolicyRequirement:
    return PolicyRequirement(
        required_role=RoleRequirement(name, allow_platform_admin_bypass),
    )


def require_role_level(level: int) -> PolicyRequirement:
    return PolicyRequirement(required_role_level=level)


def require_platform_admin() -> PolicyRequirement:
    """Only principals flagged as platform administrators pass.

    Organization roles never satisfy this, whatever their level.
    """
    return PolicyRequirement(require_platform_admin=True)


# Common combinations


def platform_admin_only() -> PolicyRequirement:
    """Tenancy-free, cross-organization route for platform administrators."""
    return requirement(bypass_tenancy_isolation(), require_platform_admin())


def marketplace_access() -> PolicyRequirement:
    return requirement(
        require_feature("marketplace"),
        require_org_type(
            OrganizationType.COMMODITY_TRADER,
            OrganizationType.INTEGRATED_FARM,
            OrganizationType.FARM_OPERATION,
        ),
    )

class RouteRequirements:
    """Static map from route identifier to its resolved requirement."""

    def __init__(self) -> None:
        self._routes: dict[str, PolicyRequirement] = {}

    def register(self, route_id: str, *parts: PolicyRequirement) -> PolicyRequirement:
        """Resolve and store the requirement for a route. Re-registering is an error."""
        if route_id in self._routes:
            msg = f"Route {route_id!r} already has a registered requirement"
            raise ValueError(msg)
        resolved = requirement(*parts)
        self._routes[route_id] = resolved
        logger.debug("route_requirement_registered", route_id=route_id)
        return resolved

    def get(self, route_id: str) -> PolicyRequirement:
        """Look up a route's requirement; unknown routes raise KeyError."""
        return self._routes[route_id]

    def __contains__(self, route_id: object) -> bool:
        return route_id in self._routes

    def __len__(self) -> int:
        return len(self._routes)
