"""Principal context carried through each authorization decision.

The principal is resolved upstream (token verification is not our job) and
is read-only for the lifetime of one request. The organization snapshot is
looked up once per request and never cached across requests.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from farmgate.types import OrganizationType, PlanTier, RoleScope


@dataclass(frozen=True, slots=True)
class Role:
    """A role held by a principal.

    A FARM-scoped role is authoritative only for ``farm_id``. An
    ORGANIZATION-scoped role with no ``organization_id`` is bound to the
    holder's own organization.
    """

    id: str
    name: str
    level: int
    scope: RoleScope
    farm_id: str | None = None
    organization_id: str | None = None
    permissions: frozenset[str] = field(default_factory=frozenset)  # "resource:action"


@dataclass(frozen=True, slots=True)
class Principal:
    """Immutable authenticated identity and its static claims."""

    id: str
    email: str
    organization_id: str | None = None
    is_platform_admin: bool = False
    roles: tuple[Role, ...] = ()
    capabilities: frozenset[str] = field(default_factory=frozenset)

    @property
    def permissions(self) -> frozenset[str]:
        """Flattened ``resource:action`` grants across all held roles."""
        granted: set[str] = set()
        for role in self.roles:
            granted.update(role.permissions)
        return frozenset(granted)

    @property
    def max_role_level(self) -> int:
        """Highest role level held; 0 for a principal without roles."""
        return max((role.level for role in self.roles), default=0)


@dataclass(frozen=True, slots=True)
class OrganizationSnapshot:
    """Point-in-time view of an organization, read at request time."""

    id: str
    name: str
    type: OrganizationType
    plan_tier: PlanTier = PlanTier.FREE
    is_suspended: bool = False
    is_active: bool = True
    allowed_modules: frozenset[str] = field(default_factory=frozenset)
    features: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_usable(self) -> bool:
        return self.is_active and not self.is_suspended
