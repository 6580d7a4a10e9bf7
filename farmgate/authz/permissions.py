"""Permission, role name and role level checks with scope enforcement."""

from __future__ import annotations

import structlog

from farmgate.authz.catalog import matches_permission
from farmgate.authz.decision import Deny, EvaluationContext, deny
from farmgate.authz.principal import Principal, Role
from farmgate.types import DenyReason, RoleScope

logger = structlog.get_logger(__name__)


def role_covers(
    role: Role,
    principal: Principal,
    organization_id: str | None,
    farm_id: str | None,
) -> bool:
    """Whether a role's scope is authoritative for the request context."""
    if role.scope == RoleScope.PLATFORM:
        return True
    if role.scope == RoleScope.ORGANIZATION:
        owner = role.organization_id or principal.organization_id
        return owner is not None and owner == organization_id
    if role.scope == RoleScope.FARM:
        # No farm-scoped role authorizes another farm, even in the same org
        return role.farm_id is not None and role.farm_id == farm_id
    return False


def role_grants(role: Role, permission: str) -> bool:
    return any(matches_permission(permission, granted) for granted in role.permissions)


class PermissionRolePolicy:
    """Checks declared permission, role and role-level requirements."""

    async def check_platform_admin(self, ctx: EvaluationContext) -> Deny | None:
        if not ctx.requirement.require_platform_admin or ctx.principal.is_platform_admin:
            return None

        # Organization roles never stand in for the platform flag, whatever their level
        logger.warning("platform_admin_required", principal_id=ctx.principal.id)
        return deny(DenyReason.PLATFORM_ADMIN_REQUIRED)

    async def check_permission(self, ctx: EvaluationContext) -> Deny | None:
        required = ctx.requirement.required_permission
        if required is None:
            return None

        principal = ctx.principal
        permission = str(required)
        if principal.is_platform_admin:
            logger.debug("permission_admin_bypass", principal_id=principal.id)
            return None

        organization_id = ctx.request_organization_id
        for role in principal.roles:
            if role_grants(role, permission) and role_covers(
                role, principal, organization_id, ctx.farm_id
            ):
                logger.debug(
                    "permission_granted",
                    principal_id=principal.id,
                    permission=permission,
                    role=role.name,
                    scope=str(role.scope),
                )
                return None

        logger.warning(
            "permission_missing",
            principal_id=principal.id,
            permission=permission,
            org_id=organization_id,
            farm_id=ctx.farm_id,
        )
        return deny(
            DenyReason.MISSING_PERMISSION,
            f"You do not have permission to {required.action} {required.resource}",
        )

    async def check_role(self, ctx: EvaluationContext) -> Deny | None:
        required = ctx.requirement.required_role
        if required is None:
            return None

        principal = ctx.principal
        if principal.is_platform_admin and required.allow_platform_admin_bypass:
            logger.debug("role_admin_bypass", principal_id=principal.id)
            return None

        wanted = required.name.casefold()
        if any(role.name.casefold() == wanted for role in principal.roles):
            return None

        logger.warning("role_missing", principal_id=principal.id, role=required.name)
        return deny(
            DenyReason.MISSING_ROLE,
            f"You must have the '{required.name}' role to access this resource",
        )

    async def check_role_level(self, ctx: EvaluationContext) -> Deny | None:
        minimum = ctx.requirement.required_role_level
        if minimum is None or ctx.principal.is_platform_admin:
            return None

        level = ctx.principal.max_role_level
        if level < minimum:
            logger.warning(
                "role_level_insufficient",
                principal_id=ctx.principal.id,
                level=level,
                required=minimum,
            )
            return deny(DenyReason.INSUFFICIENT_ROLE_LEVEL)
        return None
