"""Tenancy isolation and platform-admin impersonation.

Tenancy decides whose data a request may touch and publishes that as a
``ScopingFilter``. Platform admins are organization-agnostic unless they
send the override header, in which case the impersonation policy resolves
and validates the target organization.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from farmgate.authz.decision import Deny, EvaluationContext, ScopingFilter, deny
from farmgate.exceptions import LookupUnavailableError
from farmgate.types import DenyReason

if TYPE_CHECKING:
    from farmgate.authz.entitlements import OrganizationDirectory
    from farmgate.authz.principal import OrganizationSnapshot, Principal

logger = structlog.get_logger(__name__)

DEFAULT_ORGANIZATION_HEADER = "X-Organization-Id"


@dataclass(frozen=True, slots=True)
class TenancyOutcome:
    scoping_filter: ScopingFilter | None = None
    organization: OrganizationSnapshot | None = None  # the principal's own organization
    impersonated_organization: OrganizationSnapshot | None = None


def header_value(headers: Mapping[str, str], name: str) -> str | None:
    """Case-insensitive header read; blank values count as absent."""
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            value = value.strip()
            return value or None
    return None


class ImpersonationPolicy:
    """Lets a platform admin substitute a target organization for one request."""

    def __init__(self, directory: OrganizationDirectory) -> None:
        self._directory = directory

    async def resolve(
        self, target_org_id: str, principal: Principal
    ) -> OrganizationSnapshot | Deny:
        """Validate the override target and return its snapshot."""
        if not principal.is_platform_admin:
            logger.warning(
                "impersonation_not_allowed",
                principal_id=principal.id,
                target_org_id=target_org_id,
            )
            return deny(DenyReason.IMPERSONATION_NOT_ALLOWED)

        try:
            organization = await self._directory.get(target_org_id)
        except LookupUnavailableError:
            logger.exception(
                "impersonation_lookup_failed",
                principal_id=principal.id,
                target_org_id=target_org_id,
            )
            return deny(DenyReason.INVALID_ORGANIZATION)

        if organization is None:
            logger.warning(
                "impersonation_target_not_found",
                principal_id=principal.id,
                target_org_id=target_org_id,
            )
            return deny(DenyReason.INVALID_ORGANIZATION)

        if not organization.is_usable:
            logger.warning(
                "impersonation_target_unusable",
                principal_id=principal.id,
                target_org_id=target_org_id,
                is_active=organization.is_active,
                is_suspended=organization.is_suspended,
            )
            return deny(DenyReason.INVALID_ORGANIZATION)

        logger.info(
            "organization_impersonated",
            principal_id=principal.id,
            email=principal.email,
            target_org_id=organization.id,
            target_org_name=organization.name,
        )
        return organization


class TenancyIsolationPolicy:
    """Resolves the request's ScopingFilter and blocks inactive tenants."""

    def __init__(
        self,
        directory: OrganizationDirectory,
        impersonation: ImpersonationPolicy | None = None,
        header_name: str = DEFAULT_ORGANIZATION_HEADER,
    ) -> None:
        self._directory = directory
        self._impersonation = impersonation or ImpersonationPolicy(directory)
        self._header_name = header_name

    async def evaluate(self, ctx: EvaluationContext) -> TenancyOutcome | Deny:
        principal = ctx.principal
        override = header_value(ctx.headers, self._header_name)

        # The override header is never silently ignored
        if override and not principal.is_platform_admin:
            return await self._impersonation.resolve(override, principal)  # always a Deny

        if principal.is_platform_admin:
            return await self._evaluate_admin(ctx, override)

        organization = await self._load_own_organization(principal)
        if isinstance(organization, Deny):
            return organization

        if ctx.requirement.bypass_tenancy_isolation:
            logger.debug("tenancy_isolation_bypassed", principal_id=principal.id)
            return TenancyOutcome(organization=organization)

        if not principal.organization_id or organization is None:
            logger.warning(
                "tenancy_no_organization",
                principal_id=principal.id,
                org_id=principal.organization_id,
            )
            return deny(DenyReason.NO_ORGANIZATION)

        if not organization.is_usable:
            logger.warning(
                "tenancy_organization_suspended",
                principal_id=principal.id,
                org_id=organization.id,
            )
            return deny(DenyReason.ORGANIZATION_SUSPENDED)

        logger.debug("tenancy_scoped", principal_id=principal.id, org_id=organization.id)
        return TenancyOutcome(
            scoping_filter=ScopingFilter(organization_id=organization.id),
            organization=organization,
        )

    async def _evaluate_admin(
        self, ctx: EvaluationContext, override: str | None
    ) -> TenancyOutcome | Deny:
        principal = ctx.principal
        if ctx.requirement.bypass_tenancy_isolation:
            logger.debug("tenancy_isolation_bypassed", principal_id=principal.id)
            return TenancyOutcome()

        if not override:
            logger.debug("tenancy_admin_unscoped", principal_id=principal.id)
            return TenancyOutcome()

        target = await self._impersonation.resolve(override, principal)
        if isinstance(target, Deny):
            return target
        return TenancyOutcome(
            scoping_filter=ScopingFilter(organization_id=target.id, is_impersonation=True),
            impersonated_organization=target,
        )

    async def _load_own_organization(
        self, principal: Principal
    ) -> OrganizationSnapshot | Deny | None:
        if not principal.organization_id:
            return None
        try:
            return await self._directory.get(principal.organization_id)
        except LookupUnavailableError:
            logger.exception(
                "tenancy_lookup_failed",
                principal_id=principal.id,
                org_id=principal.organization_id,
            )
            return deny(DenyReason.LOOKUP_UNAVAILABLE)
