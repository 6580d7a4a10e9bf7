"""Authorization pipeline: runs the policies in a fixed order per request.

public -> tenancy (+ impersonation) -> feature -> platform admin -> capability
-> org type -> permission -> role -> role level

The first denial ends evaluation. The ScopingFilter produced by tenancy is
never altered by later stages.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import replace
from enum import StrEnum
from typing import TYPE_CHECKING

import structlog

from farmgate.authz.decision import Allow, Decision, Deny, EvaluationContext, deny
from farmgate.authz.entitlements import CachedEntitlementLookup
from farmgate.authz.features import FeatureEntitlementPolicy
from farmgate.authz.permissions import PermissionRolePolicy
from farmgate.authz.tenancy import DEFAULT_ORGANIZATION_HEADER, TenancyIsolationPolicy
from farmgate.config.settings import get_settings
from farmgate.types import DenyReason

if TYPE_CHECKING:
    from farmgate.authz.entitlements import EntitlementLookup, OrganizationDirectory
    from farmgate.authz.principal import Principal
    from farmgate.authz.requirements import PolicyRequirement
    from farmgate.types import PlanTier

logger = structlog.get_logger(__name__)

Check = Callable[[EvaluationContext], Awaitable[Deny | None]]


class AuthorizationStage(StrEnum):
    TENANCY = "tenancy"
    PLATFORM_ADMIN = "platform_admin"
    FEATURE = "feature"
    CAPABILITY = "capability"
    ORG_TYPE = "org_type"
    PERMISSION = "permission"
    ROLE = "role"
    ROLE_LEVEL = "role_level"


class AuthorizationPipeline:
    """Evaluates a principal against a route's declared requirement."""

    def __init__(
        self,
        directory: OrganizationDirectory,
        entitlements: EntitlementLookup,
        organization_header: str = DEFAULT_ORGANIZATION_HEADER,
        default_plan_tier: PlanTier | None = None,
    ) -> None:
        self._entitlements = entitlements
        self._tenancy = TenancyIsolationPolicy(directory, header_name=organization_header)
        features = FeatureEntitlementPolicy(entitlements, default_plan_tier=default_plan_tier)
        permissions = PermissionRolePolicy()
        self._feature_check: tuple[AuthorizationStage, Check] = (
            AuthorizationStage.FEATURE,
            features.check_feature,
        )
        self._access_checks: tuple[tuple[AuthorizationStage, Check], ...] = (
            (AuthorizationStage.PLATFORM_ADMIN, permissions.check_platform_admin),
            (AuthorizationStage.CAPABILITY, features.check_capability),
            (AuthorizationStage.ORG_TYPE, features.check_org_type),
            (AuthorizationStage.PERMISSION, permissions.check_permission),
            (AuthorizationStage.ROLE, permissions.check_role),
            (AuthorizationStage.ROLE_LEVEL, permissions.check_role_level),
        )

    async def evaluate(
        self,
        principal: Principal | None,
        requirement: PolicyRequirement,
        headers: Mapping[str, str] | None = None,
        farm_id: str | None = None,
    ) -> Decision:
        """Return Allow (with the request's ScopingFilter) or the first Deny."""
        if requirement.is_public:
            return Allow()

        if principal is None:
            logger.warning("authorization_unauthenticated")
            return deny(DenyReason.UNAUTHENTICATED)

        ctx = EvaluationContext(
            principal=principal,
            requirement=requirement,
            farm_id=farm_id,
            headers=headers or {},
        )

        outcome = await self._tenancy.evaluate(ctx)
        if isinstance(outcome, Deny):
            return self._denied(ctx, AuthorizationStage.TENANCY, outcome)

        ctx = replace(
            ctx,
            organization=outcome.organization,
            scoping_filter=outcome.scoping_filter,
        )

        checks: list[tuple[AuthorizationStage, Check]] = []
        if requirement.required_feature:
            checks.append(self._feature_check)
        if requirement.needs_access_checks:
            checks.extend(self._access_checks)

        for stage, check in checks:
            result = await check(ctx)
            if result is not None:
                return self._denied(ctx, stage, result)

        logger.debug(
            "authorization_allowed",
            principal_id=principal.id,
            org_id=ctx.request_organization_id,
            impersonation=outcome.impersonated_organization is not None,
        )
        return Allow(
            scoping_filter=outcome.scoping_filter,
            impersonated_organization=outcome.impersonated_organization,
        )

    def invalidate_entitlements(self, org_id: str | None = None) -> None:
        """Forget cached entitlements after an organization or subscription change."""
        if isinstance(self._entitlements, CachedEntitlementLookup):
            self._entitlements.invalidate(org_id)

    @staticmethod
    def _denied(ctx: EvaluationContext, stage: AuthorizationStage, result: Deny) -> Deny:
        logger.warning(
            "authorization_denied",
            principal_id=ctx.principal.id,
            stage=stage.value,
            reason=result.reason.value,
        )
        return result


def build_pipeline(
    directory: OrganizationDirectory,
    entitlements: EntitlementLookup,
) -> AuthorizationPipeline:
    """Build a pipeline configured from settings, caching entitlements when enabled."""
    settings = get_settings()
    if settings.entitlement_cache_ttl_seconds > 0:
        entitlements = CachedEntitlementLookup(
            entitlements, ttl_seconds=settings.entitlement_cache_ttl_seconds
        )

    pipeline = AuthorizationPipeline(
        directory,
        entitlements,
        organization_header=settings.organization_header,
        default_plan_tier=settings.default_plan_tier,
    )
    logger.info(
        "authorization_pipeline_built",
        entitlement_cache_ttl=settings.entitlement_cache_ttl_seconds,
        default_plan_tier=settings.default_plan_tier,
    )
    return pipeline
