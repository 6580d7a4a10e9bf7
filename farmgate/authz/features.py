"""Feature entitlement, capability and organization type checks.

A feature must clear three gates, in order, so a denial says exactly why:

1. the organization's type supports it at all,
2. the organization has it in ``allowed_modules``,
3. the subscription plan grants it.

Platform admins skip every check here. ``rbac`` is granted to everyone.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from farmgate.authz.catalog import ALL_FEATURES, GLOBAL_FEATURES, type_supports_feature
from farmgate.authz.decision import Deny, EvaluationContext, deny
from farmgate.authz.entitlements import build_entitlement
from farmgate.exceptions import LookupUnavailableError
from farmgate.types import DenyReason

if TYPE_CHECKING:
    from farmgate.authz.entitlements import EntitlementLookup
    from farmgate.authz.principal import OrganizationSnapshot
    from farmgate.types import PlanTier

logger = structlog.get_logger(__name__)


class FeatureEntitlementPolicy:
    """Decides whether a feature, capability or org type requirement is met."""

    def __init__(
        self,
        entitlements: EntitlementLookup,
        default_plan_tier: PlanTier | None = None,
    ) -> None:
        self._entitlements = entitlements
        self._default_plan_tier = default_plan_tier

    async def check_feature(self, ctx: EvaluationContext) -> Deny | None:
        feature = ctx.requirement.required_feature
        if not feature:
            return None

        principal = ctx.principal
        if feature in GLOBAL_FEATURES:
            logger.debug("feature_globally_granted", principal_id=principal.id, feature=feature)
            return None

        if principal.is_platform_admin:
            logger.debug("feature_admin_bypass", principal_id=principal.id, feature=feature)
            return None

        organization = ctx.organization
        if organization is None:
            return deny(DenyReason.NO_ORGANIZATION)

        if not type_supports_feature(organization.type, feature):
            logger.warning(
                "feature_not_available_for_org_type",
                principal_id=principal.id,
                org_id=organization.id,
                org_type=str(organization.type),
                feature=feature,
            )
            return deny(
                DenyReason.FEATURE_NOT_AVAILABLE_FOR_ORG_TYPE,
                f"Feature '{feature}' is not available for {organization.type} organizations",
            )

        if feature not in organization.allowed_modules:
            logger.warning(
                "feature_not_enabled_for_organization",
                principal_id=principal.id,
                org_id=organization.id,
                feature=feature,
            )
            return deny(
                DenyReason.FEATURE_NOT_ENABLED_FOR_ORGANIZATION,
                f"Feature '{feature}' is not enabled for your organization",
            )

        try:
            in_plan = await self.plan_grants(organization, feature)
        except LookupUnavailableError:
            logger.exception(
                "entitlement_lookup_failed",
                principal_id=principal.id,
                org_id=organization.id,
                feature=feature,
            )
            return deny(DenyReason.LOOKUP_UNAVAILABLE)

        if not in_plan:
            logger.warning(
                "feature_not_in_plan",
                principal_id=principal.id,
                org_id=organization.id,
                feature=feature,
            )
            return deny(
                DenyReason.FEATURE_NOT_IN_PLAN,
                f"Feature '{feature}' is not included in your current plan. "
                "Please upgrade to access this feature.",
            )

        logger.debug("feature_granted", principal_id=principal.id, feature=feature)
        return None

    async def plan_grants(self, organization: OrganizationSnapshot, feature: str) -> bool:
        """Plan gate on its own. Raises LookupUnavailableError on lookup failure."""
        entitlement = await self._entitlements.get_entitlement(organization.id)
        if entitlement is None and self._default_plan_tier is not None:
            entitlement = build_entitlement(organization.id, self._default_plan_tier)

        if entitlement is not None:
            return entitlement.grants(feature)

        logger.info("entitlement_missing_using_org_features", org_id=organization.id)
        return ALL_FEATURES in organization.features or feature in organization.features

    async def check_capability(self, ctx: EvaluationContext) -> Deny | None:
        capability = ctx.requirement.required_capability
        if not capability or ctx.principal.is_platform_admin:
            return None

        if capability not in ctx.principal.capabilities:
            logger.warning(
                "capability_missing",
                principal_id=ctx.principal.id,
                capability=capability,
            )
            return deny(
                DenyReason.MISSING_CAPABILITY,
                f"Your organization does not have the '{capability}' capability",
            )
        return None

    async def check_org_type(self, ctx: EvaluationContext) -> Deny | None:
        allowed = ctx.requirement.required_org_types
        # An empty set imposes no restriction
        if not allowed or ctx.principal.is_platform_admin:
            return None

        organization = ctx.organization
        if organization is None or str(organization.type) not in allowed:
            logger.warning(
                "org_type_not_allowed",
                principal_id=ctx.principal.id,
                org_type=str(organization.type) if organization else None,
                allowed=sorted(allowed),
            )
            return deny(
                DenyReason.ORG_TYPE_NOT_ALLOWED,
                f"This resource is only available to {', '.join(sorted(allowed))} organizations",
            )
        return None
