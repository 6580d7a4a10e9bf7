"""Static feature catalogues: organization types and plan tiers."""

from __future__ import annotations

from dataclasses import dataclass

from farmgate.types import OrganizationType, PlanTier

# Access-control configuration is never feature-gated
GLOBAL_FEATURES = frozenset({"rbac"})

# Sentinel in an organization's own feature list meaning "every feature"
ALL_FEATURES = "all_features"


@dataclass(frozen=True, slots=True)
class OrganizationTypeProfile:
    """Modules an organization type is able to use, independent of its plan."""

    modules: frozenset[str]


ORGANIZATION_TYPE_PROFILES: dict[OrganizationType, OrganizationTypeProfile] = {
    OrganizationType.FARM_OPERATION: OrganizationTypeProfile(
        modules=frozenset(
            {
                "farm_management",
                "activities",
                "inventory",
                "analytics",
                "observations",
                "sensors",
                "crop_cycles",
                "areas",
                "seasons",
                "media",
                "orders",
            }
        ),
    ),
    OrganizationType.COMMODITY_TRADER: OrganizationTypeProfile(
        modules=frozenset(
            {"marketplace", "orders", "trading", "analytics", "inventory", "deliveries"}
        ),
    ),
    OrganizationType.LOGISTICS_PROVIDER: OrganizationTypeProfile(
        modules=frozenset({"deliveries", "tracking", "orders", "drivers"}),
    ),
    OrganizationType.INTEGRATED_FARM: OrganizationTypeProfile(
        modules=frozenset(
            {
                "farm_management",
                "marketplace",
                "orders",
                "trading",
                "activities",
                "inventory",
                "analytics",
                "observations",
                "sensors",
                "crop_cycles",
                "areas",
                "seasons",
                "deliveries",
                "intelligence",
                "media",
            }
        ),
    ),
}


_FREE_MODULES = frozenset(
    {"farm_management", "activities", "marketplace", "orders", "inventory", "media"}
)
_BASIC_MODULES = _FREE_MODULES | {"deliveries"}
_PRO_MODULES = _BASIC_MODULES | {
    "analytics",
    "trading",
    "observations",
    "crop_cycles",
    "intelligence",
}
_ENTERPRISE_MODULES = _PRO_MODULES | {"sensors", "areas", "seasons", "drivers", "tracking"}

PLAN_MODULES: dict[PlanTier, frozenset[str]] = {
    PlanTier.FREE: _FREE_MODULES,
    PlanTier.BASIC: _BASIC_MODULES,
    PlanTier.PRO: _PRO_MODULES,
    PlanTier.ENTERPRISE: _ENTERPRISE_MODULES,
}

_CORE_FEATURES = frozenset(
    {"basic_farm_management", "marketplace_access", "order_management", "inventory_management"}
)
_PRO_FEATURES = _CORE_FEATURES | {
    "advanced_analytics",
    "ai_insights",
    "api_access",
    "custom_roles",
}

PLAN_FEATURES: dict[PlanTier, frozenset[str]] = {
    PlanTier.FREE: _CORE_FEATURES,
    PlanTier.BASIC: _CORE_FEATURES,
    PlanTier.PRO: _PRO_FEATURES,
    PlanTier.ENTERPRISE: _PRO_FEATURES | {"white_label", "priority_support", "unlimited_usage"},
}


@dataclass(frozen=True, slots=True)
class PlanAddOns:
    """Premium switches carried by a subscription plan record."""

    has_advanced_analytics: bool = False
    has_ai_insights: bool = False
    has_api_access: bool = False
    has_custom_roles: bool = False
    has_priority_support: bool = False
    has_white_label: bool = False

    def modules(self) -> frozenset[str]:
        """Modules unlocked by add-ons (priority support is not a module)."""
        return self.features() - {"priority_support"}

    def features(self) -> frozenset[str]:
        enabled = {
            "advanced_analytics": self.has_advanced_analytics,
            "ai_insights": self.has_ai_insights,
            "api_access": self.has_api_access,
            "custom_roles": self.has_custom_roles,
            "priority_support": self.has_priority_support,
            "white_label": self.has_white_label,
        }
        return frozenset(name for name, on in enabled.items() if on)


def get_type_profile(org_type: OrganizationType | str) -> OrganizationTypeProfile | None:
    """Get the profile for an organization type, or None for unknown types."""
    try:
        return ORGANIZATION_TYPE_PROFILES[OrganizationType(org_type)]
    except ValueError:
        return None


def type_supports_feature(org_type: OrganizationType | str, feature: str) -> bool:
    """Check whether an organization type can use a module at all."""
    profile = get_type_profile(org_type)
    return profile is not None and feature in profile.modules


def plan_modules(tier: PlanTier | str) -> frozenset[str]:
    """Base modules for a plan tier, defaulting to the free tier."""
    try:
        return PLAN_MODULES[PlanTier(str(tier).upper())]
    except ValueError:
        return PLAN_MODULES[PlanTier.FREE]


def plan_features(tier: PlanTier | str) -> frozenset[str]:
    """Base features for a plan tier, defaulting to the free tier."""
    try:
        return PLAN_FEATURES[PlanTier(str(tier).upper())]
    except ValueError:
        return PLAN_FEATURES[PlanTier.FREE]


def matches_permission(required: str, granted: str) -> bool:
    """Match ``resource:action`` against a grant that may use ``*`` wildcards.

    Supported grant forms: ``farms:read``, ``farms:*``, ``*:read``, ``*:*``.
    """
    if granted == required or granted == "*:*":
        return True
    req_resource, _, req_action = required.partition(":")
    granted_resource, _, granted_action = granted.partition(":")
    if granted_resource not in ("*", req_resource):
        return False
    return granted_action in ("*", req_action)
