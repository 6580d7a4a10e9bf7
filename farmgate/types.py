"""Enums and type aliases for farmgate."""

from enum import StrEnum


class RoleScope(StrEnum):
    PLATFORM = "PLATFORM"
    ORGANIZATION = "ORGANIZATION"
    FARM = "FARM"


class OrganizationType(StrEnum):
    FARM_OPERATION = "FARM_OPERATION"
    COMMODITY_TRADER = "COMMODITY_TRADER"
    LOGISTICS_PROVIDER = "LOGISTICS_PROVIDER"
    INTEGRATED_FARM = "INTEGRATED_FARM"


class PlanTier(StrEnum):
    FREE = "FREE"
    BASIC = "BASIC"
    PRO = "PRO"
    ENTERPRISE = "ENTERPRISE"


class DenyReason(StrEnum):
    UNAUTHENTICATED = "UNAUTHENTICATED"
    NO_ORGANIZATION = "NO_ORGANIZATION"
    ORGANIZATION_SUSPENDED = "ORGANIZATION_SUSPENDED"
    IMPERSONATION_NOT_ALLOWED = "IMPERSONATION_NOT_ALLOWED"
    INVALID_ORGANIZATION = "INVALID_ORGANIZATION"
    FEATURE_NOT_AVAILABLE_FOR_ORG_TYPE = "FEATURE_NOT_AVAILABLE_FOR_ORG_TYPE"
    FEATURE_NOT_ENABLED_FOR_ORGANIZATION = "FEATURE_NOT_ENABLED_FOR_ORGANIZATION"
    FEATURE_NOT_IN_PLAN = "FEATURE_NOT_IN_PLAN"
    MISSING_CAPABILITY = "MISSING_CAPABILITY"
    MISSING_PERMISSION = "MISSING_PERMISSION"
    MISSING_ROLE = "MISSING_ROLE"
    INSUFFICIENT_ROLE_LEVEL = "INSUFFICIENT_ROLE_LEVEL"
    ORG_TYPE_NOT_ALLOWED = "ORG_TYPE_NOT_ALLOWED"
    PLATFORM_ADMIN_REQUIRED = "PLATFORM_ADMIN_REQUIRED"
    LOOKUP_UNAVAILABLE = "LOOKUP_UNAVAILABLE"
