"""FastAPI dependency injection and shared authorization state."""

from __future__ import annotations

import string
from collections.abc import Awaitable, Callable
from functools import lru_cache
from typing import Any
from urllib.parse import quote

import structlog
from fastapi import Depends, Request, Response

from farmgate.audit.logger import audit_impersonation
from farmgate.authz.decision import Deny, ScopingFilter
from farmgate.authz.pipeline import AuthorizationPipeline, build_pipeline
from farmgate.authz.principal import Principal
from farmgate.authz.requirements import RouteRequirements
from farmgate.config.settings import get_settings
from farmgate.exceptions import AuthorizationDenied
from farmgate.storage.repositories.entitlements import InMemoryEntitlementLookup
from farmgate.storage.repositories.organizations import InMemoryOrganizationDirectory

logger = structlog.get_logger(__name__)

IMPERSONATED_ORG_HEADER = "X-Impersonated-Organization"
IMPERSONATED_ORG_NAME_HEADER = "X-Impersonated-Organization-Name"

# Path parameters that identify the farm a request targets
_FARM_PATH_PARAMS = ("farm_id", "farmId")

# Header values must stay latin-1; anything else in an org name is percent-encoded
_HEADER_SAFE = string.punctuation.replace("%", "") + " "


def _create_organization_directory() -> Any:
    """Create the appropriate organization directory based on settings."""
    settings = get_settings()
    if settings.use_database:
        from farmgate.storage.database import get_engine
        from farmgate.storage.repositories.organizations import (
            DatabaseOrganizationDirectory,
        )

        return DatabaseOrganizationDirectory(get_engine())
    return InMemoryOrganizationDirectory()


def _create_entitlement_lookup() -> Any:
    """Create the appropriate entitlement lookup based on settings."""
    settings = get_settings()
    if settings.use_database:
        from farmgate.storage.database import get_engine
        from farmgate.storage.repositories.entitlements import DatabaseEntitlementLookup

        return DatabaseEntitlementLookup(get_engine())
    return InMemoryEntitlementLookup()


# Shared lookups and the static route -> requirement map
organization_directory = _create_organization_directory()
entitlement_lookup = _create_entitlement_lookup()
route_requirements = RouteRequirements()


def get_organization_directory() -> Any:
    return organization_directory


@lru_cache
def get_pipeline() -> AuthorizationPipeline:
    """Return the process-wide pipeline."""
    return build_pipeline(organization_directory, entitlement_lookup)


async def get_principal(request: Request) -> Principal | None:
    """Principal resolved by the upstream authentication layer, if any."""
    principal = getattr(request.state, "principal", None)
    return principal if isinstance(principal, Principal) else None


def _farm_id(request: Request) -> str | None:
    for name in _FARM_PATH_PARAMS:
        value = request.path_params.get(name)
        if value:
            return str(value)
    return None


def authorize(
    route_id: str,
    registry: RouteRequirements | None = None,
) -> Callable[..., Awaitable[ScopingFilter | None]]:
    """Build the dependency guarding one registered route.

    The requirement is resolved here, once, when the route is declared. The
    dependency returns the request's ScopingFilter (None for public,
    tenancy-bypassing and unscoped admin requests) or raises
    AuthorizationDenied.
    """
    requirement = (registry or route_requirements).get(route_id)

    async def dependency(
        request: Request,
        response: Response,
        principal: Principal | None = Depends(get_principal),
        pipeline: AuthorizationPipeline = Depends(get_pipeline),
    ) -> ScopingFilter | None:
        decision = await pipeline.evaluate(
            principal,
            requirement,
            headers=request.headers,
            farm_id=_farm_id(request),
        )
        if isinstance(decision, Deny):
            logger.info("route_denied", route_id=route_id, reason=decision.reason.value)
            raise AuthorizationDenied(decision)

        impersonated = decision.impersonated_organization
        if impersonated is not None and principal is not None:
            response.headers[IMPERSONATED_ORG_HEADER] = impersonated.id
            response.headers[IMPERSONATED_ORG_NAME_HEADER] = quote(
                impersonated.name, safe=_HEADER_SAFE
            )
            await audit_impersonation(
                admin_id=principal.id,
                target_org_id=impersonated.id,
                target_org_name=impersonated.name,
                route_id=route_id,
                ip_address=request.client.host if request.client else "",
                request_id=request.headers.get("x-request-id", ""),
            )

        return decision.scoping_filter

    return dependency
