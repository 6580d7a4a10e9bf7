"""Platform-admin organization routes: the impersonation picker and cache control."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from farmgate.authz.pipeline import AuthorizationPipeline
from farmgate.authz.requirements import platform_admin_only
from farmgate.web.dependencies import (
    authorize,
    get_organization_directory,
    get_pipeline,
    route_requirements,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/organizations", tags=["organizations"])

route_requirements.register("organizations.selectable", platform_admin_only())
route_requirements.register("organizations.invalidate_entitlements", platform_admin_only())


class SelectableOrganizationResponse(BaseModel):
    id: str
    name: str
    type: str
    plan_tier: str


@router.get("/selectable", response_model=list[SelectableOrganizationResponse])
async def list_selectable_organizations(
    _scope: Any = Depends(authorize("organizations.selectable")),
    directory: Any = Depends(get_organization_directory),
) -> list[dict[str, str]]:
    """Organizations a platform admin may impersonate via the override header."""
    organizations = await directory.list_selectable()
    return [
        {
            "id": org.id,
            "name": org.name,
            "type": str(org.type),
            "plan_tier": str(org.plan_tier),
        }
        for org in organizations
    ]


@router.post("/{org_id}/entitlements/invalidate", status_code=204)
async def invalidate_entitlements(
    org_id: str,
    _scope: Any = Depends(authorize("organizations.invalidate_entitlements")),
    pipeline: AuthorizationPipeline = Depends(get_pipeline),
) -> Response:
    """Drop cached entitlements after an organization or subscription change."""
    pipeline.invalidate_entitlements(org_id)
    logger.info("entitlements_invalidated", org_id=org_id)
    return Response(status_code=204)
