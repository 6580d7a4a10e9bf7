"""Health and request-context routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from farmgate.authz.decision import ScopingFilter
from farmgate.authz.requirements import public
from farmgate.web.dependencies import authorize, route_requirements

router = APIRouter(prefix="/api", tags=["context"])

route_requirements.register("health", public())
route_requirements.register("context.current")


class ContextResponse(BaseModel):
    organization_id: str | None
    is_impersonation: bool


@router.get("/health")
async def health_check(
    _scope: ScopingFilter | None = Depends(authorize("health")),
) -> dict[str, str]:
    return {"status": "ok"}


@router.get("/context", response_model=ContextResponse)
async def current_context(
    scope: ScopingFilter | None = Depends(authorize("context.current")),
) -> dict[str, object]:
    """The organization this request is scoped to (None when unscoped)."""
    return {
        "organization_id": scope.organization_id if scope else None,
        "is_impersonation": scope.is_impersonation if scope else False,
    }
