"""Exception handlers mapping authorization failures to JSON responses."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from fastapi.responses import JSONResponse

from farmgate.authz.decision import deny
from farmgate.exceptions import AuthorizationDenied, LookupUnavailableError
from farmgate.types import DenyReason

if TYPE_CHECKING:
    from fastapi import FastAPI, Request

logger = structlog.get_logger(__name__)


async def authorization_denied_handler(request: Request, exc: AuthorizationDenied) -> JSONResponse:
    result = exc.deny
    return JSONResponse(
        status_code=result.status_code,
        content={"detail": result.message, "code": result.reason.value},
    )


async def lookup_unavailable_handler(
    request: Request, exc: LookupUnavailableError
) -> JSONResponse:
    # Backend detail stays in the logs
    logger.error("lookup_unavailable", path=request.url.path, error=str(exc))
    result = deny(DenyReason.LOOKUP_UNAVAILABLE)
    return JSONResponse(
        status_code=result.status_code,
        content={"detail": result.message, "code": result.reason.value},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AuthorizationDenied, authorization_denied_handler)  # type: ignore[arg-type]
    app.add_exception_handler(LookupUnavailableError, lookup_unavailable_handler)  # type: ignore[arg-type]
