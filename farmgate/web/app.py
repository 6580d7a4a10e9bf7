"""FastAPI application factory."""

from __future__ import annotations

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from farmgate.config.logging import setup_logging
from farmgate.config.settings import get_settings
from farmgate.web.dependencies import IMPERSONATED_ORG_HEADER, IMPERSONATED_ORG_NAME_HEADER
from farmgate.web.errors import register_exception_handlers
from farmgate.web.middleware import RequestIDMiddleware
from farmgate.web.routes.context import router as context_router
from farmgate.web.routes.organizations import router as organizations_router

logger = structlog.get_logger(__name__)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Principal resolution happens upstream: an authentication middleware is
    expected to put a ``Principal`` on ``request.state.principal``. Every
    route guards itself with ``authorize(route_id)``.
    """
    settings = get_settings()
    setup_logging(log_level=settings.log_level, json_output=not settings.debug)

    app = FastAPI(
        title="farmgate",
        description="Authorization pipeline for the multi-tenant farm platform",
        version="0.1.0",
    )

    register_exception_handlers(app)

    # Middleware (last added runs first)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=[
            "Content-Type",
            "Authorization",
            "X-Request-ID",
            settings.organization_header,
        ],
        expose_headers=[IMPERSONATED_ORG_HEADER, IMPERSONATED_ORG_NAME_HEADER],
    )
    app.add_middleware(RequestIDMiddleware)

    app.include_router(context_router)
    app.include_router(organizations_router)

    logger.info("app_created")
    return app
