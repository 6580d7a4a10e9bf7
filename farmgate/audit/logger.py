"""Insert-only audit trail of privileged authorization events.

Uses its own connection so audit entries survive the caller's rollbacks.
Details are sanitized (credential-like keys stripped, 10KB max).
"""

from __future__ import annotations

import json
import uuid
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)

_SENSITIVE_FIELDS = frozenset(
    {
        "password",
        "secret",
        "token",
        "api_key",
        "authorization",
        "cookie",
        "session",
    }
)

_MAX_DETAILS_BYTES = 10_240  # 10KB

IMPERSONATION_ACTION = "organization_impersonated"


def _sanitize_details(details: dict[str, Any]) -> str:
    sanitized = {k: v for k, v in details.items() if k.lower() not in _SENSITIVE_FIELDS}
    encoded = json.dumps(sanitized, default=str)
    if len(encoded) > _MAX_DETAILS_BYTES:
        encoded = encoded[:_MAX_DETAILS_BYTES]
    return encoded


class AuditLogger:
    """Insert-only audit logger with its own connection."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def log(
        self,
        *,
        org_id: str,
        user_id: str,
        action: str,
        resource_type: str = "",
        resource_id: str = "",
        details: dict[str, Any] | None = None,
        ip_address: str = "",
        request_id: str = "",
    ) -> None:
        """Write an audit log entry. Failures are logged, never raised."""
        try:
            async with self._engine.begin() as conn:
                await conn.execute(
                    text(
                        "INSERT INTO audit_logs "
                        "(id, org_id, user_id, action, resource_type, resource_id, "
                        "details_json, ip_address, request_id, created_at) "
                        "VALUES (:id, :org_id, :user_id, :action, :resource_type, "
                        ":resource_id, :details_json, :ip_address, :request_id, "
                        "CURRENT_TIMESTAMP)"
                    ),
                    {
                        "id": str(uuid.uuid4()),
                        "org_id": org_id,
                        "user_id": user_id,
                        "action": action,
                        "resource_type": resource_type,
                        "resource_id": resource_id,
                        "details_json": _sanitize_details(details or {}),
                        "ip_address": ip_address,
                        "request_id": request_id,
                    },
                )
        except SQLAlchemyError:
            # Audit must never break the request
            logger.exception("audit_log_failed", action=action, org_id=org_id)


async def audit_impersonation(
    *,
    admin_id: str,
    target_org_id: str,
    target_org_name: str,
    route_id: str = "",
    ip_address: str = "",
    request_id: str = "",
) -> None:
    """Record a successful impersonation when the database is available.

    No-ops when USE_DATABASE=false.
    """
    from farmgate.config.settings import get_settings

    if not get_settings().use_database:
        return

    from farmgate.storage.database import get_engine

    await AuditLogger(get_engine()).log(
        org_id=target_org_id,
        user_id=admin_id,
        action=IMPERSONATION_ACTION,
        resource_type="route",
        resource_id=route_id,
        details={"target_org_name": target_org_name},
        ip_address=ip_address,
        request_id=request_id,
    )
