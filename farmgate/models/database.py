"""SQLModel database table models."""

from __future__ import annotations

import json
import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


def _utc_now() -> datetime:
    """Return current UTC time as an aware datetime for TIMESTAMP WITH TIME ZONE columns."""
    return datetime.now(UTC)


def _timestamp(*, nullable: bool = False) -> Any:
    if nullable:
        return Field(default=None, sa_type=DateTime(timezone=True))
    return Field(default_factory=_utc_now, sa_type=DateTime(timezone=True))


def _new_uuid() -> str:
    return str(uuid.uuid4())


def dump_names(names: set[str] | frozenset[str] | list[str]) -> str:
    """Serialize a set of module/feature names for a ``*_json`` column."""
    return json.dumps(sorted(names))


def load_names(raw: str | None) -> frozenset[str]:
    if not raw:
        return frozenset()
    return frozenset(json.loads(raw))


# ---------------------------------------------------------------------------
# Tenancy
# ---------------------------------------------------------------------------


class Organization(SQLModel, table=True):
    __tablename__ = "organizations"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    name: str = Field(index=True)
    type: str = Field(default="FARM_OPERATION")  # see farmgate.types.OrganizationType
    plan: str = Field(default="FREE")  # FREE | BASIC | PRO | ENTERPRISE
    is_active: bool = Field(default=True)
    suspended_at: datetime | None = _timestamp(nullable=True)
    allowed_modules_json: str = "[]"
    features_json: str = "[]"
    created_at: datetime = _timestamp()
    updated_at: datetime = _timestamp()


# ---------------------------------------------------------------------------
# Billing models
# ---------------------------------------------------------------------------


class SubscriptionPlan(SQLModel, table=True):
    __tablename__ = "subscription_plans"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    name: str
    tier: str = Field(default="FREE", index=True)
    has_advanced_analytics: bool = Field(default=False)
    has_ai_insights: bool = Field(default=False)
    has_api_access: bool = Field(default=False)
    has_custom_roles: bool = Field(default=False)
    has_priority_support: bool = Field(default=False)
    has_white_label: bool = Field(default=False)
    is_active: bool = Field(default=True)
    created_at: datetime = _timestamp()
    updated_at: datetime = _timestamp()


class Subscription(SQLModel, table=True):
    __tablename__ = "subscriptions"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    org_id: str = Field(foreign_key="organizations.id", unique=True, index=True)
    plan_id: str = Field(foreign_key="subscription_plans.id", index=True)
    status: str = Field(default="active")  # active | trialing | canceled | past_due
    extra_modules_json: str = "[]"  # per-organization module overrides
    current_period_start: datetime | None = _timestamp(nullable=True)
    current_period_end: datetime | None = _timestamp(nullable=True)
    created_at: datetime = _timestamp()
    updated_at: datetime = _timestamp()


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------


class AuditLog(SQLModel, table=True):
    __tablename__ = "audit_logs"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    org_id: str = Field(index=True)
    user_id: str = Field(index=True)
    action: str = Field(index=True)
    resource_type: str = ""
    resource_id: str = ""
    details_json: str = "{}"
    ip_address: str = ""
    request_id: str = ""
    created_at: datetime = _timestamp()
