"""Subscription entitlement lookup: PostgreSQL-backed, with an in-memory fallback."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from farmgate.authz.catalog import PlanAddOns
from farmgate.authz.entitlements import SubscriptionEntitlement, build_entitlement
from farmgate.exceptions import LookupUnavailableError
from farmgate.models.database import Subscription, SubscriptionPlan, load_names

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)

# Subscription states that still grant the plan's entitlements
ENTITLED_STATUSES = ("active", "trialing")


def plan_add_ons(plan: SubscriptionPlan) -> PlanAddOns:
    return PlanAddOns(
        has_advanced_analytics=plan.has_advanced_analytics,
        has_ai_insights=plan.has_ai_insights,
        has_api_access=plan.has_api_access,
        has_custom_roles=plan.has_custom_roles,
        has_priority_support=plan.has_priority_support,
        has_white_label=plan.has_white_label,
    )


class DatabaseEntitlementLookup:
    """Resolves an organization's entitled subscription from PostgreSQL."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def get_entitlement(self, org_id: str) -> SubscriptionEntitlement | None:
        try:
            async with AsyncSession(self._engine) as session:
                stmt = (
                    select(Subscription, SubscriptionPlan)
                    .join(SubscriptionPlan, col(SubscriptionPlan.id) == col(Subscription.plan_id))
                    .where(
                        col(Subscription.org_id) == org_id,
                        col(Subscription.status).in_(ENTITLED_STATUSES),
                    )
                )
                result = await session.execute(stmt)
                row = result.first()
        except SQLAlchemyError as exc:
            logger.warning("entitlement_lookup_failed", org_id=org_id, error=str(exc))
            raise LookupUnavailableError("Entitlement lookup failed") from exc

        if row is None:
            logger.debug("entitlement_not_found", org_id=org_id)
            return None

        subscription, plan = row
        return build_entitlement(
            org_id,
            plan.tier,
            add_ons=plan_add_ons(plan),
            extra_modules=load_names(subscription.extra_modules_json),
        )


class InMemoryEntitlementLookup:
    """In-memory fallback for dev/testing without a database."""

    def __init__(self) -> None:
        self._entitlements: dict[str, SubscriptionEntitlement] = {}

    def set(self, entitlement: SubscriptionEntitlement) -> None:
        self._entitlements[entitlement.organization_id] = entitlement

    def remove(self, org_id: str) -> None:
        self._entitlements.pop(org_id, None)

    async def get_entitlement(self, org_id: str) -> SubscriptionEntitlement | None:
        return self._entitlements.get(org_id)
