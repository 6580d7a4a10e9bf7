"""Organization directory: PostgreSQL-backed, with an in-memory fallback."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from farmgate.authz.principal import OrganizationSnapshot
from farmgate.exceptions import LookupUnavailableError
from farmgate.models.database import Organization, load_names
from farmgate.types import OrganizationType, PlanTier

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)


def to_snapshot(org: Organization) -> OrganizationSnapshot:
    """Convert a row into the read-only snapshot the pipeline consumes."""
    try:
        org_type: OrganizationType | str = OrganizationType(org.type)
    except ValueError:
        # Unknown types stay raw; the feature type gate rejects them
        logger.warning("organization_unknown_type", org_id=org.id, org_type=org.type)
        org_type = org.type
    try:
        tier = PlanTier(org.plan.upper())
    except ValueError:
        tier = PlanTier.FREE
    return OrganizationSnapshot(
        id=org.id,
        name=org.name,
        type=org_type,  # type: ignore[arg-type]
        plan_tier=tier,
        is_suspended=org.suspended_at is not None,
        is_active=org.is_active,
        allowed_modules=load_names(org.allowed_modules_json),
        features=load_names(org.features_json),
    )


class DatabaseOrganizationDirectory:
    """Reads organization snapshots from PostgreSQL."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def get(self, org_id: str) -> OrganizationSnapshot | None:
        try:
            async with AsyncSession(self._engine) as session:
                stmt = select(Organization).where(col(Organization.id) == org_id)
                result = await session.execute(stmt)
                org = result.scalars().first()
        except SQLAlchemyError as exc:
            logger.warning("organization_lookup_failed", org_id=org_id, error=str(exc))
            raise LookupUnavailableError("Organization lookup failed") from exc
        return to_snapshot(org) if org else None

    async def list_selectable(self) -> list[OrganizationSnapshot]:
        """Active, non-suspended organizations ordered by name."""
        try:
            async with AsyncSession(self._engine) as session:
                stmt = (
                    select(Organization)
                    .where(
                        col(Organization.is_active).is_(True),
                        col(Organization.suspended_at).is_(None),
                    )
                    .order_by(col(Organization.name))
                )
                result = await session.execute(stmt)
                rows = result.scalars().all()
        except SQLAlchemyError as exc:
            logger.warning("organization_list_failed", error=str(exc))
            raise LookupUnavailableError("Organization listing failed") from exc
        return [to_snapshot(org) for org in rows]


class InMemoryOrganizationDirectory:
    """In-memory fallback for dev/testing without a database."""

    def __init__(self, organizations: Iterable[OrganizationSnapshot] = ()) -> None:
        self._orgs: dict[str, OrganizationSnapshot] = {org.id: org for org in organizations}

    def add(self, organization: OrganizationSnapshot) -> None:
        self._orgs[organization.id] = organization

    async def get(self, org_id: str) -> OrganizationSnapshot | None:
        return self._orgs.get(org_id)

    async def list_selectable(self) -> list[OrganizationSnapshot]:
        usable = [org for org in self._orgs.values() if org.is_usable]
        return sorted(usable, key=lambda org: org.name)
