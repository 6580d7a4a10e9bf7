"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from farmgate.authz.pipeline import AuthorizationPipeline
from farmgate.authz.principal import OrganizationSnapshot, Principal, Role
from farmgate.config.settings import get_settings
from farmgate.storage.database import init_db
from farmgate.storage.repositories.entitlements import InMemoryEntitlementLookup
from farmgate.storage.repositories.organizations import InMemoryOrganizationDirectory
from farmgate.types import OrganizationType, PlanTier, RoleScope


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Settings are lru_cached; isolate env changes between tests."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def make_org() -> Callable[..., OrganizationSnapshot]:
    def _make(**overrides: Any) -> OrganizationSnapshot:
        values: dict[str, Any] = {
            "id": "org-1",
            "name": "Green Acres",
            "type": OrganizationType.FARM_OPERATION,
            "plan_tier": PlanTier.BASIC,
            "allowed_modules": frozenset({"activities", "farm_management", "inventory"}),
            "features": frozenset(),
        }
        values.update(overrides)
        return OrganizationSnapshot(**values)

    return _make


@pytest.fixture()
def make_role() -> Callable[..., Role]:
    def _make(**overrides: Any) -> Role:
        values: dict[str, Any] = {
            "id": "role-1",
            "name": "Farm Worker",
            "level": 10,
            "scope": RoleScope.ORGANIZATION,
        }
        values.update(overrides)
        if "permissions" in values:
            values["permissions"] = frozenset(values["permissions"])
        return Role(**values)

    return _make


@pytest.fixture()
def make_principal() -> Callable[..., Principal]:
    def _make(**overrides: Any) -> Principal:
        values: dict[str, Any] = {
            "id": "user-1",
            "email": "grower@example.com",
            "organization_id": "org-1",
        }
        values.update(overrides)
        if "roles" in values:
            values["roles"] = tuple(values["roles"])
        if "capabilities" in values:
            values["capabilities"] = frozenset(values["capabilities"])
        return Principal(**values)

    return _make


@pytest.fixture()
def directory() -> InMemoryOrganizationDirectory:
    return InMemoryOrganizationDirectory()


@pytest.fixture()
def entitlements() -> InMemoryEntitlementLookup:
    return InMemoryEntitlementLookup()


@pytest.fixture()
def pipeline(
    directory: InMemoryOrganizationDirectory,
    entitlements: InMemoryEntitlementLookup,
) -> AuthorizationPipeline:
    return AuthorizationPipeline(directory, entitlements)


@pytest.fixture()
async def async_engine():
    """In-memory SQLite engine with all tables created."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    await init_db(engine)
    yield engine
    await engine.dispose()
