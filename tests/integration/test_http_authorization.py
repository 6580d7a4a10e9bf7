from urllib.parse import unquote

import pytest
from fastapi import Depends, FastAPI, Request
from httpx import ASGITransport, AsyncClient

from farmgate.authz.decision import ScopingFilter
from farmgate.authz.requirements import RouteRequirements, require_permission
from farmgate.exceptions import LookupUnavailableError
from farmgate.types import RoleScope
from farmgate.web.app import create_app
from farmgate.web.dependencies import (
    IMPERSONATED_ORG_HEADER,
    IMPERSONATED_ORG_NAME_HEADER,
    authorize,
    get_organization_directory,
    get_pipeline,
    get_principal,
)
from farmgate.web.errors import register_exception_handlers

# Test-only stand-in for the upstream authentication layer
PRINCIPAL_HEADER = "X-Test-Principal"


@pytest.fixture()
def principals(make_principal, make_role) -> dict:
    return {
        "grower": make_principal(),
        "admin": make_principal(
            id="admin-1", email="ops@example.com", organization_id=None, is_platform_admin=True
        ),
        "owner": make_principal(
            id="owner-1",
            roles=[make_role(name="admin", level=100, permissions={"*:*"})],
        ),
        "farmhand": make_principal(
            id="user-2",
            roles=[
                make_role(
                    scope=RoleScope.FARM, farm_id="F1", permissions={"activities:update"}
                )
            ],
        ),
    }


@pytest.fixture()
def app(pipeline, directory, principals, make_org) -> FastAPI:
    directory.add(make_org())
    directory.add(make_org(id="org-2", name="Valley Traders & Sons"))
    directory.add(make_org(id="org-3", name="Dormant Ranch", is_suspended=True))

    async def principal_from_header(request: Request):
        return principals.get(request.headers.get(PRINCIPAL_HEADER, ""))

    application = create_app()
    application.dependency_overrides[get_principal] = principal_from_header
    application.dependency_overrides[get_pipeline] = lambda: pipeline
    application.dependency_overrides[get_organization_directory] = lambda: directory
    return application


@pytest.fixture()
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.mark.integration
class TestContextRoutes:
    async def test_health_is_public(self, client) -> None:
        resp = await client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    async def test_request_id_echoed(self, client) -> None:
        resp = await client.get("/api/health", headers={"X-Request-ID": "req-42"})
        assert resp.headers["x-request-id"] == "req-42"

    async def test_request_id_generated(self, client) -> None:
        resp = await client.get("/api/health")
        assert resp.headers["x-request-id"]

    async def test_unauthenticated(self, client) -> None:
        resp = await client.get("/api/context")
        assert resp.status_code == 401
        assert resp.json()["code"] == "UNAUTHENTICATED"

    async def test_regular_user_scoped_to_own_org(self, client) -> None:
        resp = await client.get("/api/context", headers={PRINCIPAL_HEADER: "grower"})
        assert resp.status_code == 200
        assert resp.json() == {"organization_id": "org-1", "is_impersonation": False}
        assert IMPERSONATED_ORG_HEADER not in resp.headers

    async def test_regular_user_cannot_impersonate(self, client) -> None:
        resp = await client.get(
            "/api/context",
            headers={PRINCIPAL_HEADER: "grower", "X-Organization-Id": "org-2"},
        )
        assert resp.status_code == 403
        body = resp.json()
        assert body["code"] == "IMPERSONATION_NOT_ALLOWED"
        assert body["detail"] == "Only platform administrators can impersonate organizations"

    async def test_admin_unscoped_without_header(self, client) -> None:
        resp = await client.get("/api/context", headers={PRINCIPAL_HEADER: "admin"})
        assert resp.status_code == 200
        assert resp.json() == {"organization_id": None, "is_impersonation": False}

    async def test_admin_impersonation_sets_headers(self, client) -> None:
        resp = await client.get(
            "/api/context",
            headers={PRINCIPAL_HEADER: "admin", "X-Organization-Id": "org-2"},
        )
        assert resp.status_code == 200
        assert resp.json() == {"organization_id": "org-2", "is_impersonation": True}
        assert resp.headers[IMPERSONATED_ORG_HEADER] == "org-2"
        assert unquote(resp.headers[IMPERSONATED_ORG_NAME_HEADER]) == "Valley Traders & Sons"

    async def test_admin_cannot_impersonate_suspended_org(self, client) -> None:
        resp = await client.get(
            "/api/context",
            headers={PRINCIPAL_HEADER: "admin", "X-Organization-Id": "org-3"},
        )
        assert resp.status_code == 403
        assert resp.json()["code"] == "INVALID_ORGANIZATION"


@pytest.mark.integration
class TestOrganizationRoutes:
    async def test_admin_lists_selectable_orgs(self, client) -> None:
        resp = await client.get(
            "/api/organizations/selectable", headers={PRINCIPAL_HEADER: "admin"}
        )
        assert resp.status_code == 200
        assert [org["id"] for org in resp.json()] == ["org-1", "org-2"]
        assert resp.json()[0] == {
            "id": "org-1",
            "name": "Green Acres",
            "type": "FARM_OPERATION",
            "plan_tier": "BASIC",
        }

    async def test_regular_user_denied(self, client) -> None:
        resp = await client.get(
            "/api/organizations/selectable", headers={PRINCIPAL_HEADER: "grower"}
        )
        assert resp.status_code == 403
        assert resp.json()["code"] == "PLATFORM_ADMIN_REQUIRED"

    async def test_org_owner_cannot_list_other_tenants(self, client) -> None:
        resp = await client.get(
            "/api/organizations/selectable", headers={PRINCIPAL_HEADER: "owner"}
        )
        assert resp.status_code == 403
        body = resp.json()
        assert body["code"] == "PLATFORM_ADMIN_REQUIRED"
        assert body["detail"] == "This resource requires platform administrator privileges"

    async def test_org_owner_cannot_invalidate_entitlements(self, client) -> None:
        resp = await client.post(
            "/api/organizations/org-2/entitlements/invalidate",
            headers={PRINCIPAL_HEADER: "owner"},
        )
        assert resp.status_code == 403
        assert resp.json()["code"] == "PLATFORM_ADMIN_REQUIRED"

    async def test_invalidate_entitlements(self, client) -> None:
        resp = await client.post(
            "/api/organizations/org-1/entitlements/invalidate",
            headers={PRINCIPAL_HEADER: "admin"},
        )
        assert resp.status_code == 204

    async def test_directory_outage_is_503(self, app, client) -> None:
        class _Down:
            async def list_selectable(self):
                raise LookupUnavailableError("directory unreachable")

        app.dependency_overrides[get_organization_directory] = lambda: _Down()
        resp = await client.get(
            "/api/organizations/selectable", headers={PRINCIPAL_HEADER: "admin"}
        )
        assert resp.status_code == 503
        assert resp.json()["code"] == "LOOKUP_UNAVAILABLE"


@pytest.mark.integration
class TestFarmScopedRoute:
    @pytest.fixture()
    def farm_app(self, pipeline, directory, principals, make_org) -> FastAPI:
        directory.add(make_org())
        registry = RouteRequirements()
        registry.register("activities.update", require_permission("activities", "update"))

        application = FastAPI()
        register_exception_handlers(application)

        @application.put("/farms/{farm_id}/activities/{activity_id}")
        async def update_activity(
            farm_id: str,
            activity_id: str,
            scope: ScopingFilter | None = Depends(authorize("activities.update", registry)),
        ) -> dict:
            return {"organization_id": scope.organization_id if scope else None}

        async def principal_from_header(request: Request):
            return principals.get(request.headers.get(PRINCIPAL_HEADER, ""))

        application.dependency_overrides[get_principal] = principal_from_header
        application.dependency_overrides[get_pipeline] = lambda: pipeline
        return application

    async def test_farm_role_on_own_farm(self, farm_app) -> None:
        transport = ASGITransport(app=farm_app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            resp = await ac.put("/farms/F1/activities/a-1", headers={PRINCIPAL_HEADER: "farmhand"})
        assert resp.status_code == 200
        assert resp.json() == {"organization_id": "org-1"}

    async def test_farm_role_on_other_farm(self, farm_app) -> None:
        transport = ASGITransport(app=farm_app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            resp = await ac.put("/farms/F2/activities/a-1", headers={PRINCIPAL_HEADER: "farmhand"})
        assert resp.status_code == 403
        assert resp.json()["code"] == "MISSING_PERMISSION"
