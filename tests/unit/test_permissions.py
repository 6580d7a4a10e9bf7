import pytest

from farmgate.authz.decision import EvaluationContext, ScopingFilter
from farmgate.authz.permissions import PermissionRolePolicy, role_covers
from farmgate.authz.requirements import (
    NO_REQUIREMENT,
    require_permission,
    require_platform_admin,
    require_role,
    require_role_level,
)
from farmgate.types import DenyReason, RoleScope


def _ctx(principal, requirement, farm_id=None, scoped_org=None) -> EvaluationContext:
    scoping = ScopingFilter(scoped_org) if scoped_org else None
    return EvaluationContext(
        principal=principal, requirement=requirement, farm_id=farm_id, scoping_filter=scoping
    )


@pytest.fixture()
def policy() -> PermissionRolePolicy:
    return PermissionRolePolicy()


@pytest.mark.unit
class TestRoleCovers:
    def test_platform_scope_covers_everything(self, make_role, make_principal) -> None:
        role = make_role(scope=RoleScope.PLATFORM)
        assert role_covers(role, make_principal(), "org-9", "farm-9") is True

    def test_unbound_org_role_uses_principal_org(self, make_role, make_principal) -> None:
        role = make_role()
        assert role_covers(role, make_principal(), "org-1", None) is True
        assert role_covers(role, make_principal(), "org-2", None) is False

    def test_bound_org_role(self, make_role, make_principal) -> None:
        role = make_role(organization_id="org-2")
        assert role_covers(role, make_principal(), "org-2", None) is True
        assert role_covers(role, make_principal(), "org-1", None) is False

    def test_farm_role_requires_matching_farm(self, make_role, make_principal) -> None:
        role = make_role(scope=RoleScope.FARM, farm_id="farm-1")
        assert role_covers(role, make_principal(), "org-1", "farm-1") is True
        assert role_covers(role, make_principal(), "org-1", "farm-2") is False
        assert role_covers(role, make_principal(), "org-1", None) is False


@pytest.mark.unit
class TestPermissionCheck:
    async def test_nothing_required(self, policy, make_principal) -> None:
        assert await policy.check_permission(_ctx(make_principal(), NO_REQUIREMENT)) is None

    async def test_farm_role_on_own_farm(self, policy, make_role, make_principal) -> None:
        role = make_role(scope=RoleScope.FARM, farm_id="F1", permissions={"activities:update"})
        principal = make_principal(roles=[role])
        req = require_permission("activities", "update")
        assert await policy.check_permission(_ctx(principal, req, farm_id="F1")) is None

    async def test_farm_role_on_other_farm(self, policy, make_role, make_principal) -> None:
        role = make_role(scope=RoleScope.FARM, farm_id="F1", permissions={"activities:update"})
        principal = make_principal(roles=[role])
        req = require_permission("activities", "update")
        result = await policy.check_permission(_ctx(principal, req, farm_id="F2"))
        assert result is not None
        assert result.reason == DenyReason.MISSING_PERMISSION
        assert result.message == "You do not have permission to update activities"

    async def test_org_role_covers_any_farm(self, policy, make_role, make_principal) -> None:
        principal = make_principal(roles=[make_role(permissions={"farms:read"})])
        req = require_permission("farms", "read")
        assert await policy.check_permission(_ctx(principal, req, farm_id="F7")) is None

    async def test_org_role_does_not_follow_impersonated_scope(
        self, policy, make_role, make_principal
    ) -> None:
        principal = make_principal(roles=[make_role(permissions={"farms:read"})])
        req = require_permission("farms", "read")
        result = await policy.check_permission(_ctx(principal, req, scoped_org="org-2"))
        assert result is not None
        assert result.reason == DenyReason.MISSING_PERMISSION

    async def test_wildcard_grant(self, policy, make_role, make_principal) -> None:
        principal = make_principal(roles=[make_role(permissions={"orders:*"})])
        req = require_permission("orders", "delete")
        assert await policy.check_permission(_ctx(principal, req)) is None

    async def test_permission_without_grant(self, policy, make_role, make_principal) -> None:
        principal = make_principal(roles=[make_role(permissions={"farms:read"})])
        req = require_permission("farms", "delete")
        result = await policy.check_permission(_ctx(principal, req))
        assert result is not None
        assert result.reason == DenyReason.MISSING_PERMISSION

    async def test_platform_admin_bypass(self, policy, make_principal) -> None:
        admin = make_principal(is_platform_admin=True)
        req = require_permission("farms", "delete")
        assert await policy.check_permission(_ctx(admin, req)) is None


@pytest.mark.unit
class TestRoleCheck:
    async def test_name_match_is_case_insensitive(self, policy, make_role, make_principal) -> None:
        principal = make_principal(roles=[make_role(name="farm manager")])
        assert await policy.check_role(_ctx(principal, require_role("Farm Manager"))) is None

    async def test_missing_role(self, policy, make_role, make_principal) -> None:
        principal = make_principal(roles=[make_role()])
        result = await policy.check_role(_ctx(principal, require_role("admin")))
        assert result is not None
        assert result.reason == DenyReason.MISSING_ROLE

    async def test_admin_bypass(self, policy, make_principal) -> None:
        admin = make_principal(is_platform_admin=True)
        assert await policy.check_role(_ctx(admin, require_role("admin"))) is None

    async def test_admin_bypass_disallowed(self, policy, make_principal) -> None:
        admin = make_principal(is_platform_admin=True)
        req = require_role("admin", allow_platform_admin_bypass=False)
        result = await policy.check_role(_ctx(admin, req))
        assert result is not None
        assert result.reason == DenyReason.MISSING_ROLE


@pytest.mark.unit
class TestRoleLevelCheck:
    @pytest.mark.parametrize(("levels", "allowed"), [([80], True), ([30], False), ([30, 50], True)])
    async def test_highest_level_counts(
        self, policy, make_role, make_principal, levels: list[int], allowed: bool
    ) -> None:
        roles = [make_role(id=f"role-{i}", level=level) for i, level in enumerate(levels)]
        principal = make_principal(roles=roles)
        req = require_role_level(50)
        result = await policy.check_role_level(_ctx(principal, req))
        assert (result is None) is allowed
        if not allowed:
            assert result.reason == DenyReason.INSUFFICIENT_ROLE_LEVEL

    async def test_level_fifty_against_higher_and_lower_minimums(
        self, policy, make_role, make_principal
    ) -> None:
        principal = make_principal(roles=[make_role(level=50)])

        denied = await policy.check_role_level(_ctx(principal, require_role_level(80)))
        assert denied is not None
        assert denied.reason == DenyReason.INSUFFICIENT_ROLE_LEVEL
        assert denied.status_code == 403

        assert await policy.check_role_level(_ctx(principal, require_role_level(30))) is None

    async def test_no_roles_is_level_zero(self, policy, make_principal) -> None:
        principal = make_principal()
        assert await policy.check_role_level(_ctx(principal, require_role_level(0))) is None
        result = await policy.check_role_level(_ctx(principal, require_role_level(1)))
        assert result is not None
        assert result.reason == DenyReason.INSUFFICIENT_ROLE_LEVEL

    async def test_admin_bypass(self, policy, make_principal) -> None:
        admin = make_principal(is_platform_admin=True)
        assert await policy.check_role_level(_ctx(admin, require_role_level(100))) is None


@pytest.mark.unit
class TestPlatformAdminCheck:
    async def test_not_required(self, policy, make_principal) -> None:
        assert await policy.check_platform_admin(_ctx(make_principal(), NO_REQUIREMENT)) is None

    async def test_platform_admin_passes(self, policy, make_principal) -> None:
        admin = make_principal(is_platform_admin=True)
        assert await policy.check_platform_admin(_ctx(admin, require_platform_admin())) is None

    async def test_top_level_org_admin_denied(self, policy, make_role, make_principal) -> None:
        owner = make_principal(roles=[make_role(name="admin", level=100, permissions={"*:*"})])
        result = await policy.check_platform_admin(_ctx(owner, require_platform_admin()))
        assert result is not None
        assert result.reason == DenyReason.PLATFORM_ADMIN_REQUIRED

    async def test_platform_scoped_role_is_not_the_flag(
        self, policy, make_role, make_principal
    ) -> None:
        principal = make_principal(roles=[make_role(scope=RoleScope.PLATFORM, level=100)])
        result = await policy.check_platform_admin(_ctx(principal, require_platform_admin()))
        assert result is not None
        assert result.reason == DenyReason.PLATFORM_ADMIN_REQUIRED
