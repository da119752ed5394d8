"""Tests for role lookup and capability checks."""
import pytest

from regtrack.auth.roles import Capability, RoleResolver, check_capability, parse_role
from regtrack.core.errors import ForbiddenError
from regtrack.models.enums import UserRole
from tests.conftest import InMemoryStore

pytestmark = pytest.mark.anyio


def test_capability_matrix_is_cumulative() -> None:
    assert check_capability(UserRole.EMPLOYEE, Capability.SUBMIT)
    assert not check_capability(UserRole.EMPLOYEE, Capability.REVIEW)
    assert check_capability(UserRole.REVIEWER, Capability.REVIEW)
    assert not check_capability(UserRole.REVIEWER, Capability.PUBLISH)
    for capability in (Capability.REVIEW, Capability.PUBLISH, Capability.ASSIGN_REVIEWER):
        assert check_capability(UserRole.ADMIN, capability)


@pytest.mark.parametrize(
    "raw, expected",
    [("admin", UserRole.ADMIN), (" Reviewer ", UserRole.REVIEWER), (None, UserRole.EMPLOYEE), ("owner", UserRole.EMPLOYEE)],
)
def test_parse_role(raw: object, expected: UserRole) -> None:
    assert parse_role(raw) is expected


async def test_role_of(store: InMemoryStore) -> None:
    roles = RoleResolver(store)

    assert await roles.role_of("adm-1") is UserRole.ADMIN
    assert await roles.role_of("emp-2") is UserRole.EMPLOYEE
    assert await roles.role_of("ghost") is None


async def test_require_raises_forbidden(store: InMemoryStore) -> None:
    roles = RoleResolver(store)

    user = await roles.require("adm-1", Capability.PUBLISH)
    assert user["name"] == "Ada Admin"
    with pytest.raises(ForbiddenError):
        await roles.require("rev-1", Capability.PUBLISH)


async def test_unknown_user_cannot_submit(store: InMemoryStore) -> None:
    with pytest.raises(ForbiddenError):
        await RoleResolver(store).require("ghost", Capability.SUBMIT)


def test_only_admins_manage_others_regulations() -> None:
    assert check_capability(UserRole.ADMIN, Capability.MANAGE)
    assert not check_capability(UserRole.REVIEWER, Capability.MANAGE)
    assert not check_capability(UserRole.EMPLOYEE, Capability.MANAGE)


async def test_reviewer_ids(store: InMemoryStore) -> None:
    assert sorted(await RoleResolver(store).reviewer_ids()) == ["adm-1", "rev-1"]
