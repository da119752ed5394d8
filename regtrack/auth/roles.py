"""Role capability checks for lifecycle operations.

Roles are flat: employees author regulations, reviewers decide on them and
admins can do everything a reviewer can plus publish and reassign.
"""

from __future__ import annotations

from typing import Any

import structlog

from regtrack.core.errors import ForbiddenError
from regtrack.core.store import USERS, DocumentStore
from regtrack.models.enums import UserRole

logger = structlog.get_logger()


# ── Capabilities ──────────────────────────────────────────────────────────


class Capability:
    CREATE = "create"
    SUBMIT = "submit"
    REVIEW = "review"
    PUBLISH = "publish"
    ASSIGN_REVIEWER = "assign_reviewer"
    REQUEST_REVISION = "request_revision"
    SET_DEADLINE = "set_deadline"
    MANAGE = "manage"  # edit or delete regulations authored by others


_EMPLOYEE_CAPS: set[str] = {Capability.CREATE, Capability.SUBMIT}

_REVIEWER_EXTRA: set[str] = {Capability.REVIEW}

_ADMIN_EXTRA: set[str] = {
    Capability.PUBLISH,
    Capability.ASSIGN_REVIEWER,
    Capability.REQUEST_REVISION,
    Capability.SET_DEADLINE,
    Capability.MANAGE,
}

CAPABILITY_MATRIX: dict[UserRole, set[str]] = {
    UserRole.EMPLOYEE: _EMPLOYEE_CAPS,
    UserRole.REVIEWER: _EMPLOYEE_CAPS | _REVIEWER_EXTRA,
    UserRole.ADMIN: _EMPLOYEE_CAPS | _REVIEWER_EXTRA | _ADMIN_EXTRA,
}

REVIEWER_ROLES: frozenset[UserRole] = frozenset({UserRole.REVIEWER, UserRole.ADMIN})


def parse_role(raw: Any) -> UserRole:
    """Unknown or missing role strings fall back to ``employee``."""
    try:
        return UserRole(str(raw).strip().lower())
    except ValueError:
        return UserRole.EMPLOYEE


def check_capability(role: UserRole, capability: str) -> bool:
    caps = CAPABILITY_MATRIX.get(role)
    if caps is None:
        return False
    return capability in caps


# ── Resolver ──────────────────────────────────────────────────────────────


class RoleResolver:
    """Looks up user roles in the ``users`` collection."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def get_user(self, user_id: str) -> dict[str, Any] | None:
        if not user_id:
            return None
        return await self.store.get(USERS, user_id)

    async def role_of(self, user_id: str) -> UserRole | None:
        user = await self.get_user(user_id)
        if user is None:
            return None
        return parse_role(user.get("role"))

    async def reviewer_ids(self) -> list[str]:
        """Ids of every user who can review, in store order."""
        users = await self.store.query(USERS)
        return [user["id"] for user in users if parse_role(user.get("role")) in REVIEWER_ROLES]

    async def require(self, user_id: str, capability: str) -> dict[str, Any]:
        """Return the user document or raise ``ForbiddenError``."""
        user = await self.get_user(user_id)
        role = parse_role(user.get("role")) if user is not None else None
        if role is None or not check_capability(role, capability):
            logger.warning(
                "auth.capability_denied",
                user_id=user_id,
                role=role.value if role else None,
                capability=capability,
            )
            raise ForbiddenError(
                f"Insufficient permissions: {capability} requires a different role",
                detail={"capability": capability},
            )
        return user


def display_name(user: dict[str, Any] | None, fallback: str = "") -> str:
    if not user:
        return fallback
    return user.get("name") or user.get("displayName") or user.get("email") or fallback
