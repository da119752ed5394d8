"""Auth package: role lookup and capability checks."""

from regtrack.auth.roles import (
    REVIEWER_ROLES,
    Capability,
    RoleResolver,
    check_capability,
    parse_role,
)

__all__ = [
    "REVIEWER_ROLES",
    "Capability",
    "RoleResolver",
    "check_capability",
    "parse_role",
]
