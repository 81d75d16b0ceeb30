"""
FleetPass - RBAC Resolver

Pure functions over a user's already-loaded roles (each with its loaded
permissions). Fetching and joining is the identity store's job; nothing
here touches the database.

Empty role or permission sets resolve to empty results, never errors.
"""

from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Protocol, Union

from fleetpass.auth.permissions import PermissionName, RoleName, name_key


class PermissionLike(Protocol):
    name: str


class RoleLike(Protocol):
    name: str
    permissions: List[PermissionLike]


@dataclass(frozen=True)
class ResolvedAccess:
    """Role and permission names derived from a role set."""
    role_names: FrozenSet[str]
    permission_names: FrozenSet[str]

    def has_role(self, role: Union[RoleName, str]) -> bool:
        return name_key(role) in self.role_names

    def has_permission(self, permission: Union[PermissionName, str]) -> bool:
        return name_key(permission) in self.permission_names

    def sorted_roles(self) -> List[str]:
        return sorted(self.role_names)

    def sorted_permissions(self) -> List[str]:
        return sorted(self.permission_names)


def resolve_permissions(roles: Iterable[RoleLike]) -> FrozenSet[str]:
    """
    Union of permission names across roles, without duplicates.

    Example:
        roles {A: {p1, p2}, B: {p2, p3}} -> {p1, p2, p3}
    """
    return frozenset(
        permission.name
        for role in roles
        for permission in (role.permissions or [])
    )


def resolve_access(roles: Iterable[RoleLike]) -> ResolvedAccess:
    """Resolve role names and the de-duplicated permission set in one pass."""
    roles = list(roles or [])
    return ResolvedAccess(
        role_names=frozenset(role.name for role in roles),
        permission_names=resolve_permissions(roles),
    )


def has_role(roles: Iterable[RoleLike], role: Union[RoleName, str]) -> bool:
    """Check whether any loaded role carries the given stable name."""
    key = name_key(role)
    return any(r.name == key for r in roles or [])


def has_permission(roles: Iterable[RoleLike], permission: Union[PermissionName, str]) -> bool:
    """Check whether any loaded role grants the given permission."""
    return name_key(permission) in resolve_permissions(roles or [])
