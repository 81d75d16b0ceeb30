"""
FleetPass - Authentication Package

Identity and access management with:
- bcrypt password hashing behind a configurable policy
- Single-use, expiring verification and reset tokens
- Stateless HS256 session tokens carrying roles and permissions
- Many-to-many RBAC seeded from roles.yaml
"""

from fleetpass.auth.models import User, Role, Permission
from fleetpass.auth.permissions import PermissionName, RoleName
from fleetpass.auth.dependencies import get_current_claims, require_permission, require_role
from fleetpass.auth.service import AuthService
from fleetpass.auth.tokens import SessionClaims, SessionTokenIssuer

__all__ = [
    "User",
    "Role",
    "Permission",
    "PermissionName",
    "RoleName",
    "get_current_claims",
    "require_permission",
    "require_role",
    "AuthService",
    "SessionClaims",
    "SessionTokenIssuer",
]
