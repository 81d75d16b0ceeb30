"""
FleetPass - Role and Permission Vocabulary

The closed set of role and permission names used by seeding, the RBAC
resolver and route-level authorization checks. Names are the authorization
keys; display names and descriptions are metadata only.

Permissions follow the <resource>.<action> pattern.
"""

from enum import Enum
from typing import Dict, Union


class RoleName(str, Enum):
    """Stable role names. Registration assigns DEFAULT_ROLE."""
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    MANAGER = "manager"
    STAFF = "staff"
    CUSTOMER = "customer"


class PermissionName(str, Enum):
    """Granular permissions for system actions."""
    # Vehicles
    VEHICLES_CREATE = "vehicles.create"
    VEHICLES_READ = "vehicles.read"
    VEHICLES_UPDATE = "vehicles.update"
    VEHICLES_DELETE = "vehicles.delete"

    # Rentals
    RENTALS_CREATE = "rentals.create"
    RENTALS_READ = "rentals.read"
    RENTALS_UPDATE = "rentals.update"
    RENTALS_DELETE = "rentals.delete"
    RENTALS_APPROVE = "rentals.approve"

    # Users
    USERS_MANAGE = "users.manage"
    USERS_READ = "users.read"

    # Organizations
    ORGANIZATIONS_MANAGE = "organizations.manage"
    ORGANIZATIONS_READ = "organizations.read"

    # Locations
    LOCATIONS_CREATE = "locations.create"
    LOCATIONS_READ = "locations.read"
    LOCATIONS_UPDATE = "locations.update"
    LOCATIONS_DELETE = "locations.delete"

    # Reports
    REPORTS_VIEW = "reports.view"

    # System
    SYSTEM_MANAGE = "system.manage"

    @property
    def resource(self) -> str:
        return self.value.split(".", 1)[0]

    @property
    def action(self) -> str:
        return self.value.split(".", 1)[1]


DEFAULT_ROLE = RoleName.CUSTOMER


PERMISSION_DESCRIPTIONS: Dict[PermissionName, str] = {
    PermissionName.VEHICLES_CREATE: "Create new vehicles",
    PermissionName.VEHICLES_READ: "View vehicles",
    PermissionName.VEHICLES_UPDATE: "Update vehicles",
    PermissionName.VEHICLES_DELETE: "Delete vehicles",
    PermissionName.RENTALS_CREATE: "Create rentals",
    PermissionName.RENTALS_READ: "View rentals",
    PermissionName.RENTALS_UPDATE: "Update rentals",
    PermissionName.RENTALS_DELETE: "Delete rentals",
    PermissionName.RENTALS_APPROVE: "Approve rentals",
    PermissionName.USERS_MANAGE: "Manage users",
    PermissionName.USERS_READ: "View users",
    PermissionName.ORGANIZATIONS_MANAGE: "Manage organizations",
    PermissionName.ORGANIZATIONS_READ: "View organizations",
    PermissionName.LOCATIONS_CREATE: "Create locations",
    PermissionName.LOCATIONS_READ: "View locations",
    PermissionName.LOCATIONS_UPDATE: "Update locations",
    PermissionName.LOCATIONS_DELETE: "Delete locations",
    PermissionName.REPORTS_VIEW: "View reports",
    PermissionName.SYSTEM_MANAGE: "Manage system settings",
}


def name_key(name: Union[str, Enum]) -> str:
    """
    Plain string key for a role or permission name.

    str-valued Enum members hash by member name, not by value, so they
    must be unwrapped before set/dict membership tests against strings.
    """
    if isinstance(name, Enum):
        return name.value
    return name
