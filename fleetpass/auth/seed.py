"""
FleetPass - Role and Permission Seeding

Loads role grants from roles.yaml and writes the permission catalogue,
the roles and (optionally) a bootstrap super admin into the store.

Every function is idempotent: running the seed twice leaves one row per
name and role grants equal to the definitions file.
"""

import logging
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict
from sqlmodel import Session as DBSession, select

from fleetpass.auth.models import Permission, Role, User
from fleetpass.auth.password import hash_password
from fleetpass.auth.permissions import (
    DEFAULT_ROLE,
    PERMISSION_DESCRIPTIONS,
    PermissionName,
    RoleName,
)


logger = logging.getLogger(__name__)

ROLES_FILE = Path(__file__).parent / "roles.yaml"
ALL_PERMISSIONS = "*"


class RoleDefinitionError(Exception):
    """Raised when the role definitions file is unreadable or names unknown roles or permissions."""
    pass


class RoleDefinition(BaseModel):
    """One role and the permissions it grants."""
    model_config = ConfigDict(frozen=True)

    name: RoleName
    display_name: str
    description: str = ""
    permissions: FrozenSet[PermissionName] = frozenset()


def load_role_definitions(path: Path = ROLES_FILE) -> List[RoleDefinition]:
    """
    Load and validate role grants.

    Raises:
        RoleDefinitionError: Unreadable file, unknown role or permission name,
            or no definition for the default role
    """
    try:
        with open(path, "r") as f:
            config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise RoleDefinitionError(f"Cannot read role definitions from {path}: {e}") from e

    roles = config.get("roles") or {}
    if not isinstance(roles, dict):
        raise RoleDefinitionError("'roles' must be a mapping of role name to definition")

    definitions = []
    for raw_name, body in roles.items():
        body = body or {}
        try:
            role_name = RoleName(raw_name)
        except ValueError:
            raise RoleDefinitionError(f"Unknown role: {raw_name!r}")

        granted = body.get("permissions") or []
        if ALL_PERMISSIONS in granted:
            permissions = frozenset(PermissionName)
        else:
            permissions = set()
            for raw_permission in granted:
                try:
                    permissions.add(PermissionName(raw_permission))
                except ValueError:
                    raise RoleDefinitionError(
                        f"Unknown permission {raw_permission!r} in role {raw_name!r}"
                    )
            permissions = frozenset(permissions)

        definitions.append(RoleDefinition(
            name=role_name,
            display_name=body.get("display_name") or raw_name,
            description=body.get("description") or "",
            permissions=permissions,
        ))

    if DEFAULT_ROLE not in {d.name for d in definitions}:
        raise RoleDefinitionError(f"Default role {DEFAULT_ROLE.value!r} is not defined")

    return definitions


def seed_permissions(db: DBSession) -> Dict[str, Permission]:
    """Insert any missing permissions from the catalogue; returns all by name."""
    existing = {p.name: p for p in db.exec(select(Permission)).all()}

    created = 0
    for permission_name in PermissionName:
        if permission_name.value in existing:
            continue
        permission = Permission(
            name=permission_name.value,
            resource=permission_name.resource,
            action=permission_name.action,
            description=PERMISSION_DESCRIPTIONS.get(permission_name, ""),
        )
        db.add(permission)
        existing[permission.name] = permission
        created += 1

    db.commit()
    if created:
        logger.info("Seeded %d permissions", created)
    return existing


def seed_roles(
    db: DBSession,
    definitions: Iterable[RoleDefinition],
    permissions: Dict[str, Permission],
) -> Dict[str, Role]:
    """Insert or update roles so their grants match the definitions."""
    existing = {r.name: r for r in db.exec(select(Role)).all()}

    for definition in definitions:
        key = definition.name.value
        role = existing.get(key)
        if role is None:
            role = Role(name=key, display_name=definition.display_name)
            existing[key] = role
            logger.info("Seeded role %s", key)

        role.display_name = definition.display_name
        role.description = definition.description
        role.permissions = [
            permissions[p.value]
            for p in sorted(definition.permissions, key=lambda p: p.value)
        ]
        db.add(role)

    db.commit()
    return existing


def seed_super_admin(
    db: DBSession,
    email: str,
    password: str,
    rounds: int,
) -> Optional[User]:
    """
    Create a verified super admin if the email is not taken.

    An existing account with that email is returned unchanged.
    """
    if not email or not password:
        return None

    existing = db.exec(select(User).where(User.email == email)).first()
    if existing:
        return existing

    role = db.exec(select(Role).where(Role.name == RoleName.SUPER_ADMIN.value)).first()
    if role is None:
        raise RoleDefinitionError("Role 'super_admin' must be seeded before the super admin account")

    user = User(
        email=email,
        password_hash=hash_password(password, rounds=rounds),
        first_name="Super",
        last_name="Admin",
        email_verified=True,
        is_active=True,
    )
    user.roles = [role]
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info("Seeded super admin %s", user.id)
    return user


def seed_database(db: DBSession, settings, path: Path = ROLES_FILE) -> None:
    """Seed permissions, roles and the optional bootstrap account."""
    definitions = load_role_definitions(path)
    permissions = seed_permissions(db)
    seed_roles(db, definitions, permissions)
    seed_super_admin(
        db,
        email=settings.SUPERADMIN_EMAIL,
        password=settings.SUPERADMIN_PASSWORD,
        rounds=settings.BCRYPT_ROUNDS,
    )
