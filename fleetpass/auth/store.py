"""
FleetPass - Identity Store

Persistence boundary for users, roles and permissions.
Auth flows go through these functions; they never build SQL themselves.

Security:
- Token redemption is a single conditional UPDATE that matches the token
  AND an unexpired expiry, and clears both fields in the same statement.
  Two concurrent redemptions of one token cannot both succeed.
- All queries use bound parameters
"""

from datetime import datetime
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload
from sqlmodel import Session as DBSession, select

from fleetpass.auth.models import Role, User
from fleetpass.auth.permissions import RoleName, name_key


class DuplicateEmailError(Exception):
    """Raised when an insert collides with an existing email."""
    pass


def _with_access(statement):
    """Eager-load roles and their permissions."""
    return statement.options(selectinload(User.roles).selectinload(Role.permissions))


async def get_user_by_email(
    db: DBSession,
    email: str,
    with_access: bool = False,
) -> Optional[User]:
    """
    Find a user by exact email match.

    Args:
        db: Database session
        email: Email as stored (callers normalize case if configured)
        with_access: Eager-load roles and permissions
    """
    statement = select(User).where(User.email == email)
    if with_access:
        statement = _with_access(statement)
    return db.exec(statement).first()


async def get_user_by_id(
    db: DBSession,
    user_id: UUID,
    with_access: bool = True,
) -> Optional[User]:
    """Find a user by primary key, roles and permissions loaded by default."""
    statement = select(User).where(User.id == user_id)
    if with_access:
        statement = _with_access(statement)
    return db.exec(statement).first()


async def get_user_by_verification_token(db: DBSession, token: str) -> Optional[User]:
    """Find the user holding a pending verification token (exact match)."""
    if not token:
        return None
    statement = select(User).where(User.verification_token == token)
    return db.exec(statement).first()


async def get_user_by_reset_token(db: DBSession, token: str) -> Optional[User]:
    """Find the user holding a pending reset token (exact match)."""
    if not token:
        return None
    statement = select(User).where(User.reset_token == token)
    return db.exec(statement).first()


async def get_role_by_name(db: DBSession, name: RoleName) -> Optional[Role]:
    """Look up a role by its stable name."""
    statement = select(Role).where(Role.name == name_key(name))
    return db.exec(statement).first()


async def create_user(db: DBSession, user: User, roles: Iterable[Role]) -> User:
    """
    Insert a new user with its role memberships.

    Raises:
        DuplicateEmailError: If the email is already taken
    """
    user.roles = list(roles)
    db.add(user)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise DuplicateEmailError(user.email) from e
    db.refresh(user)
    return user


async def record_login(db: DBSession, user: User, when: datetime) -> None:
    """Stamp last_login_at."""
    user.last_login_at = when
    db.add(user)
    db.commit()


async def update_password_hash(db: DBSession, user: User, password_hash: str) -> None:
    """Replace a stored hash (used for work-factor upgrades)."""
    user.password_hash = password_hash
    db.add(user)
    db.commit()


async def set_reset_token(
    db: DBSession,
    user: User,
    token: str,
    expires_at: datetime,
) -> None:
    """Store a reset token together with its expiry, replacing any earlier one."""
    user.reset_token = token
    user.reset_expires_at = expires_at
    db.add(user)
    db.commit()


async def redeem_verification_token(db: DBSession, token: str, now: datetime) -> bool:
    """
    Atomically consume a verification token.

    Marks the account verified, clears the token and its expiry, and
    stamps last_login_at, only if the token still matches and has not
    expired.

    Returns:
        True if exactly this call consumed the token
    """
    statement = (
        update(User)
        .where(
            User.verification_token == token,
            User.verification_expires_at.is_not(None),
            User.verification_expires_at > now,
        )
        .values(
            email_verified=True,
            verification_token=None,
            verification_expires_at=None,
            last_login_at=now,
            updated_at=now,
        )
    )
    result = db.exec(statement)
    db.commit()
    return result.rowcount == 1


async def redeem_reset_token(
    db: DBSession,
    token: str,
    password_hash: str,
    now: datetime,
) -> bool:
    """
    Atomically consume a reset token and store the new password hash.

    Returns:
        True if exactly this call consumed the token
    """
    statement = (
        update(User)
        .where(
            User.reset_token == token,
            User.reset_expires_at.is_not(None),
            User.reset_expires_at > now,
        )
        .values(
            password_hash=password_hash,
            reset_token=None,
            reset_expires_at=None,
            updated_at=now,
        )
    )
    result = db.exec(statement)
    db.commit()
    return result.rowcount == 1
