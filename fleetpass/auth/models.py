"""
FleetPass - Identity Database Models

SQLModel-based models for users, roles and permissions.
Uses PostgreSQL for production, SQLite for local development.

Security:
- Passwords stored as bcrypt hashes only, never serialized outward
- Verification and reset tokens are stored together with their expiry;
  both fields are set together and cleared together
- All timestamps are naive UTC
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID, uuid4

from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import Column, String, Text, Boolean, DateTime


class UserRoleLink(SQLModel, table=True):
    """Many-to-many association between users and roles."""
    __tablename__ = "user_roles"

    user_id: UUID = Field(foreign_key="users.id", primary_key=True)
    role_id: UUID = Field(foreign_key="roles.id", primary_key=True)


class RolePermissionLink(SQLModel, table=True):
    """Many-to-many association between roles and permissions."""
    __tablename__ = "role_permissions"

    role_id: UUID = Field(foreign_key="roles.id", primary_key=True)
    permission_id: UUID = Field(foreign_key="permissions.id", primary_key=True)


class Permission(SQLModel, table=True):
    """
    A named permission.

    Attributes:
        name: Globally unique "<resource>.<action>" key
        resource: Descriptive metadata (e.g. "vehicles")
        action: Descriptive metadata (e.g. "create")
    """
    __tablename__ = "permissions"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    name: str = Field(
        sa_column=Column(String(100), unique=True, index=True, nullable=False),
        description="Permission key, e.g. vehicles.create"
    )
    resource: str = Field(sa_column=Column(String(50), nullable=False, index=True))
    action: str = Field(sa_column=Column(String(50), nullable=False, index=True))
    description: str = Field(default="", sa_column=Column(Text, nullable=False, default=""))
    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        sa_column=Column(DateTime, nullable=False, default=datetime.utcnow),
    )

    roles: List["Role"] = Relationship(back_populates="permissions", link_model=RolePermissionLink)


class Role(SQLModel, table=True):
    """
    A role grouping permissions.

    Attributes:
        name: Stable authorization key (e.g. "super_admin")
        display_name: Human-readable label (e.g. "Super Administrator")
    """
    __tablename__ = "roles"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    name: str = Field(
        sa_column=Column(String(50), unique=True, index=True, nullable=False),
        description="Stable role key"
    )
    display_name: str = Field(sa_column=Column(String(100), nullable=False))
    description: str = Field(default="", sa_column=Column(Text, nullable=False, default=""))
    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        sa_column=Column(DateTime, nullable=False, default=datetime.utcnow),
    )

    permissions: List[Permission] = Relationship(back_populates="roles", link_model=RolePermissionLink)
    users: List["User"] = Relationship(back_populates="roles", link_model=UserRoleLink)


class User(SQLModel, table=True):
    """
    User account for authentication.

    Attributes:
        id: Unique identifier (UUIDv4)
        email: Login identifier (unique, indexed)
        password_hash: bcrypt hash (never store plaintext)
        email_verified: Set once a verification token is redeemed
        verification_token / verification_expires_at: Pending verification
        reset_token / reset_expires_at: Pending password reset
        is_active: Inactive users cannot login
        last_login_at: Last successful login or verification
        organization_id: Optional tenant reference (organizations live elsewhere)
    """
    __tablename__ = "users"

    id: UUID = Field(
        default_factory=uuid4,
        primary_key=True,
        description="Unique user identifier"
    )
    email: str = Field(
        sa_column=Column(String(255), unique=True, index=True, nullable=False),
        description="User email address (login identifier)"
    )
    password_hash: str = Field(
        sa_column=Column(String(255), nullable=False),
        description="bcrypt password hash"
    )
    first_name: str = Field(default="", sa_column=Column(String(100), nullable=False, default=""))
    last_name: str = Field(default="", sa_column=Column(String(100), nullable=False, default=""))
    phone: str = Field(default="", sa_column=Column(String(20), nullable=False, default=""))

    # Email verification
    email_verified: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, default=False),
    )
    verification_token: Optional[str] = Field(
        default=None,
        sa_column=Column(String(255), nullable=True, index=True),
    )
    verification_expires_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime, nullable=True),
    )

    # Password reset
    reset_token: Optional[str] = Field(
        default=None,
        sa_column=Column(String(255), nullable=True, index=True),
    )
    reset_expires_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime, nullable=True),
    )

    # Status
    is_active: bool = Field(
        default=True,
        sa_column=Column(Boolean, nullable=False, default=True),
        description="Whether user can authenticate"
    )
    last_login_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime, nullable=True),
    )

    organization_id: Optional[UUID] = Field(default=None, index=True)

    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        sa_column=Column(DateTime, nullable=False, default=datetime.utcnow),
        description="Account creation timestamp"
    )
    updated_at: datetime = Field(
        default_factory=datetime.utcnow,
        sa_column=Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow),
        description="Last update timestamp"
    )

    roles: List[Role] = Relationship(back_populates="users", link_model=UserRoleLink)
