"""
FleetPass - Session Token Issuance

Creates and validates bearer JWTs carrying:
- Subject / user ID
- Email
- Role names and resolved permission names
- Organization ID
- Issued-at and expiry (24 hours by default)

The signing secret comes from the Settings object handed to the issuer at
startup; there is no module-level key.

Claims are a snapshot. Verification checks signature and expiry only and
does not consult the identity store, so role or permission changes reach
an already-issued token only when it expires.
"""

from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Union

from jose import jwt, JWTError
from pydantic import BaseModel, Field

from fleetpass.auth.permissions import PermissionName, RoleName, name_key


class InvalidTokenError(Exception):
    """Raised when JWT validation fails."""
    pass


class SessionClaims(BaseModel):
    """
    JWT payload structure.

    Attributes:
        sub: Subject (user ID)
        user_id: Same as sub, kept for clients that read it directly
        email: Account email at issuance
        roles: Role names at issuance
        permissions: Resolved permission names at issuance
        organization_id: Tenant reference, if any
        iat: Issued-at timestamp
        exp: Expiration timestamp
    """
    sub: str = Field(..., description="User ID")
    user_id: str = Field(..., description="User ID")
    email: str
    roles: List[str] = Field(default_factory=list)
    permissions: List[str] = Field(default_factory=list)
    organization_id: Optional[str] = None
    iat: datetime = Field(..., description="Issued at time")
    exp: datetime = Field(..., description="Expiration time")

    def has_role(self, role: Union[RoleName, str]) -> bool:
        return name_key(role) in self.roles

    def has_permission(self, permission: Union[PermissionName, str]) -> bool:
        return name_key(permission) in self.permissions


class SessionTokenIssuer:
    """
    Signs and verifies session tokens with one immutable secret.

    Example:
        >>> issuer = SessionTokenIssuer.from_settings(settings)
        >>> token = issuer.issue(user, ["customer"], ["vehicles.read"])
        >>> issuer.verify(token).email == user.email
        True
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        expires_delta: timedelta = timedelta(hours=24),
    ):
        if not secret_key:
            raise ValueError("A signing secret is required")
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._expires_delta = expires_delta

    @classmethod
    def from_settings(cls, settings) -> "SessionTokenIssuer":
        return cls(
            secret_key=settings.SECRET_KEY,
            algorithm=settings.JWT_ALGORITHM,
            expires_delta=timedelta(hours=settings.SESSION_TOKEN_EXPIRE_HOURS),
        )

    @property
    def expires_in(self) -> int:
        """Token lifetime in seconds."""
        return int(self._expires_delta.total_seconds())

    def issue(
        self,
        user,
        roles: Iterable[str],
        permissions: Iterable[str],
        now: Optional[datetime] = None,
    ) -> str:
        """
        Create a signed session token for a user.

        Args:
            user: User row (id, email, organization_id are read)
            roles: Role names to embed
            permissions: Resolved permission names to embed
            now: Issue time override (defaults to current UTC time)

        Returns:
            Encoded JWT string
        """
        issued_at = now or datetime.utcnow()

        payload = {
            "sub": str(user.id),
            "user_id": str(user.id),
            "email": user.email,
            "roles": sorted(name_key(r) for r in roles),
            "permissions": sorted(name_key(p) for p in permissions),
            "organization_id": str(user.organization_id) if user.organization_id else None,
            "iat": issued_at,
            "exp": issued_at + self._expires_delta,
        }

        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)

    def verify(self, token: str) -> SessionClaims:
        """
        Verify and decode a session token.

        Args:
            token: Encoded JWT string

        Returns:
            Decoded SessionClaims

        Raises:
            InvalidTokenError: If token is invalid, expired, or malformed
        """
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
            )
            return SessionClaims(**payload)
        except (JWTError, ValueError, TypeError) as e:
            raise InvalidTokenError(f"Token validation failed: {str(e)}") from e
