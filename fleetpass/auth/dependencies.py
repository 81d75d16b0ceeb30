"""
FleetPass - Security Dependencies

FastAPI dependencies for authentication and authorization.

Usage:
    @router.get("/protected")
    async def protected_route(claims: SessionClaims = Depends(get_current_claims)):
        ...

    @router.get("/vehicles")
    @require_permission(PermissionName.VEHICLES_READ)
    async def list_vehicles(claims: SessionClaims = Depends(get_current_claims)):
        ...

Security:
- Session tokens are checked for signature and expiry only
- Permission checks read the claims embedded at issuance
- Missing claims are 401; insufficient grants are 403
"""

import logging
from functools import wraps
from typing import Iterator, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session as DBSession

from fleetpass.auth.permissions import PermissionName, RoleName
from fleetpass.auth.service import AuthService
from fleetpass.auth.tokens import InvalidTokenError, SessionClaims


logger = logging.getLogger(__name__)

# HTTP Bearer scheme for JWT extraction
security = HTTPBearer(auto_error=False)


def get_db(request: Request) -> Iterator[DBSession]:
    """Yield a database session from the app's session factory."""
    db = request.app.state.db_session_factory()
    try:
        yield db
    finally:
        db.close()


def get_auth_service(request: Request, db: DBSession = Depends(get_db)) -> AuthService:
    """Bind the auth flows to this request's database session."""
    state = request.app.state
    return AuthService(
        db=db,
        settings=state.settings,
        token_issuer=state.token_issuer,
        notifier=state.notifier,
    )


async def get_current_claims(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> SessionClaims:
    """
    Validate the bearer token and return its claims.

    Raises:
        HTTPException 401: Missing, invalid or expired token
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return request.app.state.token_issuer.verify(credentials.credentials)
    except InvalidTokenError as e:
        logger.info("Rejected session token: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )


def _claims_from(kwargs) -> SessionClaims:
    claims: Optional[SessionClaims] = kwargs.get("claims")
    if claims is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return claims


def require_permission(permission: PermissionName):
    """
    Decorator to enforce a permission on a route.

    The route must take `claims: SessionClaims = Depends(get_current_claims)`.

    Raises:
        HTTPException 403: If the token does not carry the permission
    """
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            claims = _claims_from(kwargs)
            if not claims.has_permission(permission):
                logger.info("Permission %s denied for user %s", permission.value, claims.sub)
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Permission denied: {permission.value}",
                )
            return await func(*args, **kwargs)
        return wrapper
    return decorator


def require_role(role: RoleName):
    """
    Decorator requiring a role on the token.

    Usage:
        @require_role(RoleName.ADMIN)
        async def admin_only(claims: SessionClaims = Depends(get_current_claims)):
            ...
    """
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            claims = _claims_from(kwargs)
            if not claims.has_role(role):
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Requires role: {role.value}",
                )
            return await func(*args, **kwargs)
        return wrapper
    return decorator
