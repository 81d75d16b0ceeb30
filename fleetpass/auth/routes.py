"""
FleetPass - Authentication Routes

API endpoints (mounted under /api):
- POST /register         - Create an unverified account
- POST /login            - Authenticate and receive a session token
- POST /verify-email     - Redeem a verification token (auto-login)
- POST /forgot-password  - Request a reset link
- POST /reset-password   - Redeem a reset token
- GET  /profile          - Current user's profile (requires bearer token)

The five public POST endpoints are rate limited per client address.
"""

from typing import NoReturn
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status

from fleetpass.auth.dependencies import get_auth_service, get_current_claims
from fleetpass.auth.outcomes import Outcome, OutcomeTag
from fleetpass.auth.schemas import (
    ErrorResponse,
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    UserProfile,
    VerifyEmailRequest,
    VerifyEmailResponse,
)
from fleetpass.auth.service import AuthService
from fleetpass.auth.tokens import SessionClaims
from fleetpass.gateway.limiter import AUTH_RATE_LIMIT, limiter


router = APIRouter(tags=["authentication"])


_STATUS_FOR_TAG = {
    OutcomeTag.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    OutcomeTag.POLICY_VIOLATION: status.HTTP_400_BAD_REQUEST,
    OutcomeTag.CONFLICT: status.HTTP_409_CONFLICT,
    OutcomeTag.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    OutcomeTag.INVALID_TOKEN: status.HTTP_400_BAD_REQUEST,
    OutcomeTag.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    OutcomeTag.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _raise_for_outcome(outcome: Outcome) -> NoReturn:
    """Translate a failed flow outcome into an HTTP error."""
    raise HTTPException(
        status_code=_STATUS_FOR_TAG.get(outcome.tag, status.HTTP_500_INTERNAL_SERVER_ERROR),
        detail=outcome.message,
    )


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Register a new account",
)
@limiter.limit(AUTH_RATE_LIMIT)
async def register(
    request: Request,
    body: RegisterRequest,
    service: AuthService = Depends(get_auth_service),
):
    """
    Create an unverified account with the default role.

    A verification link is sent by email; the account cannot log in
    until it is redeemed.

    Raises:
        400: Missing fields or weak password
        409: Email already registered
    """
    outcome = await service.register(body)
    if not outcome.ok:
        _raise_for_outcome(outcome)
    return outcome.value


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={401: {"model": ErrorResponse}},
    summary="Authenticate user and issue a session token",
)
@limiter.limit(AUTH_RATE_LIMIT)
async def login(
    request: Request,
    credentials: LoginRequest,
    service: AuthService = Depends(get_auth_service),
):
    """
    Authenticate with email and password.

    Unknown email, unverified email, inactive account and wrong password
    all answer 401 "Invalid credentials".
    """
    outcome = await service.login(credentials.email, credentials.password)
    if not outcome.ok:
        _raise_for_outcome(outcome)
    return outcome.value


@router.post(
    "/verify-email",
    response_model=VerifyEmailResponse,
    responses={400: {"model": ErrorResponse}},
    summary="Verify email address",
)
@limiter.limit(AUTH_RATE_LIMIT)
async def verify_email(
    request: Request,
    body: VerifyEmailRequest,
    service: AuthService = Depends(get_auth_service),
):
    """Redeem a verification token; returns a session token on success."""
    outcome = await service.verify_email(body.token)
    if not outcome.ok:
        _raise_for_outcome(outcome)
    return outcome.value


@router.post(
    "/forgot-password",
    response_model=MessageResponse,
    summary="Request a password reset link",
)
@limiter.limit(AUTH_RATE_LIMIT)
async def forgot_password(
    request: Request,
    body: ForgotPasswordRequest,
    service: AuthService = Depends(get_auth_service),
):
    """Always answers 200 with the same message."""
    outcome = await service.forgot_password(body.email)
    if not outcome.ok:
        _raise_for_outcome(outcome)
    return outcome.value


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    responses={400: {"model": ErrorResponse}},
    summary="Reset password with a reset token",
)
@limiter.limit(AUTH_RATE_LIMIT)
async def reset_password(
    request: Request,
    body: ResetPasswordRequest,
    service: AuthService = Depends(get_auth_service),
):
    outcome = await service.reset_password(body.token, body.new_password)
    if not outcome.ok:
        _raise_for_outcome(outcome)
    return outcome.value


@router.get(
    "/profile",
    response_model=UserProfile,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Get current user profile",
)
async def get_profile(
    claims: SessionClaims = Depends(get_current_claims),
    service: AuthService = Depends(get_auth_service),
):
    """
    Return the caller's profile, read fresh from the store.

    Roles and permissions here may be newer than those in the token.
    """
    try:
        user_id = UUID(claims.user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token subject",
        )

    outcome = await service.get_profile(user_id)
    if not outcome.ok:
        _raise_for_outcome(outcome)
    return outcome.value
