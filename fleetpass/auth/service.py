"""
FleetPass - Authentication Flows

Orchestrates the public account flows:
- register         - create an unverified account and send a verification link
- verify_email     - redeem a verification token and log the user in
- forgot_password  - issue a reset token (same answer whether or not the email exists)
- reset_password   - redeem a reset token and store a new password
- login            - check credentials and issue a session token
- get_profile      - rebuild the profile from the store for a token subject

Every flow returns an Outcome; the HTTP layer maps tags to status codes.
Notification failures are logged and never change the outcome.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional, Tuple
from uuid import UUID

from jose import JWTError
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session as DBSession

from fleetpass.auth import store
from fleetpass.auth.action_tokens import (
    is_token_expired,
    issue_reset_token,
    issue_verification_token,
)
from fleetpass.auth.models import User
from fleetpass.auth.outcomes import Outcome, OutcomeTag
from fleetpass.auth.password import (
    HashingError,
    PasswordPolicy,
    hash_password,
    needs_rehash,
    validate_password,
    verify_password,
)
from fleetpass.auth.permissions import DEFAULT_ROLE
from fleetpass.auth.rbac import ResolvedAccess, resolve_access
from fleetpass.auth.schemas import (
    LoginResponse,
    MessageResponse,
    RegisterRequest,
    RegisterResponse,
    UserProfile,
    VerifyEmailResponse,
)
from fleetpass.auth.store import DuplicateEmailError
from fleetpass.auth.tokens import SessionTokenIssuer
from fleetpass.config import Settings
from fleetpass.services.notifications import NotificationDispatcher, dispatch_safely


logger = logging.getLogger(__name__)


REGISTRATION_MESSAGE = "Registration successful. Please check your email to verify your account."
REQUIRED_FIELDS_MESSAGE = "Email, password, first name, and last name are required"
DUPLICATE_EMAIL_MESSAGE = "User with this email already exists"
EMAIL_VERIFIED_MESSAGE = "Email verified successfully"
INVALID_VERIFICATION_MESSAGE = "Invalid or expired verification token"
EXPIRED_VERIFICATION_MESSAGE = "Verification token has expired. Please request a new one."
FORGOT_PASSWORD_MESSAGE = "If an account exists with this email, you will receive a password reset link."
INVALID_RESET_MESSAGE = "Invalid or expired reset token"
EXPIRED_RESET_MESSAGE = "Reset token has expired. Please request a new one."
PASSWORD_RESET_MESSAGE = "Password reset successful. You can now log in with your new password."
INVALID_CREDENTIALS_MESSAGE = "Invalid credentials"
USER_NOT_FOUND_MESSAGE = "User not found"


def build_user_profile(user: User, access: Optional[ResolvedAccess] = None) -> UserProfile:
    """
    Build the outward profile for a user with roles and permissions loaded.

    Never includes the password hash or any pending action token.
    """
    access = access or resolve_access(user.roles)
    return UserProfile(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        phone=user.phone,
        email_verified=user.email_verified,
        is_active=user.is_active,
        roles=access.sorted_roles(),
        permissions=access.sorted_permissions(),
        organization_id=user.organization_id,
    )


class AuthService:
    """
    Account lifecycle flows bound to one database session.

    Args:
        db: Database session for this request
        settings: Application settings (policy, TTLs, work factor)
        token_issuer: Session token signer/verifier
        notifier: Outbound notification dispatcher
        policy: Password policy override (defaults to settings)
    """

    def __init__(
        self,
        db: DBSession,
        settings: Settings,
        token_issuer: SessionTokenIssuer,
        notifier: NotificationDispatcher,
        policy: Optional[PasswordPolicy] = None,
    ):
        self.db = db
        self.settings = settings
        self.token_issuer = token_issuer
        self.notifier = notifier
        self.policy = policy or PasswordPolicy.from_settings(settings)
        self._verification_ttl = timedelta(hours=settings.VERIFICATION_TOKEN_EXPIRE_HOURS)
        self._reset_ttl = timedelta(hours=settings.RESET_TOKEN_EXPIRE_HOURS)

    def normalize_email(self, email: str) -> str:
        """Apply the configured email case rule (case-sensitive by default)."""
        email = email.strip()
        if self.settings.EMAIL_CASE_SENSITIVE:
            return email
        return email.lower()

    # =========================================================================
    # Registration
    # =========================================================================

    async def register(self, request: RegisterRequest) -> Outcome[RegisterResponse]:
        """
        Create an unverified account bound to the default role.

        Order: required fields -> password policy -> duplicate email ->
        hash -> verification token -> default role -> insert -> notify.
        The verification email is sent after the insert; if it fails the
        account still exists and the outcome is still a success.
        """
        required = (request.email, request.password, request.first_name, request.last_name)
        if not all(value and value.strip() for value in required):
            return Outcome.failure(OutcomeTag.VALIDATION_ERROR, REQUIRED_FIELDS_MESSAGE)

        violation = validate_password(request.password, self.policy)
        if violation:
            return Outcome.failure(OutcomeTag.POLICY_VIOLATION, violation)

        email = self.normalize_email(request.email)
        if await store.get_user_by_email(self.db, email):
            return Outcome.failure(OutcomeTag.CONFLICT, DUPLICATE_EMAIL_MESSAGE)

        try:
            password_hash = hash_password(request.password, rounds=self.settings.BCRYPT_ROUNDS)
        except HashingError:
            logger.exception("Password hashing failed during registration")
            return Outcome.failure(OutcomeTag.INTERNAL, "Error processing password")

        try:
            verification = issue_verification_token(
                ttl=self._verification_ttl,
                byte_length=self.settings.ACTION_TOKEN_BYTES,
            )
        except OSError:
            logger.exception("Entropy source failed while generating verification token")
            return Outcome.failure(OutcomeTag.INTERNAL, "Error generating verification token")

        default_role = await store.get_role_by_name(self.db, DEFAULT_ROLE)
        if default_role is None:
            logger.error("Default role %r is missing; has the database been seeded?", DEFAULT_ROLE.value)
            return Outcome.failure(OutcomeTag.INTERNAL, "Error assigning default role")

        user = User(
            email=email,
            password_hash=password_hash,
            first_name=request.first_name.strip(),
            last_name=request.last_name.strip(),
            phone=request.phone or "",
            email_verified=False,
            verification_token=verification.value,
            verification_expires_at=verification.expires_at,
            is_active=True,
            organization_id=request.organization_id,
        )

        try:
            user = await store.create_user(self.db, user, [default_role])
        except DuplicateEmailError:
            return Outcome.failure(OutcomeTag.CONFLICT, DUPLICATE_EMAIL_MESSAGE)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Could not create user")
            return Outcome.failure(OutcomeTag.INTERNAL, "Error creating user")

        logger.info("Registered user %s (pending verification)", user.id)

        await dispatch_safely(
            self.notifier.send_verification_email(user.email, verification.value),
            kind="verification",
            to=user.email,
        )

        return Outcome.success(RegisterResponse(message=REGISTRATION_MESSAGE, user_id=user.id))

    # =========================================================================
    # Email verification
    # =========================================================================

    async def verify_email(self, token: str) -> Outcome[VerifyEmailResponse]:
        """
        Redeem a verification token, then log the user in.

        The token is consumed by one conditional UPDATE; a second
        redemption, or a concurrent one that loses the race, is rejected
        as invalid.
        """
        now = datetime.utcnow()

        user = await store.get_user_by_verification_token(self.db, token)
        if user is None:
            return Outcome.failure(OutcomeTag.INVALID_TOKEN, INVALID_VERIFICATION_MESSAGE)

        if is_token_expired(user.verification_expires_at, now):
            return Outcome.failure(OutcomeTag.INVALID_TOKEN, EXPIRED_VERIFICATION_MESSAGE)

        user_id = user.id
        try:
            redeemed = await store.redeem_verification_token(self.db, token, now)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Could not redeem verification token for user %s", user_id)
            return Outcome.failure(OutcomeTag.INTERNAL, "Error verifying email")

        if not redeemed:
            return Outcome.failure(OutcomeTag.INVALID_TOKEN, INVALID_VERIFICATION_MESSAGE)

        user = await store.get_user_by_id(self.db, user_id)
        if user is None:
            return Outcome.failure(OutcomeTag.NOT_FOUND, USER_NOT_FOUND_MESSAGE)

        logger.info("Verified email for user %s", user_id)

        await dispatch_safely(
            self.notifier.send_welcome_email(user.email, user.first_name),
            kind="welcome",
            to=user.email,
        )

        session = self._start_session(user)
        if session is None:
            return Outcome.failure(OutcomeTag.INTERNAL, "Error generating token")
        session_token, profile = session

        return Outcome.success(
            VerifyEmailResponse(
                message=EMAIL_VERIFIED_MESSAGE,
                token=session_token,
                expires_in=self.token_issuer.expires_in,
                user=profile,
            )
        )

    # =========================================================================
    # Forgot / reset password
    # =========================================================================

    async def forgot_password(self, email: str) -> Outcome[MessageResponse]:
        """
        Start a password reset.

        Always answers with the same message. The store is only written
        when the email belongs to an account.
        """
        response = MessageResponse(message=FORGOT_PASSWORD_MESSAGE)

        user = await store.get_user_by_email(self.db, self.normalize_email(email))
        if user is None:
            logger.info("Password reset requested for unknown email")
            return Outcome.success(response)

        user_id = user.id
        try:
            reset = issue_reset_token(
                ttl=self._reset_ttl,
                byte_length=self.settings.ACTION_TOKEN_BYTES,
            )
            await store.set_reset_token(self.db, user, reset.value, reset.expires_at)
        except (OSError, SQLAlchemyError):
            # The answer must not differ from the unknown-email case
            self.db.rollback()
            logger.exception("Could not store reset token for user %s", user_id)
            return Outcome.success(response)

        logger.info("Issued password reset token for user %s", user_id)

        await dispatch_safely(
            self.notifier.send_password_reset_email(user.email, reset.value),
            kind="password reset",
            to=user.email,
        )

        return Outcome.success(response)

    async def reset_password(self, token: str, new_password: str) -> Outcome[MessageResponse]:
        """
        Redeem a reset token and store a new password hash.

        Both reset fields are cleared in the same statement that writes the
        hash. No session is issued; the user logs in afterwards.
        """
        now = datetime.utcnow()

        user = await store.get_user_by_reset_token(self.db, token)
        if user is None:
            return Outcome.failure(OutcomeTag.INVALID_TOKEN, INVALID_RESET_MESSAGE)

        if is_token_expired(user.reset_expires_at, now):
            return Outcome.failure(OutcomeTag.INVALID_TOKEN, EXPIRED_RESET_MESSAGE)

        violation = validate_password(new_password, self.policy)
        if violation:
            return Outcome.failure(OutcomeTag.POLICY_VIOLATION, violation)

        try:
            password_hash = hash_password(new_password, rounds=self.settings.BCRYPT_ROUNDS)
        except HashingError:
            logger.exception("Password hashing failed during reset")
            return Outcome.failure(OutcomeTag.INTERNAL, "Error processing password")

        user_id = user.id
        try:
            redeemed = await store.redeem_reset_token(self.db, token, password_hash, now)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Could not redeem reset token for user %s", user_id)
            return Outcome.failure(OutcomeTag.INTERNAL, "Error resetting password")

        if not redeemed:
            return Outcome.failure(OutcomeTag.INVALID_TOKEN, INVALID_RESET_MESSAGE)

        logger.info("Password reset for user %s", user_id)
        return Outcome.success(MessageResponse(message=PASSWORD_RESET_MESSAGE))

    # =========================================================================
    # Login / profile
    # =========================================================================

    async def login(self, email: str, password: str) -> Outcome[LoginResponse]:
        """
        Authenticate with email and password.

        Checks run existence -> verified -> active -> password, and every
        failure returns the same Unauthorized message. The reason is only
        logged server-side.
        """
        user = await store.get_user_by_email(self.db, self.normalize_email(email), with_access=True)

        reason = None
        if user is None:
            reason = "unknown_email"
        elif not user.email_verified:
            reason = "email_unverified"
        elif not user.is_active:
            reason = "account_inactive"
        elif not verify_password(password, user.password_hash):
            reason = "invalid_password"

        if reason:
            logger.info("Login failed: %s (user=%s)", reason, user.id if user else None)
            return Outcome.failure(OutcomeTag.UNAUTHORIZED, INVALID_CREDENTIALS_MESSAGE)

        try:
            await store.record_login(self.db, user, datetime.utcnow())
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Could not record login for user %s", user.id)
            return Outcome.failure(OutcomeTag.INTERNAL, "Error recording login")

        # Upgrade hashes created with a lower work factor
        if needs_rehash(user.password_hash, self.settings.BCRYPT_ROUNDS):
            try:
                await store.update_password_hash(
                    self.db, user, hash_password(password, rounds=self.settings.BCRYPT_ROUNDS)
                )
            except (HashingError, SQLAlchemyError):
                self.db.rollback()
                logger.warning("Password rehash failed for user %s", user.id, exc_info=True)

        session = self._start_session(user)
        if session is None:
            return Outcome.failure(OutcomeTag.INTERNAL, "Error generating token")
        session_token, profile = session

        logger.info("Login succeeded for user %s", user.id)
        return Outcome.success(LoginResponse(
            token=session_token,
            expires_in=self.token_issuer.expires_in,
            user=profile,
        ))

    async def get_profile(self, user_id: UUID) -> Outcome[UserProfile]:
        """
        Rebuild a profile from the store.

        Roles and permissions are read fresh, not taken from the caller's
        token claims.
        """
        user = await store.get_user_by_id(self.db, user_id)
        if user is None:
            return Outcome.failure(OutcomeTag.NOT_FOUND, USER_NOT_FOUND_MESSAGE)
        return Outcome.success(build_user_profile(user))

    def _start_session(self, user: User) -> Optional[Tuple[str, UserProfile]]:
        """Issue a session token and profile, or None if signing fails."""
        access = resolve_access(user.roles)
        try:
            token = self.token_issuer.issue(user, access.role_names, access.permission_names)
        except JWTError:
            logger.exception("Could not sign session token for user %s", user.id)
            return None
        return token, build_user_profile(user, access)
