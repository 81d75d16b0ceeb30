"""
FleetPass - Account Flow Tests

Tests for the AuthService flows against a seeded in-memory database:
- Registration, including duplicate and policy failures
- Email verification and single-use redemption
- Forgot/reset password with anti-enumeration
- Login check ordering and opportunistic rehash
- Profile refresh

Run with: pytest tests/test_flows.py -v
"""

from datetime import datetime, timedelta
from uuid import uuid4

import pytest
from sqlmodel import Session, select

from fleetpass.auth import service as service_module
from fleetpass.auth import store as store_module
from fleetpass.auth.database import get_engine, init_db
from fleetpass.auth.models import Role, User
from fleetpass.auth.outcomes import OutcomeTag
from fleetpass.auth.password import hash_password, verify_password
from fleetpass.auth.permissions import RoleName
from fleetpass.auth.schemas import RegisterRequest
from fleetpass.auth.service import (
    AuthService,
    EXPIRED_RESET_MESSAGE,
    EXPIRED_VERIFICATION_MESSAGE,
    FORGOT_PASSWORD_MESSAGE,
    INVALID_CREDENTIALS_MESSAGE,
    INVALID_RESET_MESSAGE,
    INVALID_VERIFICATION_MESSAGE,
)
from tests.conftest import DEFAULT_PASSWORD, TEST_BCRYPT_ROUNDS, register_payload


NEW_PASSWORD = "N3w!Passw0rd"


def get_user(db_session, email):
    db_session.expire_all()
    return db_session.exec(select(User).where(User.email == email)).first()


async def register(auth_service, email="new.driver@example.com", **overrides):
    return await auth_service.register(RegisterRequest(**register_payload(email, **overrides)))


# =============================================================================
# REGISTRATION
# =============================================================================

class TestRegister:
    """Account creation."""

    @pytest.mark.asyncio
    async def test_creates_unverified_customer(self, auth_service, db_session, notifier):
        outcome = await register(auth_service)

        assert outcome.ok
        user = get_user(db_session, "new.driver@example.com")
        assert outcome.value.user_id == user.id
        assert user.email_verified is False
        assert user.is_active is True
        assert [r.name for r in user.roles] == ["customer"]
        assert user.password_hash != DEFAULT_PASSWORD

    @pytest.mark.asyncio
    async def test_stores_token_with_24_hour_expiry(self, auth_service, db_session, notifier):
        before = datetime.utcnow()
        await register(auth_service)

        user = get_user(db_session, "new.driver@example.com")
        assert len(user.verification_token) == 64
        assert before + timedelta(hours=23, minutes=59) < user.verification_expires_at
        assert user.verification_expires_at <= datetime.utcnow() + timedelta(hours=24)
        assert notifier.last("verification") == user.verification_token

    @pytest.mark.asyncio
    async def test_missing_required_field(self, auth_service, db_session):
        outcome = await register(auth_service, first_name="")

        assert outcome.tag is OutcomeTag.VALIDATION_ERROR
        assert get_user(db_session, "new.driver@example.com") is None

    @pytest.mark.asyncio
    async def test_weak_password_reports_first_violation(self, auth_service, db_session):
        outcome = await register(auth_service, password="short")

        assert outcome.tag is OutcomeTag.POLICY_VIOLATION
        assert outcome.message == "password must be at least 8 characters long"
        assert get_user(db_session, "new.driver@example.com") is None

    @pytest.mark.asyncio
    async def test_duplicate_email_leaves_existing_record(self, auth_service, db_session, make_user):
        existing = make_user(email="taken@example.com")
        original_hash = existing.password_hash

        outcome = await register(auth_service, "taken@example.com", first_name="Impostor")

        assert outcome.tag is OutcomeTag.CONFLICT
        user = get_user(db_session, "taken@example.com")
        assert user.password_hash == original_hash
        assert user.first_name == "Test"
        assert user.email_verified is True

    @pytest.mark.asyncio
    async def test_null_phone_stored_empty(self, auth_service, db_session):
        outcome = await register(auth_service, phone=None)

        assert outcome.ok
        assert get_user(db_session, "new.driver@example.com").phone == ""

    @pytest.mark.asyncio
    async def test_notification_failure_keeps_account(self, auth_service, db_session, notifier):
        notifier.fail = True

        outcome = await register(auth_service)

        assert outcome.ok
        assert get_user(db_session, "new.driver@example.com") is not None

    @pytest.mark.asyncio
    async def test_missing_default_role_is_internal(self, test_settings, token_issuer, notifier):
        engine = get_engine("sqlite:///:memory:")
        init_db(engine)  # tables only, no seed
        with Session(engine) as db:
            service = AuthService(db, test_settings, token_issuer, notifier)
            outcome = await register(service)

            assert outcome.tag is OutcomeTag.INTERNAL
            assert db.exec(select(User)).first() is None
        engine.dispose()


class TestEmailCase:
    """
    Email matching is case-sensitive by default.

    Whether "A@x.com" and "a@x.com" should be one account is an open
    product question; EMAIL_CASE_SENSITIVE=False folds case instead.
    """

    @pytest.mark.asyncio
    async def test_case_variants_are_distinct_by_default(self, auth_service):
        first = await register(auth_service, "Case@Example.com")
        second = await register(auth_service, "case@example.com")

        assert first.ok
        assert second.ok

    @pytest.mark.asyncio
    async def test_case_folding_when_configured(self, db_session, test_settings, token_issuer, notifier):
        settings = test_settings.model_copy(update={"EMAIL_CASE_SENSITIVE": False})
        service = AuthService(db_session, settings, token_issuer, notifier)

        first = await register(service, "Case@Example.com")
        second = await register(service, "case@example.com")

        assert first.ok
        assert second.tag is OutcomeTag.CONFLICT
        assert get_user(db_session, "case@example.com") is not None


# =============================================================================
# EMAIL VERIFICATION
# =============================================================================

class TestVerifyEmail:
    """Single-use verification tokens."""

    @pytest.mark.asyncio
    async def test_success_logs_user_in(self, auth_service, db_session, notifier, token_issuer):
        await register(auth_service)
        token = notifier.last("verification")

        outcome = await auth_service.verify_email(token)

        assert outcome.ok
        claims = token_issuer.verify(outcome.value.token)
        assert claims.email == "new.driver@example.com"
        assert claims.roles == ["customer"]
        assert outcome.value.user.email_verified is True
        assert outcome.value.user.permissions == ["rentals.create", "rentals.read", "vehicles.read"]
        assert "welcome" in notifier.kinds()

    @pytest.mark.asyncio
    async def test_success_clears_both_token_fields(self, auth_service, db_session, notifier):
        await register(auth_service)
        await auth_service.verify_email(notifier.last("verification"))

        user = get_user(db_session, "new.driver@example.com")
        assert user.email_verified is True
        assert user.verification_token is None
        assert user.verification_expires_at is None
        assert user.last_login_at is not None

    @pytest.mark.asyncio
    async def test_token_is_single_use(self, auth_service, notifier):
        await register(auth_service)
        token = notifier.last("verification")

        first = await auth_service.verify_email(token)
        second = await auth_service.verify_email(token)

        assert first.ok
        assert second.tag is OutcomeTag.INVALID_TOKEN

    @pytest.mark.asyncio
    async def test_token_consumed_after_lookup_is_rejected(self, auth_service, db_session, notifier, monkeypatch):
        await register(auth_service)
        token = notifier.last("verification")
        redeem = store_module.redeem_verification_token

        async def redeem_after_competing_request(db, verification_token, now):
            # The competing request wins between our lookup and our update
            assert await redeem(db, verification_token, now)
            return await redeem(db, verification_token, now)

        monkeypatch.setattr(store_module, "redeem_verification_token", redeem_after_competing_request)

        outcome = await auth_service.verify_email(token)

        assert outcome.tag is OutcomeTag.INVALID_TOKEN
        assert outcome.message == INVALID_VERIFICATION_MESSAGE
        assert "welcome" not in notifier.kinds()
        user = get_user(db_session, "new.driver@example.com")
        assert user.email_verified is True
        assert user.verification_token is None

    @pytest.mark.asyncio
    async def test_unknown_token(self, auth_service):
        outcome = await auth_service.verify_email("0" * 64)
        assert outcome.tag is OutcomeTag.INVALID_TOKEN

    @pytest.mark.asyncio
    async def test_empty_token(self, auth_service):
        outcome = await auth_service.verify_email("")
        assert outcome.tag is OutcomeTag.INVALID_TOKEN

    @pytest.mark.asyncio
    async def test_expired_token_leaves_user_unverified(self, auth_service, db_session, notifier):
        await register(auth_service)
        token = notifier.last("verification")
        user = get_user(db_session, "new.driver@example.com")
        user.verification_expires_at = datetime.utcnow() - timedelta(minutes=1)
        db_session.add(user)
        db_session.commit()

        outcome = await auth_service.verify_email(token)

        assert outcome.tag is OutcomeTag.INVALID_TOKEN
        assert outcome.message == EXPIRED_VERIFICATION_MESSAGE
        user = get_user(db_session, "new.driver@example.com")
        assert user.email_verified is False
        assert user.verification_token == token

    @pytest.mark.asyncio
    async def test_welcome_failure_still_verifies(self, auth_service, db_session, notifier):
        await register(auth_service)
        token = notifier.last("verification")
        notifier.fail = True

        outcome = await auth_service.verify_email(token)

        assert outcome.ok
        assert get_user(db_session, "new.driver@example.com").email_verified is True


# =============================================================================
# FORGOT / RESET PASSWORD
# =============================================================================

class TestForgotPassword:
    """Reset requests never reveal whether an account exists."""

    @pytest.mark.asyncio
    async def test_unknown_email_same_message_no_mutation(self, auth_service, db_session, notifier, make_user):
        make_user(email="driver@example.com")

        outcome = await auth_service.forgot_password("nobody@example.com")

        assert outcome.ok
        assert outcome.value.message == FORGOT_PASSWORD_MESSAGE
        db_session.expire_all()
        assert db_session.exec(select(User).where(User.reset_token.is_not(None))).first() is None
        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_known_email_stores_token_and_expiry(self, auth_service, db_session, notifier, make_user):
        make_user(email="driver@example.com")
        before = datetime.utcnow()

        outcome = await auth_service.forgot_password("driver@example.com")

        assert outcome.value.message == FORGOT_PASSWORD_MESSAGE
        user = get_user(db_session, "driver@example.com")
        assert user.reset_token == notifier.last("password_reset")
        assert before + timedelta(minutes=59) < user.reset_expires_at <= datetime.utcnow() + timedelta(hours=1)

    @pytest.mark.asyncio
    async def test_notification_failure_same_answer(self, auth_service, db_session, notifier, make_user):
        make_user(email="driver@example.com")
        notifier.fail = True

        outcome = await auth_service.forgot_password("driver@example.com")

        assert outcome.ok
        assert outcome.value.message == FORGOT_PASSWORD_MESSAGE
        assert get_user(db_session, "driver@example.com").reset_token is not None


class TestResetPassword:
    """Single-use reset tokens."""

    async def _request_reset(self, auth_service, notifier, make_user):
        make_user(email="driver@example.com")
        await auth_service.forgot_password("driver@example.com")
        return notifier.last("password_reset")

    @pytest.mark.asyncio
    async def test_success_replaces_password(self, auth_service, db_session, notifier, make_user):
        token = await self._request_reset(auth_service, notifier, make_user)

        outcome = await auth_service.reset_password(token, NEW_PASSWORD)

        assert outcome.ok
        user = get_user(db_session, "driver@example.com")
        assert user.reset_token is None
        assert user.reset_expires_at is None
        assert (await auth_service.login("driver@example.com", NEW_PASSWORD)).ok
        assert not (await auth_service.login("driver@example.com", DEFAULT_PASSWORD)).ok

    @pytest.mark.asyncio
    async def test_token_is_single_use(self, auth_service, notifier, make_user):
        token = await self._request_reset(auth_service, notifier, make_user)

        first = await auth_service.reset_password(token, NEW_PASSWORD)
        second = await auth_service.reset_password(token, "An0ther!Pass")

        assert first.ok
        assert second.tag is OutcomeTag.INVALID_TOKEN

    @pytest.mark.asyncio
    async def test_token_consumed_after_lookup_keeps_winning_hash(
        self, auth_service, db_session, notifier, make_user, monkeypatch
    ):
        token = await self._request_reset(auth_service, notifier, make_user)
        winning_hash = hash_password(NEW_PASSWORD, rounds=TEST_BCRYPT_ROUNDS)
        redeem = store_module.redeem_reset_token

        async def redeem_after_competing_request(db, reset_token, password_hash, now):
            # The competing request wins between our lookup and our update
            assert await redeem(db, reset_token, winning_hash, now)
            return await redeem(db, reset_token, password_hash, now)

        monkeypatch.setattr(store_module, "redeem_reset_token", redeem_after_competing_request)

        outcome = await auth_service.reset_password(token, "An0ther!Pass")

        assert outcome.tag is OutcomeTag.INVALID_TOKEN
        assert outcome.message == INVALID_RESET_MESSAGE
        user = get_user(db_session, "driver@example.com")
        assert user.password_hash == winning_hash
        assert user.reset_token is None
        assert user.reset_expires_at is None
        assert verify_password(NEW_PASSWORD, user.password_hash)
        assert not verify_password("An0ther!Pass", user.password_hash)

    @pytest.mark.asyncio
    async def test_expired_token_keeps_old_password(self, auth_service, db_session, notifier, make_user):
        token = await self._request_reset(auth_service, notifier, make_user)
        user = get_user(db_session, "driver@example.com")
        original_hash = user.password_hash
        user.reset_expires_at = datetime.utcnow() - timedelta(seconds=1)
        db_session.add(user)
        db_session.commit()

        outcome = await auth_service.reset_password(token, NEW_PASSWORD)

        assert outcome.tag is OutcomeTag.INVALID_TOKEN
        assert outcome.message == EXPIRED_RESET_MESSAGE
        assert get_user(db_session, "driver@example.com").password_hash == original_hash

    @pytest.mark.asyncio
    async def test_weak_password_keeps_token(self, auth_service, db_session, notifier, make_user):
        token = await self._request_reset(auth_service, notifier, make_user)

        outcome = await auth_service.reset_password(token, "weakpass")

        assert outcome.tag is OutcomeTag.POLICY_VIOLATION
        assert get_user(db_session, "driver@example.com").reset_token == token

    @pytest.mark.asyncio
    async def test_unknown_token(self, auth_service):
        outcome = await auth_service.reset_password("f" * 64, NEW_PASSWORD)
        assert outcome.tag is OutcomeTag.INVALID_TOKEN


# =============================================================================
# LOGIN
# =============================================================================

class TestLogin:
    """Credential checks and session issuance."""

    @pytest.mark.asyncio
    async def test_success(self, auth_service, db_session, make_user, token_issuer):
        make_user(email="driver@example.com")

        outcome = await auth_service.login("driver@example.com", DEFAULT_PASSWORD)

        assert outcome.ok
        claims = token_issuer.verify(outcome.value.token)
        assert claims.roles == ["customer"]
        assert outcome.value.user.email == "driver@example.com"
        assert get_user(db_session, "driver@example.com").last_login_at is not None

    @pytest.mark.asyncio
    async def test_unknown_email(self, auth_service):
        outcome = await auth_service.login("nobody@example.com", DEFAULT_PASSWORD)

        assert outcome.tag is OutcomeTag.UNAUTHORIZED
        assert outcome.message == INVALID_CREDENTIALS_MESSAGE

    @pytest.mark.asyncio
    async def test_wrong_password(self, auth_service, make_user):
        make_user(email="driver@example.com")

        outcome = await auth_service.login("driver@example.com", "Wr0ng!Pass")

        assert outcome.tag is OutcomeTag.UNAUTHORIZED
        assert outcome.message == INVALID_CREDENTIALS_MESSAGE

    @pytest.mark.asyncio
    async def test_unverified_rejected_before_password_check(self, auth_service, make_user, monkeypatch):
        make_user(email="driver@example.com", verified=False)
        calls = []
        monkeypatch.setattr(service_module, "verify_password", lambda *args: calls.append(args) or True)

        outcome = await auth_service.login("driver@example.com", DEFAULT_PASSWORD)

        assert outcome.tag is OutcomeTag.UNAUTHORIZED
        assert outcome.message == INVALID_CREDENTIALS_MESSAGE
        assert calls == []

    @pytest.mark.asyncio
    async def test_inactive_rejected_before_password_check(self, auth_service, make_user, monkeypatch):
        make_user(email="driver@example.com", active=False)
        calls = []
        monkeypatch.setattr(service_module, "verify_password", lambda *args: calls.append(args) or True)

        outcome = await auth_service.login("driver@example.com", DEFAULT_PASSWORD)

        assert outcome.tag is OutcomeTag.UNAUTHORIZED
        assert outcome.message == INVALID_CREDENTIALS_MESSAGE
        assert calls == []

    @pytest.mark.asyncio
    async def test_rehash_on_higher_work_factor(self, db_session, test_settings, token_issuer, notifier, make_user):
        make_user(email="driver@example.com", rounds=4)
        settings = test_settings.model_copy(update={"BCRYPT_ROUNDS": 5})
        service = AuthService(db_session, settings, token_issuer, notifier)

        outcome = await service.login("driver@example.com", DEFAULT_PASSWORD)

        assert outcome.ok
        assert get_user(db_session, "driver@example.com").password_hash.startswith("$2b$05$")

    @pytest.mark.asyncio
    async def test_multiple_roles_merge_permissions(self, auth_service, make_user):
        make_user(email="lead@example.com", roles=(RoleName.STAFF, RoleName.CUSTOMER))

        outcome = await auth_service.login("lead@example.com", DEFAULT_PASSWORD)

        profile = outcome.value.user
        assert profile.roles == ["customer", "staff"]
        assert profile.permissions == sorted(set(profile.permissions))
        assert "rentals.update" in profile.permissions


# =============================================================================
# PROFILE
# =============================================================================

class TestProfile:
    """Profiles are read fresh from the store."""

    @pytest.mark.asyncio
    async def test_profile_for_user(self, auth_service, make_user):
        user = make_user(email="driver@example.com")

        outcome = await auth_service.get_profile(user.id)

        assert outcome.ok
        assert outcome.value.id == user.id
        assert outcome.value.roles == ["customer"]

    @pytest.mark.asyncio
    async def test_profile_reflects_role_change_after_login(self, auth_service, db_session, make_user, token_issuer):
        user = make_user(email="driver@example.com")
        login = await auth_service.login("driver@example.com", DEFAULT_PASSWORD)

        manager = db_session.exec(select(Role).where(Role.name == "manager")).one()
        user = get_user(db_session, "driver@example.com")
        user.roles = [manager]
        db_session.add(user)
        db_session.commit()

        outcome = await auth_service.get_profile(user.id)

        assert outcome.value.roles == ["manager"]
        # The already-issued token keeps its snapshot
        assert token_issuer.verify(login.value.token).roles == ["customer"]

    @pytest.mark.asyncio
    async def test_missing_user(self, auth_service):
        outcome = await auth_service.get_profile(uuid4())
        assert outcome.tag is OutcomeTag.NOT_FOUND
