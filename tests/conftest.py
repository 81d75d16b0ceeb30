"""
FleetPass - Test Configuration

Pytest fixtures for identity testing.
Provides a seeded in-memory database, a recording notifier, the auth
service, a test client, and a user factory.
"""

import os

# Settings are read at import time by fleetpass.app
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SECRET_KEY", "test-secret-key-that-is-long-enough-for-hs256")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

from typing import Generator, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, select

from fleetpass.app import create_app
from fleetpass.auth.database import get_engine, init_db
from fleetpass.auth.models import Role, User
from fleetpass.auth.password import hash_password
from fleetpass.auth.permissions import RoleName
from fleetpass.auth.seed import seed_database
from fleetpass.auth.service import AuthService
from fleetpass.auth.tokens import SessionTokenIssuer
from fleetpass.config import Settings
from fleetpass.services.notifications import NotificationDispatcher


# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite:///:memory:"

# Lowest bcrypt work factor, for speed
TEST_BCRYPT_ROUNDS = 4

DEFAULT_PASSWORD = "Str0ng!Pass"


class RecordingNotifier(NotificationDispatcher):
    """Keeps sent notifications in memory; raises on send when `fail` is set."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[Tuple[str, str, str]] = []

    async def send_verification_email(self, to: str, token: str) -> None:
        self._record("verification", to, token)

    async def send_password_reset_email(self, to: str, token: str) -> None:
        self._record("password_reset", to, token)

    async def send_welcome_email(self, to: str, first_name: str) -> None:
        self._record("welcome", to, first_name)

    def _record(self, kind: str, to: str, payload: str) -> None:
        if self.fail:
            raise ConnectionError("mail relay unavailable")
        self.sent.append((kind, to, payload))

    def last(self, kind: str) -> Optional[str]:
        """Payload of the most recent notification of this kind."""
        for sent_kind, _, payload in reversed(self.sent):
            if sent_kind == kind:
                return payload
        return None

    def kinds(self) -> List[str]:
        return [kind for kind, _, _ in self.sent]


@pytest.fixture(scope="function")
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        DEBUG=True,
        SECRET_KEY="test-secret-key-that-is-long-enough-for-hs256",
        DATABASE_URL=TEST_DATABASE_URL,
        BCRYPT_ROUNDS=TEST_BCRYPT_ROUNDS,
        RATE_LIMIT_ENABLED=False,
        SUPERADMIN_EMAIL="",
        SUPERADMIN_PASSWORD="",
    )


@pytest.fixture(scope="function")
def test_engine(test_settings):
    """Create a fresh, seeded test database engine for each test."""
    engine = get_engine(TEST_DATABASE_URL)
    init_db(engine)

    with Session(engine) as session:
        seed_database(session, test_settings)

    yield engine

    # Cleanup
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(test_engine) -> Generator[Session, None, None]:
    """Create a database session for testing."""
    with Session(test_engine) as session:
        yield session


@pytest.fixture(scope="function")
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture(scope="function")
def token_issuer(test_settings) -> SessionTokenIssuer:
    return SessionTokenIssuer.from_settings(test_settings)


@pytest.fixture(scope="function")
def auth_service(db_session, test_settings, token_issuer, notifier) -> AuthService:
    return AuthService(
        db=db_session,
        settings=test_settings,
        token_issuer=token_issuer,
        notifier=notifier,
    )


@pytest.fixture(scope="function")
def client(test_settings, test_engine, notifier) -> Generator[TestClient, None, None]:
    """Create a test client over a fresh database."""
    app = create_app(test_settings, engine=test_engine, notifier=notifier)

    with TestClient(app) as c:
        yield c


@pytest.fixture(scope="function")
def make_user(db_session):
    """Factory for users stored directly, bypassing registration."""

    def _make_user(
        email: str = "driver@example.com",
        password: str = DEFAULT_PASSWORD,
        verified: bool = True,
        active: bool = True,
        roles=(RoleName.CUSTOMER,),
        rounds: int = TEST_BCRYPT_ROUNDS,
    ) -> User:
        role_rows = [
            db_session.exec(select(Role).where(Role.name == role.value)).one()
            for role in roles
        ]
        user = User(
            email=email,
            password_hash=hash_password(password, rounds=rounds),
            first_name="Test",
            last_name="Driver",
            email_verified=verified,
            is_active=active,
        )
        user.roles = role_rows
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


def register_payload(email: str = "new.driver@example.com", **overrides) -> dict:
    """Valid registration body."""
    payload = {
        "email": email,
        "password": DEFAULT_PASSWORD,
        "first_name": "Dana",
        "last_name": "Rivera",
        "phone": "555-0100",
    }
    payload.update(overrides)
    return payload


def auth_headers(token: str) -> dict:
    """Create authorization headers for authenticated requests."""
    return {"Authorization": f"Bearer {token}"}
