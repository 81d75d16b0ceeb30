"""
FleetPass - Single-Use Action Tokens

Opaque random tokens for email verification and password reset.
Each token is stored next to its expiry; a missing expiry is treated as
already expired.

Policies:
- Verification: 24 hours
- Password reset: 1 hour
"""

import secrets
from datetime import datetime, timedelta
from typing import NamedTuple, Optional


DEFAULT_TOKEN_BYTES = 32  # 64 character hex string

VERIFICATION_TOKEN_TTL = timedelta(hours=24)
RESET_TOKEN_TTL = timedelta(hours=1)


class ActionToken(NamedTuple):
    value: str
    expires_at: datetime


def generate_token(byte_length: int = DEFAULT_TOKEN_BYTES) -> str:
    """
    Generate a cryptographically random hex token.

    Raises:
        OSError: If the system entropy source is unavailable
    """
    return secrets.token_hex(byte_length)


def issue_action_token(
    ttl: timedelta,
    byte_length: int = DEFAULT_TOKEN_BYTES,
    now: Optional[datetime] = None,
) -> ActionToken:
    """Generate a token that expires ttl after now."""
    issued_at = now or datetime.utcnow()
    return ActionToken(generate_token(byte_length), issued_at + ttl)


def issue_verification_token(
    ttl: timedelta = VERIFICATION_TOKEN_TTL,
    byte_length: int = DEFAULT_TOKEN_BYTES,
    now: Optional[datetime] = None,
) -> ActionToken:
    return issue_action_token(ttl, byte_length, now)


def issue_reset_token(
    ttl: timedelta = RESET_TOKEN_TTL,
    byte_length: int = DEFAULT_TOKEN_BYTES,
    now: Optional[datetime] = None,
) -> ActionToken:
    return issue_action_token(ttl, byte_length, now)


def is_token_expired(expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """
    Check whether a stored token expiry has passed.

    Args:
        expires_at: Stored expiry, or None if none was recorded
        now: Reference time (defaults to current UTC time)

    Returns:
        True if expired or if no expiry is stored
    """
    if expires_at is None:
        return True
    return (now or datetime.utcnow()) >= expires_at
