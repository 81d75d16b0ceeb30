"""
FleetPass - Password Policy and Hashing

Policy validation is a pure function of (password, policy) so the same
rules serve registration and password reset. Checks run in a fixed order
and only the first violation is reported:

    minimum length -> maximum length -> common-password denylist
    -> uppercase -> lowercase -> digit -> special character

Hashing uses bcrypt; the work factor is configurable and defaults to 12.

Security:
- Never log or expose plaintext passwords
- bcrypt includes salt automatically
- verify_password() returns False for malformed hashes instead of raising,
  so callers cannot tell a bad digest from a wrong password
"""

import re
from typing import Optional

import bcrypt
from pydantic import BaseModel, ConfigDict


# Work factor for bcrypt (2^12 = 4096 iterations)
# Increase for higher security, decrease for faster tests
BCRYPT_WORK_FACTOR = 12

# bcrypt only considers the first 72 bytes of input
BCRYPT_MAX_BYTES = 72

COMMON_PASSWORDS = frozenset({
    "password",
    "password1",
    "123456",
    "12345678",
    "qwerty",
    "abc123",
    "monkey",
    "1234567",
    "letmein",
    "trustno1",
    "dragon",
    "baseball",
    "iloveyou",
    "master",
    "sunshine",
    "ashley",
    "bailey",
    "passw0rd",
    "shadow",
    "123123",
    "654321",
    "superman",
    "qazwsx",
    "michael",
    "football",
})

_UPPER = re.compile(r"[A-Z]")
_LOWER = re.compile(r"[a-z]")
_DIGIT = re.compile(r"[0-9]")
_SPECIAL = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]")


class HashingError(Exception):
    """Raised when a password cannot be hashed (entropy source or input failure)."""
    pass


class PasswordPolicy(BaseModel):
    """
    Password validation rules.

    Defaults: at least 8 characters, all four character classes,
    common-password denylist enabled.
    """
    model_config = ConfigDict(frozen=True)

    min_length: int = 8
    require_upper: bool = True
    require_lower: bool = True
    require_digit: bool = True
    require_special: bool = True
    reject_common: bool = True

    @classmethod
    def from_settings(cls, settings) -> "PasswordPolicy":
        """Build the policy from the PASSWORD_* settings."""
        return cls(
            min_length=settings.PASSWORD_MIN_LENGTH,
            require_upper=settings.PASSWORD_REQUIRE_UPPER,
            require_lower=settings.PASSWORD_REQUIRE_LOWER,
            require_digit=settings.PASSWORD_REQUIRE_DIGIT,
            require_special=settings.PASSWORD_REQUIRE_SPECIAL,
            reject_common=settings.PASSWORD_REJECT_COMMON,
        )


DEFAULT_PASSWORD_POLICY = PasswordPolicy()


def validate_password(
    password: str,
    policy: PasswordPolicy = DEFAULT_PASSWORD_POLICY,
) -> Optional[str]:
    """
    Check a password against a policy.

    Args:
        password: Candidate plaintext password
        policy: Rules to apply

    Returns:
        None if the password is acceptable, otherwise the message for
        the first rule it violates

    Example:
        >>> validate_password("Sh0rt!")
        'password must be at least 8 characters long'
        >>> validate_password("Str0ng!Pass") is None
        True
    """
    if len(password) < policy.min_length:
        return f"password must be at least {policy.min_length} characters long"

    if len(password.encode("utf-8")) > BCRYPT_MAX_BYTES:
        return f"password must be at most {BCRYPT_MAX_BYTES} bytes long"

    if policy.reject_common and password.lower() in COMMON_PASSWORDS:
        return "password is too common, please choose a stronger password"

    if policy.require_upper and not _UPPER.search(password):
        return "password must contain at least one uppercase letter"

    if policy.require_lower and not _LOWER.search(password):
        return "password must contain at least one lowercase letter"

    if policy.require_digit and not _DIGIT.search(password):
        return "password must contain at least one number"

    if policy.require_special and not _SPECIAL.search(password):
        return "password must contain at least one special character"

    return None


def hash_password(password: str, rounds: int = BCRYPT_WORK_FACTOR) -> str:
    """
    Hash a password using bcrypt.

    Args:
        password: Plaintext password
        rounds: bcrypt work factor

    Returns:
        bcrypt hash string (includes salt)

    Raises:
        HashingError: If salt generation or hashing fails

    Example:
        >>> hashed = hash_password("SecureP@ss123")
        >>> hashed.startswith("$2b$")
        True
    """
    try:
        salt = bcrypt.gensalt(rounds=rounds)
        hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    except (OSError, ValueError) as e:
        raise HashingError("Password hashing failed") from e
    return hashed.decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against a bcrypt hash.

    Uses constant-time comparison to prevent timing attacks.

    Args:
        plain_password: Plaintext password to verify
        hashed_password: bcrypt hash to check against

    Returns:
        True if password matches, False otherwise (including malformed hashes)

    Example:
        >>> hashed = hash_password("SecureP@ss123")
        >>> verify_password("SecureP@ss123", hashed)
        True
        >>> verify_password("WrongPassword", hashed)
        False
    """
    try:
        password_bytes = plain_password.encode("utf-8")
        hashed_bytes = hashed_password.encode("utf-8")
        return bcrypt.checkpw(password_bytes, hashed_bytes)
    except (ValueError, TypeError):
        # Invalid hash format or over-long input
        return False


def needs_rehash(hashed_password: str, target_work_factor: int = BCRYPT_WORK_FACTOR) -> bool:
    """
    Check if a password hash should be upgraded to the target work factor.

    Args:
        hashed_password: Existing bcrypt hash
        target_work_factor: Desired work factor

    Returns:
        True if hash should be regenerated

    Example:
        # After increasing BCRYPT_ROUNDS from 10 to 12:
        >>> needs_rehash(old_hash)  # Generated with factor 10
        True
    """
    try:
        # bcrypt hash format: $2b$XX$...
        # XX is the work factor in decimal
        _, work_factor_str, _ = hashed_password.split("$")[1:4]
        return int(work_factor_str) < target_work_factor
    except (ValueError, IndexError):
        # Not a valid bcrypt hash, definitely needs rehash
        return True
