"""
FleetPass - Authentication Request/Response Schemas

Pydantic models for API request validation and response serialization.
Separates API contracts from database models; password hashes and raw
action tokens have no field in any response model.
"""

import re
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+$")


class RegisterRequest(BaseModel):
    """
    Request body for POST /register.

    Required-field checks (email, password, names) happen in the
    registration flow so callers get one consistent message.
    """
    email: str = ""
    password: str = ""
    first_name: str = ""
    last_name: str = ""
    phone: Optional[str] = Field(default=None, max_length=20)
    organization_id: Optional[UUID] = None

    @field_validator("email")
    @classmethod
    def email_format(cls, v: str) -> str:
        """Basic email format validation (allows .local for development)."""
        if v and not EMAIL_PATTERN.match(v):
            raise ValueError("Invalid email format")
        return v


class RegisterResponse(BaseModel):
    """Response body for successful registration."""
    message: str
    user_id: UUID


class LoginRequest(BaseModel):
    """Request body for POST /login."""
    email: str = Field(..., min_length=1, description="User email address")
    password: str = Field(..., min_length=1, description="User password")


class UserProfile(BaseModel):
    """Profile shape shared by login, verification and GET /profile."""
    id: UUID
    email: str
    first_name: str
    last_name: str
    phone: str
    email_verified: bool
    is_active: bool
    roles: List[str]
    permissions: List[str]
    organization_id: Optional[UUID] = None


class LoginResponse(BaseModel):
    """Response body for successful login."""
    token: str = Field(..., description="Bearer session token")
    expires_in: int = Field(..., description="Seconds until the session token expires")
    user: UserProfile


class VerifyEmailRequest(BaseModel):
    """Request body for POST /verify-email."""
    token: str = Field(..., min_length=1)


class VerifyEmailResponse(BaseModel):
    """Response body for successful verification (auto-login)."""
    message: str
    token: str
    expires_in: int
    user: UserProfile


class ForgotPasswordRequest(BaseModel):
    """Request body for POST /forgot-password."""
    email: str = Field(..., min_length=1)


class ResetPasswordRequest(BaseModel):
    """Request body for POST /reset-password."""
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=1)


class MessageResponse(BaseModel):
    """Plain message response."""
    message: str


class ErrorResponse(BaseModel):
    """Standard error response."""
    detail: str
    error_code: Optional[str] = None
    request_id: Optional[str] = None
