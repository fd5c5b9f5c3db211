"""
API request and response models for the Portfolio API REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.
"""

import re
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from auth.models import User

# ---------------------------------------------------------------------------
# Account field rules
# ---------------------------------------------------------------------------

# Names and emails are trimmed. Passwords never are: surrounding spaces are
# part of the credential (main.py create-user follows the same rule).
TrimmedStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]

_EMAIL_RE = re.compile(r"\S+@\S+\.\S+")
_PASSWORD_RULE = "Password must be at least 6 characters long and contain at least one letter and one number!"


def password_problem(name: Optional[str], password: Optional[str]) -> Optional[str]:
    """Return the message for the first broken password rule, or None.

    The route layer turns a non-None result into a 400 with this message.
    """
    if password is None:
        return None
    if name is not None and name == password:
        return "Name cannot be the same as password!"
    if len(password) < 6 or not re.search(r"\d", password) or not re.search(r"[a-zA-Z]", password):
        return _PASSWORD_RULE
    return None


def email_problem(email: Optional[str]) -> Optional[str]:
    if email is not None and not _EMAIL_RE.search(email):
        return "Email must be a valid email address!"
    return None


# ---------------------------------------------------------------------------
# Auth request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    email: TrimmedStr
    password: str = Field(min_length=1, max_length=255)


class RefreshRequest(BaseModel):
    """Request body for POST /api/v1/auth/refresh."""

    refresh_token: str = Field(min_length=1, max_length=4096)


# ---------------------------------------------------------------------------
# Account request models
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    """Request body for POST /api/v1/users. Rule checks live in the route."""

    name: TrimmedStr
    email: TrimmedStr
    password: str = Field(min_length=1, max_length=255)


class UserUpdate(BaseModel):
    """Request body for PUT /api/v1/users/{id}. Every field is optional."""

    name: Optional[TrimmedStr] = None
    email: Optional[TrimmedStr] = None
    password: Optional[str] = Field(default=None, min_length=1, max_length=255)

    def supplied(self) -> dict:
        """Return only the fields the caller actually sent."""
        return self.model_dump(exclude_none=True)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of an account -- never includes the password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: str
    created_at: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(**user.public_view())


class LoginResponse(BaseModel):
    """Response body for a successful login."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


class RefreshResponse(BaseModel):
    """Response body for a successful refresh.

    refresh_token is only present when refresh-token rotation is enabled.
    """

    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    refresh_token: Optional[str] = None


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
