"""
API request and response models for the auth REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Field rules (username length, email syntax) are NOT duplicated here: the
service validates them and raises ValidationError, so the rules live in one
place and the error envelope is the same whichever layer rejects the input.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import AuthResult, PublicUser, TokenPair

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register.

    username and email are stripped of surrounding whitespace; password is
    taken verbatim so the hash matches what the client sends at login.
    """

    username: str = Field(max_length=255)
    email: str = Field(max_length=255)
    password: str = Field(max_length=255, json_schema_extra={"format": "password"})

    @field_validator("username", "email", mode="before")
    @classmethod
    def strip_identity(cls, value):
        return value.strip() if isinstance(value, str) else value


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login. email is stripped as at register."""

    email: str = Field(max_length=255)
    password: str = Field(max_length=255)

    @field_validator("email", mode="before")
    @classmethod
    def strip_email(cls, value):
        return value.strip() if isinstance(value, str) else value


class RefreshRequest(BaseModel):
    """Optional body for POST /api/v1/auth/refresh.

    Browsers send the refresh token in the httpOnly cookie; non-browser
    clients may send it here instead. The cookie wins when both are present.
    """

    refresh_token: Optional[str] = None


class ProfilePatch(BaseModel):
    """Request body for PATCH /api/v1/auth/me. Omitted fields are left unchanged."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: Optional[str] = None
    email: Optional[str] = None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Outward view of a user. Built only from PublicUser, never from User."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    email: str
    is_active: bool
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_public(cls, user: PublicUser) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            is_active=user.is_active,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class TokenPairResponse(BaseModel):
    """Response for POST /api/v1/auth/refresh."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int

    @classmethod
    def from_pair(cls, pair: TokenPair, expires_in: int) -> "TokenPairResponse":
        return cls(access_token=pair.access_token, refresh_token=pair.refresh_token, expires_in=expires_in)


class AuthResponse(BaseModel):
    """Response for POST /api/v1/auth/register and /login."""

    model_config = ConfigDict(frozen=True)

    user: UserResponse
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int

    @classmethod
    def from_result(cls, result: AuthResult, expires_in: int) -> "AuthResponse":
        return cls(
            user=UserResponse.from_public(result.user),
            access_token=result.access_token,
            refresh_token=result.refresh_token,
            expires_in=expires_in,
        )


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

    status: str = "healthy"
    version: str
    components: dict[str, str]
