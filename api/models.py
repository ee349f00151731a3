"""
API request and response models for Gatehouse REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import LoginResult, Profile

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
TWO_FACTOR_CODE_PATTERN = r"^\d{4,10}$"
ROLE_PATTERN = r"^[A-Z][A-Z0-9_]{0,49}$"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class _EmailBody(BaseModel):
    # Passwords are hashed and checked exactly as typed; only the email is trimmed.
    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: object) -> object:
        """Lower-case before the pattern check so lookups are case-insensitive."""
        return value.strip().lower() if isinstance(value, str) else value


class RegisterRequest(_EmailBody):
    """Request body for POST /api/v1/auth/register."""

    # bcrypt reads at most 72 bytes; 255 keeps inputs bounded.
    password: str = Field(min_length=6, max_length=255)


class LoginRequest(_EmailBody):
    """Request body for POST /api/v1/auth/login."""

    password: str = Field(min_length=1, max_length=255)


class ResendVerificationRequest(_EmailBody):
    """Request body for POST /api/v1/auth/resend-verification."""


class VerifyEmailRequest(BaseModel):
    """Request body for POST /api/v1/auth/verify-email."""

    model_config = ConfigDict(str_strip_whitespace=True)

    token: str = Field(min_length=1, max_length=255)


class TwoFactorRequest(BaseModel):
    """Request body for POST /api/v1/auth/verify-2fa."""

    model_config = ConfigDict(str_strip_whitespace=True)

    code: str = Field(pattern=TWO_FACTOR_CODE_PATTERN, description="Numeric two-factor code (6 digits by default)")


class RoleGrant(BaseModel):
    """Request body for POST /api/v1/admin/users/{id}/roles."""

    role: str = Field(pattern=ROLE_PATTERN)

    @field_validator("role", mode="before")
    @classmethod
    def upper_role(cls, value: object) -> object:
        return value.strip().upper() if isinstance(value, str) else value


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class MessageResponse(BaseModel):
    """Plain acknowledgment."""

    model_config = ConfigDict(frozen=True)

    message: str


class LoginResponse(BaseModel):
    """Response for POST /auth/login and POST /auth/verify-2fa.

    requires_2fa=True means access_token is a temporary token that only
    POST /auth/verify-2fa will accept.
    """

    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"  # noqa: S105 # nosec B105 -- OAuth token type, not a password
    expires_in: int
    requires_2fa: bool = False

    @classmethod
    def from_result(cls, result: LoginResult) -> "LoginResponse":
        return cls(
            access_token=result.access_token,
            token_type=result.token_type,
            expires_in=result.expires_in,
            requires_2fa=result.requires_2fa,
        )


class ProfileResponse(BaseModel):
    """Identity view for GET /auth/profile and the admin routes."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    roles: list[str]
    verified: bool
    two_factor_enabled: bool
    is_active: bool = True
    created_at: Optional[str] = None

    @classmethod
    def from_profile(cls, profile: Profile) -> "ProfileResponse":
        return cls(
            id=profile.id,
            email=profile.email,
            roles=list(profile.roles),
            verified=profile.verified,
            two_factor_enabled=profile.two_factor_enabled,
            is_active=profile.is_active,
            created_at=profile.created_at,
        )


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
    components: dict[str, str] = Field(default_factory=dict)
