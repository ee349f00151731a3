"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and services do
the work; these types only own the shape.

Every dataclass is frozen. The store hands out snapshots, and the only way to
change an identity is an explicit UserStore call -- never by mutating an
object that another layer also holds.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

ROLE_USER = "USER"
ROLE_ADMIN = "ADMIN"
ROLE_MODERATOR = "MODERATOR"

# Reference data seeded by UserStore on startup (name -> description).
DEFAULT_ROLES: dict[str, str] = {
    ROLE_USER: "Regular user role",
    ROLE_ADMIN: "Administrator role",
    ROLE_MODERATOR: "Moderator role",
}


@dataclass(frozen=True)
class Identity:
    """One registered account.

    email is stored trimmed and lower-cased, so lookups are case-insensitive.
    email_verified flips to True exactly once and is never reset.
    roles holds role names; USER is assigned at creation.

    Challenge secrets (verification token, 2FA code) are deliberately not part
    of this snapshot. They are read through ChallengeStore only.
    """

    id: int
    email: str
    password_hash: str
    email_verified: bool = False
    two_factor_enabled: bool = False
    is_active: bool = True
    roles: tuple[str, ...] = ()
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class EmailChallenge:
    """A live (or stale) email-verification challenge for one identity."""

    user_id: int
    token: str
    expires_at: datetime


@dataclass(frozen=True)
class TwoFactorChallenge:
    """A live (or stale) 2FA code for one identity."""

    user_id: int
    code: str
    expires_at: datetime


@dataclass(frozen=True)
class Claims:
    """Validated contents of a session token.

    A full token has verified=True, temp=False. A temporary token (issued
    between "password correct" and "2FA code confirmed") has verified=False,
    temp=True and is accepted only by the 2FA verification operation.
    """

    subject: int
    email: str
    roles: tuple[str, ...]
    verified: bool
    temp: bool
    expires_at: datetime

    @property
    def is_full(self) -> bool:
        return self.verified and not self.temp


@dataclass(frozen=True)
class LoginResult:
    """What a successful Login or VerifyTwoFactor call hands back."""

    access_token: str
    expires_in: int
    requires_2fa: bool = False
    token_type: str = "bearer"  # noqa: S105 # nosec B105 -- OAuth token type, not a password


@dataclass(frozen=True)
class Profile:
    """Read-only identity view returned by GetProfile and the admin routes."""

    id: int
    email: str
    roles: tuple[str, ...]
    verified: bool
    two_factor_enabled: bool
    is_active: bool = True
    created_at: str | None = None
