"""
auth/guards.py -- Composable authorization checks.

Each guard takes already-validated input and either returns the Claims it was
given or raises. Compose them by calling in order; the first failure wins:

    claims = require_authenticated(issuer, token)   # 401
    require_verified(claims)                        # 401
    require_role(claims, ROLE_ADMIN)                # 403

The guards are pure (no I/O, no store access), so they are safe on any thread.
auth/dependencies.py adapts them to FastAPI Depends().
"""

from __future__ import annotations

from auth.errors import ForbiddenError, UnauthorizedError
from auth.models import Claims
from auth.tokens import TokenIssuer


def require_authenticated(issuer: TokenIssuer, token: str | None) -> Claims:
    """Token present and its signature/expiry check out."""
    if not token:
        raise UnauthorizedError()
    claims = issuer.validate(token)
    if claims is None:
        raise UnauthorizedError("Invalid or expired token.")
    return claims


def require_verified(claims: Claims) -> Claims:
    """Full token only. A temporary token always fails here."""
    if not claims.is_full:
        raise UnauthorizedError("Email verification required.")
    return claims


def require_pending_two_factor(claims: Claims) -> Claims:
    """Temporary token only -- the inverse of require_verified."""
    if not claims.temp:
        raise UnauthorizedError("A pending two-factor login is required.")
    return claims


def require_role(claims: Claims, *roles: str) -> Claims:
    """Claims must carry at least one of roles."""
    if not set(roles) & set(claims.roles):
        raise ForbiddenError(f"{' or '.join(roles)} role required.")
    return claims


def check_access(issuer: TokenIssuer, token: str | None, *roles: str) -> Claims:
    """Authenticated -> Verified -> RoleRequired, short-circuiting on the first failure.

    With no roles, only the first two checks run.
    """
    claims = require_verified(require_authenticated(issuer, token))
    if roles:
        require_role(claims, *roles)
    return claims
