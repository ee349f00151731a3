"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Tokens travel as `Authorization: Bearer <token>`. Every helper converges on a
Claims object; guard failures raise AuthError subclasses, which api/main.py
renders as 401/403.

get_claims()          -- any valid token, full or temporary.
get_verified_claims() -- full token only (Authenticated -> Verified).
get_pending_claims()  -- temporary token only; used by POST /auth/verify-2fa.
require_roles(...)    -- factory: full token plus at least one of the roles.

Layer rule: may import from fastapi because this module is part of the
FastAPI dependency injection system. No imports from api/.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, Request

from auth.guards import check_access, require_authenticated, require_pending_two_factor, require_verified
from auth.models import Claims
from auth.service import AuthService


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def bearer_token(request: Request) -> str | None:
    """Extract the raw token from the Authorization header, or None."""
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_claims(request: Request) -> Claims:
    """Require a valid token. Raises 401 if missing, malformed, forged or expired."""
    return require_authenticated(get_auth_service(request).issuer, bearer_token(request))


def get_verified_claims(claims: Claims = Depends(get_claims)) -> Claims:
    """Require a full token. Temporary 2FA tokens are rejected with 401.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(claims: Claims = Depends(get_verified_claims)): ...
    """
    return require_verified(claims)


def get_pending_claims(claims: Claims = Depends(get_claims)) -> Claims:
    return require_pending_two_factor(claims)


def require_roles(*roles: str) -> Callable[..., Claims]:
    """Build a dependency requiring a full token carrying one of roles (403 otherwise).

    Use as a FastAPI dependency:
        @router.get("/admin-only")
        async def route(claims: Claims = Depends(require_roles(ROLE_ADMIN))): ...
    """

    def dependency(request: Request) -> Claims:
        return check_access(get_auth_service(request).issuer, bearer_token(request), *roles)

    return dependency
