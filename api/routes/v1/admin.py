"""
api/routes/v1/admin.py -- Role management (ADMIN only).

Routes:
  GET    /api/v1/admin/users                    -- list all identities
  POST   /api/v1/admin/users/{id}/roles         -- grant a role
  DELETE /api/v1/admin/users/{id}/roles/{role}  -- revoke a role

Every route depends on require_roles(ROLE_ADMIN): Authenticated -> Verified ->
RoleRequired, so a temporary token gets 401 and a USER-only token gets 403.
Role changes show up in tokens minted after the change; tokens already issued
keep the roles they were signed with until they expire.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path

from api.models import ProfileResponse, RoleGrant
from auth.dependencies import get_auth_service, require_roles
from auth.errors import AuthError
from auth.models import ROLE_ADMIN, Claims
from auth.service import AuthService

router = APIRouter()

require_admin = require_roles(ROLE_ADMIN)


@router.get("/admin/users", response_model=list[ProfileResponse])
def list_users(
    claims: Claims = Depends(require_admin),
    service: AuthService = Depends(get_auth_service),
) -> list[ProfileResponse]:
    return [ProfileResponse.from_profile(p) for p in service.list_profiles()]


@router.post("/admin/users/{user_id}/roles", response_model=ProfileResponse)
def grant_role(
    user_id: int,
    body: RoleGrant,
    claims: Claims = Depends(require_admin),
    service: AuthService = Depends(get_auth_service),
) -> ProfileResponse:
    """Grant a role. Idempotent: granting a role the user already has is a no-op."""
    return ProfileResponse.from_profile(service.grant_role(user_id, body.role))


@router.delete("/admin/users/{user_id}/roles/{role}", response_model=ProfileResponse)
def revoke_role(
    user_id: int,
    role: str = Path(min_length=1, max_length=50),
    claims: Claims = Depends(require_admin),
    service: AuthService = Depends(get_auth_service),
) -> ProfileResponse:
    """Revoke a role. The path role is case-insensitive, like the grant body.

    Admins cannot drop their own ADMIN role (no recovery path without DB access).
    """
    role = role.strip().upper()
    if role == ROLE_ADMIN and user_id == claims.subject:
        raise AuthError("You cannot revoke your own ADMIN role.")
    return ProfileResponse.from_profile(service.revoke_role(user_id, role))
