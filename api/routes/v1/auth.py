"""
api/routes/v1/auth.py -- Registration, login, 2FA and profile REST endpoints.

Routes:
  POST /api/v1/auth/register             -- create account, mail verification link (201)
  POST /api/v1/auth/login                -- full token, or temporary token + mailed 2FA code
  POST /api/v1/auth/verify-email         -- consume verification token
  POST /api/v1/auth/resend-verification  -- re-issue verification token
  POST /api/v1/auth/verify-2fa           -- temporary token + code -> full token
  POST /api/v1/auth/enable-2fa           -- full token required
  POST /api/v1/auth/disable-2fa          -- full token required
  GET  /api/v1/auth/profile              -- full token required

Security:
  Login goes through AuthService.login() -> authenticate(), which equalizes
       timing between unknown email and wrong password. Never inline it.
  Cache-Control: no-store on every response that carries a token, and on
       login failures.
  Temporary tokens are accepted by verify-2fa only; every other protected
  route depends on get_verified_claims(), which rejects them.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from api.models import (
    LoginRequest,
    LoginResponse,
    MessageResponse,
    ProfileResponse,
    RegisterRequest,
    ResendVerificationRequest,
    TwoFactorRequest,
    VerifyEmailRequest,
)
from auth.dependencies import get_auth_service, get_pending_claims, get_verified_claims
from auth.models import Claims
from auth.service import AuthService

# Auth policy:
# - POST /auth/register, /auth/login, /auth/verify-email, /auth/resend-verification: public
# - POST /auth/verify-2fa:                           temporary token (get_pending_claims)
# - POST /auth/enable-2fa, /auth/disable-2fa:        full token (get_verified_claims)
# - GET  /auth/profile:                              full token (get_verified_claims)
router = APIRouter()


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=MessageResponse, status_code=201)
def register(body: RegisterRequest, service: AuthService = Depends(get_auth_service)) -> MessageResponse:
    """Register a new account. Returns an acknowledgment only -- no token until the email is verified."""
    service.register(body.email, body.password)
    return MessageResponse(
        message="User registered successfully. Please check your email to verify your account."
    )


@router.post("/auth/login", response_model=LoginResponse)
def login(
    body: LoginRequest,
    response: Response,
    service: AuthService = Depends(get_auth_service),
) -> LoginResponse:
    """Authenticate with email and password.

    The same generic error is returned for an unknown email and a wrong
    password ("invalid_credentials"). When 2FA is on, the returned token is
    temporary (requires_2fa=true) and the code is mailed out of band.
    """
    response.headers["Cache-Control"] = "no-store"
    return LoginResponse.from_result(service.login(body.email, body.password))


@router.post("/auth/verify-email", response_model=MessageResponse)
def verify_email(body: VerifyEmailRequest, service: AuthService = Depends(get_auth_service)) -> MessageResponse:
    service.verify_email(body.token)
    return MessageResponse(message="Email verified successfully.")


@router.post("/auth/resend-verification", response_model=MessageResponse)
def resend_verification(
    body: ResendVerificationRequest, service: AuthService = Depends(get_auth_service)
) -> MessageResponse:
    service.resend_verification(body.email)
    return MessageResponse(message="Verification email sent.")


# ---------------------------------------------------------------------------
# Temporary-token endpoint
# ---------------------------------------------------------------------------


@router.post("/auth/verify-2fa", response_model=LoginResponse)
def verify_two_factor(
    body: TwoFactorRequest,
    response: Response,
    claims: Claims = Depends(get_pending_claims),
    service: AuthService = Depends(get_auth_service),
) -> LoginResponse:
    """Exchange the temporary token and the mailed code for a full token.

    The code is checked against the caller's own challenge (token subject);
    there is no way to target another account from here.
    """
    response.headers["Cache-Control"] = "no-store"
    return LoginResponse.from_result(service.verify_two_factor(claims, body.code))


# ---------------------------------------------------------------------------
# Full-token endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/enable-2fa", response_model=MessageResponse)
def enable_two_factor(
    claims: Claims = Depends(get_verified_claims),
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    service.enable_two_factor(claims)
    return MessageResponse(message="Two-factor authentication enabled.")


@router.post("/auth/disable-2fa", response_model=MessageResponse)
def disable_two_factor(
    claims: Claims = Depends(get_verified_claims),
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    service.disable_two_factor(claims)
    return MessageResponse(message="Two-factor authentication disabled.")


@router.get("/auth/profile", response_model=ProfileResponse)
def profile(
    claims: Claims = Depends(get_verified_claims),
    service: AuthService = Depends(get_auth_service),
) -> ProfileResponse:
    """Return the caller's identity view, read fresh from the store."""
    return ProfileResponse.from_profile(service.get_profile(claims))
