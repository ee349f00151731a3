"""
auth/tokens.py -- Signed session tokens (full and temporary).

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       sub (user id, as a string per RFC 7519), email, roles, verified, temp,
       iat and exp. Nothing is persisted; a token is valid exactly as long as
       its signature checks out and exp is in the future.

  Two variants:
       full      -- verified=True,  temp=False, TTL = Settings.token_expire_seconds
       temporary -- verified=False, temp=True,  TTL = TEMP_TOKEN_TTL (10 minutes). Only the 2FA
                    verification route accepts it.

  validate() returns None on ANY failure -- bad signature, malformed payload,
       wrong claim types, expiry. Callers cannot tell which, so the API cannot
       leak it either. The guard layer turns None into 401.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from auth.errors import InternalError
from auth.models import Claims, Identity

logger = logging.getLogger("gatehouse.auth")

_ALGORITHM = "HS256"

# Window between a correct password and the 2FA code. Not configurable.
TEMP_TOKEN_TTL = timedelta(minutes=10)


class TokenIssuer:
    """Mints and validates HS256 session tokens.

    Usage:
        issuer = TokenIssuer(settings.secret_key, full_ttl=timedelta(hours=1))
        token = issuer.issue_full(identity)
        claims = issuer.validate(token)   # Claims or None
    """

    def __init__(
        self,
        secret_key: str,
        full_ttl: timedelta = timedelta(hours=1),
    ) -> None:
        if not secret_key:
            raise ValueError("secret_key must not be empty")
        self._secret_key = secret_key
        self.full_ttl = full_ttl
        self.temp_ttl = TEMP_TOKEN_TTL

    # ------------------------------------------------------------------
    # Encode
    # ------------------------------------------------------------------

    def issue_full(self, identity: Identity) -> str:
        return self._encode(identity, verified=True, temp=False, ttl=self.full_ttl)

    def issue_temporary(self, identity: Identity) -> str:
        return self._encode(identity, verified=False, temp=True, ttl=self.temp_ttl)

    def _encode(self, identity: Identity, *, verified: bool, temp: bool, ttl: timedelta) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(identity.id),
            "email": identity.email,
            "roles": list(identity.roles),
            "verified": verified,
            "temp": temp,
            "iat": now,
            "exp": now + ttl,
        }
        try:
            return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)
        except JWTError as exc:
            raise InternalError("Token signing failed.") from exc

    # ------------------------------------------------------------------
    # Decode
    # ------------------------------------------------------------------

    def validate(self, token: str) -> Claims | None:
        """Decode and verify a token. Returns Claims, or None on any failure."""
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[_ALGORITHM])
        except JWTError:
            return None
        return _payload_to_claims(payload)


def _payload_to_claims(payload: dict) -> Claims | None:
    sub = payload.get("sub")
    email = payload.get("email")
    roles = payload.get("roles")
    verified = payload.get("verified")
    temp = payload.get("temp", False)
    exp = payload.get("exp")
    if not isinstance(sub, str) or not sub.isdigit():
        return None
    if not isinstance(email, str) or not isinstance(roles, list) or not all(isinstance(r, str) for r in roles):
        return None
    if not isinstance(verified, bool) or not isinstance(temp, bool) or not isinstance(exp, (int, float)):
        return None
    # A token cannot be both verified and temporary.
    if verified and temp:
        return None
    return Claims(
        subject=int(sub),
        email=email,
        roles=tuple(roles),
        verified=verified,
        temp=temp,
        expires_at=datetime.fromtimestamp(exp, tz=timezone.utc),
    )
