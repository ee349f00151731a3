"""
auth/passwords.py -- Password hashing and credential checks.

Security design decisions:
  Passwords: bcrypt, used directly (no passlib wrapper). The cost factor is
       fixed per deployment (Settings.bcrypt_rounds, default 10) and read once
       at module load. bcrypt only looks at the first 72 bytes of input; newer
       bcrypt releases raise instead of truncating, so we truncate explicitly
       to keep hash and verify symmetric across library versions.

  Fatal primitive failures: a stored hash bcrypt cannot parse means the
       credential store is corrupt. That surfaces as InternalError (500), it
       is NOT folded into "wrong password".

  Timing equalization: authenticate() always runs one bcrypt check,
       against _DUMMY_HASH when the email is unknown, so response time does
       not reveal whether an account exists.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import bcrypt

from auth.errors import InternalError, InvalidCredentialsError
from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import Identity
    from auth.store import UserStore

logger = logging.getLogger("gatehouse.auth")

_BCRYPT_MAX_BYTES = 72

_rounds = get_settings().bcrypt_rounds


def _encode(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password."""
    try:
        return bcrypt.hashpw(_encode(plain), bcrypt.gensalt(rounds=_rounds)).decode("utf-8")
    except ValueError as exc:
        raise InternalError("Password hashing failed.") from exc


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    Raises InternalError if the stored hash is malformed.
    """
    try:
        return bcrypt.checkpw(_encode(plain), hashed.encode("utf-8"))
    except ValueError as exc:
        raise InternalError("Stored password hash is unreadable.") from exc


# Computed once at module load so the first unknown-email login is not
# measurably slower than later ones.
_DUMMY_HASH: str = hash_password("gatehouse_timing_dummy")


def authenticate(store: UserStore, email: str, password: str) -> Identity:
    """Check an email/password pair with timing equalization.

    Raises InvalidCredentialsError for an unknown email, a wrong password or a
    deactivated account -- the three are indistinguishable to the caller.
    Email verification is NOT checked here; that is the login flow's job so
    it can report EmailNotVerified only after the password was proven.
    """
    identity = store.get_by_email(email)
    if identity is None:
        # Equalize timing -- do NOT return early before running bcrypt
        verify_password(password, _DUMMY_HASH)
        raise InvalidCredentialsError()
    if not verify_password(password, identity.password_hash):
        raise InvalidCredentialsError()
    if not identity.is_active:
        raise InvalidCredentialsError()
    return identity
