"""
auth/errors.py -- Typed failures raised by the auth core.

Each class carries the HTTP status and machine-readable code it maps to at the
API boundary. api/main.py registers a single exception handler that renders
any AuthError into the standard {"error": {...}} envelope, so services never
import FastAPI.

Undifferentiated on purpose:
  InvalidCredentialsError -- unknown email and wrong password look the same.
  InvalidOrExpiredError / InvalidOrExpiredCodeError -- "absent" and "expired"
      look the same.
  UnauthorizedError -- bad signature, malformed token and expiry look the same.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every domain failure the API turns into a 4xx/5xx."""

    status_code: int = 400
    code: str = "bad_request"
    message: str = "Bad request."

    def __init__(self, message: str | None = None, *, status_code: int | None = None) -> None:
        if message is not None:
            self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ConflictError(AuthError):
    code = "conflict"
    message = "User with this email already exists."


class InvalidCredentialsError(AuthError):
    status_code = 401
    code = "invalid_credentials"
    message = "Invalid credentials."


class EmailNotVerifiedError(AuthError):
    status_code = 401
    code = "email_not_verified"
    message = "Please verify your email first."


class InvalidOrExpiredError(AuthError):
    code = "invalid_or_expired"
    message = "Invalid or expired verification token."


class InvalidOrExpiredCodeError(AuthError):
    status_code = 401
    code = "invalid_or_expired_code"
    message = "Invalid or expired 2FA code."


class AlreadyVerifiedError(AuthError):
    code = "already_verified"
    message = "Email already verified."


class NotFoundError(AuthError):
    status_code = 404
    code = "not_found"
    message = "Not found."


class UnauthorizedError(AuthError):
    status_code = 401
    code = "unauthorized"
    message = "Authentication required."


class ForbiddenError(AuthError):
    status_code = 403
    code = "forbidden"
    message = "Insufficient role."


class InternalError(AuthError):
    """Hashing, signing or transport failure. Never retried, never masked."""

    status_code = 500
    code = "internal_error"
    message = "An unexpected error occurred."


class NotificationError(InternalError):
    code = "notification_failed"
    message = "Could not deliver the notification."
