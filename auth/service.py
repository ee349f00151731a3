"""
auth/service.py -- The authentication flow.

Per login attempt:

    Start -> CredentialsChecked -> Authenticated                    (2FA off)
                                -> PendingTwoFactor -> Authenticated (2FA on)

AuthService is wired explicitly: the store, challenge store, token issuer and
notifier are constructor arguments (see build_auth_service() for the
production wiring). It raises AuthError subclasses and never imports FastAPI.

Logging: auth events go to "gatehouse.auth" with the user id only. Passwords,
hashes, tokens and codes are never logged.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from auth.challenges import ChallengeStore
from auth.errors import (
    AlreadyVerifiedError,
    ConflictError,
    EmailNotVerifiedError,
    InvalidCredentialsError,
    InvalidOrExpiredCodeError,
    NotFoundError,
    UnauthorizedError,
)
from auth.generator import SecretGenerator
from auth.models import ROLE_USER, Claims, Identity, LoginResult, Profile
from auth.notifier import Notifier, SmtpNotifier
from auth.passwords import authenticate, hash_password
from auth.store import UserStore, normalize_email
from auth.tokens import TokenIssuer

logger = logging.getLogger("gatehouse.auth")


class AuthService:
    def __init__(
        self,
        store: UserStore,
        challenges: ChallengeStore,
        issuer: TokenIssuer,
        notifier: Notifier,
    ) -> None:
        self.store = store
        self.challenges = challenges
        self.issuer = issuer
        self.notifier = notifier

    # ------------------------------------------------------------------
    # Registration and email verification
    # ------------------------------------------------------------------

    def register(self, email: str, password: str) -> Identity:
        """Create an unverified identity with the USER role and mail a verification link.

        Raises ConflictError if the email is taken. No token is issued here --
        the caller must verify the email and then log in.
        """
        email = normalize_email(email)
        if self.store.get_by_email(email) is not None:
            raise ConflictError()
        identity = self.store.create_identity(email, hash_password(password), roles=(ROLE_USER,))
        token = self.challenges.issue_email_challenge(identity)
        logger.info("Registered user_id=%d", identity.id)
        self.notifier.send_verification(identity.email, token)
        return identity

    def verify_email(self, token: str) -> Identity:
        """Consume a verification token. A consumed token never works twice."""
        identity = self.challenges.consume_email_challenge(token)
        logger.info("Email verified for user_id=%d", identity.id)
        return identity

    def resend_verification(self, email: str) -> None:
        """Replace the live verification token with a fresh one and mail it."""
        identity = self.store.get_by_email(email)
        if identity is None:
            raise NotFoundError("User not found.", status_code=400)
        if identity.email_verified:
            raise AlreadyVerifiedError()
        token = self.challenges.issue_email_challenge(identity)
        logger.info("Verification re-issued for user_id=%d", identity.id)
        self.notifier.send_verification(identity.email, token)

    # ------------------------------------------------------------------
    # Login and two-factor
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> LoginResult:
        """Check credentials; return a full token, or a temporary one plus a mailed 2FA code.

        Raises InvalidCredentialsError (unknown email and wrong password are
        indistinguishable) or EmailNotVerifiedError.
        """
        try:
            identity = authenticate(self.store, email, password)
        except InvalidCredentialsError:
            logger.warning("Failed login attempt")
            raise
        if not identity.email_verified:
            raise EmailNotVerifiedError()

        if not identity.two_factor_enabled:
            logger.info("Login succeeded for user_id=%d", identity.id)
            return self._full_result(identity)

        code = self.challenges.issue_two_factor_challenge(identity)
        self.notifier.send_two_factor_code(identity.email, code)
        logger.info("2FA challenge issued for user_id=%d", identity.id)
        return LoginResult(
            access_token=self.issuer.issue_temporary(identity),
            expires_in=int(self.issuer.temp_ttl.total_seconds()),
            requires_2fa=True,
        )

    def verify_two_factor(self, claims: Claims, code: str) -> LoginResult:
        """Trade a temporary token plus the mailed code for a full token.

        Only the caller's own challenge is checked (claims.subject). A wrong
        code leaves the challenge live; a correct one is single use.
        """
        if not claims.temp:
            raise UnauthorizedError("A pending two-factor login is required.")
        identity = self._load(claims)
        if not self.challenges.consume_two_factor_challenge(identity, code):
            logger.warning("Failed 2FA verification for user_id=%d", identity.id)
            raise InvalidOrExpiredCodeError()
        logger.info("2FA verified for user_id=%d", identity.id)
        return self._full_result(identity)

    def enable_two_factor(self, claims: Claims) -> None:
        identity = self._load(claims)
        self.store.update_fields(identity.id, two_factor_enabled=True)
        logger.info("2FA enabled for user_id=%d", identity.id)

    def disable_two_factor(self, claims: Claims) -> None:
        """Turn 2FA off and drop any outstanding code."""
        identity = self._load(claims)
        self.store.update_fields(identity.id, two_factor_enabled=False)
        self.challenges.clear_two_factor_challenge(identity)
        logger.info("2FA disabled for user_id=%d", identity.id)

    # ------------------------------------------------------------------
    # Profiles and administration
    # ------------------------------------------------------------------

    def get_profile(self, claims: Claims) -> Profile:
        return to_profile(self._load(claims))

    def list_profiles(self) -> list[Profile]:
        return [to_profile(i) for i in self.store.list_identities()]

    def grant_role(self, user_id: int, role: str) -> Profile:
        if self.store.grant_role(user_id, role):
            logger.info("Role %s granted to user_id=%d", role, user_id)
        return self._profile_by_id(user_id)

    def revoke_role(self, user_id: int, role: str) -> Profile:
        if self.store.revoke_role(user_id, role):
            logger.info("Role %s revoked from user_id=%d", role, user_id)
        return self._profile_by_id(user_id)

    def provision(
        self,
        email: str,
        password: str,
        roles: tuple[str, ...] = (ROLE_USER,),
        verified: bool = False,
    ) -> Identity:
        """Create an identity out of band (operator CLI). Sends no mail."""
        identity = self.store.create_identity(email, hash_password(password), roles=roles, email_verified=verified)
        logger.info("Provisioned user_id=%d roles=%s", identity.id, ",".join(identity.roles))
        return identity

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _load(self, claims: Claims) -> Identity:
        identity = self.store.get_by_id(claims.subject)
        if identity is None or not identity.is_active:
            raise UnauthorizedError("User not found.")
        return identity

    def _profile_by_id(self, user_id: int) -> Profile:
        identity = self.store.get_by_id(user_id)
        if identity is None:
            raise NotFoundError("User not found.")
        return to_profile(identity)

    def _full_result(self, identity: Identity) -> LoginResult:
        return LoginResult(
            access_token=self.issuer.issue_full(identity),
            expires_in=int(self.issuer.full_ttl.total_seconds()),
        )


def to_profile(identity: Identity) -> Profile:
    return Profile(
        id=identity.id,
        email=identity.email,
        roles=identity.roles,
        verified=identity.email_verified,
        two_factor_enabled=identity.two_factor_enabled,
        is_active=identity.is_active,
        created_at=identity.created_at,
    )


def build_auth_service(settings, store: UserStore, notifier: Notifier | None = None) -> AuthService:
    """Wire an AuthService from Settings. notifier defaults to SMTP."""
    challenges = ChallengeStore(
        store,
        SecretGenerator(code_length=settings.two_factor_code_length),
        email_ttl=timedelta(seconds=settings.email_verification_ttl_seconds),
        two_factor_ttl=timedelta(seconds=settings.two_factor_ttl_seconds),
    )
    issuer = TokenIssuer(
        settings.secret_key,
        full_ttl=timedelta(seconds=settings.token_expire_seconds),
    )
    return AuthService(store, challenges, issuer, notifier or SmtpNotifier.from_settings(settings))
