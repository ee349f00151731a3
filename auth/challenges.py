"""
auth/challenges.py -- Email-verification and 2FA challenge lifecycle.

ChallengeStore is a logical view over UserStore: it owns the TTLs, the secret
generator and the clock, and turns the repository's raw set/get/conditional
clear calls into the four issue/consume operations the login flow needs.

Expiry rule: a challenge is live while now < expires_at. At now == expires_at
it is already dead.

Single use: consumption goes through a conditional UPDATE that repeats the
secret we just compared. If a concurrent caller consumed it in between, our
UPDATE matches nothing and we report failure.

Wrong 2FA codes do not burn the challenge; it stays consumable until expiry.
There is no attempt counter.
"""

from __future__ import annotations

import hmac
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from auth.errors import InvalidOrExpiredError
from auth.generator import SecretGenerator
from auth.models import Identity
from auth.store import UserStore

logger = logging.getLogger("gatehouse.auth")

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChallengeStore:
    def __init__(
        self,
        store: UserStore,
        generator: SecretGenerator,
        email_ttl: timedelta = timedelta(hours=24),
        two_factor_ttl: timedelta = timedelta(minutes=5),
        clock: Clock = utcnow,
    ) -> None:
        self.store = store
        self.generator = generator
        self.email_ttl = email_ttl
        self.two_factor_ttl = two_factor_ttl
        self.clock = clock

    # ------------------------------------------------------------------
    # Email verification
    # ------------------------------------------------------------------

    def issue_email_challenge(self, identity: Identity) -> str:
        """Mint a verification token for identity, replacing any live one."""
        token = self.generator.new_verification_token()
        self.store.set_email_challenge(identity.id, token, self.clock() + self.email_ttl)
        return token

    def consume_email_challenge(self, token: str) -> Identity:
        """Verify the identity holding token and delete the challenge.

        Raises InvalidOrExpiredError if the token is unknown, already used,
        replaced by a newer one, or past its expiry.
        """
        challenge = self.store.get_email_challenge(token)
        if challenge is None or self.clock() >= challenge.expires_at:
            raise InvalidOrExpiredError()
        if not self.store.consume_email_challenge(challenge.user_id, token):
            raise InvalidOrExpiredError()
        identity = self.store.get_by_id(challenge.user_id)
        if identity is None:
            raise InvalidOrExpiredError()
        return identity

    # ------------------------------------------------------------------
    # Two-factor
    # ------------------------------------------------------------------

    def issue_two_factor_challenge(self, identity: Identity) -> str:
        """Mint a 2FA code for identity, replacing any live one."""
        code = self.generator.new_two_factor_code()
        self.store.set_two_factor_challenge(identity.id, code, self.clock() + self.two_factor_ttl)
        return code

    def consume_two_factor_challenge(self, identity: Identity, submitted_code: str) -> bool:
        """Return True and delete the challenge if submitted_code matches a live code.

        Fails closed: no challenge, an expired one, or a mismatch all return
        False. A mismatch leaves the challenge in place.
        """
        challenge = self.store.get_two_factor_challenge(identity.id)
        if challenge is None or self.clock() >= challenge.expires_at:
            return False
        if not hmac.compare_digest(challenge.code.encode("utf-8"), submitted_code.encode("utf-8")):
            return False
        return self.store.clear_two_factor_challenge(identity.id, expected_code=challenge.code)

    def clear_two_factor_challenge(self, identity: Identity) -> None:
        self.store.clear_two_factor_challenge(identity.id)
